"""
core/engine/state_machine.py

表驱动状态机 - 状态转换合法性校验

状态机本身不持有实体状态：调用方传入当前状态与目标状态，
由转换表决定是否允许。新增状态只需修改转换表。
"""
from typing import Dict, List, Optional, Iterable
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str


@dataclass
class TransitionResult:
    """转换校验结果"""

    allowed: bool
    reason: str
    transition: Optional[StateTransition] = None
    valid_alternatives: List[str] = field(default_factory=list)


class StateMachine:
    """
    表驱动状态机

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Door",
        ...     states=["open", "closed"],
        ...     transitions=[StateTransition("open", "closed", "close")],
        ...     initial_state="open",
        ... ))
        >>> machine.can_transition("open", "closed")
        True
        >>> machine.is_terminal("closed")
        True
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        # (from_state -> to_state -> transition)
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        for t in config.transitions:
            if t.from_state not in config.states or t.to_state not in config.states:
                raise ValueError(
                    f"{config.name}: transition {t.from_state} -> {t.to_state} uses an undeclared state"
                )
            targets = self._transition_map.setdefault(t.from_state, {})
            if t.to_state in targets:
                raise ValueError(f"{config.name}: duplicate transition {t.from_state} -> {t.to_state}")
            targets[t.to_state] = t

        if config.initial_state not in config.states:
            raise ValueError(f"{config.name}: unknown initial state '{config.initial_state}'")

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    @property
    def initial_state(self) -> str:
        return self._config.initial_state

    @property
    def terminal_states(self) -> List[str]:
        """没有出边的状态"""
        return [s for s in self._config.states if not self._transition_map.get(s)]

    def is_terminal(self, state: str) -> bool:
        return not self._transition_map.get(state)

    def valid_targets(self, from_state: str) -> List[str]:
        """从指定状态可到达的目标状态"""
        return list(self._transition_map.get(from_state, {}).keys())

    def find_transition(self, from_state: str, to_state: str) -> Optional[StateTransition]:
        return self._transition_map.get(from_state, {}).get(to_state)

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find_transition(from_state, to_state) is not None

    def validate(self, from_state: str, to_state: str) -> TransitionResult:
        """
        校验状态转换

        Args:
            from_state: 当前状态
            to_state: 目标状态

        Returns:
            TransitionResult，不合法时附带可选的目标状态
        """
        if from_state not in self._config.states:
            return TransitionResult(
                allowed=False,
                reason=f"Unknown state '{from_state}' for {self.name}",
            )

        transition = self.find_transition(from_state, to_state)
        if transition is None:
            alternatives = self.valid_targets(from_state)
            if not alternatives:
                reason = f"'{from_state}' is a terminal state of {self.name}"
            else:
                reason = (
                    f"Transition '{from_state}' -> '{to_state}' is not allowed for {self.name}; "
                    f"valid targets: {', '.join(alternatives)}"
                )
            logger.debug(reason)
            return TransitionResult(allowed=False, reason=reason, valid_alternatives=alternatives)

        return TransitionResult(
            allowed=True,
            reason=f"{transition.trigger}: {from_state} -> {to_state}",
            transition=transition,
        )

    def edges(self) -> Iterable[StateTransition]:
        """遍历全部转换（用于文档与测试）"""
        for targets in self._transition_map.values():
            yield from targets.values()


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "TransitionResult",
    "StateMachine",
]
