"""
core/engine - 核心引擎模块

- state_machine: 表驱动状态机（状态转换校验）
- locks: 键控锁注册表（检查-写入串行化）

使用方式:
    >>> from core.engine import StateMachine, StateMachineConfig, StateTransition
    >>> from core.engine import allocation_locks
"""

from core.engine.state_machine import (
    StateTransition,
    StateMachineConfig,
    TransitionResult,
    StateMachine,
)

from core.engine.locks import (
    LockTimeout,
    KeyedLockRegistry,
    allocation_locks,
)

__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "TransitionResult",
    "StateMachine",
    "LockTimeout",
    "KeyedLockRegistry",
    "allocation_locks",
]
