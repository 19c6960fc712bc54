"""
tests/core/test_state_machine.py

表驱动状态机测试
"""
import pytest

from core.engine.state_machine import StateMachine, StateMachineConfig, StateTransition


@pytest.fixture
def door_machine():
    return StateMachine(StateMachineConfig(
        name="Door",
        states=["open", "closed", "locked", "broken"],
        transitions=[
            StateTransition("open", "closed", "close"),
            StateTransition("closed", "open", "open"),
            StateTransition("closed", "locked", "lock"),
            StateTransition("open", "broken", "break"),
        ],
        initial_state="open",
    ))


class TestStateMachine:
    """状态机校验"""

    def test_allowed_transition(self, door_machine):
        result = door_machine.validate("open", "closed")

        assert result.allowed is True
        assert result.transition.trigger == "close"

    def test_disallowed_transition_lists_alternatives(self, door_machine):
        result = door_machine.validate("open", "locked")

        assert result.allowed is False
        assert sorted(result.valid_alternatives) == ["broken", "closed"]
        assert "not allowed" in result.reason

    def test_terminal_state_has_no_targets(self, door_machine):
        result = door_machine.validate("locked", "open")

        assert result.allowed is False
        assert "terminal" in result.reason
        assert result.valid_alternatives == []

    def test_unknown_from_state(self, door_machine):
        result = door_machine.validate("ajar", "closed")
        assert result.allowed is False
        assert "Unknown state" in result.reason

    def test_terminal_states(self, door_machine):
        assert sorted(door_machine.terminal_states) == ["broken", "locked"]
        assert door_machine.is_terminal("locked")
        assert not door_machine.is_terminal("closed")

    def test_can_transition(self, door_machine):
        assert door_machine.can_transition("closed", "locked")
        assert not door_machine.can_transition("locked", "closed")

    def test_edges(self, door_machine):
        assert len(list(door_machine.edges())) == 4


class TestStateMachineConfigValidation:
    """转换表自身的校验"""

    def test_undeclared_state_rejected(self):
        with pytest.raises(ValueError, match="undeclared"):
            StateMachine(StateMachineConfig(
                name="Bad",
                states=["a"],
                transitions=[StateTransition("a", "b", "go")],
                initial_state="a",
            ))

    def test_duplicate_transition_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            StateMachine(StateMachineConfig(
                name="Bad",
                states=["a", "b"],
                transitions=[StateTransition("a", "b", "go"), StateTransition("a", "b", "again")],
                initial_state="a",
            ))

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial"):
            StateMachine(StateMachineConfig(
                name="Bad",
                states=["a"],
                transitions=[],
                initial_state="z",
            ))
