"""Тесты для HedgeModeStateMachine и PipelineStateMachine

Покрытие:
- Hedge: required_action, успешное переключение, отказы ENABLE/DISABLE
- Pipeline: допустимые/недопустимые переходы, терминальные состояния, история
"""

import pytest

from order_pipeline.core.domain import FailureCode, HedgeModeState, PositionDirection, Verb
from order_pipeline.hedge import HedgeAction, HedgeMode, HedgeModeStateMachine
from order_pipeline.orchestrator import PipelineState, PipelineStateMachine


SINGLE = HedgeModeState(enabled=False, can_change=True)
SINGLE_LOCKED = HedgeModeState(enabled=False, can_change=False)
HEDGE = HedgeModeState(enabled=True, can_change=True)
HEDGE_LOCKED = HedgeModeState(enabled=True, can_change=False)


# =============================================================================
# HEDGE MODE
# =============================================================================


class TestHedgeRequiredAction:
    @pytest.mark.parametrize(
        "state,direction,expected",
        [
            (SINGLE, None, HedgeAction.NONE),
            (SINGLE, PositionDirection.LONG, HedgeAction.ENABLE),
            (HEDGE, PositionDirection.SHORT, HedgeAction.NONE),
            (HEDGE, None, HedgeAction.DISABLE),
        ],
    )
    def test_required_action(self, state, direction, expected) -> None:
        assert HedgeModeStateMachine().required_action(state, direction) == expected


class TestHedgeTransition:
    def test_compliant(self) -> None:
        result = HedgeModeStateMachine().evaluate_transition(HEDGE, Verb.SHORT, PositionDirection.SHORT)
        assert result.entry_allowed
        assert result.new_mode == HedgeMode.HEDGE
        assert not result.transition_occurred
        assert result.transition_reason == "mode_compliant"

    def test_enabled(self) -> None:
        result = HedgeModeStateMachine().evaluate_transition(
            SINGLE, Verb.LONG, PositionDirection.LONG, switch_succeeded=True
        )
        assert result.transition_occurred
        assert result.new_mode == HedgeMode.HEDGE
        assert result.previous_mode == HedgeMode.SINGLE
        assert result.transition_reason == "hedge_mode_enabled"

    def test_disabled(self) -> None:
        result = HedgeModeStateMachine().evaluate_transition(HEDGE, Verb.BUY, None, switch_succeeded=True)
        assert result.new_mode == HedgeMode.SINGLE
        assert result.transition_reason == "hedge_mode_disabled"

    def test_enable_failed_long_only(self) -> None:
        machine = HedgeModeStateMachine()

        long = machine.evaluate_transition(SINGLE, Verb.LONG, PositionDirection.LONG, switch_succeeded=False)
        assert long.entry_allowed
        assert long.direction is None
        assert long.transition_reason == "switch_failed"

        short = machine.evaluate_transition(SINGLE_LOCKED, Verb.SHORT, PositionDirection.SHORT)
        assert not short.entry_allowed
        assert short.failure.code == FailureCode.HEDGE_MODE_REQUIRED
        assert short.transition_reason == "position_open"

    def test_disable_failed_forces_long(self) -> None:
        machine = HedgeModeStateMachine()

        sell = machine.evaluate_transition(HEDGE_LOCKED, Verb.SELL, None)
        assert sell.entry_allowed
        assert sell.direction == PositionDirection.LONG

        short = machine.evaluate_transition(HEDGE, Verb.SHORT, None, switch_succeeded=False)
        assert short.failure.code == FailureCode.SINGLE_MODE_REQUIRED
        assert short.new_mode == HedgeMode.HEDGE


# =============================================================================
# PIPELINE
# =============================================================================


class TestPipelineStateMachine:
    def test_full_order_path(self) -> None:
        machine = PipelineStateMachine()
        for state in (
            PipelineState.SIZING,
            PipelineState.BUILDING,
            PipelineState.QUEUED,
            PipelineState.SUBMITTING,
            PipelineState.DONE,
        ):
            assert machine.transition(state).transition_occurred

        assert machine.state.is_terminal
        assert machine.reached_queue
        assert machine.history[0] == PipelineState.VALIDATING

    def test_query_path(self) -> None:
        machine = PipelineStateMachine()
        assert machine.transition(PipelineState.DONE).transition_occurred
        assert not machine.reached_queue

    def test_illegal_transition_not_performed(self) -> None:
        machine = PipelineStateMachine()
        result = machine.transition(PipelineState.SUBMITTING)
        assert not result.transition_occurred
        assert result.new_state == PipelineState.VALIDATING
        assert "illegal" in result.transition_reason
        assert machine.history == [PipelineState.VALIDATING]

    def test_fail_from_any_active_state(self) -> None:
        machine = PipelineStateMachine()
        machine.transition(PipelineState.BUILDING)
        result = machine.fail("too small")
        assert result.new_state == PipelineState.FAILED
        assert result.transition_reason == "too small"

    def test_terminal_states_are_final(self) -> None:
        machine = PipelineStateMachine()
        machine.fail()
        assert not machine.can_transition(PipelineState.DONE)
        assert not machine.fail().transition_occurred
