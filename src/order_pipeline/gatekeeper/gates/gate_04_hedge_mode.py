"""GATE 4: Hedge mode compliance

Только standard команды на derivative рынках биржи с поддержкой hedge mode.
Режим аккаунта согласуется через HedgeModeStateMachine; при необходимости
гейт пытается переключить режим через adapter.set_hedge_mode.

Результат несёт эффективный direction, с которым команда продолжается.
"""

from dataclasses import dataclass
from typing import Optional

from order_pipeline.adapters.base import ExecutionAdapter
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.commands import Verb
from order_pipeline.core.domain.failures import Failure
from order_pipeline.core.domain.position import PositionDirection
from order_pipeline.hedge.state_machine import (
    HedgeAction,
    HedgeMode,
    HedgeModeStateMachine,
)


@dataclass(frozen=True)
class Gate04Result:
    """Результат GATE 4."""

    entry_allowed: bool
    block_reason: str
    failure: Optional[Failure]

    direction: Optional[PositionDirection]
    mode: Optional[HedgeMode]
    switched: bool

    details: str


class Gate04HedgeMode:
    """GATE 4: согласование hedge mode."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        diagnostics: Optional[Diagnostics] = None,
        state_machine: Optional[HedgeModeStateMachine] = None,
    ):
        self.adapter = adapter
        self.diagnostics = diagnostics or Diagnostics()
        self.state_machine = state_machine or HedgeModeStateMachine()

    async def evaluate(
        self,
        stub: str,
        verb: Verb,
        direction: Optional[PositionDirection],
    ) -> Gate04Result:
        """Оценка GATE 4.

        Args:
            stub: аккаунт
            verb: standard команда
            direction: direction из команды
        """
        state = await self.adapter.hedge_mode(stub)
        self.diagnostics.debug(
            "hedge_mode", enabled=state.enabled, can_change=state.can_change
        )

        action = self.state_machine.required_action(state, direction)
        switch_succeeded: Optional[bool] = None
        if action != HedgeAction.NONE:
            self.diagnostics.warning(
                "hedge_mode_mismatch",
                direction=direction.value if direction else None,
                enabled=state.enabled,
            )
            if state.can_change:
                switch_succeeded = await self.adapter.set_hedge_mode(
                    stub, action == HedgeAction.ENABLE
                )
                self.diagnostics.notice(
                    "hedge_mode_switch", action=action.value, succeeded=switch_succeeded
                )

        transition = self.state_machine.evaluate_transition(
            state, verb, direction, switch_succeeded
        )
        if not transition.entry_allowed:
            return Gate04Result(
                entry_allowed=False,
                block_reason=transition.transition_reason,
                failure=transition.failure,
                direction=transition.direction,
                mode=transition.new_mode,
                switched=False,
                details=transition.details,
            )

        if transition.direction != direction:
            self.diagnostics.warning(
                "hedge_mode_long_only",
                direction=transition.direction.value if transition.direction else None,
            )

        return Gate04Result(
            entry_allowed=True,
            block_reason="",
            failure=None,
            direction=transition.direction,
            mode=transition.new_mode,
            switched=transition.transition_occurred,
            details=transition.details,
        )
