"""Hedge Mode State Machine — согласование режима позиций аккаунта.

Режимы:
- SINGLE: одна позиция на символ, direction в командах не используется
- HEDGE: одновременные long и short, direction обязателен

Переходы:
- direction задан, аккаунт в SINGLE → попытка включить HEDGE (если can_change).
  Успех → команда продолжается. Неудача → direction снимается, разрешены
  только long команды (direction=short → HedgeModeRequired).
- direction не задан, аккаунт в HEDGE → попытка выключить HEDGE (если can_change).
  Успех → команда продолжается. Неудача → direction = long,
  short команды → SingleModeRequired.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from order_pipeline.core.domain.account import HedgeModeState
from order_pipeline.core.domain.commands import Verb
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.position import PositionDirection


class HedgeMode(str, Enum):
    """Режим позиций аккаунта."""

    SINGLE = "single"
    HEDGE = "hedge"

    @classmethod
    def of(cls, state: HedgeModeState) -> "HedgeMode":
        return cls.HEDGE if state.enabled else cls.SINGLE


class HedgeAction(str, Enum):
    """Требуемое переключение режима."""

    NONE = "none"
    ENABLE = "enable"
    DISABLE = "disable"


@dataclass(frozen=True)
class HedgeTransitionResult:
    """Результат согласования режима."""

    new_mode: HedgeMode
    entry_allowed: bool
    failure: Optional[Failure]

    # Direction, с которым команда продолжается (None: без direction)
    direction: Optional[PositionDirection]

    # Диагностика
    transition_occurred: bool
    transition_reason: str
    previous_mode: HedgeMode

    details: str


class HedgeModeStateMachine:
    """State machine режима позиций."""

    def required_action(
        self, state: HedgeModeState, direction: Optional[PositionDirection]
    ) -> HedgeAction:
        """Какое переключение нужно для команды с данным direction."""
        mode = HedgeMode.of(state)
        if direction is not None and mode == HedgeMode.SINGLE:
            return HedgeAction.ENABLE
        if direction is None and mode == HedgeMode.HEDGE:
            return HedgeAction.DISABLE
        return HedgeAction.NONE

    def evaluate_transition(
        self,
        state: HedgeModeState,
        verb: Verb,
        direction: Optional[PositionDirection],
        switch_succeeded: Optional[bool] = None,
    ) -> HedgeTransitionResult:
        """Оценка перехода.

        Args:
            state: текущий режим аккаунта
            verb: команда
            direction: direction команды
            switch_succeeded: результат попытки переключения
                (None — попытки не было)

        Returns:
            HedgeTransitionResult
        """
        previous = HedgeMode.of(state)
        action = self.required_action(state, direction)

        if action == HedgeAction.NONE:
            return HedgeTransitionResult(
                new_mode=previous,
                entry_allowed=True,
                failure=None,
                direction=direction,
                transition_occurred=False,
                transition_reason="mode_compliant",
                previous_mode=previous,
                details=f"{previous.value} mode, direction={direction.value if direction else None}",
            )

        target = HedgeMode.HEDGE if action == HedgeAction.ENABLE else HedgeMode.SINGLE

        if switch_succeeded:
            return HedgeTransitionResult(
                new_mode=target,
                entry_allowed=True,
                failure=None,
                direction=direction,
                transition_occurred=True,
                transition_reason=f"hedge_mode_{action.value}d",
                previous_mode=previous,
                details=f"{previous.value} → {target.value}",
            )

        reason = "switch_failed" if state.can_change else "position_open"

        if action == HedgeAction.ENABLE:
            # Только long: direction снимается
            if direction != PositionDirection.LONG:
                return HedgeTransitionResult(
                    new_mode=previous,
                    entry_allowed=False,
                    failure=Failure.of(FailureCode.HEDGE_MODE_REQUIRED, verb.value, details=reason),
                    direction=None,
                    transition_occurred=False,
                    transition_reason=reason,
                    previous_mode=previous,
                    details="hedge mode required for direction=short",
                )
            return HedgeTransitionResult(
                new_mode=previous,
                entry_allowed=True,
                failure=None,
                direction=None,
                transition_occurred=False,
                transition_reason=reason,
                previous_mode=previous,
                details="limited to long-side commands",
            )

        # DISABLE не удался: direction = long
        if verb == Verb.SHORT:
            return HedgeTransitionResult(
                new_mode=previous,
                entry_allowed=False,
                failure=Failure.of(FailureCode.SINGLE_MODE_REQUIRED, verb.value, details=reason),
                direction=PositionDirection.LONG,
                transition_occurred=False,
                transition_reason=reason,
                previous_mode=previous,
                details="single mode required for short without direction",
            )
        return HedgeTransitionResult(
            new_mode=previous,
            entry_allowed=True,
            failure=None,
            direction=PositionDirection.LONG,
            transition_occurred=False,
            transition_reason=reason,
            previous_mode=previous,
            details="limited to long-side commands",
        )
