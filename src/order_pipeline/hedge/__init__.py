"""Hedge mode — согласование режима позиций аккаунта."""

from .state_machine import HedgeAction, HedgeMode, HedgeModeStateMachine, HedgeTransitionResult

__all__ = [
    "HedgeAction",
    "HedgeMode",
    "HedgeModeStateMachine",
    "HedgeTransitionResult",
]
