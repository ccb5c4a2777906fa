"""Pipeline State Machine — стадии исполнения одной команды.

    VALIDATING → SIZING → BUILDING → QUEUED → SUBMITTING → DONE
         │          │         │          │          │
         └──────────┴─────────┴──────────┴──────────┴──→ FAILED

Команды без sizing (trailstop, stoploss/takeprofit с явным размером,
cancel, leverage, read-only запросы) переходят VALIDATING → BUILDING
или VALIDATING → DONE напрямую.

Недопустимый переход не выполняется: результат несёт transition_occurred=False
и причину, состояние остаётся прежним.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List


class PipelineState(str, Enum):
    """Стадия команды."""

    VALIDATING = "validating"
    SIZING = "sizing"
    BUILDING = "building"
    QUEUED = "queued"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED)


_ALLOWED: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.VALIDATING: frozenset(
        {PipelineState.SIZING, PipelineState.BUILDING, PipelineState.DONE, PipelineState.FAILED}
    ),
    PipelineState.SIZING: frozenset({PipelineState.BUILDING, PipelineState.FAILED}),
    PipelineState.BUILDING: frozenset({PipelineState.QUEUED, PipelineState.FAILED}),
    PipelineState.QUEUED: frozenset({PipelineState.SUBMITTING, PipelineState.FAILED}),
    PipelineState.SUBMITTING: frozenset({PipelineState.DONE, PipelineState.FAILED}),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class PipelineTransitionResult:
    """Результат перехода."""

    new_state: PipelineState
    transition_occurred: bool
    transition_reason: str
    previous_state: PipelineState


class PipelineStateMachine:
    """State machine одной команды."""

    def __init__(self, initial: PipelineState = PipelineState.VALIDATING):
        self.state = initial
        self.history: List[PipelineState] = [initial]

    def can_transition(self, target: PipelineState) -> bool:
        return target in _ALLOWED[self.state]

    def transition(self, target: PipelineState, reason: str = "") -> PipelineTransitionResult:
        """Переход в target, если он допустим из текущего состояния."""
        previous = self.state
        if not self.can_transition(target):
            return PipelineTransitionResult(
                new_state=previous,
                transition_occurred=False,
                transition_reason=f"illegal transition {previous.value} → {target.value}",
                previous_state=previous,
            )
        self.state = target
        self.history.append(target)
        return PipelineTransitionResult(
            new_state=target,
            transition_occurred=True,
            transition_reason=reason,
            previous_state=previous,
        )

    def fail(self, reason: str = "") -> PipelineTransitionResult:
        return self.transition(PipelineState.FAILED, reason)

    @property
    def reached_queue(self) -> bool:
        """Команда дошла до постановки в очередь."""
        return PipelineState.QUEUED in self.history
