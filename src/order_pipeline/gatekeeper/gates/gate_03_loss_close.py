"""GATE 3: Запрет закрытия в убыток

Только для close без force: если disablelossclose включён и
нереализованный PnL позиции отрицательный — блокировка.
"""

from dataclasses import dataclass
from typing import Optional

from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.position import Position


@dataclass(frozen=True)
class Gate03Result:
    """Результат GATE 3."""

    entry_allowed: bool
    block_reason: str
    failure: Optional[Failure]

    unrealized_pnl: float

    details: str


class Gate03LossClose:
    """GATE 3: loss-close guard."""

    def evaluate(
        self,
        position: Position,
        disablelossclose: bool = False,
        force: bool = False,
    ) -> Gate03Result:
        """Оценка GATE 3.

        Args:
            position: закрываемая позиция
            disablelossclose: закрытие в убыток запрещено
            force: обход проверки
        """
        pnl = position.unrealized_pnl

        if disablelossclose and not force and position.is_open and pnl < 0:
            return Gate03Result(
                entry_allowed=False,
                block_reason="loss_close_disabled",
                failure=Failure.of(FailureCode.LOSS_CLOSE_DISABLED, position.symbol, pnl),
                unrealized_pnl=pnl,
                details=f"{position.symbol} unrealized PnL {pnl} < 0",
            )

        return Gate03Result(
            entry_allowed=True,
            block_reason="",
            failure=None,
            unrealized_pnl=pnl,
            details="force" if force else "",
        )
