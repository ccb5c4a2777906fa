"""GATE 1: Лимит количества открытых позиций

Открывающие команды (long, short, buy, sell):
- Считает различные символы с открытыми позициями
- Новый символ блокируется, если достигнут maxposqty
- Добавление к уже открытому символу (DCA) разрешено всегда

Символы нормализуются к id рынка, чтобы "BTC/USDT" и "BTCUSDT"
считались одним символом.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.position import Position


@dataclass(frozen=True)
class Gate01Result:
    """Результат GATE 1."""

    entry_allowed: bool
    block_reason: str
    failure: Optional[Failure]

    open_symbols: tuple[str, ...]
    maxposqty: Optional[int]
    is_dca: bool

    details: str


def normalize_symbol(symbol: str, markets: Iterable[Market]) -> str:
    """
    Символ → id рынка.

    Examples:
        "btc/usdt" при рынке id="BTCUSDT", base="BTC", quote="USDT" → "BTCUSDT"
    """
    wanted = symbol.upper()
    for market in markets:
        if wanted in (market.id.upper(), f"{market.base}/{market.quote}".upper()):
            return market.id
    return wanted


class Gate01PositionCount:
    """GATE 1: лимит количества позиций."""

    def evaluate(
        self,
        symbol: str,
        positions: Sequence[Position],
        maxposqty: Optional[int],
        markets: Sequence[Market] = (),
    ) -> Gate01Result:
        """Оценка GATE 1.

        Args:
            symbol: символ команды
            positions: все позиции stub
            maxposqty: максимальное число символов с позициями (None/0 — без лимита)
            markets: рынки для нормализации символов

        Returns:
            Gate01Result
        """
        symbol = normalize_symbol(symbol, markets)

        if not maxposqty or maxposqty <= 0:
            return Gate01Result(
                entry_allowed=True,
                block_reason="",
                failure=None,
                open_symbols=(),
                maxposqty=None,
                is_dca=False,
                details="maxposqty not configured",
            )

        open_symbols = tuple(
            dict.fromkeys(
                normalize_symbol(position.symbol, markets)
                for position in positions
                if position.is_open
            )
        )

        if symbol in open_symbols:
            return Gate01Result(
                entry_allowed=True,
                block_reason="",
                failure=None,
                open_symbols=open_symbols,
                maxposqty=maxposqty,
                is_dca=True,
                details=f"DCA on {symbol}",
            )

        if len(open_symbols) + 1 > maxposqty:
            return Gate01Result(
                entry_allowed=False,
                block_reason="max_positions_reached",
                failure=Failure.of(FailureCode.MAX_POSITIONS_REACHED, symbol, maxposqty),
                open_symbols=open_symbols,
                maxposqty=maxposqty,
                is_dca=False,
                details=f"{len(open_symbols)} of {maxposqty} positions open",
            )

        return Gate01Result(
            entry_allowed=True,
            block_reason="",
            failure=None,
            open_symbols=open_symbols,
            maxposqty=maxposqty,
            is_dca=False,
            details=f"{len(open_symbols)} of {maxposqty} positions open",
        )
