"""
Execution Adapter — интерфейс к бирже

Адаптер нормализует API конкретной биржи (подпись запросов, rate limits,
таблица param_map) и предоставляет ядру read-only запросы и execute().
Ядро не выполняет сетевых вызовов напрямую.

Ошибки биржи адаптер выбрасывает как AdapterError; TradeOrchestrator
перехватывает их на своей границе и превращает в Failure категории ADAPTER.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from order_pipeline.core.domain.account import Balance, HedgeModeState
from order_pipeline.core.domain.exchange import ExchangeProfile
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.order import OpenOrder
from order_pipeline.core.domain.position import PositionDirection, Position


class AdapterAction(str, Enum):
    """Действия execute()."""

    CUSTOM_PARAMS = "custom_params"
    CANCEL = "cancel"
    CANCEL_ALL = "cancel_all"
    CANCEL_SL = "cancel_sl"
    CANCEL_TP = "cancel_tp"
    LEVERAGE = "leverage"
    ORDER = "order"


class AdapterError(Exception):
    """Отказ адаптера или биржи."""

    def __init__(self, action: str, message: str):
        super().__init__(f"{action}: {message}")
        self.action = action
        self.message = message


@dataclass(frozen=True)
class ExecutionResult:
    """
    Результат execute().

    Для ORDER: rejected — индексы ордеров пакета, отклонённых биржей;
    пакет успешен только если ok и rejected пуст.
    """

    ok: bool
    data: Any = None
    rejected: tuple[int, ...] = field(default_factory=tuple)
    details: str = ""

    @property
    def all_accepted(self) -> bool:
        return self.ok and not self.rejected


@runtime_checkable
class ExecutionAdapter(Protocol):
    """Асинхронный интерфейс Execution Adapter."""

    async def profile(self, stub: str) -> ExchangeProfile:
        """Профиль биржи stub: order_sizing, param_map, stablecoins."""
        ...

    async def position(
        self, stub: str, symbol: str, direction: Optional[PositionDirection] = None
    ) -> Sequence[Position]:
        """Открытые позиции по символу (пусто, если позиции нет)."""
        ...

    async def positions(
        self, stub: str, direction: Optional[PositionDirection] = None
    ) -> Sequence[Position]:
        ...

    async def balances(self, stub: str, currency: Optional[str] = None) -> Sequence[Balance]:
        ...

    async def market(self, stub: str, symbol: str) -> Optional[Market]:
        """Снапшот рынка или None, если символ неизвестен."""
        ...

    async def markets(self, stub: str) -> Sequence[Market]:
        ...

    async def all_orders(
        self, stub: str, symbol: Optional[str] = None, since: Optional[int] = None
    ) -> Sequence[OpenOrder]:
        """Ордера (открытые и исполненные) начиная с since (UTC ms)."""
        ...

    async def hedge_mode(self, stub: str) -> HedgeModeState:
        ...

    async def set_hedge_mode(self, stub: str, enabled: bool) -> bool:
        """Переключение режима; False — биржа отказала."""
        ...

    async def execute(self, stub: str, action: AdapterAction, payload: Any) -> ExecutionResult:
        ...
