"""
OrderDescriptor — exchange-agnostic описание ордера

Дескрипторы создаются OrderBuilder, принадлежат OrderQueue до отправки и
уничтожаются после неё (успешной или нет). Никогда не персистятся.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class Side(str, Enum):
    """Сторона ордера"""

    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self == Side.BUY else Side.BUY


class OrderKind(str, Enum):
    """Тип ордера"""

    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"

    @property
    def is_conditional(self) -> bool:
        return self in (OrderKind.STOP_LOSS, OrderKind.TAKE_PROFIT, OrderKind.TRAILING_STOP)


class TimeInForce(str, Enum):
    """Поддерживаемые значения time-in-force (остальные игнорируются)."""

    IOC = "IOC"
    FOK = "FOK"


# =============================================================================
# MODELS
# =============================================================================


class OrderFlags(BaseModel):
    """Флаги ордера."""

    reduce_only: bool = False
    post_only: bool = False
    time_in_force: Optional[TimeInForce] = None
    trigger_price: Optional[float] = Field(
        None, description="Триггер; для trailing stop — знаковый сдвиг от mark"
    )
    trigger_type: Optional[str] = None
    client_tag: Optional[str] = None

    model_config = {"frozen": True}


class OrderDescriptor(BaseModel):
    """
    Exchange-agnostic ордер.

    amount выражен в единицах sizing биржи (base или quote/contracts),
    кратен precision.amount и лежит в лимитах рынка — иначе дескриптор
    не создаётся (построение завершается отказом).
    """

    symbol: str = Field(..., min_length=1)
    side: Side
    kind: OrderKind
    amount: float = Field(..., gt=0, description="Объём в единицах sizing биржи")
    price: Optional[float] = Field(None, gt=0, description="Цена (None для market)")
    flags: OrderFlags = Field(default_factory=OrderFlags)

    # Нативное представление (param_map + custom_params адаптера)
    exchange_type: str = Field(..., min_length=1, description="Нативный тип ордера")
    exchange_params: dict[str, Any] = Field(default_factory=dict)

    # Номер уровня layered ордера (1-based)
    layer: Optional[int] = Field(None, ge=1)

    model_config = {"frozen": True}

    def to_payload(self) -> dict[str, Any]:
        """Payload для execute(stub, 'order', ...): без None значений."""
        payload: dict[str, Any] = {
            "symbol": self.symbol,
            "type": self.exchange_type,
            "side": self.side.value,
            "amount": self.amount,
            "params": {k: v for k, v in self.exchange_params.items() if v is not None},
        }
        if self.price is not None:
            payload["price"] = self.price
        return payload


class OpenOrder(BaseModel):
    """Ордер на бирже (результат all_orders)."""

    id: str
    symbol: str
    side: Side
    type: str = Field(..., description="Нативный тип ордера")
    status: str = Field("open", description="open / closed / canceled")
    price: Optional[float] = None
    amount: float = Field(0.0, ge=0)
    filled: float = Field(0.0, ge=0)
    direction: Optional[str] = Field(None, description="long/short в hedge mode")
    timestamp: int = Field(0, ge=0, description="UTC, миллисекунды")

    model_config = {"frozen": True}

    @property
    def is_open(self) -> bool:
        return self.status.lower() == "open"
