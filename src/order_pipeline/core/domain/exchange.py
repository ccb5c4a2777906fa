"""
Exchange profile — настройки биржи, поставляемые адаптером

- OrderSizing: в каких единицах биржа принимает amount (base или quote)
- ParamMap: таблица generic имён полей → нативные имена биржи
- ExchangeProfile: всё вместе для одного stub
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .expressions import Denomination
from .order import OrderKind


class OrderSizing(str, Enum):
    """Единица amount на бирже."""

    BASE = "base"
    QUOTE = "quote"

    @property
    def denomination(self) -> Denomination:
        return Denomination(self.value)


class ParamMap(BaseModel):
    """
    param_map — нативные имена типов ордеров и параметров.

    Значения по умолчанию соответствуют ccxt-подобному адаптеру;
    реальная таблица поставляется адаптером биржи.
    """

    # Типы ордеров
    market: str = "market"
    limit: str = "limit"
    stoploss_market: str = "stop"
    stoploss_limit: str = "stop_limit"
    takeprofit_market: str = "take_profit"
    takeprofit_limit: str = "take_profit_limit"
    trailstop: str = "trailing_stop"

    # Параметры
    post: str = "postOnly"
    time_in_force: str = "timeInForce"
    tag: str = "clientOrderId"
    reduce: str = "reduceOnly"
    trigger: str = "stopPrice"
    stoploss_trigger: Optional[str] = None
    takeprofit_trigger: Optional[str] = None
    trailstop_trigger: Optional[str] = None
    trigger_type: Optional[str] = Field(None, description="Имя поля типа триггера, если биржа его поддерживает")

    model_config = {"frozen": True}

    def order_type(self, kind: OrderKind, has_price: bool) -> str:
        """
        Нативный тип ордера.

        Examples:
            (LIMIT, True) → "limit"; (STOP_LOSS, False) → "stop";
            (TAKE_PROFIT, True) → "take_profit_limit"
        """
        if kind in (OrderKind.MARKET, OrderKind.LIMIT):
            return self.limit if has_price else self.market
        if kind == OrderKind.TRAILING_STOP:
            return self.trailstop
        if kind == OrderKind.STOP_LOSS:
            return self.stoploss_limit if has_price else self.stoploss_market
        return self.takeprofit_limit if has_price else self.takeprofit_market

    def trigger_field(self, kind: OrderKind) -> str:
        """Поле триггера: специфичное для типа, если задано, иначе общее."""
        specific = {
            OrderKind.STOP_LOSS: self.stoploss_trigger,
            OrderKind.TAKE_PROFIT: self.takeprofit_trigger,
            OrderKind.TRAILING_STOP: self.trailstop_trigger,
        }.get(kind)
        return specific or self.trigger

    def is_standard_type(self, exchange_type: str) -> bool:
        return exchange_type in (self.market, self.limit)


class ExchangeProfile(BaseModel):
    """Профиль биржи для stub."""

    exchange: str = Field(..., min_length=1)
    order_sizing: OrderSizing = OrderSizing.BASE
    param_map: ParamMap = Field(default_factory=ParamMap)
    stablecoins: tuple[str, ...] = ("USDT",)
    hedge_mode_supported: bool = False

    model_config = {"frozen": True}
