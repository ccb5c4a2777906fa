"""
Commands — типизированные параметры команд

Каждая команда приходит плоским case-insensitive набором key/value.
Ключи нормализуются (lowercase), набор проходит JSON Schema контракт
команды (core.contracts), затем валидируется в одну из моделей ниже.
Выражения размера и цены разбираются здесь и дальше не перепарсиваются.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator

from .expressions import (
    DEFAULT_LAYER_COUNT,
    PriceExpression,
    SizingExpression,
    parse_price,
    parse_sizing,
    parse_trigger,
)
from .order import OrderKind, Side, TimeInForce
from .position import PositionDirection


# =============================================================================
# VERBS
# =============================================================================


class Verb(str, Enum):
    """Команды, принимаемые TradeOrchestrator."""

    LONG = "long"
    SHORT = "short"
    BUY = "buy"
    SELL = "sell"
    CLOSE = "close"
    CLOSEALL = "closeall"
    STOPLOSS = "stoploss"
    TAKEPROFIT = "takeprofit"
    TRAILSTOP = "trailstop"
    TPSL = "tpsl"
    LEVERAGE = "leverage"
    GLOBALLEVERAGE = "globalleverage"
    CANCEL = "cancel"
    CANCELALL = "cancelall"
    POSITION = "position"
    POSITIONS = "positions"
    BALANCES = "balances"
    MARKET = "market"
    MARKETS = "markets"
    ORDERS = "orders"

    @property
    def is_open(self) -> bool:
        """Команды, открывающие/наращивающие позицию."""
        return self in (Verb.LONG, Verb.SHORT, Verb.BUY, Verb.SELL)

    @property
    def is_standard(self) -> bool:
        """Market/limit команды (включая close)."""
        return self.is_open or self == Verb.CLOSE

    @property
    def is_conditional(self) -> bool:
        return self in (Verb.STOPLOSS, Verb.TAKEPROFIT, Verb.TRAILSTOP)

    @property
    def order_kind(self) -> Optional[OrderKind]:
        """Тип условного ордера для stoploss/takeprofit/trailstop."""
        return {
            Verb.STOPLOSS: OrderKind.STOP_LOSS,
            Verb.TAKEPROFIT: OrderKind.TAKE_PROFIT,
            Verb.TRAILSTOP: OrderKind.TRAILING_STOP,
        }.get(self)


class MarginType(str, Enum):
    """Тип маржи для leverage."""

    CROSS = "cross"
    ISOLATED = "isolated"


# =============================================================================
# BASE PARAMS
# =============================================================================


class CommandParams(BaseModel):
    """Общие параметры: stub (идентификатор аккаунта)."""

    stub: str = Field(..., min_length=1)

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("stub", mode="before")
    @classmethod
    def normalize_stub(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    def with_updates(self, **updates: Any):
        """Копия с изменёнными полями (значения должны быть уже типизированы)."""
        return self.model_copy(update=updates)


class SymbolCommand(CommandParams):
    """Параметры команд над символом."""

    symbol: str = Field(..., min_length=1)
    direction: Optional[PositionDirection] = Field(
        None, description="long/short — сторона позиции в hedge mode"
    )

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v == PositionDirection.FLAT.value:
                raise ValueError("direction must be long or short")
        return v


# =============================================================================
# ORDER COMMAND
# =============================================================================


_SIZING_FIELDS = ("base", "quote", "usd", "size")


class OrderCommand(SymbolCommand):
    """
    Параметры торговых команд: long, short, buy, sell, close,
    stoploss, takeprofit, trailstop, tpsl.

    Ровно одно из size/base/quote/usd/scale для открывающих команд
    (гарантируется JSON Schema контрактом).
    """

    # Размер
    size: Optional[SizingExpression] = None
    base: Optional[SizingExpression] = None
    quote: Optional[SizingExpression] = None
    usd: Optional[SizingExpression] = None
    scale: Optional[SizingExpression] = None
    maxsize: Optional[float] = Field(None, gt=0, description="Максимальный размер позиции")
    signalsize: Optional[float] = Field(None, ge=0, description="Сила сигнала провайдера (%)")

    # Цена и флаги
    price: Optional[PriceExpression] = None
    side: Optional[Side] = None
    tag: Optional[str] = None
    reduce: bool = False
    post: bool = False
    time_in_force: Optional[TimeInForce] = Field(
        None, validation_alias=AliasChoices("timeinforce", "time_in_force")
    )
    cancelall: bool = False
    force: bool = False

    # Stop loss
    stopsize: Optional[SizingExpression] = None
    stopbase: Optional[SizingExpression] = None
    stopquote: Optional[SizingExpression] = None
    stopusd: Optional[SizingExpression] = None
    stoptrigger: Optional[PriceExpression] = None
    stopprice: Optional[PriceExpression] = None

    # Take profit
    profitsize: Optional[SizingExpression] = None
    profitbase: Optional[SizingExpression] = None
    profitquote: Optional[SizingExpression] = None
    profitusd: Optional[SizingExpression] = None
    profittrigger: Optional[PriceExpression] = None
    profitprice: Optional[PriceExpression] = None

    # Trailing stop
    trailstop: Optional[PriceExpression] = None
    triggertype: Optional[str] = None

    @field_validator("size", "base", "quote", "usd", "scale", mode="before")
    @classmethod
    def parse_sizing_field(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or isinstance(v, SizingExpression):
            return v
        return parse_sizing(v, info.field_name)

    @field_validator(
        "stopsize", "stopbase", "stopquote", "stopusd",
        "profitsize", "profitbase", "profitquote", "profitusd",
        mode="before",
    )
    @classmethod
    def parse_conditional_sizing(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or isinstance(v, SizingExpression):
            return v
        field = info.field_name.removeprefix("stop").removeprefix("profit")
        return parse_sizing(v, field)

    @field_validator("price", mode="before")
    @classmethod
    def parse_price_field(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or isinstance(v, PriceExpression):
            return v
        # Число уровней layered цены по умолчанию передаётся через context валидации
        levels = (info.context or {}).get("default_layer_count", DEFAULT_LAYER_COUNT)
        return parse_price(v, "price", levels)

    @field_validator("stopprice", "profitprice", mode="before")
    @classmethod
    def parse_conditional_price(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or isinstance(v, PriceExpression):
            return v
        expression = parse_price(v, info.field_name)
        if expression.is_layered:
            raise ValueError(f"{info.field_name}: layered prices are not supported")
        return expression

    @field_validator("stoptrigger", "profittrigger", "trailstop", mode="before")
    @classmethod
    def parse_trigger_field(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or isinstance(v, PriceExpression):
            return v
        return parse_trigger(v, info.field_name)

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("time_in_force", mode="before")
    @classmethod
    def normalize_time_in_force(cls, v: Any) -> Any:
        # Неподдерживаемые значения игнорируются
        if isinstance(v, str):
            v = v.strip().upper()
            return v if v in TimeInForce.__members__ else None
        return v

    @field_validator("tag", "triggertype", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    # -------------------------------------------------------------------------

    @property
    def sizing(self) -> Optional[SizingExpression]:
        """Заданное выражение размера (base, quote, usd, size, scale)."""
        for candidate in (self.base, self.quote, self.usd, self.size, self.scale):
            if candidate is not None:
                return candidate
        return None

    @property
    def has_size(self) -> bool:
        return self.sizing is not None

    def conditional_sizing(self, prefix: str) -> Optional[SizingExpression]:
        """Размер stop/profit ордера: {prefix}base, quote, usd, size."""
        for name in _SIZING_FIELDS:
            candidate = getattr(self, prefix + name)
            if candidate is not None:
                return candidate
        return None


# =============================================================================
# OTHER COMMANDS
# =============================================================================


class CloseAllCommand(CommandParams):
    """closeall: закрыть все позиции stub."""


class LeverageCommand(CommandParams):
    """leverage / globalleverage."""

    symbol: Optional[str] = None
    type: MarginType
    leverage: float = Field(..., gt=0)

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("leverage", mode="before")
    @classmethod
    def strip_multiplier(cls, v: Any) -> Any:
        # "20x" → 20
        if isinstance(v, str):
            return v.strip().lower().removesuffix("x")
        return v


class QueryCommand(CommandParams):
    """Read-only и maintenance команды: position(s), balances, market(s), orders, cancel(all)."""

    symbol: Optional[str] = None
    direction: Optional[PositionDirection] = None
    id: Optional[str] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    since: Optional[int] = Field(None, ge=0)
    type: Optional[str] = None

    @field_validator("symbol", "currency", mode="before")
    @classmethod
    def upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("direction", "status", "type", mode="before")
    @classmethod
    def lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else None
