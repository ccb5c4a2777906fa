"""
Market — Снапшот рынка

Immutable Pydantic модель рынка: точность, лимиты объёма, референсные цены,
пары для конверсии в USD. Запрашивается для каждой команды, не кэшируется.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .order import Side


# =============================================================================
# ENUMS
# =============================================================================


class MarketType(str, Enum):
    """Тип рынка"""

    SPOT = "spot"
    DERIVATIVE = "derivative"


# =============================================================================
# NESTED MODELS
# =============================================================================


class Precision(BaseModel):
    """Шаги цены и объёма."""

    price: float = Field(..., gt=0, description="Минимальный шаг цены")
    amount: float = Field(..., gt=0, description="Минимальный шаг объёма")

    model_config = {"frozen": True}


class AmountLimits(BaseModel):
    """Лимиты объёма ордера."""

    min: float = Field(0.0, ge=0, description="Минимальный объём")
    max: Optional[float] = Field(None, gt=0, description="Максимальный объём (nullable)")

    model_config = {"frozen": True}


class UsdConversion(BaseModel):
    """
    Референсные цены для конверсии USD размеров.

    base  — цена base валюты в USD (usd / base → base размер)
    quote — цена quote валюты в USD (usd / quote → quote размер)
    """

    base: float = Field(..., gt=0)
    quote: float = Field(..., gt=0)
    pairs: dict[str, Optional[str]] = Field(
        default_factory=dict, description="Пары, использованные для конверсии"
    )

    model_config = {"frozen": True}


# =============================================================================
# MARKET MODEL
# =============================================================================


class Market(BaseModel):
    """Снапшот рынка."""

    id: str = Field(..., min_length=1, description="Идентификатор рынка на бирже")
    base: str = Field(..., min_length=1)
    quote: str = Field(..., min_length=1)
    type: MarketType = MarketType.SPOT

    precision: Precision
    limits: AmountLimits = Field(default_factory=AmountLimits)
    contract_size: float = Field(1.0, gt=0)

    bid: float = Field(..., gt=0, description="Лучшая цена покупки")
    ask: float = Field(..., gt=0, description="Лучшая цена продажи")
    avg: Optional[float] = Field(None, gt=0, description="Mark/средняя цена")

    usd: Optional[UsdConversion] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_book(self) -> "Market":
        if self.bid > self.ask:
            raise ValueError(f"crossed book: bid {self.bid} > ask {self.ask}")
        return self

    @property
    def mark(self) -> float:
        """Mark цена: avg, если известна, иначе середина спреда."""
        if self.avg is not None:
            return self.avg
        return (self.bid + self.ask) / 2.0

    @property
    def is_derivative(self) -> bool:
        return self.type == MarketType.DERIVATIVE

    def price_for_side(self, side: Optional[Side] = None) -> float:
        """Индикативная цена исполнения: ask для buy, bid для sell, иначе mark."""
        if side == Side.BUY:
            return self.ask
        if side == Side.SELL:
            return self.bid
        return self.mark
