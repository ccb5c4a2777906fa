"""
Position — Модель позиции по символу

Immutable Pydantic модель, представляющая снапшот позиции, полученный от
Execution Adapter. Читается заново для каждой команды, ядро её не мутирует.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .expressions import Denomination


# =============================================================================
# ENUMS
# =============================================================================


class PositionDirection(str, Enum):
    """Направление позиции"""

    LONG = "long"
    SHORT = "short"
    FLAT = "flat"


# =============================================================================
# POSITION MODEL
# =============================================================================


class Position(BaseModel):
    """
    Модель позиции.

    Размеры всегда неотрицательные, знак задаётся direction.
    Инвариант: direction == FLAT ⇔ base_size == quote_size == 0.
    """

    symbol: str = Field(..., min_length=1, description="Символ рынка (например, 'BTC/USDT')")
    direction: PositionDirection = Field(..., description="Направление позиции")

    base_size: float = Field(0.0, ge=0, description="Размер в base валюте")
    quote_size: float = Field(0.0, ge=0, description="Размер в quote валюте")
    usd_size: float = Field(0.0, ge=0, description="Размер в USD")

    entry_price: Optional[float] = Field(None, gt=0, description="Средняя цена входа")
    unrealized_pnl: float = Field(0.0, description="Нереализованный PnL")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_flat_invariant(self) -> "Position":
        """flat ⇔ base_size = quote_size = 0"""
        is_empty = self.base_size == 0 and self.quote_size == 0
        if (self.direction == PositionDirection.FLAT) != is_empty:
            raise ValueError(
                f"direction {self.direction.value} inconsistent with "
                f"base_size={self.base_size}, quote_size={self.quote_size}"
            )
        return self

    @property
    def is_open(self) -> bool:
        return self.direction != PositionDirection.FLAT

    @property
    def sign(self) -> int:
        """+1 для long, -1 для short, 0 для flat."""
        if self.direction == PositionDirection.LONG:
            return 1
        if self.direction == PositionDirection.SHORT:
            return -1
        return 0

    def size(self, denomination: Denomination) -> float:
        """Беззнаковый размер в заданной валюте."""
        if denomination == Denomination.BASE:
            return self.base_size
        if denomination == Denomination.QUOTE:
            return self.quote_size
        return self.usd_size

    def signed_size(self, denomination: Denomination) -> float:
        """
        Знаковый размер: положительный для long, отрицательный для short.

        Examples:
            short с usd_size=1000 → signed_size(USD) = -1000.0
        """
        return self.sign * self.size(denomination)

    @classmethod
    def flat(cls, symbol: str) -> "Position":
        return cls(symbol=symbol, direction=PositionDirection.FLAT)
