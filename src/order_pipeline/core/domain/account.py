"""
Account — балансы и режим позиций аккаунта
"""

from typing import Iterable

from pydantic import BaseModel, Field


class Balance(BaseModel):
    """Баланс по одной валюте."""

    currency: str = Field(..., min_length=1)
    free: float = 0.0
    used: float = 0.0
    total: float = 0.0
    usd_free: float = Field(0.0, description="Свободный баланс в USD")

    model_config = {"frozen": True}


class HedgeModeState(BaseModel):
    """
    Режим позиций аккаунта.

    enabled    — hedge mode (одновременные long и short по символу)
    can_change — режим можно переключить (нет открытых позиций)
    """

    enabled: bool
    can_change: bool

    model_config = {"frozen": True}


def available_equity_usd(balances: Iterable[Balance]) -> float:
    """Доступная equity: сумма свободных балансов в USD."""
    return sum(balance.usd_free for balance in balances)
