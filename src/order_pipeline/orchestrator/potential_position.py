"""
Potential position — позиция с учётом ожидающих ордеров

potential = текущая позиция
          + открытые market/limit ордера на бирже (неисполненный остаток)
на одной стороне. Используется для размера и референсной цены
stop loss / take profit по умолчанию.

Очередь ключа в расчёт не входит: сессия очищает её на входе, а
protective ордера строятся после отправки входного batch, когда его
limit ордера уже видны среди открытых ордеров биржи.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from order_pipeline.core.domain.exchange import ExchangeProfile, OrderSizing
from order_pipeline.core.domain.expressions import Denomination
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.order import OpenOrder, Side
from order_pipeline.core.domain.position import Position, PositionDirection
from order_pipeline.core.math import is_valid_float


@dataclass(frozen=True)
class PotentialPosition:
    """Потенциальная позиция."""

    side: Side  # buy = long, sell = short
    base: float
    quote: float
    denomination: Denomination  # Единица amount (order_sizing биржи)
    amount: float
    price: Optional[float]  # VWAP; None, если цена входа неизвестна

    position_amount: float
    orders_amount: float


@dataclass(frozen=True)
class _Level:
    price: float
    base: float
    quote: float
    amount: float
    source: str


def _order_level(
    amount: float, price: Optional[float], market: Market, order_sizing: OrderSizing, source: str
) -> _Level:
    """Уровень ордера: amount в единицах биржи → base/quote."""
    price = price if price is not None else market.mark
    if order_sizing == OrderSizing.BASE:
        base, quote = amount, amount * price
    else:
        quote = amount * market.contract_size
        base = quote / price
    return _Level(price=price, base=base, quote=quote, amount=amount, source=source)


def potential_position(
    position: Position,
    market: Market,
    profile: ExchangeProfile,
    open_orders: Sequence[OpenOrder] = (),
    side: Optional[Side] = None,
) -> Optional[PotentialPosition]:
    """
    Args:
        position: текущая позиция
        market: снапшот рынка
        profile: профиль биржи (order_sizing, param_map)
        open_orders: ордера биржи по символу
        side: сторона позиции (buy — long); по умолчанию из позиции,
            затем из первого ордера

    Returns:
        PotentialPosition или None, если объём нулевой
    """
    order_sizing = profile.order_sizing
    levels: list[_Level] = []

    if position.is_open:
        if side is None:
            side = Side.BUY if position.direction == PositionDirection.LONG else Side.SELL
        levels.append(
            _Level(
                price=position.entry_price if position.entry_price is not None else math.nan,
                base=position.base_size,
                quote=position.quote_size,
                amount=position.size(order_sizing.denomination),
                source="position",
            )
        )

    for order in open_orders:
        if not order.is_open or not profile.param_map.is_standard_type(order.type):
            continue
        if side is None:
            side = order.side
        if order.side == side:
            remaining = max(order.amount - order.filled, 0.0)
            levels.append(_order_level(remaining, order.price, market, order_sizing, "orders"))

    base = sum(level.base for level in levels)
    quote = sum(level.quote for level in levels)
    amount = sum(level.amount for level in levels)
    if side is None or amount <= 0:
        return None

    value = sum(level.base * level.price for level in levels)
    price = value / base if base > 0 else math.nan

    totals = {source: 0.0 for source in ("position", "orders")}
    for level in levels:
        totals[level.source] += level.amount

    return PotentialPosition(
        side=side,
        base=base,
        quote=quote,
        denomination=order_sizing.denomination,
        amount=amount,
        price=price if is_valid_float(price) else None,
        position_amount=totals["position"],
        orders_amount=totals["orders"],
    )
