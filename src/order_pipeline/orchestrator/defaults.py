"""
Order defaults — размер по умолчанию для открывающих команд без размера

Порядок (ключи ищутся сначала в "<stub>:<symbol>", затем в "<stub>"):
1. dcascale при открытой позиции: размер = начальный DCA ордер × dcascale
   (quote). Начальный ордер ищется по исполненным ордерам за
   dca_lookback_days; если восстановить серию не удалось — dca_fallback.
   Некорректный dcascale — отказ InvalidConfig.
2. defsize: size = defsize.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from order_pipeline.adapters.base import ExecutionAdapter
from order_pipeline.core.config import (
    KEY_DCASCALE,
    KEY_DEFSIZE,
    ConfigProvider,
    ConfigValueError,
    lookup_symbol_then_stub,
)
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.order import OpenOrder, Side
from order_pipeline.core.domain.position import Position, PositionDirection
from order_pipeline.core.math import is_zero

SIZING_KEYS = ("size", "base", "quote", "usd", "scale")

_DAY_MS = 24 * 60 * 60 * 1000

# Остаток баланса, считающийся нулевым при откате серии
_BALANCE_TOL = 1e-9


@dataclass(frozen=True)
class DcaInitial:
    """Начальный ордер серии DCA."""

    count: int  # Число ордеров в серии
    initial_quote: float  # Quote размер первого ордера


@dataclass(frozen=True)
class DefaultsResult:
    """Параметры команды после подстановки значений по умолчанию."""

    params: Dict[str, Any]
    is_dca: bool
    source: Optional[str]
    failure: Optional[Failure] = None


def parse_scale(scope: str, value: Any) -> float:
    """Множитель dcascale ("2", "1.5x"); положительное число.

    Raises:
        ConfigValueError: значение не разбирается
    """
    try:
        scale = float(str(value).strip().lower().removesuffix("x"))
    except ValueError:
        raise ConfigValueError(scope, KEY_DCASCALE, value) from None
    if not scale > 0:
        raise ConfigValueError(scope, KEY_DCASCALE, value)
    return scale


def find_dca_initial(position: Position, orders: Sequence[OpenOrder]) -> Optional[DcaInitial]:
    """
    Восстановление серии DCA по истории ордеров.

    Идём от последнего ордера к первому, откатывая исполненный объём,
    пока баланс не станет нулевым. Первый ордер серии на стороне позиции
    даёт начальный размер.

    Returns:
        DcaInitial или None, если серия не восстанавливается
    """
    balance = position.sign * position.base_size
    buys: list[OpenOrder] = []
    sells: list[OpenOrder] = []

    for order in sorted(orders, key=lambda o: o.timestamp, reverse=True):
        balance = balance + order.filled if order.side == Side.SELL else balance - order.filled
        (buys if order.side == Side.BUY else sells).append(order)
        if is_zero(balance, _BALANCE_TOL):
            break

    if not is_zero(balance, _BALANCE_TOL):
        return None

    series = buys if position.direction == PositionDirection.LONG else sells
    if not series:
        return None
    first = series[-1]
    if first.price is None:
        return None
    return DcaInitial(count=len(series), initial_quote=first.filled * first.price)


class OrderDefaults:
    """Подстановка defsize / dcascale."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        config_provider: ConfigProvider,
        diagnostics: Optional[Diagnostics] = None,
        lookback_days: int = 7,
    ):
        self.adapter = adapter
        self.config_provider = config_provider
        self.diagnostics = diagnostics or Diagnostics()
        self.lookback_days = lookback_days

    async def apply(
        self, stub: str, symbol: str, params: Dict[str, Any], position: Position
    ) -> DefaultsResult:
        """
        Args:
            stub: аккаунт
            symbol: id рынка (scope настроек)
            params: нормализованные параметры команды
            position: текущая позиция

        Returns:
            DefaultsResult; params не изменяются, если размер уже задан
        """
        if any(params.get(key) is not None for key in SIZING_KEYS):
            return DefaultsResult(params=params, is_dca=False, source=None)

        params = dict(params)
        config = self.config_provider

        dcascale = lookup_symbol_then_stub(config, stub, symbol, KEY_DCASCALE)
        if position.is_open and dcascale is not None:
            try:
                scale = parse_scale(stub, dcascale)
            except ConfigValueError as e:
                failure = Failure.of(FailureCode.INVALID_CONFIG, e.scope, e.key, e.value, details=str(e))
                self.diagnostics.failure(failure)
                return DefaultsResult(params=params, is_dca=False, source=KEY_DCASCALE, failure=failure)
            self.diagnostics.debug("order_dca_default", scale=scale)
            initial = await self.dca_initial(stub, symbol, position, params.get("direction"))
            if initial is not None and initial.count > 0:
                params["quote"] = initial.initial_quote * scale
                self.diagnostics.notice(
                    "order_sizing_dca",
                    scale=scale,
                    count=initial.count,
                    initial=initial.initial_quote,
                    size=params["quote"],
                )
                return DefaultsResult(params=params, is_dca=True, source=KEY_DCASCALE)
            self.diagnostics.warning("dca_fallback")

        defsize = lookup_symbol_then_stub(config, stub, symbol, KEY_DEFSIZE)
        if defsize is not None:
            self.diagnostics.debug("order_size_default", size=defsize)
            params["size"] = defsize
            return DefaultsResult(params=params, is_dca=False, source=KEY_DEFSIZE)

        return DefaultsResult(params=params, is_dca=False, source=None)

    async def dca_initial(
        self, stub: str, symbol: str, position: Position, direction: Optional[str] = None
    ) -> Optional[DcaInitial]:
        """Начальный DCA ордер за последние lookback_days."""
        since = int(time.time() * 1000) - self.lookback_days * _DAY_MS
        orders = await self.adapter.all_orders(stub, symbol, since)
        if direction is not None:
            orders = [order for order in orders if order.direction == str(direction).lower()]
        return find_dca_initial(position, orders)
