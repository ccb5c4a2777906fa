"""
OrderBuilder — разрешённые размер/цена → OrderDescriptor

Три построителя:
- standard:    market / limit
- layered:     N standard ордеров по уровням PriceResolver, размер делится на N
- conditional: stop loss / take profit / trailing stop

Нативные имена типов ордеров и полей берутся из ParamMap профиля биржи,
окончательная доводка — через execute(stub, "custom_params", ...) адаптера.
Дескриптор создаётся только если amount прошёл квантование и лимиты.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from order_pipeline.adapters.base import AdapterAction, ExecutionAdapter
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.commands import OrderCommand, Verb
from order_pipeline.core.domain.exchange import ExchangeProfile
from order_pipeline.core.domain.expressions import Denomination
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.order import OrderDescriptor, OrderFlags, OrderKind, Side
from order_pipeline.core.domain.position import Position, PositionDirection
from order_pipeline.pricing.price_resolver import PriceResolver, PriceResult
from order_pipeline.sizing.amount import AmountConverter
from order_pipeline.sizing.size_resolver import SizeResult


# =============================================================================
# CONTEXT / RESULT
# =============================================================================


@dataclass(frozen=True)
class MarketContext:
    """Снапшоты, на которых строятся ордера одной команды."""

    stub: str
    market: Market
    profile: ExchangeProfile


@dataclass(frozen=True)
class BuildResult:
    """Результат построения: дескрипторы или отказ (без частичных результатов)."""

    ok: bool
    failure: Optional[Failure]
    descriptors: tuple[OrderDescriptor, ...] = field(default_factory=tuple)
    details: str = ""


# Сторона ордера при триггере выше / ниже рынка
_ABOVE_BELOW = {
    OrderKind.STOP_LOSS: (Side.BUY, Side.SELL),
    OrderKind.TRAILING_STOP: (Side.BUY, Side.SELL),
    OrderKind.TAKE_PROFIT: (Side.SELL, Side.BUY),
}

# Префикс полей размера/цены условного ордера
_PREFIX = {
    OrderKind.STOP_LOSS: "stop",
    OrderKind.TRAILING_STOP: "stop",
    OrderKind.TAKE_PROFIT: "profit",
}


def conditional_trigger_sign(kind: OrderKind, side: Side) -> int:
    """
    Направление триггера без знака.

    Stop loss: sell → ниже (-), buy → выше (+).
    Take profit: sell → выше (+), buy → ниже (-).
    """
    if kind == OrderKind.TAKE_PROFIT:
        return 1 if side == Side.SELL else -1
    return -1 if side == Side.SELL else 1


# =============================================================================
# ORDER BUILDER
# =============================================================================


class OrderBuilder:
    """Построение exchange-agnostic дескрипторов ордеров."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        diagnostics: Optional[Diagnostics] = None,
        price_resolver: Optional[PriceResolver] = None,
        amount_converter: Optional[AmountConverter] = None,
    ):
        self.adapter = adapter
        self.diagnostics = diagnostics or Diagnostics()
        self.price_resolver = price_resolver or PriceResolver(self.diagnostics)
        self.amount_converter = amount_converter or AmountConverter(self.diagnostics)

    # -------------------------------------------------------------------------
    # STANDARD
    # -------------------------------------------------------------------------

    async def build_standard(
        self,
        context: MarketContext,
        verb: Verb,
        command: OrderCommand,
        size: SizeResult,
        price: Optional[float] = None,
        layer: Optional[int] = None,
        order_size: Optional[float] = None,
        cap: Optional[float] = None,
    ) -> BuildResult:
        """
        Market / limit ордер.

        Args:
            context: Рынок и профиль биржи
            verb: Команда
            command: Параметры команды (флаги, tag)
            size: Результат SizeResolver (сторона, единица размера)
            price: Абсолютная цена (None — market ордер)
            layer: Номер уровня layered ордера
            order_size: Размер уровня (по умолчанию size.order_size)
            cap: Предел amount уровня (по умолчанию позиция для close)
        """
        market, param_map = context.market, context.profile.param_map
        requested = size.order_size if order_size is None else order_size
        if cap is None and verb == Verb.CLOSE:
            cap = size.position_size

        amount = self.amount_converter.convert(
            market, context.profile, size.sizing, requested, price, size.side, cap=cap
        )
        if not amount.ok:
            return self._propagate(amount.failure)
        if amount.amount < market.precision.amount:
            return self._failed(Failure.of(FailureCode.ORDER_TOO_SMALL, amount.amount, market.precision.amount))

        kind = OrderKind.LIMIT if price is not None else OrderKind.MARKET
        tag = command.tag
        if tag is not None and layer is not None:
            tag = f"{tag}-{layer}"
        reduce_only = verb == Verb.CLOSE and command.reduce

        payload: Dict[str, Any] = {
            "symbol": command.symbol,
            "type": param_map.order_type(kind, price is not None),
            "side": size.side.value,
            "amount": amount.amount,
            "price": price,
            "params": {
                param_map.post: True if command.post else None,
                param_map.time_in_force: command.time_in_force.value if command.time_in_force else None,
                param_map.tag: tag,
                param_map.reduce: True if reduce_only else None,
            },
        }
        finished = await self._finish(context, verb, payload, {"tag": tag}, command)
        if finished is None:
            return self._failed(Failure.of(FailureCode.ADAPTER_ERROR, AdapterAction.CUSTOM_PARAMS.value))

        descriptor = OrderDescriptor(
            symbol=command.symbol,
            side=size.side,
            kind=kind,
            amount=amount.amount,
            price=finished.get("price", price),
            flags=OrderFlags(
                reduce_only=reduce_only,
                post_only=command.post,
                time_in_force=command.time_in_force,
                client_tag=tag,
            ),
            exchange_type=finished.get("type", payload["type"]),
            exchange_params=self._clean(finished.get("params", {})),
            layer=layer,
        )
        return BuildResult(ok=True, failure=None, descriptors=(descriptor,))

    # -------------------------------------------------------------------------
    # LAYERED
    # -------------------------------------------------------------------------

    async def build_layered(
        self,
        context: MarketContext,
        verb: Verb,
        command: OrderCommand,
        size: SizeResult,
        prices: PriceResult,
    ) -> BuildResult:
        """N standard ордеров: размер уровня = общий размер / N, tag с суффиксом -i."""
        levels = len(prices.prices)
        level_size = size.order_size / levels
        level_cap = None
        if verb == Verb.CLOSE and size.position_size is not None:
            level_cap = size.position_size / levels

        descriptors = []
        for index, price in enumerate(prices.prices, start=1):
            result = await self.build_standard(
                context,
                verb,
                command,
                size,
                price=price,
                layer=index,
                order_size=level_size,
                cap=level_cap,
            )
            if not result.ok:
                return result
            descriptors.extend(result.descriptors)

        self.diagnostics.debug("layered_orders", levels=levels, size=level_size)
        return BuildResult(ok=True, failure=None, descriptors=tuple(descriptors))

    # -------------------------------------------------------------------------
    # CONDITIONAL
    # -------------------------------------------------------------------------

    async def build_conditional(
        self,
        context: MarketContext,
        kind: OrderKind,
        command: OrderCommand,
        position: Position,
    ) -> BuildResult:
        """
        Stop loss / take profit / trailing stop.

        Args:
            context: Рынок и профиль биржи
            kind: Тип условного ордера
            command: Параметры (триггер, цена, размер, side, reduce)
            position: Текущая позиция (сторона trailing stop, размер по умолчанию)
        """
        market, param_map = context.market, context.profile.param_map
        prefix = _PREFIX[kind]
        above, below = _ABOVE_BELOW[kind]
        side = command.side

        if kind == OrderKind.TRAILING_STOP:
            trigger_expr = command.trailstop
            price_expr = None
        elif kind == OrderKind.STOP_LOSS:
            trigger_expr, price_expr = command.stoptrigger, command.stopprice
        else:
            trigger_expr, price_expr = command.profittrigger, command.profitprice

        if trigger_expr is None:
            return self._failed(Failure.of(FailureCode.INVALID_PARAMS, kind.value, details="trigger required"))

        # Лимитная цена
        price: Optional[float] = None
        if price_expr is not None:
            price = self.price_resolver.relative_price(price_expr, market)
            if price is None:
                return self._failed(Failure.of(FailureCode.INVALID_PARAMS, prefix + "price"))

        # Триггер
        if kind == OrderKind.TRAILING_STOP:
            if position.is_open:
                side = Side.SELL if position.direction == PositionDirection.LONG else Side.BUY
            if side is None:
                return self._failed(Failure.of(FailureCode.ORDER_SIDE_UNKNOWN, kind.value))
            trigger = self.price_resolver.offset(
                trigger_expr, market, market.mark, default_sign=-1 if side == Side.SELL else 1
            )
        else:
            if trigger_expr.is_relative and trigger_expr.sign is None:
                if side is None:
                    return self._failed(Failure.of(FailureCode.ORDER_SIDE_UNKNOWN, kind.value))
                trigger_expr = trigger_expr.with_sign(conditional_trigger_sign(kind, side))
            trigger = self.price_resolver.relative_price(trigger_expr, market)
            if trigger is None:
                return self._failed(Failure.of(FailureCode.INVALID_PARAMS, "trigger"))

            if side is None:
                reference = market.mark
                if trigger > reference:
                    side = above
                elif trigger < reference:
                    side = below
                else:
                    return self._failed(Failure.of(FailureCode.ORDER_SIDE_UNKNOWN, kind.value, trigger))
                self.diagnostics.debug("order_side_assumed", side=side.value, trigger=trigger)

        # Размер
        sizing = self._conditional_size(kind, command, position, context.profile)
        if isinstance(sizing, Failure):
            return self._failed(sizing)
        denomination, requested = sizing

        conversion_price = price if price is not None else (None if kind == OrderKind.TRAILING_STOP else trigger)
        amount = self.amount_converter.convert(
            market, context.profile, denomination, requested, conversion_price, side
        )
        if not amount.ok:
            return self._propagate(amount.failure)
        if amount.amount < market.precision.amount:
            return self._failed(Failure.of(FailureCode.ORDER_TOO_SMALL, amount.amount, market.precision.amount))

        trigger_type = None
        if param_map.trigger_type is not None:
            trigger_type = command.triggertype or "mark_price"

        params: Dict[str, Any] = {
            param_map.reduce: command.reduce,
            param_map.trigger_field(kind): trigger,
        }
        if trigger_type is not None:
            params[param_map.trigger_type] = trigger_type

        payload: Dict[str, Any] = {
            "symbol": command.symbol,
            "type": param_map.order_type(kind, price is not None),
            "side": side.value,
            "amount": amount.amount,
            "price": price,
            "params": params,
        }
        custom = {
            "tag": command.tag,
            "trigger": trigger,
            "price": price,
            "triggertype": command.triggertype or "mark",
            "reduce": command.reduce,
        }
        verb = Verb.TRAILSTOP if kind == OrderKind.TRAILING_STOP else (
            Verb.STOPLOSS if kind == OrderKind.STOP_LOSS else Verb.TAKEPROFIT
        )
        finished = await self._finish(context, verb, payload, custom, command)
        if finished is None:
            return self._failed(Failure.of(FailureCode.ADAPTER_ERROR, AdapterAction.CUSTOM_PARAMS.value))

        descriptor = OrderDescriptor(
            symbol=command.symbol,
            side=side,
            kind=kind,
            amount=amount.amount,
            price=finished.get("price", price),
            flags=OrderFlags(
                reduce_only=command.reduce,
                trigger_price=trigger,
                trigger_type=trigger_type,
                client_tag=command.tag,
            ),
            exchange_type=finished.get("type", payload["type"]),
            exchange_params=self._clean(finished.get("params", {})),
        )
        return BuildResult(ok=True, failure=None, descriptors=(descriptor,))

    # -------------------------------------------------------------------------

    def _conditional_size(
        self,
        kind: OrderKind,
        command: OrderCommand,
        position: Position,
        profile: ExchangeProfile,
    ) -> tuple[Denomination, float] | Failure:
        """
        Размер условного ордера.

        - {prefix}base/quote/usd/size — явный размер
        - процент (profitsize=50%) — доля base размера позиции
        - trailing stop — основной размер команды, если задан
        - иначе — размер позиции в единицах биржи
        """
        sizing = command.conditional_sizing(_PREFIX[kind])
        if sizing is None and kind == OrderKind.TRAILING_STOP:
            candidate = command.sizing
            if candidate is not None and not (candidate.is_factor or candidate.is_scale):
                sizing = candidate

        if sizing is not None and sizing.is_factor:
            if not position.is_open:
                return Failure.of(FailureCode.NO_POSITION, command.symbol)
            size = position.base_size * sizing.multiplier
            self.diagnostics.debug("conditional_size_percent", factor=sizing.multiplier, base=size)
            return Denomination.BASE, size

        if sizing is not None:
            return sizing.denomination, sizing.magnitude

        if not position.is_open:
            return Failure.of(FailureCode.NO_POSITION, command.symbol)
        denomination = profile.order_sizing.denomination
        return denomination, position.size(denomination)

    async def _finish(
        self,
        context: MarketContext,
        verb: Verb,
        payload: Dict[str, Any],
        custom: Dict[str, Any],
        command: OrderCommand,
    ) -> Optional[Dict[str, Any]]:
        """Доводка payload адаптером (custom_params); None — адаптер отказал."""
        result = await self.adapter.execute(
            context.stub,
            AdapterAction.CUSTOM_PARAMS,
            {
                "verb": verb.value,
                "order": payload,
                "custom": custom,
                "command": command.model_dump(mode="json", exclude_none=True),
            },
        )
        if not result.ok:
            return None
        if isinstance(result.data, dict):
            return result.data
        return payload

    @staticmethod
    def _clean(params: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in params.items() if value is not None}

    def _failed(self, failure: Failure) -> BuildResult:
        self.diagnostics.failure(failure)
        return self._propagate(failure)

    @staticmethod
    def _propagate(failure: Failure) -> BuildResult:
        """Отказ, уже отправленный в diagnostics нижележащим компонентом."""
        return BuildResult(ok=False, failure=failure, details=str(failure))
