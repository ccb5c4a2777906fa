"""
TradeOrchestrator — исполнение команд

Последовательность для ордерных команд:

    контракт (JSON Schema) → модель команды → read-only снапшоты
    → RiskGate → SizeResolver / PriceResolver → OrderBuilder
    → OrderQueue.session (clear, cancel existing, add*, process)

После успешного открытия (long, short, buy, sell) оркестратор повторно
входит в пайплайн для stop loss / take profit по умолчанию; каждый из них
пропускается без ошибок, если триггер не задан ни в команде, ни в конфиге.

Исключения наружу не выходят: каждая команда возвращает CommandOutcome,
истинный только при успехе. AdapterError перехватывается здесь, на границе.
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

from jsonschema import ValidationError as ContractError

from order_pipeline.adapters.base import AdapterAction, AdapterError, ExecutionAdapter
from order_pipeline.core.config import (
    ConfigProvider,
    ConfigValueError,
    InMemoryConfigProvider,
    PipelineSettings,
    lookup_symbol_then_stub,
)
from order_pipeline.core.contracts import normalize_keys, validate_command
from order_pipeline.core.diagnostics import (
    CollectingSink,
    DiagnosticEvent,
    Diagnostics,
    DiagnosticsSink,
    StructlogSink,
)
from order_pipeline.core.domain.account import Balance, available_equity_usd
from order_pipeline.core.domain.commands import (
    CloseAllCommand,
    CommandParams,
    LeverageCommand,
    OrderCommand,
    QueryCommand,
    SymbolCommand,
    Verb,
)
from order_pipeline.core.domain.expressions import (
    FactorKind,
    PriceExpression,
    SizingExpression,
    parse_trigger,
)
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.order import OrderDescriptor, OrderKind, Side
from order_pipeline.core.domain.position import Position, PositionDirection
from order_pipeline.core.logging import configure_logging
from order_pipeline.core.math import round_to_step
from order_pipeline.gatekeeper.risk_gate import RiskContext, RiskGate
from order_pipeline.orders.builder import MarketContext, OrderBuilder, conditional_trigger_sign
from order_pipeline.orders.queue import OrderQueue, QueueSession
from order_pipeline.pricing.price_resolver import PriceResolver
from order_pipeline.sizing.amount import AmountConverter
from order_pipeline.sizing.size_resolver import SizeResolver, SizeResolverConfig

from .defaults import OrderDefaults
from .potential_position import potential_position
from .state_machine import PipelineState, PipelineStateMachine


# =============================================================================
# OUTCOME
# =============================================================================


@dataclass(frozen=True)
class CommandOutcome:
    """
    Результат команды.

    Истинен только при успехе (state == DONE и нет отказа).
    data — результат read-only команд; follow_ups — результаты вложенных
    команд (stop loss / take profit после открытия, close для closeall).
    """

    verb: Optional[Verb]  # None для неизвестной команды
    state: PipelineState
    failure: Optional[Failure] = None
    descriptors: tuple[OrderDescriptor, ...] = field(default_factory=tuple)
    data: Any = None
    follow_ups: tuple["CommandOutcome", ...] = field(default_factory=tuple)
    events: tuple[DiagnosticEvent, ...] = field(default_factory=tuple)
    duration: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.DONE and self.failure is None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class _Run:
    """Компоненты одной команды, связанные с её diagnostics."""

    sink: CollectingSink
    diagnostics: Diagnostics
    risk_gate: RiskGate
    size_resolver: SizeResolver
    price_resolver: PriceResolver
    builder: OrderBuilder
    defaults: OrderDefaults


_PREFIX = {OrderKind.STOP_LOSS: "stop", OrderKind.TAKE_PROFIT: "profit"}
_CANCEL = {OrderKind.STOP_LOSS: AdapterAction.CANCEL_SL, OrderKind.TAKE_PROFIT: AdapterAction.CANCEL_TP}
_VERB = {OrderKind.STOP_LOSS: Verb.STOPLOSS, OrderKind.TAKE_PROFIT: Verb.TAKEPROFIT}

# Команды, для которых эмитится order_completed
_ORDER_VERBS = frozenset(
    {
        Verb.LONG, Verb.SHORT, Verb.BUY, Verb.SELL, Verb.CLOSE, Verb.CLOSEALL,
        Verb.STOPLOSS, Verb.TAKEPROFIT, Verb.TRAILSTOP, Verb.TPSL,
    }
)


def _is_full_close(sizing: Optional[SizingExpression]) -> bool:
    """close без размера или size=100%."""
    if sizing is None:
        return True
    return (
        sizing.is_factor
        and sizing.factor_kind == FactorKind.PERCENT
        and sizing.sign is None
        and sizing.magnitude == 100
    )


# =============================================================================
# TRADE ORCHESTRATOR
# =============================================================================


class TradeOrchestrator:
    """Точка входа команд."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        config_provider: Optional[ConfigProvider] = None,
        settings: Optional[PipelineSettings] = None,
        sink: Optional[DiagnosticsSink] = None,
        queue: Optional[OrderQueue] = None,
    ):
        self.adapter = adapter
        self.config_provider = config_provider or InMemoryConfigProvider()
        self.settings = settings or PipelineSettings()
        if sink is None:
            configure_logging(self.settings)
            sink = StructlogSink()
        self.sink: DiagnosticsSink = sink
        self.queue = queue or OrderQueue(adapter, Diagnostics(self.sink))

        self._handlers: Dict[Verb, Callable[[_Run, Verb, Mapping[str, Any]], Awaitable[CommandOutcome]]] = {
            Verb.LONG: self._standard,
            Verb.SHORT: self._standard,
            Verb.BUY: self._standard,
            Verb.SELL: self._standard,
            Verb.CLOSE: self._standard,
            Verb.CLOSEALL: self._closeall,
            Verb.STOPLOSS: self._conditional,
            Verb.TAKEPROFIT: self._conditional,
            Verb.TRAILSTOP: self._conditional,
            Verb.TPSL: self._tpsl,
            Verb.LEVERAGE: self._leverage,
            Verb.GLOBALLEVERAGE: self._globalleverage,
            Verb.CANCEL: self._cancel,
            Verb.CANCELALL: self._cancelall,
            Verb.POSITION: self._position_query,
            Verb.POSITIONS: self._positions_query,
            Verb.BALANCES: self._balances_query,
            Verb.MARKET: self._market_query,
            Verb.MARKETS: self._markets_query,
            Verb.ORDERS: self._orders_query,
        }

    async def execute(self, verb: Verb | str, params: Mapping[str, Any]) -> CommandOutcome:
        """
        Исполнение команды.

        Args:
            verb: имя команды (case-insensitive)
            params: плоский набор key/value (ключи case-insensitive)

        Returns:
            CommandOutcome
        """
        run = self._run()
        start = time.monotonic()

        if not isinstance(verb, Verb):
            try:
                verb = Verb(str(verb).strip().lower())
            except ValueError:
                failure = Failure.of(FailureCode.UNKNOWN_COMMAND, verb)
                run.diagnostics.failure(failure)
                return CommandOutcome(
                    verb=None,
                    state=PipelineState.FAILED,
                    failure=failure,
                    events=tuple(run.sink.events),
                )

        try:
            outcome = await self._handlers[verb](run, verb, params)
        except AdapterError as e:
            failure = Failure.of(FailureCode.ADAPTER_ERROR, e.action, details=e.message)
            run.diagnostics.failure(failure)
            outcome = CommandOutcome(verb=verb, state=PipelineState.FAILED, failure=failure)
        except ConfigValueError as e:
            failure = Failure.of(FailureCode.INVALID_CONFIG, e.scope, e.key, e.value, details=str(e))
            run.diagnostics.failure(failure)
            outcome = CommandOutcome(verb=verb, state=PipelineState.FAILED, failure=failure)

        duration = round(time.monotonic() - start, 3)
        if verb in _ORDER_VERBS:
            run.diagnostics.notice("order_completed", verb=verb.value, duration=duration)
        return replace(outcome, events=tuple(run.sink.events), duration=duration)

    # -------------------------------------------------------------------------
    # STANDARD: long, short, buy, sell, close
    # -------------------------------------------------------------------------

    async def _standard(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()

        normalized, failure = self._contract(run, verb, params)
        if failure is not None:
            return self._failed(machine, verb, failure)
        target, failure = self._model(run, verb, SymbolCommand, normalized)
        if failure is not None:
            return self._failed(machine, verb, failure)

        context, failure = await self._market_context(run, target.stub, target.symbol)
        if failure is not None:
            return self._failed(machine, verb, failure)
        stub, market = context.stub, context.market

        # Снапшоты для risk checks и sizing
        lookups = [
            self.adapter.position(stub, market.id, target.direction),
            self.adapter.positions(stub),
            self.adapter.balances(stub),
        ]
        if verb.is_open:
            lookups.append(self.adapter.markets(stub))
        matches, positions, balances, *rest = await asyncio.gather(*lookups)
        markets: Sequence[Market] = rest[0] if rest else ()

        position, failure = self._single_position(run, market.id, matches)
        if failure is not None:
            return self._failed(machine, verb, failure)

        is_dca = False
        if verb.is_open:
            defaults = await run.defaults.apply(stub, market.id, normalized, position)
            if defaults.failure is not None:
                return self._failed(machine, verb, defaults.failure)
            normalized, is_dca = defaults.params, defaults.is_dca

        command, failure = self._model(run, verb, OrderCommand, normalized)
        if failure is not None:
            return self._failed(machine, verb, failure)
        if verb.is_open and not command.has_size:
            return self._reject(
                run, machine, verb, Failure.of(FailureCode.INVALID_PARAMS, verb.value, details="size required")
            )

        full_close = verb == Verb.CLOSE and _is_full_close(command.sizing)
        if full_close:
            command = command.with_updates(cancelall=True)

        risk = await run.risk_gate.evaluate(
            RiskContext(
                stub=stub,
                verb=verb,
                market=market,
                profile=context.profile,
                position=position,
                positions=positions,
                markets=markets,
                direction=command.direction,
                force=command.force,
            )
        )
        if not risk.entry_allowed:
            return self._failed(machine, verb, risk.failure)
        if risk.direction != command.direction:
            command = command.with_updates(direction=risk.direction)

        # Sizing
        machine.transition(PipelineState.SIZING)
        sizing_verb = verb
        if is_dca:
            # Размер DCA добавляется к текущей позиции
            sizing_verb = Verb.BUY if verb in (Verb.LONG, Verb.BUY) else Verb.SELL
        size = run.size_resolver.resolve(
            sizing_verb,
            None if full_close else command.sizing,
            position,
            available_equity_usd(balances),
            order_sizing=context.profile.order_sizing,
            maxsize=command.maxsize,
            signalsize=command.signalsize,
            is_layered=command.price is not None and command.price.is_layered,
        )
        if not size.ok:
            return self._failed(machine, verb, size.failure)

        prices = None
        if command.price is not None:
            prices = run.price_resolver.resolve(command.price, market)
            if not prices.ok:
                return self._failed(machine, verb, prices.failure)

        # Building
        machine.transition(PipelineState.BUILDING)
        if prices is not None and prices.is_layered:
            built = await run.builder.build_layered(context, verb, command, size, prices)
        else:
            built = await run.builder.build_standard(
                context, verb, command, size, price=prices.price if prices is not None else None
            )
        if not built.ok:
            return self._failed(machine, verb, built.failure)

        outcome = await self._submit(
            run,
            machine,
            verb,
            context,
            command,
            built.descriptors,
            cancel=AdapterAction.CANCEL_ALL if command.cancelall else None,
        )

        if outcome.ok and verb.is_open:
            protect = Side.SELL if verb in (Verb.LONG, Verb.BUY) else Side.BUY
            follow_ups = await self._protective_orders(run, command, protect)
            outcome = replace(outcome, follow_ups=follow_ups)
        return outcome

    # -------------------------------------------------------------------------
    # CONDITIONAL: stoploss, takeprofit, trailstop, tpsl
    # -------------------------------------------------------------------------

    async def _conditional(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, OrderCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        if verb == Verb.TRAILSTOP:
            return await self._explicit_conditional(run, verb, command)

        outcome = await self._protective(run, verb.order_kind, command, command.side)
        if outcome is None:
            return self._reject(
                run, machine, verb, Failure.of(FailureCode.INVALID_PARAMS, verb.value, details="trigger required")
            )
        return outcome

    async def _tpsl(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        """Stop loss и take profit одной командой (reduce, cancel existing)."""
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, OrderCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        command = command.with_updates(reduce=True, cancelall=True)
        legs = await self._protective_legs(run, command, command.side)
        if not legs:
            return self._reject(
                run, machine, verb, Failure.of(FailureCode.INVALID_PARAMS, verb.value, details="trigger required")
            )
        return self._combined(machine, verb, legs)

    async def _protective_orders(
        self, run: _Run, command: OrderCommand, side: Side
    ) -> tuple[CommandOutcome, ...]:
        """Stop loss / take profit по умолчанию после открытия позиции."""
        command = command.with_updates(reduce=True, cancelall=True, side=None)
        return await self._protective_legs(run, command, side)

    async def _protective_legs(
        self, run: _Run, command: OrderCommand, side: Optional[Side]
    ) -> tuple[CommandOutcome, ...]:
        legs = []
        for kind in (OrderKind.STOP_LOSS, OrderKind.TAKE_PROFIT):
            outcome = await self._protective(run, kind, command, side)
            if outcome is not None:
                legs.append(outcome)
        return tuple(legs)

    async def _protective(
        self, run: _Run, kind: OrderKind, command: OrderCommand, side: Optional[Side]
    ) -> Optional[CommandOutcome]:
        """
        Stop loss / take profit.

        Триггер и явный размер → ордер как есть. Иначе размер и референсная
        цена берутся из потенциальной позиции. None — триггера нет.
        """
        prefix = _PREFIX[kind]
        if getattr(command, prefix + "trigger") is not None and command.conditional_sizing(prefix) is not None:
            return await self._explicit_conditional(run, _VERB[kind], command)
        return await self._tpsl_order(run, kind, command, side)

    async def _explicit_conditional(
        self, run: _Run, verb: Verb, command: OrderCommand
    ) -> CommandOutcome:
        machine = PipelineStateMachine()
        context, failure = await self._market_context(run, command.stub, command.symbol)
        if failure is not None:
            return self._failed(machine, verb, failure)

        matches = await self.adapter.position(context.stub, context.market.id, command.direction)
        position, failure = self._single_position(run, context.market.id, matches)
        if failure is not None:
            return self._failed(machine, verb, failure)

        failure = await self._check_risk(run, verb, context, position, command)
        if failure is not None:
            return self._failed(machine, verb, failure)

        machine.transition(PipelineState.BUILDING)
        built = await run.builder.build_conditional(context, verb.order_kind, command, position)
        if not built.ok:
            return self._failed(machine, verb, built.failure)
        return await self._submit(run, machine, verb, context, command, built.descriptors)

    async def _tpsl_order(
        self, run: _Run, kind: OrderKind, command: OrderCommand, side: Optional[Side]
    ) -> Optional[CommandOutcome]:
        """Условный ордер, размер и триггер которого привязаны к потенциальной позиции."""
        verb = _VERB[kind]
        prefix = _PREFIX[kind]
        machine = PipelineStateMachine()

        context, failure = await self._market_context(run, command.stub, command.symbol)
        if failure is not None:
            return self._failed(machine, verb, failure)
        stub, market = context.stub, context.market

        trigger: Optional[PriceExpression] = getattr(command, prefix + "trigger")
        if trigger is None:
            default = lookup_symbol_then_stub(
                self.config_provider, stub, market.id, f"def{prefix}trigger"
            )
            if default is None:
                return None
            try:
                trigger = parse_trigger(default, prefix + "trigger")
            except ValueError as e:
                failure = Failure.of(
                    FailureCode.INVALID_CONFIG, stub, f"def{prefix}trigger", default, details=str(e)
                )
                return self._reject(run, machine, verb, failure)
            run.diagnostics.debug(f"order_{prefix}_default", trigger=str(default))

        if side is None:
            side = self._trigger_side(kind, trigger, market)

        matches, open_orders = await asyncio.gather(
            self.adapter.position(stub, market.id, command.direction),
            self.adapter.all_orders(stub, market.id),
        )
        position, failure = self._single_position(run, market.id, matches)
        if failure is not None:
            return self._failed(machine, verb, failure)

        failure = await self._check_risk(run, verb, context, position, command)
        if failure is not None:
            return self._failed(machine, verb, failure)

        machine.transition(PipelineState.BUILDING)
        potential = potential_position(
            position,
            market,
            context.profile,
            open_orders=open_orders,
            side=side.opposite if side is not None else None,
        )
        if potential is None:
            run.diagnostics.notice("position_nopotential", symbol=command.symbol)
            return self._reject(run, machine, verb, Failure.of(FailureCode.NO_POTENTIAL_POSITION, command.symbol))

        if side is None:
            side = potential.side.opposite
        run.diagnostics.debug(
            "potential_position",
            side=potential.side.value,
            amount=potential.amount,
            sizing=potential.denomination.value,
            price=potential.price,
            position=potential.position_amount,
            orders=potential.orders_amount,
        )

        if trigger.is_relative:
            if trigger.sign is None:
                trigger = trigger.with_sign(conditional_trigger_sign(kind, side))
            reference = potential.price if potential.price is not None else (market.bid + market.ask) / 2
            resolved = run.price_resolver.relative_price(
                trigger, market, round_to_step(reference, market.precision.price)
            )
            if resolved is None:
                return self._reject(
                    run, machine, verb, Failure.of(FailureCode.INVALID_PARAMS, prefix + "trigger")
                )
            trigger = PriceExpression.absolute(resolved)

        updates: Dict[str, Any] = {
            prefix + potential.denomination.value: SizingExpression.absolute(
                potential.denomination, potential.amount
            ),
            prefix + "trigger": trigger,
            "side": side,
        }
        if "reduce" not in command.model_fields_set:
            updates["reduce"] = True
        command = command.with_updates(**updates)

        built = await run.builder.build_conditional(context, kind, command, position)
        if not built.ok:
            return self._failed(machine, verb, built.failure)
        return await self._submit(
            run,
            machine,
            verb,
            context,
            command,
            built.descriptors,
            cancel=_CANCEL[kind] if command.cancelall else None,
        )

    @staticmethod
    def _trigger_side(kind: OrderKind, trigger: PriceExpression, market: Market) -> Optional[Side]:
        """
        Сторона по триггеру.

        Знаковый relative: знак, соответствующий sell, даёт sell.
        Absolute: ниже bid — sell для stop loss / buy для take profit,
        выше ask — наоборот.
        """
        if trigger.is_relative:
            if trigger.sign is None:
                return None
            return Side.SELL if trigger.sign == conditional_trigger_sign(kind, Side.SELL) else Side.BUY
        below, above = (Side.SELL, Side.BUY) if kind == OrderKind.STOP_LOSS else (Side.BUY, Side.SELL)
        if trigger.value < market.bid:
            return below
        if trigger.value > market.ask:
            return above
        return None

    # -------------------------------------------------------------------------
    # CLOSEALL / LEVERAGE
    # -------------------------------------------------------------------------

    async def _closeall(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, CloseAllCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        positions = await self.adapter.positions(command.stub)
        closes = []
        for position in positions:
            if not position.is_open:
                continue
            closes.append(
                await self._standard(
                    run, Verb.CLOSE, {"stub": command.stub, "symbol": position.symbol, "cancelall": True}
                )
            )
        return self._combined(machine, verb, tuple(closes))

    async def _leverage(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        params = normalize_keys(params)
        params.setdefault("leverage", self.settings.default_leverage)
        command, failure = self._parse(run, verb, params, LeverageCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        if not await self._set_leverage(run, command, command.symbol):
            return self._failed(
                machine, verb, Failure.of(FailureCode.ADAPTER_ERROR, AdapterAction.LEVERAGE.value, command.symbol)
            )
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data={command.symbol: True})

    async def _globalleverage(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        params = normalize_keys(params)
        params.setdefault("leverage", self.settings.default_leverage)
        command, failure = self._parse(run, verb, params, LeverageCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        results: Dict[str, bool] = {}
        for market in await self.adapter.markets(command.stub):
            results[market.id] = await self._set_leverage(run, command, market.id)

        failed = [symbol for symbol, ok in results.items() if not ok]
        if failed:
            failure = Failure.of(FailureCode.ADAPTER_ERROR, AdapterAction.LEVERAGE.value, *failed)
            run.diagnostics.failure(failure)
            machine.fail()
            return CommandOutcome(verb=verb, state=machine.state, failure=failure, data=results)
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=results)

    async def _set_leverage(self, run: _Run, command: LeverageCommand, symbol: str) -> bool:
        try:
            result = await self.adapter.execute(
                command.stub,
                AdapterAction.LEVERAGE,
                {"symbol": symbol, "type": command.type.value, "leverage": command.leverage},
            )
        except AdapterError as e:
            run.diagnostics.debug("leverage_failed", symbol=symbol, details=e.message)
            return False
        if result.ok:
            run.diagnostics.success(
                "leverage_set", symbol=symbol, leverage=command.leverage, type=command.type.value
            )
        else:
            run.diagnostics.error("leverage_set", symbol=symbol, details=result.details)
        return result.ok

    # -------------------------------------------------------------------------
    # CANCEL / READ-ONLY
    # -------------------------------------------------------------------------

    async def _cancel(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        result = await self.adapter.execute(
            command.stub, AdapterAction.CANCEL, {"symbol": command.symbol, "id": command.id}
        )
        if not result.ok:
            return self._reject(
                run, machine, verb, Failure.of(FailureCode.ADAPTER_ERROR, AdapterAction.CANCEL.value, command.id, details=result.details)
            )
        run.diagnostics.notice("order_cancel", id=command.id)
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=result.data)

    async def _cancelall(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        data = await self._cancel_existing(run, command.stub, AdapterAction.CANCEL_ALL, command)
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=data)

    async def _position_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)

        matches = await self.adapter.position(command.stub, command.symbol, command.direction)
        position, failure = self._single_position(run, command.symbol, matches)
        if failure is not None:
            return self._failed(machine, verb, failure)
        if not position.is_open:
            return self._reject(run, machine, verb, Failure.of(FailureCode.NO_POSITION, command.symbol))
        run.diagnostics.success("position_retrieve", symbol=position.symbol)
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=position)

    async def _positions_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(PipelineStateMachine(), verb, failure)
        positions = await self.adapter.positions(command.stub, command.direction)
        return self._retrieved(run, verb, "positions_retrieve", tuple(positions))

    async def _balances_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(PipelineStateMachine(), verb, failure)
        balances: Sequence[Balance] = await self.adapter.balances(command.stub, command.currency)
        return self._retrieved(run, verb, "balances_retrieve", tuple(balances))

    async def _market_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        machine = PipelineStateMachine()
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(machine, verb, failure)
        context, failure = await self._market_context(run, command.stub, command.symbol)
        if failure is not None:
            return self._failed(machine, verb, failure)
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=context.market)

    async def _markets_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(PipelineStateMachine(), verb, failure)
        markets = await self.adapter.markets(command.stub)
        return self._retrieved(run, verb, "markets_retrieve", tuple(markets))

    async def _orders_query(self, run: _Run, verb: Verb, params: Mapping[str, Any]) -> CommandOutcome:
        command, failure = self._parse(run, verb, params, QueryCommand)
        if failure is not None:
            return self._failed(PipelineStateMachine(), verb, failure)
        orders = await self.adapter.all_orders(command.stub, command.symbol, command.since)
        if command.status is not None and command.status != "all":
            orders = [order for order in orders if order.status.lower() == command.status]
        return self._retrieved(run, verb, "orders_retrieve", tuple(orders))

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def _run(self) -> _Run:
        """Компоненты команды с собственным CollectingSink."""
        sink = CollectingSink(inner=self.sink)
        diagnostics = Diagnostics(sink)
        price_resolver = PriceResolver(diagnostics)
        return _Run(
            sink=sink,
            diagnostics=diagnostics,
            risk_gate=RiskGate(self.adapter, self.config_provider, diagnostics),
            size_resolver=SizeResolver(
                self.config_provider,
                diagnostics,
                SizeResolverConfig(
                    require_maxsize_default=self.settings.require_maxsize,
                    maxsize_warn_limit=self.settings.maxsize_warn_limit,
                ),
            ),
            price_resolver=price_resolver,
            builder=OrderBuilder(self.adapter, diagnostics, price_resolver, AmountConverter(diagnostics)),
            defaults=OrderDefaults(
                self.adapter, self.config_provider, diagnostics, self.settings.dca_lookback_days
            ),
        )

    def _contract(
        self, run: _Run, verb: Verb, params: Mapping[str, Any]
    ) -> Tuple[Optional[Dict[str, Any]], Optional[Failure]]:
        """JSON Schema контракт команды."""
        try:
            return validate_command(verb, params), None
        except ContractError as e:
            return None, self._invalid(run, verb, e.message)

    def _model(
        self, run: _Run, verb: Verb, model: type[CommandParams], params: Mapping[str, Any]
    ) -> Tuple[Any, Optional[Failure]]:
        """Типизированная модель команды (разбор выражений)."""
        try:
            return (
                model.model_validate(
                    dict(params), context={"default_layer_count": self.settings.default_layer_count}
                ),
                None,
            )
        except ValueError as e:
            return None, self._invalid(run, verb, str(e))

    def _parse(
        self, run: _Run, verb: Verb, params: Mapping[str, Any], model: type[CommandParams]
    ) -> Tuple[Any, Optional[Failure]]:
        normalized, failure = self._contract(run, verb, params)
        if failure is not None:
            return None, failure
        return self._model(run, verb, model, normalized)

    @staticmethod
    def _invalid(run: _Run, verb: Verb, details: str) -> Failure:
        failure = Failure.of(FailureCode.INVALID_PARAMS, verb.value, details=details)
        run.diagnostics.failure(failure)
        return failure

    async def _market_context(
        self, run: _Run, stub: str, symbol: str
    ) -> Tuple[Optional[MarketContext], Optional[Failure]]:
        profile, market = await asyncio.gather(
            self.adapter.profile(stub), self.adapter.market(stub, symbol)
        )
        if market is None:
            failure = Failure.of(FailureCode.MARKET_NOT_FOUND, symbol)
            run.diagnostics.failure(failure)
            return None, failure
        return MarketContext(stub=stub, market=market, profile=profile), None

    @staticmethod
    def _single_position(
        run: _Run, symbol: str, matches: Sequence[Position]
    ) -> Tuple[Optional[Position], Optional[Failure]]:
        """Единственная открытая позиция по символу, flat если её нет."""
        open_positions = [position for position in matches if position.is_open]
        if len(open_positions) > 1:
            failure = Failure.of(
                FailureCode.AMBIGUOUS_POSITION,
                symbol,
                [position.direction.value for position in open_positions],
            )
            run.diagnostics.failure(failure)
            return None, failure
        if open_positions:
            return open_positions[0], None
        return Position.flat(symbol), None

    async def _check_risk(
        self,
        run: _Run,
        verb: Verb,
        context: MarketContext,
        position: Position,
        command: OrderCommand,
    ) -> Optional[Failure]:
        risk = await run.risk_gate.evaluate(
            RiskContext(
                stub=context.stub,
                verb=verb,
                market=context.market,
                profile=context.profile,
                position=position,
                direction=command.direction,
                force=command.force,
            )
        )
        return risk.failure if not risk.entry_allowed else None

    async def _cancel_existing(
        self, run: _Run, stub: str, action: AdapterAction, command: SymbolCommand | QueryCommand
    ) -> Any:
        """Отмена существующих ордеров символа (cancel_all / cancel_sl / cancel_tp)."""
        direction: Optional[PositionDirection] = command.direction
        payload: Dict[str, Any] = {
            "symbol": command.symbol,
            "direction": direction.value if direction is not None else None,
        }
        if isinstance(command, QueryCommand) and command.type is not None:
            payload["type"] = command.type
        result = await self.adapter.execute(stub, action, payload)
        count = len(result.data) if isinstance(result.data, (list, tuple)) else 0
        run.diagnostics.notice("orders_cancel", action=action.value, symbol=command.symbol, count=count)
        return result.data

    async def _submit(
        self,
        run: _Run,
        machine: PipelineStateMachine,
        verb: Verb,
        context: MarketContext,
        command: OrderCommand,
        descriptors: Sequence[OrderDescriptor],
        cancel: Optional[AdapterAction] = None,
    ) -> CommandOutcome:
        """Сессия очереди: clear, отмена существующих ордеров, add*, process."""
        async with self.queue.session((context.stub, context.market.id), run.diagnostics) as session:
            if cancel is not None:
                await self._cancel_existing(run, context.stub, cancel, command)
            return await self._enqueue_and_process(run, machine, verb, session, descriptors)

    async def _enqueue_and_process(
        self,
        run: _Run,
        machine: PipelineStateMachine,
        verb: Verb,
        session: QueueSession,
        descriptors: Sequence[OrderDescriptor],
    ) -> CommandOutcome:
        for descriptor in descriptors:
            session.add(descriptor)
        machine.transition(PipelineState.QUEUED)

        machine.transition(PipelineState.SUBMITTING)
        result = await session.process()
        if not result.ok:
            return self._failed(machine, verb, result.failure, result.submitted)

        machine.transition(PipelineState.DONE)
        run.diagnostics.success(
            "order_submitted", verb=verb.value, symbol=session.key[1], orders=len(result.submitted)
        )
        return CommandOutcome(verb=verb, state=machine.state, descriptors=result.submitted)

    def _retrieved(self, run: _Run, verb: Verb, code: str, data: tuple) -> CommandOutcome:
        machine = PipelineStateMachine()
        run.diagnostics.success(code, count=len(data))
        machine.transition(PipelineState.DONE)
        return CommandOutcome(verb=verb, state=machine.state, data=data)

    @staticmethod
    def _combined(
        machine: PipelineStateMachine, verb: Verb, outcomes: tuple[CommandOutcome, ...]
    ) -> CommandOutcome:
        """Результат составной команды: успех только если успешны все вложенные."""
        failure = next((outcome.failure for outcome in outcomes if not outcome.ok), None)
        if failure is None:
            machine.transition(PipelineState.DONE)
        else:
            machine.fail()
        descriptors = tuple(d for outcome in outcomes for d in outcome.descriptors)
        return CommandOutcome(
            verb=verb,
            state=machine.state,
            failure=failure,
            descriptors=descriptors,
            follow_ups=outcomes,
        )

    @staticmethod
    def _failed(
        machine: PipelineStateMachine,
        verb: Verb,
        failure: Optional[Failure],
        descriptors: Sequence[OrderDescriptor] = (),
    ) -> CommandOutcome:
        """Отказ, уже отправленный в diagnostics."""
        machine.fail()
        return CommandOutcome(
            verb=verb, state=machine.state, failure=failure, descriptors=tuple(descriptors)
        )

    def _reject(
        self, run: _Run, machine: PipelineStateMachine, verb: Verb, failure: Failure
    ) -> CommandOutcome:
        run.diagnostics.failure(failure)
        return self._failed(machine, verb, failure)
