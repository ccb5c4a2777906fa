"""Тесты для TradeOrchestrator (сценарии с FakeExchangeAdapter)

Покрытие:
- Открытие: market / layered / defsize / защитные ордера после открытия
- Закрытие: полное (cancel all), частичное, closeall
- Условные: stoploss / takeprofit / tpsl / trailstop
- Risk: blacklist, hedge mode, overshoot, неоднозначная позиция
- leverage / globalleverage, cancel / cancelall, read-only запросы
- Граница: AdapterError, неизвестная команда, нарушение контракта, diagnostics
"""

import asyncio

import pytest

from order_pipeline import CommandOutcome, TradeOrchestrator
from order_pipeline.adapters import AdapterAction
from order_pipeline.core.config import (
    KEY_DCASCALE,
    KEY_DEFSIZE,
    KEY_DEFSTOPTRIGGER,
    KEY_IGNORED,
    KEY_MAXPOSQTY,
    KEY_PAIRMODE,
    KEY_REQUIRE_MAXSIZE,
    KEY_WARN_MAXSIZE,
    SCOPE_COUNTER,
    SCOPE_TRADE,
    InMemoryConfigProvider,
    PipelineSettings,
    symbol_scope,
)
from order_pipeline.core.diagnostics import CollectingSink, DiagnosticLevel
from order_pipeline.core.domain import (
    AmountLimits,
    Balance,
    ExchangeProfile,
    FailureCode,
    HedgeModeState,
    MarketType,
    OpenOrder,
    OrderKind,
    PositionDirection,
    Side,
    Verb,
)
from order_pipeline.orchestrator import PipelineState
from tests.fakes import FakeExchangeAdapter, make_market, make_position


# =============================================================================
# FIXTURES
# =============================================================================


BTC = make_market(bid=49990.0, ask=50000.0)
ETH = make_market(id="ETH/USDT", base="ETH", bid=2999.0, ask=3000.0, price_step=0.01, amount_step=0.01)


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def config() -> InMemoryConfigProvider:
    return InMemoryConfigProvider()


@pytest.fixture
def adapter() -> FakeExchangeAdapter:
    return FakeExchangeAdapter(markets=[BTC, ETH])


@pytest.fixture
def orchestrator(adapter, config, sink) -> TradeOrchestrator:
    return TradeOrchestrator(adapter, config, PipelineSettings(), sink)


def codes(outcome: CommandOutcome, level=None) -> list[str]:
    return [event.code for event in outcome.events if level is None or event.level == level]


# =============================================================================
# OPEN
# =============================================================================


class TestOpen:
    @pytest.mark.asyncio
    async def test_market_long(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})

        assert outcome.ok
        assert outcome.state == PipelineState.DONE
        (order,) = outcome.descriptors
        assert order.side == Side.BUY
        assert order.kind == OrderKind.MARKET
        assert order.amount == 0.01
        assert len(adapter.order_batches()) == 1
        assert outcome.follow_ups == ()
        assert "order_submitted" in codes(outcome, DiagnosticLevel.SUCCESS)
        assert "order_completed" in codes(outcome, DiagnosticLevel.NOTICE)
        assert outcome.duration is not None

    @pytest.mark.asyncio
    async def test_market_sell_from_flat(self, orchestrator) -> None:
        outcome = await orchestrator.execute(Verb.SELL, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})

        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.side == Side.SELL
        assert order.amount == 0.01
        assert not order.flags.reduce_only

    @pytest.mark.asyncio
    async def test_verb_and_keys_case_insensitive(self, orchestrator) -> None:
        outcome = await orchestrator.execute("LONG", {"Stub": "Main", "SYMBOL": "btc/usdt", "Size": "500"})
        assert outcome.ok
        assert outcome.verb == Verb.LONG

    @pytest.mark.asyncio
    async def test_size_required(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(Verb.BUY, {"stub": "main", "symbol": "BTC/USDT"})
        assert not outcome
        assert outcome.failure.code == FailureCode.INVALID_PARAMS
        assert outcome.state == PipelineState.FAILED
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    async def test_defsize(self, orchestrator, config) -> None:
        config.set("main", KEY_DEFSIZE, "1000")
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.ok
        assert outcome.descriptors[0].amount == 0.02

    @pytest.mark.asyncio
    async def test_layered_limit(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(
            Verb.LONG,
            {"stub": "main", "symbol": "BTC/USDT", "size": "1500", "price": "49000,50000,3", "tag": "grid"},
        )
        assert outcome.ok
        assert [order.price for order in outcome.descriptors] == [49000.0, 49500.0, 50000.0]
        assert [order.amount for order in outcome.descriptors] == [0.01, 0.01, 0.01]
        assert [order.flags.client_tag for order in outcome.descriptors] == ["grid-1", "grid-2", "grid-3"]
        assert len(adapter.order_batches()) == 1
        assert len(adapter.order_batches()[0]) == 3

    @pytest.mark.asyncio
    async def test_layer_count_from_settings(self, adapter, config, sink) -> None:
        orchestrator = TradeOrchestrator(adapter, config, PipelineSettings(default_layer_count=2), sink)
        outcome = await orchestrator.execute(
            Verb.BUY, {"stub": "main", "symbol": "BTC/USDT", "size": "1000", "price": "49000,50000"}
        )
        assert [order.price for order in outcome.descriptors] == [49000.0, 50000.0]

    @pytest.mark.asyncio
    async def test_default_stop_after_open(self, orchestrator, adapter, config) -> None:
        config.set("main", KEY_DEFSTOPTRIGGER, "2%")
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})

        assert outcome.ok
        (stop,) = outcome.follow_ups
        assert stop.ok
        assert stop.verb == Verb.STOPLOSS
        (order,) = stop.descriptors
        assert order.kind == OrderKind.STOP_LOSS
        assert order.side == Side.SELL
        assert order.amount == 0.01
        assert order.flags.trigger_price == 48995.0
        assert order.flags.reduce_only
        assert AdapterAction.CANCEL_SL in adapter.actions()
        assert len(adapter.order_batches()) == 2

    @pytest.mark.asyncio
    async def test_malformed_default_stop(self, orchestrator, adapter, config) -> None:
        config.set("main", KEY_DEFSTOPTRIGGER, "soon")
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})

        assert outcome.ok
        (stop,) = outcome.follow_ups
        assert stop.failure.code == FailureCode.INVALID_CONFIG
        assert stop.failure.args == ("main", KEY_DEFSTOPTRIGGER, "soon")
        assert AdapterAction.CANCEL_SL not in adapter.actions()
        assert len(adapter.order_batches()) == 1

    @pytest.mark.asyncio
    async def test_submission_rejected(self, orchestrator, adapter) -> None:
        adapter.reject_indexes = (0,)
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})
        assert outcome.failure.code == FailureCode.SUBMISSION_REJECTED
        assert len(outcome.descriptors) == 1


# =============================================================================
# CLOSE
# =============================================================================


class TestClose:
    @pytest.mark.asyncio
    async def test_full_close_cancels_all(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT"})

        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.side == Side.SELL
        assert order.amount == 0.02
        actions = adapter.actions()
        assert actions.index(AdapterAction.CANCEL_ALL) < actions.index(AdapterAction.ORDER)

    @pytest.mark.asyncio
    async def test_partial_close(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT", "size": "50%"})

        assert outcome.ok
        assert outcome.descriptors[0].amount == 0.01
        assert AdapterAction.CANCEL_ALL not in adapter.actions()

    @pytest.mark.asyncio
    async def test_close_without_position(self, orchestrator) -> None:
        outcome = await orchestrator.execute(Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.failure.code == FailureCode.NO_POSITION

    @pytest.mark.asyncio
    async def test_ambiguous_position(self, orchestrator, adapter) -> None:
        adapter.position_list = [
            make_position(direction=PositionDirection.LONG),
            make_position(direction=PositionDirection.SHORT),
        ]
        outcome = await orchestrator.execute(Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.failure.code == FailureCode.AMBIGUOUS_POSITION

        directed = await orchestrator.execute(
            Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT", "direction": "short"}
        )
        assert directed.ok
        assert directed.descriptors[0].side == Side.BUY

    @pytest.mark.asyncio
    async def test_closeall(self, orchestrator, adapter) -> None:
        adapter.position_list = [
            make_position(),
            make_position("ETH/USDT", PositionDirection.SHORT, base_size=1.0, price=3000.0),
        ]
        outcome = await orchestrator.execute(Verb.CLOSEALL, {"stub": "main"})

        assert outcome.ok
        assert [child.verb for child in outcome.follow_ups] == [Verb.CLOSE, Verb.CLOSE]
        assert [order.side for order in outcome.descriptors] == [Side.SELL, Side.BUY]
        assert adapter.actions().count(AdapterAction.CANCEL_ALL) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", ["1000", "450"])
    async def test_close_bounded_by_position_after_price_drop(self, orchestrator, adapter, size) -> None:
        adapter.markets_by_id["BTC/USDT"] = make_market(bid=40000.0, ask=40010.0)
        adapter.position_list = [make_position(base_size=0.01, price=50000.0)]

        outcome = await orchestrator.execute(Verb.CLOSE, {"stub": "main", "symbol": "BTC/USDT", "size": size})

        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.side == Side.SELL
        assert order.amount == 0.01
        assert order.flags.reduce_only


# =============================================================================
# CONDITIONAL
# =============================================================================


class TestConditional:
    @pytest.mark.asyncio
    async def test_explicit_stoploss(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(
            Verb.STOPLOSS, {"stub": "main", "symbol": "BTC/USDT", "stoptrigger": "48000", "stopbase": "0.01"}
        )
        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.side == Side.SELL
        assert order.amount == 0.01
        assert AdapterAction.CANCEL_SL not in adapter.actions()

    @pytest.mark.asyncio
    async def test_stoploss_requires_trigger(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(Verb.STOPLOSS, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.failure.code == FailureCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_takeprofit_sized_by_potential_position(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        adapter.order_list = [
            OpenOrder(id="9", symbol="BTC/USDT", side=Side.BUY, type="limit", price=48000.0, amount=0.01)
        ]
        outcome = await orchestrator.execute(
            Verb.TAKEPROFIT, {"stub": "main", "symbol": "BTC/USDT", "profittrigger": "55000"}
        )
        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.side == Side.SELL
        assert order.amount == 0.03
        assert order.flags.reduce_only

    @pytest.mark.asyncio
    async def test_tpsl(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(
            Verb.TPSL,
            {"stub": "main", "symbol": "BTC/USDT", "stoptrigger": "-2%", "profittrigger": "+3%"},
        )
        assert outcome.ok
        stop, profit = outcome.descriptors
        assert stop.flags.trigger_price == 49000.0
        assert profit.flags.trigger_price == 51500.0
        assert {stop.side, profit.side} == {Side.SELL}
        assert AdapterAction.CANCEL_SL in adapter.actions()
        assert AdapterAction.CANCEL_TP in adapter.actions()

    @pytest.mark.asyncio
    async def test_tpsl_without_potential_position(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(
            Verb.TPSL, {"stub": "main", "symbol": "BTC/USDT", "stoptrigger": "2%"}
        )
        assert outcome.failure.code == FailureCode.NO_POTENTIAL_POSITION
        assert "position_nopotential" in codes(outcome, DiagnosticLevel.NOTICE)
        assert AdapterAction.CANCEL_SL not in adapter.actions()

    @pytest.mark.asyncio
    async def test_tpsl_build_failure_keeps_existing_stops(self, orchestrator, adapter) -> None:
        adapter.markets_by_id["BTC/USDT"] = make_market(bid=49990.0, ask=50000.0, limits=AmountLimits(min=0.01))
        adapter.position_list = [make_position(base_size=0.002)]
        adapter.order_list = [
            OpenOrder(id="5", symbol="BTC/USDT", side=Side.SELL, type="stop", price=45000.0, amount=0.002)
        ]

        outcome = await orchestrator.execute(
            Verb.TPSL, {"stub": "main", "symbol": "BTC/USDT", "stoptrigger": "-5%"}
        )

        assert not outcome
        assert outcome.failure.code == FailureCode.BELOW_MIN_AMOUNT
        assert AdapterAction.CANCEL_SL not in adapter.actions()
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    async def test_trailstop(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(
            Verb.TRAILSTOP, {"stub": "main", "symbol": "BTC/USDT", "trailstop": "1%"}
        )
        assert outcome.ok
        (order,) = outcome.descriptors
        assert order.kind == OrderKind.TRAILING_STOP
        assert order.side == Side.SELL
        assert order.flags.trigger_price == -500.0


# =============================================================================
# RISK
# =============================================================================


class TestRisk:
    @pytest.mark.asyncio
    async def test_blacklisted(self, orchestrator, adapter, config) -> None:
        config.set(symbol_scope("main", "BTC/USDT"), KEY_IGNORED, True)
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})
        assert outcome.failure.code == FailureCode.SYMBOL_BLACKLISTED
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key, value", [(KEY_PAIRMODE, "greylist"), (KEY_MAXPOSQTY, "abc")])
    async def test_malformed_config_rejected(self, orchestrator, adapter, config, key, value) -> None:
        config.set("main", key, value)
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})
        assert outcome.state == PipelineState.FAILED
        assert outcome.failure.code == FailureCode.INVALID_CONFIG
        assert outcome.failure.args == ("main", key, value)
        assert FailureCode.INVALID_CONFIG.value in codes(outcome, DiagnosticLevel.ERROR)
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    async def test_malformed_dcascale_rejected(self, orchestrator, adapter, config) -> None:
        adapter.position_list = [make_position()]
        config.set("main", KEY_DCASCALE, "abc")
        config.set("main", KEY_DEFSIZE, "100")
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.failure.code == FailureCode.INVALID_CONFIG
        assert outcome.failure.args == ("main", KEY_DCASCALE, "abc")
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    async def test_overshoot(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500"})
        assert outcome.failure.code == FailureCode.SIZE_EXCEEDS_POSITION

    @pytest.mark.asyncio
    async def test_hedge_mode_unavailable(self, config, sink) -> None:
        market = make_market(bid=49990.0, ask=50000.0, type=MarketType.DERIVATIVE)
        adapter = FakeExchangeAdapter(
            markets=[market],
            profile=ExchangeProfile(exchange="fake", hedge_mode_supported=True),
            hedge=HedgeModeState(enabled=False, can_change=False),
        )
        orchestrator = TradeOrchestrator(adapter, config, sink=sink)

        long = await orchestrator.execute(
            Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "500", "direction": "long"}
        )
        assert long.ok
        assert "hedge_mode_long_only" in codes(long, DiagnosticLevel.WARNING)

        short = await orchestrator.execute(
            Verb.SHORT, {"stub": "main", "symbol": "BTC/USDT", "size": "500", "direction": "short"}
        )
        assert short.failure.code == FailureCode.HEDGE_MODE_REQUIRED


# =============================================================================
# LEVERAGE / CANCEL
# =============================================================================


class TestLeverageAndCancel:
    @pytest.mark.asyncio
    async def test_leverage_default_value(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(Verb.LEVERAGE, {"stub": "main", "symbol": "BTC/USDT", "type": "cross"})
        assert outcome.ok
        assert outcome.data == {"BTC/USDT": True}
        _, action, payload = adapter.calls[-1]
        assert action == AdapterAction.LEVERAGE
        assert payload == {"symbol": "BTC/USDT", "type": "cross", "leverage": 20.0}

    @pytest.mark.asyncio
    async def test_leverage_failed(self, orchestrator, adapter) -> None:
        adapter.failing_leverage_symbols.add("BTC/USDT")
        outcome = await orchestrator.execute(
            Verb.LEVERAGE, {"stub": "main", "symbol": "BTC/USDT", "type": "isolated", "leverage": "5x"}
        )
        assert outcome.failure.code == FailureCode.ADAPTER_ERROR

    @pytest.mark.asyncio
    async def test_globalleverage_partial_failure(self, orchestrator, adapter) -> None:
        adapter.failing_leverage_symbols.add("ETH/USDT")
        outcome = await orchestrator.execute(Verb.GLOBALLEVERAGE, {"stub": "main", "type": "cross"})
        assert not outcome.ok
        assert outcome.data == {"BTC/USDT": True, "ETH/USDT": False}
        assert "ETH/USDT" in outcome.failure.args

    @pytest.mark.asyncio
    async def test_cancel(self, orchestrator, adapter) -> None:
        outcome = await orchestrator.execute(Verb.CANCEL, {"stub": "main", "symbol": "BTC/USDT", "id": 42})
        assert outcome.ok
        assert adapter.calls[-1][2] == {"symbol": "BTC/USDT", "id": "42"}

    @pytest.mark.asyncio
    async def test_cancelall(self, orchestrator, adapter) -> None:
        adapter.order_list = [OpenOrder(id="7", symbol="BTC/USDT", side=Side.BUY, type="limit", price=1.0)]
        outcome = await orchestrator.execute(Verb.CANCELALL, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.ok
        assert outcome.data == ["7"]
        assert outcome.events[-1].code == "orders_cancel"


# =============================================================================
# READ-ONLY
# =============================================================================


class TestQueries:
    @pytest.mark.asyncio
    async def test_position(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        outcome = await orchestrator.execute(Verb.POSITION, {"stub": "main", "symbol": "BTC/USDT"})
        assert outcome.data.base_size == 0.02

        missing = await orchestrator.execute(Verb.POSITION, {"stub": "main", "symbol": "ETH/USDT"})
        assert missing.failure.code == FailureCode.NO_POSITION

    @pytest.mark.asyncio
    async def test_positions_and_balances(self, orchestrator, adapter) -> None:
        adapter.position_list = [make_position()]
        adapter.balance_list.append(Balance(currency="BTC", free=0.1, usd_free=5000.0))

        positions = await orchestrator.execute(Verb.POSITIONS, {"stub": "main"})
        assert len(positions.data) == 1

        balances = await orchestrator.execute(Verb.BALANCES, {"stub": "main", "currency": "btc"})
        assert [balance.currency for balance in balances.data] == ["BTC"]

    @pytest.mark.asyncio
    async def test_markets(self, orchestrator) -> None:
        market = await orchestrator.execute(Verb.MARKET, {"stub": "main", "symbol": "eth/usdt"})
        assert market.data.id == "ETH/USDT"

        unknown = await orchestrator.execute(Verb.MARKET, {"stub": "main", "symbol": "XRP/USDT"})
        assert unknown.failure.code == FailureCode.MARKET_NOT_FOUND

        markets = await orchestrator.execute(Verb.MARKETS, {"stub": "main"})
        assert len(markets.data) == 2

    @pytest.mark.asyncio
    async def test_orders_status_filter(self, orchestrator, adapter) -> None:
        adapter.order_list = [
            OpenOrder(id="1", symbol="BTC/USDT", side=Side.BUY, type="limit"),
            OpenOrder(id="2", symbol="BTC/USDT", side=Side.BUY, type="limit", status="closed"),
        ]
        open_orders = await orchestrator.execute(Verb.ORDERS, {"stub": "main", "status": "open"})
        assert [order.id for order in open_orders.data] == ["1"]

        every = await orchestrator.execute(Verb.ORDERS, {"stub": "main", "status": "all"})
        assert len(every.data) == 2


# =============================================================================
# BOUNDARY
# =============================================================================


class TestBoundary:
    @pytest.mark.asyncio
    async def test_adapter_error_caught(self, orchestrator, adapter) -> None:
        adapter.raise_on[AdapterAction.CANCEL] = "exchange unavailable"
        outcome = await orchestrator.execute(Verb.CANCEL, {"stub": "main", "symbol": "BTC/USDT", "id": "1"})
        assert outcome.failure.code == FailureCode.ADAPTER_ERROR
        assert outcome.failure.details == "exchange unavailable"

    @pytest.mark.asyncio
    async def test_malformed_warning_counter(self, orchestrator, adapter, config) -> None:
        adapter.position_list = [make_position()]
        config.set(SCOPE_TRADE, KEY_REQUIRE_MAXSIZE, "false")
        config.set(SCOPE_COUNTER, KEY_WARN_MAXSIZE, "many")
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "symbol": "BTC/USDT", "size": "+100"})
        assert outcome.verb == Verb.LONG
        assert outcome.failure.code == FailureCode.INVALID_CONFIG
        assert outcome.failure.args == (SCOPE_COUNTER, KEY_WARN_MAXSIZE, "many")
        assert adapter.order_batches() == []

    @pytest.mark.asyncio
    async def test_unknown_verb(self, orchestrator) -> None:
        outcome = await orchestrator.execute("moon", {"stub": "main"})
        assert outcome.verb is None
        assert outcome.failure.code == FailureCode.UNKNOWN_COMMAND
        assert not outcome

    @pytest.mark.asyncio
    async def test_contract_violation(self, orchestrator) -> None:
        outcome = await orchestrator.execute(Verb.LONG, {"stub": "main", "size": "500"})
        assert outcome.failure.code == FailureCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_events_forwarded_per_command(self, orchestrator, sink) -> None:
        first = await orchestrator.execute(Verb.MARKETS, {"stub": "main"})
        second = await orchestrator.execute(Verb.POSITIONS, {"stub": "main"})

        assert [event.code for event in first.events] == ["markets_retrieve"]
        assert [event.code for event in second.events] == ["positions_retrieve"]
        assert sink.codes() == ["markets_retrieve", "positions_retrieve"]

    @pytest.mark.asyncio
    async def test_concurrent_commands_same_symbol(self, orchestrator, adapter) -> None:
        params = {"stub": "main", "symbol": "BTC/USDT", "size": "500"}
        first, second = await asyncio.gather(
            orchestrator.execute(Verb.BUY, params), orchestrator.execute(Verb.BUY, params)
        )
        assert first.ok and second.ok
        assert [len(batch) for batch in adapter.order_batches()] == [1, 1]
