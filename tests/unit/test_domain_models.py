"""
Тесты для доменных моделей: Position, Market, ExchangeProfile, OrderDescriptor

Проверяет:
1. Создание и валидацию моделей Pydantic
2. Инварианты (flat позиция, стакан без пересечения)
3. Immutability (frozen=True)
4. Вспомогательные свойства (знак, mark, param_map)
"""

import json

import pytest
from pydantic import ValidationError

from order_pipeline.core.domain import (
    Balance,
    Denomination,
    ExchangeProfile,
    Failure,
    FailureCategory,
    FailureCode,
    Market,
    MarketType,
    OpenOrder,
    OrderDescriptor,
    OrderFlags,
    OrderKind,
    OrderSizing,
    ParamMap,
    Position,
    PositionDirection,
    Precision,
    Side,
    available_equity_usd,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def long_position() -> Position:
    """Long 0.02 BTC @ 50000."""
    return Position(
        symbol="BTC/USDT",
        direction=PositionDirection.LONG,
        base_size=0.02,
        quote_size=1000.0,
        usd_size=1000.0,
        entry_price=50000.0,
        unrealized_pnl=-12.5,
    )


@pytest.fixture
def market() -> Market:
    return Market(
        id="BTC/USDT",
        base="BTC",
        quote="USDT",
        type=MarketType.DERIVATIVE,
        precision=Precision(price=0.5, amount=0.001),
        bid=49990.0,
        ask=50010.0,
    )


# =============================================================================
# POSITION TESTS
# =============================================================================


class TestPosition:
    """Тесты для Position"""

    def test_signed_sizes(self, long_position: Position) -> None:
        assert long_position.is_open
        assert long_position.sign == 1
        assert long_position.signed_size(Denomination.USD) == 1000.0
        assert long_position.size(Denomination.BASE) == 0.02

    def test_short_is_negative(self) -> None:
        short = Position(
            symbol="ETH/USDT", direction=PositionDirection.SHORT, base_size=1.0, quote_size=3000.0, usd_size=3000.0
        )
        assert short.signed_size(Denomination.USD) == -3000.0
        assert short.signed_size(Denomination.BASE) == -1.0

    def test_flat(self) -> None:
        flat = Position.flat("BTC/USDT")
        assert not flat.is_open
        assert flat.sign == 0
        assert flat.signed_size(Denomination.QUOTE) == 0.0

    def test_flat_invariant(self) -> None:
        """direction == FLAT ⇔ размер нулевой"""
        with pytest.raises(ValidationError, match="inconsistent"):
            Position(symbol="BTC/USDT", direction=PositionDirection.FLAT, base_size=1.0, quote_size=1.0)
        with pytest.raises(ValidationError, match="inconsistent"):
            Position(symbol="BTC/USDT", direction=PositionDirection.LONG)

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Position(symbol="BTC/USDT", direction=PositionDirection.LONG, base_size=-1.0, quote_size=1.0)

    def test_immutable(self, long_position: Position) -> None:
        with pytest.raises(ValidationError):
            long_position.base_size = 1.0  # type: ignore[misc]

    def test_json_roundtrip(self, long_position: Position) -> None:
        data = json.loads(long_position.model_dump_json())
        assert data["direction"] == "long"
        assert Position.model_validate(data) == long_position


# =============================================================================
# MARKET TESTS
# =============================================================================


class TestMarket:
    def test_mark_defaults_to_mid(self, market: Market) -> None:
        assert market.mark == 50000.0

    def test_mark_uses_avg(self, market: Market) -> None:
        assert market.model_copy(update={"avg": 50100.0}).mark == 50100.0

    def test_price_for_side(self, market: Market) -> None:
        assert market.price_for_side(Side.BUY) == 50010.0
        assert market.price_for_side(Side.SELL) == 49990.0
        assert market.price_for_side(None) == 50000.0

    def test_crossed_book_rejected(self) -> None:
        with pytest.raises(ValidationError, match="crossed book"):
            Market(
                id="X", base="X", quote="USDT",
                precision=Precision(price=1.0, amount=1.0),
                bid=101.0, ask=100.0,
            )

    def test_is_derivative(self, market: Market) -> None:
        assert market.is_derivative
        assert not market.model_copy(update={"type": MarketType.SPOT}).is_derivative


# =============================================================================
# EXCHANGE PROFILE / PARAM MAP
# =============================================================================


class TestParamMap:
    def test_order_types(self) -> None:
        param_map = ParamMap()
        assert param_map.order_type(OrderKind.LIMIT, True) == "limit"
        assert param_map.order_type(OrderKind.MARKET, False) == "market"
        assert param_map.order_type(OrderKind.STOP_LOSS, False) == "stop"
        assert param_map.order_type(OrderKind.TAKE_PROFIT, True) == "take_profit_limit"
        assert param_map.order_type(OrderKind.TRAILING_STOP, False) == "trailing_stop"

    def test_trigger_field(self) -> None:
        param_map = ParamMap(takeprofit_trigger="takeProfitPrice")
        assert param_map.trigger_field(OrderKind.TAKE_PROFIT) == "takeProfitPrice"
        assert param_map.trigger_field(OrderKind.STOP_LOSS) == "stopPrice"

    def test_is_standard_type(self) -> None:
        param_map = ParamMap()
        assert param_map.is_standard_type("limit")
        assert not param_map.is_standard_type("stop")

    def test_order_sizing_denomination(self) -> None:
        assert OrderSizing.QUOTE.denomination == Denomination.QUOTE
        assert ExchangeProfile(exchange="x").order_sizing == OrderSizing.BASE


# =============================================================================
# ORDERS / BALANCES / FAILURES
# =============================================================================


class TestOrders:
    def test_descriptor_payload_drops_none(self) -> None:
        descriptor = OrderDescriptor(
            symbol="BTC/USDT",
            side=Side.BUY,
            kind=OrderKind.MARKET,
            amount=0.01,
            flags=OrderFlags(),
            exchange_type="market",
            exchange_params={"reduceOnly": None, "clientOrderId": "t1"},
        )
        payload = descriptor.to_payload()
        assert payload == {
            "symbol": "BTC/USDT",
            "type": "market",
            "side": "buy",
            "amount": 0.01,
            "params": {"clientOrderId": "t1"},
        }

    def test_descriptor_amount_positive(self) -> None:
        with pytest.raises(ValidationError):
            OrderDescriptor(
                symbol="BTC/USDT", side=Side.BUY, kind=OrderKind.MARKET, amount=0.0, exchange_type="market"
            )

    def test_open_order_status(self) -> None:
        assert OpenOrder(id="1", symbol="X", side=Side.BUY, type="limit").is_open
        assert not OpenOrder(id="1", symbol="X", side=Side.BUY, type="limit", status="Closed").is_open

    def test_side_opposite(self) -> None:
        assert Side.BUY.opposite == Side.SELL
        assert Side.SELL.opposite == Side.BUY


class TestBalancesAndFailures:
    def test_available_equity(self) -> None:
        balances = [
            Balance(currency="USDT", free=100.0, usd_free=100.0),
            Balance(currency="BTC", free=0.01, usd_free=500.0),
        ]
        assert available_equity_usd(balances) == 600.0
        assert available_equity_usd([]) == 0.0

    def test_failure_category(self) -> None:
        assert Failure.of(FailureCode.SYMBOL_BLACKLISTED, "X").category == FailureCategory.RISK
        assert Failure.of(FailureCode.ORDER_TOO_SMALL, 0.0001).category == FailureCategory.SIZING
        assert Failure.of(FailureCode.UNKNOWN_COMMAND).category == FailureCategory.VALIDATION

    def test_failure_str(self) -> None:
        failure = Failure.of(FailureCode.ADAPTER_ERROR, "order", details="timeout")
        assert str(failure) == "adapter/AdapterError: timeout"
