"""
Тесты для AmountConverter и PriceResolver

Покрытие:
- USD → quote через стейблкоин / через market.usd / недоступно
- base и quote (contracts) sizing биржи
- Квантование: spot floor, derivative round
- Лимиты рынка, предел amount для close
- Absolute / relative / layered цены, offset для trailing stop
"""

import pytest

from order_pipeline.core.diagnostics import CollectingSink, Diagnostics
from order_pipeline.core.domain import (
    AmountLimits,
    Denomination,
    ExchangeProfile,
    FailureCode,
    MarketType,
    OrderSizing,
    PriceExpression,
    Side,
    UsdConversion,
    parse_price,
    parse_trigger,
)
from order_pipeline.pricing import PriceResolver
from order_pipeline.sizing import AmountConverter
from tests.fakes import make_market


@pytest.fixture
def converter() -> AmountConverter:
    return AmountConverter(Diagnostics(CollectingSink()))


@pytest.fixture
def resolver() -> PriceResolver:
    return PriceResolver(Diagnostics(CollectingSink()))


BASE_PROFILE = ExchangeProfile(exchange="spot-like")
QUOTE_PROFILE = ExchangeProfile(exchange="contracts", order_sizing=OrderSizing.QUOTE)


# =============================================================================
# AMOUNT CONVERSION
# =============================================================================


class TestAmountConversion:
    def test_usd_via_stablecoin(self, converter) -> None:
        result = converter.convert(make_market(), BASE_PROFILE, Denomination.USD, 500.0, price=50000.0)
        assert result.ok
        assert result.amount == 0.01

    def test_market_price_by_side(self, converter) -> None:
        """Без цены ордера: ask для buy"""
        market = make_market(bid=49000.0, ask=50000.0)
        result = converter.convert(market, BASE_PROFILE, Denomination.QUOTE, 1000.0, side=Side.BUY)
        assert result.amount == 0.02

    def test_spot_floors(self, converter) -> None:
        result = converter.convert(make_market(), BASE_PROFILE, Denomination.BASE, 0.0129)
        assert result.amount == 0.012

    def test_derivative_rounds(self, converter) -> None:
        market = make_market(type=MarketType.DERIVATIVE)
        result = converter.convert(market, BASE_PROFILE, Denomination.BASE, 0.0129)
        assert result.amount == 0.013

    def test_close_capped_at_position(self, converter) -> None:
        """450 USD по bid 40000 = 0.01125 BTC, позиция 0.01 BTC"""
        market = make_market(bid=40000.0, ask=40010.0)
        result = converter.convert(market, BASE_PROFILE, Denomination.USD, 450.0, side=Side.SELL, cap=0.01)
        assert result.amount == 0.01

    def test_cap_in_contracts(self, converter) -> None:
        market = make_market(type=MarketType.DERIVATIVE, amount_step=1.0, contract_size=10.0)
        result = converter.convert(market, QUOTE_PROFILE, Denomination.QUOTE, 700.0, cap=500.0)
        assert result.amount == 50.0

    def test_cap_not_binding(self, converter) -> None:
        result = converter.convert(make_market(), BASE_PROFILE, Denomination.BASE, 0.005, cap=0.01)
        assert result.amount == 0.005

    def test_quote_sizing_contracts(self, converter) -> None:
        market = make_market(type=MarketType.DERIVATIVE, amount_step=1.0, contract_size=10.0)
        result = converter.convert(market, QUOTE_PROFILE, Denomination.BASE, 0.1, price=50000.0)
        assert result.amount == 500.0

    def test_usd_via_reference_prices(self, converter) -> None:
        market = make_market(
            id="ETH/BTC", base="ETH", quote="BTC", bid=0.06, ask=0.0601, price_step=0.0001,
            usd=UsdConversion(base=3000.0, quote=50000.0, pairs={"base": "ETH/USDT", "quote": "BTC/USDT"}),
        )
        result = converter.convert(market, BASE_PROFILE, Denomination.USD, 300.0)
        assert result.amount == 0.1

    def test_usd_unavailable(self, converter) -> None:
        market = make_market(id="ETH/BTC", base="ETH", quote="BTC", bid=0.06, ask=0.0601, price_step=0.0001)
        result = converter.convert(market, BASE_PROFILE, Denomination.USD, 300.0)
        assert not result.ok
        assert result.failure.code == FailureCode.USD_CONVERSION_UNAVAILABLE

    def test_below_min(self, converter) -> None:
        market = make_market(limits=AmountLimits(min=0.01))
        result = converter.convert(market, BASE_PROFILE, Denomination.BASE, 0.005)
        assert result.failure.code == FailureCode.BELOW_MIN_AMOUNT

    def test_above_max(self, converter) -> None:
        market = make_market(limits=AmountLimits(max=1.0))
        result = converter.convert(market, BASE_PROFILE, Denomination.BASE, 2.0)
        assert result.failure.code == FailureCode.ABOVE_MAX_AMOUNT


# =============================================================================
# PRICE RESOLVER
# =============================================================================


class TestPriceResolver:
    def test_absolute_rounded(self, resolver) -> None:
        result = resolver.resolve(parse_price("50000.3"), make_market())
        assert result.ok
        assert result.price == 50000.5

    def test_relative_percent_from_ask(self, resolver) -> None:
        result = resolver.resolve(parse_price("+1%"), make_market(bid=49990.0, ask=50000.0))
        assert result.price == 50500.0

    def test_relative_literal_from_bid(self, resolver) -> None:
        result = resolver.resolve(parse_price("-25"), make_market(bid=50000.0, ask=50010.0))
        assert result.price == 49975.0

    def test_relative_with_reference(self, resolver) -> None:
        result = resolver.resolve(parse_price("-2%"), make_market(), reference=40000.0)
        assert result.price == 39200.0

    def test_negative_result_fails(self, resolver) -> None:
        result = resolver.resolve(parse_price("-60000"), make_market())
        assert not result.ok
        assert result.failure.code == FailureCode.INVALID_PARAMS

    def test_unsigned_percent_unresolvable(self, resolver) -> None:
        assert resolver.relative_price(parse_trigger("2%", "stoptrigger"), make_market()) is None

    def test_layered_bounds_exact(self, resolver) -> None:
        result = resolver.resolve(parse_price("100,200,3"), make_market(bid=150.0, ask=151.0))
        assert result.is_layered
        assert result.prices == (100.0, 150.0, 200.0)

    def test_layered_reversed_bounds(self, resolver) -> None:
        result = resolver.resolve(parse_price("200,100,2"), make_market(bid=150.0, ask=151.0))
        assert result.prices == (100.0, 200.0)

    def test_layered_first_and_last_levels(self, resolver) -> None:
        result = resolver.resolve(parse_price("100.5,133,7"), make_market(bid=110.0, ask=111.0))
        assert len(result.prices) == 7
        assert result.prices[0] == 100.5
        assert result.prices[-1] == 133.0
        assert list(result.prices) == sorted(result.prices)

    @pytest.mark.parametrize("text", ["50000.3", "49000,50000,5"])
    def test_same_expression_same_prices(self, resolver, text) -> None:
        market = make_market()
        first = resolver.resolve(parse_price(text), market)
        second = resolver.resolve(parse_price(text), market)
        assert first.ok
        assert first == second

    def test_offset(self, resolver) -> None:
        market = make_market()
        assert resolver.offset(parse_trigger("-2%", "trailstop"), market, 50000.0) == -1000.0
        assert resolver.offset(parse_trigger("2%", "trailstop"), market, 50000.0, default_sign=-1) == -1000.0
        assert resolver.offset(PriceExpression.relative(1, 150.0), market, 50000.0) == 150.0
