"""
Amount conversion — размер в base/quote/usd → amount в единицах биржи

Порядок:
1. USD → quote (если quote рынка — стейблкоин), иначе через референсные
   цены market.usd; без них — UsdConversionUnavailable
2. Единица биржи:
   base  → amount = base  (или quote / price)
   quote → amount = (quote или base × price) / contract_size
3. NaN/Inf → NaNAmount
4. Close: amount не больше позиции (cap в единицах sizing биржи)
5. Квантование: spot — floor к шагу (нельзя продать больше баланса),
   derivative — округление к ближайшему шагу
6. Лимиты рынка проверяются на квантованном amount
"""

from dataclasses import dataclass
from typing import Optional

from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.exchange import ExchangeProfile, OrderSizing
from order_pipeline.core.domain.expressions import Denomination
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.order import Side
from order_pipeline.core.math import floor_to_step, is_valid_float, round_to_step


@dataclass(frozen=True)
class AmountResult:
    """Результат конверсии размера в amount."""

    ok: bool
    amount: float
    failure: Optional[Failure]
    details: str


class AmountConverter:
    """Конверсия размера в amount в единицах sizing биржи."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics or Diagnostics()

    def reference_price(
        self, market: Market, price: Optional[float] = None, side: Optional[Side] = None
    ) -> float:
        """Цена для конверсии: явная цена ордера, иначе ask/bid/mark по стороне."""
        return price if price is not None else market.price_for_side(side)

    def convert(
        self,
        market: Market,
        profile: ExchangeProfile,
        denomination: Denomination,
        size: float,
        price: Optional[float] = None,
        side: Optional[Side] = None,
        cap: Optional[float] = None,
    ) -> AmountResult:
        """
        Конверсия размера в amount.

        Args:
            market: Снапшот рынка
            profile: Профиль биржи (order_sizing, stablecoins)
            denomination: Валюта размера
            size: Беззнаковый размер
            price: Цена ордера (None — индикативная цена рынка)
            side: Сторона ордера (для индикативной цены)
            cap: Верхняя граница в единицах sizing биржи (размер позиции для close)

        Returns:
            AmountResult с квантованным amount или отказом
        """
        reference = self.reference_price(market, price, side)

        base_size: Optional[float] = size if denomination == Denomination.BASE else None
        quote_size: Optional[float] = size if denomination == Denomination.QUOTE else None

        if denomination == Denomination.USD:
            if market.quote in profile.stablecoins:
                self.diagnostics.debug("convert_size_usd", quote=market.quote)
                quote_size = size
            elif market.usd is not None:
                self.diagnostics.debug(
                    "convert_size_pair",
                    pairs=[pair for pair in market.usd.pairs.values() if pair is not None],
                )
                base_size = size / market.usd.base
                quote_size = size / market.usd.quote
            else:
                return self._failed(FailureCode.USD_CONVERSION_UNAVAILABLE, market.id)

        if profile.order_sizing == OrderSizing.BASE:
            amount = base_size if base_size is not None else quote_size / reference
            self.diagnostics.debug("exchange_size_base", currency=market.base, amount=amount)
        else:
            raw = quote_size if quote_size is not None else base_size * reference
            amount = raw / market.contract_size
            self.diagnostics.debug("exchange_size_quote", currency=market.quote, amount=amount)

        if not is_valid_float(amount):
            return self._failed(
                FailureCode.NAN_AMOUNT,
                profile.order_sizing.value,
                details=f"base={base_size}, quote={quote_size}, price={reference}",
            )

        step = market.precision.amount
        amount = abs(amount)
        limit = None
        if cap is not None:
            limit = cap if profile.order_sizing == OrderSizing.BASE else cap / market.contract_size
            if amount > limit:
                self.diagnostics.debug("close_exceeds_pos", amount=amount, position=limit)
                amount = limit
        amount = floor_to_step(amount, step) if not market.is_derivative else round_to_step(amount, step)
        if limit is not None and amount > limit:
            amount = floor_to_step(limit, step)

        if amount < market.limits.min:
            return self._failed(FailureCode.BELOW_MIN_AMOUNT, amount, market.limits.min)
        if market.limits.max is not None and amount > market.limits.max:
            return self._failed(FailureCode.ABOVE_MAX_AMOUNT, amount, market.limits.max)

        return AmountResult(ok=True, amount=amount, failure=None, details="")

    def _failed(self, code: FailureCode, *args, details: str = "") -> AmountResult:
        failure = Failure.of(code, *args, details=details)
        self.diagnostics.failure(failure)
        return AmountResult(ok=False, amount=0.0, failure=failure, details=str(failure))
