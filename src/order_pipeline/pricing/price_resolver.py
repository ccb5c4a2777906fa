"""
PriceResolver — выражение цены → абсолютные цены

- ABSOLUTE: округление до шага цены рынка
- RELATIVE: reference ± delta; delta — литерал или процент от reference.
  reference = ask для "+", bid для "-", если не задан явно
- LAYERED: границы разрешаются как ABSOLUTE/RELATIVE, затем N уровней
  равномерно от min до max включительно; первый и последний уровни
  в точности равны округлённым границам
"""

from dataclasses import dataclass, field
from typing import Optional

from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.expressions import PriceExpression, PriceKind
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.math import is_valid_float, round_to_step


@dataclass(frozen=True)
class PriceResult:
    """
    Результат PriceResolver.

    prices — одна цена для ABSOLUTE/RELATIVE, levels цен (по возрастанию)
    для LAYERED.
    """

    ok: bool
    failure: Optional[Failure]
    prices: tuple[float, ...] = field(default_factory=tuple)
    is_layered: bool = False
    details: str = ""

    @property
    def price(self) -> Optional[float]:
        """Единственная цена (первый уровень для layered)."""
        return self.prices[0] if self.prices else None


class PriceResolver:
    """Разрешение выражений цены в абсолютные цены рынка."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics or Diagnostics()

    def resolve(
        self,
        expression: PriceExpression,
        market: Market,
        reference: Optional[float] = None,
    ) -> PriceResult:
        """
        Разрешение выражения.

        Args:
            expression: Выражение цены
            market: Снапшот рынка (bid/ask, шаг цены)
            reference: Явная референсная цена для relative выражений

        Returns:
            PriceResult
        """
        if expression.kind == PriceKind.LAYERED:
            return self._resolve_layered(expression, market, reference)

        price = self._resolve_single(expression, market, reference)
        if price is None:
            return self._failed(expression)
        return PriceResult(ok=True, failure=None, prices=(price,))

    def relative_price(
        self, expression: PriceExpression, market: Market, reference: Optional[float] = None
    ) -> Optional[float]:
        """Абсолютная цена для одиночного выражения или None, если она невалидна."""
        return self._resolve_single(expression, market, reference)

    def offset(
        self,
        expression: PriceExpression,
        market: Market,
        reference: float,
        default_sign: int = 1,
    ) -> float:
        """
        Знаковый сдвиг от reference (для trailing stop), округлённый до шага.

        Выражение без знака получает default_sign.

        Examples:
            "-2%" при reference 50000 → -1000.0
            "2%" при reference 50000, default_sign=-1 → -1000.0
        """
        magnitude = expression.value * reference / 100.0 if expression.is_percent else expression.value
        sign = expression.sign if expression.sign is not None else default_sign
        return round_to_step(sign * magnitude, market.precision.price)

    # -------------------------------------------------------------------------

    def _resolve_single(
        self, expression: PriceExpression, market: Market, reference: Optional[float]
    ) -> Optional[float]:
        step = market.precision.price

        if expression.kind == PriceKind.ABSOLUTE:
            price = round_to_step(expression.value, step)
            return price if price > 0 else None

        if expression.sign is None:
            # Процент без знака: направление должен задать вызывающий код
            return None

        if reference is None:
            reference = market.ask if expression.sign > 0 else market.bid

        delta = expression.value * reference / 100.0 if expression.is_percent else expression.value
        price = reference + expression.sign * delta
        if not is_valid_float(price):
            return None

        price = round_to_step(price, step)
        self.diagnostics.debug(
            "convert_relative_price",
            reference=reference,
            sign=expression.sign,
            value=expression.value,
            percent=expression.is_percent,
            price=price,
        )
        return price if price > 0 else None

    def _resolve_layered(
        self, expression: PriceExpression, market: Market, reference: Optional[float]
    ) -> PriceResult:
        first, second = expression.bounds
        levels = expression.levels

        low = self._resolve_single(first, market, reference)
        high = self._resolve_single(second, market, reference)
        if low is None or high is None:
            return self._failed(expression)

        low, high = min(low, high), max(low, high)
        step = market.precision.price
        variance = (high - low) / (levels - 1)

        prices = [round_to_step(low + variance * i, step) for i in range(levels)]
        prices[0] = low
        prices[-1] = high

        self.diagnostics.debug("convert_layered", levels=levels, low=low, high=high)
        return PriceResult(ok=True, failure=None, prices=tuple(prices), is_layered=True)

    def _failed(self, expression: PriceExpression) -> PriceResult:
        failure = Failure.of(
            FailureCode.INVALID_PARAMS, "price", details=f"unresolvable price {expression.kind.value}"
        )
        self.diagnostics.failure(failure)
        return PriceResult(ok=False, failure=failure, details=str(failure))
