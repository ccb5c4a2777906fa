"""
SizeResolver — целевой размер позиции и дельта ордера

Правила (по порядку):
 1. size ≡ usd
 2. Factor (x / %): база = |позиция в USD|, если у фактора есть знак или
    команда close (знак на close игнорируется); иначе база = |equity|.
    Результат округляется до 0.05 и сохраняет исходный знак.
 3. scale: требует открытой позиции; target = позиция в USD × scale
 4. Relative (+/-): только long/short; требует maxsize, если
    trade:require_maxsize не выключен.
    target = current + d × (±magnitude), d = +1 для long, -1 для short
 5. signalsize < 100 масштабирует запрошенную величину
 6. target по команде: buy / sell / long / short / close
 7. maxsize clamp
 8. Overshoot guard для простых long/short
 9. Flip guard для relative long/short: target = 0, is_close
10. Flip detection (только предупреждение)
11. Close до нуля: точный размер позиции в единицах биржи
12. order_size = |target - current|, side = buy если target ≥ current

Бизнес-правило базы factor sizing асимметрично намеренно: без знака фактор
означает долю equity, со знаком — долю того, что уже удерживается.
"""

from dataclasses import dataclass
from typing import Final, Optional

from order_pipeline.core.config import (
    KEY_REQUIRE_MAXSIZE,
    KEY_WARN_MAXSIZE,
    SCOPE_COUNTER,
    SCOPE_TRADE,
    ConfigProvider,
    InMemoryConfigProvider,
    as_bool,
    as_int,
)
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.commands import Verb
from order_pipeline.core.domain.exchange import OrderSizing
from order_pipeline.core.domain.expressions import Denomination, SizingExpression, SizingUnit
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.order import Side
from order_pipeline.core.domain.position import Position, PositionDirection
from order_pipeline.core.math import is_valid_float, round_to_step


# =============================================================================
# CONSTANTS
# =============================================================================

# Шаг округления factor sizing (USD)
FACTOR_ROUNDING_STEP: Final[float] = 0.05

# Полное закрытие без размера
FULL_CLOSE: Final[SizingExpression] = SizingExpression(
    unit=SizingUnit.FACTOR,
    magnitude=100.0,
    denomination=Denomination.USD,
    factor_kind="%",
)


# =============================================================================
# RESULT / CONFIG
# =============================================================================


@dataclass(frozen=True)
class SizeResult:
    """Результат SizeResolver."""

    ok: bool
    failure: Optional[Failure]

    sizing: Denomination
    order_size: float  # |target - current|, в единицах sizing
    side: Optional[Side]

    current: float  # Знаковый текущий размер
    target: float  # Знаковый целевой размер

    is_close: bool
    is_flip: bool
    is_layered: bool
    is_relative: bool

    details: str

    # Для close: |позиция| в единицах sizing биржи (верхняя граница amount)
    position_size: Optional[float] = None


@dataclass(frozen=True)
class SizeResolverConfig:
    """Конфигурация SizeResolver."""

    # Значение trade:require_maxsize, если в ConfigProvider ничего нет
    require_maxsize_default: bool = True
    # Сколько раз предупреждать о выключенном require_maxsize
    maxsize_warn_limit: int = 5


# =============================================================================
# SIZE RESOLVER
# =============================================================================


class SizeResolver:
    """Разрешение выражения размера в целевую позицию и дельту ордера."""

    def __init__(
        self,
        config_provider: Optional[ConfigProvider] = None,
        diagnostics: Optional[Diagnostics] = None,
        config: Optional[SizeResolverConfig] = None,
    ):
        self.config_provider = config_provider or InMemoryConfigProvider()
        self.diagnostics = diagnostics or Diagnostics()
        self.config = config or SizeResolverConfig()

    def resolve(
        self,
        verb: Verb,
        sizing: Optional[SizingExpression],
        position: Position,
        equity_usd: float,
        order_sizing: OrderSizing = OrderSizing.BASE,
        maxsize: Optional[float] = None,
        signalsize: Optional[float] = None,
        is_layered: bool = False,
    ) -> SizeResult:
        """
        Разрешение размера.

        Args:
            verb: Команда (long, short, buy, sell, close)
            sizing: Выражение размера (None допустимо только для close)
            position: Текущая позиция (flat, если нет)
            equity_usd: Доступная equity в USD
            order_sizing: Единица amount на бирже
            maxsize: Максимальный размер позиции (в единицах sizing)
            signalsize: Сила сигнала, %
            is_layered: Ордер будет разбит на уровни

        Returns:
            SizeResult
        """
        self.diagnostics.debug(
            "position_size", usd=round(position.signed_size(Denomination.USD), 2)
        )
        self.diagnostics.debug("balance_avail", usd=round(equity_usd, 2))

        # Close без размера: полное закрытие
        full_close = verb == Verb.CLOSE and sizing is None
        if full_close:
            sizing = FULL_CLOSE
        if sizing is None:
            return self._failed(FailureCode.INVALID_PARAMS, verb.value, details="no size given")

        # 2. Factor → usd (relative при наличии знака)
        if sizing.is_factor:
            sizing = self._factored(verb, sizing, position, equity_usd)

        denomination = sizing.denomination
        current = position.signed_size(denomination)
        requested = sizing.magnitude
        is_relative = False
        is_scale = False

        # 4. Relative
        if sizing.is_relative:
            if verb not in (Verb.LONG, Verb.SHORT):
                return self._failed(FailureCode.RELATIVE_SIZE_NOT_ALLOWED, verb.value)
            if maxsize is None and not self._maxsize_optional():
                return self._failed(FailureCode.MAX_SIZE_REQUIRED, verb.value)
            is_relative = True

        # 3. Scale
        if sizing.is_scale:
            if not position.is_open:
                return self._failed(FailureCode.NO_POSITION_FOR_SCALE, position.symbol)
            denomination = Denomination.USD
            current = position.signed_size(Denomination.USD)
            requested = current * sizing.magnitude
            is_scale = True

        # 5. Signal dampening
        if verb.is_open and signalsize is not None and signalsize < 100:
            adjusted = requested * (signalsize / 100.0)
            if denomination == Denomination.USD:
                adjusted = float(round(adjusted))
            self.diagnostics.warning(
                "signal_size", requested=requested, signalsize=signalsize, adjusted=adjusted
            )
            requested = adjusted

        # 6. Target
        is_close = False
        if verb == Verb.CLOSE:
            if not position.is_open:
                return self._failed(FailureCode.NO_POSITION, position.symbol)
            if full_close:
                target = 0.0
            elif position.direction == PositionDirection.LONG:
                target = current - abs(requested)
            else:
                target = current + abs(requested)
            is_close = True
        elif is_relative:
            direction = 1 if verb == Verb.LONG else -1
            target = current + direction * (sizing.sign or 1) * requested
        elif verb == Verb.BUY:
            target = current + requested
        elif verb == Verb.SELL:
            target = current - requested
        elif verb == Verb.LONG:
            target = requested
        else:
            target = -abs(requested)

        # 7. Max size
        if maxsize is not None:
            signed_max = -abs(maxsize) if verb in (Verb.SHORT, Verb.SELL) else abs(maxsize)
            exceeds = (
                (is_relative and verb == Verb.LONG and target > signed_max)
                or (is_relative and verb == Verb.SHORT and target < signed_max)
                or (verb == Verb.BUY and target > signed_max)
                or (verb == Verb.SELL and target < signed_max)
            )
            if exceeds:
                target = signed_max
                remaining = abs(target) - abs(current)
                if remaining < 0:
                    return self._failed(FailureCode.OVER_MAX_SIZE, requested, maxsize)
                self.diagnostics.warning(
                    "order_over_maxsize", requested=requested, size=remaining, maxsize=maxsize
                )

        # 8. Overshoot guard
        if (
            verb in (Verb.LONG, Verb.SHORT)
            and not is_layered
            and not is_relative
            and not is_scale
            and ((verb == Verb.LONG and target < current) or (verb == Verb.SHORT and target > current))
        ):
            return self._failed(FailureCode.SIZE_EXCEEDS_POSITION, verb.value, target, current)

        # 9. Flip guard
        if is_relative and ((verb == Verb.LONG and target < 0) or (verb == Verb.SHORT and target > 0)):
            self.diagnostics.warning("order_rel_close", target=target)
            target = 0.0
            is_close = True

        # Close не может пройти через ноль
        if verb == Verb.CLOSE and ((target > 0 > current) or (target < 0 < current)):
            self.diagnostics.debug("close_exceeds_pos", requested=requested, current=current)
            target = 0.0

        # 10. Flip detection
        is_flip = (position.direction == PositionDirection.LONG and target < 0) or (
            position.direction == PositionDirection.SHORT and target > 0
        )
        if is_flip:
            self.diagnostics.warning("order_will_flip", direction=position.direction.value)

        # 11. Close до нуля в единицах биржи
        if verb == Verb.CLOSE and target == 0:
            denomination = order_sizing.denomination
            current = position.signed_size(denomination)
            target = 0.0

        if not is_valid_float(target) or not is_valid_float(current):
            return self._failed(FailureCode.NAN_AMOUNT, denomination.value, details="target")

        # 12. Delta
        delta = target - current
        side = Side.BUY if delta >= 0 else Side.SELL
        order_size = abs(delta)

        position_size = None
        if verb == Verb.CLOSE:
            position_size = abs(position.size(order_sizing.denomination))

        if not is_layered:
            self.diagnostics.notice(
                "order_sizing",
                sizing=denomination.value,
                current=current,
                target=target,
                side=side.value,
                size=order_size,
            )

        return SizeResult(
            ok=True,
            failure=None,
            sizing=denomination,
            order_size=order_size,
            side=side,
            current=current,
            target=target,
            is_close=is_close,
            is_flip=is_flip,
            is_layered=is_layered,
            is_relative=is_relative,
            details="",
            position_size=position_size,
        )

    # -------------------------------------------------------------------------

    def _factored(
        self, verb: Verb, sizing: SizingExpression, position: Position, equity_usd: float
    ) -> SizingExpression:
        """Factor → usd выражение: доля позиции (знак или close) или доля equity."""
        position_usd = abs(position.size(Denomination.USD))
        if verb == Verb.CLOSE:
            basis, basis_kind, sign = position_usd, "position", None
        elif sizing.sign is not None:
            basis, basis_kind, sign = position_usd, "position", sizing.sign
        else:
            basis, basis_kind, sign = abs(equity_usd), "balance", None

        value = round_to_step(basis * sizing.multiplier, FACTOR_ROUNDING_STEP)
        self.diagnostics.debug(
            "order_size_factor",
            factor=sizing.magnitude,
            kind=sizing.factor_kind.value,
            basis=basis_kind,
            size=value,
        )
        if sign is None:
            return SizingExpression.absolute(Denomination.USD, value)
        return SizingExpression.relative(Denomination.USD, sign * value)

    def _maxsize_optional(self) -> bool:
        """
        trade:require_maxsize выключен: разрешить relative без maxsize,
        предупредив не более maxsize_warn_limit раз.
        """
        require = as_bool(
            self.config_provider.get(
                SCOPE_TRADE, KEY_REQUIRE_MAXSIZE, self.config.require_maxsize_default
            )
        )
        if require:
            return False

        raw = self.config_provider.get(SCOPE_COUNTER, KEY_WARN_MAXSIZE)
        warned = as_int(SCOPE_COUNTER, KEY_WARN_MAXSIZE, raw) or 0
        if warned < self.config.maxsize_warn_limit:
            warned += 1
            self.diagnostics.warning(
                "maxsize_disabled", count=warned, limit=self.config.maxsize_warn_limit
            )
            self.config_provider.set(SCOPE_COUNTER, KEY_WARN_MAXSIZE, warned)
        return True

    def _failed(self, code: FailureCode, *args, details: str = "") -> SizeResult:
        failure = Failure.of(code, *args, details=details)
        self.diagnostics.failure(failure)
        return SizeResult(
            ok=False,
            failure=failure,
            sizing=Denomination.USD,
            order_size=0.0,
            side=None,
            current=0.0,
            target=0.0,
            is_close=False,
            is_flip=False,
            is_layered=False,
            is_relative=False,
            details=str(failure),
        )
