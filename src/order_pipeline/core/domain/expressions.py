"""
Expressions — типизированные выражения размера и цены

Командный мини-язык разбирается один раз на границе в value-объекты:
- SizingExpression: "500", "+0.1", "2x", "-50%", scale "1.5x"
- PriceExpression:  "50000", "+1%", "-25", "+1%,+3%,4", "100,200"

Парсеры тотальные: либо возвращают выражение, либо выбрасывают ValueError
(pydantic field_validator превращает его в ValidationError). Ниже границы
строки повторно не разбираются, NaN не пропагирует.
"""

import re
from enum import Enum
from typing import Any, Final, Optional

from pydantic import BaseModel, Field, model_validator

from order_pipeline.core.math import is_valid_float


# =============================================================================
# CONSTANTS
# =============================================================================

# Количество уровней layered ордера, если третий параметр не указан
DEFAULT_LAYER_COUNT: Final[int] = 5

# Минимальное количество уровней layered ордера
MIN_LAYER_COUNT: Final[int] = 2

_NUMBER_RE: Final = re.compile(r"^(\d+(\.\d*)?|\.\d+)([e][-+]?\d+)?$")


# =============================================================================
# ENUMS
# =============================================================================


class Denomination(str, Enum):
    """Валюта, в которой выражен размер."""

    BASE = "base"
    QUOTE = "quote"
    USD = "usd"


class SizingUnit(str, Enum):
    """Форма выражения размера."""

    BASE = "base"
    QUOTE = "quote"
    USD = "usd"
    FACTOR = "factor"
    RELATIVE = "relative"
    SCALE = "scale"


class FactorKind(str, Enum):
    """Суффикс factor sizing."""

    MULTIPLE = "x"
    PERCENT = "%"


class PriceKind(str, Enum):
    """Форма выражения цены."""

    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    LAYERED = "layered"


# =============================================================================
# SIZING EXPRESSION
# =============================================================================


class SizingExpression(BaseModel):
    """
    Разобранное выражение размера.

    Инварианты:
    - sign присутствует только у relative и factor форм
    - relative всегда имеет sign
    - factor_kind присутствует только у factor
    """

    unit: SizingUnit = Field(..., description="Форма выражения")
    magnitude: float = Field(..., ge=0, description="Абсолютная величина")
    sign: Optional[int] = Field(None, description="+1 / -1 для relative/factor")
    denomination: Denomination = Field(
        Denomination.USD, description="Валюта размера (для relative — к чему относится)"
    )
    factor_kind: Optional[FactorKind] = Field(None, description="x или % для factor")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_form(self) -> "SizingExpression":
        if self.sign is not None and self.sign not in (-1, 1):
            raise ValueError(f"sign must be +1 or -1, got {self.sign}")
        if self.sign is not None and self.unit not in (SizingUnit.RELATIVE, SizingUnit.FACTOR):
            raise ValueError(f"sign is only allowed for relative/factor sizing, got {self.unit.value}")
        if self.unit == SizingUnit.RELATIVE and self.sign is None:
            raise ValueError("relative sizing requires a sign")
        if (self.factor_kind is None) == (self.unit == SizingUnit.FACTOR):
            raise ValueError("factor_kind is required for factor sizing and only for it")
        return self

    @property
    def is_relative(self) -> bool:
        return self.unit == SizingUnit.RELATIVE

    @property
    def is_factor(self) -> bool:
        return self.unit == SizingUnit.FACTOR

    @property
    def is_scale(self) -> bool:
        return self.unit == SizingUnit.SCALE

    @property
    def signed_magnitude(self) -> float:
        """magnitude со знаком (без знака считается положительным)."""
        return (self.sign or 1) * self.magnitude

    @property
    def multiplier(self) -> float:
        """Множитель factor: 2x → 2.0, 50% → 0.5."""
        if self.factor_kind == FactorKind.PERCENT:
            return self.magnitude / 100.0
        return self.magnitude

    @classmethod
    def absolute(cls, denomination: Denomination, value: float) -> "SizingExpression":
        return cls(
            unit=SizingUnit(denomination.value),
            magnitude=value,
            denomination=denomination,
        )

    @classmethod
    def relative(cls, denomination: Denomination, signed_value: float) -> "SizingExpression":
        return cls(
            unit=SizingUnit.RELATIVE,
            magnitude=abs(signed_value),
            sign=-1 if signed_value < 0 else 1,
            denomination=denomination,
        )


# =============================================================================
# PRICE EXPRESSION
# =============================================================================


class PriceExpression(BaseModel):
    """
    Разобранное выражение цены.

    - ABSOLUTE: value — абсолютная цена (> 0)
    - RELATIVE: value — величина сдвига, sign — направление,
      is_percent — процент от референсной цены. Без sign допускается только
      процентный триггер (направление выбирает вызывающий код).
    - LAYERED: bounds — две границы (ABSOLUTE/RELATIVE), levels — число уровней
    """

    kind: PriceKind
    value: Optional[float] = Field(None, ge=0)
    sign: Optional[int] = None
    is_percent: bool = False
    bounds: Optional[tuple["PriceExpression", "PriceExpression"]] = None
    levels: Optional[int] = Field(None, ge=MIN_LAYER_COUNT)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_form(self) -> "PriceExpression":
        if self.kind == PriceKind.LAYERED:
            if self.bounds is None or self.levels is None:
                raise ValueError("layered price requires two bounds and a level count")
            if any(bound.is_layered for bound in self.bounds):
                raise ValueError("layered price bounds cannot be layered")
            return self
        if self.value is None:
            raise ValueError(f"{self.kind.value} price requires a value")
        if self.kind == PriceKind.ABSOLUTE:
            if self.value <= 0:
                raise ValueError(f"absolute price must be positive, got {self.value}")
            if self.sign is not None or self.is_percent:
                raise ValueError("absolute price cannot carry a sign or percentage")
        if self.kind == PriceKind.RELATIVE and self.sign is None and not self.is_percent:
            raise ValueError("unsigned relative price must be a percentage")
        return self

    @property
    def is_relative(self) -> bool:
        return self.kind == PriceKind.RELATIVE

    @property
    def is_layered(self) -> bool:
        return self.kind == PriceKind.LAYERED

    @property
    def is_advanced(self) -> bool:
        """Relative или layered цена (требует разрешения через PriceResolver)."""
        return self.kind != PriceKind.ABSOLUTE

    def with_sign(self, sign: int) -> "PriceExpression":
        """Копия relative выражения с явным знаком."""
        return self.model_copy(update={"sign": sign})

    @classmethod
    def absolute(cls, value: float) -> "PriceExpression":
        return cls(kind=PriceKind.ABSOLUTE, value=value)

    @classmethod
    def relative(cls, sign: Optional[int], value: float, is_percent: bool = False) -> "PriceExpression":
        return cls(kind=PriceKind.RELATIVE, sign=sign, value=value, is_percent=is_percent)


# =============================================================================
# PARSERS
# =============================================================================


def _to_text(raw: Any, field: str) -> str:
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"{field}: expected a number or string, got {raw!r}")
    if isinstance(raw, (int, float)):
        if not is_valid_float(float(raw)):
            raise ValueError(f"{field}: value must be finite, got {raw!r}")
        return repr(raw) if isinstance(raw, float) else str(raw)
    if not isinstance(raw, str):
        raise ValueError(f"{field}: expected a number or string, got {type(raw).__name__}")
    text = raw.strip().lower().replace(" ", "")
    if not text:
        raise ValueError(f"{field}: empty value")
    return text


def parse_number(text: str, field: str) -> float:
    """
    Строгий разбор неотрицательного числа без знака.

    Raises:
        ValueError: Если строка не является числом ("abc", "1..2", "nan", "inf")
    """
    if not _NUMBER_RE.match(text):
        raise ValueError(f"{field}: {text!r} is not a valid number")
    return float(text)


def split_sign(text: str) -> tuple[Optional[int], str]:
    """
    Отделение ведущего оператора.

    Examples:
        >>> split_sign("+5%")
        (1, '5%')
        >>> split_sign("100")
        (None, '100')
    """
    if text[:1] == "+":
        return 1, text[1:]
    if text[:1] == "-":
        return -1, text[1:]
    return None, text


def parse_sizing(raw: Any, field: str) -> SizingExpression:
    """
    Разбор выражения размера из поля команды.

    Args:
        raw: Значение поля ("500", 500, "+0.1", "2x", "-50%", "1.5x")
        field: Имя поля: base / quote / usd / size / scale
            (size — alias для usd)

    Returns:
        SizingExpression

    Raises:
        ValueError: Некорректное значение или factor на base/quote
    """
    text = _to_text(raw, field)

    if field == "scale":
        if text.endswith("x"):
            text = text[:-1]
        value = parse_number(text, field)
        if value <= 0:
            raise ValueError(f"scale must be positive, got {value}")
        return SizingExpression(unit=SizingUnit.SCALE, magnitude=value)

    if field in ("size", "usd"):
        denomination = Denomination.USD
    elif field in ("base", "quote"):
        denomination = Denomination(field)
    else:
        raise ValueError(f"unknown sizing field: {field}")

    sign, body = split_sign(text)

    if body[-1:] in ("x", "%"):
        if denomination != Denomination.USD:
            raise ValueError(f"{field}: factor sizing is only supported for size/usd")
        return SizingExpression(
            unit=SizingUnit.FACTOR,
            magnitude=parse_number(body[:-1], field),
            sign=sign,
            denomination=denomination,
            factor_kind=FactorKind(body[-1]),
        )

    value = parse_number(body, field)
    if sign is not None:
        return SizingExpression.relative(denomination, sign * value)
    return SizingExpression.absolute(denomination, value)


def _parse_price_term(
    text: str,
    field: str,
    inherit_sign: Optional[int] = None,
    allow_unsigned_percent: bool = False,
) -> PriceExpression:
    sign, body = split_sign(text)
    if sign is None:
        sign = inherit_sign

    is_percent = body.endswith("%")
    if is_percent:
        body = body[:-1]
    value = parse_number(body, field)

    if sign is None and not is_percent:
        return PriceExpression.absolute(value)
    if sign is None and not allow_unsigned_percent:
        raise ValueError(f"{field}: percentage price must be relative (+/-)")
    return PriceExpression.relative(sign, value, is_percent)


def parse_price(raw: Any, field: str = "price", default_levels: int = DEFAULT_LAYER_COUNT) -> PriceExpression:
    """
    Разбор выражения цены ордера.

    Форматы:
        "50000"          — абсолютная цена
        "+1%", "-25"     — relative (процент от ask/bid или литеральный сдвиг)
        "100,200"        — layered, default_levels уровней
        "+1%,+3%,4"      — layered с relative границами, 4 уровня

    Вторая граница без знака наследует знак первой ("+1%,3%" ≡ "+1%,+3%").

    Raises:
        ValueError: Некорректный формат
    """
    text = _to_text(raw, field)

    if "," not in text:
        return _parse_price_term(text, field)

    parts = text.split(",")
    if len(parts) not in (2, 3):
        raise ValueError(f"{field}: layered price must be 'min,max[,count]', got {text!r}")

    levels = default_levels
    if len(parts) == 3:
        if not parts[2].isdigit():
            raise ValueError(f"{field}: layer count must be an integer, got {parts[2]!r}")
        levels = int(parts[2])
    if levels < MIN_LAYER_COUNT:
        raise ValueError(f"{field}: layer count must be at least {MIN_LAYER_COUNT}, got {levels}")

    first = _parse_price_term(parts[0], field)
    second = _parse_price_term(parts[1], field, inherit_sign=first.sign)

    return PriceExpression(kind=PriceKind.LAYERED, bounds=(first, second), levels=levels)


def parse_trigger(raw: Any, field: str) -> PriceExpression:
    """
    Разбор триггера условного ордера (stoptrigger, profittrigger, trailstop).

    В отличие от parse_price допускает процент без знака ("2%"):
    направление определяется по стороне ордера. Layered триггеры запрещены.
    """
    text = _to_text(raw, field)
    if "," in text:
        raise ValueError(f"{field}: layered values are not supported for triggers")
    return _parse_price_term(text, field, allow_unsigned_percent=True)
