"""
Numerical Safeguards — шаговое квантование цен и объёмов

Модуль обеспечивает численную устойчивость операций над ценами и объёмами:
- Округление / floor до шага рынка (precision.price, precision.amount)
- Проверка кратности шагу с учётом машинной точности
- NaN/Inf детекция для предотвращения распространения невалидных значений
- Epsilon-защиты для сравнений float

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Результат квантования всегда кратен шагу (в пределах EPS_STEP_RATIO)
2. Количество знаков после запятой результата не превышает точность шага
3. NaN/Inf никогда не квантуются молча (решение принимает вызывающий код)
4. Все операции детерминированы и воспроизводимы
"""

import math
from decimal import Decimal
from typing import Final

# =============================================================================
# EPSILON-ПАРАМЕТРЫ
# =============================================================================

# Допуск на отношение value / step перед floor.
# 0.3 / 0.1 = 2.9999999999999996, без допуска floor даст 2 шага вместо 3.
EPS_STEP_RATIO: Final[float] = 1e-9

# Epsilon для сравнения float (относительная толерантность)
EPS_FLOAT_COMPARE_REL: Final[float] = 1e-9

# Epsilon для сравнения float (абсолютная толерантность)
EPS_FLOAT_COMPARE_ABS: Final[float] = 1e-12


# =============================================================================
# NaN/Inf ДЕТЕКЦИЯ
# =============================================================================


def is_valid_float(value: float) -> bool:
    """
    Проверка, является ли float валидным (не NaN, не Inf).

    Args:
        value: Проверяемое значение

    Returns:
        True если значение валидное (finite), False если NaN или Inf
    """
    return math.isfinite(value)


# =============================================================================
# EPSILON-СРАВНЕНИЯ FLOAT
# =============================================================================


def is_close(
    a: float,
    b: float,
    rel_tol: float = EPS_FLOAT_COMPARE_REL,
    abs_tol: float = EPS_FLOAT_COMPARE_ABS,
) -> bool:
    """
    Сравнение float с учётом машинной точности.

    Алгоритм:
        abs(a - b) <= max(rel_tol * max(abs(a), abs(b)), abs_tol)

    Examples:
        >>> is_close(1.0, 1.0 + 1e-10)
        True
        >>> is_close(1.0, 1.1)
        False
    """
    return math.isclose(a, b, rel_tol=rel_tol, abs_tol=abs_tol)


def is_zero(value: float, tol: float = EPS_FLOAT_COMPARE_ABS) -> bool:
    """Проверка, близко ли значение к нулю с учётом толерантности."""
    return abs(value) <= tol


def sign_of(value: float) -> int:
    """
    Знак числа: -1, 0 или +1.

    Examples:
        >>> sign_of(-3.5)
        -1
        >>> sign_of(0.0)
        0
    """
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def clamp(
    value: float,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    """
    Ограничение значения в заданном диапазоне.

    Examples:
        >>> clamp(15.0, 0.0, 10.0)
        10.0
    """
    result = value

    if min_value is not None:
        result = max(result, min_value)

    if max_value is not None:
        result = min(result, max_value)

    return result


# =============================================================================
# ШАГОВОЕ КВАНТОВАНИЕ
# =============================================================================


def step_decimals(step: float) -> int:
    """
    Количество знаков после запятой, которое задаёт шаг.

    Использует десятичное представление шага, а не двоичное,
    поэтому 0.1 → 1, а не 55.

    Args:
        step: Шаг квантования (> 0)

    Returns:
        Число знаков после запятой (0 для целых шагов)

    Examples:
        >>> step_decimals(0.001)
        3
        >>> step_decimals(0.5)
        1
        >>> step_decimals(1e-8)
        8
        >>> step_decimals(10.0)
        0
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    exponent = Decimal(repr(step)).normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        raise ValueError(f"step must be finite, got {step}")
    return max(0, -exponent)


def round_to_step(value: float, step: float) -> float:
    """
    Округление значения до ближайшего кратного шага.

    Округление "half away from zero": 12.5 шагов → 13 шагов.
    Результат дополнительно нормализуется до точности шага, чтобы убрать
    артефакты двоичного представления (0.30000000000000004 → 0.3).

    Args:
        value: Значение для округления
        step: Шаг квантования (precision рынка)

    Returns:
        Округлённое значение, кратное step

    Examples:
        >>> round_to_step(50512.345, 0.5)
        50512.5
        >>> round_to_step(0.0123456, 0.001)
        0.012
        >>> round_to_step(125.0, 10.0)
        130.0
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    ratio = value / step

    if ratio >= 0:
        steps = math.floor(ratio + 0.5 + EPS_STEP_RATIO)
    else:
        steps = math.ceil(ratio - 0.5 - EPS_STEP_RATIO)

    return round(steps * step, step_decimals(step))


def floor_to_step(value: float, step: float) -> float:
    """
    Floor значения до кратного шага (в сторону нуля для положительных).

    Используется для spot рынков: нельзя продать больше, чем есть на балансе.

    Args:
        value: Значение для квантования
        step: Шаг квантования

    Returns:
        Наибольшее кратное step, не превышающее value (с допуском EPS_STEP_RATIO)

    Examples:
        >>> floor_to_step(0.0199, 0.001)
        0.019
        >>> floor_to_step(0.3, 0.1)
        0.3
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    steps = math.floor(value / step + EPS_STEP_RATIO)
    return round(steps * step, step_decimals(step))


def is_multiple_of_step(value: float, step: float, rel_tol: float = 1e-6) -> bool:
    """
    Проверка кратности значения шагу.

    Args:
        value: Проверяемое значение
        step: Шаг квантования
        rel_tol: Допуск в долях шага

    Returns:
        True если value mod step ≈ 0

    Examples:
        >>> is_multiple_of_step(0.012, 0.001)
        True
        >>> is_multiple_of_step(0.0125, 0.001)
        False
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    ratio = value / step
    return abs(ratio - round(ratio)) <= rel_tol
