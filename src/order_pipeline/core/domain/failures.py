"""
Failures — тегированные отказы пайплайна

Пайплайн не использует исключения для управления потоком: каждая операция
возвращает результат либо Failure. Категории соответствуют стадии, на которой
команда была прервана:

- VALIDATION — некорректные/отсутствующие поля, до любых сетевых вызовов
- RISK       — отказ RiskGate, после read-only запросов, до sizing
- SIZING     — отказ sizing/построения ордера, до постановки в очередь
- ADAPTER    — отказ Execution Adapter (возвращается как есть)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FailureCategory(str, Enum):
    """Категория отказа."""

    VALIDATION = "validation"
    RISK = "risk"
    SIZING = "sizing"
    ADAPTER = "adapter"


class FailureCode(str, Enum):
    """Код отказа."""

    # Validation
    INVALID_PARAMS = "InvalidParams"
    UNKNOWN_COMMAND = "UnknownCommand"
    MARKET_NOT_FOUND = "MarketNotFound"
    INVALID_CONFIG = "InvalidConfig"

    # Risk
    MAX_POSITIONS_REACHED = "MaxPositionsReached"
    SYMBOL_BLACKLISTED = "SymbolBlacklisted"
    SYMBOL_NOT_WHITELISTED = "SymbolNotWhitelisted"
    LOSS_CLOSE_DISABLED = "LossCloseDisabled"
    HEDGE_MODE_REQUIRED = "HedgeModeRequired"
    SINGLE_MODE_REQUIRED = "SingleModeRequired"

    # Sizing / building
    AMBIGUOUS_POSITION = "AmbiguousPosition"
    NO_POSITION = "NoPosition"
    NO_POSITION_FOR_SCALE = "NoPositionForScale"
    NO_POTENTIAL_POSITION = "NoPotentialPosition"
    MAX_SIZE_REQUIRED = "MaxSizeRequired"
    OVER_MAX_SIZE = "OverMaxSize"
    SIZE_EXCEEDS_POSITION = "SizeExceedsPosition"
    RELATIVE_SIZE_NOT_ALLOWED = "RelativeSizeNotAllowed"
    USD_CONVERSION_UNAVAILABLE = "UsdConversionUnavailable"
    NAN_AMOUNT = "NaNAmount"
    BELOW_MIN_AMOUNT = "BelowMinAmount"
    ABOVE_MAX_AMOUNT = "AboveMaxAmount"
    ORDER_TOO_SMALL = "OrderTooSmall"
    ORDER_SIDE_UNKNOWN = "OrderSideUnknown"

    # Adapter
    ADAPTER_ERROR = "AdapterError"
    SUBMISSION_REJECTED = "SubmissionRejected"


_CATEGORY_BY_CODE: dict[FailureCode, FailureCategory] = {
    FailureCode.INVALID_PARAMS: FailureCategory.VALIDATION,
    FailureCode.UNKNOWN_COMMAND: FailureCategory.VALIDATION,
    FailureCode.MARKET_NOT_FOUND: FailureCategory.VALIDATION,
    FailureCode.INVALID_CONFIG: FailureCategory.VALIDATION,
    FailureCode.MAX_POSITIONS_REACHED: FailureCategory.RISK,
    FailureCode.SYMBOL_BLACKLISTED: FailureCategory.RISK,
    FailureCode.SYMBOL_NOT_WHITELISTED: FailureCategory.RISK,
    FailureCode.LOSS_CLOSE_DISABLED: FailureCategory.RISK,
    FailureCode.HEDGE_MODE_REQUIRED: FailureCategory.RISK,
    FailureCode.SINGLE_MODE_REQUIRED: FailureCategory.RISK,
    FailureCode.ADAPTER_ERROR: FailureCategory.ADAPTER,
    FailureCode.SUBMISSION_REJECTED: FailureCategory.ADAPTER,
}


@dataclass(frozen=True)
class Failure:
    """Тегированный отказ: код, категория, аргументы для диагностики."""

    code: FailureCode
    category: FailureCategory
    args: tuple[Any, ...] = field(default_factory=tuple)
    details: str = ""

    @classmethod
    def of(cls, code: FailureCode, *args: Any, details: str = "") -> "Failure":
        """Создание отказа с категорией по коду (по умолчанию SIZING)."""
        return cls(
            code=code,
            category=_CATEGORY_BY_CODE.get(code, FailureCategory.SIZING),
            args=tuple(args),
            details=details,
        )

    def __str__(self) -> str:
        suffix = f": {self.details}" if self.details else ""
        return f"{self.category.value}/{self.code.value}{suffix}"
