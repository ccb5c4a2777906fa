"""
Diagnostics — структурированные события пайплайна

Ядро не формирует текстовых сообщений: в каждой точке принятия решения
эмитится DiagnosticEvent {level, code, args} в единственный sink,
переданный через конструкторы компонентов.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable

from order_pipeline.core.domain.failures import Failure
from order_pipeline.core.logging import get_logger


class DiagnosticLevel(str, Enum):
    """Уровень события."""

    DEBUG = "debug"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class DiagnosticEvent:
    """Событие: уровень, код, аргументы."""

    level: DiagnosticLevel
    code: str
    args: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Приёмник событий."""

    def emit(self, event: DiagnosticEvent) -> None:
        ...


# Соответствие уровня события методу structlog логгера
_LOG_METHOD = {
    DiagnosticLevel.DEBUG: "debug",
    DiagnosticLevel.NOTICE: "info",
    DiagnosticLevel.WARNING: "warning",
    DiagnosticLevel.ERROR: "error",
    DiagnosticLevel.SUCCESS: "info",
}


class StructlogSink:
    """Sink, пишущий события в structlog."""

    def __init__(self, name: str = "order_pipeline"):
        self._logger = get_logger(name)

    def emit(self, event: DiagnosticEvent) -> None:
        log = getattr(self._logger, _LOG_METHOD[event.level])
        log(event.code, level_name=event.level.value, **event.args)


class CollectingSink:
    """Sink, накапливающий события в памяти (с опциональной пересылкой)."""

    def __init__(self, inner: Optional[DiagnosticsSink] = None):
        self.events: List[DiagnosticEvent] = []
        self._inner = inner

    def emit(self, event: DiagnosticEvent) -> None:
        self.events.append(event)
        if self._inner is not None:
            self._inner.emit(event)

    def codes(self, level: Optional[DiagnosticLevel] = None) -> List[str]:
        """Коды событий (опционально только заданного уровня)."""
        return [e.code for e in self.events if level is None or e.level == level]

    def find(self, code: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.code == code]

    def clear(self) -> None:
        self.events.clear()


class Diagnostics:
    """
    Обёртка над sink с методами по уровням.

    Examples:
        diagnostics.warning("max_size_clamped", target=1000.0, max=1000.0)
    """

    def __init__(self, sink: Optional[DiagnosticsSink] = None):
        self.sink: DiagnosticsSink = sink if sink is not None else StructlogSink()

    def emit(self, level: DiagnosticLevel, code: str, **args: Any) -> None:
        self.sink.emit(DiagnosticEvent(level=level, code=code, args=args))

    def debug(self, code: str, **args: Any) -> None:
        self.emit(DiagnosticLevel.DEBUG, code, **args)

    def notice(self, code: str, **args: Any) -> None:
        self.emit(DiagnosticLevel.NOTICE, code, **args)

    def warning(self, code: str, **args: Any) -> None:
        self.emit(DiagnosticLevel.WARNING, code, **args)

    def error(self, code: str, **args: Any) -> None:
        self.emit(DiagnosticLevel.ERROR, code, **args)

    def success(self, code: str, **args: Any) -> None:
        self.emit(DiagnosticLevel.SUCCESS, code, **args)

    def failure(self, failure: Failure) -> None:
        """Событие отказа: код отказа, категория, аргументы."""
        self.error(
            failure.code.value,
            category=failure.category.value,
            args=list(failure.args),
            details=failure.details,
        )
