"""
Logging — структурированное логирование (structlog поверх stdlib logging)
"""

import logging
import sys
from typing import Optional

import structlog

from order_pipeline.core.config import PipelineSettings

# Защита от повторной конфигурации
_logging_configured = False


def configure_logging(settings: Optional[PipelineSettings] = None) -> None:
    """
    Настройка structlog.

    Args:
        settings: Настройки пайплайна (log_level, log_json); по умолчанию из env
    """
    global _logging_configured

    if _logging_configured:
        return

    settings = settings or PipelineSettings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.upper(),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _logging_configured = True


def get_logger(name: str, **context) -> structlog.stdlib.BoundLogger:
    """Логгер с опциональным привязанным контекстом (stub, symbol, ...)."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
