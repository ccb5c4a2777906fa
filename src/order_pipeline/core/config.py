"""
Configuration — настройки процесса и runtime конфигурация

- PipelineSettings: настройки из окружения (pydantic-settings, префикс ORDER_PIPELINE_)
- ConfigProvider: интерфейс runtime конфигурации get/set по (scope, key).
  Хранилище внешнее; компоненты получают провайдер через конструктор.
- InMemoryConfigProvider: реализация в памяти (тесты, встраивание)

Scopes:
    "trade"           — require_maxsize
    "counter"         — warn_maxsize (счётчик предупреждений)
    "<stub>"          — maxposqty, pairmode, disablelossclose,
                        defsize, dcascale, defstoptrigger, defprofittrigger
    "<stub>:<symbol>" — ignored, listed, defsize, dcascale,
                        defstoptrigger, defprofittrigger
"""

from typing import Any, Dict, Final, Optional, Protocol, Tuple, runtime_checkable

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# CONFIG KEYS
# =============================================================================

SCOPE_TRADE: Final[str] = "trade"
SCOPE_COUNTER: Final[str] = "counter"

KEY_REQUIRE_MAXSIZE: Final[str] = "require_maxsize"
KEY_WARN_MAXSIZE: Final[str] = "warn_maxsize"
KEY_MAXPOSQTY: Final[str] = "maxposqty"
KEY_PAIRMODE: Final[str] = "pairmode"
KEY_DISABLE_LOSS_CLOSE: Final[str] = "disablelossclose"
KEY_IGNORED: Final[str] = "ignored"
KEY_LISTED: Final[str] = "listed"
KEY_DEFSIZE: Final[str] = "defsize"
KEY_DCASCALE: Final[str] = "dcascale"
KEY_DEFSTOPTRIGGER: Final[str] = "defstoptrigger"
KEY_DEFPROFITTRIGGER: Final[str] = "defprofittrigger"


def symbol_scope(stub: str, symbol: str) -> str:
    """Scope настроек символа: "<stub>:<symbol>"."""
    return f"{stub}:{symbol}"


# =============================================================================
# SETTINGS
# =============================================================================


class PipelineSettings(BaseSettings):
    """Настройки пайплайна, загружаемые из переменных окружения."""

    model_config = SettingsConfigDict(
        env_prefix="ORDER_PIPELINE_",
        case_sensitive=False,
        extra="ignore",
    )

    require_maxsize: bool = Field(
        default=True,
        description="Relative sizing требует maxsize (значение по умолчанию для scope 'trade')",
    )
    maxsize_warn_limit: int = Field(
        default=5,
        ge=0,
        description="Сколько раз предупреждать о выключенном require_maxsize",
    )
    default_layer_count: int = Field(default=5, ge=2)
    default_leverage: str = Field(default="20")
    dca_lookback_days: int = Field(
        default=7, ge=1, description="Глубина поиска начального DCA ордера"
    )
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)


# =============================================================================
# CONFIG PROVIDER
# =============================================================================


@runtime_checkable
class ConfigProvider(Protocol):
    """Runtime конфигурация: значения по (scope, key)."""

    def get(self, scope: str, key: str, default: Any = None) -> Any:
        ...

    def set(self, scope: str, key: str, value: Any) -> None:
        ...


class InMemoryConfigProvider:
    """ConfigProvider на словаре."""

    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None):
        self._values: Dict[Tuple[str, str], Any] = {}
        for scope, entries in (values or {}).items():
            for key, value in entries.items():
                self.set(scope, key, value)

    def get(self, scope: str, key: str, default: Any = None) -> Any:
        return self._values.get((scope, key.lower()), default)

    def set(self, scope: str, key: str, value: Any) -> None:
        self._values[(scope, key.lower())] = value


def lookup_symbol_then_stub(
    config: ConfigProvider, stub: str, symbol: str, key: str, default: Any = None
) -> Any:
    """Значение ключа на уровне символа, иначе на уровне stub."""
    value = config.get(symbol_scope(stub, symbol), key)
    if value is None:
        value = config.get(stub, key)
    return default if value is None else value


def as_bool(value: Any) -> bool:
    """Булево значение конфигурации ("true"/"false", 1/0, bool)."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


class ConfigValueError(ValueError):
    """Значение настройки не разбирается в ожидаемый тип."""

    def __init__(self, scope: str, key: str, value: Any):
        self.scope = scope
        self.key = key
        self.value = value
        super().__init__(f"{scope}/{key}: invalid value {value!r}")


def as_int(scope: str, key: str, value: Any) -> Optional[int]:
    """Целое значение конфигурации; None, если ключ не задан.

    Raises:
        ConfigValueError: значение не целое число
    """
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigValueError(scope, key, value) from None
