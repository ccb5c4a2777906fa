"""
JSON Schema Contract Validators

Валидация параметров команд по формальным JSON Schema контрактам до любых
сетевых вызовов. Ключи команды case-insensitive: перед проверкой
нормализуются в lowercase.

Схемы (core/contracts/schema/):
- order_open.json        — long, short, buy, sell
- order_close.json       — close
- order_conditional.json — stoploss, takeprofit, tpsl
- order_trailstop.json   — trailstop
- leverage.json          — leverage
- global_leverage.json   — globalleverage
- cancel_order.json      — cancel
- symbol_query.json      — position, market
- account_query.json     — closeall, cancelall, positions, balances, markets, orders
"""

import json
from pathlib import Path
from typing import Any, Dict, Mapping

import jsonschema
from jsonschema import Draft202012Validator, ValidationError

from order_pipeline.core.domain.commands import Verb


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы поставляются вместе с пакетом в каталоге schema/ рядом с модулем.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'order_open')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


_SCHEMA_LOADER = SchemaLoader()


# Контракт для каждой команды
SCHEMA_BY_VERB: Dict[Verb, str] = {
    Verb.LONG: "order_open",
    Verb.SHORT: "order_open",
    Verb.BUY: "order_open",
    Verb.SELL: "order_open",
    Verb.CLOSE: "order_close",
    Verb.STOPLOSS: "order_conditional",
    Verb.TAKEPROFIT: "order_conditional",
    Verb.TPSL: "order_conditional",
    Verb.TRAILSTOP: "order_trailstop",
    Verb.LEVERAGE: "leverage",
    Verb.GLOBALLEVERAGE: "global_leverage",
    Verb.CANCEL: "cancel_order",
    Verb.POSITION: "symbol_query",
    Verb.MARKET: "symbol_query",
    Verb.CLOSEALL: "account_query",
    Verb.CANCELALL: "account_query",
    Verb.POSITIONS: "account_query",
    Verb.BALANCES: "account_query",
    Verb.MARKETS: "account_query",
    Verb.ORDERS: "account_query",
}


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """Валидатор данных против одной JSON Schema."""

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Mapping[str, Any]) -> None:
        """
        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)


class CommandContractValidator(ContractValidator):
    """Валидатор параметров конкретной команды."""

    def __init__(self, verb: Verb):
        self.verb = verb
        super().__init__(SCHEMA_BY_VERB[verb])


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def normalize_keys(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Ключи команды в lowercase.

    Examples:
        >>> normalize_keys({"Symbol": "BTC/USDT", "SIZE": "500"})
        {'symbol': 'BTC/USDT', 'size': '500'}
    """
    return {str(key).strip().lower(): value for key, value in params.items()}


def validate_command(verb: Verb, params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Нормализация ключей и проверка по контракту команды.

    Returns:
        Параметры с нормализованными ключами

    Raises:
        ValidationError: Если параметры не соответствуют контракту
    """
    normalized = normalize_keys(params)
    CommandContractValidator(verb).validate(normalized)
    return normalized


__all__ = [
    "SchemaLoader",
    "ContractValidator",
    "CommandContractValidator",
    "SCHEMA_BY_VERB",
    "ValidationError",
    "normalize_keys",
    "validate_command",
]
