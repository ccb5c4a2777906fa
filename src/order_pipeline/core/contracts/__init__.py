"""
Contract Validation Module

Валидация параметров команд по JSON Schema контрактам.
"""

from .validators import (
    SCHEMA_BY_VERB,
    CommandContractValidator,
    ContractValidator,
    SchemaLoader,
    normalize_keys,
    validate_command,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "CommandContractValidator",
    "SCHEMA_BY_VERB",
    # Functions
    "normalize_keys",
    "validate_command",
]
