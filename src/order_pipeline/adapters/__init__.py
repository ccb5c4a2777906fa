"""
Execution adapter interface.
"""

from order_pipeline.adapters.base import (
    AdapterAction,
    AdapterError,
    ExecutionAdapter,
    ExecutionResult,
)

__all__ = [
    "AdapterAction",
    "AdapterError",
    "ExecutionAdapter",
    "ExecutionResult",
]
