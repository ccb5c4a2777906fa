"""
Sizing: выражение размера → целевая позиция → amount в единицах биржи.
"""

from order_pipeline.sizing.amount import AmountConverter, AmountResult
from order_pipeline.sizing.size_resolver import SizeResolver, SizeResolverConfig, SizeResult

__all__ = [
    "AmountConverter",
    "AmountResult",
    "SizeResolver",
    "SizeResolverConfig",
    "SizeResult",
]
