"""
Pricing: выражение цены → абсолютные цены рынка.
"""

from order_pipeline.pricing.price_resolver import PriceResolver, PriceResult

__all__ = ["PriceResolver", "PriceResult"]
