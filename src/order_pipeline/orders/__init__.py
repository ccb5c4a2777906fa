"""
Orders: построение дескрипторов и очередь отправки.
"""

from order_pipeline.orders.builder import BuildResult, MarketContext, OrderBuilder
from order_pipeline.orders.queue import OrderQueue, QueueKey, QueueResult, QueueSession

__all__ = [
    "BuildResult",
    "MarketContext",
    "OrderBuilder",
    "OrderQueue",
    "QueueKey",
    "QueueResult",
    "QueueSession",
]
