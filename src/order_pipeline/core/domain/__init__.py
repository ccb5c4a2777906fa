"""
Domain models and value objects.

Contains pipeline entities: Position, Market, OrderDescriptor, Balance,
exchange profile, sizing/price expressions, command parameters, failures.
"""

from order_pipeline.core.domain.account import Balance, HedgeModeState, available_equity_usd
from order_pipeline.core.domain.commands import (
    CloseAllCommand,
    CommandParams,
    LeverageCommand,
    MarginType,
    OrderCommand,
    QueryCommand,
    SymbolCommand,
    Verb,
)
from order_pipeline.core.domain.exchange import ExchangeProfile, OrderSizing, ParamMap
from order_pipeline.core.domain.expressions import (
    DEFAULT_LAYER_COUNT,
    MIN_LAYER_COUNT,
    Denomination,
    FactorKind,
    PriceExpression,
    PriceKind,
    SizingExpression,
    SizingUnit,
    parse_price,
    parse_sizing,
    parse_trigger,
)
from order_pipeline.core.domain.failures import Failure, FailureCategory, FailureCode
from order_pipeline.core.domain.market import (
    AmountLimits,
    Market,
    MarketType,
    Precision,
    UsdConversion,
)
from order_pipeline.core.domain.order import (
    OpenOrder,
    OrderDescriptor,
    OrderFlags,
    OrderKind,
    Side,
    TimeInForce,
)
from order_pipeline.core.domain.position import Position, PositionDirection

__all__ = [
    # Expressions
    "DEFAULT_LAYER_COUNT",
    "MIN_LAYER_COUNT",
    "Denomination",
    "SizingUnit",
    "FactorKind",
    "PriceKind",
    "SizingExpression",
    "PriceExpression",
    "parse_sizing",
    "parse_price",
    "parse_trigger",
    # Failures
    "Failure",
    "FailureCategory",
    "FailureCode",
    # Position / account
    "Position",
    "PositionDirection",
    "Balance",
    "HedgeModeState",
    "available_equity_usd",
    # Market
    "Market",
    "MarketType",
    "Precision",
    "AmountLimits",
    "UsdConversion",
    # Orders
    "Side",
    "OrderKind",
    "TimeInForce",
    "OrderFlags",
    "OrderDescriptor",
    "OpenOrder",
    # Exchange
    "ExchangeProfile",
    "OrderSizing",
    "ParamMap",
    # Commands
    "Verb",
    "MarginType",
    "CommandParams",
    "SymbolCommand",
    "OrderCommand",
    "CloseAllCommand",
    "LeverageCommand",
    "QueryCommand",
]
