"""
order_pipeline — конвейер торговых команд

Команда → RiskGate → SizeResolver/PriceResolver → OrderBuilder →
OrderQueue → Execution Adapter.
"""

__version__ = "0.1.0"

from order_pipeline.orchestrator import CommandOutcome, TradeOrchestrator

__all__ = ["CommandOutcome", "TradeOrchestrator", "__version__"]
