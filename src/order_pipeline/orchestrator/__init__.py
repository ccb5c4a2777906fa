"""
Orchestrator — исполнение команд через pipeline.
"""

from order_pipeline.orchestrator.defaults import (
    DcaInitial,
    DefaultsResult,
    OrderDefaults,
    find_dca_initial,
    parse_scale,
)
from order_pipeline.orchestrator.potential_position import PotentialPosition, potential_position
from order_pipeline.orchestrator.state_machine import (
    PipelineState,
    PipelineStateMachine,
    PipelineTransitionResult,
)
from order_pipeline.orchestrator.trade_orchestrator import CommandOutcome, TradeOrchestrator

__all__ = [
    "CommandOutcome",
    "DcaInitial",
    "DefaultsResult",
    "OrderDefaults",
    "PipelineState",
    "PipelineStateMachine",
    "PipelineTransitionResult",
    "PotentialPosition",
    "TradeOrchestrator",
    "find_dca_initial",
    "parse_scale",
    "potential_position",
]
