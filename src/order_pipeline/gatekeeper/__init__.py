"""Gatekeeper — pre-trade проверки команд (RiskGate)."""

from .gates import (
    Gate01PositionCount,
    Gate02PairList,
    Gate03LossClose,
    Gate04HedgeMode,
    PairMode,
)
from .risk_gate import RiskContext, RiskGate, RiskResult

__all__ = [
    "Gate01PositionCount",
    "Gate02PairList",
    "Gate03LossClose",
    "Gate04HedgeMode",
    "PairMode",
    "RiskContext",
    "RiskGate",
    "RiskResult",
]
