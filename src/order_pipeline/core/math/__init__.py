"""
Core math modules для order_pipeline

Шаговое квантование и численные примитивы с гарантией стабильности.
"""

from order_pipeline.core.math.numerical_safeguards import (
    # Epsilon constants
    EPS_FLOAT_COMPARE_ABS,
    EPS_FLOAT_COMPARE_REL,
    EPS_STEP_RATIO,
    # NaN/Inf
    is_valid_float,
    # Epsilon comparisons
    is_close,
    is_zero,
    sign_of,
    clamp,
    # Step quantization
    floor_to_step,
    is_multiple_of_step,
    round_to_step,
    step_decimals,
)

__all__ = [
    "EPS_FLOAT_COMPARE_ABS",
    "EPS_FLOAT_COMPARE_REL",
    "EPS_STEP_RATIO",
    "is_valid_float",
    "is_close",
    "is_zero",
    "sign_of",
    "clamp",
    "floor_to_step",
    "is_multiple_of_step",
    "round_to_step",
    "step_decimals",
]
