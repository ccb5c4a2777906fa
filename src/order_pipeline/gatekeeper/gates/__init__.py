"""Gates — индивидуальные проверки RiskGate.

- GATE 1: Лимит количества позиций (только открывающие команды)
- GATE 2: Blacklist / Whitelist символов
- GATE 3: Запрет закрытия в убыток
- GATE 4: Hedge mode compliance (derivatives)
"""

from .gate_01_position_count import Gate01PositionCount, Gate01Result, normalize_symbol
from .gate_02_pair_list import Gate02PairList, Gate02Result, PairMode
from .gate_03_loss_close import Gate03LossClose, Gate03Result
from .gate_04_hedge_mode import Gate04HedgeMode, Gate04Result

__all__ = [
    "Gate01PositionCount",
    "Gate01Result",
    "normalize_symbol",
    "Gate02PairList",
    "Gate02Result",
    "PairMode",
    "Gate03LossClose",
    "Gate03Result",
    "Gate04HedgeMode",
    "Gate04Result",
]
