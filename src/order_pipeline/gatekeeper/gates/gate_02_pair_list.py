"""GATE 2: Blacklist / Whitelist символов

pairmode:
- blacklist (по умолчанию): разрешено всё, кроме ignored/listed символов
- whitelist: разрешены только listed символы
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from order_pipeline.core.domain.failures import Failure, FailureCode


class PairMode(str, Enum):
    """Режим списка символов."""

    BLACKLIST = "blacklist"
    WHITELIST = "whitelist"

    @classmethod
    def parse(cls, value: "PairMode | str") -> "PairMode":
        """Режим из значения конфигурации (регистр и пробелы игнорируются)."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class Gate02Result:
    """Результат GATE 2."""

    entry_allowed: bool
    block_reason: str
    failure: Optional[Failure]

    pairmode: PairMode
    ignored: bool
    listed: bool

    details: str


class Gate02PairList:
    """GATE 2: списки символов."""

    def evaluate(
        self,
        symbol: str,
        pairmode: PairMode | str = PairMode.BLACKLIST,
        ignored: bool = False,
        listed: bool = False,
    ) -> Gate02Result:
        """Оценка GATE 2.

        Args:
            symbol: id рынка
            pairmode: режим списка
            ignored: символ помечен как игнорируемый
            listed: символ в списке
        """
        pairmode = PairMode.parse(pairmode)

        if pairmode == PairMode.BLACKLIST and (ignored or listed):
            return self._blocked(
                FailureCode.SYMBOL_BLACKLISTED, symbol, pairmode, ignored, listed,
                f"{symbol} is blacklisted",
            )

        if pairmode == PairMode.WHITELIST and not listed:
            return self._blocked(
                FailureCode.SYMBOL_NOT_WHITELISTED, symbol, pairmode, ignored, listed,
                f"{symbol} is not whitelisted",
            )

        return Gate02Result(
            entry_allowed=True,
            block_reason="",
            failure=None,
            pairmode=pairmode,
            ignored=ignored,
            listed=listed,
            details=f"{symbol} allowed ({pairmode.value})",
        )

    @staticmethod
    def _blocked(
        code: FailureCode, symbol: str, pairmode: PairMode, ignored: bool, listed: bool, details: str
    ) -> Gate02Result:
        return Gate02Result(
            entry_allowed=False,
            block_reason=code.value,
            failure=Failure.of(code, symbol),
            pairmode=pairmode,
            ignored=ignored,
            listed=listed,
            details=details,
        )
