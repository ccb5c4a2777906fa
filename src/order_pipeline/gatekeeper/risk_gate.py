"""
RiskGate — pre-trade проверки перед sizing

Гейты выполняются строго по порядку, первый отказ прерывает цепочку:

    GATE 1  лимит позиций        long, short, buy, sell
    GATE 2  pair list            все ордерные команды
    GATE 3  loss close           close без force
    GATE 4  hedge mode           standard команды, derivative рынок,
                                 биржа поддерживает hedge mode

Настройки читаются из ConfigProvider (scopes "<stub>" и "<stub>:<symbol>").
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from order_pipeline.adapters.base import ExecutionAdapter
from order_pipeline.core.config import (
    KEY_DISABLE_LOSS_CLOSE,
    KEY_IGNORED,
    KEY_LISTED,
    KEY_MAXPOSQTY,
    KEY_PAIRMODE,
    ConfigProvider,
    ConfigValueError,
    InMemoryConfigProvider,
    as_bool,
    as_int,
    symbol_scope,
)
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.commands import Verb
from order_pipeline.core.domain.exchange import ExchangeProfile
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.market import Market
from order_pipeline.core.domain.position import Position, PositionDirection

from .gates import Gate01PositionCount, Gate02PairList, Gate03LossClose, Gate04HedgeMode, PairMode


@dataclass(frozen=True)
class RiskContext:
    """Снапшоты, на которых проверяется команда."""

    stub: str
    verb: Verb
    market: Market
    profile: ExchangeProfile
    position: Position
    positions: Sequence[Position] = field(default_factory=tuple)
    markets: Sequence[Market] = field(default_factory=tuple)
    direction: Optional[PositionDirection] = None
    force: bool = False


@dataclass(frozen=True)
class RiskResult:
    """Результат RiskGate."""

    entry_allowed: bool
    failure: Optional[Failure]
    blocked_by: str
    direction: Optional[PositionDirection]
    details: str


class RiskGate:
    """Последовательность GATE 1-4."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        config_provider: Optional[ConfigProvider] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.config_provider = config_provider or InMemoryConfigProvider()
        self.diagnostics = diagnostics or Diagnostics()
        self.gate_01 = Gate01PositionCount()
        self.gate_02 = Gate02PairList()
        self.gate_03 = Gate03LossClose()
        self.gate_04 = Gate04HedgeMode(adapter, self.diagnostics)

    async def evaluate(self, context: RiskContext) -> RiskResult:
        """
        Проверка команды.

        Returns:
            RiskResult: entry_allowed и эффективный direction
        """
        stub, verb, symbol = context.stub, context.verb, context.market.id
        config = self.config_provider

        if verb.is_open:
            try:
                maxposqty = as_int(stub, KEY_MAXPOSQTY, config.get(stub, KEY_MAXPOSQTY))
            except ConfigValueError as e:
                return self._invalid_config("gate_01", e, context)
            result_01 = self.gate_01.evaluate(symbol, context.positions, maxposqty, context.markets)
            if not result_01.entry_allowed:
                return self._blocked("gate_01", result_01.failure, context, result_01.details)

        raw_pairmode = config.get(stub, KEY_PAIRMODE, PairMode.BLACKLIST)
        try:
            pairmode = PairMode.parse(raw_pairmode)
        except ValueError:
            return self._invalid_config("gate_02", ConfigValueError(stub, KEY_PAIRMODE, raw_pairmode), context)

        scope = symbol_scope(stub, symbol)
        result_02 = self.gate_02.evaluate(
            symbol,
            pairmode=pairmode,
            ignored=as_bool(config.get(scope, KEY_IGNORED, False)),
            listed=as_bool(config.get(scope, KEY_LISTED, False)),
        )
        if not result_02.entry_allowed:
            return self._blocked("gate_02", result_02.failure, context, result_02.details)

        if verb == Verb.CLOSE:
            result_03 = self.gate_03.evaluate(
                context.position,
                disablelossclose=as_bool(config.get(stub, KEY_DISABLE_LOSS_CLOSE, False)),
                force=context.force,
            )
            if not result_03.entry_allowed:
                return self._blocked("gate_03", result_03.failure, context, result_03.details)

        direction = context.direction
        if verb.is_standard and context.market.is_derivative and context.profile.hedge_mode_supported:
            result_04 = await self.gate_04.evaluate(stub, verb, direction)
            if not result_04.entry_allowed:
                return self._blocked("gate_04", result_04.failure, context, result_04.details)
            direction = result_04.direction

        return RiskResult(
            entry_allowed=True,
            failure=None,
            blocked_by="",
            direction=direction,
            details="",
        )

    def _blocked(
        self, gate: str, failure: Optional[Failure], context: RiskContext, details: str
    ) -> RiskResult:
        self.diagnostics.failure(failure)
        return RiskResult(
            entry_allowed=False,
            failure=failure,
            blocked_by=gate,
            direction=context.direction,
            details=details,
        )

    def _invalid_config(self, gate: str, error: ConfigValueError, context: RiskContext) -> RiskResult:
        failure = Failure.of(FailureCode.INVALID_CONFIG, error.scope, error.key, error.value, details=str(error))
        return self._blocked(gate, failure, context, str(error))
