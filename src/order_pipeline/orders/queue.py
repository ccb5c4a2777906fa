"""
OrderQueue — буфер ордеров по ключу (stub, symbol)

Накапливает дескрипторы одной логической команды и отправляет их одним
пакетом execute(stub, "order", [...]).

Упорядочивание: для одного ключа clear → add* → process одной команды не
должны перемежаться с add/process другой команды. session(key) держит
asyncio.Lock ключа на всё время работы с очередью и выполняет ровно один
clear при входе. Команды с разными ключами не блокируют друг друга.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Tuple

from order_pipeline.adapters.base import AdapterAction, AdapterError, ExecutionAdapter, ExecutionResult
from order_pipeline.core.diagnostics import Diagnostics
from order_pipeline.core.domain.failures import Failure, FailureCode
from order_pipeline.core.domain.order import OrderDescriptor

QueueKey = Tuple[str, str]


@dataclass(frozen=True)
class QueueResult:
    """Результат process(): пакет целиком принят или отказ."""

    ok: bool
    failure: Optional[Failure]
    submitted: tuple[OrderDescriptor, ...] = field(default_factory=tuple)
    result: Optional[ExecutionResult] = None
    details: str = ""


class OrderQueue:
    """
    Очереди дескрипторов по (stub, symbol).

    Методы принимают необязательный diagnostics: события попадают в
    diagnostics команды, иначе в общий diagnostics очереди.
    """

    def __init__(self, adapter: ExecutionAdapter, diagnostics: Optional[Diagnostics] = None):
        self.adapter = adapter
        self.diagnostics = diagnostics or Diagnostics()
        self._pending: Dict[QueueKey, List[OrderDescriptor]] = {}
        self._locks: Dict[QueueKey, asyncio.Lock] = {}

    def clear(self, key: QueueKey, diagnostics: Optional[Diagnostics] = None) -> None:
        """Удалить все ожидающие дескрипторы ключа."""
        self._pending[key] = []
        (diagnostics or self.diagnostics).debug("queue_clear", stub=key[0], symbol=key[1])

    def add(
        self, key: QueueKey, descriptor: OrderDescriptor, diagnostics: Optional[Diagnostics] = None
    ) -> None:
        self._pending.setdefault(key, []).append(descriptor)
        (diagnostics or self.diagnostics).debug(
            "queue_add",
            stub=key[0],
            symbol=key[1],
            side=descriptor.side.value,
            amount=descriptor.amount,
            price=descriptor.price,
        )

    def get(self, key: QueueKey) -> tuple[OrderDescriptor, ...]:
        """Read-only снапшот ожидающих дескрипторов."""
        return tuple(self._pending.get(key, ()))

    async def process(self, key: QueueKey, diagnostics: Optional[Diagnostics] = None) -> QueueResult:
        """
        Забрать все дескрипторы ключа и отправить одним пакетом.

        Returns:
            QueueResult: ok только если биржа приняла каждый ордер пакета
        """
        diagnostics = diagnostics or self.diagnostics
        batch = tuple(self._pending.pop(key, ()))
        if not batch:
            diagnostics.debug("queue_empty", stub=key[0], symbol=key[1])
            return QueueResult(ok=True, failure=None)

        stub = key[0]
        try:
            result = await self.adapter.execute(
                stub, AdapterAction.ORDER, [descriptor.to_payload() for descriptor in batch]
            )
        except AdapterError as e:
            failure = Failure.of(FailureCode.ADAPTER_ERROR, e.action, details=e.message)
            diagnostics.failure(failure)
            return QueueResult(ok=False, failure=failure, submitted=batch, details=str(failure))

        if not result.all_accepted:
            failure = Failure.of(
                FailureCode.SUBMISSION_REJECTED, list(result.rejected), details=result.details
            )
            diagnostics.failure(failure)
            return QueueResult(
                ok=False, failure=failure, submitted=batch, result=result, details=str(failure)
            )

        diagnostics.debug("queue_processed", stub=stub, symbol=key[1], orders=len(batch))
        return QueueResult(ok=True, failure=None, submitted=batch, result=result)

    def _lock(self, key: QueueKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def session(
        self, key: QueueKey, diagnostics: Optional[Diagnostics] = None
    ) -> AsyncIterator["QueueSession"]:
        """
        Эксклюзивная работа с очередью ключа.

        Вход: захват lock ключа и один clear. Выход: неотправленные
        дескрипторы отбрасываются, lock освобождается.
        """
        async with self._lock(key):
            self.clear(key, diagnostics)
            try:
                yield QueueSession(self, key, diagnostics)
            finally:
                self._pending.pop(key, None)


class QueueSession:
    """Очередь одного ключа внутри session()."""

    def __init__(self, queue: OrderQueue, key: QueueKey, diagnostics: Optional[Diagnostics] = None):
        self.queue = queue
        self.key = key
        self.diagnostics = diagnostics

    def add(self, descriptor: OrderDescriptor) -> None:
        self.queue.add(self.key, descriptor, self.diagnostics)

    def get(self) -> tuple[OrderDescriptor, ...]:
        return self.queue.get(self.key)

    async def process(self) -> QueueResult:
        return await self.queue.process(self.key, self.diagnostics)
