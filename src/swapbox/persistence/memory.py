"""In-memory repository implementations for unit testing and local runs."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Iterator, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime
from types import TracebackType
from typing import Any, TypeVar

from swapbox.domain import (
    BoxAccessCode,
    CodeId,
    Exchange,
    ExchangeId,
    ExchangeLogEntry,
    ExchangeStatus,
    UserId,
)
from swapbox.persistence.errors import ConcurrencyError, NotFoundError
from swapbox.persistence.interfaces import (
    AccessCodeRepository,
    ExchangeLogRepository,
    ExchangeRepository,
    UnitOfWork,
)

T = TypeVar("T")

_DEADLINE_STATUSES = frozenset({ExchangeStatus.BOX_ASSIGNED, ExchangeStatus.AWAITING_PICKUP})


def _copy(value: T) -> T:
    return deepcopy(value)


@dataclass
class InMemoryExchangeRepository(ExchangeRepository):
    _exchanges: dict[ExchangeId, Exchange] = field(default_factory=dict)
    # Ids are never handed out twice, even when the surrounding unit of work rolls back.
    _sequence: Iterator[int] = field(default_factory=lambda: itertools.count(1))

    async def allocate_id(self) -> ExchangeId:
        return ExchangeId(next(self._sequence))

    async def get(self, exchange_id: ExchangeId) -> Exchange | None:
        return _copy(self._exchanges.get(exchange_id))

    async def add(self, exchange: Exchange) -> None:
        if exchange.id in self._exchanges:
            msg = f"Exchange {exchange.id} already exists"
            raise ConcurrencyError(msg)
        self._exchanges[exchange.id] = exchange

    async def update(self, exchange: Exchange, *, expected_status: ExchangeStatus) -> None:
        current = self._exchanges.get(exchange.id)
        if current is None:
            msg = f"Exchange {exchange.id} not found"
            raise NotFoundError(msg)
        if current.status != expected_status:
            msg = (
                f"Exchange {exchange.id} is {current.status}, "
                f"expected {expected_status}"
            )
            raise ConcurrencyError(msg)
        self._exchanges[exchange.id] = exchange

    async def list_all(self, *, include_archived: bool = False) -> Sequence[Exchange]:
        matches = [
            exchange
            for exchange in self._exchanges.values()
            if include_archived or exchange.archived_at is None
        ]
        return [_copy(exchange) for exchange in sorted(matches, key=lambda ex: ex.id)]

    async def list_for_user(
        self,
        user_id: UserId,
        *,
        include_archived: bool = False,
    ) -> Sequence[Exchange]:
        matches = [
            exchange
            for exchange in self._exchanges.values()
            if user_id in exchange.participant_ids()
            and (include_archived or exchange.archived_at is None)
        ]
        return [_copy(exchange) for exchange in sorted(matches, key=lambda ex: ex.id)]

    async def list_overdue(self, now: datetime, *, limit: int) -> Sequence[Exchange]:
        overdue = [
            exchange
            for exchange in self._exchanges.values()
            if exchange.status in _DEADLINE_STATUSES
            and exchange.pickup_deadline is not None
            and exchange.pickup_deadline <= now
        ]
        ordered = sorted(overdue, key=lambda ex: ex.pickup_deadline or now)
        return [_copy(exchange) for exchange in ordered[:limit]]

    def _snapshot(self) -> dict[ExchangeId, Exchange]:
        return dict(self._exchanges)

    def _restore(self, state: dict[ExchangeId, Exchange]) -> None:
        self._exchanges = dict(state)


@dataclass
class InMemoryAccessCodeRepository(AccessCodeRepository):
    _codes: dict[CodeId, BoxAccessCode] = field(default_factory=dict)

    async def get(self, code_id: CodeId) -> BoxAccessCode | None:
        return _copy(self._codes.get(code_id))

    async def add(self, code: BoxAccessCode) -> None:
        self._codes[code.id] = code

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[BoxAccessCode]:
        codes = [code for code in self._codes.values() if code.exchange_id == exchange_id]
        return [_copy(code) for code in sorted(codes, key=lambda code: code.issued_at)]

    async def mark_consumed(self, code_id: CodeId, consumed_at: datetime) -> None:
        code = self._codes.get(code_id)
        if code is None:
            msg = f"Access code {code_id} not found"
            raise NotFoundError(msg)
        if code.consumed_at is not None or code.revoked_at is not None:
            msg = f"Access code {code_id} is no longer usable"
            raise ConcurrencyError(msg)
        self._codes[code_id] = code.model_copy(update={"consumed_at": consumed_at})

    async def revoke_open(self, exchange_id: ExchangeId, revoked_at: datetime) -> int:
        revoked = 0
        for code_id, code in list(self._codes.items()):
            if code.exchange_id != exchange_id:
                continue
            if code.consumed_at is not None or code.revoked_at is not None:
                continue
            self._codes[code_id] = code.model_copy(update={"revoked_at": revoked_at})
            revoked += 1
        return revoked

    def _snapshot(self) -> dict[CodeId, BoxAccessCode]:
        return dict(self._codes)

    def _restore(self, state: dict[CodeId, BoxAccessCode]) -> None:
        self._codes = dict(state)


@dataclass
class InMemoryExchangeLogRepository(ExchangeLogRepository):
    _logs: dict[ExchangeId, list[ExchangeLogEntry]] = field(
        default_factory=lambda: defaultdict(list)
    )

    async def add(self, entry: ExchangeLogEntry) -> None:
        self._logs[entry.exchange_id].append(entry)

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[ExchangeLogEntry]:
        return [_copy(entry) for entry in self._logs.get(exchange_id, [])]

    def _snapshot(self) -> dict[ExchangeId, list[ExchangeLogEntry]]:
        return {key: list(entries) for key, entries in self._logs.items()}

    def _restore(self, state: dict[ExchangeId, list[ExchangeLogEntry]]) -> None:
        self._logs = defaultdict(list, {key: list(entries) for key, entries in state.items()})


@dataclass
class InMemoryUnitOfWork(UnitOfWork):
    """Shared in-memory store; each ``async with`` block is one transaction.

    State is snapshotted on entry and restored when the block raises or
    ``rollback`` is called.
    """

    exchange_repository: InMemoryExchangeRepository = field(
        default_factory=InMemoryExchangeRepository
    )
    code_repository: InMemoryAccessCodeRepository = field(
        default_factory=InMemoryAccessCodeRepository
    )
    log_repository: InMemoryExchangeLogRepository = field(
        default_factory=InMemoryExchangeLogRepository
    )
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _snapshot: tuple[Any, ...] | None = None

    async def __aenter__(self) -> InMemoryUnitOfWork:
        await self._lock.acquire()
        self._snapshot = self._capture()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            self._snapshot = None
            self._lock.release()

    async def commit(self) -> None:
        self._snapshot = self._capture()

    async def rollback(self) -> None:
        if self._snapshot is None:
            return
        exchanges, codes, logs = self._snapshot
        self.exchange_repository._restore(exchanges)
        self.code_repository._restore(codes)
        self.log_repository._restore(logs)

    def _capture(self) -> tuple[Any, ...]:
        return (
            self.exchange_repository._snapshot(),
            self.code_repository._snapshot(),
            self.log_repository._snapshot(),
        )
