"""Persistence layer abstractions for repositories and unit of work."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from types import TracebackType
from typing import Protocol

from swapbox.domain import (
    BoxAccessCode,
    CodeId,
    Exchange,
    ExchangeId,
    ExchangeLogEntry,
    ExchangeStatus,
    UserId,
)


class ExchangeRepository(Protocol):
    """Storage for exchanges with status-conditional updates."""

    async def allocate_id(self) -> ExchangeId: ...

    async def get(self, exchange_id: ExchangeId) -> Exchange | None: ...

    async def add(self, exchange: Exchange) -> None: ...

    async def update(self, exchange: Exchange, *, expected_status: ExchangeStatus) -> None:
        """Persist ``exchange`` only if the stored status still equals ``expected_status``.

        Raises ``ConcurrencyError`` otherwise.
        """

    async def list_all(self, *, include_archived: bool = False) -> Sequence[Exchange]: ...

    async def list_for_user(
        self,
        user_id: UserId,
        *,
        include_archived: bool = False,
    ) -> Sequence[Exchange]: ...

    async def list_overdue(self, now: datetime, *, limit: int) -> Sequence[Exchange]: ...


class AccessCodeRepository(Protocol):
    """Storage for issued box access codes."""

    async def get(self, code_id: CodeId) -> BoxAccessCode | None: ...

    async def add(self, code: BoxAccessCode) -> None: ...

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[BoxAccessCode]: ...

    async def mark_consumed(self, code_id: CodeId, consumed_at: datetime) -> None:
        """Consume an unconsumed, unrevoked code; ``ConcurrencyError`` if already used."""

    async def revoke_open(self, exchange_id: ExchangeId, revoked_at: datetime) -> int:
        """Revoke every unconsumed, unrevoked code of an exchange and return the count."""


class ExchangeLogRepository(Protocol):
    """Storage for exchange transition log entries."""

    async def add(self, entry: ExchangeLogEntry) -> None: ...

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[ExchangeLogEntry]: ...


class UnitOfWork(Protocol):
    """Transactional boundary for repository operations."""

    exchange_repository: ExchangeRepository
    code_repository: AccessCodeRepository
    log_repository: ExchangeLogRepository

    async def __aenter__(self) -> UnitOfWork: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
