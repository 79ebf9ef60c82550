"""SQLite repository implementations."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import Select, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

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
)

from .models import AccessCodeRecord, ExchangeLogRecord, ExchangeRecord, ExchangeSequenceRecord

_DEADLINE_STATUSES = (ExchangeStatus.BOX_ASSIGNED.value, ExchangeStatus.AWAITING_PICKUP.value)


def _exchange_columns(exchange: Exchange) -> dict[str, object]:
    return {
        "initiator_id": int(exchange.initiator_id),
        "counterpart_id": int(exchange.counterpart_id),
        "status": exchange.status.value,
        "box_id": exchange.box_id,
        "pickup_deadline": exchange.pickup_deadline,
        "archived_at": exchange.archived_at,
        "created_at": exchange.created_at,
        "updated_at": exchange.updated_at,
        "payload": exchange.model_dump(mode="json"),
    }


class SQLiteExchangeRepository(ExchangeRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def allocate_id(self) -> ExchangeId:
        record = ExchangeSequenceRecord()
        self._session.add(record)
        await self._session.flush()
        return ExchangeId(record.id)

    async def get(self, exchange_id: ExchangeId) -> Exchange | None:
        record = await self._session.get(ExchangeRecord, int(exchange_id))
        if record is None:
            return None
        return Exchange.model_validate(record.payload)

    async def add(self, exchange: Exchange) -> None:
        record = ExchangeRecord(id=int(exchange.id), **_exchange_columns(exchange))
        self._session.add(record)
        await self._session.flush()

    async def update(self, exchange: Exchange, *, expected_status: ExchangeStatus) -> None:
        stmt = (
            update(ExchangeRecord)
            .where(
                ExchangeRecord.id == int(exchange.id),
                ExchangeRecord.status == expected_status.value,
            )
            .values(**_exchange_columns(exchange))
        )
        result = await self._session.execute(stmt)
        if result.rowcount:
            return
        if await self._session.get(ExchangeRecord, int(exchange.id)) is None:
            raise NotFoundError(f"Exchange {exchange.id} not found")
        msg = f"Exchange {exchange.id} changed status; expected {expected_status}"
        raise ConcurrencyError(msg)

    async def list_all(self, *, include_archived: bool = False) -> Sequence[Exchange]:
        stmt: Select[tuple[ExchangeRecord]] = select(ExchangeRecord)
        if not include_archived:
            stmt = stmt.where(ExchangeRecord.archived_at.is_(None))
        result = await self._session.execute(stmt.order_by(ExchangeRecord.id))
        return [Exchange.model_validate(r.payload) for r in result.scalars().all()]

    async def list_for_user(
        self,
        user_id: UserId,
        *,
        include_archived: bool = False,
    ) -> Sequence[Exchange]:
        stmt: Select[tuple[ExchangeRecord]] = select(ExchangeRecord).where(
            or_(
                ExchangeRecord.initiator_id == int(user_id),
                ExchangeRecord.counterpart_id == int(user_id),
            )
        )
        if not include_archived:
            stmt = stmt.where(ExchangeRecord.archived_at.is_(None))
        result = await self._session.execute(stmt.order_by(ExchangeRecord.id))
        return [Exchange.model_validate(r.payload) for r in result.scalars().all()]

    async def list_overdue(self, now: datetime, *, limit: int) -> Sequence[Exchange]:
        stmt = (
            select(ExchangeRecord)
            .where(
                ExchangeRecord.status.in_(_DEADLINE_STATUSES),
                ExchangeRecord.pickup_deadline.is_not(None),
                ExchangeRecord.pickup_deadline <= now,
            )
            .order_by(ExchangeRecord.pickup_deadline)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [Exchange.model_validate(r.payload) for r in result.scalars().all()]


class SQLiteAccessCodeRepository(AccessCodeRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, code_id: CodeId) -> BoxAccessCode | None:
        record = await self._session.get(AccessCodeRecord, str(code_id))
        if record is None:
            return None
        return BoxAccessCode.model_validate(record.payload)

    async def add(self, code: BoxAccessCode) -> None:
        record = AccessCodeRecord(
            id=str(code.id),
            exchange_id=int(code.exchange_id),
            role=code.role.value,
            code_digest=code.code_digest,
            issued_at=code.issued_at,
            expires_at=code.expires_at,
            consumed_at=code.consumed_at,
            revoked_at=code.revoked_at,
            payload=code.model_dump(mode="json"),
        )
        self._session.add(record)
        await self._session.flush()

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[BoxAccessCode]:
        stmt = (
            select(AccessCodeRecord)
            .where(AccessCodeRecord.exchange_id == int(exchange_id))
            .order_by(AccessCodeRecord.issued_at)
        )
        result = await self._session.execute(stmt)
        return [BoxAccessCode.model_validate(r.payload) for r in result.scalars().all()]

    async def mark_consumed(self, code_id: CodeId, consumed_at: datetime) -> None:
        current = await self.get(code_id)
        if current is None:
            raise NotFoundError(f"Access code {code_id} not found")
        consumed = current.model_copy(update={"consumed_at": consumed_at})
        stmt = (
            update(AccessCodeRecord)
            .where(
                AccessCodeRecord.id == str(code_id),
                AccessCodeRecord.consumed_at.is_(None),
                AccessCodeRecord.revoked_at.is_(None),
            )
            .values(consumed_at=consumed_at, payload=consumed.model_dump(mode="json"))
        )
        result = await self._session.execute(stmt)
        if not result.rowcount:
            raise ConcurrencyError(f"Access code {code_id} is no longer usable")

    async def revoke_open(self, exchange_id: ExchangeId, revoked_at: datetime) -> int:
        stmt = select(AccessCodeRecord).where(
            AccessCodeRecord.exchange_id == int(exchange_id),
            AccessCodeRecord.consumed_at.is_(None),
            AccessCodeRecord.revoked_at.is_(None),
        )
        result = await self._session.execute(stmt)
        records = result.scalars().all()
        for record in records:
            revoked = BoxAccessCode.model_validate(record.payload).model_copy(
                update={"revoked_at": revoked_at}
            )
            record.revoked_at = revoked_at
            record.payload = revoked.model_dump(mode="json")
        await self._session.flush()
        return len(records)


class SQLiteExchangeLogRepository(ExchangeLogRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entry: ExchangeLogEntry) -> None:
        record = ExchangeLogRecord(
            exchange_id=int(entry.exchange_id),
            previous_status=entry.previous_status.value if entry.previous_status else None,
            next_status=entry.next_status.value,
            message=entry.message,
            created_at=entry.created_at,
            attributes=dict(entry.attributes),
        )
        self._session.add(record)

    async def list_for_exchange(self, exchange_id: ExchangeId) -> Sequence[ExchangeLogEntry]:
        stmt = (
            select(ExchangeLogRecord)
            .where(ExchangeLogRecord.exchange_id == int(exchange_id))
            .order_by(ExchangeLogRecord.id)
        )
        result = await self._session.execute(stmt)
        return [
            ExchangeLogEntry(
                exchange_id=ExchangeId(r.exchange_id),
                previous_status=ExchangeStatus(r.previous_status) if r.previous_status else None,
                next_status=ExchangeStatus(r.next_status),
                message=r.message,
                created_at=r.created_at,
                attributes=dict(r.attributes or {}),
            )
            for r in result.scalars().all()
        ]
