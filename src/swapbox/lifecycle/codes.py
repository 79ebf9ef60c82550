"""Issuing and validating single-use box access codes."""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta
from hashlib import sha256
from uuid import uuid4

from swapbox.domain import BoxAccessCode, BoxRole, CodeId, ExchangeId, IssuedCode
from swapbox.errors import InvalidCodeError
from swapbox.persistence import ConcurrencyError, UnitOfWork


def code_digest(exchange_id: ExchangeId, code: str) -> str:
    """Digest stored in place of the code; scoped to the exchange."""

    payload = f"{exchange_id}::{code.strip()}"
    return sha256(payload.encode("utf-8")).hexdigest()


class AccessCodeGenerator:
    """Produces keypad codes from a CSPRNG and checks them against stored digests.

    All methods operate inside the caller's unit of work so that issuing,
    consuming and the accompanying status write commit together.
    """

    def __init__(self, *, length: int = 6, alphabet: str = "0123456789") -> None:
        if length < 4:
            msg = "Access codes must be at least 4 characters long"
            raise ValueError(msg)
        if len(set(alphabet)) < 2:
            msg = "Access code alphabet needs at least two distinct symbols"
            raise ValueError(msg)
        self._length = length
        self._alphabet = alphabet

    def _new_code(self) -> str:
        return "".join(secrets.choice(self._alphabet) for _ in range(self._length))

    async def issue(
        self,
        uow: UnitOfWork,
        exchange_id: ExchangeId,
        role: BoxRole,
        *,
        ttl: timedelta,
        now: datetime,
    ) -> IssuedCode:
        """Revoke any open code for the exchange and store a fresh one."""

        if ttl <= timedelta(0):
            msg = "Code ttl must be positive"
            raise ValueError(msg)
        await uow.code_repository.revoke_open(exchange_id, now)
        code = self._new_code()
        record = BoxAccessCode(
            id=CodeId(uuid4()),
            exchange_id=exchange_id,
            role=role,
            code_digest=code_digest(exchange_id, code),
            issued_at=now,
            expires_at=now + ttl,
        )
        await uow.code_repository.add(record)
        return IssuedCode(
            exchange_id=exchange_id,
            role=role,
            code=code,
            expires_at=record.expires_at,
        )

    async def validate(
        self,
        uow: UnitOfWork,
        exchange_id: ExchangeId,
        code: str,
        *,
        now: datetime,
    ) -> BoxAccessCode:
        """Return the live record matching ``code`` or raise ``InvalidCodeError``."""

        digest = code_digest(exchange_id, code)
        matches = [
            record
            for record in await uow.code_repository.list_for_exchange(exchange_id)
            if hmac.compare_digest(record.code_digest, digest)
        ]
        for record in matches:
            if record.is_live(now):
                return record
        if not matches:
            raise InvalidCodeError(f"Code does not match exchange {exchange_id}")
        latest = matches[-1]
        if latest.consumed_at is not None:
            reason = "has already been used"
        elif latest.revoked_at is not None:
            reason = "was replaced by a newer code"
        else:
            reason = "has expired"
        raise InvalidCodeError(f"Code for exchange {exchange_id} {reason}")

    async def consume(
        self,
        uow: UnitOfWork,
        exchange_id: ExchangeId,
        code: str,
        *,
        now: datetime,
    ) -> BoxAccessCode:
        """Validate and mark the code consumed; at most one caller succeeds."""

        record = await self.validate(uow, exchange_id, code, now=now)
        try:
            await uow.code_repository.mark_consumed(record.id, now)
        except ConcurrencyError as exc:
            raise InvalidCodeError(f"Code for exchange {exchange_id} has already been used") from exc
        return record.model_copy(update={"consumed_at": now})

    async def current(
        self,
        uow: UnitOfWork,
        exchange_id: ExchangeId,
        *,
        now: datetime,
    ) -> BoxAccessCode | None:
        """Return the open code of the exchange, if any."""

        live = [
            record
            for record in await uow.code_repository.list_for_exchange(exchange_id)
            if record.is_live(now)
        ]
        return live[-1] if live else None


__all__ = ["AccessCodeGenerator", "code_digest"]
