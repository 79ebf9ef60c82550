"""Box access code models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from swapbox.utils.time import parse_utc, utc_now

from .base import DomainModel
from .enums import BoxRole
from .types import CodeId, ExchangeId


class BoxAccessCode(DomainModel):
    """Stored record of an issued code. Only the digest of the code is kept."""

    id: CodeId
    exchange_id: ExchangeId
    role: BoxRole
    code_digest: str
    issued_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
    consumed_at: datetime | None = None
    revoked_at: datetime | None = None

    @field_validator("issued_at", "expires_at", "consumed_at", "revoked_at", mode="before")
    @classmethod
    def ensure_timezone(cls, value: datetime | str | None) -> datetime | None:
        return parse_utc(value)

    def is_expired(self, now: datetime) -> bool:
        # A code checked exactly at its expiry instant is already expired.
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        return self.consumed_at is None and self.revoked_at is None and not self.is_expired(now)


class IssuedCode(DomainModel):
    """Plain code handed to the caller once, alongside its scope and expiry."""

    exchange_id: ExchangeId
    role: BoxRole
    code: str
    expires_at: datetime


__all__ = ["BoxAccessCode", "IssuedCode"]
