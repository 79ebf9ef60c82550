"""Exchange domain models."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from swapbox.utils.time import parse_utc, utc_now

from .base import DomainModel
from .enums import BoxRole, CapacityClass, ExchangeStatus
from .types import BoxId, ExchangeId, ItemId, UserId


class Exchange(DomainModel):
    """A bundle of items travelling from the initiator to the counterpart via a box."""

    id: ExchangeId
    initiator_id: UserId
    counterpart_id: UserId
    item_ids: tuple[ItemId, ...]
    status: ExchangeStatus = ExchangeStatus.PROPOSED
    box_id: BoxId | None = None
    capacity_class: CapacityClass | None = None
    pickup_deadline: datetime | None = None
    deposited_at: datetime | None = None
    completed_at: datetime | None = None
    archived_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("item_ids")
    @classmethod
    def ensure_items(cls, value: tuple[ItemId, ...]) -> tuple[ItemId, ...]:
        if not value:
            msg = "An exchange must reference at least one item"
            raise ValueError(msg)
        if len(set(value)) != len(value):
            msg = "Item ids must be unique within an exchange"
            raise ValueError(msg)
        return value

    @field_validator(
        "pickup_deadline",
        "deposited_at",
        "completed_at",
        "archived_at",
        "created_at",
        "updated_at",
        mode="before",
    )
    @classmethod
    def ensure_timezone(cls, value: datetime | str | None) -> datetime | None:
        return parse_utc(value)

    @model_validator(mode="after")
    def ensure_parties(self) -> Exchange:
        if self.initiator_id == self.counterpart_id:
            msg = "Initiator and counterpart must be different users"
            raise ValueError(msg)
        return self

    def participant_ids(self) -> tuple[UserId, UserId]:
        return (self.initiator_id, self.counterpart_id)

    def user_for_role(self, role: BoxRole) -> UserId:
        return self.initiator_id if role is BoxRole.CREATOR else self.counterpart_id


class ExchangeLogEntry(DomainModel):
    """Audit log entry for an exchange status transition."""

    exchange_id: ExchangeId
    previous_status: ExchangeStatus | None = None
    next_status: ExchangeStatus
    message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    attributes: Mapping[str, str] = Field(default_factory=dict)

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_timezone(cls, value: datetime | str) -> datetime | None:
        return parse_utc(value)


class ExchangeStatusView(DomainModel):
    """Read-only projection used by callers displaying exchange progress."""

    exchange_id: ExchangeId
    status: ExchangeStatus
    box_id: BoxId | None = None
    pickup_deadline: datetime | None = None
    code_role: BoxRole | None = None
    code_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


__all__ = ["Exchange", "ExchangeLogEntry", "ExchangeStatusView"]
