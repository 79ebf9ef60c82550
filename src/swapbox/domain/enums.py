"""Enumerations used across the SwapBox domain layer."""

from __future__ import annotations

from enum import StrEnum


class ExchangeStatus(StrEnum):
    """Lifecycle status of an exchange."""

    PROPOSED = "proposed"
    ITEMS_COMMITTED = "items_committed"
    BOX_ASSIGNED = "box_assigned"
    AWAITING_PICKUP = "awaiting_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BoxRole(StrEnum):
    """Party opening the box during an exchange."""

    CREATOR = "creator"
    PICKUP = "pickup"


class CapacityClass(StrEnum):
    """Locker size buckets, ordered from smallest to largest."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"

    @property
    def rank(self) -> int:
        return _CAPACITY_ORDER.index(self)

    def fits_within(self, other: CapacityClass) -> bool:
        """Return True when a bundle of this class fits a box of ``other``."""

        return self.rank <= other.rank


_CAPACITY_ORDER = (
    CapacityClass.SMALL,
    CapacityClass.MEDIUM,
    CapacityClass.LARGE,
    CapacityClass.XLARGE,
)
