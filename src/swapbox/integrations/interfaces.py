"""Protocols for the services an exchange depends on."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from swapbox.domain import (
    BoxId,
    CapacityClass,
    ExchangeId,
    ItemDimensions,
    ItemId,
    LedgerItem,
    UserId,
)


class ItemLedger(Protocol):
    """Owner of items and their exchange tags."""

    async def tag_items(self, item_ids: Sequence[ItemId], exchange_id: ExchangeId) -> None:
        """Tag every item with ``exchange_id`` or none of them.

        Raises ``ItemConflictError`` when any item is tagged to another exchange.
        Re-tagging items already tagged to ``exchange_id`` succeeds.
        """

    async def clear_tags(self, item_ids: Sequence[ItemId]) -> None:
        """Remove exchange tags. Idempotent."""

    async def get_item_dimensions(self, item_ids: Sequence[ItemId]) -> list[ItemDimensions]: ...

    async def list_item_ids(self, exchange_id: ExchangeId) -> list[ItemId]: ...

    async def list_items(self, exchange_id: ExchangeId) -> list[LedgerItem]: ...


class BoxRegistry(Protocol):
    """Owner of physical boxes and their occupancy."""

    async def reserve(self, capacity_class: CapacityClass, exchange_id: ExchangeId) -> BoxId:
        """Reserve the smallest free box that fits ``capacity_class``.

        Returns the box already held by ``exchange_id`` if there is one.
        Raises ``NoCapacityError`` when nothing fits.
        """

    async def release(self, box_id: BoxId) -> None:
        """Free a box. Idempotent."""

    async def hold(self, box_id: BoxId, exchange_id: ExchangeId) -> None:
        """Re-occupy a specific box for ``exchange_id``; undoes a ``release``."""


class NotificationSink(Protocol):
    """Fire-and-forget user notifications."""

    async def send(self, user_id: UserId, text: str) -> None: ...


class CacheInvalidator(Protocol):
    """Drops cached responses held by read-side services."""

    async def invalidate(self, keys: Iterable[str]) -> None: ...


__all__ = ["BoxRegistry", "CacheInvalidator", "ItemLedger", "NotificationSink"]
