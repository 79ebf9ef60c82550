"""In-memory collaborators used by tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from swapbox.domain import (
    BoxId,
    CapacityClass,
    ExchangeId,
    ItemDimensions,
    ItemId,
    LedgerItem,
    UserId,
)
from swapbox.errors import ItemConflictError, NoCapacityError, NotFoundError

from .interfaces import BoxRegistry, CacheInvalidator, ItemLedger, NotificationSink


@dataclass
class InMemoryItemLedger(ItemLedger):
    _items: dict[ItemId, LedgerItem] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def add_item(self, item: LedgerItem) -> None:
        self._items[item.id] = item

    def __len__(self) -> int:
        return len(self._items)

    def tag_of(self, item_id: ItemId) -> ExchangeId | None:
        return self._require(item_id).exchange_id

    async def tag_items(self, item_ids: Sequence[ItemId], exchange_id: ExchangeId) -> None:
        async with self._lock:
            items = [self._require(item_id) for item_id in item_ids]
            conflicts = [
                item.id
                for item in items
                if item.exchange_id is not None and item.exchange_id != exchange_id
            ]
            if conflicts:
                msg = f"Items {conflicts} are already part of another exchange"
                raise ItemConflictError(msg)
            for item in items:
                self._items[item.id] = item.model_copy(update={"exchange_id": exchange_id})

    async def clear_tags(self, item_ids: Sequence[ItemId]) -> None:
        async with self._lock:
            for item_id in item_ids:
                item = self._items.get(item_id)
                if item is not None and item.exchange_id is not None:
                    self._items[item_id] = item.model_copy(update={"exchange_id": None})

    async def get_item_dimensions(self, item_ids: Sequence[ItemId]) -> list[ItemDimensions]:
        return [self._require(item_id).dimensions() for item_id in item_ids]

    async def list_item_ids(self, exchange_id: ExchangeId) -> list[ItemId]:
        return [item.id for item in self._items.values() if item.exchange_id == exchange_id]

    async def list_items(self, exchange_id: ExchangeId) -> list[LedgerItem]:
        return [item for item in self._items.values() if item.exchange_id == exchange_id]

    def _require(self, item_id: ItemId) -> LedgerItem:
        try:
            return self._items[item_id]
        except KeyError as exc:
            msg = f"Item {item_id} not found"
            raise NotFoundError(msg) from exc


@dataclass
class _BoxSlot:
    capacity_class: CapacityClass
    exchange_id: ExchangeId | None = None


@dataclass
class InMemoryBoxRegistry(BoxRegistry):
    _boxes: dict[BoxId, _BoxSlot] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def add_box(self, box_id: BoxId, capacity_class: CapacityClass) -> None:
        self._boxes[box_id] = _BoxSlot(capacity_class=capacity_class)

    def occupant(self, box_id: BoxId) -> ExchangeId | None:
        return self._require(box_id).exchange_id

    async def reserve(self, capacity_class: CapacityClass, exchange_id: ExchangeId) -> BoxId:
        async with self._lock:
            for box_id, slot in self._boxes.items():
                if slot.exchange_id == exchange_id:
                    return box_id
            candidates = sorted(
                (
                    (slot.capacity_class.rank, box_id)
                    for box_id, slot in self._boxes.items()
                    if slot.exchange_id is None and capacity_class.fits_within(slot.capacity_class)
                ),
            )
            if not candidates:
                msg = f"No free box fits capacity class {capacity_class}"
                raise NoCapacityError(msg)
            _, box_id = candidates[0]
            self._boxes[box_id].exchange_id = exchange_id
            return box_id

    async def release(self, box_id: BoxId) -> None:
        async with self._lock:
            self._require(box_id).exchange_id = None

    async def hold(self, box_id: BoxId, exchange_id: ExchangeId) -> None:
        async with self._lock:
            slot = self._require(box_id)
            if slot.exchange_id not in (None, exchange_id):
                msg = f"Box {box_id} is occupied by exchange {slot.exchange_id}"
                raise NoCapacityError(msg)
            slot.exchange_id = exchange_id

    def _require(self, box_id: BoxId) -> _BoxSlot:
        try:
            return self._boxes[box_id]
        except KeyError as exc:
            msg = f"Box {box_id} not found"
            raise NotFoundError(msg) from exc


@dataclass
class RecordingNotificationSink(NotificationSink):
    sent: list[tuple[UserId, str]] = field(default_factory=list)

    async def send(self, user_id: UserId, text: str) -> None:
        self.sent.append((user_id, text))

    def messages_for(self, user_id: UserId) -> list[str]:
        return [text for recipient, text in self.sent if recipient == user_id]


@dataclass
class InMemoryCacheInvalidator(CacheInvalidator):
    invalidated: list[str] = field(default_factory=list)

    async def invalidate(self, keys: Iterable[str]) -> None:
        self.invalidated.extend(keys)


__all__ = [
    "InMemoryBoxRegistry",
    "InMemoryCacheInvalidator",
    "InMemoryItemLedger",
    "RecordingNotificationSink",
]
