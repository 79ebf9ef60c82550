from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

# Ensure the src/ directory is importable when tests run via `uv run pytest`.
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from swapbox.domain import BoxId, CapacityClass, ItemId, LedgerItem, UserId  # noqa: E402
from swapbox.integrations import (  # noqa: E402
    InMemoryBoxRegistry,
    InMemoryCacheInvalidator,
    InMemoryItemLedger,
    RecordingNotificationSink,
)
from swapbox.lifecycle import ExchangeCoordinator  # noqa: E402
from swapbox.persistence import InMemoryUnitOfWork  # noqa: E402

ALICE = UserId(1)
BOB = UserId(2)
CAROL = UserId(3)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
        # Amount the clock moves forward after every reading.
        self.step = timedelta(0)

    def __call__(self) -> datetime:
        reading = self.now
        self.now = reading + self.step
        return reading

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_item(item_id: int, *, size: tuple[float, float, float] = (10, 10, 10)) -> LedgerItem:
    length, width, height = size
    return LedgerItem(
        id=ItemId(item_id),
        name=f"Item {item_id}",
        owner_id=ALICE,
        length=length,
        width=width,
        height=height,
    )


@dataclass
class Harness:
    uow: InMemoryUnitOfWork
    ledger: InMemoryItemLedger
    boxes: InMemoryBoxRegistry
    notifications: RecordingNotificationSink
    cache: InMemoryCacheInvalidator
    clock: FakeClock
    coordinator: ExchangeCoordinator


def make_harness(
    *,
    wrap_ledger: Callable[[InMemoryItemLedger], Any] | None = None,
    wrap_boxes: Callable[[InMemoryBoxRegistry], Any] | None = None,
    uow: Any = None,
    **options: Any,
) -> Harness:
    memory_ledger = InMemoryItemLedger()
    for item_id in (1, 2, 3, 4):
        memory_ledger.add_item(make_item(item_id))
    memory_ledger.add_item(make_item(5, size=(60, 40, 30)))
    memory_ledger.add_item(make_item(9, size=(150, 20, 20)))

    registry = InMemoryBoxRegistry()
    registry.add_box(BoxId("B1"), CapacityClass.SMALL)
    registry.add_box(BoxId("B2"), CapacityClass.LARGE)

    store = uow if uow is not None else InMemoryUnitOfWork()
    notifications = RecordingNotificationSink()
    cache = InMemoryCacheInvalidator()
    clock = FakeClock()
    coordinator = ExchangeCoordinator(
        lambda: store,
        wrap_ledger(memory_ledger) if wrap_ledger else memory_ledger,
        wrap_boxes(registry) if wrap_boxes else registry,
        notifications,
        cache=cache,
        clock=clock,
        **options,
    )
    return Harness(
        uow=store,
        ledger=memory_ledger,
        boxes=registry,
        notifications=notifications,
        cache=cache,
        clock=clock,
        coordinator=coordinator,
    )


@pytest.fixture
def harness() -> Harness:
    return make_harness()
