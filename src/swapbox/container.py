"""Service container wiring application components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from swapbox.config import AppSettings
from swapbox.domain import BoxId, CapacityClass, ItemId, LedgerItem
from swapbox.integrations import (
    BoxRegistry,
    HttpBoxRegistry,
    HttpItemLedger,
    HttpNotificationSink,
    InMemoryBoxRegistry,
    InMemoryItemLedger,
    ItemLedger,
    LoggingNotificationSink,
    NotificationSink,
)
from swapbox.lifecycle import AccessCodeGenerator, ExchangeCoordinator
from swapbox.persistence import InMemoryUnitOfWork, UnitOfWork
from swapbox.persistence.sqlite import create_sqlite_unit_of_work_factory

UnitOfWorkFactory = Callable[[], UnitOfWork]

MEMORY_DATABASE_URL = "memory://"


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Aggregates constructed services with shared configuration."""

    settings: AppSettings
    unit_of_work_factory: UnitOfWorkFactory
    ledger: ItemLedger
    box_registry: BoxRegistry
    notifications: NotificationSink
    coordinator: ExchangeCoordinator


def _ensure_sqlite_directory(database_url: str) -> None:
    if not database_url.startswith("sqlite"):
        return
    try:
        _, path = database_url.split(":///", maxsplit=1)
    except ValueError:
        return
    db_path = Path(path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)


def parse_local_boxes(value: str) -> dict[BoxId, CapacityClass]:
    """Parse ``"B1:small,B2:large"`` into a box inventory."""

    boxes: dict[BoxId, CapacityClass] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        box_id, sep, capacity = entry.partition(":")
        if not sep or not box_id.strip():
            msg = f"Invalid box entry {entry!r}; expected BOX_ID:capacity"
            raise ValueError(msg)
        boxes[BoxId(box_id.strip())] = CapacityClass(capacity.strip().lower())
    return boxes


def parse_local_items(value: str) -> list[LedgerItem]:
    """Parse ``"1:10x10x10,2:60x40x30"`` (id and centimetre sizes) into ledger items."""

    items: list[LedgerItem] = []
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        item_id, sep, size = entry.partition(":")
        sides = size.lower().split("x")
        if not sep or len(sides) != 3:
            msg = f"Invalid item entry {entry!r}; expected ITEM_ID:LENGTHxWIDTHxHEIGHT"
            raise ValueError(msg)
        length, width, height = (float(side) for side in sides)
        items.append(
            LedgerItem(
                id=ItemId(int(item_id)),
                name=f"Item {item_id.strip()}",
                length=length,
                width=width,
                height=height,
            )
        )
    return items


def _require_shared_collaborators(settings: AppSettings) -> None:
    # Tags and box occupancy must outlive the process whenever exchanges do.
    if settings.database_url == MEMORY_DATABASE_URL:
        return
    missing = [
        name
        for name, url in (
            ("SWAPBOX_LEDGER_URL", settings.ledger_url),
            ("SWAPBOX_BOX_REGISTRY_URL", settings.box_registry_url),
        )
        if not url
    ]
    if missing:
        msg = (
            f"Database {settings.database_url} persists exchanges but {', '.join(missing)} "
            f"is not set; configure the services or use {MEMORY_DATABASE_URL}"
        )
        raise ValueError(msg)


def _build_unit_of_work_factory(database_url: str) -> UnitOfWorkFactory:
    if database_url == MEMORY_DATABASE_URL:
        shared = InMemoryUnitOfWork()
        return lambda: shared
    _ensure_sqlite_directory(database_url)
    return create_sqlite_unit_of_work_factory(database_url)


def build_container(settings: AppSettings | None = None) -> ServiceContainer:
    """Construct the primary service container."""

    resolved_settings = settings or AppSettings.from_env()
    _require_shared_collaborators(resolved_settings)
    timeout = resolved_settings.http_timeout

    ledger: ItemLedger
    if resolved_settings.ledger_url:
        ledger = HttpItemLedger(resolved_settings.ledger_url, timeout=timeout)
    else:
        memory_ledger = InMemoryItemLedger()
        for item in parse_local_items(resolved_settings.local_items):
            memory_ledger.add_item(item)
        logger.info("Using an in-memory item ledger with %d item(s)", len(memory_ledger))
        ledger = memory_ledger

    box_registry: BoxRegistry
    if resolved_settings.box_registry_url:
        box_registry = HttpBoxRegistry(resolved_settings.box_registry_url, timeout=timeout)
    else:
        registry = InMemoryBoxRegistry()
        for box_id, capacity in parse_local_boxes(resolved_settings.local_boxes).items():
            registry.add_box(box_id, capacity)
        box_registry = registry

    notifications: NotificationSink
    if resolved_settings.notifications_url:
        notifications = HttpNotificationSink(resolved_settings.notifications_url, timeout=timeout)
    else:
        notifications = LoggingNotificationSink()

    unit_of_work_factory = _build_unit_of_work_factory(resolved_settings.database_url)
    coordinator = ExchangeCoordinator(
        unit_of_work_factory,
        ledger,
        box_registry,
        notifications,
        code_generator=AccessCodeGenerator(length=resolved_settings.code_length),
        code_ttl=resolved_settings.code_ttl,
        pickup_window=resolved_settings.pickup_window,
    )

    return ServiceContainer(
        settings=resolved_settings,
        unit_of_work_factory=unit_of_work_factory,
        ledger=ledger,
        box_registry=box_registry,
        notifications=notifications,
        coordinator=coordinator,
    )


__all__ = [
    "MEMORY_DATABASE_URL",
    "ServiceContainer",
    "build_container",
    "parse_local_boxes",
    "parse_local_items",
]
