"""Collaborator contracts and their in-memory and HTTP implementations."""

from .cache import exchange_cache_keys
from .http import HttpBoxRegistry, HttpItemLedger, HttpNotificationSink
from .interfaces import BoxRegistry, CacheInvalidator, ItemLedger, NotificationSink
from .memory import (
    InMemoryBoxRegistry,
    InMemoryCacheInvalidator,
    InMemoryItemLedger,
    RecordingNotificationSink,
)
from .notifications import LoggingNotificationSink

__all__ = [
    "BoxRegistry",
    "CacheInvalidator",
    "HttpBoxRegistry",
    "HttpItemLedger",
    "HttpNotificationSink",
    "InMemoryBoxRegistry",
    "InMemoryCacheInvalidator",
    "InMemoryItemLedger",
    "ItemLedger",
    "LoggingNotificationSink",
    "NotificationSink",
    "RecordingNotificationSink",
    "exchange_cache_keys",
]
