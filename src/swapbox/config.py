"""Lightweight application configuration loader."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class AppSettings:
    """Immutable configuration sourced from environment variables."""

    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///swapbox.db"
    code_ttl_seconds: int = 900
    pickup_window_hours: int = 72
    code_length: int = 6
    ledger_url: str | None = None
    box_registry_url: str | None = None
    notifications_url: str | None = None
    # Comma separated "BOX_ID:capacity" pairs used when no box registry URL is set.
    local_boxes: str = ""
    # Comma separated "ITEM_ID:LxWxH" entries (centimetres) for the in-memory ledger.
    local_items: str = ""
    http_timeout: float = 10.0
    log_level: str = "INFO"

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(seconds=self.code_ttl_seconds)

    @property
    def pickup_window(self) -> timedelta:
        return timedelta(hours=self.pickup_window_hours)

    @classmethod
    def from_env(cls) -> AppSettings:
        return cls(
            environment=os.getenv("SWAPBOX_ENV", cls.environment),
            database_url=os.getenv("SWAPBOX_DATABASE_URL", cls.database_url),
            code_ttl_seconds=_env_int("SWAPBOX_CODE_TTL_SECONDS", cls.code_ttl_seconds),
            pickup_window_hours=_env_int("SWAPBOX_PICKUP_WINDOW_HOURS", cls.pickup_window_hours),
            code_length=_env_int("SWAPBOX_CODE_LENGTH", cls.code_length),
            ledger_url=os.getenv("SWAPBOX_LEDGER_URL") or None,
            box_registry_url=os.getenv("SWAPBOX_BOX_REGISTRY_URL") or None,
            notifications_url=os.getenv("SWAPBOX_NOTIFICATIONS_URL") or None,
            local_boxes=os.getenv("SWAPBOX_LOCAL_BOXES", cls.local_boxes),
            local_items=os.getenv("SWAPBOX_LOCAL_ITEMS", cls.local_items),
            http_timeout=_env_float("SWAPBOX_HTTP_TIMEOUT", cls.http_timeout),
            log_level=os.getenv("SWAPBOX_LOG_LEVEL", cls.log_level).upper(),
        )


__all__ = ["AppSettings"]
