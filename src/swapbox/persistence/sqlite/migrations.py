"""SQLite migrations for SwapBox."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from .models import Base

MigrationStep = Callable[[AsyncConnection], Awaitable[None]]


async def _create_schema(conn: AsyncConnection) -> None:
    await conn.run_sync(Base.metadata.create_all)


async def _add_open_code_index(conn: AsyncConnection) -> None:
    await conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS ix_access_codes_open "
            "ON access_codes (exchange_id, consumed_at, revoked_at)"
        )
    )


MIGRATIONS: tuple[tuple[int, MigrationStep], ...] = (
    (1, _create_schema),
    (2, _add_open_code_index),
)


async def apply_migrations(engine: AsyncEngine) -> int:
    """Apply pending migrations and return the resulting schema version."""

    async with engine.begin() as conn:
        await conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS swapbox_schema_migrations (version INTEGER PRIMARY KEY)"
            )
        )
        result = await conn.execute(text("SELECT MAX(version) FROM swapbox_schema_migrations"))
        current = result.scalar() or 0
        for version, step in MIGRATIONS:
            if version <= current:
                continue
            await step(conn)
            await conn.execute(
                text("INSERT INTO swapbox_schema_migrations (version) VALUES (:version)"),
                {"version": version},
            )
            current = version
        return current


__all__ = ["MIGRATIONS", "apply_migrations"]
