"""Async SQLite unit of work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from types import TracebackType

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from swapbox.persistence.errors import RepositoryError
from swapbox.persistence.interfaces import UnitOfWork

from .migrations import apply_migrations
from .repositories import (
    SQLiteAccessCodeRepository,
    SQLiteExchangeLogRepository,
    SQLiteExchangeRepository,
)

logger = logging.getLogger(__name__)


class SQLiteStore:
    """One engine per database URL; the schema is migrated on first use."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url)
        self.sessions = async_sessionmaker(self.engine, expire_on_commit=False)
        self._schema_version: int | None = None
        self._schema_lock: asyncio.Lock | None = None

    async def ensure_schema(self) -> int:
        if self._schema_version is not None:
            return self._schema_version
        if self._schema_lock is None:
            self._schema_lock = asyncio.Lock()
        async with self._schema_lock:
            if self._schema_version is None:
                self._schema_version = await apply_migrations(self.engine)
                logger.debug(
                    "SQLite schema at version %s for %s", self._schema_version, self.database_url
                )
        return self._schema_version

    async def dispose(self) -> None:
        await self.engine.dispose()


class SQLiteUnitOfWork(UnitOfWork):
    """Session-per-block unit of work; a clean exit commits, an exception rolls back."""

    exchange_repository: SQLiteExchangeRepository
    code_repository: SQLiteAccessCodeRepository
    log_repository: SQLiteExchangeLogRepository

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store
        self._session: AsyncSession | None = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            msg = "Unit of work used outside its 'async with' block"
            raise RepositoryError(msg)
        return self._session

    async def __aenter__(self) -> SQLiteUnitOfWork:
        await self._store.ensure_schema()
        session = self._store.sessions()
        self._session = session
        self.exchange_repository = SQLiteExchangeRepository(session)
        self.code_repository = SQLiteAccessCodeRepository(session)
        self.log_repository = SQLiteExchangeLogRepository(session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        async with session:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def create_sqlite_unit_of_work_factory(database_url: str) -> Callable[[], SQLiteUnitOfWork]:
    store = SQLiteStore(database_url)
    return lambda: SQLiteUnitOfWork(store)


__all__ = ["SQLiteStore", "SQLiteUnitOfWork", "create_sqlite_unit_of_work_factory"]
