"""SQLite persistence implementation."""

from .unit_of_work import SQLiteStore, SQLiteUnitOfWork, create_sqlite_unit_of_work_factory

__all__ = ["SQLiteStore", "SQLiteUnitOfWork", "create_sqlite_unit_of_work_factory"]
