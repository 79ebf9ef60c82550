"""Shared type aliases for the domain layer."""

from __future__ import annotations

from typing import NewType
from uuid import UUID

ExchangeId = NewType("ExchangeId", int)
ItemId = NewType("ItemId", int)
UserId = NewType("UserId", int)
BoxId = NewType("BoxId", str)
CodeId = NewType("CodeId", UUID)

__all__ = [
    "BoxId",
    "CodeId",
    "ExchangeId",
    "ItemId",
    "UserId",
]
