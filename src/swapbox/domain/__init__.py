"""Domain models for SwapBox."""

from .access import BoxAccessCode, IssuedCode
from .base import DomainModel
from .enums import BoxRole, CapacityClass, ExchangeStatus
from .exchange import Exchange, ExchangeLogEntry, ExchangeStatusView
from .items import ItemDimensions, LedgerItem
from .types import BoxId, CodeId, ExchangeId, ItemId, UserId

__all__ = [
    "BoxAccessCode",
    "BoxId",
    "BoxRole",
    "CapacityClass",
    "CodeId",
    "DomainModel",
    "Exchange",
    "ExchangeId",
    "ExchangeLogEntry",
    "ExchangeStatus",
    "ExchangeStatusView",
    "IssuedCode",
    "ItemDimensions",
    "ItemId",
    "LedgerItem",
    "UserId",
]
