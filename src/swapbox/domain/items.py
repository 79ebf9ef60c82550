"""Item views returned by the item ledger."""

from __future__ import annotations

from pydantic import Field

from .base import DomainModel
from .types import ExchangeId, ItemId, UserId


class ItemDimensions(DomainModel):
    """Declared size of an item in centimetres."""

    item_id: ItemId
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)

    @property
    def longest_side(self) -> float:
        return max(self.length, self.width, self.height)

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height


class LedgerItem(DomainModel):
    """Full item record as exposed by the ledger."""

    id: ItemId
    name: str
    owner_id: UserId | None = None
    exchange_id: ExchangeId | None = None
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    weight: float | None = None

    def dimensions(self) -> ItemDimensions:
        return ItemDimensions(
            item_id=self.id,
            length=self.length,
            width=self.width,
            height=self.height,
        )


__all__ = ["ItemDimensions", "LedgerItem"]
