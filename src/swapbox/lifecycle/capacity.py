"""Capacity classification of item bundles."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from swapbox.domain import CapacityClass, ItemDimensions
from swapbox.errors import NoCapacityError


@dataclass(frozen=True)
class CapacityLimits:
    """Largest bundle a box class accepts (centimetres, cubic centimetres)."""

    capacity_class: CapacityClass
    max_side: float
    max_volume: float


@dataclass(frozen=True)
class BundleSize:
    longest_side: float
    volume: float


DEFAULT_LIMITS: tuple[CapacityLimits, ...] = (
    CapacityLimits(CapacityClass.SMALL, max_side=35.0, max_volume=8_000.0),
    CapacityLimits(CapacityClass.MEDIUM, max_side=50.0, max_volume=36_000.0),
    CapacityLimits(CapacityClass.LARGE, max_side=70.0, max_volume=120_000.0),
    CapacityLimits(CapacityClass.XLARGE, max_side=100.0, max_volume=400_000.0),
)


def measure_bundle(dimensions: Iterable[ItemDimensions]) -> BundleSize:
    """Aggregate a bundle: the longest single side and the summed volume."""

    items = list(dimensions)
    if not items:
        msg = "Cannot size an empty bundle"
        raise ValueError(msg)
    return BundleSize(
        longest_side=max(item.longest_side for item in items),
        volume=sum(item.volume for item in items),
    )


def required_capacity(
    dimensions: Iterable[ItemDimensions],
    limits: Sequence[CapacityLimits] = DEFAULT_LIMITS,
) -> CapacityClass:
    """Return the smallest capacity class that holds the bundle."""

    bundle = measure_bundle(dimensions)
    for limit in sorted(limits, key=lambda entry: entry.capacity_class.rank):
        if bundle.longest_side <= limit.max_side and bundle.volume <= limit.max_volume:
            return limit.capacity_class
    msg = (
        f"No box class fits a bundle with longest side {bundle.longest_side:g}cm "
        f"and volume {bundle.volume:g}cm3"
    )
    raise NoCapacityError(msg)


__all__ = [
    "DEFAULT_LIMITS",
    "BundleSize",
    "CapacityLimits",
    "measure_bundle",
    "required_capacity",
]
