from __future__ import annotations

import pytest

from swapbox.domain import CapacityClass, ItemDimensions, ItemId
from swapbox.errors import NoCapacityError
from swapbox.lifecycle import CapacityLimits, measure_bundle, required_capacity


def _dims(item_id: int, length: float, width: float, height: float) -> ItemDimensions:
    return ItemDimensions(item_id=ItemId(item_id), length=length, width=width, height=height)


def test_measure_bundle_uses_longest_side_and_total_volume() -> None:
    bundle = measure_bundle([_dims(1, 10, 5, 2), _dims(2, 30, 4, 1)])
    assert bundle.longest_side == 30
    assert bundle.volume == 100 + 120


def test_measure_bundle_rejects_empty() -> None:
    with pytest.raises(ValueError):
        measure_bundle([])


@pytest.mark.parametrize(
    ("dimensions", "expected"),
    [
        ([(10, 10, 10)], CapacityClass.SMALL),
        ([(35, 10, 10)], CapacityClass.SMALL),
        ([(36, 10, 10)], CapacityClass.MEDIUM),
        ([(20, 20, 20)] * 2, CapacityClass.MEDIUM),
        ([(60, 40, 30)], CapacityClass.LARGE),
        ([(90, 60, 60)], CapacityClass.XLARGE),
    ],
)
def test_required_capacity_picks_smallest_fitting_class(
    dimensions: list[tuple[float, float, float]], expected: CapacityClass
) -> None:
    items = [_dims(index, *size) for index, size in enumerate(dimensions, start=1)]
    assert required_capacity(items) is expected


def test_required_capacity_raises_when_nothing_fits() -> None:
    with pytest.raises(NoCapacityError):
        required_capacity([_dims(1, 150, 10, 10)])


def test_required_capacity_honours_custom_limits() -> None:
    limits = [
        CapacityLimits(CapacityClass.LARGE, max_side=200, max_volume=1_000_000),
        CapacityLimits(CapacityClass.SMALL, max_side=20, max_volume=1_000),
    ]
    assert required_capacity([_dims(1, 5, 5, 5)], limits) is CapacityClass.SMALL
    assert required_capacity([_dims(1, 150, 10, 10)], limits) is CapacityClass.LARGE


def test_capacity_classes_are_ordered() -> None:
    assert CapacityClass.SMALL.fits_within(CapacityClass.LARGE)
    assert not CapacityClass.XLARGE.fits_within(CapacityClass.MEDIUM)
    assert CapacityClass.MEDIUM.fits_within(CapacityClass.MEDIUM)


def test_item_dimensions_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _dims(1, 0, 10, 10)
