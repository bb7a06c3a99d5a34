"""Packaging classifier.

``classify`` is a pure function of its two arguments and is memoised with
``functools.lru_cache``; repeated or concurrent calls with the same inputs
always return the same tier.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from fleetflow.models.enums import PackagingType
from fleetflow.modules.packaging.constants import CLASSIFICATION_TIERS, SMALLEST_TIER


def _as_decimal(value: Decimal | float | int | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.12 as 0.12 instead of its binary float expansion
    return Decimal(str(value))


@lru_cache(maxsize=4096)
def classify(
    weight_kg: Decimal | float | int | None, volume_m3: Decimal | float | int | None
) -> PackagingType:
    """Return the smallest packaging tier that fits one unit of an item.

    Weight thresholds are checked before volume within each tier. ``None``
    counts as zero.
    """
    weight = _as_decimal(weight_kg)
    volume = _as_decimal(volume_m3)
    for packaging_type, max_weight, max_volume in CLASSIFICATION_TIERS:
        if weight > max_weight or volume > max_volume:
            return packaging_type
    return SMALLEST_TIER
