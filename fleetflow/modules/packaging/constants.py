"""Packaging tiers, thresholds and slot-cost fallbacks."""

from __future__ import annotations

from decimal import Decimal

from fleetflow.models.enums import PackagingType

# Classification tiers, largest first: (type, weight_kg_above, volume_m3_above).
# Exceeding either threshold is enough to land in the tier.
CLASSIFICATION_TIERS: tuple[tuple[PackagingType, Decimal, Decimal], ...] = (
    (PackagingType.CRATE_XL, Decimal("30"), Decimal("0.12")),
    (PackagingType.BOX_L, Decimal("15"), Decimal("0.05")),
    (PackagingType.BOX_M, Decimal("5"), Decimal("0.02")),
)
SMALLEST_TIER = PackagingType.BAG_S

# Slot costs shipped in the packaging_slot_costs seed rows
SEEDED_SLOT_COSTS: dict[PackagingType, Decimal] = {
    PackagingType.BAG_S: Decimal("0.25"),
    PackagingType.BOX_M: Decimal("0.50"),
    PackagingType.BOX_L: Decimal("1.00"),
    PackagingType.CRATE_XL: Decimal("2.00"),
}

SLOT_DEMAND_QUANTUM = Decimal("0.01")
# Slot-demand columns are NUMERIC(6, 2)
MAX_SLOT_DEMAND = Decimal("9999.99")
WEIGHT_QUANTUM = Decimal("0.01")
VOLUME_QUANTUM = Decimal("0.001")
