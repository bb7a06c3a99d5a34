"""Packaging computation engine and slot-demand queries."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleetflow.config import settings
from fleetflow.database.base import utcnow
from fleetflow.exceptions import (
    AlreadyComputedException,
    NotFoundException,
    PackagingImmutableException,
    ValidationException,
)
from fleetflow.models.enums import PackagingType, RequisitionStatus
from fleetflow.models.packaging_slot_cost import PackagingSlotCost
from fleetflow.models.reference import Facility
from fleetflow.models.requisition import Requisition
from fleetflow.models.requisition_item import RequisitionItem
from fleetflow.models.requisition_packaging import RequisitionPackaging
from fleetflow.models.requisition_packaging_item import RequisitionPackagingItem
from fleetflow.modules.packaging.classifier import classify
from fleetflow.modules.packaging.constants import (
    MAX_SLOT_DEMAND,
    SLOT_DEMAND_QUANTUM,
    VOLUME_QUANTUM,
    WEIGHT_QUANTUM,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FacilitySlotDemand:
    facility_id: uuid.UUID
    facility_name: str
    slot_demand: Decimal
    requisition_count: int


class PackagingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    async def compute_packaging(
        self, requisition_id: uuid.UUID, computed_by: str = "system"
    ) -> RequisitionPackaging:
        """Compute and persist the packaging of a requisition, exactly once.

        Raises AlreadyComputedException when a packaging row already exists,
        including when a concurrent caller wins the unique constraint on
        ``requisition_id``. Nothing is committed here; the caller's
        transaction owns the writes.
        """
        existing = await self.db.execute(
            select(RequisitionPackaging.id).where(
                RequisitionPackaging.requisition_id == requisition_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyComputedException(requisition_id)

        items = await self._get_items(requisition_id)

        packaging = RequisitionPackaging(
            requisition_id=requisition_id,
            total_slot_demand=Decimal("0"),
            rounded_slot_demand=0,
            total_weight_kg=Decimal("0"),
            total_volume_m3=Decimal("0"),
            total_items=0,
            computed_by=computed_by,
            computed_at=utcnow(),
            is_final=False,
        )
        self.db.add(packaging)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise AlreadyComputedException(requisition_id) from exc

        slot_costs = await self._get_slot_costs()
        default_slot_cost = Decimal(str(settings.packaging_default_slot_cost))

        total_slot_demand = Decimal("0")
        total_weight = Decimal("0")
        total_volume = Decimal("0")
        total_items = 0

        for item in items:
            weight, volume = self._physical_data(item)
            packaging_type = classify(weight, volume)
            slot_cost = slot_costs.get(packaging_type)
            if slot_cost is None:
                logger.warning(
                    "No active slot cost for %s; using default %s",
                    packaging_type.value, default_slot_cost,
                )
                slot_cost = default_slot_cost

            # One package per unit
            package_count = item.quantity
            slot_demand = (package_count * slot_cost).quantize(SLOT_DEMAND_QUANTUM)
            if total_slot_demand + slot_demand > MAX_SLOT_DEMAND:
                raise ValidationException(
                    f"Requisition {requisition_id} needs more than {MAX_SLOT_DEMAND} slots",
                    details=[{
                        "field": "items",
                        "item_id": str(item.id),
                        "message": f"slot demand exceeds {MAX_SLOT_DEMAND}",
                    }],
                )

            self.db.add(RequisitionPackagingItem(
                requisition_packaging_id=packaging.id,
                requisition_item_id=item.id,
                packaging_type=packaging_type,
                package_count=package_count,
                slot_cost=slot_cost,
                slot_demand=slot_demand,
                item_name=item.item_name,
                quantity=item.quantity,
                weight_kg=weight,
                volume_m3=volume,
            ))

            total_slot_demand += slot_demand
            total_weight += weight * item.quantity
            total_volume += volume * item.quantity
            total_items += item.quantity

        await self._finalize(
            packaging,
            total_slot_demand=total_slot_demand,
            total_weight=total_weight,
            total_volume=total_volume,
            total_items=total_items,
        )
        logger.info(
            "Computed packaging for requisition %s: %s slots (%d rounded) over %d items",
            requisition_id,
            packaging.total_slot_demand,
            packaging.rounded_slot_demand,
            total_items,
        )
        return packaging

    async def _finalize(
        self,
        packaging: RequisitionPackaging,
        *,
        total_slot_demand: Decimal,
        total_weight: Decimal,
        total_volume: Decimal,
        total_items: int,
    ) -> None:
        """The single permitted update of a packaging row."""
        if packaging.is_final:
            raise PackagingImmutableException(
                f"Packaging for requisition {packaging.requisition_id} is already final",
                details=[{"requisition_id": str(packaging.requisition_id)}],
            )
        total_slot_demand = total_slot_demand.quantize(SLOT_DEMAND_QUANTUM)
        packaging.total_slot_demand = total_slot_demand
        packaging.rounded_slot_demand = int(
            total_slot_demand.to_integral_value(rounding=ROUND_CEILING)
        )
        packaging.total_weight_kg = total_weight.quantize(WEIGHT_QUANTUM)
        packaging.total_volume_m3 = total_volume.quantize(VOLUME_QUANTUM)
        packaging.total_items = total_items
        packaging.is_final = True
        await self.db.flush()

    @staticmethod
    def _physical_data(item: RequisitionItem) -> tuple[Decimal, Decimal]:
        """Per-unit weight and volume, falling back to the configured defaults."""
        weight = item.weight_kg
        volume = item.volume_m3
        if weight is None:
            weight = Decimal(str(settings.packaging_default_weight_kg))
            logger.warning(
                "Item %s (%s) has no weight; assuming %s kg", item.id, item.item_name, weight
            )
        if volume is None:
            volume = Decimal(str(settings.packaging_default_volume_m3))
            logger.warning(
                "Item %s (%s) has no volume; assuming %s m3", item.id, item.item_name, volume
            )
        return Decimal(str(weight)), Decimal(str(volume))

    async def _get_items(self, requisition_id: uuid.UUID) -> list[RequisitionItem]:
        result = await self.db.execute(
            select(RequisitionItem)
            .where(RequisitionItem.requisition_id == requisition_id)
            .order_by(RequisitionItem.created_at.asc(), RequisitionItem.id.asc())
        )
        return list(result.scalars().all())

    async def _get_slot_costs(self) -> dict[PackagingType, Decimal]:
        result = await self.db.execute(
            select(PackagingSlotCost.packaging_type, PackagingSlotCost.slot_cost).where(
                PackagingSlotCost.is_active.is_(True)
            )
        )
        return {row.packaging_type: Decimal(row.slot_cost) for row in result.all()}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_packaging(self, requisition_id: uuid.UUID) -> RequisitionPackaging:
        """Packaging with its items. Raises NotFoundException if not computed."""
        result = await self.db.execute(
            select(RequisitionPackaging)
            .options(selectinload(RequisitionPackaging.items))
            .where(RequisitionPackaging.requisition_id == requisition_id)
        )
        packaging = result.scalar_one_or_none()
        if packaging is None:
            raise NotFoundException(f"No packaging computed for requisition {requisition_id}")
        return packaging

    async def get_facility_slot_demand(self, facility_id: uuid.UUID) -> Decimal:
        """Sum of rounded slot demand of the facility's ready_for_dispatch requisitions."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(RequisitionPackaging.rounded_slot_demand), 0))
            .select_from(Requisition)
            .join(RequisitionPackaging, RequisitionPackaging.requisition_id == Requisition.id)
            .where(
                Requisition.facility_id == facility_id,
                Requisition.status == RequisitionStatus.READY_FOR_DISPATCH,
            )
        )
        return Decimal(result.scalar() or 0)

    async def get_batch_slot_demand(
        self, facility_ids: list[uuid.UUID]
    ) -> list[FacilitySlotDemand]:
        """Per-facility slot demand for batch planning. Unknown facility ids are omitted."""
        if not facility_ids:
            return []
        result = await self.db.execute(
            select(
                Facility.id,
                Facility.name,
                func.coalesce(func.sum(RequisitionPackaging.rounded_slot_demand), 0),
                func.count(func.distinct(Requisition.id)),
            )
            .select_from(Facility)
            .outerjoin(
                Requisition,
                and_(
                    Requisition.facility_id == Facility.id,
                    Requisition.status == RequisitionStatus.READY_FOR_DISPATCH,
                ),
            )
            .outerjoin(RequisitionPackaging, RequisitionPackaging.requisition_id == Requisition.id)
            .where(Facility.id.in_(facility_ids))
            .group_by(Facility.id, Facility.name)
            .order_by(Facility.name.asc())
        )
        return [
            FacilitySlotDemand(
                facility_id=facility_id,
                facility_name=name,
                slot_demand=Decimal(slot_demand),
                requisition_count=count,
            )
            for facility_id, name, slot_demand, count in result.all()
        ]
