"""Batch snapshot: the frozen, versioned record of a batch at dispatch time.

A batch is locked exactly once, when it first moves to ``in-progress``.
The lock is a compare-and-swap on ``is_snapshot_locked``; a caller that
loses the race finds the flag already set and does nothing.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.base import utcnow
from fleetflow.exceptions import BatchLockedException, NotFoundException
from fleetflow.models.delivery_batch import DeliveryBatch
from fleetflow.models.enums import BatchPriority, BatchStatus, RequisitionStatus
from fleetflow.models.reference import Driver, Vehicle
from fleetflow.models.requisition import Requisition
from fleetflow.models.requisition_packaging import RequisitionPackaging
from fleetflow.modules.batch.constants import (
    EVENT_BATCH_SNAPSHOT_LOCKED,
    FROZEN_FIELDS,
    LOCKED_ALLOWED_STATUSES,
    SNAPSHOT_VERSION,
)
from fleetflow.modules.events.outbox_service import OutboxService
from fleetflow.modules.requisition.service import RequisitionService

logger = logging.getLogger(__name__)


class BatchSnapshot(BaseModel):
    """Immutable value object stored in ``delivery_batches.batch_snapshot``."""

    model_config = ConfigDict(frozen=True)

    snapshot_version: Literal[1] = SNAPSHOT_VERSION
    created_at: datetime
    batch_id: uuid.UUID
    batch_number: str
    vehicle_id: uuid.UUID | None = None
    vehicle_plate_number: str | None = None
    vehicle_total_slots: int | None = None
    driver_id: uuid.UUID | None = None
    driver_name: str | None = None
    warehouse_id: uuid.UUID | None = None
    facility_ids: tuple[uuid.UUID, ...] = ()
    requisition_ids: tuple[uuid.UUID, ...] = ()
    optimized_route: Any = None
    total_slot_demand: Decimal = Decimal("0")
    total_quantity: int = 0
    total_distance: Decimal | None = None
    estimated_duration: int | None = None
    scheduled_date: date
    scheduled_time: time | None = None
    priority: BatchPriority
    medication_type: str | None = None

    @field_validator("facility_ids", "requisition_ids", mode="before")
    @classmethod
    def _as_tuple(cls, value):
        return tuple(value or ())

    def to_json(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: dict) -> BatchSnapshot:
        return cls.model_validate(data)


def normalize_facility_ids(facility_ids) -> list[str]:
    """Facility ids as stored in the JSON column: canonical UUID strings."""
    return [str(uuid.UUID(str(facility_id))) for facility_id in facility_ids or []]


def ensure_mutable(batch: DeliveryBatch, changes: dict) -> None:
    """Raise BatchLockedException if ``changes`` touch what the lock froze.

    ``changes`` maps attribute names to proposed values; values equal to the
    current ones are not changes.
    """
    if not batch.is_snapshot_locked:
        return

    for field in FROZEN_FIELDS:
        if field not in changes:
            continue
        proposed = changes[field]
        current = getattr(batch, field)
        if field == "facility_ids":
            proposed = normalize_facility_ids(proposed)
            current = normalize_facility_ids(current)
        if proposed != current:
            raise BatchLockedException(batch.id, field)

    if "status" in changes and BatchStatus(changes["status"]) not in LOCKED_ALLOWED_STATUSES:
        raise BatchLockedException(
            batch.id,
            "status",
            f"Cannot move locked batch {batch.id} to '{BatchStatus(changes['status']).value}'",
        )


class SnapshotManager:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def build_snapshot(self, batch_id: uuid.UUID) -> BatchSnapshot:
        """Read the batch's current dispatch state into a new snapshot."""
        batch = await self.db.get(DeliveryBatch, batch_id)
        if batch is None:
            raise NotFoundException(f"Batch {batch_id} not found")

        vehicle = await self.db.get(Vehicle, batch.vehicle_id) if batch.vehicle_id else None
        driver = await self.db.get(Driver, batch.driver_id) if batch.driver_id else None

        demand_result = await self.db.execute(
            select(func.coalesce(func.sum(RequisitionPackaging.rounded_slot_demand), 0))
            .select_from(Requisition)
            .join(RequisitionPackaging, RequisitionPackaging.requisition_id == Requisition.id)
            .where(Requisition.batch_id == batch_id)
        )
        requisition_result = await self.db.execute(
            select(Requisition.id)
            .where(
                Requisition.batch_id == batch_id,
                Requisition.status == RequisitionStatus.ASSIGNED_TO_BATCH,
            )
            .order_by(Requisition.requisition_number)
        )

        return BatchSnapshot(
            created_at=utcnow(),
            batch_id=batch.id,
            batch_number=batch.batch_number,
            vehicle_id=batch.vehicle_id,
            vehicle_plate_number=vehicle.plate_number if vehicle else None,
            vehicle_total_slots=vehicle.total_slots if vehicle else None,
            driver_id=batch.driver_id,
            driver_name=driver.name if driver else None,
            warehouse_id=batch.warehouse_id,
            facility_ids=batch.facility_ids or [],
            requisition_ids=list(requisition_result.scalars().all()),
            optimized_route=batch.optimized_route,
            total_slot_demand=Decimal(demand_result.scalar() or 0),
            total_quantity=batch.total_quantity or 0,
            total_distance=batch.total_distance,
            estimated_duration=batch.estimated_duration,
            scheduled_date=batch.scheduled_date,
            scheduled_time=batch.scheduled_time,
            priority=batch.priority,
            medication_type=batch.medication_type,
        )

    async def lock(self, batch: DeliveryBatch) -> bool:
        """Store the snapshot and lock the batch; False if it was already locked.

        On success every ``assigned_to_batch`` requisition of the batch moves
        to ``in_transit`` in the same transaction.
        """
        await self.db.flush()
        snapshot = await self.build_snapshot(batch.id)

        result = await self.db.execute(
            update(DeliveryBatch)
            .where(DeliveryBatch.id == batch.id, DeliveryBatch.is_snapshot_locked.is_(False))
            .values(
                batch_snapshot=snapshot.to_json(),
                is_snapshot_locked=True,
                snapshot_locked_at=snapshot.created_at,
                total_slot_demand=snapshot.total_slot_demand,
                vehicle_total_slots=snapshot.vehicle_total_slots,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(batch)
        if result.rowcount == 0:
            logger.info("Batch %s already locked; snapshot unchanged", batch.id)
            return False

        moved = await RequisitionService(self.db).cascade_batch_requisitions(
            batch.id, RequisitionStatus.ASSIGNED_TO_BATCH, RequisitionStatus.IN_TRANSIT
        )
        await OutboxService(self.db).publish_event(
            event_type=EVENT_BATCH_SNAPSHOT_LOCKED,
            aggregate_type="batch",
            aggregate_id=batch.id,
            payload={
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "total_slot_demand": snapshot.total_slot_demand,
                "vehicle_total_slots": snapshot.vehicle_total_slots,
                "requisitions_in_transit": moved,
            },
        )
        logger.info(
            "Locked snapshot of batch %s: %s slots, %d requisitions in transit",
            batch.id, snapshot.total_slot_demand, moved,
        )
        return True

    @staticmethod
    def get_snapshot(batch: DeliveryBatch) -> BatchSnapshot | None:
        if batch.batch_snapshot is None:
            return None
        return BatchSnapshot.from_json(batch.batch_snapshot)
