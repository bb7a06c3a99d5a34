"""Delivery batch service — planning CRUD and the batch status machine."""

from __future__ import annotations

import logging
import uuid
from datetime import date, time
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.base import utcnow
from fleetflow.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    PreconditionFailedException,
    ValidationException,
)
from fleetflow.models.delivery_batch import DeliveryBatch
from fleetflow.models.enums import BatchPriority, BatchStatus, RequisitionStatus
from fleetflow.models.reference import Driver, Vehicle, Warehouse
from fleetflow.modules.auth import Actor
from fleetflow.modules.batch.constants import (
    BATCH_TRANSITIONS,
    EVENT_BATCH_CREATED,
    EVENT_BATCH_UPDATED,
    PLANNING_STATUSES,
    STATUS_EVENT_MAP,
    TERMINAL_STATUSES,
    UPDATABLE_FIELDS,
)
from fleetflow.modules.batch.snapshot import SnapshotManager, ensure_mutable, normalize_facility_ids
from fleetflow.modules.events.outbox_service import OutboxService
from fleetflow.modules.requisition.service import RequisitionService

logger = logging.getLogger(__name__)


class BatchService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = OutboxService(db)
        self.snapshots = SnapshotManager(db)

    @staticmethod
    def _generate_batch_number() -> str:
        return f"BATCH-{utcnow().year}-{uuid.uuid4().hex[:8].upper()}"

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        name: str,
        scheduled_date: date,
        actor: Actor | None = None,
        warehouse_id: uuid.UUID | None = None,
        vehicle_id: uuid.UUID | None = None,
        facility_ids: list[uuid.UUID] | None = None,
        optimized_route: dict | None = None,
        scheduled_time: time | None = None,
        priority: BatchPriority = BatchPriority.MEDIUM,
        total_distance: Decimal | None = None,
        estimated_duration: int | None = None,
        total_quantity: int = 0,
        medication_type: str | None = None,
        notes: str | None = None,
    ) -> DeliveryBatch:
        """Create a batch in ``planned``. Drivers are assigned through dispatch."""
        if warehouse_id is not None and await self.db.get(Warehouse, warehouse_id) is None:
            raise NotFoundException(f"Warehouse {warehouse_id} not found")
        vehicle = await self.get_vehicle(vehicle_id) if vehicle_id else None

        batch = DeliveryBatch(
            name=name,
            batch_number=self._generate_batch_number(),
            warehouse_id=warehouse_id,
            vehicle_id=vehicle_id,
            vehicle_total_slots=vehicle.total_slots if vehicle else None,
            facility_ids=normalize_facility_ids(facility_ids),
            optimized_route=optimized_route,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            priority=priority,
            status=BatchStatus.PLANNED,
            total_distance=total_distance,
            estimated_duration=estimated_duration,
            total_quantity=total_quantity,
            medication_type=medication_type,
            notes=notes,
            created_by=actor.id if actor else None,
            is_snapshot_locked=False,
        )
        self.db.add(batch)
        await self.db.flush()

        await self.outbox.publish_event(
            event_type=EVENT_BATCH_CREATED,
            aggregate_type="batch",
            aggregate_id=batch.id,
            payload={
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "scheduled_date": scheduled_date,
                "facility_ids": batch.facility_ids,
            },
        )
        logger.info("Created batch %s (%s) for %s", batch.id, batch.batch_number, scheduled_date)
        return batch

    async def get_batch(self, batch_id: uuid.UUID, for_update: bool = False) -> DeliveryBatch:
        """Get a batch by ID. Raises NotFoundException if not found."""
        query = select(DeliveryBatch).where(DeliveryBatch.id == batch_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        batch = result.scalar_one_or_none()
        if batch is None:
            raise NotFoundException(f"Batch {batch_id} not found")
        return batch

    async def list_batches(
        self,
        status: BatchStatus | None = None,
        scheduled_date: date | None = None,
        driver_id: uuid.UUID | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DeliveryBatch], int]:
        filters = []
        if status is not None:
            filters.append(DeliveryBatch.status == status)
        if scheduled_date is not None:
            filters.append(DeliveryBatch.scheduled_date == scheduled_date)
        if driver_id is not None:
            filters.append(DeliveryBatch.driver_id == driver_id)

        total_result = await self.db.execute(
            select(func.count()).select_from(DeliveryBatch).where(*filters)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(DeliveryBatch)
            .where(*filters)
            .order_by(DeliveryBatch.scheduled_date.desc(), DeliveryBatch.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_batch(
        self, batch_id: uuid.UUID, changes: dict, actor: Actor | None = None
    ) -> DeliveryBatch:
        """Apply planning edits; frozen fields of a locked batch raise BatchLockedException."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationException(
                f"Fields cannot be updated directly: {', '.join(sorted(unknown))}",
                details=[{"field": field, "message": "not updatable"} for field in sorted(unknown)],
            )

        batch = await self.get_batch(batch_id, for_update=True)
        status = BatchStatus(batch.status)
        if status in TERMINAL_STATUSES:
            raise PreconditionFailedException(
                "batch", batch.id, [s.value for s in BatchStatus if s not in TERMINAL_STATUSES],
                status.value,
            )
        ensure_mutable(batch, changes)

        if "facility_ids" in changes:
            changes = {**changes, "facility_ids": normalize_facility_ids(changes["facility_ids"])}
        if "vehicle_id" in changes and changes["vehicle_id"] != batch.vehicle_id:
            vehicle = await self.get_vehicle(changes["vehicle_id"]) if changes["vehicle_id"] else None
            batch.vehicle_total_slots = vehicle.total_slots if vehicle else None

        for key, value in changes.items():
            setattr(batch, key, value)
        await self.db.flush()

        await self.outbox.publish_event(
            event_type=EVENT_BATCH_UPDATED,
            aggregate_type="batch",
            aggregate_id=batch.id,
            payload={
                "batch_id": batch.id,
                "fields": sorted(changes),
                "updated_by": actor.id if actor else None,
            },
        )
        logger.info("Updated batch %s fields %s", batch.id, sorted(changes))
        return batch

    # ------------------------------------------------------------------
    # Status machine
    # ------------------------------------------------------------------

    async def transition_status(
        self,
        batch: DeliveryBatch,
        to_status: BatchStatus,
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> DeliveryBatch:
        """Move a batch to ``to_status`` and run the requisition cascades.

        * planned/assigned -> in-progress locks the snapshot; assigned
          requisitions go in_transit.
        * in-progress -> in-progress on a locked batch changes nothing.
        * in-progress -> completed: in_transit requisitions go fulfilled.
        * planned/assigned -> cancelled: assigned requisitions are released
          to ready_for_dispatch and detached.
        * in-progress -> cancelled aborts the run: in_transit requisitions
          go failed; the snapshot is kept.
        """
        from_status = BatchStatus(batch.status)
        ensure_mutable(batch, {"status": to_status})
        if from_status == to_status == BatchStatus.IN_PROGRESS and batch.is_snapshot_locked:
            # The snapshot taken on entry stays; no re-lock, no event
            logger.info("Batch %s is already in progress with a locked snapshot", batch.id)
            return batch
        if to_status not in BATCH_TRANSITIONS.get(from_status, frozenset()):
            raise InvalidTransitionException("batch", batch.id, from_status.value, to_status.value)

        was_locked = batch.is_snapshot_locked
        batch.status = to_status
        await self.db.flush()

        requisitions = RequisitionService(self.db)
        if to_status == BatchStatus.IN_PROGRESS and from_status in PLANNING_STATUSES:
            await self.snapshots.lock(batch)
        elif to_status == BatchStatus.COMPLETED:
            await requisitions.cascade_batch_requisitions(
                batch.id, RequisitionStatus.IN_TRANSIT, RequisitionStatus.FULFILLED
            )
        elif to_status == BatchStatus.CANCELLED:
            batch.cancellation_reason = reason
            batch.cancelled_by = actor.id if actor else None
            batch.cancelled_at = utcnow()
            if was_locked:
                await requisitions.cascade_batch_requisitions(
                    batch.id,
                    RequisitionStatus.IN_TRANSIT,
                    RequisitionStatus.FAILED,
                    reason=f"Batch {batch.batch_number} aborted: {reason}",
                )
            else:
                await requisitions.cascade_batch_requisitions(
                    batch.id,
                    RequisitionStatus.ASSIGNED_TO_BATCH,
                    RequisitionStatus.READY_FOR_DISPATCH,
                    reason=f"Batch {batch.batch_number} cancelled",
                    detach=True,
                )
            await self.db.flush()

        event_type = STATUS_EVENT_MAP.get(to_status)
        if event_type and from_status != to_status:
            await self.outbox.publish_event(
                event_type=event_type,
                aggregate_type="batch",
                aggregate_id=batch.id,
                payload={
                    "batch_id": batch.id,
                    "batch_number": batch.batch_number,
                    "from_status": from_status,
                    "status": to_status,
                    "driver_id": batch.driver_id,
                    "vehicle_id": batch.vehicle_id,
                    "was_locked": was_locked,
                    "reason": reason,
                    "triggered_by": actor.id if actor else None,
                },
            )

        logger.info(
            "Batch %s transitioned %s -> %s", batch.id, from_status.value, to_status.value
        )
        return batch

    # ------------------------------------------------------------------
    # Reference lookups
    # ------------------------------------------------------------------

    async def get_vehicle(self, vehicle_id: uuid.UUID) -> Vehicle:
        vehicle = await self.db.get(Vehicle, vehicle_id)
        if vehicle is None:
            raise NotFoundException(f"Vehicle {vehicle_id} not found")
        return vehicle

    async def get_driver(self, driver_id: uuid.UUID) -> Driver:
        driver = await self.db.get(Driver, driver_id)
        if driver is None:
            raise NotFoundException(f"Driver {driver_id} not found")
        return driver
