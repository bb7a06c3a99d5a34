"""Dispatch orchestrator — driver/vehicle assignment, start, completion, cancellation.

Each operation reads the batch with ``FOR UPDATE`` and runs inside the
caller's transaction; the batch and requisition cascades commit together.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.base import utcnow
from fleetflow.exceptions import (
    BatchLockedException,
    MissingAssignmentException,
    PreconditionFailedException,
    ValidationException,
)
from fleetflow.models.delivery_batch import DeliveryBatch
from fleetflow.models.enums import BatchStatus
from fleetflow.modules.auth import Actor
from fleetflow.modules.batch.constants import (
    EVENT_BATCH_DRIVER_ASSIGNED,
    EVENT_BATCH_VEHICLE_ASSIGNED,
    PLANNING_STATUSES,
    TERMINAL_STATUSES,
)
from fleetflow.modules.batch.service import BatchService
from fleetflow.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)

_PLANNING_VALUES = sorted(status.value for status in PLANNING_STATUSES)


class DispatchService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.batches = BatchService(db)
        self.outbox = OutboxService(db)

    def _require_planning(self, batch: DeliveryBatch, field: str) -> None:
        if batch.is_snapshot_locked:
            raise BatchLockedException(batch.id, field)
        status = BatchStatus(batch.status)
        if status not in PLANNING_STATUSES:
            raise PreconditionFailedException("batch", batch.id, _PLANNING_VALUES, status.value)

    async def assign_driver(
        self, batch_id: uuid.UUID, driver_id: uuid.UUID, actor: Actor | None = None
    ) -> bool:
        """Set the batch driver; the batch becomes ``assigned``."""
        batch = await self.batches.get_batch(batch_id, for_update=True)
        self._require_planning(batch, "driver_id")
        driver = await self.batches.get_driver(driver_id)

        batch.driver_id = driver.id
        await self.batches.transition_status(batch, BatchStatus.ASSIGNED, actor)
        await self.outbox.publish_event(
            event_type=EVENT_BATCH_DRIVER_ASSIGNED,
            aggregate_type="batch",
            aggregate_id=batch.id,
            payload={"batch_id": batch.id, "driver_id": driver.id, "driver_name": driver.name},
        )
        logger.info("Assigned driver %s to batch %s", driver.id, batch.id)
        return True

    async def assign_vehicle(
        self, batch_id: uuid.UUID, vehicle_id: uuid.UUID, actor: Actor | None = None
    ) -> bool:
        """Set the batch vehicle; the batch status is unchanged."""
        batch = await self.batches.get_batch(batch_id, for_update=True)
        self._require_planning(batch, "vehicle_id")
        vehicle = await self.batches.get_vehicle(vehicle_id)

        batch.vehicle_id = vehicle.id
        batch.vehicle_total_slots = vehicle.total_slots
        await self.db.flush()
        await self.outbox.publish_event(
            event_type=EVENT_BATCH_VEHICLE_ASSIGNED,
            aggregate_type="batch",
            aggregate_id=batch.id,
            payload={
                "batch_id": batch.id,
                "vehicle_id": vehicle.id,
                "plate_number": vehicle.plate_number,
                "total_slots": vehicle.total_slots,
                "assigned_by": actor.id if actor else None,
            },
        )
        logger.info("Assigned vehicle %s to batch %s", vehicle.id, batch.id)
        return True

    async def start_dispatch(self, batch_id: uuid.UUID, actor: Actor | None = None) -> bool:
        """Move the batch to ``in-progress``; this locks its snapshot."""
        batch = await self.batches.get_batch(batch_id, for_update=True)
        status = BatchStatus(batch.status)
        if status not in PLANNING_STATUSES:
            raise PreconditionFailedException("batch", batch.id, _PLANNING_VALUES, status.value)

        missing = [
            name
            for name, value in (("driver", batch.driver_id), ("vehicle", batch.vehicle_id))
            if value is None
        ]
        if missing:
            raise MissingAssignmentException(batch.id, missing)

        batch.actual_start_time = utcnow()
        await self.batches.transition_status(batch, BatchStatus.IN_PROGRESS, actor)
        return True

    async def complete_dispatch(self, batch_id: uuid.UUID, actor: Actor | None = None) -> bool:
        """Finish an in-progress batch; its in-transit requisitions become fulfilled."""
        batch = await self.batches.get_batch(batch_id, for_update=True)
        status = BatchStatus(batch.status)
        if status != BatchStatus.IN_PROGRESS:
            raise PreconditionFailedException(
                "batch", batch.id, BatchStatus.IN_PROGRESS.value, status.value
            )

        batch.actual_end_time = utcnow()
        await self.batches.transition_status(batch, BatchStatus.COMPLETED, actor)
        return True

    async def cancel_batch(
        self, batch_id: uuid.UUID, actor: Actor, reason: str | None = None
    ) -> bool:
        """Cancel a batch.

        Before dispatch starts, assigned requisitions return to
        ``ready_for_dispatch``. Cancelling an in-progress batch aborts it: a
        reason is required, the snapshot is kept, and in-transit
        requisitions are marked ``failed``.
        """
        if actor is None:
            raise ValidationException("Cancelling a batch requires an authenticated actor")
        batch = await self.batches.get_batch(batch_id, for_update=True)
        status = BatchStatus(batch.status)
        if status in TERMINAL_STATUSES:
            raise PreconditionFailedException(
                "batch", batch.id, [*_PLANNING_VALUES, BatchStatus.IN_PROGRESS.value], status.value
            )
        if batch.is_snapshot_locked and not (reason and reason.strip()):
            raise ValidationException(
                "Aborting a dispatched batch requires a reason",
                details=[{"field": "reason", "message": "required once dispatch has started"}],
            )

        await self.batches.transition_status(batch, BatchStatus.CANCELLED, actor, reason=reason)
        return True
