"""Delivery batch status graph, snapshot-lock rules, and event types."""

from __future__ import annotations

from fleetflow.models.delivery_batch import FROZEN_FIELDS, LOCKED_ALLOWED_STATUSES
from fleetflow.models.enums import BatchStatus

# Valid transitions: from_status -> allowed to_statuses.
# assigned -> assigned covers re-assigning the driver.
BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PLANNED: frozenset({
        BatchStatus.ASSIGNED,
        BatchStatus.IN_PROGRESS,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.ASSIGNED: frozenset({
        BatchStatus.ASSIGNED,
        BatchStatus.IN_PROGRESS,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.IN_PROGRESS: frozenset({
        BatchStatus.COMPLETED,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

# Statuses in which a batch is still being planned (driver, vehicle, requisitions)
PLANNING_STATUSES: frozenset[BatchStatus] = frozenset({BatchStatus.PLANNED, BatchStatus.ASSIGNED})

TERMINAL_STATUSES: frozenset[BatchStatus] = frozenset(
    status for status, targets in BATCH_TRANSITIONS.items() if not targets
)

# Fields PATCH may touch; everything else moves through dedicated operations
UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "name",
    "warehouse_id",
    "vehicle_id",
    "facility_ids",
    "optimized_route",
    "total_distance",
    "estimated_duration",
    "total_quantity",
    "medication_type",
    "scheduled_date",
    "scheduled_time",
    "priority",
    "notes",
})

SNAPSHOT_VERSION = 1

# Event type strings for the outbox
EVENT_BATCH_CREATED = "batch.created"
EVENT_BATCH_UPDATED = "batch.updated"
EVENT_BATCH_DRIVER_ASSIGNED = "batch.driver_assigned"
EVENT_BATCH_VEHICLE_ASSIGNED = "batch.vehicle_assigned"
EVENT_BATCH_DISPATCH_STARTED = "batch.dispatch_started"
EVENT_BATCH_SNAPSHOT_LOCKED = "batch.snapshot_locked"
EVENT_BATCH_DISPATCH_COMPLETED = "batch.dispatch_completed"
EVENT_BATCH_CANCELLED = "batch.cancelled"

STATUS_EVENT_MAP: dict[BatchStatus, str] = {
    BatchStatus.IN_PROGRESS: EVENT_BATCH_DISPATCH_STARTED,
    BatchStatus.COMPLETED: EVENT_BATCH_DISPATCH_COMPLETED,
    BatchStatus.CANCELLED: EVENT_BATCH_CANCELLED,
}
