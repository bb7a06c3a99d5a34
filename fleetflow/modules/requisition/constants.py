"""Requisition state machine transitions, timestamps, and event types."""

from __future__ import annotations

from fleetflow.models.enums import RequisitionStatus

# Valid transitions: from_status -> allowed to_statuses
VALID_TRANSITIONS: dict[RequisitionStatus, frozenset[RequisitionStatus]] = {
    RequisitionStatus.PENDING: frozenset({
        RequisitionStatus.APPROVED,
        RequisitionStatus.REJECTED,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.APPROVED: frozenset({
        RequisitionStatus.PACKAGED,
        RequisitionStatus.REJECTED,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.PACKAGED: frozenset({
        RequisitionStatus.READY_FOR_DISPATCH,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.READY_FOR_DISPATCH: frozenset({
        RequisitionStatus.ASSIGNED_TO_BATCH,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.ASSIGNED_TO_BATCH: frozenset({
        RequisitionStatus.IN_TRANSIT,
        RequisitionStatus.READY_FOR_DISPATCH,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.IN_TRANSIT: frozenset({
        RequisitionStatus.FULFILLED,
        RequisitionStatus.PARTIALLY_DELIVERED,
        RequisitionStatus.FAILED,
    }),
    RequisitionStatus.FULFILLED: frozenset(),
    RequisitionStatus.PARTIALLY_DELIVERED: frozenset(),
    RequisitionStatus.FAILED: frozenset(),
    RequisitionStatus.REJECTED: frozenset(),
    RequisitionStatus.CANCELLED: frozenset(),
}

# Transitions only the system may perform
SYSTEM_ONLY_TRANSITIONS: frozenset[tuple[RequisitionStatus, RequisitionStatus]] = frozenset({
    (RequisitionStatus.APPROVED, RequisitionStatus.PACKAGED),
})

TERMINAL_STATUSES: frozenset[RequisitionStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

DELIVERY_OUTCOMES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.FULFILLED,
    RequisitionStatus.PARTIALLY_DELIVERED,
    RequisitionStatus.FAILED,
})

# Timestamp column stamped (once) on entering each status
STATUS_TIMESTAMP_FIELDS: dict[RequisitionStatus, str] = {
    RequisitionStatus.APPROVED: "approved_at",
    RequisitionStatus.PACKAGED: "packaged_at",
    RequisitionStatus.READY_FOR_DISPATCH: "ready_for_dispatch_at",
    RequisitionStatus.ASSIGNED_TO_BATCH: "assigned_to_batch_at",
    RequisitionStatus.IN_TRANSIT: "in_transit_at",
    RequisitionStatus.FULFILLED: "delivered_at",
    RequisitionStatus.PARTIALLY_DELIVERED: "delivered_at",
    RequisitionStatus.FAILED: "delivered_at",
    RequisitionStatus.REJECTED: "rejected_at",
    RequisitionStatus.CANCELLED: "cancelled_at",
}

# Event type strings for the outbox
EVENT_REQUISITION_SUBMITTED = "requisition.submitted"
EVENT_REQUISITION_APPROVED = "requisition.approved"
EVENT_REQUISITION_PACKAGED = "requisition.packaged"
EVENT_REQUISITION_READY = "requisition.ready_for_dispatch"
EVENT_REQUISITION_ASSIGNED = "requisition.assigned_to_batch"
EVENT_REQUISITION_IN_TRANSIT = "requisition.in_transit"
EVENT_REQUISITION_DELIVERED = "requisition.delivered"
EVENT_REQUISITION_REJECTED = "requisition.rejected"
EVENT_REQUISITION_CANCELLED = "requisition.cancelled"

STATUS_EVENT_MAP: dict[RequisitionStatus, str] = {
    RequisitionStatus.APPROVED: EVENT_REQUISITION_APPROVED,
    RequisitionStatus.PACKAGED: EVENT_REQUISITION_PACKAGED,
    RequisitionStatus.READY_FOR_DISPATCH: EVENT_REQUISITION_READY,
    RequisitionStatus.ASSIGNED_TO_BATCH: EVENT_REQUISITION_ASSIGNED,
    RequisitionStatus.IN_TRANSIT: EVENT_REQUISITION_IN_TRANSIT,
    RequisitionStatus.FULFILLED: EVENT_REQUISITION_DELIVERED,
    RequisitionStatus.PARTIALLY_DELIVERED: EVENT_REQUISITION_DELIVERED,
    RequisitionStatus.FAILED: EVENT_REQUISITION_DELIVERED,
    RequisitionStatus.REJECTED: EVENT_REQUISITION_REJECTED,
    RequisitionStatus.CANCELLED: EVENT_REQUISITION_CANCELLED,
}
