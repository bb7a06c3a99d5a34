import enum

from sqlalchemy import Enum as SQLAlchemyEnum


def db_enum(enum_cls: type[enum.Enum], name: str) -> SQLAlchemyEnum:
    """Store enum *values* (not member names) in a VARCHAR column."""
    return SQLAlchemyEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=False,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


# ── Requisitions ──────────────────────────────────────────────────────────


class RequisitionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PACKAGED = "packaged"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    ASSIGNED_TO_BATCH = "assigned_to_batch"
    IN_TRANSIT = "in_transit"
    FULFILLED = "fulfilled"
    PARTIALLY_DELIVERED = "partially_delivered"
    FAILED = "failed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RequisitionType(str, enum.Enum):
    ROUTINE = "routine"
    EMERGENCY = "emergency"


class TransitionSource(str, enum.Enum):
    USER = "user"
    SYSTEM = "system"


# ── Packaging ─────────────────────────────────────────────────────────────


class PackagingType(str, enum.Enum):
    BAG_S = "bag_s"
    BOX_M = "box_m"
    BOX_L = "box_l"
    CRATE_XL = "crate_xl"


# ── Delivery batches ──────────────────────────────────────────────────────


class BatchStatus(str, enum.Enum):
    PLANNED = "planned"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BatchPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ── Event outbox ──────────────────────────────────────────────────────────


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
