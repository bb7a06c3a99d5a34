"""DeliveryBatch model — one vehicle/driver dispatch run over a set of facilities."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    event,
    false,
    inspect,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import JSONType, Base, TimestampMixin, UUIDPrimaryKeyMixin
from fleetflow.exceptions import BatchLockedException
from fleetflow.models.enums import BatchPriority, BatchStatus, db_enum

if TYPE_CHECKING:
    from fleetflow.models.reference import Driver, Vehicle, Warehouse
    from fleetflow.models.requisition import Requisition

# Fields frozen by the snapshot lock, and the statuses a locked batch may still move to
FROZEN_FIELDS = ("facility_ids", "vehicle_id", "total_quantity", "optimized_route")
LOCKED_ALLOWED_STATUSES = frozenset(
    {BatchStatus.IN_PROGRESS, BatchStatus.COMPLETED, BatchStatus.CANCELLED}
)


class DeliveryBatch(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "delivery_batches"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    warehouse_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("warehouses.id", ondelete="SET NULL")
    )
    vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="SET NULL")
    )
    driver_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("drivers.id", ondelete="SET NULL")
    )

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[time | None] = mapped_column(Time)
    status: Mapped[BatchStatus] = mapped_column(
        db_enum(BatchStatus, "batch_status"),
        nullable=False,
        default=BatchStatus.PLANNED,
        server_default=BatchStatus.PLANNED.value,
    )
    priority: Mapped[BatchPriority] = mapped_column(
        db_enum(BatchPriority, "batch_priority"),
        nullable=False,
        default=BatchPriority.MEDIUM,
        server_default=BatchPriority.MEDIUM.value,
    )

    # Route plan, supplied by the routing service and stored opaquely
    total_distance: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    estimated_duration: Mapped[int | None] = mapped_column(Integer)
    optimized_route: Mapped[dict | None] = mapped_column(JSONType)
    facility_ids: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list, server_default="[]"
    )
    total_quantity: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    medication_type: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)

    actual_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Snapshot lock
    batch_snapshot: Mapped[dict | None] = mapped_column(JSONType)
    snapshot_locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_snapshot_locked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    total_slot_demand: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    vehicle_total_slots: Mapped[int | None] = mapped_column(Integer)

    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    # Relationships
    warehouse: Mapped[Warehouse | None] = relationship("Warehouse", lazy="noload")
    vehicle: Mapped[Vehicle | None] = relationship("Vehicle", lazy="noload")
    driver: Mapped[Driver | None] = relationship("Driver", lazy="noload")
    requisitions: Mapped[list[Requisition]] = relationship(
        "Requisition", back_populates="batch", lazy="noload"
    )

    __table_args__ = (
        Index("ix_delivery_batches_status", "status"),
        Index("ix_delivery_batches_scheduled_date", "scheduled_date"),
        Index("ix_delivery_batches_driver_id", "driver_id"),
        Index("ix_delivery_batches_vehicle_id", "vehicle_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<DeliveryBatch id={self.id} number={self.batch_number} "
            f"status={self.status} locked={self.is_snapshot_locked}>"
        )


@event.listens_for(DeliveryBatch, "before_update")
def _guard_locked_batch(mapper, connection, target: DeliveryBatch) -> None:
    state = inspect(target)
    lock_history = state.attrs.is_snapshot_locked.history
    was_locked = lock_history.deleted[0] if lock_history.deleted else target.is_snapshot_locked
    if not was_locked:
        return

    for field in FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            raise BatchLockedException(target.id, field)

    if state.attrs.status.history.has_changes() and target.status not in LOCKED_ALLOWED_STATUSES:
        raise BatchLockedException(
            target.id,
            "status",
            f"Cannot move locked batch {target.id} to '{BatchStatus(target.status).value}'",
        )
