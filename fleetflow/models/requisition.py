"""Requisition model — a facility's request for supplies."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fleetflow.models.enums import RequisitionStatus, RequisitionType, db_enum

if TYPE_CHECKING:
    from fleetflow.models.delivery_batch import DeliveryBatch
    from fleetflow.models.reference import Facility, Warehouse
    from fleetflow.models.requisition_item import RequisitionItem
    from fleetflow.models.requisition_packaging import RequisitionPackaging
    from fleetflow.models.requisition_transition import RequisitionTransition


class Requisition(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "requisitions"

    requisition_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("facilities.id", ondelete="RESTRICT"),
        nullable=False,
    )
    warehouse_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("warehouses.id", ondelete="SET NULL")
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    status: Mapped[RequisitionStatus] = mapped_column(
        db_enum(RequisitionStatus, "requisition_status"),
        nullable=False,
        default=RequisitionStatus.PENDING,
        server_default=RequisitionStatus.PENDING.value,
    )
    requisition_type: Mapped[RequisitionType] = mapped_column(
        db_enum(RequisitionType, "requisition_type"),
        nullable=False,
        default=RequisitionType.ROUTINE,
        server_default=RequisitionType.ROUTINE.value,
    )

    # Derived from items at submission; informational only
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_weight: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    total_volume: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), nullable=False, default=Decimal("0"), server_default="0"
    )

    batch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_batches.id", ondelete="SET NULL")
    )

    expected_delivery_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    # Lifecycle timestamps, each set once on first entry into the state
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    packaged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_for_dispatch_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    assigned_to_batch_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    in_transit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    facility: Mapped[Facility] = relationship("Facility", lazy="noload")
    warehouse: Mapped[Warehouse | None] = relationship("Warehouse", lazy="noload")
    batch: Mapped[DeliveryBatch | None] = relationship(
        "DeliveryBatch", back_populates="requisitions", lazy="noload"
    )
    items: Mapped[list[RequisitionItem]] = relationship(
        "RequisitionItem",
        back_populates="requisition",
        lazy="noload",
        cascade="all, delete-orphan",
    )
    packaging: Mapped[RequisitionPackaging | None] = relationship(
        "RequisitionPackaging", back_populates="requisition", lazy="noload", uselist=False
    )
    transitions: Mapped[list[RequisitionTransition]] = relationship(
        "RequisitionTransition", back_populates="requisition", lazy="noload"
    )

    __table_args__ = (
        Index("ix_requisitions_facility_id", "facility_id"),
        Index("ix_requisitions_status", "status"),
        Index("ix_requisitions_batch_id", "batch_id"),
        Index("ix_requisitions_facility_status", "facility_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Requisition id={self.id} number={self.requisition_number} status={self.status}>"
