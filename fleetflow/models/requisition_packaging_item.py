"""RequisitionPackagingItem model — per-item packaging assignment (write-once)."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from fleetflow.exceptions import PackagingImmutableException
from fleetflow.models.enums import PackagingType, db_enum

if TYPE_CHECKING:
    from fleetflow.models.requisition_item import RequisitionItem
    from fleetflow.models.requisition_packaging import RequisitionPackaging


class RequisitionPackagingItem(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "requisition_packaging_items"

    requisition_packaging_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("requisition_packaging.id", ondelete="CASCADE"),
        nullable=False,
    )
    requisition_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("requisition_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    packaging_type: Mapped[PackagingType] = mapped_column(
        db_enum(PackagingType, "packaging_type"), nullable=False
    )
    package_count: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_cost: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False)
    # package_count × slot_cost
    slot_demand: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)

    # Item data as used for the computation (defaults applied)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    weight_kg: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    volume_m3: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    packaging: Mapped[RequisitionPackaging] = relationship(
        "RequisitionPackaging", back_populates="items", lazy="noload"
    )
    requisition_item: Mapped[RequisitionItem] = relationship("RequisitionItem", lazy="noload")

    __table_args__ = (
        Index("ix_requisition_packaging_items_packaging_id", "requisition_packaging_id"),
        Index("ix_requisition_packaging_items_item_id", "requisition_item_id"),
    )


@event.listens_for(RequisitionPackagingItem, "before_update")
def _reject_item_update(mapper, connection, target: RequisitionPackagingItem) -> None:
    raise PackagingImmutableException(
        f"Packaging item {target.id} is write-once",
        details=[{"packaging_item_id": str(target.id)}],
    )
