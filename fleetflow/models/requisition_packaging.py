"""RequisitionPackaging model — the computed, write-once packaging of a requisition."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, event, false, inspect
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from fleetflow.exceptions import PackagingImmutableException

if TYPE_CHECKING:
    from fleetflow.models.requisition import Requisition
    from fleetflow.models.requisition_packaging_item import RequisitionPackagingItem


class RequisitionPackaging(UUIDPrimaryKeyMixin, Base):
    """One row per requisition (unique ``requisition_id``). No updated_at column."""

    __tablename__ = "requisition_packaging"

    requisition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Slot demand, derived from packaging rules
    total_slot_demand: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    rounded_slot_demand: Mapped[int] = mapped_column(Integer, nullable=False)

    # Informational totals
    total_weight_kg: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    total_volume_m3: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))
    total_items: Mapped[int | None] = mapped_column(Integer)

    packaging_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default="1"
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    computed_by: Mapped[str] = mapped_column(
        String(64), nullable=False, default="system", server_default="system"
    )
    is_final: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    requisition: Mapped[Requisition] = relationship(
        "Requisition", back_populates="packaging", lazy="noload"
    )
    items: Mapped[list[RequisitionPackagingItem]] = relationship(
        "RequisitionPackagingItem",
        back_populates="packaging",
        lazy="noload",
        order_by="RequisitionPackagingItem.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<RequisitionPackaging requisition={self.requisition_id} "
            f"slots={self.total_slot_demand}/{self.rounded_slot_demand} final={self.is_final}>"
        )


@event.listens_for(RequisitionPackaging, "before_update")
def _reject_update_after_finalization(mapper, connection, target: RequisitionPackaging) -> None:
    history = inspect(target).attrs.is_final.history
    previous = history.deleted[0] if history.deleted else target.is_final
    if previous:
        raise PackagingImmutableException(
            f"Packaging for requisition {target.requisition_id} is final and cannot be modified",
            details=[{"requisition_id": str(target.requisition_id)}],
        )


@event.listens_for(RequisitionPackaging, "before_delete")
def _reject_delete_after_finalization(mapper, connection, target: RequisitionPackaging) -> None:
    if target.is_final:
        raise PackagingImmutableException(
            f"Packaging for requisition {target.requisition_id} is final and cannot be deleted",
            details=[{"requisition_id": str(target.requisition_id)}],
        )
