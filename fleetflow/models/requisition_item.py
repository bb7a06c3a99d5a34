"""RequisitionItem model — one line item of a requisition."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text, false
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from fleetflow.models.requisition import Requisition


class RequisitionItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "requisition_items"

    requisition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_code: Mapped[str | None] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pieces", server_default="pieces"
    )

    # Per-unit physical data; NULL means "unknown" and packaging falls back to defaults
    weight_kg: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    volume_m3: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))

    # Handling flags
    temperature_requirement: Mapped[str | None] = mapped_column(String(50))
    is_fragile: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    notes: Mapped[str | None] = mapped_column(Text)

    requisition: Mapped[Requisition] = relationship(
        "Requisition", back_populates="items", lazy="noload"
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_requisition_items_quantity_positive"),
        Index("ix_requisition_items_requisition_id", "requisition_id"),
    )
