"""PackagingSlotCost model — configurable slot cost per packaging type."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Numeric, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from fleetflow.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fleetflow.models.enums import PackagingType, db_enum


class PackagingSlotCost(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "packaging_slot_costs"

    packaging_type: Mapped[PackagingType] = mapped_column(
        db_enum(PackagingType, "packaging_type"), nullable=False, unique=True
    )
    slot_cost: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False)
    max_weight_kg: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    max_volume_m3: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )

    def __repr__(self) -> str:
        return f"<PackagingSlotCost {self.packaging_type} slot_cost={self.slot_cost}>"
