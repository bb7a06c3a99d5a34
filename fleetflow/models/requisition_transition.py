from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetflow.database.base import JSONType, Base, UUIDPrimaryKeyMixin, utcnow
from fleetflow.models.enums import RequisitionStatus, TransitionSource, db_enum

if TYPE_CHECKING:
    from fleetflow.models.requisition import Requisition


class RequisitionTransition(UUIDPrimaryKeyMixin, Base):
    """Immutable audit log for requisition state transitions. No updated_at column."""

    __tablename__ = "requisition_transitions"

    requisition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_status: Mapped[RequisitionStatus | None] = mapped_column(
        db_enum(RequisitionStatus, "requisition_status")
    )
    to_status: Mapped[RequisitionStatus] = mapped_column(
        db_enum(RequisitionStatus, "requisition_status"), nullable=False
    )
    triggered_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    trigger_source: Mapped[TransitionSource] = mapped_column(
        db_enum(TransitionSource, "transition_source"),
        nullable=False,
        default=TransitionSource.USER,
        server_default=TransitionSource.USER.value,
    )
    reason: Mapped[str | None] = mapped_column(Text)
    metadata_extra: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict, server_default="{}"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    requisition: Mapped[Requisition] = relationship(
        "Requisition", back_populates="transitions", lazy="noload"
    )

    __table_args__ = (
        Index("ix_requisition_transitions_requisition_id", "requisition_id"),
        Index("ix_requisition_transitions_to_status", "to_status"),
    )
