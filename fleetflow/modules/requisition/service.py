"""Requisition lifecycle service — submission, state machine, batch assignment."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleetflow.database.base import utcnow
from fleetflow.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    PreconditionFailedException,
    ValidationException,
)
from fleetflow.models.delivery_batch import DeliveryBatch
from fleetflow.models.enums import (
    BatchStatus,
    RequisitionStatus,
    RequisitionType,
    TransitionSource,
)
from fleetflow.models.reference import Facility
from fleetflow.models.requisition import Requisition
from fleetflow.models.requisition_item import RequisitionItem
from fleetflow.models.requisition_transition import RequisitionTransition
from fleetflow.modules.auth import Actor
from fleetflow.modules.batch.constants import PLANNING_STATUSES
from fleetflow.modules.events.outbox_service import OutboxService
from fleetflow.modules.packaging.service import PackagingService
from fleetflow.modules.requisition.constants import (
    DELIVERY_OUTCOMES,
    EVENT_REQUISITION_SUBMITTED,
    STATUS_EVENT_MAP,
    STATUS_TIMESTAMP_FIELDS,
    SYSTEM_ONLY_TRANSITIONS,
    VALID_TRANSITIONS,
)

logger = logging.getLogger(__name__)


def _require_actor(actor: Actor | None, action: str) -> Actor:
    if actor is None:
        raise ValidationException(f"{action} requires an authenticated actor")
    return actor


class RequisitionService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = OutboxService(db)

    # ------------------------------------------------------------------
    # Reference number generation
    # ------------------------------------------------------------------

    @staticmethod
    def _generate_requisition_number() -> str:
        """REQ-YYYY-XXXXXXXX, random suffix so it needs no DB sequence."""
        return f"REQ-{utcnow().year}-{uuid.uuid4().hex[:8].upper()}"

    # ------------------------------------------------------------------
    # Submission & reads
    # ------------------------------------------------------------------

    async def submit(
        self,
        facility_id: uuid.UUID,
        items: list[dict],
        actor: Actor | None = None,
        warehouse_id: uuid.UUID | None = None,
        requisition_type: RequisitionType = RequisitionType.ROUTINE,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> Requisition:
        """Create a requisition in ``pending`` with its items and derived totals."""
        if not items:
            raise ValidationException("A requisition needs at least one item")
        for index, item in enumerate(items):
            if int(item.get("quantity") or 0) <= 0:
                raise ValidationException(
                    "Item quantity must be positive",
                    details=[{"field": f"items.{index}.quantity", "message": "must be > 0"}],
                )

        facility = await self.db.get(Facility, facility_id)
        if facility is None:
            raise NotFoundException(f"Facility {facility_id} not found")

        requisition = Requisition(
            requisition_number=self._generate_requisition_number(),
            facility_id=facility_id,
            warehouse_id=warehouse_id or facility.warehouse_id,
            created_by=actor.id if actor else None,
            status=RequisitionStatus.PENDING,
            requisition_type=requisition_type,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
        )

        total_items = 0
        total_weight = Decimal("0")
        total_volume = Decimal("0")
        for item in items:
            quantity = int(item["quantity"])
            weight = item.get("weight_kg")
            volume = item.get("volume_m3")
            requisition.items.append(RequisitionItem(
                item_name=item["item_name"],
                item_code=item.get("item_code"),
                quantity=quantity,
                unit=item.get("unit") or "pieces",
                weight_kg=weight,
                volume_m3=volume,
                temperature_requirement=item.get("temperature_requirement"),
                is_fragile=bool(item.get("is_fragile", False)),
                notes=item.get("notes"),
            ))
            total_items += quantity
            # Unknown physical data counts as zero in these informational totals
            total_weight += Decimal(str(weight or 0)) * quantity
            total_volume += Decimal(str(volume or 0)) * quantity

        requisition.total_items = total_items
        requisition.total_weight = total_weight
        requisition.total_volume = total_volume
        self.db.add(requisition)
        await self.db.flush()

        self.db.add(RequisitionTransition(
            requisition_id=requisition.id,
            from_status=None,
            to_status=RequisitionStatus.PENDING,
            triggered_by=actor.id if actor else None,
            trigger_source=TransitionSource.USER,
        ))
        await self.outbox.publish_event(
            event_type=EVENT_REQUISITION_SUBMITTED,
            aggregate_type="requisition",
            aggregate_id=requisition.id,
            payload={
                "requisition_id": requisition.id,
                "requisition_number": requisition.requisition_number,
                "facility_id": facility_id,
                "total_items": total_items,
            },
        )
        logger.info(
            "Submitted requisition %s (%s) for facility %s with %d items",
            requisition.id, requisition.requisition_number, facility_id, len(items),
        )
        return requisition

    async def get_requisition(self, requisition_id: uuid.UUID) -> Requisition:
        """Requisition with its items. Raises NotFoundException if not found."""
        result = await self.db.execute(
            select(Requisition)
            .options(selectinload(Requisition.items))
            .where(Requisition.id == requisition_id)
        )
        requisition = result.scalar_one_or_none()
        if requisition is None:
            raise NotFoundException(f"Requisition {requisition_id} not found")
        return requisition

    async def list_requisitions(
        self,
        status: RequisitionStatus | None = None,
        facility_id: uuid.UUID | None = None,
        batch_id: uuid.UUID | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Requisition], int]:
        filters = []
        if status is not None:
            filters.append(Requisition.status == status)
        if facility_id is not None:
            filters.append(Requisition.facility_id == facility_id)
        if batch_id is not None:
            filters.append(Requisition.batch_id == batch_id)

        total_result = await self.db.execute(
            select(func.count()).select_from(Requisition).where(*filters)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(Requisition)
            .where(*filters)
            .order_by(Requisition.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def _get_for_update(self, requisition_id: uuid.UUID) -> Requisition:
        result = await self.db.execute(
            select(Requisition).where(Requisition.id == requisition_id).with_for_update()
        )
        requisition = result.scalar_one_or_none()
        if requisition is None:
            raise NotFoundException(f"Requisition {requisition_id} not found")
        return requisition

    # ------------------------------------------------------------------
    # State Machine
    # ------------------------------------------------------------------

    async def transition(
        self,
        requisition: Requisition,
        to_status: RequisitionStatus,
        actor: Actor | None = None,
        trigger_source: TransitionSource = TransitionSource.USER,
        reason: str | None = None,
        metadata: dict | None = None,
    ) -> Requisition:
        """Move a requisition along one edge of the transition table.

        Raises InvalidTransitionException before any write when the edge is
        not in VALID_TRANSITIONS (or is system-only and not system-triggered).
        Stamps the state's timestamp only if it is still unset, records a
        RequisitionTransition row, and publishes the matching outbox event.
        """
        from_status = RequisitionStatus(requisition.status)
        allowed = VALID_TRANSITIONS.get(from_status, frozenset())
        system_only = (from_status, to_status) in SYSTEM_ONLY_TRANSITIONS
        if to_status not in allowed or (system_only and trigger_source != TransitionSource.SYSTEM):
            raise InvalidTransitionException(
                "requisition", requisition.id, from_status.value, to_status.value
            )

        requisition.status = to_status
        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(to_status)
        if timestamp_field and getattr(requisition, timestamp_field) is None:
            setattr(requisition, timestamp_field, utcnow())

        triggered_by = actor.id if actor else None
        self.db.add(RequisitionTransition(
            requisition_id=requisition.id,
            from_status=from_status,
            to_status=to_status,
            triggered_by=triggered_by,
            trigger_source=trigger_source,
            reason=reason,
            metadata_extra=metadata or {},
        ))
        await self.db.flush()

        event_type = STATUS_EVENT_MAP.get(to_status)
        if event_type:
            await self.outbox.publish_event(
                event_type=event_type,
                aggregate_type="requisition",
                aggregate_id=requisition.id,
                payload={
                    "requisition_id": requisition.id,
                    "requisition_number": requisition.requisition_number,
                    "facility_id": requisition.facility_id,
                    "batch_id": requisition.batch_id,
                    "from_status": from_status,
                    "to_status": to_status,
                    "triggered_by": triggered_by,
                    "trigger_source": trigger_source,
                    "reason": reason,
                },
            )

        logger.info(
            "Requisition %s transitioned %s -> %s (%s)",
            requisition.id, from_status.value, to_status.value, trigger_source.value,
        )
        return requisition

    async def approve(self, requisition_id: uuid.UUID, actor: Actor) -> Requisition:
        """Approve a pending requisition; packaging is computed and it ends ``packaged``."""
        actor = _require_actor(actor, "Approval")
        requisition = await self._get_for_update(requisition_id)
        current = RequisitionStatus(requisition.status)
        if current != RequisitionStatus.PENDING:
            raise PreconditionFailedException(
                "requisition", requisition_id, RequisitionStatus.PENDING.value, current.value
            )

        item_count = await self.db.execute(
            select(func.count())
            .select_from(RequisitionItem)
            .where(RequisitionItem.requisition_id == requisition_id)
        )
        if not item_count.scalar():
            raise PreconditionFailedException(
                "requisition", requisition_id, "at least one item", "no items",
                message=f"Requisition {requisition_id} has no items to package",
            )

        packaging = await PackagingService(self.db).compute_packaging(
            requisition_id, computed_by=str(actor.id)
        )

        await self.transition(requisition, RequisitionStatus.APPROVED, actor)
        requisition.approved_by = actor.id
        await self.transition(
            requisition,
            RequisitionStatus.PACKAGED,
            trigger_source=TransitionSource.SYSTEM,
            metadata={
                "packaging_id": str(packaging.id),
                "total_slot_demand": str(packaging.total_slot_demand),
                "rounded_slot_demand": packaging.rounded_slot_demand,
            },
        )
        return requisition

    async def reject(self, requisition_id: uuid.UUID, actor: Actor, reason: str) -> Requisition:
        actor = _require_actor(actor, "Rejection")
        if not reason or not reason.strip():
            raise ValidationException("A rejection reason is required")
        requisition = await self._get_for_update(requisition_id)
        await self.transition(requisition, RequisitionStatus.REJECTED, actor, reason=reason)
        requisition.rejection_reason = reason
        await self.db.flush()
        return requisition

    async def cancel(
        self, requisition_id: uuid.UUID, actor: Actor, reason: str | None = None
    ) -> Requisition:
        """Cancel a requisition; one sitting in a batch is detached from it."""
        actor = _require_actor(actor, "Cancellation")
        requisition = await self._get_for_update(requisition_id)
        was_assigned = requisition.status == RequisitionStatus.ASSIGNED_TO_BATCH
        await self.transition(requisition, RequisitionStatus.CANCELLED, actor, reason=reason)
        if was_assigned:
            requisition.batch_id = None
        requisition.cancellation_reason = reason
        requisition.cancelled_by = actor.id
        await self.db.flush()
        return requisition

    async def mark_ready_for_dispatch(
        self, requisition_id: uuid.UUID, actor: Actor | None = None
    ) -> bool:
        requisition = await self._get_for_update(requisition_id)
        current = RequisitionStatus(requisition.status)
        if current != RequisitionStatus.PACKAGED:
            raise PreconditionFailedException(
                "requisition", requisition_id, RequisitionStatus.PACKAGED.value, current.value
            )
        await self.transition(requisition, RequisitionStatus.READY_FOR_DISPATCH, actor)
        return True

    async def assign_to_batch(
        self,
        requisition_ids: list[uuid.UUID],
        batch_id: uuid.UUID,
        actor: Actor | None = None,
    ) -> int:
        """Attach ready_for_dispatch requisitions to a batch; returns how many moved.

        Only a missing batch is an error. Unknown ids, requisitions in any
        other status, and every id when the batch can no longer take
        requisitions are skipped with one warning each.
        """
        result = await self.db.execute(
            select(DeliveryBatch).where(DeliveryBatch.id == batch_id).with_for_update()
        )
        batch = result.scalar_one_or_none()
        if batch is None:
            raise NotFoundException(f"Batch {batch_id} not found")

        if batch.is_snapshot_locked or batch.status not in PLANNING_STATUSES:
            for requisition_id in requisition_ids:
                logger.warning(
                    "Batch %s is %s%s; skipping requisition %s",
                    batch_id,
                    BatchStatus(batch.status).value,
                    " and locked" if batch.is_snapshot_locked else "",
                    requisition_id,
                )
            return 0

        assigned = 0
        for requisition_id in requisition_ids:
            result = await self.db.execute(
                select(Requisition).where(Requisition.id == requisition_id).with_for_update()
            )
            requisition = result.scalar_one_or_none()
            if requisition is None:
                logger.warning("Requisition %s not found; skipping", requisition_id)
                continue
            if requisition.status != RequisitionStatus.READY_FOR_DISPATCH:
                logger.warning(
                    "Requisition %s not ready for dispatch (current: %s); skipping",
                    requisition_id, RequisitionStatus(requisition.status).value,
                )
                continue

            requisition.batch_id = batch.id
            await self.transition(
                requisition,
                RequisitionStatus.ASSIGNED_TO_BATCH,
                actor,
                metadata={"batch_id": str(batch.id)},
            )
            assigned += 1

        logger.info(
            "Assigned %d of %d requisitions to batch %s", assigned, len(requisition_ids), batch_id
        )
        return assigned

    async def record_delivery_outcome(
        self,
        requisition_id: uuid.UUID,
        outcome: RequisitionStatus,
        actor: Actor,
        reason: str | None = None,
    ) -> Requisition:
        """Close an in-transit requisition as fulfilled, partially delivered, or failed."""
        actor = _require_actor(actor, "Recording a delivery outcome")
        if outcome not in DELIVERY_OUTCOMES:
            raise ValidationException(
                f"'{outcome.value}' is not a delivery outcome",
                details=[{"field": "outcome", "message": "must be one of "
                          + ", ".join(sorted(s.value for s in DELIVERY_OUTCOMES))}],
            )
        requisition = await self._get_for_update(requisition_id)
        current = RequisitionStatus(requisition.status)
        if current != RequisitionStatus.IN_TRANSIT:
            raise PreconditionFailedException(
                "requisition", requisition_id, RequisitionStatus.IN_TRANSIT.value, current.value
            )
        return await self.transition(requisition, outcome, actor, reason=reason)

    # ------------------------------------------------------------------
    # Batch cascades (called by BatchService inside the same transaction)
    # ------------------------------------------------------------------

    async def cascade_batch_requisitions(
        self,
        batch_id: uuid.UUID,
        from_status: RequisitionStatus,
        to_status: RequisitionStatus,
        reason: str | None = None,
        detach: bool = False,
    ) -> int:
        """Move every requisition of the batch in ``from_status`` to ``to_status``.

        Requisitions in any other status are left untouched. ``detach``
        clears ``batch_id`` on the moved rows.
        """
        result = await self.db.execute(
            select(Requisition)
            .where(Requisition.batch_id == batch_id, Requisition.status == from_status)
            .order_by(Requisition.id)
            .with_for_update()
        )
        requisitions = list(result.scalars().all())
        for requisition in requisitions:
            if detach:
                requisition.batch_id = None
            await self.transition(
                requisition,
                to_status,
                trigger_source=TransitionSource.SYSTEM,
                reason=reason,
                metadata={"batch_id": str(batch_id)},
            )
        if requisitions:
            logger.info(
                "Batch %s: moved %d requisitions %s -> %s",
                batch_id, len(requisitions), from_status.value, to_status.value,
            )
        return len(requisitions)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    async def get_transitions(self, requisition_id: uuid.UUID) -> list[RequisitionTransition]:
        """Full transition history for a requisition, oldest first."""
        await self.get_requisition(requisition_id)
        result = await self.db.execute(
            select(RequisitionTransition)
            .where(RequisitionTransition.requisition_id == requisition_id)
            .order_by(RequisitionTransition.created_at.asc())
        )
        return list(result.scalars().all())
