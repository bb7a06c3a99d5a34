"""Requisition API router — submission, lifecycle actions, packaging, audit trail."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.session import get_db
from fleetflow.models.enums import RequisitionStatus
from fleetflow.modules.auth import Actor, get_current_actor, require_role
from fleetflow.modules.auth.auth import (
    ROLE_DRIVER,
    ROLE_FACILITY_INCHARGE,
    ROLE_WAREHOUSE_OFFICER,
    ROLE_ZONAL_MANAGER,
)
from fleetflow.modules.packaging.schemas import PackagingResponse
from fleetflow.modules.packaging.service import PackagingService
from fleetflow.modules.requisition.schemas import (
    CancelRequest,
    DeliveryOutcomeRequest,
    ReadyForDispatchResponse,
    RejectRequest,
    RequisitionCreate,
    RequisitionDetailResponse,
    RequisitionListResponse,
    RequisitionResponse,
    TransitionResponse,
)
from fleetflow.modules.requisition.service import RequisitionService

router = APIRouter(prefix="/requisitions", tags=["requisitions"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_requester(actor: Actor) -> None:
    require_role(actor, ROLE_FACILITY_INCHARGE, ROLE_WAREHOUSE_OFFICER)


def _require_approver(actor: Actor) -> None:
    require_role(actor, ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=RequisitionDetailResponse, status_code=201)
async def submit_requisition(
    body: RequisitionCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Submit a requisition; it starts in ``pending``."""
    _require_requester(actor)
    svc = RequisitionService(db)
    requisition = await svc.submit(
        facility_id=body.facility_id,
        items=[item.model_dump() for item in body.items],
        actor=actor,
        warehouse_id=body.warehouse_id,
        requisition_type=body.requisition_type,
        expected_delivery_date=body.expected_delivery_date,
        notes=body.notes,
    )
    return RequisitionDetailResponse.model_validate(requisition)


@router.get("/", response_model=RequisitionListResponse)
async def list_requisitions(
    status: RequisitionStatus | None = Query(None),
    facility_id: uuid.UUID | None = Query(None),
    batch_id: uuid.UUID | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    svc = RequisitionService(db)
    items, total = await svc.list_requisitions(
        status=status, facility_id=facility_id, batch_id=batch_id, limit=limit, offset=offset
    )
    return RequisitionListResponse(
        items=[RequisitionResponse.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{requisition_id}", response_model=RequisitionDetailResponse)
async def get_requisition(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    requisition = await RequisitionService(db).get_requisition(requisition_id)
    return RequisitionDetailResponse.model_validate(requisition)


# ---------------------------------------------------------------------------
# State machine actions
# ---------------------------------------------------------------------------


@router.post("/{requisition_id}/approve", response_model=RequisitionResponse)
async def approve_requisition(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending requisition. Packaging is computed in the same transaction."""
    _require_approver(actor)
    requisition = await RequisitionService(db).approve(requisition_id, actor)
    return RequisitionResponse.model_validate(requisition)


@router.post("/{requisition_id}/reject", response_model=RequisitionResponse)
async def reject_requisition(
    requisition_id: uuid.UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_approver(actor)
    requisition = await RequisitionService(db).reject(requisition_id, actor, body.reason)
    return RequisitionResponse.model_validate(requisition)


@router.post("/{requisition_id}/cancel", response_model=RequisitionResponse)
async def cancel_requisition(
    requisition_id: uuid.UUID,
    body: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_requester(actor)
    requisition = await RequisitionService(db).cancel(requisition_id, actor, body.reason)
    return RequisitionResponse.model_validate(requisition)


@router.post("/{requisition_id}/ready-for-dispatch", response_model=ReadyForDispatchResponse)
async def mark_ready_for_dispatch(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Release a packaged requisition for batch planning."""
    require_role(actor, ROLE_WAREHOUSE_OFFICER)
    success = await RequisitionService(db).mark_ready_for_dispatch(requisition_id, actor)
    return ReadyForDispatchResponse(success=success)


@router.post("/{requisition_id}/outcome", response_model=RequisitionResponse)
async def record_delivery_outcome(
    requisition_id: uuid.UUID,
    body: DeliveryOutcomeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Record proof of delivery for a single in-transit requisition."""
    require_role(actor, ROLE_DRIVER, ROLE_WAREHOUSE_OFFICER)
    requisition = await RequisitionService(db).record_delivery_outcome(
        requisition_id, body.outcome, actor, reason=body.reason
    )
    return RequisitionResponse.model_validate(requisition)


# ---------------------------------------------------------------------------
# Packaging & audit trail
# ---------------------------------------------------------------------------


@router.get("/{requisition_id}/packaging", response_model=PackagingResponse)
async def get_packaging(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    packaging = await PackagingService(db).get_packaging(requisition_id)
    return PackagingResponse.model_validate(packaging)


@router.get("/{requisition_id}/transitions", response_model=list[TransitionResponse])
async def get_transitions(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    transitions = await RequisitionService(db).get_transitions(requisition_id)
    return [TransitionResponse.model_validate(t) for t in transitions]
