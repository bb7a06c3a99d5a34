"""Delivery batch & dispatch API router."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.session import get_db
from fleetflow.exceptions import NotFoundException
from fleetflow.models.enums import BatchStatus
from fleetflow.modules.auth import Actor, get_current_actor, require_role
from fleetflow.modules.auth.auth import ROLE_DRIVER, ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER
from fleetflow.modules.batch.schemas import (
    AssignDriverRequest,
    AssignRequisitionsRequest,
    AssignRequisitionsResponse,
    AssignVehicleRequest,
    BatchCreate,
    BatchListResponse,
    BatchResponse,
    BatchUpdate,
    CancelBatchRequest,
    DispatchActionResponse,
)
from fleetflow.modules.batch.service import BatchService
from fleetflow.modules.batch.snapshot import BatchSnapshot, SnapshotManager
from fleetflow.modules.dispatch.service import DispatchService
from fleetflow.modules.requisition.service import RequisitionService

router = APIRouter(prefix="/batches", tags=["batches"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_planner(actor: Actor) -> None:
    require_role(actor, ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER)


def _require_dispatcher(actor: Actor) -> None:
    require_role(actor, ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER, ROLE_DRIVER)


async def _action_response(db: AsyncSession, batch_id: uuid.UUID, success: bool):
    batch = await BatchService(db).get_batch(batch_id)
    return DispatchActionResponse(success=success, batch=BatchResponse.model_validate(batch))


# ---------------------------------------------------------------------------
# Batch CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=BatchResponse, status_code=201)
async def create_batch(
    body: BatchCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a delivery batch in ``planned`` status."""
    _require_planner(actor)
    batch = await BatchService(db).create_batch(actor=actor, **body.model_dump())
    return BatchResponse.model_validate(batch)


@router.get("/", response_model=BatchListResponse)
async def list_batches(
    status: BatchStatus | None = Query(None),
    scheduled_date: date | None = Query(None),
    driver_id: uuid.UUID | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await BatchService(db).list_batches(
        status=status, scheduled_date=scheduled_date, driver_id=driver_id, limit=limit, offset=offset
    )
    return BatchListResponse(
        items=[BatchResponse.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    batch = await BatchService(db).get_batch(batch_id)
    return BatchResponse.model_validate(batch)


@router.patch("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: uuid.UUID,
    body: BatchUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Edit a batch plan. Frozen fields of a dispatched batch are rejected."""
    _require_planner(actor)
    batch = await BatchService(db).update_batch(
        batch_id, body.model_dump(exclude_unset=True), actor
    )
    return BatchResponse.model_validate(batch)


@router.get("/{batch_id}/snapshot", response_model=BatchSnapshot)
async def get_batch_snapshot(
    batch_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """The snapshot frozen when dispatch started."""
    batch = await BatchService(db).get_batch(batch_id)
    snapshot = SnapshotManager.get_snapshot(batch)
    if snapshot is None:
        raise NotFoundException(f"Batch {batch_id} has no snapshot; dispatch has not started")
    return snapshot


# ---------------------------------------------------------------------------
# Planning & dispatch
# ---------------------------------------------------------------------------


@router.post("/{batch_id}/requisitions", response_model=AssignRequisitionsResponse)
async def assign_requisitions(
    batch_id: uuid.UUID,
    body: AssignRequisitionsRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Attach ready requisitions to the batch; ids that are not ready are skipped."""
    _require_planner(actor)
    assigned = await RequisitionService(db).assign_to_batch(body.requisition_ids, batch_id, actor)
    return AssignRequisitionsResponse(assigned=assigned, requested=len(body.requisition_ids))


@router.post("/{batch_id}/driver", response_model=DispatchActionResponse)
async def assign_driver(
    batch_id: uuid.UUID,
    body: AssignDriverRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_planner(actor)
    success = await DispatchService(db).assign_driver(batch_id, body.driver_id, actor)
    return await _action_response(db, batch_id, success)


@router.post("/{batch_id}/vehicle", response_model=DispatchActionResponse)
async def assign_vehicle(
    batch_id: uuid.UUID,
    body: AssignVehicleRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_planner(actor)
    success = await DispatchService(db).assign_vehicle(batch_id, body.vehicle_id, actor)
    return await _action_response(db, batch_id, success)


@router.post("/{batch_id}/start", response_model=DispatchActionResponse)
async def start_dispatch(
    batch_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Start the run. Locks the batch snapshot and puts its requisitions in transit."""
    _require_dispatcher(actor)
    success = await DispatchService(db).start_dispatch(batch_id, actor)
    return await _action_response(db, batch_id, success)


@router.post("/{batch_id}/complete", response_model=DispatchActionResponse)
async def complete_dispatch(
    batch_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_dispatcher(actor)
    success = await DispatchService(db).complete_dispatch(batch_id, actor)
    return await _action_response(db, batch_id, success)


@router.post("/{batch_id}/cancel", response_model=DispatchActionResponse)
async def cancel_batch(
    batch_id: uuid.UUID,
    body: CancelBatchRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_planner(actor)
    success = await DispatchService(db).cancel_batch(batch_id, actor, body.reason)
    return await _action_response(db, batch_id, success)
