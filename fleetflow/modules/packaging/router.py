"""Facility slot-demand API router."""

from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.database.session import get_db
from fleetflow.modules.auth import Actor, get_current_actor
from fleetflow.modules.packaging.schemas import (
    BatchSlotDemandRequest,
    BatchSlotDemandResponse,
    FacilitySlotDemandResponse,
)
from fleetflow.modules.packaging.service import PackagingService

router = APIRouter(prefix="/facilities", tags=["facilities"])


@router.get("/{facility_id}/slot-demand", response_model=FacilitySlotDemandResponse)
async def get_facility_slot_demand(
    facility_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Rounded slot demand of the facility's requisitions awaiting dispatch."""
    demand = await PackagingService(db).get_facility_slot_demand(facility_id)
    return FacilitySlotDemandResponse(facility_id=facility_id, slot_demand=demand)


@router.post("/slot-demand", response_model=BatchSlotDemandResponse)
async def get_batch_slot_demand(
    body: BatchSlotDemandRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Per-facility slot demand for planning a batch over several facilities."""
    rows = await PackagingService(db).get_batch_slot_demand(body.facility_ids)
    return BatchSlotDemandResponse(
        facilities=[FacilitySlotDemandResponse.model_validate(row) for row in rows],
        total_slot_demand=sum((row.slot_demand for row in rows), Decimal("0")),
    )
