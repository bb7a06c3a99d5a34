"""Pydantic v2 schemas for delivery batch and dispatch endpoints."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fleetflow.models.enums import BatchPriority, BatchStatus

# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class BatchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    scheduled_date: date
    scheduled_time: time | None = None
    warehouse_id: uuid.UUID | None = None
    vehicle_id: uuid.UUID | None = None
    facility_ids: list[uuid.UUID] = Field(default_factory=list)
    optimized_route: dict | None = None
    priority: BatchPriority = BatchPriority.MEDIUM
    total_distance: Decimal | None = Field(None, ge=0)
    estimated_duration: int | None = Field(None, ge=0)
    total_quantity: int = Field(0, ge=0)
    medication_type: str | None = Field(None, max_length=100)
    notes: str | None = None


class BatchUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    scheduled_date: date | None = None
    scheduled_time: time | None = None
    warehouse_id: uuid.UUID | None = None
    vehicle_id: uuid.UUID | None = None
    facility_ids: list[uuid.UUID] | None = None
    optimized_route: dict | None = None
    priority: BatchPriority | None = None
    total_distance: Decimal | None = Field(None, ge=0)
    estimated_duration: int | None = Field(None, ge=0)
    total_quantity: int | None = Field(None, ge=0)
    medication_type: str | None = Field(None, max_length=100)
    notes: str | None = None


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    batch_number: str
    warehouse_id: uuid.UUID | None = None
    vehicle_id: uuid.UUID | None = None
    driver_id: uuid.UUID | None = None
    scheduled_date: date
    scheduled_time: time | None = None
    status: BatchStatus
    priority: BatchPriority
    total_distance: Decimal | None = None
    estimated_duration: int | None = None
    optimized_route: Any = None
    facility_ids: list[uuid.UUID] = []
    total_quantity: int
    medication_type: str | None = None
    notes: str | None = None
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    is_snapshot_locked: bool
    snapshot_locked_at: datetime | None = None
    total_slot_demand: Decimal | None = None
    vehicle_total_slots: int | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BatchListResponse(BaseModel):
    items: list[BatchResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Dispatch actions
# ---------------------------------------------------------------------------


class AssignRequisitionsRequest(BaseModel):
    requisition_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=500)


class AssignRequisitionsResponse(BaseModel):
    assigned: int
    requested: int


class AssignDriverRequest(BaseModel):
    driver_id: uuid.UUID


class AssignVehicleRequest(BaseModel):
    vehicle_id: uuid.UUID


class CancelBatchRequest(BaseModel):
    reason: str | None = None


class DispatchActionResponse(BaseModel):
    success: bool
    batch: BatchResponse
