"""Pydantic v2 schemas for requisition API endpoints."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from fleetflow.models.enums import RequisitionStatus, RequisitionType, TransitionSource

# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class RequisitionItemCreate(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=255)
    item_code: str | None = Field(None, max_length=100)
    quantity: int = Field(..., gt=0)
    unit: str = Field("pieces", max_length=30)
    weight_kg: Decimal | None = Field(None, ge=0)
    volume_m3: Decimal | None = Field(None, ge=0)
    temperature_requirement: str | None = Field(None, max_length=50)
    is_fragile: bool = False
    notes: str | None = None


class RequisitionItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_name: str
    item_code: str | None = None
    quantity: int
    unit: str
    weight_kg: Decimal | None = None
    volume_m3: Decimal | None = None
    temperature_requirement: str | None = None
    is_fragile: bool
    notes: str | None = None


# ---------------------------------------------------------------------------
# Requisitions
# ---------------------------------------------------------------------------


class RequisitionCreate(BaseModel):
    facility_id: uuid.UUID
    warehouse_id: uuid.UUID | None = None
    requisition_type: RequisitionType = RequisitionType.ROUTINE
    expected_delivery_date: date | None = None
    notes: str | None = None
    items: list[RequisitionItemCreate] = Field(..., min_length=1)


class RequisitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requisition_number: str
    facility_id: uuid.UUID
    warehouse_id: uuid.UUID | None = None
    status: RequisitionStatus
    requisition_type: RequisitionType
    total_items: int
    total_weight: Decimal
    total_volume: Decimal
    batch_id: uuid.UUID | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None
    rejection_reason: str | None = None
    cancellation_reason: str | None = None
    created_by: uuid.UUID | None = None
    approved_by: uuid.UUID | None = None
    approved_at: datetime | None = None
    packaged_at: datetime | None = None
    ready_for_dispatch_at: datetime | None = None
    assigned_to_batch_at: datetime | None = None
    in_transit_at: datetime | None = None
    delivered_at: datetime | None = None
    rejected_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RequisitionDetailResponse(RequisitionResponse):
    items: list[RequisitionItemResponse] = []


class RequisitionListResponse(BaseModel):
    items: list[RequisitionResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: str | None = None


class DeliveryOutcomeRequest(BaseModel):
    outcome: RequisitionStatus
    reason: str | None = None


class ReadyForDispatchResponse(BaseModel):
    success: bool


class TransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requisition_id: uuid.UUID
    from_status: RequisitionStatus | None = None
    to_status: RequisitionStatus
    triggered_by: uuid.UUID | None = None
    trigger_source: TransitionSource
    reason: str | None = None
    metadata_extra: dict = {}
    created_at: datetime
