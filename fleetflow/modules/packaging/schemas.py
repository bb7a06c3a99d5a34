"""Pydantic v2 schemas for packaging and slot-demand endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from fleetflow.models.enums import PackagingType


class PackagingItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requisition_item_id: uuid.UUID
    packaging_type: PackagingType
    package_count: int
    slot_cost: Decimal
    slot_demand: Decimal
    item_name: str
    quantity: int
    weight_kg: Decimal | None = None
    volume_m3: Decimal | None = None


class PackagingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requisition_id: uuid.UUID
    total_slot_demand: Decimal
    rounded_slot_demand: int
    total_weight_kg: Decimal | None = None
    total_volume_m3: Decimal | None = None
    total_items: int | None = None
    packaging_version: int
    computed_at: datetime
    computed_by: str
    is_final: bool
    items: list[PackagingItemResponse] = []


class FacilitySlotDemandResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    facility_id: uuid.UUID
    facility_name: str | None = None
    slot_demand: Decimal
    requisition_count: int | None = None


class BatchSlotDemandRequest(BaseModel):
    facility_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=200)


class BatchSlotDemandResponse(BaseModel):
    facilities: list[FacilitySlotDemandResponse]
    total_slot_demand: Decimal
