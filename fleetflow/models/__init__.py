# Import all models so SQLAlchemy metadata is populated for Alembic and create_all
from fleetflow.models.delivery_batch import DeliveryBatch
from fleetflow.models.enums import (
    BatchPriority,
    BatchStatus,
    EventStatus,
    PackagingType,
    RequisitionStatus,
    RequisitionType,
    TransitionSource,
)
from fleetflow.models.event_outbox import EventOutbox
from fleetflow.models.packaging_slot_cost import PackagingSlotCost
from fleetflow.models.processed_event import ProcessedEvent
from fleetflow.models.reference import Driver, Facility, Vehicle, Warehouse
from fleetflow.models.requisition import Requisition
from fleetflow.models.requisition_item import RequisitionItem
from fleetflow.models.requisition_packaging import RequisitionPackaging
from fleetflow.models.requisition_packaging_item import RequisitionPackagingItem
from fleetflow.models.requisition_transition import RequisitionTransition

__all__ = [
    "BatchPriority",
    "BatchStatus",
    "DeliveryBatch",
    "Driver",
    "EventOutbox",
    "EventStatus",
    "Facility",
    "PackagingSlotCost",
    "PackagingType",
    "ProcessedEvent",
    "Requisition",
    "RequisitionItem",
    "RequisitionPackaging",
    "RequisitionPackagingItem",
    "RequisitionStatus",
    "RequisitionTransition",
    "RequisitionType",
    "TransitionSource",
    "Vehicle",
    "Warehouse",
]
