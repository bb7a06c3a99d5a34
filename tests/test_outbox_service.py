"""Unit tests for OutboxService — publishing and reading outbox events."""

import enum
import uuid
from datetime import date
from decimal import Decimal

import pytest

from fleetflow.models.enums import BatchStatus, EventStatus
from fleetflow.modules.events.outbox_service import OutboxService, _jsonable


class TestOutboxServicePublish:
    """Tests for OutboxService.publish_event."""

    @pytest.mark.asyncio
    async def test_publish_event_creates_pending_event(self, db):
        service = OutboxService(db)
        batch_id = uuid.uuid4()

        event = await service.publish_event(
            event_type="batch.created",
            aggregate_type="batch",
            aggregate_id=batch_id,
            payload={"batch_number": "BATCH-2026-0042", "scheduled_date": "2026-11-02"},
        )

        assert event.id is not None
        assert event.event_type == "batch.created"
        assert event.aggregate_type == "batch"
        assert event.aggregate_id == str(batch_id)
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 0
        assert event.schema_version == 1
        assert event.payload["batch_number"] == "BATCH-2026-0042"

    @pytest.mark.asyncio
    async def test_publish_event_with_custom_schema_version(self, db):
        event = await OutboxService(db).publish_event(
            event_type="requisition.submitted",
            aggregate_type="requisition",
            aggregate_id=uuid.uuid4(),
            payload={},
            schema_version=2,
        )

        assert event.schema_version == 2

    @pytest.mark.asyncio
    async def test_payload_is_stored_as_json_primitives(self, db):
        vehicle_id = uuid.uuid4()

        event = await OutboxService(db).publish_event(
            event_type="batch.snapshot_locked",
            aggregate_type="batch",
            aggregate_id=uuid.uuid4(),
            payload={
                "status": BatchStatus.IN_PROGRESS,
                "vehicle_id": vehicle_id,
                "total_slot_demand": Decimal("7.50"),
                "scheduled_date": date(2026, 11, 2),
            },
        )

        assert event.payload == {
            "status": "in-progress",
            "vehicle_id": str(vehicle_id),
            "total_slot_demand": "7.50",
            "scheduled_date": "2026-11-02",
        }


class TestJsonable:
    def test_nested_containers(self):
        ids = [uuid.uuid4(), uuid.uuid4()]

        assert _jsonable({"ids": tuple(ids), "counts": {1: Decimal("2")}}) == {
            "ids": [str(i) for i in ids],
            "counts": {"1": "2"},
        }

    def test_plain_enum_uses_value(self):
        class Colour(enum.Enum):
            RED = "red"

        assert _jsonable([Colour.RED, None, 3, "x"]) == ["red", None, 3, "x"]


class TestOutboxServiceQueries:
    """Tests for get_pending_events and list_events_for_aggregate."""

    @pytest.mark.asyncio
    async def test_get_pending_events_returns_only_pending(self, db):
        service = OutboxService(db)
        batch_id = uuid.uuid4()

        await service.publish_event(
            event_type="batch.created", aggregate_type="batch", aggregate_id=batch_id, payload={}
        )
        completed = await service.publish_event(
            event_type="batch.updated", aggregate_type="batch", aggregate_id=batch_id, payload={}
        )
        completed.status = EventStatus.COMPLETED
        await db.flush()

        pending = await service.get_pending_events(batch_size=10)

        assert len(pending) == 1
        assert pending[0].event_type == "batch.created"

    @pytest.mark.asyncio
    async def test_get_pending_events_respects_batch_size(self, db):
        service = OutboxService(db)

        for i in range(5):
            await service.publish_event(
                event_type=f"test.event.{i}",
                aggregate_type="test",
                aggregate_id=uuid.uuid4(),
                payload={},
            )

        pending = await service.get_pending_events(batch_size=3)
        assert len(pending) == 3

    @pytest.mark.asyncio
    async def test_list_events_for_aggregate(self, db):
        service = OutboxService(db)
        requisition_id = uuid.uuid4()

        await service.publish_event(
            event_type="requisition.submitted",
            aggregate_type="requisition",
            aggregate_id=requisition_id,
            payload={},
        )
        await service.publish_event(
            event_type="requisition.submitted",
            aggregate_type="requisition",
            aggregate_id=uuid.uuid4(),
            payload={},
        )
        await service.publish_event(
            event_type="requisition.approved",
            aggregate_type="requisition",
            aggregate_id=requisition_id,
            payload={},
        )

        events = await service.list_events_for_aggregate("requisition", requisition_id)

        assert [e.event_type for e in events] == ["requisition.submitted", "requisition.approved"]
