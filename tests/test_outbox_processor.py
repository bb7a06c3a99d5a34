"""Tests for OutboxProcessor and the event handler registry."""

import logging
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import fleetflow.models  # noqa: F401
from fleetflow.database.base import Base, utcnow
from fleetflow.models.enums import EventStatus
from fleetflow.models.event_outbox import EventOutbox
from fleetflow.models.processed_event import ProcessedEvent
from fleetflow.modules.events.handlers import (
    EventHandlerRegistry,
    check_vehicle_capacity,
    log_dispatch_milestone,
    register_default_handlers,
)
from fleetflow.modules.events.outbox_processor import OutboxProcessor


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(engine, expire_on_commit=False)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_registry():
    EventHandlerRegistry.clear()
    yield
    EventHandlerRegistry.clear()


def _add_event(session_factory, event_type="batch.dispatch_started", **fields) -> uuid.UUID:
    with session_factory() as session:
        event = EventOutbox(
            event_type=event_type,
            aggregate_type="batch",
            aggregate_id=str(uuid.uuid4()),
            payload=fields.pop("payload", {"batch_id": "b-1"}),
            **fields,
        )
        session.add(event)
        session.commit()
        return event.id


def _get_event(session_factory, event_id) -> EventOutbox:
    with session_factory() as session:
        return session.get(EventOutbox, event_id)


class TestProcessBatch:
    def test_successful_event_is_completed_and_recorded(self, session_factory):
        seen = []

        def notify_planner(payload):
            seen.append(payload)

        EventHandlerRegistry.register("batch.dispatch_started", notify_planner)
        event_id = _add_event(session_factory)

        result = OutboxProcessor(session_factory).process_batch()

        assert result == {"processed": 1, "failed": 0}
        assert seen == [{"batch_id": "b-1"}]
        event = _get_event(session_factory, event_id)
        assert event.status == EventStatus.COMPLETED
        assert event.processed_at is not None
        with session_factory() as session:
            records = session.execute(select(ProcessedEvent)).scalars().all()
        assert [(r.event_id, r.handler_name) for r in records] == [(event_id, "notify_planner")]

    def test_event_without_handlers_completes(self, session_factory):
        event_id = _add_event(session_factory, event_type="batch.updated")

        OutboxProcessor(session_factory).process_batch()

        assert _get_event(session_factory, event_id).status == EventStatus.COMPLETED

    def test_handler_failure_is_retried_without_rerunning_siblings(self, session_factory):
        calls = {"ok": 0, "flaky": 0}

        def steady_handler(payload):
            calls["ok"] += 1

        def flaky_handler(payload):
            calls["flaky"] += 1
            if calls["flaky"] == 1:
                raise RuntimeError("SMS gateway timeout")

        EventHandlerRegistry.register("batch.dispatch_started", steady_handler)
        EventHandlerRegistry.register("batch.dispatch_started", flaky_handler)
        event_id = _add_event(session_factory)
        processor = OutboxProcessor(session_factory)

        assert processor.process_batch() == {"processed": 0, "failed": 1}
        event = _get_event(session_factory, event_id)
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 1
        assert "flaky_handler: SMS gateway timeout" in event.last_error

        assert processor.process_batch() == {"processed": 1, "failed": 0}
        assert calls == {"ok": 1, "flaky": 2}
        assert _get_event(session_factory, event_id).status == EventStatus.COMPLETED

    def test_event_fails_after_max_retries(self, session_factory):
        def broken_handler(payload):
            raise ValueError("bad payload")

        EventHandlerRegistry.register("batch.dispatch_started", broken_handler)
        event_id = _add_event(session_factory, max_retries=2)
        processor = OutboxProcessor(session_factory)

        processor.process_batch()
        processor.process_batch()
        assert processor.process_batch() == {"processed": 0, "failed": 0}

        event = _get_event(session_factory, event_id)
        assert event.status == EventStatus.FAILED
        assert event.retry_count == 2

    def test_batch_size_limits_work(self, session_factory):
        for _ in range(3):
            _add_event(session_factory)

        assert OutboxProcessor(session_factory).process_batch(batch_size=2) == {
            "processed": 2,
            "failed": 0,
        }


class TestCleanup:
    def test_cleanup_removes_expired_records_and_old_events(self, session_factory):
        now = utcnow()
        old_event = _add_event(
            session_factory, status=EventStatus.COMPLETED, processed_at=now - timedelta(days=40)
        )
        recent_event = _add_event(
            session_factory, status=EventStatus.COMPLETED, processed_at=now - timedelta(days=1)
        )
        with session_factory() as session:
            session.add_all([
                ProcessedEvent(
                    event_id=old_event, event_type="batch.dispatch_started",
                    handler_name="expired", expires_at=now - timedelta(hours=1),
                ),
                ProcessedEvent(
                    event_id=recent_event, event_type="batch.dispatch_started",
                    handler_name="current", expires_at=now + timedelta(days=6),
                ),
            ])
            session.commit()

        assert OutboxProcessor(session_factory).cleanup_expired() == 2

        with session_factory() as session:
            remaining = session.execute(select(ProcessedEvent.handler_name)).scalars().all()
            events = session.execute(select(EventOutbox.id)).scalars().all()
        assert remaining == ["current"]
        assert events == [recent_event]


class TestHandlers:
    def test_register_default_handlers(self):
        register_default_handlers()
        register_default_handlers()

        assert EventHandlerRegistry.get_handlers("batch.dispatch_started") == [log_dispatch_milestone]
        assert EventHandlerRegistry.get_handlers("batch.snapshot_locked") == [check_vehicle_capacity]
        assert EventHandlerRegistry.get_handlers("batch.created") == []

    def test_handles_decorator(self):
        @EventHandlerRegistry.handles("requisition.approved", "requisition.rejected")
        def audit_decision(payload):
            pass

        assert EventHandlerRegistry.get_handlers("requisition.rejected") == [audit_decision]

    def test_over_capacity_batch_is_flagged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="fleetflow.modules.events.handlers"):
            check_vehicle_capacity(
                {"batch_id": "b-1", "total_slot_demand": "14", "vehicle_total_slots": 12}
            )
            check_vehicle_capacity(
                {"batch_id": "b-2", "total_slot_demand": "9", "vehicle_total_slots": 12}
            )
            check_vehicle_capacity({"batch_id": "b-3", "total_slot_demand": "9"})

        warnings = [r.getMessage() for r in caplog.records]
        assert len(warnings) == 1
        assert "b-1" in warnings[0]
