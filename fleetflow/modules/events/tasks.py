"""Celery tasks for event outbox processing."""

from celery_app import celery
from fleetflow.modules.events.handlers import register_default_handlers
from fleetflow.modules.events.outbox_processor import OutboxProcessor

register_default_handlers()


@celery.task(name="fleetflow.modules.events.tasks.process_outbox")
def process_outbox():
    """Relay a batch of pending outbox events."""
    return OutboxProcessor().process_batch()


@celery.task(name="fleetflow.modules.events.tasks.cleanup_processed_events")
def cleanup_processed_events():
    """Delete expired processed_events and old completed outbox rows."""
    return OutboxProcessor().cleanup_expired()
