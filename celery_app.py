"""Celery application for FleetFlow background work: the event outbox relay and its cleanup."""

from celery import Celery
from celery.schedules import crontab

from fleetflow.config import settings
from fleetflow.logging_config import configure_logging

configure_logging()

celery = Celery("fleetflow", broker=settings.celery_broker_url, backend=settings.celery_result_backend)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Root logging is configured above; keep Celery from replacing its handlers
    worker_hijack_root_logger=False,
    task_routes={
        "fleetflow.modules.events.tasks.process_outbox": {"queue": "event-outbox"},
        "fleetflow.modules.events.tasks.cleanup_processed_events": {"queue": "maintenance"},
    },
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    broker_transport_options={
        "visibility_timeout": 600,
        "retry_on_timeout": True,
    },
    beat_schedule={
        "relay-event-outbox": {
            "task": "fleetflow.modules.events.tasks.process_outbox",
            "schedule": settings.event_outbox_poll_seconds,
        },
        "cleanup-event-records-nightly": {
            "task": "fleetflow.modules.events.tasks.cleanup_processed_events",
            "schedule": crontab(hour=2, minute=15),
        },
    },
)

celery.autodiscover_tasks(["fleetflow.modules.events"])
