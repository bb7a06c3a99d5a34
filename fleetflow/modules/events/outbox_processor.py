"""OutboxProcessor — synchronous relay of outbox events for Celery workers."""

import logging
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from fleetflow.config import settings
from fleetflow.database.base import utcnow
from fleetflow.database.engine import sync_engine
from fleetflow.models.enums import EventStatus
from fleetflow.models.event_outbox import EventOutbox
from fleetflow.models.processed_event import ProcessedEvent
from fleetflow.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)


class OutboxProcessor:
    """Relays PENDING events to registered handlers.

    Rows are claimed with ``SELECT ... FOR UPDATE SKIP LOCKED`` so several
    workers can poll concurrently. Each successful handler is recorded in
    ``processed_events``; a retried event skips handlers that already ran.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or sessionmaker(sync_engine)

    def process_batch(self, batch_size: int | None = None) -> dict:
        """Process up to ``batch_size`` pending events; returns processed/failed counts."""
        batch_size = batch_size or settings.event_outbox_batch_size
        processed_count = 0
        failed_count = 0

        with self._session_factory() as session:
            events = session.execute(
                select(EventOutbox)
                .where(EventOutbox.status == EventStatus.PENDING)
                .order_by(EventOutbox.created_at.asc())
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            ).scalars().all()

            for event in events:
                event_id = event.id
                event_type = event.event_type
                try:
                    error = self._process_one(session, event)
                except Exception as exc:
                    session.rollback()
                    logger.exception("Failed to process event %s (type=%s)", event_id, event_type)
                    error = str(exc)
                    event = session.get(EventOutbox, event_id)

                if error is None:
                    processed_count += 1
                else:
                    self._record_failure(event, error)
                    failed_count += 1
                session.commit()

        if processed_count or failed_count:
            logger.info(
                "Outbox batch done: %d processed, %d failed", processed_count, failed_count
            )
        return {"processed": processed_count, "failed": failed_count}

    def _process_one(self, session: Session, event: EventOutbox) -> str | None:
        """Run the handlers for one event; returns the combined handler error, if any."""
        done = frozenset(
            session.execute(
                select(ProcessedEvent.handler_name).where(ProcessedEvent.event_id == event.id)
            ).scalars().all()
        )

        event.status = EventStatus.PROCESSING
        session.flush()

        results = EventHandlerRegistry.dispatch(event.event_type, event.payload, skip=done)

        # Successful handlers are recorded even when a sibling fails, so a retry skips them
        expires_at = utcnow() + timedelta(days=settings.processed_event_ttl_days)
        for result in results:
            if result["status"] == "ok":
                session.add(ProcessedEvent(
                    event_id=event.id,
                    event_type=event.event_type,
                    handler_name=result["handler"],
                    expires_at=expires_at,
                ))

        errors = [r for r in results if r["status"] == "error"]
        if errors:
            return "Handler errors: " + "; ".join(f"{r['handler']}: {r['error']}" for r in errors)

        event.status = EventStatus.COMPLETED
        event.processed_at = utcnow()
        return None

    def _record_failure(self, event: EventOutbox | None, error: str) -> None:
        if event is None:
            return
        event.retry_count += 1
        event.last_error = error
        event.status = (
            EventStatus.FAILED if event.retry_count >= event.max_retries else EventStatus.PENDING
        )

    def cleanup_expired(self) -> int:
        """Delete expired idempotency records and old completed events."""
        now = utcnow()
        with self._session_factory() as session:
            deleted = session.execute(
                delete(ProcessedEvent).where(ProcessedEvent.expires_at < now)
            ).rowcount
            deleted += session.execute(
                delete(EventOutbox).where(
                    EventOutbox.status == EventStatus.COMPLETED,
                    EventOutbox.processed_at
                    < now - timedelta(days=settings.completed_event_retention_days),
                )
            ).rowcount
            session.commit()

        logger.info("Cleaned up %d expired event records", deleted)
        return deleted
