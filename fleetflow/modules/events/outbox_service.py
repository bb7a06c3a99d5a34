"""OutboxService — publishes domain events in the caller's transaction."""

import enum
import uuid
from datetime import date, time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetflow.models.enums import EventStatus
from fleetflow.models.event_outbox import EventOutbox


def _jsonable(value):
    """Coerce enums, UUIDs, Decimals and dates inside a payload to JSON primitives."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_jsonable(item) for item in value]
    if isinstance(value, uuid.UUID | Decimal):
        return str(value)
    if isinstance(value, date | time):
        return value.isoformat()
    return value


class OutboxService:
    """Writes outbox rows; the Celery relay picks them up after commit."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: uuid.UUID | str,
        payload: dict,
        schema_version: int = 1,
    ) -> EventOutbox:
        """Add a PENDING event to the session. Not committed here."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload=_jsonable(payload),
            status=EventStatus.PENDING,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_events_for_aggregate(
        self, aggregate_type: str, aggregate_id: uuid.UUID | str
    ) -> list[EventOutbox]:
        result = await self.session.execute(
            select(EventOutbox)
            .where(
                EventOutbox.aggregate_type == aggregate_type,
                EventOutbox.aggregate_id == str(aggregate_id),
            )
            .order_by(EventOutbox.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Pending events, oldest first."""
        result = await self.session.execute(
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
        )
        return list(result.scalars().all())
