"""EventHandlerRegistry and the built-in dispatch event handlers."""

import logging
from collections import defaultdict
from collections.abc import Callable
from decimal import Decimal

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], None]


class EventHandlerRegistry:
    """Process-wide registry mapping event types to handler callables.

    Handlers take the event payload dict. Several handlers may share an
    event type; they are identified by ``__name__`` for idempotency records.
    """

    _handlers: dict[str, list[EventHandler]] = defaultdict(list)

    @classmethod
    def register(cls, event_type: str, handler: EventHandler) -> EventHandler:
        if handler not in cls._handlers[event_type]:
            cls._handlers[event_type].append(handler)
            logger.debug("Registered handler %s for %s", handler.__name__, event_type)
        return handler

    @classmethod
    def handles(cls, *event_types: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: EventHandler) -> EventHandler:
            for event_type in event_types:
                cls.register(event_type, handler)
            return handler

        return decorator

    @classmethod
    def get_handlers(cls, event_type: str) -> list[EventHandler]:
        return list(cls._handlers.get(event_type, []))

    @classmethod
    def dispatch(
        cls, event_type: str, payload: dict, skip: frozenset[str] = frozenset()
    ) -> list[dict]:
        """Run every handler for ``event_type`` not named in ``skip``.

        A failing handler is logged and reported; the remaining handlers still run.
        """
        results = []
        for handler in cls.get_handlers(event_type):
            name = handler.__name__
            if name in skip:
                continue
            try:
                handler(payload)
            except Exception as exc:
                logger.exception("Handler %s failed for event type %s", name, event_type)
                results.append({"handler": name, "status": "error", "error": str(exc)})
            else:
                results.append({"handler": name, "status": "ok"})
        return results

    @classmethod
    def clear(cls) -> None:
        cls._handlers.clear()


# ---------------------------------------------------------------------------
# Built-in handlers
# ---------------------------------------------------------------------------


def log_dispatch_milestone(payload: dict) -> None:
    logger.info(
        "Batch %s %s (driver=%s, vehicle=%s)",
        payload.get("batch_number") or payload.get("batch_id"),
        payload.get("status"),
        payload.get("driver_id"),
        payload.get("vehicle_id"),
    )


def check_vehicle_capacity(payload: dict) -> None:
    """Warn when a locked batch needs more slots than its vehicle carries."""
    slots = payload.get("vehicle_total_slots")
    demand = payload.get("total_slot_demand")
    if slots is None or demand is None:
        return
    if Decimal(str(demand)) > Decimal(slots):
        logger.warning(
            "Batch %s dispatched over capacity: %s slots needed, vehicle has %s",
            payload.get("batch_id"),
            demand,
            slots,
        )


def log_requisition_outcome(payload: dict) -> None:
    if payload.get("to_status") in ("failed", "partially_delivered"):
        logger.warning(
            "Requisition %s ended %s: %s",
            payload.get("requisition_number") or payload.get("requisition_id"),
            payload.get("to_status"),
            payload.get("reason"),
        )


def register_default_handlers() -> None:
    for event_type in ("batch.dispatch_started", "batch.dispatch_completed", "batch.cancelled"):
        EventHandlerRegistry.register(event_type, log_dispatch_milestone)
    EventHandlerRegistry.register("batch.snapshot_locked", check_vehicle_capacity)
    EventHandlerRegistry.register("requisition.delivered", log_requisition_outcome)
