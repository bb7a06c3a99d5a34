from fleetflow.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fleetflow.database.engine import async_session, engine, sync_engine
from fleetflow.database.session import get_db
from fleetflow.database.transaction import run_in_transaction

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "async_session",
    "engine",
    "sync_engine",
    "get_db",
    "run_in_transaction",
]
