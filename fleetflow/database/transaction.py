"""Caller-side transaction runner with retry on serialization conflicts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetflow.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable(exc: DBAPIError) -> bool:
    """True when the driver error is a transient serialization/deadlock failure."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in _RETRYABLE_SQLSTATES


async def run_in_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    max_retries: int | None = None,
    base_backoff_seconds: float | None = None,
) -> T:
    """Run ``operation`` in its own transaction, retrying transient conflicts.

    Each attempt gets a fresh session; the transaction commits when the
    operation returns and rolls back on any exception. Only serialization
    failures and deadlocks are retried, with exponential backoff.
    """
    if session_factory is None:
        from fleetflow.database.engine import async_session

        session_factory = async_session
    retries = settings.transaction_max_retries if max_retries is None else max_retries
    backoff = (
        settings.transaction_retry_base_seconds
        if base_backoff_seconds is None
        else base_backoff_seconds
    )

    attempt = 0
    while True:
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await operation(session)
        except DBAPIError as exc:
            if not is_retryable(exc) or attempt >= retries:
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Transaction conflict (%s), retrying in %.2fs (attempt %d/%d)",
                exc.orig, delay, attempt, retries,
            )
            await asyncio.sleep(delay)
