"""Tests for run_in_transaction retry and commit behaviour."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetflow.database.transaction import is_retryable, run_in_transaction
from fleetflow.models.reference import Warehouse


class _DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _db_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE delivery_batches ...", {}, _DriverError(sqlstate))


@pytest.fixture
def session_factory(async_test_engine):
    return async_sessionmaker(async_test_engine, class_=AsyncSession, expire_on_commit=False)


async def _warehouse_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(Warehouse.id)))).scalar_one()


class TestIsRetryable:
    @pytest.mark.parametrize("sqlstate, expected", [
        ("40001", True),
        ("40P01", True),
        ("23505", False),
        (None, False),
    ])
    def test_sqlstates(self, sqlstate, expected):
        assert is_retryable(_db_error(sqlstate)) is expected


class TestRunInTransaction:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, session_factory):
        async def create(session):
            session.add(Warehouse(name="Kisumu Depot", code="KSM"))
            return "done"

        assert await run_in_transaction(create, session_factory) == "done"
        assert await _warehouse_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, session_factory):
        async def create_then_fail(session):
            session.add(Warehouse(name="Kisumu Depot", code="KSM"))
            await session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_in_transaction(create_then_fail, session_factory)
        assert await _warehouse_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_serialization_failure_is_retried(self, session_factory):
        attempts = []

        async def conflicted_once(session):
            attempts.append(session)
            if len(attempts) == 1:
                raise _db_error("40001")
            session.add(Warehouse(name="Kisumu Depot", code="KSM"))
            return len(attempts)

        result = await run_in_transaction(
            conflicted_once, session_factory, max_retries=3, base_backoff_seconds=0
        )

        assert result == 2
        assert attempts[0] is not attempts[1]
        assert await _warehouse_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_other_database_errors_are_not_retried(self, session_factory):
        attempts = []

        async def duplicate(session):
            attempts.append(1)
            raise _db_error("23505")

        with pytest.raises(DBAPIError):
            await run_in_transaction(duplicate, session_factory, base_backoff_seconds=0)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, session_factory):
        attempts = []

        async def always_deadlocked(session):
            attempts.append(1)
            raise _db_error("40P01")

        with pytest.raises(DBAPIError):
            await run_in_transaction(
                always_deadlocked, session_factory, max_retries=2, base_backoff_seconds=0
            )
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_backoff_doubles_between_attempts(self, session_factory):
        async def always_conflicted(session):
            raise _db_error("40001")

        with patch(
            "fleetflow.database.transaction.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            with pytest.raises(DBAPIError):
                await run_in_transaction(
                    always_conflicted, session_factory, max_retries=3, base_backoff_seconds=0.1
                )

        assert [c.args[0] for c in mock_sleep.await_args_list] == pytest.approx([0.1, 0.2, 0.4])
