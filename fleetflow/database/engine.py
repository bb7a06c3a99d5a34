"""Database engines: asyncpg for the API, psycopg2 for Alembic and the Celery relay."""

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fleetflow.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    echo=settings.database_echo,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Outbox workers claim rows one batch at a time; a small pool is enough
sync_engine = create_engine(settings.database_url_sync, pool_size=2, pool_pre_ping=True)
