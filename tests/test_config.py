"""Tests for the settings defaults the engines are built from."""

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from fleetflow.config import Settings


class TestDatabaseUrls:
    def test_sync_url_names_psycopg2(self):
        url = make_url(Settings.model_fields["database_url_sync"].default)
        assert url.drivername == "postgresql+psycopg2"

    def test_sync_engine_loads_psycopg2(self):
        engine = create_engine(Settings.model_fields["database_url_sync"].default)
        try:
            assert engine.dialect.driver == "psycopg2"
        finally:
            engine.dispose()

    def test_async_url_names_asyncpg(self):
        url = make_url(Settings.model_fields["database_url"].default)
        assert url.drivername == "postgresql+asyncpg"
