"""
Tests for SqlKeyValueStore (src/services/sql_store.py).
"""

from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from src.lib.exceptions import PersistenceError
from src.services.sql_store import SqlKeyValueStore


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlKeyValueStore(engine)
    store.create_schema()
    yield store
    store.dispose()


class TestSqlKeyValueStore:
    def test_schema(self, sql_store):
        assert "privacy_documents" in inspect(sql_store._engine).get_table_names()

    async def test_read_missing(self, sql_store):
        assert await sql_store.read_all("consent_records") is None

    async def test_insert_then_update(self, sql_store):
        await sql_store.write_all("purge_history", [1])
        await sql_store.write_all("purge_history", [1, 2])
        assert await sql_store.read_all("purge_history") == [1, 2]

    async def test_batch(self, sql_store):
        await sql_store.write_batch({"consent_records": {"a": []}, "consent_history": {"a": {}}})
        assert await sql_store.read_all("consent_records") == {"a": []}
        assert await sql_store.read_all("consent_history") == {"a": {}}

    async def test_database_error_on_write(self, sql_store):
        await sql_store.write_all("retention_policy", {"v": 1})
        error = OperationalError("UPDATE", {}, Exception("disk I/O error"))
        with patch.object(sql_store, "_write", side_effect=error):
            with pytest.raises(PersistenceError):
                await sql_store.write_all("retention_policy", {"v": 2})
        assert await sql_store.read_all("retention_policy") == {"v": 1}

    async def test_database_error_on_read(self, sql_store):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(sql_store, "_read", side_effect=error):
            with pytest.raises(PersistenceError) as exc_info:
                await sql_store.read_all("consent_records")
        assert exc_info.value.details == {"key": "consent_records"}

    async def test_from_url_persists_across_instances(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'privacy.db'}"
        first = SqlKeyValueStore.from_url(url)
        await first.write_all("consent_records", {"x": 1})
        first.dispose()

        second = SqlKeyValueStore.from_url(url)
        assert await second.read_all("consent_records") == {"x": 1}
        second.dispose()
