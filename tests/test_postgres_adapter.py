import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vidhub.db.base import NestedTransactionError
from vidhub.db.config import DatabaseConfig, PostgresConfig
from vidhub.db.engine import Database
from vidhub.db.postgres import PostgresAdapter, quote_identifier

URL = "postgresql://user:pw@db:5432/vidhub"


class _FakeTransaction:
    def __init__(self):
        self.exc_type = None
        self.exited = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exited = True
        self.exc_type = exc_type
        return False


def _make_connection():
    conn = AsyncMock()
    conn.fetchval.return_value = 1
    conn.fetchrow.return_value = None
    conn.fetch.return_value = []
    conn.transaction = MagicMock(return_value=_FakeTransaction())
    return conn


class TestPostgresAdapter:
    """PostgreSQL backend with asyncpg.connect mocked out."""

    @pytest.mark.asyncio
    async def test_initialize_checks_connection_and_creates_table(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            adapter = PostgresAdapter(URL)
            assert await adapter.initialize() is True
            assert await adapter.initialize() is True

        connect.assert_awaited_once_with(URL, timeout=5, command_timeout=30)
        conn.fetchval.assert_awaited_once_with("SELECT 1")
        create_sql = conn.execute.await_args.args[0]
        assert 'CREATE TABLE IF NOT EXISTS "configs"' in create_sql
        assert "JSONB" in create_sql
        conn.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_failure_returns_false(self):
        with patch(
            "vidhub.db.postgres.asyncpg.connect",
            AsyncMock(side_effect=OSError("connection refused")),
        ):
            adapter = PostgresAdapter(URL)
            assert await adapter.initialize() is False

        assert adapter.initialized is False

    @pytest.mark.asyncio
    async def test_invalid_table_name_fails_initialize(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            adapter = PostgresAdapter(URL, table_name="configs; DROP TABLE x")
            assert await adapter.initialize() is False

        connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_mapping(self):
        conn = _make_connection()
        params = {"host": "db", "port": 5432, "user": "u", "password": "p", "database": "d"}
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            adapter = PostgresAdapter(params)
            assert await adapter.initialize() is True

        connect.assert_awaited_once_with(**params, timeout=5, command_timeout=30)

    @pytest.mark.asyncio
    async def test_set_upserts_json(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL, table_name="site_configs")
            await adapter.initialize()

            assert await adapter.set("config", {"customTitle": "B"}) is True

        sql, key, payload = conn.execute.await_args.args
        assert 'INSERT INTO "site_configs"' in sql
        assert "ON CONFLICT (id)" in sql
        assert key == "config"
        assert json.loads(payload) == {"customTitle": "B"}

    @pytest.mark.asyncio
    async def test_json_text_is_stored_as_document(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL)
            await adapter.initialize()

            await adapter.set("config", '{"enableLogin": true}')

        payload = conn.execute.await_args.args[2]
        assert json.loads(payload) == {"enableLogin": True}

    @pytest.mark.asyncio
    async def test_every_operation_opens_and_closes_a_connection(self):
        conn = _make_connection()
        conn.fetchrow.return_value = {"config": json.dumps({"a": 1})}
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            adapter = PostgresAdapter(URL)
            await adapter.initialize()
            assert await adapter.get("config") == {"a": 1}
            assert await adapter.get("config") == {"a": 1}

        assert connect.await_count == 3
        assert conn.close.await_count == 3

    @pytest.mark.asyncio
    async def test_connection_closed_when_operation_fails(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL)
            await adapter.initialize()
            conn.fetchrow.side_effect = RuntimeError("server closed the connection")

            assert await adapter.get("config") is None

        assert conn.close.await_count == 2

    @pytest.mark.asyncio
    async def test_list_and_query(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL)
            await adapter.initialize()
            conn.fetch.return_value = [{"id": "config"}]

            assert await adapter.list() == ["config"]
            assert await adapter.query("SELECT id FROM configs WHERE id = $1", ["config"]) == [
                {"id": "config"}
            ]

        conn.fetch.assert_awaited_with("SELECT id FROM configs WHERE id = $1", "config")

    @pytest.mark.asyncio
    async def test_transaction_commits_through_handle(self):
        conn = _make_connection()
        tx = conn.transaction.return_value
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL)
            await adapter.initialize()

            async def write(handle):
                await handle.set("config", {"a": 1})
                return "ok"

            assert await adapter.transaction(write) == "ok"

        assert tx.exited is True
        assert tx.exc_type is None

    @pytest.mark.asyncio
    async def test_transaction_error_propagates_to_rollback(self):
        conn = _make_connection()
        tx = conn.transaction.return_value
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)):
            adapter = PostgresAdapter(URL)
            await adapter.initialize()

            async def nested(handle):
                await handle.transaction(AsyncMock())

            with pytest.raises(NestedTransactionError):
                await adapter.transaction(nested)

        assert tx.exc_type is NestedTransactionError

    @pytest.mark.asyncio
    async def test_nested_transaction_through_adapter_rejected(self):
        conn = _make_connection()
        tx = conn.transaction.return_value
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            adapter = PostgresAdapter(URL)
            await adapter.initialize()
            inner = AsyncMock()

            async def outer(handle):
                return await adapter.transaction(inner)

            with pytest.raises(NestedTransactionError):
                await adapter.transaction(outer)

        inner.assert_not_awaited()
        # One connection for initialize, one for the outer transaction
        assert connect.await_count == 2
        assert tx.exc_type is NestedTransactionError

    @pytest.mark.asyncio
    async def test_nested_transaction_through_facade_rejected(self):
        conn = _make_connection()
        with patch("vidhub.db.postgres.asyncpg.connect", AsyncMock(return_value=conn)) as connect:
            database = Database()
            config = DatabaseConfig(postgres=PostgresConfig(connection=URL))
            assert await database.initialize(config) is True
            inner = AsyncMock()

            async def outer(handle):
                return await database.transaction(inner)

            with pytest.raises(NestedTransactionError):
                await database.transaction(outer)

        inner.assert_not_awaited()
        assert connect.await_count == 2
        await database.close()


def test_quote_identifier():
    assert quote_identifier("configs") == '"configs"'
    with pytest.raises(ValueError):
        quote_identifier('configs"')
    with pytest.raises(ValueError):
        quote_identifier("")
