"""Unit tests for DataSourceSelector, StoreConnection and dev-config loading."""

import pytest
from sqlalchemy import text

from app.core.database import create_store_engine
from app.core.dev_config import DataSourceConfig, load_dev_config
from app.core.exceptions import DataSourceUnavailableError, ReportQueryError
from app.services.data_source import DataSourceSelector, ResultKind, StoreConnection


class CountingConnector:
    def __init__(self, connection=None, error=None):
        self.connection = connection
        self.error = error
        self.calls = 0

    async def __call__(self, config):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.connection


class TestDataSourceSelector:

    @pytest.mark.anyio
    async def test_production_mode_uses_primary(self, make_connection):
        primary = make_connection()
        connector = CountingConnector(make_connection(label="alternate"))
        selector = DataSourceSelector(primary, lambda: DataSourceConfig(dev_mode=False), connector)

        assert await selector.get_connection() is primary
        assert connector.calls == 0

    @pytest.mark.anyio
    async def test_dev_mode_opens_alternate_once(self, make_connection):
        alternate = make_connection(label="alternate")
        connector = CountingConnector(alternate)
        selector = DataSourceSelector(make_connection(), lambda: DataSourceConfig(dev_mode=True), connector)

        assert await selector.get_connection() is alternate
        assert await selector.get_connection() is alternate
        assert connector.calls == 1

    @pytest.mark.anyio
    async def test_failed_alternate_falls_back_without_retry(self, make_connection):
        primary = make_connection()
        connector = CountingConnector(error=DataSourceUnavailableError("connection refused"))
        selector = DataSourceSelector(primary, lambda: DataSourceConfig(dev_mode=True), connector)

        assert await selector.get_connection() is primary
        assert await selector.get_connection() is primary
        assert connector.calls == 1

    @pytest.mark.anyio
    async def test_toggle_back_to_production(self, make_connection):
        primary = make_connection()
        alternate = make_connection(label="alternate")
        holder = {"config": DataSourceConfig(dev_mode=True)}
        selector = DataSourceSelector(primary, lambda: holder["config"], CountingConnector(alternate))

        assert await selector.get_connection() is alternate
        holder["config"] = DataSourceConfig(dev_mode=False)
        assert await selector.get_connection() is primary

    def test_table_prefix_follows_dev_config(self, make_connection):
        holder = {"config": DataSourceConfig(dev_mode=True, db_prefix="dev_")}
        selector = DataSourceSelector(make_connection(table_prefix="wp_"), lambda: holder["config"])

        assert selector.get_table_prefix() == "dev_"
        holder["config"] = DataSourceConfig(dev_mode=True, db_prefix=None)
        assert selector.get_table_prefix() == "wp_"
        holder["config"] = DataSourceConfig(dev_mode=False, db_prefix="dev_")
        assert selector.get_table_prefix() == "wp_"

    @pytest.mark.anyio
    async def test_close_disposes_alternate_only(self, make_connection):
        primary = make_connection()
        alternate = make_connection(label="alternate")
        selector = DataSourceSelector(primary, lambda: DataSourceConfig(dev_mode=True), CountingConnector(alternate))
        await selector.get_connection()

        await selector.close()

        assert alternate.disposed is True
        assert primary.disposed is False


class TestLoadDevConfig:

    def test_missing_file_means_production(self, tmp_path):
        config = load_dev_config(tmp_path / "dev-config.yaml")
        assert config.dev_mode is False

    def test_reads_values_and_normalizes_keys(self, tmp_path):
        path = tmp_path / "dev-config.yaml"
        path.write_text("DEV_MODE: true\ndb_host: 10.0.0.5\ndb_prefix: wp_\n", encoding="utf-8")

        config = load_dev_config(path)

        assert config.dev_mode is True
        assert config.db_host == "10.0.0.5"
        assert config.db_prefix == "wp_"
        assert config.db_port == 3306

    def test_malformed_file_means_production(self, tmp_path):
        path = tmp_path / "dev-config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_dev_config(path).dev_mode is False

    def test_rereads_on_every_call(self, tmp_path):
        path = tmp_path / "dev-config.yaml"
        path.write_text("dev_mode: false\n", encoding="utf-8")
        assert load_dev_config(path).dev_mode is False
        path.write_text("dev_mode: true\n", encoding="utf-8")
        assert load_dev_config(path).dev_mode is True


class TestStoreConnection:

    @pytest.fixture
    async def store(self, tmp_path):
        engine = create_store_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
        async with engine.begin() as conn:
            await conn.execute(text("CREATE TABLE wp_edd_orders (id INTEGER PRIMARY KEY, total NUMERIC)"))
            await conn.execute(text("INSERT INTO wp_edd_orders (id, total) VALUES (1, 10.5), (2, 4.5)"))
        yield StoreConnection(engine, "wp_")
        await engine.dispose()

    @pytest.mark.anyio
    async def test_fetch_rows(self, store):
        rows = await store.fetch("SELECT id, total FROM wp_edd_orders ORDER BY id")
        assert rows == [{"id": 1, "total": 10.5}, {"id": 2, "total": 4.5}]

    @pytest.mark.anyio
    async def test_fetch_scalar(self, store):
        assert await store.fetch("SELECT COUNT(*) FROM wp_edd_orders", ResultKind.SCALAR) == 2

    @pytest.mark.anyio
    async def test_fetch_column(self, store):
        assert await store.fetch("SELECT id FROM wp_edd_orders ORDER BY id", ResultKind.COLUMN) == [1, 2]

    @pytest.mark.anyio
    async def test_fetch_error_is_wrapped(self, store):
        with pytest.raises(ReportQueryError):
            await store.fetch("SELECT * FROM wp_edd_missing")

    @pytest.mark.anyio
    async def test_has_table_and_ping(self, store):
        assert await store.ping() is True
        assert await store.has_table("wp_edd_orders") is True
        assert await store.has_table("wp_edd_licenses") is False
