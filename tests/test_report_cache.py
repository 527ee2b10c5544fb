"""Unit tests for ReportCache and its storage backends."""

import pytest
from sqlalchemy.dialects import mysql
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateTable
from sqlalchemy.orm import sessionmaker

from app.core.database import create_store_engine, init_db
from app.models.report import ReportCacheEntry
from app.services.report_cache import MISSING, DatabaseCacheBackend, MemoryCacheBackend, ReportCache


@pytest.fixture
def cache(clock):
    return ReportCache(MemoryCacheBackend(), prefix="edd_stats_", clock=clock)


class TestMemoryReportCache:

    # ------------------------------------------------------------------
    # get / put
    # ------------------------------------------------------------------

    @pytest.mark.anyio
    async def test_missing_key_returns_sentinel(self, cache):
        assert await cache.get("revenue_by_month_abc") is MISSING

    @pytest.mark.anyio
    async def test_put_then_get(self, cache):
        await cache.put("revenue_by_month_abc", [{"date": "2024-01-01", "total_revenue": 10.0}], 60)
        assert await cache.get("revenue_by_month_abc") == [{"date": "2024-01-01", "total_revenue": 10.0}]

    @pytest.mark.anyio
    async def test_falsy_values_are_hits(self, cache):
        await cache.put("empty_rows", [], 60)
        await cache.put("zero_scalar", 0, 60)
        await cache.put("null_scalar", None, 60)
        assert await cache.get("empty_rows") == []
        assert await cache.get("zero_scalar") == 0
        assert await cache.get("null_scalar") is None

    @pytest.mark.anyio
    async def test_put_overwrites(self, cache):
        await cache.put("k", 1, 60)
        await cache.put("k", 2, 60)
        assert await cache.get("k") == 2

    @pytest.mark.anyio
    async def test_zero_ttl_is_not_stored(self, cache):
        await cache.put("k", 1, 0)
        assert await cache.get("k") is MISSING

    # ------------------------------------------------------------------
    # expiry
    # ------------------------------------------------------------------

    @pytest.mark.anyio
    async def test_entry_expires_after_ttl(self, cache, clock):
        await cache.put("k", "v", 60)
        clock.now += 59
        assert await cache.get("k") == "v"
        clock.now += 2
        assert await cache.get("k") is MISSING

    # ------------------------------------------------------------------
    # clear_all
    # ------------------------------------------------------------------

    @pytest.mark.anyio
    async def test_clear_all_only_touches_namespace(self, clock):
        backend = MemoryCacheBackend()
        cache = ReportCache(backend, prefix="edd_stats_", clock=clock)
        await cache.put("a", 1, 60)
        await cache.put("b", 2, 60)
        await backend.set("other_plugin_key", 3, clock() + 60)

        removed = await cache.clear_all()

        assert removed == 2
        assert backend.keys() == ["other_plugin_key"]
        assert await cache.get("a") is MISSING

    @pytest.mark.anyio
    async def test_clear_all_on_empty_cache(self, cache):
        assert await cache.clear_all() == 0


class TestDatabaseReportCache:

    @pytest.fixture
    async def db_cache(self, tmp_path, clock):
        engine = create_store_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
        await init_db(engine)
        session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        yield ReportCache(DatabaseCacheBackend(session_factory), prefix="edd_stats_", clock=clock)
        await engine.dispose()

    @pytest.mark.anyio
    async def test_round_trip_and_overwrite(self, db_cache):
        await db_cache.put("customers_yoy", [{"current_year": 5, "last_year": 4}], 60)
        await db_cache.put("customers_yoy", [{"current_year": 6, "last_year": 4}], 60)
        assert await db_cache.get("customers_yoy") == [{"current_year": 6, "last_year": 4}]

    @pytest.mark.anyio
    async def test_expired_entry_is_a_miss(self, db_cache, clock):
        await db_cache.put("k", 1.5, 10)
        clock.now += 11
        assert await db_cache.get("k") is MISSING

    @pytest.mark.anyio
    async def test_clear_all_treats_underscore_literally(self, db_cache):
        await db_cache.put("a", 1, 60)
        await db_cache.put("b", 2, 60)
        # "edd-stats-x" would match LIKE 'edd_stats_%' if the underscores were wildcards
        await db_cache.backend.set("edd-stats-x", 3, 10_000.0)

        assert await db_cache.clear_all() == 2
        assert await db_cache.backend.get("edd-stats-x", 0.0) == 3

    @pytest.mark.anyio
    async def test_short_ttl_at_current_epoch(self, db_cache, clock):
        clock.now = 1_792_000_000.0
        await db_cache.put("upcoming_renewals_30", {"count": 3}, 60)

        clock.now += 59
        assert await db_cache.get("upcoming_renewals_30") == {"count": 3}

        clock.now += 2
        assert await db_cache.get("upcoming_renewals_30") is MISSING

    def test_expiry_column_is_double_on_mysql(self):
        ddl = str(CreateTable(ReportCacheEntry.__table__).compile(dialect=mysql.dialect()))
        expires_line = next(line for line in ddl.splitlines() if "expires_at" in line)
        assert "DOUBLE" in expires_line
        assert "FLOAT" not in expires_line


class TestDatabaseCacheWithoutTable:
    """The cache table may be missing (init_db never ran); reports must still work."""

    @pytest.fixture
    async def backend(self, tmp_path):
        engine = create_store_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        yield DatabaseCacheBackend(session_factory)
        await engine.dispose()

    @pytest.mark.anyio
    async def test_get_is_a_miss(self, backend):
        assert await backend.get("edd_stats_k", 0.0) is MISSING

    @pytest.mark.anyio
    async def test_set_is_skipped(self, backend):
        await backend.set("edd_stats_k", [1, 2], 10_000.0)
        assert await backend.get("edd_stats_k", 0.0) is MISSING

    @pytest.mark.anyio
    async def test_clear_reports_nothing_removed(self, backend):
        cache = ReportCache(backend, prefix="edd_stats_")
        assert await cache.clear_all() == 0
