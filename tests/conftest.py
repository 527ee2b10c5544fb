"""Pytest configuration and shared fakes for the EDD stats test suite."""

import pytest

from app.core.dev_config import DataSourceConfig
from app.services.data_source import DataSourceSelector, ResultKind
from app.services.options_service import OptionsStore
from app.services.query_engine import ReportQueryEngine
from app.services.report_cache import MemoryCacheBackend, ReportCache
from app.services.report_service import ReportService


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio-marked async tests to the asyncio backend only."""
    return request.param


class FakeConnection:
    """Stands in for StoreConnection: records statements and replays canned results."""

    def __init__(self, result=None, label="primary", table_prefix="wp_", tables=(), error=None, alive=True):
        self.result = result
        self.label = label
        self.table_prefix = table_prefix
        self.tables = set(tables)
        self.error = error
        self.alive = alive
        self.statements = []
        self.disposed = False

    async def fetch(self, statement, kind=ResultKind.ROWS):
        self.statements.append(statement)
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(statement, kind)
        return self.result

    async def ping(self):
        return self.alive

    async def has_table(self, name):
        return name in self.tables

    async def dispose(self):
        self.disposed = True


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def make_connection():
    return FakeConnection


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dev_config():
    """Mutable holder so tests can flip dev mode between calls."""
    return {"config": DataSourceConfig(dev_mode=False)}


@pytest.fixture
def options(tmp_path):
    return OptionsStore(tmp_path / "options.yaml", default_cache_duration=3600)


@pytest.fixture
def build_service(options, clock, dev_config):
    """Wire a ReportService over a fake primary connection and an in-memory cache."""

    def _build(primary, connector=None):
        kwargs = {"connector": connector} if connector is not None else {}
        selector = DataSourceSelector(primary, lambda: dev_config["config"], **kwargs)
        cache = ReportCache(MemoryCacheBackend(), prefix="edd_stats_", clock=clock)
        engine = ReportQueryEngine(selector, cache, options)
        return ReportService(engine)

    return _build
