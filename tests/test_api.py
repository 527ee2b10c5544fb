"""Integration tests for the report HTTP API."""

import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.api.deps import get_health_service, get_options_store, get_report_service, settings, verify_admin_access
from app.core.exceptions import ReportQueryError
from app.core.logger import clear_cached_logs
from app.services.query_engine import ReportQueryEngine
from app.services.report_cache import DatabaseCacheBackend, ReportCache
from app.services.report_service import ReportService
from main import app

PREFIX = settings.API_PREFIX


@pytest.fixture
def primary(make_connection):
    return make_connection(
        result=[{"date": "2024-01-01", "label": "January 2024", "total_revenue": 99.0}],
        tables={"wp_edd_customers", "wp_edd_orders", "wp_edd_subscriptions"},
    )


@pytest.fixture
def client(build_service, primary, options):
    service = build_service(primary)
    app.dependency_overrides[get_report_service] = lambda: service
    app.dependency_overrides[get_health_service] = lambda: service
    app.dependency_overrides[get_options_store] = lambda: options
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    app.dependency_overrides[verify_admin_access] = lambda: None
    return client


class TestAuth:

    def test_reports_require_login(self, client):
        resp = client.get(f"{PREFIX}/revenue/by-month")
        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_health_is_open(self, client):
        resp = client.get(f"{PREFIX}/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "connected"

    def test_health_without_database_url(self, client, monkeypatch):
        monkeypatch.setattr(settings, "DATABASE_URL", None)
        app.dependency_overrides.pop(get_health_service)

        resp = client.get(f"{PREFIX}/health")

        assert resp.status_code == 200
        assert resp.json()["database"] == "disconnected"
        assert resp.json()["success"] is False

    def test_login_cookie_grants_access(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_PASSWORD", "s3cret")

        assert client.post("/admin/login", json={"password": "wrong"}).status_code == 403
        assert client.post("/admin/login", json={"password": "s3cret"}).status_code == 200
        assert client.get(f"{PREFIX}/revenue/by-month").status_code == 200

        client.post("/admin/logout")
        assert client.get(f"{PREFIX}/revenue/by-month").status_code == 401


class TestReportEndpoints:

    def test_envelope(self, admin_client):
        resp = admin_client.get(f"{PREFIX}/revenue/by-month", params={"start_date": "2024-01-01"})
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "data": [{"date": "2024-01-01", "label": "January 2024", "total_revenue": 99.0}],
        }

    @pytest.mark.parametrize("value", ["2024-02-30", "not-a-date"])
    def test_invalid_date_is_400(self, admin_client, value):
        resp = admin_client.get(f"{PREFIX}/customers/by-month", params={"end_date": value})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_leap_day_and_empty_dates_accepted(self, admin_client):
        resp = admin_client.get(f"{PREFIX}/mrr/by-month", params={"start_date": "", "end_date": "2024-02-29"})
        assert resp.status_code == 200

    def test_negative_limit_is_400(self, admin_client):
        resp = admin_client.get(f"{PREFIX}/customers/at-risk", params={"limit": -1})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_query_failure_is_500(self, admin_client, primary):
        primary.error = ReportQueryError("Table 'wp_edd_orders' doesn't exist")
        resp = admin_client.get(f"{PREFIX}/revenue/seasonal")
        assert resp.status_code == 500
        assert resp.json()["success"] is False

    def test_top_licenses_without_extension(self, admin_client):
        resp = admin_client.get(f"{PREFIX}/licenses/top")
        assert resp.json() == {"success": True, "data": []}

    @pytest.mark.parametrize(
        "path, params",
        [
            ("/customers/clv-distribution", {}),
            ("/customers/health-scores", {"limit": 25}),
            ("/revenue/breakdown", {"start_date": "2024-01-01", "end_date": "2024-03-31"}),
            ("/revenue/concentration", {}),
            ("/revenue/cash-flow", {"days": 60}),
            ("/products/top", {"limit": 5}),
            ("/products/growth-trends", {}),
            ("/products/performance-matrix", {}),
            ("/products/bundles", {"start_date": "2024-01-01"}),
            ("/products/lifecycle", {}),
            ("/products/demand-forecast", {"days": 14, "limit": 3}),
        ],
    )
    def test_catalog_routes(self, admin_client, primary, path, params):
        resp = admin_client.get(f"{PREFIX}{path}", params=params)

        assert resp.status_code == 200
        assert resp.json()["data"] == primary.result

    def test_ltv_cac_zero_record(self, admin_client, primary):
        primary.result = []
        resp = admin_client.get(f"{PREFIX}/revenue/ltv-cac")
        assert resp.json()["data"] == {"avg_ltv": 0, "ltv_cac_ratio": 0, "estimated_cac": 0, "customer_count": 0}

    def test_negative_days_is_400(self, admin_client):
        assert admin_client.get(f"{PREFIX}/products/demand-forecast", params={"days": -5}).status_code == 400

    def test_report_served_when_cache_table_missing(self, admin_client, primary, options, tmp_path):
        cache_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'no_cache_table.db'}", poolclass=NullPool)
        session_factory = sessionmaker(bind=cache_engine, class_=AsyncSession, expire_on_commit=False)
        cache = ReportCache(DatabaseCacheBackend(session_factory), prefix="edd_stats_")
        selector = app.dependency_overrides[get_report_service]().engine.selector
        service = ReportService(ReportQueryEngine(selector, cache, options))
        app.dependency_overrides[get_report_service] = lambda: service

        resp = admin_client.get(f"{PREFIX}/revenue/seasonal")

        assert resp.status_code == 200
        assert resp.json()["data"] == primary.result
        assert len(primary.statements) == 1


class TestSystemEndpoints:

    def test_cache_clear(self, admin_client, primary):
        admin_client.get(f"{PREFIX}/revenue/by-month")
        resp = admin_client.post(f"{PREFIX}/cache/clear")
        admin_client.get(f"{PREFIX}/revenue/by-month")

        assert resp.json()["success"] is True
        assert len(primary.statements) == 2

    def test_settings_round_trip(self, admin_client):
        resp = admin_client.put(f"{PREFIX}/settings", json={"cache_duration": -120, "default_range": "bogus"})
        assert resp.json()["data"] == {"cache_duration": 120, "default_range": "365"}
        assert admin_client.get(f"{PREFIX}/settings").json()["data"]["cache_duration"] == 120

    def test_admin_logs_tail_and_clear(self, admin_client):
        clear_cached_logs()
        for i in range(3):
            logging.getLogger("edd_stats.test").warning(f"line {i}")

        resp = admin_client.get(f"{PREFIX}/admin/logs", params={"lines": 2})
        tail = resp.json()["logs"].splitlines()
        assert len(tail) == 2
        assert tail[-1].endswith("line 2")

        assert admin_client.delete(f"{PREFIX}/admin/logs").json()["cleared"] >= 3
        assert "line 0" not in admin_client.get(f"{PREFIX}/admin/logs").json()["logs"]
