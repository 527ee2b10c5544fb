"""Tests for report shaping and SQL rendering through ReportService."""

import pytest

from app.core.dev_config import DataSourceConfig
from app.reports import customers, products, revenue, subscriptions
from app.reports.base import date_conditions, percent_change


class TestReportBuilders:

    def test_date_conditions_render_literals(self):
        where = date_conditions("o.date_created", "2024-01-01", "2024-03-31")
        assert where == " AND o.date_created >= '2024-01-01' AND o.date_created <= '2024-03-31'"

    def test_date_conditions_empty_without_bounds(self):
        assert date_conditions("o.date_created") == ""

    def test_renewal_rates_include_whole_end_day(self):
        query = subscriptions.renewal_rates_by_month("wp_", "2023-01-01", "2023-06-30")
        assert "'2023-06-30 23:59:59'" in query.statement

    def test_hashed_key_depends_on_parameters(self):
        a = revenue.revenue_by_month("wp_", "2024-01-01", None)
        b = revenue.revenue_by_month("wp_", "2024-02-01", None)
        assert a.key != b.key
        assert str(a.key).startswith("revenue_by_month_")

    def test_table_prefix_is_applied(self):
        query = customers.new_customers_by_month("dev_", None, None)
        assert "dev_edd_customers" in query.statement
        assert "wp_edd_customers" not in query.statement

    def test_forecast_months_are_clamped(self):
        assert str(revenue.revenue_forecast("wp_", 12).key) == "revenue_forecast_6"
        assert str(revenue.revenue_forecast("wp_", 0).key) == "revenue_forecast_1"

    def test_literal_keys_embed_limits(self):
        assert str(customers.at_risk_customers("wp_", 25).key) == "at_risk_customers_25"
        assert str(subscriptions.upcoming_renewals("wp_", 7).key) == "upcoming_renewals_7"
        assert str(customers.customer_health_scores("wp_", 25).key) == "customer_health_25"
        assert str(products.demand_forecast("wp_", 30, 10).key) == "demand_forecast_30_10"
        assert str(revenue.cash_flow_projection("wp_").key) == "cash_flow_projection_90"

    def test_product_reports_use_prefix_and_limit(self):
        query = products.top_products("dev_", "2024-01-01", None, limit=5)
        assert "dev_edd_order_items" in query.statement
        assert "dev_posts" in query.statement
        assert "LIMIT 5" in query.statement
        assert str(query.key).startswith("top_products_")

    def test_growth_trends_key_depends_on_limit(self):
        a = products.product_growth_trends("wp_", None, None, limit=5)
        b = products.product_growth_trends("wp_", None, None, limit=10)
        assert a.key != b.key

    def test_bundle_report_reads_bundle_meta(self):
        assert "_edd_bundled_products" in products.bundle_performance("wp_").statement


class TestPercentChange:

    def test_zero_previous_gives_zero(self):
        assert percent_change(5, 0) == 0

    def test_growth_is_rounded(self):
        assert percent_change(15, 10) == 50.0
        assert percent_change(2, 3) == -33.33


class TestReportService:

    @pytest.mark.anyio
    async def test_yoy_change_with_no_rows(self, build_service, make_connection):
        service = build_service(make_connection(result=[]))
        assert await service.get_new_customers_yoy_change() == {"current_year": 0, "last_year": 0, "change": 0}

    @pytest.mark.anyio
    async def test_yoy_change_computes_percentage(self, build_service, make_connection):
        service = build_service(make_connection(result=[{"current_year": "15", "last_year": 10}]))
        assert await service.get_new_customers_yoy_change() == {"current_year": 15, "last_year": 10, "change": 50.0}

    @pytest.mark.anyio
    async def test_upcoming_renewals_zero_record(self, build_service, make_connection):
        service = build_service(make_connection(result=[]))
        assert await service.get_upcoming_renewals(30) == {"count": 0, "estimated_revenue": 0}

    @pytest.mark.anyio
    async def test_current_mrr_breakdown(self, build_service, make_connection):
        values = {"new_mrr": 100.0, "churned_mrr": 25.5, "existing_mrr": 400.0}

        def result(statement, kind):
            for name, value in values.items():
                if f"AS {name}" in statement:
                    return value
            return None

        service = build_service(make_connection(result=result))
        breakdown = await service.get_current_mrr_breakdown()

        assert breakdown == {"new_mrr": 100.0, "existing_mrr": 400.0, "churned_mrr": 25.5, "net_mrr": 474.5}

    @pytest.mark.anyio
    async def test_null_scalars_become_zero(self, build_service, make_connection):
        service = build_service(make_connection(result=None))
        breakdown = await service.get_current_mrr_breakdown()
        assert breakdown["net_mrr"] == 0.0

    @pytest.mark.anyio
    async def test_activation_funnel_zero_record(self, build_service, make_connection):
        service = build_service(make_connection(result=[]))
        assert await service.get_customer_activation_funnel() == customers.ACTIVATION_FUNNEL_ZERO

    @pytest.mark.anyio
    async def test_list_reports_return_empty_list(self, build_service, make_connection):
        service = build_service(make_connection(result=None))
        assert await service.get_revenue_by_month() == []
        assert await service.get_rfm_segments() == []

    @pytest.mark.anyio
    async def test_revenue_by_month_is_cached_per_range(self, build_service, make_connection, clock):
        rows = [{"date": "2024-01-01", "label": "January 2024", "total_revenue": 120.0}]
        primary = make_connection(result=rows)
        service = build_service(primary)

        assert await service.get_revenue_by_month("2024-01-01", "2024-01-31") == rows
        assert await service.get_revenue_by_month("2024-01-01", "2024-01-31") == rows
        assert len(primary.statements) == 1

        await service.get_revenue_by_month("2024-02-01", "2024-02-29")
        assert len(primary.statements) == 2

        # default cache duration is 3600s
        clock.now += 3601
        assert await service.get_revenue_by_month("2024-01-01", "2024-01-31") == rows
        assert len(primary.statements) == 3

    @pytest.mark.anyio
    async def test_ltv_cac_ratio_zero_record(self, build_service, make_connection):
        service = build_service(make_connection(result=[]))
        assert await service.get_ltv_cac_ratio() == {
            "avg_ltv": 0,
            "ltv_cac_ratio": 0,
            "estimated_cac": 0,
            "customer_count": 0,
        }

    @pytest.mark.anyio
    async def test_demand_forecast_cached_by_window(self, build_service, make_connection):
        primary = make_connection(result=[{"product_id": 7, "forecasted_units": 12}])
        service = build_service(primary)

        await service.get_demand_forecast(30, 10)
        await service.get_demand_forecast(30, 10)
        await service.get_demand_forecast(14, 10)

        assert len(primary.statements) == 2

    @pytest.mark.anyio
    async def test_top_licenses_without_license_table(self, build_service, make_connection):
        primary = make_connection(result=[{"license_id": 1}])
        service = build_service(primary)

        assert await service.get_top_licenses() == []
        assert primary.statements == []

    @pytest.mark.anyio
    async def test_top_licenses_with_license_table(self, build_service, make_connection):
        primary = make_connection(result=[{"license_id": 1}], tables={"wp_edd_licenses"})
        service = build_service(primary)
        assert await service.get_top_licenses(5) == [{"license_id": 1}]

    @pytest.mark.anyio
    async def test_dev_mode_uses_dev_prefix(self, build_service, make_connection, dev_config):
        alternate = make_connection(result=[], label="alternate", table_prefix="dev_")

        async def connector(config):
            return alternate

        dev_config["config"] = DataSourceConfig(dev_mode=True, db_prefix="dev_")
        service = build_service(make_connection(), connector=connector)

        await service.get_new_customers_by_month()

        assert "dev_edd_customers" in alternate.statements[0]

    @pytest.mark.anyio
    async def test_clear_cache_forces_requery(self, build_service, make_connection):
        primary = make_connection(result=[])
        service = build_service(primary)

        await service.get_seasonal_patterns()
        assert await service.clear_cache() == 1
        await service.get_seasonal_patterns()

        assert len(primary.statements) == 2

    @pytest.mark.anyio
    async def test_health_check_all_green(self, build_service, make_connection):
        tables = {"wp_edd_customers", "wp_edd_orders", "wp_edd_subscriptions"}
        service = build_service(make_connection(result="3.2.1", tables=tables))

        health = await service.health_check()

        assert health["success"] is True
        assert health["database"] == "connected"
        assert health["edd_active"] is True
        assert health["tables_exist"] == {"edd_customers": True, "edd_orders": True, "edd_subscriptions": True}

    @pytest.mark.anyio
    async def test_health_check_ignores_dev_mode(self, build_service, make_connection, dev_config):
        tables = {"wp_edd_customers", "wp_edd_orders", "wp_edd_subscriptions"}
        primary = make_connection(result="3.2.1", tables=tables)
        alternate = make_connection(result=None, label="alternate", table_prefix="dev_", alive=False)

        async def connector(config):
            return alternate

        dev_config["config"] = DataSourceConfig(dev_mode=True, db_prefix="dev_")
        service = build_service(primary, connector=connector)

        health = await service.health_check()

        assert health["success"] is True
        assert health["database"] == "connected"
        assert alternate.statements == []
        assert "wp_options" in primary.statements[0]

    @pytest.mark.anyio
    async def test_health_check_missing_table(self, build_service, make_connection):
        service = build_service(make_connection(result="3.2.1", tables={"wp_edd_orders"}))

        health = await service.health_check()

        assert health["success"] is False
        assert health["tables_exist"]["edd_customers"] is False

    @pytest.mark.anyio
    async def test_health_check_database_down(self, build_service, make_connection):
        service = build_service(make_connection(alive=False))

        health = await service.health_check()

        assert health["database"] == "disconnected"
        assert health["edd_active"] is False
        assert health["success"] is False
