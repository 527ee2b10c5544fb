"""
本文件用于提供 EDD 报表查询 API（均需管理员登录）。
主要路由分组:
- 客户: 月度新客户、同比、生命周期价值与分布、RFM 分群、健康度、流失风险、激活漏斗
- 收入: 月度收入、退款金额、收入构成与集中度、运行率、现金流与预测、季节性、LTV/CAC
- 产品: 畅销产品、增长趋势、表现矩阵、捆绑包、生命周期、需求预测
- 订阅: MRR 趋势与本月构成、续费率、即将到期续费、退款率
- 授权: 激活数最多的授权

统一返回 `{"success": true, "data": ...}`；执行失败由应用级异常处理转换为 500。
"""

from fastapi import APIRouter, Depends, Query

from app.api.deps import DateRange, get_date_range, get_report_service, verify_admin_access
from app.services.report_service import ReportService

router = APIRouter(tags=["reports"], dependencies=[Depends(verify_admin_access)])


def _ok(data):
    return {"success": True, "data": data}


# =========================
# 客户
# =========================


@router.get("/customers/by-month")
async def get_customers_by_month(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_new_customers_by_month(dates.start_date, dates.end_date))


@router.get("/customers/yoy-change")
async def get_customers_yoy_change(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_new_customers_yoy_change())


@router.get("/customers/lifetime-value")
async def get_customer_lifetime_value(
    dates: DateRange = Depends(get_date_range),
    limit: int = Query(100, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_customer_lifetime_values(dates.start_date, dates.end_date, limit))


@router.get("/customers/clv-cohorts")
async def get_clv_cohorts(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_clv_by_cohort(dates.start_date, dates.end_date))


@router.get("/customers/clv-distribution")
async def get_clv_distribution(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_clv_distribution())


@router.get("/customers/rfm")
async def get_rfm_segments(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_rfm_segments())


@router.get("/customers/segments")
async def get_segment_performance(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_segment_performance())


@router.get("/customers/health-scores")
async def get_customer_health_scores(
    limit: int = Query(100, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_customer_health_scores(limit))


@router.get("/customers/at-risk")
async def get_at_risk_customers(
    limit: int = Query(50, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_at_risk_customers(limit))


@router.get("/customers/churn-scores")
async def get_churn_scores(
    limit: int = Query(100, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_churn_prediction_scores(limit))


@router.get("/customers/activation-funnel")
async def get_activation_funnel(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_customer_activation_funnel(dates.start_date, dates.end_date))


# =========================
# 收入
# =========================


@router.get("/revenue/by-month")
async def get_revenue_by_month(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_revenue_by_month(dates.start_date, dates.end_date))


@router.get("/revenue/refunded")
async def get_refunded_revenue(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_refunded_revenue_by_month(dates.start_date, dates.end_date))


@router.get("/revenue/run-rate")
async def get_revenue_run_rate(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_revenue_run_rate())


@router.get("/revenue/forecast")
async def get_revenue_forecast(
    months: int = Query(6, ge=0, description="预测月数，超出 1-6 时按边界取值"),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_revenue_forecast(months))


@router.get("/revenue/seasonal")
async def get_seasonal_patterns(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_seasonal_patterns())


@router.get("/revenue/breakdown")
async def get_revenue_breakdown(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_revenue_breakdown(dates.start_date, dates.end_date))


@router.get("/revenue/concentration")
async def get_revenue_concentration(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_revenue_concentration())


@router.get("/revenue/cash-flow")
async def get_cash_flow_projection(
    days: int = Query(90, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_cash_flow_projection(days))


@router.get("/revenue/ltv-cac")
async def get_ltv_cac_ratio(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_ltv_cac_ratio())


# =========================
# 订阅与续费
# =========================


@router.get("/mrr/by-month")
async def get_mrr_by_month(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_mrr_by_month(dates.start_date, dates.end_date))


@router.get("/mrr/current")
async def get_current_mrr(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_current_mrr_breakdown())


@router.get("/renewals/rates")
async def get_renewal_rates(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_renewal_rates_by_month(dates.start_date, dates.end_date))


@router.get("/renewals/upcoming")
async def get_upcoming_renewals(
    days: int = Query(30, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_upcoming_renewals(days))


@router.get("/refunds/rates")
async def get_refund_rates(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_refund_rates_by_month(dates.start_date, dates.end_date))


# =========================
# 软件授权
# =========================


@router.get("/licenses/top")
async def get_top_licenses(
    limit: int = Query(20, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_top_licenses(limit))


# =========================
# 产品
# =========================


@router.get("/products/top")
async def get_top_products(
    dates: DateRange = Depends(get_date_range),
    limit: int = Query(20, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_top_products(dates.start_date, dates.end_date, limit))


@router.get("/products/growth-trends")
async def get_product_growth_trends(
    dates: DateRange = Depends(get_date_range),
    limit: int = Query(10, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_product_growth_trends(dates.start_date, dates.end_date, limit))


@router.get("/products/performance-matrix")
async def get_product_performance_matrix(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_product_performance_matrix(dates.start_date, dates.end_date))


@router.get("/products/bundles")
async def get_bundle_performance(
    dates: DateRange = Depends(get_date_range),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_bundle_performance(dates.start_date, dates.end_date))


@router.get("/products/lifecycle")
async def get_product_lifecycle(service: ReportService = Depends(get_report_service)):
    return _ok(await service.get_product_lifecycle_stages())


@router.get("/products/demand-forecast")
async def get_demand_forecast(
    days: int = Query(30, ge=0),
    limit: int = Query(10, ge=0),
    service: ReportService = Depends(get_report_service),
):
    return _ok(await service.get_demand_forecast(days, limit))
