"""
Dashboard Service
=================

WHAT:
    Shop-level dashboard timeseries: orders, revenue, refunds, COGS, ad
    spend, VAT-aware profit, ROAS, new customers and CAC per hourly or daily
    bucket.

WHY:
    Buckets follow the shop's local calendar. An order placed at 00:30 in
    Berlin belongs to that Berlin day even though it is stored as 22:30 UTC
    on the previous one.

FLOW:
    1. Resolve the shop (VAT policy, timezone)
    2. Fetch order metrics, refunds, ad spend and customer orders in parallel,
       bounded by the shop-local days converted to UTC
    3. Convert every timestamp to local time and fold (engine/dashboard.py)

REFERENCES:
    - engine/dashboard.py
    - services/query_plan.py (order_metrics / refunds / shop_ad_spend / customer_orders)
    - routers/analytics.py (GET /analytics/dashboard)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import Optional

from attribution_engine.engine.dashboard import (
    CustomerOrderFact,
    OrderMetricsFact,
    RefundFact,
    SpendFact,
    build_dashboard,
)
from attribution_engine.engine.time_buckets import DateRange, resolve_timezone, to_local
from attribution_engine.services.analytical_store import SqlAnalyticalStore
from attribution_engine.services.analytics_service import AnalyticsResult
from attribution_engine.services.metadata_store import SqlMetadataStore
from attribution_engine.services.query_plan import SqlQueryPlanBuilder
from attribution_engine.telemetry import set_shop_context

logger = logging.getLogger(__name__)


def _float(value) -> float:
    return float(value) if value is not None else 0.0


class DashboardService:
    """Dashboard metrics for one shop per request."""

    def __init__(
        self,
        metadata_store: SqlMetadataStore,
        store: SqlAnalyticalStore,
        plan_builder: Optional[SqlQueryPlanBuilder] = None,
        max_workers: int = 3,
    ):
        self.metadata_store = metadata_store
        self.store = store
        self.plan_builder = plan_builder or SqlQueryPlanBuilder()
        self.max_workers = max(1, max_workers)

    def get_dashboard_metrics(self, account_id: str, start_date: date, end_date: date) -> AnalyticsResult:
        started = time.perf_counter()
        date_range = DateRange(start_date, end_date)
        granularity = date_range.granularity

        try:
            shop = self.metadata_store.resolve_shop(account_id)
            set_shop_context(account_id, shop.shop_name)
            tz = resolve_timezone(shop.timezone)
            logger.info(
                "[DASHBOARD] Fetching dashboard metrics: account=%s shop=%s tz=%s range=%s..%s level=%s",
                account_id, shop.shop_name, tz, start_date, end_date, granularity.value,
            )

            plan = self.plan_builder
            statements = {
                "order_metrics": plan.order_metrics(shop.shop_name, date_range, tz),
                "refunds": plan.refunds(shop.shop_name, date_range, tz),
                "dashboard_ad_spend": plan.shop_ad_spend(shop.shop_name, date_range, tz),
                "customer_orders": plan.customer_orders(shop.shop_name, date_range, tz),
            }
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    name: executor.submit(self.store.fetch_all, stmt, name)
                    for name, stmt in statements.items()
                }
                records = {name: future.result() for name, future in futures.items()}

            points = build_dashboard(
                order_metrics=[
                    OrderMetricsFact(
                        moment=to_local(record["date"], tz),
                        orders=int(record["orders"] or 0),
                        revenue=_float(record["revenue"]),
                        cogs=_float(record["cogs"]),
                        vat=_float(record["vat"]),
                        payment_fees=_float(record["payment_fees"]),
                    )
                    for record in records["order_metrics"]
                ],
                refunds=[
                    RefundFact(moment=to_local(record["date"], tz), refunds=_float(record["refunds"]))
                    for record in records["refunds"]
                ],
                spend=[
                    SpendFact(moment=to_local(record["date_time"], tz), spend=_float(record["spend"]))
                    for record in records["dashboard_ad_spend"]
                ],
                customer_orders=[
                    CustomerOrderFact(
                        customer_email=record["customer_email"],
                        order_moment=to_local(record["order_timestamp"], tz),
                        first_order_moment=to_local(record["first_order_datetime"], tz),
                        total_price=_float(record["total_price"]),
                    )
                    for record in records["customer_orders"]
                ],
                granularity=granularity,
                policy=shop.profit_policy,
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[DASHBOARD] Dashboard metrics failed after %.1fms: account=%s error=%s",
                elapsed_ms, account_id, e,
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "[DASHBOARD] Dashboard metrics completed in %.1fms: buckets=%d level=%s",
            elapsed_ms, len(points), granularity.value,
        )
        return AnalyticsResult(
            data={
                "timeseries": [point.to_dict() for point in points],
                "aggregation_level": granularity.value,
            },
            metadata={
                "shop_name": shop.shop_name,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "timezone": str(tz),
                "query_timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
