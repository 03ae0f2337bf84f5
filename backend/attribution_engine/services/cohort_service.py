"""
Cohort Analytics Service
========================

WHAT:
    Fetches first-purchase/order facts and ad spend for a shop and runs the
    cohort retention engine over them.

WHY:
    Cohort analysis is a separate pipeline from attribution: it does not
    use attribution models at all, only who bought first when, what they
    bought later, and what was spent to acquire them.

DEFAULTS:
    end_date    -> today in the shop's timezone
    max_periods -> 52 (week), 12 (month), 4 (quarter), 2 (year)

REFERENCES:
    - engine/cohorts.py (the algorithm)
    - services/query_plan.py (cohort_orders / shop_ad_spend statements)
    - routers/cohort_analytics.py
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from attribution_engine.engine.cohorts import (
    AdSpendFact,
    CohortOrder,
    build_cohorts,
    default_max_periods,
    parse_cohort_granularity,
)
from attribution_engine.engine.time_buckets import DateRange, local_today, resolve_timezone, to_local
from attribution_engine.errors import InvalidFilter
from attribution_engine.services.analytical_store import SqlAnalyticalStore
from attribution_engine.services.analytics_service import AnalyticsResult
from attribution_engine.services.metadata_store import SqlMetadataStore
from attribution_engine.services.query_plan import SqlQueryPlanBuilder
from attribution_engine.telemetry import set_shop_context

logger = logging.getLogger(__name__)


@dataclass
class CohortRequest:
    cohort_type: str
    start_date: date
    end_date: Optional[date] = None
    max_periods: Optional[int] = None
    filter_product_id: int = 0
    filter_variant_id: int = 0


def _float(value) -> float:
    return float(value) if value is not None else 0.0


class CohortAnalyticsService:
    """Cohort retention, LTV and payback for one shop per request."""

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

    def get_cohort_analysis(self, account_id: str, request: CohortRequest) -> AnalyticsResult:
        started = time.perf_counter()
        granularity = parse_cohort_granularity(request.cohort_type)
        if request.max_periods is not None and request.max_periods < 0:
            raise InvalidFilter("max_periods must not be negative")
        max_periods = request.max_periods or default_max_periods(granularity)
        product_id = request.filter_product_id or 0
        variant_id = request.filter_variant_id or 0
        end_date = request.end_date

        try:
            shop = self.metadata_store.resolve_shop(account_id)
            set_shop_context(account_id, shop.shop_name)
            tz = resolve_timezone(shop.timezone)
            end_date = end_date or local_today(tz)
            date_range = DateRange(request.start_date, end_date)

            logger.info(
                "[COHORT] Starting cohort analysis: account=%s shop=%s tz=%s type=%s range=%s..%s "
                "max_periods=%d product=%s variant=%s",
                account_id, shop.shop_name, tz, granularity.value, request.start_date, end_date,
                max_periods, product_id, variant_id,
            )

            orders_stmt = self.plan_builder.cohort_orders(
                shop.shop_name, date_range, tz, product_id, variant_id
            )
            spend_stmt = self.plan_builder.shop_ad_spend(shop.shop_name, date_range, tz)
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                orders_future = executor.submit(self.store.fetch_all, orders_stmt, "cohort_orders")
                spend_future = executor.submit(self.store.fetch_all, spend_stmt, "cohort_ad_spend")
                order_records = orders_future.result()
                spend_records = spend_future.result()

            # Cohorts and periods follow the shop's calendar, not UTC
            orders = [
                CohortOrder(
                    customer_id=record["customer_id"],
                    first_order_date=to_local(record["first_order_datetime"], tz),
                    order_id=record["order_id"],
                    order_date=to_local(record["order_timestamp"], tz),
                    revenue=_float(record["total_price"]),
                    net_revenue=_float(record["net_revenue"]),
                    cogs=_float(record["total_cogs"]),
                )
                for record in order_records
            ]
            spend = [
                AdSpendFact(spend_date=to_local(record["date_time"], tz), spend=_float(record["spend"]))
                for record in spend_records
            ]
            cohorts = build_cohorts(orders, spend, granularity, max_periods)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[COHORT] Cohort analysis failed after %.1fms: account=%s error=%s",
                elapsed_ms, account_id, e,
            )
            raise

        metadata: Dict[str, Any] = {
            "shop_name": shop.shop_name,
            "cohort_type": granularity.value,
            "start_date": request.start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "max_periods": max_periods,
            "timezone": str(tz),
            "query_timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if product_id > 0:
            metadata["filter_product_id"] = product_id
        if variant_id > 0:
            metadata["filter_variant_id"] = variant_id
        currency = shop.currency or self.metadata_store.shop_currency(shop.shop_name)
        if currency:
            metadata["currency"] = currency

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "[COHORT] Cohort analysis completed in %.1fms: orders=%d cohorts=%d",
            elapsed_ms, len(orders), len(cohorts),
        )
        return AnalyticsResult(
            data={"cohorts": [cohort.to_dict() for cohort in cohorts]},
            metadata=metadata,
        )
