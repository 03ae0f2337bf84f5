"""
Analytical Store
================

WHAT:
    Core table definitions for the analytical facts and the store that
    executes compiled query plans against them.

WHY:
    The engine never writes these tables; an upstream modelling pipeline
    does. Declaring them as Core tables (not ORM models) keeps them out of
    the metadata registry while still letting the plan builder compile
    dialect-neutral SELECTs.

FAILURE POLICY:
    Any driver error or timeout is fatal for the request. Partial attribution
    data would silently understate performance, so there is no retry and no
    partial result; the error is logged, reported to Sentry and re-raised as
    UpstreamQueryFailed with the driver error chained.

TABLES:
    int_order_attribution_<model>        Per-order attribution (window mode)
    int_event_metadata                   Raw touchpoints (event mode)
    int_ad_spend                         Spend / impressions / clicks
    int_customer_first_purchase          Cohort assignment
    int_order_enriched                   Orders with net revenue and COGS
    int_customer_first_order_line_items  Product/variant cohort filter
    int_order_metrics                    Shop-level order totals (dashboard)
    int_refunds                          Refunds by date (dashboard)

REFERENCES:
    - services/query_plan.py (builds the statements)
    - services/row_source.py (turns results into MetricRows)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import Select

from attribution_engine.database import session_scope
from attribution_engine.engine.attribution_models import ATTRIBUTION_TABLES
from attribution_engine.errors import UpstreamQueryFailed
from attribution_engine.telemetry import capture_exception

logger = logging.getLogger(__name__)


analytics_metadata = MetaData()


def _ad_key_columns() -> List[Column]:
    return [
        Column("channel", String, nullable=False),
        Column("campaign", String, nullable=True),
        Column("platform_ad_campaign_id", String, nullable=True),
        Column("platform_ad_set_id", String, nullable=True),
        Column("platform_ad_id", String, nullable=True),
        Column("ad_campaign_pk", Integer, nullable=True),
        Column("ad_set_pk", Integer, nullable=True),
        Column("ad_pk", Integer, nullable=True),
    ]


def _attribution_table(name: str) -> Table:
    return Table(
        name,
        analytics_metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("shopify_shop", String, nullable=False, index=True),
        Column("order_id", String, nullable=False),
        Column("order_number", String, nullable=True),
        Column("order_timestamp", DateTime, nullable=False),
        Column("attribution_window", String, nullable=False),
        *_ad_key_columns(),
        Column("attribution_weight", Float, nullable=False, default=0.0),
        Column("attributed_revenue", Float, nullable=False, default=0.0),
        Column("attributed_cogs", Float, nullable=False, default=0.0),
        Column("attributed_payment_fees", Float, nullable=False, default=0.0),
        Column("attributed_tax", Float, nullable=False, default=0.0),
        Column("is_first_customer_order", Boolean, nullable=False, default=False),
    )


attribution_tables: Dict[str, Table] = {
    name: _attribution_table(name) for name in ATTRIBUTION_TABLES.values()
}

event_metadata = Table(
    "int_event_metadata",
    analytics_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("shopify_shop", String, nullable=False, index=True),
    Column("order_id", String, nullable=False),
    Column("order_number", String, nullable=True),
    Column("order_timestamp", DateTime, nullable=True),
    Column("event_timestamp", DateTime, nullable=False),
    *_ad_key_columns(),
    Column("is_paid_channel", Boolean, nullable=False, default=False),
    Column("is_first_event_overall", Boolean, nullable=False, default=False),
    Column("is_last_event_overall", Boolean, nullable=False, default=False),
    Column("is_last_paid_event_overall", Boolean, nullable=False, default=False),
    Column("has_any_paid_events", Boolean, nullable=False, default=False),
    Column("total_price", Float, nullable=False, default=0.0),
    Column("total_cogs", Float, nullable=False, default=0.0),
    Column("payment_fees", Float, nullable=False, default=0.0),
    Column("total_tax", Float, nullable=False, default=0.0),
    Column("is_first_customer_order", Boolean, nullable=False, default=False),
)

ad_spend = Table(
    "int_ad_spend",
    analytics_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("shop_name", String, nullable=False, index=True),
    Column("date_time", DateTime, nullable=False),
    Column("channel", String, nullable=False),
    Column("platform_ad_campaign_id", String, nullable=True),
    Column("platform_ad_set_id", String, nullable=True),
    Column("platform_ad_id", String, nullable=True),
    Column("ad_campaign_pk", Integer, nullable=True),
    Column("ad_set_pk", Integer, nullable=True),
    Column("ad_pk", Integer, nullable=True),
    Column("spend", Float, nullable=False, default=0.0),
    Column("impressions", Float, nullable=False, default=0.0),
    Column("clicks", Float, nullable=False, default=0.0),
    Column("conversions", Float, nullable=False, default=0.0),
)

customer_first_purchase = Table(
    "int_customer_first_purchase",
    analytics_metadata,
    Column("customer_id", String, primary_key=True),
    Column("shopify_shop", String, primary_key=True),
    Column("customer_email", String, nullable=False),
    Column("first_order_datetime", DateTime, nullable=False),
)

order_enriched = Table(
    "int_order_enriched",
    analytics_metadata,
    Column("order_id", String, primary_key=True),
    Column("shopify_shop", String, nullable=False, index=True),
    Column("customer_email", String, nullable=False),
    Column("order_timestamp", DateTime, nullable=False),
    Column("total_price", Float, nullable=False, default=0.0),
    Column("total_tax", Float, nullable=False, default=0.0),
    Column("total_refund_amount", Float, nullable=False, default=0.0),
    Column("net_revenue", Float, nullable=False, default=0.0),
    Column("total_cogs", Float, nullable=False, default=0.0),
)

customer_first_order_line_items = Table(
    "int_customer_first_order_line_items",
    analytics_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("customer_id", String, nullable=False, index=True),
    Column("shopify_product_id", Integer, nullable=True),
    Column("variant_id", Integer, nullable=True),
)

order_metrics = Table(
    "int_order_metrics",
    analytics_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("shopify_name", String, nullable=False, index=True),
    Column("date", DateTime, nullable=False),
    Column("orders", Integer, nullable=False, default=0),
    Column("revenue", Float, nullable=False, default=0.0),
    Column("cogs", Float, nullable=False, default=0.0),
    Column("vat", Float, nullable=False, default=0.0),
    Column("payment_fees", Float, nullable=False, default=0.0),
)

refunds = Table(
    "int_refunds",
    analytics_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("shopify_name", String, nullable=False, index=True),
    Column("date", DateTime, nullable=False),
    Column("refunds", Float, nullable=False, default=0.0),
)


class SqlAnalyticalStore:
    """
    Executes compiled statements against the analytical database.

    Every call opens its own session from the factory, so one store may be
    shared by worker threads fetching independent row sets in parallel.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def fetch_all(self, statement: Select, operation: str) -> List[Mapping[str, Any]]:
        """Run `statement` and return its rows as mappings.

        Raises:
            UpstreamQueryFailed: On any SQLAlchemy error (driver error chained)
        """
        started = time.perf_counter()
        try:
            with session_scope(self.session_factory) as db:
                rows = db.execute(statement).mappings().all()
        except SQLAlchemyError as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[STORE] %s failed after %.1fms: %s", operation, elapsed_ms, e
            )
            capture_exception(e, extra={"operation": operation})
            raise UpstreamQueryFailed(operation, type(e).__name__) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug("[STORE] %s returned %d rows in %.1fms", operation, len(rows), elapsed_ms)
        return list(rows)
