"""
Query Plan Builder
==================

WHAT:
    QuerySpec describes WHAT to fetch (shop, date range, attribution model,
    data mode, window, level, channel / hierarchy filter). The plan builder
    compiles a QuerySpec into SQLAlchemy Core SELECT statements.

WHY:
    Request parameters never get concatenated into SQL. A QuerySpec is a plain
    frozen value that can be logged and tested; the builder is swappable per
    backing store (any object with the same methods works).

PUSHDOWN RULES:
    window mode -> shop, order_timestamp range, attribution_window, channel,
                   hierarchy pks and "ad rows only" are all filtered in SQL
    event mode  -> ONLY shop and event_timestamp range are filtered in SQL.
                   The model weights an order across all of its touchpoints,
                   so channel / hierarchy narrowing happens after weighting
                   (see services/row_source.py)
    ad spend    -> shop, date_time range, channel, hierarchy pks, ad rows only

    Timestamps use an inclusive lower bound and an exclusive upper bound one
    day after the requested end date. Cohort and dashboard statements take
    the range in the shop's calendar and bound it in UTC (DateRange.utc_bounds).

REFERENCES:
    - services/analytical_store.py (tables + execution)
    - engine/time_buckets.py (DateRange bounds)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from enum import Enum
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.sql import Select

from attribution_engine.engine.attribution_models import (
    AttributionModel,
    DataMode,
    get_attribution_table_name,
)
from attribution_engine.engine.time_buckets import DateRange
from attribution_engine.services import analytical_store as tables


class QueryLevel(str, Enum):
    channel = "channel"
    campaign = "campaign"
    ad = "ad"


@dataclass(frozen=True)
class HierarchyFilter:
    """Optional narrowing to one campaign / ad set / ad (internal pks)."""

    campaign_pk: Optional[int] = None
    ad_set_pk: Optional[int] = None
    ad_pk: Optional[int] = None

    def matches(self, campaign_pk, ad_set_pk, ad_pk) -> bool:
        if self.campaign_pk and campaign_pk != self.campaign_pk:
            return False
        if self.ad_set_pk and ad_set_pk != self.ad_set_pk:
            return False
        if self.ad_pk and ad_pk != self.ad_pk:
            return False
        return True


@dataclass(frozen=True)
class QuerySpec:
    shop_name: str
    date_range: DateRange
    model: AttributionModel = AttributionModel.linear_paid
    mode: DataMode = DataMode.window
    window: str = "28_day"
    level: QueryLevel = QueryLevel.channel
    channel: Optional[str] = None
    # Campaign name (non ad-spend channels only)
    campaign: Optional[str] = None
    hierarchy: Optional[HierarchyFilter] = None
    bucketed: bool = False

    @property
    def ad_rows_only(self) -> bool:
        return self.level == QueryLevel.ad


class SqlQueryPlanBuilder:
    """Compiles QuerySpecs into Core SELECTs over the analytical tables."""

    def window_attribution(self, spec: QuerySpec) -> Select:
        table = tables.attribution_tables[get_attribution_table_name(spec.model)]
        conditions = [
            table.c.shopify_shop == spec.shop_name,
            table.c.order_timestamp >= spec.date_range.lower_bound,
            table.c.order_timestamp < spec.date_range.upper_bound,
            table.c.attribution_window == spec.window,
        ]
        conditions.extend(self._narrowing(table, spec))
        return (
            select(
                table.c.order_id,
                table.c.order_timestamp,
                table.c.channel,
                table.c.campaign,
                table.c.platform_ad_campaign_id,
                table.c.platform_ad_set_id,
                table.c.platform_ad_id,
                table.c.ad_campaign_pk,
                table.c.ad_set_pk,
                table.c.ad_pk,
                table.c.attribution_weight,
                table.c.attributed_revenue,
                table.c.attributed_cogs,
                table.c.attributed_payment_fees,
                table.c.attributed_tax,
                table.c.is_first_customer_order,
            )
            .where(and_(*conditions))
            .order_by(table.c.order_timestamp, table.c.order_id)
        )

    def event_touchpoints(self, spec: QuerySpec) -> Select:
        table = tables.event_metadata
        return (
            select(table)
            .where(
                table.c.shopify_shop == spec.shop_name,
                table.c.event_timestamp >= spec.date_range.lower_bound,
                table.c.event_timestamp < spec.date_range.upper_bound,
            )
            .order_by(table.c.order_id, table.c.event_timestamp, table.c.id)
        )

    def ad_spend(self, spec: QuerySpec) -> Select:
        table = tables.ad_spend
        conditions = [
            table.c.shop_name == spec.shop_name,
            table.c.date_time >= spec.date_range.lower_bound,
            table.c.date_time < spec.date_range.upper_bound,
        ]
        conditions.extend(self._narrowing(table, spec))
        return (
            select(
                table.c.date_time,
                table.c.channel,
                table.c.platform_ad_campaign_id,
                table.c.platform_ad_set_id,
                table.c.platform_ad_id,
                table.c.ad_campaign_pk,
                table.c.ad_set_pk,
                table.c.ad_pk,
                table.c.spend,
                table.c.impressions,
                table.c.clicks,
                table.c.conversions,
            )
            .where(and_(*conditions))
            .order_by(table.c.date_time, table.c.id)
        )

    # =========================================================================
    # ATTRIBUTED ORDERS
    # =========================================================================

    def window_orders(self, spec: QuerySpec, first_time_only: bool = False) -> Select:
        """Distinct orders credited to the QuerySpec's channel, newest first."""
        table = tables.attribution_tables[get_attribution_table_name(spec.model)]
        conditions = [
            table.c.shopify_shop == spec.shop_name,
            table.c.order_timestamp >= spec.date_range.lower_bound,
            table.c.order_timestamp < spec.date_range.upper_bound,
            table.c.attribution_window == spec.window,
        ]
        conditions.extend(self._narrowing(table, spec))
        if first_time_only:
            conditions.append(table.c.is_first_customer_order.is_(True))
        return (
            select(
                table.c.order_id,
                table.c.order_number,
                table.c.order_timestamp,
                table.c.is_first_customer_order,
            )
            .where(and_(*conditions))
            .distinct()
            .order_by(table.c.order_timestamp.desc(), table.c.order_id)
        )

    # =========================================================================
    # COHORTS
    # =========================================================================

    def cohort_orders(
        self,
        shop_name: str,
        date_range: DateRange,
        tz: Optional[tzinfo] = None,
        filter_product_id: int = 0,
        filter_variant_id: int = 0,
    ) -> Select:
        """Every order of every customer first acquired within the range.

        The range is in the shop's calendar (`tz`); stored timestamps are UTC.
        """
        cfp = tables.customer_first_purchase
        orders = tables.order_enriched
        items = tables.customer_first_order_line_items
        lower, upper = date_range.utc_bounds(tz)

        conditions = [
            cfp.c.shopify_shop == shop_name,
            cfp.c.first_order_datetime >= lower,
            cfp.c.first_order_datetime < upper,
        ]
        if filter_product_id > 0:
            conditions.append(
                cfp.c.customer_id.in_(
                    select(items.c.customer_id)
                    .where(items.c.shopify_product_id == filter_product_id)
                    .distinct()
                )
            )
        if filter_variant_id > 0:
            conditions.append(
                cfp.c.customer_id.in_(
                    select(items.c.customer_id)
                    .where(items.c.variant_id == filter_variant_id)
                    .distinct()
                )
            )

        return (
            select(
                cfp.c.customer_id,
                cfp.c.first_order_datetime,
                orders.c.order_id,
                orders.c.order_timestamp,
                orders.c.total_price,
                orders.c.net_revenue,
                orders.c.total_cogs,
            )
            .select_from(self._first_purchase_join(cfp, orders))
            .where(and_(*conditions))
            .order_by(cfp.c.first_order_datetime, orders.c.order_timestamp)
        )

    def shop_ad_spend(self, shop_name: str, date_range: DateRange, tz: Optional[tzinfo] = None) -> Select:
        """Total spend rows of a shop (all channels), for cohorts and the dashboard."""
        table = tables.ad_spend
        lower, upper = date_range.utc_bounds(tz)
        return select(table.c.date_time, table.c.spend).where(
            table.c.shop_name == shop_name,
            table.c.date_time >= lower,
            table.c.date_time < upper,
        )

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    def order_metrics(self, shop_name: str, date_range: DateRange, tz: Optional[tzinfo] = None) -> Select:
        table = tables.order_metrics
        lower, upper = date_range.utc_bounds(tz)
        return (
            select(
                table.c.date,
                table.c.orders,
                table.c.revenue,
                table.c.cogs,
                table.c.vat,
                table.c.payment_fees,
            )
            .where(
                table.c.shopify_name == shop_name,
                table.c.date >= lower,
                table.c.date < upper,
            )
            .order_by(table.c.date)
        )

    def refunds(self, shop_name: str, date_range: DateRange, tz: Optional[tzinfo] = None) -> Select:
        table = tables.refunds
        lower, upper = date_range.utc_bounds(tz)
        return select(table.c.date, table.c.refunds).where(
            table.c.shopify_name == shop_name,
            table.c.date >= lower,
            table.c.date < upper,
        )

    def customer_orders(self, shop_name: str, date_range: DateRange, tz: Optional[tzinfo] = None) -> Select:
        """Orders in range joined with their customer's first purchase."""
        cfp = tables.customer_first_purchase
        orders = tables.order_enriched
        lower, upper = date_range.utc_bounds(tz)
        return (
            select(
                orders.c.customer_email,
                orders.c.order_timestamp,
                orders.c.total_price,
                cfp.c.first_order_datetime,
            )
            .select_from(self._first_purchase_join(cfp, orders))
            .where(
                orders.c.shopify_shop == shop_name,
                orders.c.order_timestamp >= lower,
                orders.c.order_timestamp < upper,
            )
        )

    @staticmethod
    def _first_purchase_join(cfp, orders):
        return cfp.join(
            orders,
            and_(
                cfp.c.customer_email == orders.c.customer_email,
                cfp.c.shopify_shop == orders.c.shopify_shop,
            ),
        )

    @staticmethod
    def _narrowing(table, spec: QuerySpec) -> list:
        conditions = []
        if spec.channel:
            conditions.append(table.c.channel == spec.channel)
        if spec.campaign:
            conditions.append(table.c.campaign == spec.campaign)
        if spec.ad_rows_only:
            conditions.append(table.c.platform_ad_id.isnot(None))
        hierarchy = spec.hierarchy
        if hierarchy is not None:
            if hierarchy.campaign_pk:
                conditions.append(table.c.ad_campaign_pk == hierarchy.campaign_pk)
            if hierarchy.ad_set_pk:
                conditions.append(table.c.ad_set_pk == hierarchy.ad_set_pk)
            if hierarchy.ad_pk:
                conditions.append(table.c.ad_pk == hierarchy.ad_pk)
        return conditions
