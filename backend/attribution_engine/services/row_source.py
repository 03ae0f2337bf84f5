"""
Metric Row Source
=================

WHAT:
    Turns the analytical store's two feeds (attribution and ad spend) into
    normalized MetricRows for a QuerySpec, in either data mode, optionally
    split per time bucket.

WHY:
    Views only ever see MetricRows. Whether the credit came from precomputed
    window tables or from weighting raw events here is invisible to them.

DATA MODES:
    window: rows already carry attribution_weight and attributed amounts;
            they are summed per key.
    event:  raw touchpoints are weighted by the attribution model across
            each order's full journey first, then narrowed to the requested
            channel / hierarchy / ad rows, then summed per key with every
            order amount multiplied by the weight.

KEYS (see engine/metric_rows.py):
    channel  -> channel
    campaign -> channel, campaign
    ad       -> channel, platform campaign / ad set / ad ids
    Bucketed specs add the hourly or daily time_period.

ATTRIBUTED ORDERS:
    attributed_orders() lists the distinct orders behind a slice (channel,
    campaign or hierarchy pks), using the same model and data mode.

REFERENCES:
    - services/query_plan.py
    - engine/attribution_models.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Set

from attribution_engine.engine.attribution_models import (
    DataMode,
    TouchpointEvent,
    WeightedTouchpoint,
    apply_attribution_model,
)
from attribution_engine.engine.metric_rows import (
    MetricRow,
    ad_key,
    campaign_key,
    channel_key,
    full_outer_join,
)
from attribution_engine.engine.time_buckets import bucket_start, format_bucket
from attribution_engine.services.query_plan import QueryLevel, QuerySpec, SqlQueryPlanBuilder

logger = logging.getLogger(__name__)


LEVEL_KEYS: Dict[QueryLevel, Callable[[MetricRow], Hashable]] = {
    QueryLevel.channel: channel_key,
    QueryLevel.campaign: campaign_key,
    QueryLevel.ad: ad_key,
}


@dataclass(frozen=True)
class AttributedOrder:
    """An order credited (with a positive weight) to the requested slice."""

    order_id: str
    order_number: Optional[str]
    order_timestamp: Optional[datetime]
    is_first_customer_order: bool

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "order_timestamp": (
                self.order_timestamp.strftime("%Y-%m-%d %H:%M:%S") if self.order_timestamp else None
            ),
            "is_first_customer_order": self.is_first_customer_order,
        }


@dataclass(frozen=True)
class Contribution:
    """One weighted slice of one order, before aggregation."""

    order_id: str
    timestamp: Any
    channel: str
    campaign: Optional[str]
    platform_campaign_id: Optional[str]
    platform_ad_set_id: Optional[str]
    platform_ad_id: Optional[str]
    campaign_id: Optional[int]
    ad_set_id: Optional[int]
    ad_id: Optional[int]
    weight: float
    revenue: float
    cogs: float
    payment_fees: float
    tax: float
    is_first_customer_order: bool


def _float(value) -> float:
    return float(value) if value is not None else 0.0


def contribution_from_window_row(row: Mapping[str, Any]) -> Contribution:
    return Contribution(
        order_id=row["order_id"],
        timestamp=row["order_timestamp"],
        channel=row["channel"],
        campaign=row["campaign"],
        platform_campaign_id=row["platform_ad_campaign_id"],
        platform_ad_set_id=row["platform_ad_set_id"],
        platform_ad_id=row["platform_ad_id"],
        campaign_id=row["ad_campaign_pk"],
        ad_set_id=row["ad_set_pk"],
        ad_id=row["ad_pk"],
        weight=_float(row["attribution_weight"]),
        revenue=_float(row["attributed_revenue"]),
        cogs=_float(row["attributed_cogs"]),
        payment_fees=_float(row["attributed_payment_fees"]),
        tax=_float(row["attributed_tax"]),
        is_first_customer_order=bool(row["is_first_customer_order"]),
    )


def touchpoint_from_event_row(row: Mapping[str, Any]) -> TouchpointEvent:
    return TouchpointEvent(
        order_id=row["order_id"],
        channel=row["channel"],
        event_timestamp=row["event_timestamp"],
        is_paid_channel=bool(row["is_paid_channel"]),
        is_first_event_overall=bool(row["is_first_event_overall"]),
        is_last_event_overall=bool(row["is_last_event_overall"]),
        is_last_paid_event_overall=bool(row["is_last_paid_event_overall"]),
        has_any_paid_events=bool(row["has_any_paid_events"]),
        campaign=row["campaign"],
        platform_campaign_id=row["platform_ad_campaign_id"],
        platform_ad_set_id=row["platform_ad_set_id"],
        platform_ad_id=row["platform_ad_id"],
        campaign_id=row["ad_campaign_pk"],
        ad_set_id=row["ad_set_pk"],
        ad_id=row["ad_pk"],
        total_price=_float(row["total_price"]),
        total_cogs=_float(row["total_cogs"]),
        payment_fees=_float(row["payment_fees"]),
        total_tax=_float(row["total_tax"]),
        is_first_customer_order=bool(row["is_first_customer_order"]),
    )


def contribution_from_touchpoint(weighted: WeightedTouchpoint) -> Contribution:
    event, weight = weighted.event, weighted.weight
    return Contribution(
        order_id=event.order_id,
        timestamp=event.event_timestamp,
        channel=event.channel,
        campaign=event.campaign,
        platform_campaign_id=event.platform_campaign_id,
        platform_ad_set_id=event.platform_ad_set_id,
        platform_ad_id=event.platform_ad_id,
        campaign_id=event.campaign_id,
        ad_set_id=event.ad_set_id,
        ad_id=event.ad_id,
        weight=weight,
        revenue=event.total_price * weight,
        cogs=event.total_cogs * weight,
        payment_fees=event.payment_fees * weight,
        tax=event.total_tax * weight,
        is_first_customer_order=event.is_first_customer_order,
    )


def narrow_to_spec(contribution: Contribution, spec: QuerySpec) -> bool:
    """Post-weighting filter for event mode (mirrors the SQL pushdown)."""
    if spec.channel and contribution.channel != spec.channel:
        return False
    if spec.campaign and contribution.campaign != spec.campaign:
        return False
    if spec.ad_rows_only and contribution.platform_ad_id is None:
        return False
    if spec.hierarchy is not None and not spec.hierarchy.matches(
        contribution.campaign_id, contribution.ad_set_id, contribution.ad_id
    ):
        return False
    return True


def _time_period(spec: QuerySpec, timestamp) -> Optional[str]:
    if not spec.bucketed or timestamp is None:
        return None
    granularity = spec.date_range.granularity
    return format_bucket(bucket_start(timestamp, granularity), granularity)


def _keyed_row(spec: QuerySpec, source) -> MetricRow:
    """Empty MetricRow carrying only the identifying fields for `spec.level`."""
    row = MetricRow(channel=source.channel, time_period=_time_period(spec, source.timestamp))
    if spec.level == QueryLevel.campaign:
        row.campaign = source.campaign
    elif spec.level == QueryLevel.ad:
        row.platform_campaign_id = source.platform_campaign_id
        row.platform_ad_set_id = source.platform_ad_set_id
        row.platform_ad_id = source.platform_ad_id
        row.campaign_id = source.campaign_id
        row.ad_set_id = source.ad_set_id
        row.ad_id = source.ad_id
    return row


def aggregate_contributions(
    contributions: Iterable[Contribution], spec: QuerySpec
) -> List[MetricRow]:
    """Sum contributions per level key; distinct orders counted per key."""
    key = LEVEL_KEYS[spec.level]
    rows: Dict[Hashable, MetricRow] = {}
    orders: Dict[Hashable, Set[str]] = {}

    for item in contributions:
        candidate = _keyed_row(spec, item)
        row_key = key(candidate)
        row = rows.get(row_key)
        if row is None:
            row = rows[row_key] = candidate
            orders[row_key] = set()
        elif spec.level == QueryLevel.ad:
            # Internal pks may be missing on some rows of the same ad
            row.campaign_id = row.campaign_id if row.campaign_id is not None else item.campaign_id
            row.ad_set_id = row.ad_set_id if row.ad_set_id is not None else item.ad_set_id
            row.ad_id = row.ad_id if row.ad_id is not None else item.ad_id

        row.attributed_orders += item.weight
        row.attributed_revenue += item.revenue
        row.attributed_cogs += item.cogs
        row.attributed_payment_fees += item.payment_fees
        row.attributed_tax += item.tax
        if item.is_first_customer_order:
            row.first_time_customer_orders += item.weight
            row.first_time_customer_revenue += item.revenue
        orders[row_key].add(item.order_id)

    for row_key, row in rows.items():
        row.distinct_orders_touched = len(orders[row_key])
    return list(rows.values())


@dataclass(frozen=True)
class _SpendSource:
    channel: str
    campaign: Optional[str]
    timestamp: Any
    platform_campaign_id: Optional[str]
    platform_ad_set_id: Optional[str]
    platform_ad_id: Optional[str]
    campaign_id: Optional[int]
    ad_set_id: Optional[int]
    ad_id: Optional[int]


def aggregate_spend(records: Iterable[Mapping[str, Any]], spec: QuerySpec) -> List[MetricRow]:
    key = LEVEL_KEYS[spec.level]
    rows: Dict[Hashable, MetricRow] = {}
    for record in records:
        source = _SpendSource(
            channel=record["channel"],
            campaign=None,
            timestamp=record["date_time"],
            platform_campaign_id=record["platform_ad_campaign_id"],
            platform_ad_set_id=record["platform_ad_set_id"],
            platform_ad_id=record["platform_ad_id"],
            campaign_id=record["ad_campaign_pk"],
            ad_set_id=record["ad_set_pk"],
            ad_id=record["ad_pk"],
        )
        candidate = _keyed_row(spec, source)
        row = rows.setdefault(key(candidate), candidate)
        row.ad_spend += _float(record["spend"])
        row.impressions += _float(record["impressions"])
        row.clicks += _float(record["clicks"])
        row.conversions += _float(record["conversions"])
    return list(rows.values())


class MetricRowSource:
    """
    Fetches and normalizes attribution and ad spend rows for a QuerySpec.

    The two fetches are independent reads; callers may run them on
    separate threads (the store opens a session per call).
    """

    def __init__(self, store, plan_builder: Optional[SqlQueryPlanBuilder] = None):
        self.store = store
        self.plan_builder = plan_builder or SqlQueryPlanBuilder()

    def attribution_rows(self, spec: QuerySpec) -> List[MetricRow]:
        if spec.mode == DataMode.window:
            records = self.store.fetch_all(
                self.plan_builder.window_attribution(spec), "window_attribution"
            )
            contributions = [contribution_from_window_row(record) for record in records]
        else:
            records = self.store.fetch_all(
                self.plan_builder.event_touchpoints(spec), "event_touchpoints"
            )
            weighted = apply_attribution_model(
                (touchpoint_from_event_row(record) for record in records), spec.model
            )
            contributions = [
                contribution
                for contribution in (contribution_from_touchpoint(w) for w in weighted)
                if narrow_to_spec(contribution, spec)
            ]

        rows = aggregate_contributions(contributions, spec)
        logger.debug(
            "[ANALYTICS] %s attribution: %d source rows -> %d metric rows",
            spec.mode.value, len(records), len(rows),
        )
        return rows

    def spend_rows(self, spec: QuerySpec) -> List[MetricRow]:
        records = self.store.fetch_all(self.plan_builder.ad_spend(spec), "ad_spend")
        return aggregate_spend(records, spec)

    def join(self, spec: QuerySpec, attribution: List[MetricRow], spend: List[MetricRow]) -> List[MetricRow]:
        return full_outer_join(attribution, spend, key=LEVEL_KEYS[spec.level])

    def attributed_orders(self, spec: QuerySpec, first_time_only: bool = False) -> List[AttributedOrder]:
        """Distinct orders credited to the QuerySpec's slice, newest first.

        Window mode reads the model's table. Event mode weights each order's
        full journey first and keeps orders with a positively weighted
        touchpoint inside the slice.
        """
        if spec.mode == DataMode.window:
            records = self.store.fetch_all(
                self.plan_builder.window_orders(spec, first_time_only), "window_orders"
            )
            orders = [
                AttributedOrder(
                    order_id=record["order_id"],
                    order_number=record["order_number"],
                    order_timestamp=record["order_timestamp"],
                    is_first_customer_order=bool(record["is_first_customer_order"]),
                )
                for record in records
            ]
            return _dedupe_orders(orders)

        records = self.store.fetch_all(self.plan_builder.event_touchpoints(spec), "event_touchpoints")
        order_info: Dict[str, Mapping[str, Any]] = {}
        for record in records:
            order_info.setdefault(record["order_id"], record)

        weighted = apply_attribution_model(
            (touchpoint_from_event_row(record) for record in records), spec.model
        )
        orders = []
        for item in weighted:
            contribution = contribution_from_touchpoint(item)
            if not narrow_to_spec(contribution, spec):
                continue
            if first_time_only and not contribution.is_first_customer_order:
                continue
            info = order_info[contribution.order_id]
            orders.append(
                AttributedOrder(
                    order_id=contribution.order_id,
                    order_number=info["order_number"],
                    order_timestamp=info["order_timestamp"],
                    is_first_customer_order=contribution.is_first_customer_order,
                )
            )
        orders = _dedupe_orders(orders)
        orders.sort(key=lambda order: order.order_id)
        orders.sort(key=lambda order: order.order_timestamp or datetime.min, reverse=True)
        return orders


def _dedupe_orders(orders: Iterable[AttributedOrder]) -> List[AttributedOrder]:
    """One entry per order id, first occurrence wins."""
    seen: Dict[str, AttributedOrder] = {}
    for order in orders:
        seen.setdefault(order.order_id, order)
    return list(seen.values())
