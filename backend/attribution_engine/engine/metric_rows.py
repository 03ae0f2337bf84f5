"""
Metric Rows
===========

WHAT:
    The flat MetricRow shape shared by every view, plus the full outer join
    that reconciles attribution rows with ad-spend rows.

WHY:
    Attribution and spend come from two disjoint feeds. A channel can have
    spend with no conversions yet, or conversions whose spend row has not
    synced. Joining on the identifying key and defaulting the missing side
    to 0 keeps both visible.

KEYS:
    channel level -> (channel,)
    ad level      -> (channel, platform_campaign_id, platform_ad_set_id, platform_ad_id)
    Timeseries rows prefix the key with the bucket (time_period).

REFERENCES:
    - services/row_source.py (produces rows from the analytical store)
    - engine/hierarchy.py, engine/channel_aggregator.py (consume rows)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, List, Optional


# Additive metrics; distinct_orders_touched is handled separately
ATTRIBUTION_FIELDS = (
    "attributed_orders",
    "attributed_revenue",
    "attributed_cogs",
    "attributed_payment_fees",
    "attributed_tax",
    "first_time_customer_orders",
    "first_time_customer_revenue",
)

SPEND_FIELDS = ("ad_spend", "impressions", "clicks", "conversions")

ADDITIVE_FIELDS = ATTRIBUTION_FIELDS + SPEND_FIELDS

ID_FIELDS = ("campaign_id", "ad_set_id", "ad_id")

PLATFORM_ID_FIELDS = ("platform_campaign_id", "platform_ad_set_id", "platform_ad_id")


@dataclass
class MetricRow:
    """One row of metrics for a channel, campaign, ad or time bucket."""

    channel: str
    campaign: Optional[str] = None
    time_period: Optional[str] = None
    campaign_id: Optional[int] = None
    ad_set_id: Optional[int] = None
    ad_id: Optional[int] = None
    platform_campaign_id: Optional[str] = None
    platform_ad_set_id: Optional[str] = None
    platform_ad_id: Optional[str] = None
    attributed_orders: float = 0.0
    attributed_revenue: float = 0.0
    distinct_orders_touched: int = 0
    attributed_cogs: float = 0.0
    attributed_payment_fees: float = 0.0
    attributed_tax: float = 0.0
    ad_spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    first_time_customer_orders: float = 0.0
    first_time_customer_revenue: float = 0.0

    def add_metrics(self, other: "MetricRow") -> None:
        """Sum additive metrics from `other`; distinct orders roll up by max."""
        for name in ADDITIVE_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.distinct_orders_touched = max(self.distinct_orders_touched, other.distinct_orders_touched)

    def metrics(self) -> Dict[str, float]:
        values = {name: getattr(self, name) for name in ADDITIVE_FIELDS}
        values["distinct_orders_touched"] = self.distinct_orders_touched
        return values


def channel_key(row: MetricRow) -> Hashable:
    return (row.time_period, row.channel)


def ad_key(row: MetricRow) -> Hashable:
    return (
        row.time_period,
        row.channel,
        row.platform_campaign_id,
        row.platform_ad_set_id,
        row.platform_ad_id,
    )


def campaign_key(row: MetricRow) -> Hashable:
    return (row.time_period, row.channel, row.campaign)


def _coalesce(*values):
    for value in values:
        if value is not None:
            return value
    return None


def full_outer_join(
    attribution_rows: Iterable[MetricRow],
    spend_rows: Iterable[MetricRow],
    key: Callable[[MetricRow], Hashable] = channel_key,
) -> List[MetricRow]:
    """
    Join attribution rows with spend rows on `key`.

    Rows present on only one side keep 0 for the other side's metrics.
    Internal ids and platform ids are coalesced from whichever side has them.
    Output order: attribution rows in input order, then spend-only rows.
    """
    joined: Dict[Hashable, MetricRow] = {}
    for row in attribution_rows:
        existing = joined.get(key(row))
        if existing is None:
            joined[key(row)] = _copy_attribution(row)
        else:
            existing.add_metrics(row)

    for spend in spend_rows:
        target = joined.get(key(spend))
        if target is None:
            target = MetricRow(
                channel=spend.channel,
                campaign=spend.campaign,
                time_period=spend.time_period,
            )
            joined[key(spend)] = target
        for name in SPEND_FIELDS:
            setattr(target, name, getattr(target, name) + getattr(spend, name))
        for name in ID_FIELDS + PLATFORM_ID_FIELDS:
            setattr(target, name, _coalesce(getattr(target, name), getattr(spend, name)))

    return list(joined.values())


def _copy_attribution(row: MetricRow) -> MetricRow:
    copied = MetricRow(
        channel=row.channel,
        campaign=row.campaign,
        time_period=row.time_period,
        campaign_id=row.campaign_id,
        ad_set_id=row.ad_set_id,
        ad_id=row.ad_id,
        platform_campaign_id=row.platform_campaign_id,
        platform_ad_set_id=row.platform_ad_set_id,
        platform_ad_id=row.platform_ad_id,
        distinct_orders_touched=row.distinct_orders_touched,
    )
    for name in ATTRIBUTION_FIELDS:
        setattr(copied, name, getattr(row, name))
    return copied


def sort_by_revenue(rows: Iterable[MetricRow]) -> List[MetricRow]:
    """Order rows by attributed revenue, highest first (stable)."""
    return sorted(rows, key=lambda row: row.attributed_revenue, reverse=True)
