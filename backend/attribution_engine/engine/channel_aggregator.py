"""
Channel / Campaign Aggregator
=============================

WHAT:
    Flat (non-hierarchical) shaping of joined MetricRows into:
      - channel performance rows (all channels, with spend and ROAS)
      - non-paid campaign rows (organic channels, no spend term)
      - timeseries points (spend, revenue and ROAS per time bucket)

WHY:
    These views never need the campaign tree, so they skip the merger and
    only apply the shared formulas with the shop's profit policy.

REFERENCES:
    - engine/formulas.py
    - services/analytics_service.py
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from attribution_engine.engine.formulas import (
    ProfitPolicy,
    avg_order_value,
    profit_margin_pct,
    revenue_per_order_touched,
    roas,
)
from attribution_engine.engine.metric_rows import MetricRow, sort_by_revenue


@dataclass
class ChannelPerformance:
    channel: str
    attributed_orders: float
    attributed_revenue: float
    distinct_orders_touched: int
    attributed_cogs: float
    attributed_payment_fees: float
    attributed_tax: float
    ad_spend: float
    roas: float
    net_profit: float
    first_time_customer_orders: float
    first_time_customer_revenue: float
    first_time_customer_roas: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NonPaidCampaignPerformance:
    channel: str
    campaign: Optional[str]
    attributed_orders: float
    attributed_revenue: float
    distinct_orders_touched: int
    attributed_cogs: float
    attributed_payment_fees: float
    attributed_tax: float
    gross_revenue: float
    net_profit: float
    profit_margin_pct: float
    avg_order_value: float
    revenue_per_order_touched: float
    first_time_customer_orders: float
    first_time_customer_revenue: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TimeseriesPoint:
    time_period: str
    total_ad_spend: float
    total_attributed_revenue: float
    roas: float

    def to_dict(self) -> dict:
        return asdict(self)


def aggregate_channels(rows: Iterable[MetricRow], policy: ProfitPolicy) -> List[ChannelPerformance]:
    """Shape joined channel rows, highest attributed revenue first."""
    result = []
    for row in sort_by_revenue(rows):
        result.append(
            ChannelPerformance(
                channel=row.channel,
                attributed_orders=row.attributed_orders,
                attributed_revenue=row.attributed_revenue,
                distinct_orders_touched=row.distinct_orders_touched,
                attributed_cogs=row.attributed_cogs,
                attributed_payment_fees=row.attributed_payment_fees,
                attributed_tax=row.attributed_tax,
                ad_spend=row.ad_spend,
                roas=roas(row.attributed_revenue, row.ad_spend),
                net_profit=policy.net_profit(
                    row.attributed_revenue,
                    row.attributed_tax,
                    row.attributed_cogs,
                    row.attributed_payment_fees,
                    row.ad_spend,
                ),
                first_time_customer_orders=row.first_time_customer_orders,
                first_time_customer_revenue=row.first_time_customer_revenue,
                first_time_customer_roas=roas(row.first_time_customer_revenue, row.ad_spend),
            )
        )
    return result


def aggregate_non_paid_campaigns(
    rows: Iterable[MetricRow], policy: ProfitPolicy
) -> List[NonPaidCampaignPerformance]:
    """Shape organic (channel, campaign) rows, highest attributed revenue first.

    Organic channels carry no ad spend, so net profit and margin leave the
    spend term out entirely.
    """
    result = []
    for row in sort_by_revenue(rows):
        net_profit = policy.net_profit(
            row.attributed_revenue,
            row.attributed_tax,
            row.attributed_cogs,
            row.attributed_payment_fees,
        )
        result.append(
            NonPaidCampaignPerformance(
                channel=row.channel,
                campaign=row.campaign,
                attributed_orders=row.attributed_orders,
                attributed_revenue=row.attributed_revenue,
                distinct_orders_touched=row.distinct_orders_touched,
                attributed_cogs=row.attributed_cogs,
                attributed_payment_fees=row.attributed_payment_fees,
                attributed_tax=row.attributed_tax,
                gross_revenue=policy.gross_revenue(row.attributed_revenue, row.attributed_tax),
                net_profit=net_profit,
                profit_margin_pct=profit_margin_pct(net_profit, row.attributed_revenue),
                avg_order_value=avg_order_value(row.attributed_revenue, row.attributed_orders),
                revenue_per_order_touched=revenue_per_order_touched(
                    row.attributed_revenue, row.distinct_orders_touched
                ),
                first_time_customer_orders=row.first_time_customer_orders,
                first_time_customer_revenue=row.first_time_customer_revenue,
            )
        )
    return result


def aggregate_timeseries(rows: Iterable[MetricRow]) -> List[TimeseriesPoint]:
    """Sum rows per time bucket and derive ROAS from the bucket totals."""
    buckets: Dict[str, List[float]] = {}
    for row in rows:
        totals = buckets.setdefault(row.time_period, [0.0, 0.0])
        totals[0] += row.ad_spend
        totals[1] += row.attributed_revenue

    return [
        TimeseriesPoint(
            time_period=period,
            total_ad_spend=spend,
            total_attributed_revenue=revenue,
            roas=roas(revenue, spend),
        )
        for period, (spend, revenue) in sorted(buckets.items())
    ]
