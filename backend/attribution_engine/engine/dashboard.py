"""
Dashboard Metrics
=================

WHAT:
    Shop-level totals per hourly or daily bucket: orders, revenue, refunds,
    COGS, ad spend, profit, ROAS, new customers and CAC.

WHY:
    The dashboard is the shop's headline view. It does not attribute
    anything; it lines up what was sold, refunded and spent per bucket so
    profit and blended ROAS can be read directly.

FORMULAS:
    profit            = revenue - VAT (unless ignored) - ad spend - COGS
                        - payment fees - refunds
    roas              = revenue / ad spend
    new_customer_roas = new customer revenue / ad spend
    cac               = ad spend / new customer count
    Every ratio is 0 when its denominator is 0.

NEW CUSTOMERS:
    An order counts towards the new-customer figures when it falls into the
    same bucket as its customer's first purchase. Customers are counted
    once per bucket.

Every fact timestamp must already be in the shop's local time; buckets
are formed from those wall-clock values.

REFERENCES:
    - engine/time_buckets.py (granularity, bucket keys)
    - engine/formulas.py (ProfitPolicy, safe_divide)
    - services/dashboard_service.py
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Set

from attribution_engine.engine.formulas import ProfitPolicy, roas, safe_divide
from attribution_engine.engine.time_buckets import Granularity, bucket_start, format_bucket


@dataclass(frozen=True)
class OrderMetricsFact:
    moment: datetime
    orders: int = 0
    revenue: float = 0.0
    cogs: float = 0.0
    vat: float = 0.0
    payment_fees: float = 0.0


@dataclass(frozen=True)
class RefundFact:
    moment: datetime
    refunds: float = 0.0


@dataclass(frozen=True)
class SpendFact:
    moment: datetime
    spend: float = 0.0


@dataclass(frozen=True)
class CustomerOrderFact:
    """An order joined with its customer's first purchase."""

    customer_email: str
    order_moment: datetime
    first_order_moment: datetime
    total_price: float = 0.0


@dataclass
class DashboardPoint:
    timestamp: str
    total_orders: int = 0
    total_revenue: float = 0.0
    total_refunds: float = 0.0
    total_cogs: float = 0.0
    total_ad_spend: float = 0.0
    profit: float = 0.0
    roas: float = 0.0
    new_customer_count: int = 0
    new_customer_revenue: float = 0.0
    new_customer_roas: float = 0.0
    cac: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Bucket:
    orders: int = 0
    revenue: float = 0.0
    cogs: float = 0.0
    vat: float = 0.0
    payment_fees: float = 0.0
    refunds: float = 0.0
    ad_spend: float = 0.0
    new_customers: Set[str] = field(default_factory=set)
    new_customer_revenue: float = 0.0


def build_dashboard(
    order_metrics: Iterable[OrderMetricsFact],
    refunds: Iterable[RefundFact],
    spend: Iterable[SpendFact],
    customer_orders: Iterable[CustomerOrderFact],
    granularity: Granularity,
    policy: ProfitPolicy,
) -> List[DashboardPoint]:
    """
    Fold the four fact streams into one point per bucket, ascending.

    Only buckets in which at least one stream has data are returned.
    """
    buckets: Dict[datetime, _Bucket] = defaultdict(_Bucket)

    for fact in order_metrics:
        bucket = buckets[bucket_start(fact.moment, granularity)]
        bucket.orders += fact.orders
        bucket.revenue += fact.revenue
        bucket.cogs += fact.cogs
        bucket.vat += fact.vat
        bucket.payment_fees += fact.payment_fees

    for fact in refunds:
        buckets[bucket_start(fact.moment, granularity)].refunds += fact.refunds

    for fact in spend:
        buckets[bucket_start(fact.moment, granularity)].ad_spend += fact.spend

    for fact in customer_orders:
        order_bucket = bucket_start(fact.order_moment, granularity)
        if order_bucket != bucket_start(fact.first_order_moment, granularity):
            continue
        bucket = buckets[order_bucket]
        bucket.new_customers.add(fact.customer_email)
        bucket.new_customer_revenue += fact.total_price

    return [
        _point(moment, buckets[moment], granularity, policy)
        for moment in sorted(buckets)
    ]


def _point(moment: datetime, bucket: _Bucket, granularity: Granularity, policy: ProfitPolicy) -> DashboardPoint:
    new_customer_count = len(bucket.new_customers)
    return DashboardPoint(
        timestamp=format_bucket(moment, granularity),
        total_orders=bucket.orders,
        total_revenue=bucket.revenue,
        total_refunds=bucket.refunds,
        total_cogs=bucket.cogs,
        total_ad_spend=bucket.ad_spend,
        profit=policy.net_profit(
            bucket.revenue,
            bucket.vat,
            bucket.cogs,
            bucket.payment_fees,
            ad_spend=bucket.ad_spend,
            refunds=bucket.refunds,
        ),
        roas=roas(bucket.revenue, bucket.ad_spend),
        new_customer_count=new_customer_count,
        new_customer_revenue=bucket.new_customer_revenue,
        new_customer_roas=roas(bucket.new_customer_revenue, bucket.ad_spend),
        cac=safe_divide(bucket.ad_spend, new_customer_count),
    )
