"""
Dashboard Fold Tests (Unit)
===========================

WHAT: Unit tests for build_dashboard over in-memory facts.
WHY: New customers only count in their first purchase's bucket, and empty denominators must yield 0.

REFERENCES:
- backend/attribution_engine/engine/dashboard.py
"""

from datetime import datetime

import pytest

from attribution_engine.engine.dashboard import (
    CustomerOrderFact,
    OrderMetricsFact,
    RefundFact,
    SpendFact,
    build_dashboard,
)
from attribution_engine.engine.formulas import ProfitPolicy
from attribution_engine.engine.time_buckets import Granularity


def _customer_order(email, order_moment, first_order_moment, total_price=100.0) -> CustomerOrderFact:
    return CustomerOrderFact(
        customer_email=email,
        order_moment=order_moment,
        first_order_moment=first_order_moment,
        total_price=total_price,
    )


def test_new_customers_count_once_in_their_first_bucket() -> None:
    first = datetime(2024, 5, 1, 9, 0)
    points = build_dashboard(
        order_metrics=[],
        refunds=[],
        spend=[SpendFact(datetime(2024, 5, 1, 0, 0), 90.0)],
        customer_orders=[
            _customer_order("a@example.com", first, first, 100.0),
            # Second order on the same day: same customer, more revenue
            _customer_order("a@example.com", datetime(2024, 5, 1, 18, 0), first, 50.0),
            _customer_order("b@example.com", datetime(2024, 5, 1, 12, 0), datetime(2024, 5, 1, 12, 0), 80.0),
            # Returning customer
            _customer_order("c@example.com", datetime(2024, 5, 1, 13, 0), datetime(2024, 4, 2, 8, 0), 70.0),
        ],
        granularity=Granularity.daily,
        policy=ProfitPolicy(),
    )

    (point,) = points
    assert point.new_customer_count == 2
    assert point.new_customer_revenue == pytest.approx(230.0)
    assert point.cac == pytest.approx(45.0)
    assert point.new_customer_roas == pytest.approx(230 / 90)


def test_hourly_buckets_split_first_purchase_day() -> None:
    first = datetime(2024, 5, 1, 9, 10)
    points = build_dashboard(
        order_metrics=[],
        refunds=[],
        spend=[],
        customer_orders=[
            _customer_order("a@example.com", first, first),
            _customer_order("a@example.com", datetime(2024, 5, 1, 18, 0), first),
        ],
        granularity=Granularity.hourly,
        policy=ProfitPolicy(),
    )

    assert [p.timestamp for p in points] == ["2024-05-01 09:00:00"]
    assert points[0].new_customer_count == 1


def test_profit_and_zero_guards_per_bucket() -> None:
    points = build_dashboard(
        order_metrics=[
            OrderMetricsFact(datetime(2024, 5, 2, 10, 0), orders=3, revenue=600.0, cogs=100.0, vat=60.0, payment_fees=12.0),
            OrderMetricsFact(datetime(2024, 5, 1, 23, 59), orders=1, revenue=100.0),
        ],
        refunds=[RefundFact(datetime(2024, 5, 2, 11, 0), 40.0)],
        spend=[SpendFact(datetime(2024, 5, 2, 0, 0), 120.0)],
        customer_orders=[],
        granularity=Granularity.daily,
        policy=ProfitPolicy(ignore_vat=False),
    )

    assert [p.timestamp for p in points] == ["2024-05-01", "2024-05-02"]
    quiet, busy = points
    assert quiet.roas == 0
    assert quiet.cac == 0
    assert quiet.new_customer_roas == 0
    assert busy.total_orders == 3
    assert busy.profit == pytest.approx(600 - 60 - 100 - 12 - 120 - 40)
    assert busy.roas == pytest.approx(5.0)
    # Spend without new customers
    assert busy.cac == 0


def test_ignore_vat_keeps_vat_in_profit() -> None:
    facts = [OrderMetricsFact(datetime(2024, 5, 1, 10, 0), orders=1, revenue=100.0, vat=20.0)]

    (deducting,) = build_dashboard(facts, [], [], [], Granularity.daily, ProfitPolicy(ignore_vat=False))
    (ignoring,) = build_dashboard(facts, [], [], [], Granularity.daily, ProfitPolicy(ignore_vat=True))

    assert deducting.profit == pytest.approx(80.0)
    assert ignoring.profit == pytest.approx(100.0)


def test_no_facts_no_points() -> None:
    assert build_dashboard([], [], [], [], Granularity.hourly, ProfitPolicy()) == []
