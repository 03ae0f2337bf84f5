"""
Metric Row Join & Channel Aggregation Tests (Unit)
==================================================

WHAT: Unit tests for the attribution/spend full outer join and the flat channel,
      non-paid campaign and timeseries shaping.
WHY: Spend without conversions (and conversions without spend) must both stay visible.

REFERENCES:
- backend/attribution_engine/engine/metric_rows.py
- backend/attribution_engine/engine/channel_aggregator.py
"""

import pytest

from attribution_engine.engine.channel_aggregator import (
    aggregate_channels,
    aggregate_non_paid_campaigns,
    aggregate_timeseries,
)
from attribution_engine.engine.channels import is_ad_spend_channel, is_managed_ad_channel
from attribution_engine.engine.formulas import ProfitPolicy
from attribution_engine.engine.metric_rows import MetricRow, ad_key, full_outer_join


def test_full_outer_join_keeps_both_sides() -> None:
    attribution = [
        MetricRow(channel="meta-ads", attributed_revenue=500, distinct_orders_touched=3),
        MetricRow(channel="email", attributed_revenue=200, distinct_orders_touched=2),
    ]
    spend = [
        MetricRow(channel="meta-ads", ad_spend=100, clicks=40),
        MetricRow(channel="tiktok-ads", ad_spend=80),
    ]

    joined = {row.channel: row for row in full_outer_join(attribution, spend)}

    assert set(joined) == {"meta-ads", "email", "tiktok-ads"}
    assert joined["meta-ads"].ad_spend == 100
    assert joined["meta-ads"].attributed_revenue == 500
    assert joined["email"].ad_spend == 0
    assert joined["tiktok-ads"].attributed_revenue == 0
    assert joined["tiktok-ads"].ad_spend == 80


def test_ad_level_join_coalesces_internal_ids() -> None:
    attribution = [
        MetricRow(
            channel="meta-ads",
            platform_campaign_id="c1",
            platform_ad_set_id="s1",
            platform_ad_id="a1",
            attributed_revenue=90,
        )
    ]
    spend = [
        MetricRow(
            channel="meta-ads",
            platform_campaign_id="c1",
            platform_ad_set_id="s1",
            platform_ad_id="a1",
            campaign_id=7,
            ad_set_id=8,
            ad_id=9,
            ad_spend=30,
        )
    ]

    (row,) = full_outer_join(attribution, spend, key=ad_key)

    assert (row.campaign_id, row.ad_set_id, row.ad_id) == (7, 8, 9)
    assert row.attributed_revenue == 90
    assert row.ad_spend == 30


def test_channel_performance_sorted_by_revenue_with_profit() -> None:
    rows = [
        MetricRow(channel="email", attributed_revenue=100, attributed_tax=10),
        MetricRow(channel="meta-ads", attributed_revenue=1000, attributed_tax=100, ad_spend=250,
                  first_time_customer_revenue=500),
    ]

    result = aggregate_channels(rows, ProfitPolicy())

    assert [item.channel for item in result] == ["meta-ads", "email"]
    meta = result[0]
    assert meta.roas == 4
    assert meta.first_time_customer_roas == 2
    assert meta.net_profit == 650
    assert result[1].roas == 0


def test_non_paid_campaigns_have_no_spend_term() -> None:
    rows = [
        MetricRow(channel="email", campaign="newsletter", attributed_orders=4, attributed_revenue=400,
                  attributed_tax=40, attributed_cogs=160, distinct_orders_touched=5)
    ]

    (item,) = aggregate_non_paid_campaigns(rows, ProfitPolicy(ignore_vat=False))

    assert item.gross_revenue == 360
    assert item.net_profit == 200
    assert item.profit_margin_pct == pytest.approx(50.0)
    assert item.avg_order_value == 100
    assert item.revenue_per_order_touched == 80


def test_timeseries_sums_buckets_and_sorts_ascending() -> None:
    rows = [
        MetricRow(channel="meta-ads", time_period="2024-05-02", ad_spend=10, attributed_revenue=30),
        MetricRow(channel="email", time_period="2024-05-01", attributed_revenue=20),
        MetricRow(channel="meta-ads", time_period="2024-05-01", ad_spend=10, attributed_revenue=20),
    ]

    points = aggregate_timeseries(rows)

    assert [p.time_period for p in points] == ["2024-05-01", "2024-05-02"]
    assert points[0].total_attributed_revenue == 40
    assert points[0].roas == 4
    assert points[1].roas == 3


def test_channel_classification_is_case_insensitive() -> None:
    assert is_ad_spend_channel("Meta-Ads")
    assert is_ad_spend_channel("taboola")
    assert not is_ad_spend_channel("email")
    assert is_managed_ad_channel("GOOGLE-ADS")
    assert not is_managed_ad_channel("tiktok-ads")
