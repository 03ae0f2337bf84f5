"""
Hierarchy Merger Tests (Unit)
=============================

WHAT: Unit tests for folding ad-level rows into campaign -> ad set -> ad trees.
WHY: Parents must equal the sum of their children, "Not Set" buckets must stay single,
     and distinct orders must never be double counted.

REFERENCES:
- backend/attribution_engine/engine/hierarchy.py
- backend/attribution_engine/engine/ad_manager_urls.py
"""

import pytest

from attribution_engine.engine.ad_manager_urls import build_ad_manager_url, clean_ad_account_id
from attribution_engine.engine.formulas import ProfitPolicy
from attribution_engine.engine.hierarchy import (
    AdMetadata,
    AdSetMetadata,
    CampaignMetadata,
    MetadataLookup,
    count_nodes,
    merge_hierarchy,
)
from attribution_engine.engine.metric_rows import ADDITIVE_FIELDS, MetricRow


def _row(campaign_id, ad_set_id, ad_id, revenue=0.0, spend=0.0, orders=1, **extra) -> MetricRow:
    return MetricRow(
        channel="meta-ads",
        campaign_id=campaign_id,
        ad_set_id=ad_set_id,
        ad_id=ad_id,
        platform_campaign_id=f"c{campaign_id}" if campaign_id else None,
        platform_ad_set_id=f"s{ad_set_id}" if ad_set_id else None,
        platform_ad_id=f"a{ad_id}" if ad_id else None,
        attributed_orders=1.0,
        attributed_revenue=revenue,
        ad_spend=spend,
        distinct_orders_touched=orders,
        **extra,
    )


def test_unassigned_campaign_collapses_into_one_not_set_node() -> None:
    rows = [
        _row(0, 0, 0, revenue=100, spend=10),
        _row(0, 0, 0, revenue=50, spend=5),
        _row(0, 0, 0, revenue=25, spend=5),
    ]

    campaigns = merge_hierarchy(rows, MetadataLookup(), "meta-ads")

    assert len(campaigns) == 1
    campaign = campaigns[0]
    assert campaign.name == "Not Set"
    assert campaign.id == 0
    assert campaign.url is None
    assert campaign.active is False
    assert campaign.metrics.attributed_revenue == 175
    assert campaign.metrics.ad_spend == 20
    assert [len(s.ads) for s in campaign.ad_sets] == [3]


def test_distinct_orders_roll_up_by_max() -> None:
    """One order touching two ads of the same ad set is still one order."""
    rows = [_row(1, 10, 100, revenue=60, orders=1), _row(1, 10, 101, revenue=40, orders=1)]

    campaign = merge_hierarchy(rows, MetadataLookup(), "meta-ads")[0]

    assert campaign.ad_sets[0].metrics.distinct_orders_touched == 1
    assert campaign.metrics.distinct_orders_touched == 1
    assert campaign.metrics.attributed_orders == 2


def test_parent_roas_is_ratio_of_sums() -> None:
    rows = [_row(1, 10, 100, revenue=300, spend=100), _row(1, 10, 101, revenue=100, spend=100)]

    campaign = merge_hierarchy(rows, MetadataLookup(), "meta-ads")[0]

    assert [ad.roas for ad in campaign.ad_sets[0].ads] == [3, 1]
    assert campaign.ad_sets[0].roas == 2
    assert campaign.roas == 2


def test_net_profit_sums_children_with_shop_policy() -> None:
    rows = [
        _row(1, 10, 100, revenue=1000, spend=100, attributed_tax=100, attributed_cogs=300),
        _row(1, 11, 101, revenue=500, spend=50, attributed_tax=50, attributed_cogs=100),
    ]

    campaign = merge_hierarchy(rows, MetadataLookup(), "meta-ads", ProfitPolicy(ignore_vat=True))[0]

    # 1000-300-100 + 500-100-50
    assert campaign.net_profit == pytest.approx(950)
    assert len(campaign.ad_sets) == 2


def test_every_additive_metric_and_net_profit_sum_to_parents() -> None:
    """Checked field by field over a mix of "Not Set" and identified nodes."""
    ids = [(0, 0, 0), (0, 0, 0), (1, 10, 100), (1, 10, 101), (1, 0, 0), (2, 20, 0), (2, 21, 200)]
    rows = []
    for index, (campaign_id, ad_set_id, ad_id) in enumerate(ids, start=1):
        row = MetricRow(channel="meta-ads", campaign_id=campaign_id, ad_set_id=ad_set_id, ad_id=ad_id)
        for offset, name in enumerate(ADDITIVE_FIELDS, start=1):
            setattr(row, name, float(index * 10 + offset))
        rows.append(row)

    campaigns = merge_hierarchy(rows, MetadataLookup(), "meta-ads", ProfitPolicy(ignore_vat=False))

    assert [c.name for c in campaigns].count("Not Set") == 1
    for name in ADDITIVE_FIELDS:
        assert sum(getattr(c.metrics, name) for c in campaigns) == pytest.approx(
            sum(getattr(row, name) for row in rows)
        ), name
        for campaign in campaigns:
            assert getattr(campaign.metrics, name) == pytest.approx(
                sum(getattr(ad_set.metrics, name) for ad_set in campaign.ad_sets)
            ), name
            for ad_set in campaign.ad_sets:
                assert getattr(ad_set.metrics, name) == pytest.approx(
                    sum(getattr(ad.metrics, name) for ad in ad_set.ads)
                ), name

    for campaign in campaigns:
        assert campaign.net_profit == pytest.approx(sum(s.net_profit for s in campaign.ad_sets))
        for ad_set in campaign.ad_sets:
            assert ad_set.net_profit == pytest.approx(sum(ad.net_profit for ad in ad_set.ads))


def test_metadata_names_urls_and_fallbacks() -> None:
    lookup = MetadataLookup(
        campaigns={1: CampaignMetadata(id=1, name="Spring Sale", active=True, budget=50.0, ad_account_id="act_999")},
        ad_sets={10: AdSetMetadata(id=10, name="Lookalikes", active=True)},
        ads={},
    )
    rows = [_row(1, 10, 100, revenue=10, spend=5, clicks=5, impressions=1000)]

    campaign = merge_hierarchy(rows, lookup, "meta-ads")[0]
    ad = campaign.ad_sets[0].ads[0]

    assert campaign.name == "Spring Sale"
    assert campaign.active is True
    assert campaign.budget == 50.0
    assert "act=999" in campaign.url
    assert "selected_campaign_ids=c1" in campaign.url
    assert ad.name == "Ad a100"
    assert ad.active is False
    assert ad.cpc == 1
    assert ad.ctr == pytest.approx(0.5)
    assert ad.to_dict()["platform_ad_id"] == "a100"


def test_rows_with_missing_ids_are_dropped() -> None:
    rows = [_row(None, 10, 100, revenue=10), _row(1, 10, 100, revenue=20)]

    campaigns = merge_hierarchy(rows, MetadataLookup(), "google-ads")

    assert count_nodes(campaigns) == (1, 1, 1)
    assert campaigns[0].metrics.attributed_revenue == 20
    assert campaigns[0].url == "https://ads.google.com/aw/campaigns?campaignId=c1"


def test_ad_manager_urls_by_platform() -> None:
    assert clean_ad_account_id("act_123") == "123"
    assert build_ad_manager_url("meta-ads", "ad", "42", None) is None
    assert build_ad_manager_url("google-ads", "ad_set", "42") is None
    assert build_ad_manager_url("taboola", "campaign", "42") == "https://ads.taboola.com/campaigns?campaignId=42"
    assert build_ad_manager_url("tiktok-ads", "campaign", "42") is None
