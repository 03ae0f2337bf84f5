"""
Hierarchy Merger
================

WHAT:
    Folds flat ad-level MetricRows into a campaign -> ad set -> ad tree,
    joining display metadata and deep links, rolling metrics upward and
    deriving ROAS once every row has been folded.

WHY:
    The paid-channel view is hierarchical but the analytical store only
    returns flat per-ad rows. Rolling up here (instead of querying each
    level) guarantees that parents always equal the sum of their children.

ROLL-UP RULES:
    - Additive metrics (orders, revenue, cogs, fees, tax, spend, impressions,
      clicks, conversions, net_profit, first-time-customer orders/revenue)
      are summed into the ad set and campaign.
    - distinct_orders_touched rolls up by max, never sum: one order touching
      two ads of the same ad set is still one touched order.
    - roas and first_time_customer_roas are recomputed from the summed
      revenue and spend after the fold (ratio of sums).

IDENTITY:
    Rows carry internal ids where 0 means "unassigned". Inside the fold a
    node's identity is either Identified(id, platform_id) or UNASSIGNED; the
    "Not Set" label only appears when the node is rendered. Rows whose ids
    are None are malformed and dropped.

REFERENCES:
    - engine/metric_rows.py (input rows)
    - engine/ad_manager_urls.py (deep links)
    - services/metadata_store.py (builds the MetadataLookup)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from attribution_engine.engine.ad_manager_urls import build_ad_manager_url
from attribution_engine.engine.formulas import ProfitPolicy, cpc, ctr, roas
from attribution_engine.engine.metric_rows import ADDITIVE_FIELDS, MetricRow

logger = logging.getLogger(__name__)

NOT_SET_LABEL = "Not Set"


class Unassigned:
    """Sentinel identity for the single per-level "unknown" bucket."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNASSIGNED"


UNASSIGNED = Unassigned()


@dataclass(frozen=True)
class Identified:
    id: int
    platform_id: str


NodeIdentity = Union[Identified, Unassigned]


# =============================================================================
# METADATA
# =============================================================================

@dataclass(frozen=True)
class CampaignMetadata:
    id: int
    name: Optional[str] = None
    active: Optional[bool] = None
    budget: Optional[float] = None
    platform_id: Optional[str] = None
    ad_account_id: Optional[str] = None


@dataclass(frozen=True)
class AdSetMetadata:
    id: int
    name: Optional[str] = None
    active: Optional[bool] = None
    budget: Optional[float] = None
    platform_id: Optional[str] = None


@dataclass(frozen=True)
class AdMetadata:
    id: int
    name: Optional[str] = None
    active: Optional[bool] = None
    image_url: Optional[str] = None
    platform_id: Optional[str] = None


@dataclass
class MetadataLookup:
    """Display metadata keyed by internal id. Missing entries are allowed."""

    campaigns: Dict[int, CampaignMetadata] = field(default_factory=dict)
    ad_sets: Dict[int, AdSetMetadata] = field(default_factory=dict)
    ads: Dict[int, AdMetadata] = field(default_factory=dict)


# =============================================================================
# NODES
# =============================================================================

@dataclass
class HierarchyNode:
    """Common shape of campaign, ad set and ad nodes."""

    identity: NodeIdentity = UNASSIGNED
    label: Optional[str] = None
    active: bool = False
    url: Optional[str] = None
    metrics: MetricRow = field(default_factory=lambda: MetricRow(channel=""))
    net_profit: float = 0.0
    roas: float = 0.0
    first_time_customer_roas: float = 0.0

    @property
    def is_unassigned(self) -> bool:
        return isinstance(self.identity, Unassigned)

    @property
    def id(self) -> int:
        return 0 if self.is_unassigned else self.identity.id

    @property
    def platform_id(self) -> str:
        return "" if self.is_unassigned else self.identity.platform_id

    @property
    def name(self) -> str:
        if self.is_unassigned:
            return NOT_SET_LABEL
        return self.label or ""

    def absorb(self, child_metrics: MetricRow, child_net_profit: float) -> None:
        self.metrics.add_metrics(child_metrics)
        self.net_profit += child_net_profit

    def finalize_ratios(self) -> None:
        self.roas = roas(self.metrics.attributed_revenue, self.metrics.ad_spend)
        self.first_time_customer_roas = roas(
            self.metrics.first_time_customer_revenue, self.metrics.ad_spend
        )

    def _base_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "url": self.url,
        }
        data.update(self.metrics.metrics())
        data["roas"] = self.roas
        data["net_profit"] = self.net_profit
        data["first_time_customer_roas"] = self.first_time_customer_roas
        return data


@dataclass
class AdNode(HierarchyNode):
    image_url: Optional[str] = None
    cpc: float = 0.0
    ctr: float = 0.0

    def to_dict(self) -> dict:
        data = self._base_dict()
        data["platform_ad_id"] = self.platform_id
        data["image_url"] = self.image_url
        data["cpc"] = self.cpc
        data["ctr"] = self.ctr
        return data


@dataclass
class AdSetNode(HierarchyNode):
    budget: Optional[float] = None
    ads: List[AdNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self._base_dict()
        data["platform_ad_set_id"] = self.platform_id
        data["budget"] = self.budget
        data["ads"] = [ad.to_dict() for ad in self.ads]
        return data


@dataclass
class CampaignNode(HierarchyNode):
    budget: Optional[float] = None
    ad_account_id: Optional[str] = None
    ad_sets: List[AdSetNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self._base_dict()
        data["platform_ad_campaign_id"] = self.platform_id
        data["budget"] = self.budget
        data["ad_sets"] = [ad_set.to_dict() for ad_set in self.ad_sets]
        return data


# =============================================================================
# NODE CONSTRUCTION
# =============================================================================

def _build_campaign(row: MetricRow, lookup: MetadataLookup, channel: str) -> CampaignNode:
    if row.campaign_id == 0:
        return CampaignNode(identity=UNASSIGNED, metrics=MetricRow(channel=channel))

    meta = lookup.campaigns.get(row.campaign_id)
    platform_id = row.platform_campaign_id or (meta.platform_id if meta else None) or ""
    ad_account_id = meta.ad_account_id if meta else None
    return CampaignNode(
        identity=Identified(row.campaign_id, platform_id),
        label=(meta.name if meta else None) or f"Campaign {platform_id}",
        active=bool(meta.active) if meta else False,
        budget=meta.budget if meta else None,
        ad_account_id=ad_account_id,
        url=build_ad_manager_url(channel, "campaign", platform_id, ad_account_id),
        metrics=MetricRow(channel=channel),
    )


def _build_ad_set(
    row: MetricRow, lookup: MetadataLookup, channel: str, campaign: CampaignNode
) -> AdSetNode:
    if row.ad_set_id == 0:
        return AdSetNode(identity=UNASSIGNED, metrics=MetricRow(channel=channel))

    meta = lookup.ad_sets.get(row.ad_set_id)
    platform_id = row.platform_ad_set_id or (meta.platform_id if meta else None) or ""
    return AdSetNode(
        identity=Identified(row.ad_set_id, platform_id),
        label=(meta.name if meta else None) or f"Ad Set {platform_id}",
        active=bool(meta.active) if meta else False,
        budget=meta.budget if meta else None,
        url=build_ad_manager_url(channel, "ad_set", platform_id, campaign.ad_account_id),
        metrics=MetricRow(channel=channel),
    )


def _build_ad(
    row: MetricRow,
    lookup: MetadataLookup,
    channel: str,
    campaign: CampaignNode,
    policy: ProfitPolicy,
) -> AdNode:
    if row.ad_id == 0:
        ad = AdNode(identity=UNASSIGNED)
    else:
        meta = lookup.ads.get(row.ad_id)
        platform_id = row.platform_ad_id or (meta.platform_id if meta else None) or ""
        ad = AdNode(
            identity=Identified(row.ad_id, platform_id),
            label=(meta.name if meta else None) or f"Ad {platform_id}",
            active=bool(meta.active) if meta else False,
            image_url=meta.image_url if meta else None,
            url=build_ad_manager_url(channel, "ad", platform_id, campaign.ad_account_id),
        )

    ad.metrics = MetricRow(channel=channel, distinct_orders_touched=row.distinct_orders_touched)
    for name in ADDITIVE_FIELDS:
        setattr(ad.metrics, name, getattr(row, name))
    ad.net_profit = policy.net_profit(
        row.attributed_revenue,
        row.attributed_tax,
        row.attributed_cogs,
        row.attributed_payment_fees,
        row.ad_spend,
    )
    ad.cpc = cpc(row.ad_spend, row.clicks)
    ad.ctr = ctr(row.clicks, row.impressions)
    ad.finalize_ratios()
    return ad


def _node_key(pk: int):
    return UNASSIGNED if pk == 0 else pk


# =============================================================================
# MERGE
# =============================================================================

def merge_hierarchy(
    rows: List[MetricRow],
    lookup: MetadataLookup,
    channel: str,
    policy: ProfitPolicy = ProfitPolicy(),
) -> List[CampaignNode]:
    """
    Fold ad-level rows into campaign trees.

    Parameters:
        rows: Ad-level rows (campaign_id / ad_set_id / ad_id may be 0)
        lookup: Display metadata; missing entries fall back to "<Type> <id>"
        channel: Ad platform, used for deep links
        policy: Shop profit policy, applied to every ad

    Returns:
        Campaign nodes in order of first appearance among `rows`.
    """
    campaigns: Dict[object, CampaignNode] = {}
    ad_sets: Dict[Tuple[object, object], AdSetNode] = {}
    skipped = 0

    for row in rows:
        if row.campaign_id is None or row.ad_set_id is None or row.ad_id is None:
            skipped += 1
            continue

        campaign_key = _node_key(row.campaign_id)
        campaign = campaigns.get(campaign_key)
        if campaign is None:
            campaign = _build_campaign(row, lookup, channel)
            campaigns[campaign_key] = campaign

        ad_set_key = (campaign_key, _node_key(row.ad_set_id))
        ad_set = ad_sets.get(ad_set_key)
        if ad_set is None:
            ad_set = _build_ad_set(row, lookup, channel, campaign)
            ad_sets[ad_set_key] = ad_set
            campaign.ad_sets.append(ad_set)

        ad = _build_ad(row, lookup, channel, campaign, policy)
        ad_set.ads.append(ad)

        ad_set.absorb(ad.metrics, ad.net_profit)
        campaign.absorb(ad.metrics, ad.net_profit)

    if skipped:
        logger.warning("[HIERARCHY] Dropped %d rows with missing campaign/ad set/ad ids", skipped)

    # Ratios only after every row has been folded
    for ad_set in ad_sets.values():
        ad_set.finalize_ratios()
    for campaign in campaigns.values():
        campaign.finalize_ratios()

    return list(campaigns.values())


def count_nodes(campaigns: List[CampaignNode]) -> Tuple[int, int, int]:
    """Return (campaigns, ad sets, ads) totals for a merged tree."""
    total_ad_sets = sum(len(c.ad_sets) for c in campaigns)
    total_ads = sum(len(s.ads) for c in campaigns for s in c.ad_sets)
    return len(campaigns), total_ad_sets, total_ads
