"""
Analytics Service
=================

WHAT:
    Request-level orchestration for the attribution views:
      - channel performance (all channels)
      - paid channel hierarchy (campaign -> ad set -> ad)
      - non-paid campaign performance (organic channels)
      - timeseries (spend, revenue, ROAS per hourly/daily bucket)
      - attributed orders (the orders behind one channel, campaign or ad)

WHY:
    Each view follows the same steps: validate the request, resolve the
    shop once (which fixes the VAT policy for the whole response), fetch
    attribution and spend rows in parallel, join them, then shape.

CONCURRENCY:
    Attribution and spend fetches run on a ThreadPoolExecutor; each fetch
    opens its own session. Hierarchy metadata lookups (campaigns, ad sets,
    ads) run on the same pool once the row ids are known. The merge waits
    for everything. Any upstream failure fails the request.

REFERENCES:
    - services/row_source.py
    - engine/hierarchy.py, engine/channel_aggregator.py
    - routers/analytics.py
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from attribution_engine.engine.attribution_models import (
    AttributionModel,
    DataMode,
    parse_attribution_model,
    parse_attribution_window,
    parse_data_mode,
)
from attribution_engine.engine.channel_aggregator import (
    aggregate_channels,
    aggregate_non_paid_campaigns,
    aggregate_timeseries,
)
from attribution_engine.engine.channels import is_ad_spend_channel, is_non_ad_spend_channel
from attribution_engine.engine.hierarchy import count_nodes, merge_hierarchy
from attribution_engine.engine.metric_rows import sort_by_revenue
from attribution_engine.engine.time_buckets import DateRange
from attribution_engine.errors import InvalidFilter
from attribution_engine.services.metadata_store import ShopSettings, SqlMetadataStore
from attribution_engine.services.query_plan import HierarchyFilter, QueryLevel, QuerySpec
from attribution_engine.services.row_source import MetricRowSource
from attribution_engine.telemetry import set_shop_context

logger = logging.getLogger(__name__)


class TimeseriesFilterType(str, Enum):
    all_channels = "all_channels"
    channel = "channel"
    ad_hierarchy = "ad_hierarchy"


@dataclass(frozen=True)
class TimeseriesFilter:
    type: TimeseriesFilterType = TimeseriesFilterType.all_channels
    channel: Optional[str] = None
    ad_campaign_pk: Optional[int] = None
    ad_set_pk: Optional[int] = None
    ad_pk: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        for name in ("channel", "ad_campaign_pk", "ad_set_pk", "ad_pk"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class AnalyticsRequest:
    """Common parameters of every attribution view."""

    start_date: date
    end_date: date
    attribution_model: str = AttributionModel.linear_paid.value
    attribution_window: Optional[str] = None
    data_mode: str = DataMode.window.value


@dataclass
class AnalyticsResult:
    """A shaped view plus its metadata envelope."""

    data: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _orders_filter(
    campaign: Optional[str], hierarchy: Optional[HierarchyFilter], first_time_only: bool
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"first_time_customers_only": first_time_only}
    if campaign:
        data["campaign"] = campaign
    if hierarchy is not None:
        for key, value in (
            ("ad_campaign_pk", hierarchy.campaign_pk),
            ("ad_set_pk", hierarchy.ad_set_pk),
            ("ad_pk", hierarchy.ad_pk),
        ):
            if value:
                data[key] = value
    return data


class AnalyticsService:
    """
    Attribution views for one shop per request.

    Parameters:
        metadata_store: Shop resolution and display metadata
        row_source: Attribution / spend rows from the analytical store
        max_workers: Thread pool size for independent fetches
        default_window: Attribution window when the request omits one
    """

    def __init__(
        self,
        metadata_store: SqlMetadataStore,
        row_source: MetricRowSource,
        max_workers: int = 3,
        default_window: str = "28_day",
    ):
        self.metadata_store = metadata_store
        self.row_source = row_source
        self.max_workers = max(1, max_workers)
        self.default_window = default_window

    # =========================================================================
    # PUBLIC VIEWS
    # =========================================================================

    def get_channel_performance(self, account_id: str, request: AnalyticsRequest) -> AnalyticsResult:
        """Per-channel attribution, spend, ROAS and profit, highest revenue first."""
        with self._operation("channel_performance", account_id, request) as stats:
            shop, spec = self._prepare(account_id, request, QueryLevel.channel)
            rows, _ = self._fetch_rows(spec)
            data = aggregate_channels(rows, shop.profit_policy)
            stats["rows"] = len(rows)
            return AnalyticsResult(
                data=[item.to_dict() for item in data],
                metadata={**self._envelope(shop, spec), "total_channels": len(data)},
            )

    def get_channel_hierarchy(
        self, account_id: str, channel: str, request: AnalyticsRequest
    ) -> AnalyticsResult:
        """Campaign -> ad set -> ad tree for one ad-spend channel."""
        channel = self._require_channel(channel)
        if not is_ad_spend_channel(channel):
            raise InvalidFilter(f"Channel {channel} has no ad spend; use the campaigns view instead")

        with self._operation("channel_hierarchy", account_id, request, channel=channel) as stats:
            shop, spec = self._prepare(account_id, request, QueryLevel.ad, channel=channel)
            rows, lookup = self._fetch_rows(spec, with_metadata=True)
            campaigns = merge_hierarchy(rows, lookup, channel, shop.profit_policy)
            total_campaigns, total_ad_sets, total_ads = count_nodes(campaigns)
            stats["rows"] = len(rows)
            stats["campaigns"] = total_campaigns
            return AnalyticsResult(
                data=[campaign.to_dict() for campaign in campaigns],
                metadata={
                    **self._envelope(shop, spec),
                    "channel": channel,
                    "total_campaigns": total_campaigns,
                    "total_ad_sets": total_ad_sets,
                    "total_ads": total_ads,
                },
            )

    def get_non_paid_campaigns(
        self, account_id: str, channel: str, request: AnalyticsRequest
    ) -> AnalyticsResult:
        """Per-campaign attribution and profit for one organic channel."""
        channel = self._require_channel(channel)
        if not is_non_ad_spend_channel(channel):
            raise InvalidFilter(f"Channel {channel} is an ad spend channel; use the hierarchy view instead")

        with self._operation("non_paid_campaigns", account_id, request, channel=channel) as stats:
            shop, spec = self._prepare(account_id, request, QueryLevel.campaign, channel=channel)
            rows = self.row_source.attribution_rows(spec)
            data = aggregate_non_paid_campaigns(rows, shop.profit_policy)
            stats["rows"] = len(rows)
            return AnalyticsResult(
                data=[item.to_dict() for item in data],
                metadata={
                    **self._envelope(shop, spec),
                    "channel": channel,
                    "total_campaigns": len(data),
                },
            )

    def get_timeseries(
        self,
        account_id: str,
        request: AnalyticsRequest,
        ts_filter: Optional[TimeseriesFilter] = None,
    ) -> AnalyticsResult:
        """Spend, attributed revenue and ROAS per hourly or daily bucket."""
        ts_filter = ts_filter or TimeseriesFilter()
        channel, hierarchy = self._timeseries_narrowing(ts_filter)

        with self._operation("timeseries", account_id, request, filter=ts_filter.type.value) as stats:
            shop, spec = self._prepare(
                account_id,
                request,
                QueryLevel.channel,
                channel=channel,
                hierarchy=hierarchy,
                bucketed=True,
            )
            rows, _ = self._fetch_rows(spec)
            points = aggregate_timeseries(rows)
            stats["buckets"] = len(points)
            return AnalyticsResult(
                data={
                    "timeseries": [point.to_dict() for point in points],
                    "aggregation_level": spec.date_range.granularity.value,
                },
                metadata={**self._envelope(shop, spec), "filter": ts_filter.to_dict()},
            )

    def get_attributed_orders(
        self,
        account_id: str,
        channel: str,
        request: AnalyticsRequest,
        campaign: Optional[str] = None,
        hierarchy: Optional[HierarchyFilter] = None,
        first_time_customers_only: bool = False,
    ) -> AnalyticsResult:
        """Orders behind one channel, campaign or ad, newest first.

        Ad-spend channels narrow by hierarchy pks and ignore `campaign`;
        organic channels narrow by campaign name and ignore the pks.
        """
        channel = self._require_channel(channel)
        if is_ad_spend_channel(channel):
            campaign = None
        else:
            hierarchy = None

        with self._operation("attributed_orders", account_id, request, channel=channel) as stats:
            shop, spec = self._prepare(
                account_id,
                request,
                QueryLevel.channel,
                channel=channel,
                campaign=campaign or None,
                hierarchy=hierarchy,
            )
            orders = self.row_source.attributed_orders(spec, first_time_customers_only)
            stats["orders"] = len(orders)
            return AnalyticsResult(
                data={"orders": [order.to_dict() for order in orders], "total": len(orders)},
                metadata={
                    **self._envelope(shop, spec),
                    "channel": channel,
                    "filter": _orders_filter(campaign, hierarchy, first_time_customers_only),
                },
            )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _prepare(
        self,
        account_id: str,
        request: AnalyticsRequest,
        level: QueryLevel,
        channel: Optional[str] = None,
        hierarchy: Optional[HierarchyFilter] = None,
        bucketed: bool = False,
        campaign: Optional[str] = None,
    ) -> Tuple[ShopSettings, QuerySpec]:
        """Validate the request, resolve the shop once and build the QuerySpec."""
        date_range = DateRange(request.start_date, request.end_date)
        model = parse_attribution_model(request.attribution_model)
        mode = parse_data_mode(request.data_mode)
        window = parse_attribution_window(request.attribution_window or self.default_window)

        shop = self.metadata_store.resolve_shop(account_id)
        set_shop_context(account_id, shop.shop_name)
        logger.info(
            "[ANALYTICS] Resolved account %s to shop %s (ignore_vat=%s)",
            account_id, shop.shop_name, shop.ignore_vat,
        )

        spec = QuerySpec(
            shop_name=shop.shop_name,
            date_range=date_range,
            model=model,
            mode=mode,
            window=window,
            level=level,
            channel=channel,
            campaign=campaign,
            hierarchy=hierarchy,
            bucketed=bucketed,
        )
        return shop, spec

    def _fetch_rows(self, spec: QuerySpec, with_metadata: bool = False):
        """Fetch attribution + spend in parallel, join, and optionally load metadata.

        Returns (joined rows, MetadataLookup or None). Rows are ordered by
        attributed revenue, highest first.
        """
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            attribution_future = executor.submit(self.row_source.attribution_rows, spec)
            spend_future = executor.submit(self.row_source.spend_rows, spec)
            attribution = attribution_future.result()
            spend = spend_future.result()

            rows = sort_by_revenue(self.row_source.join(spec, attribution, spend))

            lookup = None
            if with_metadata:
                lookup = self.metadata_store.load_lookup(
                    (row.campaign_id for row in rows),
                    (row.ad_set_id for row in rows),
                    (row.ad_id for row in rows),
                    executor=executor,
                )
        return rows, lookup

    @staticmethod
    def _require_channel(channel: Optional[str]) -> str:
        if not channel or not channel.strip():
            raise InvalidFilter("A channel is required for this view")
        return channel.strip().lower()

    def _timeseries_narrowing(
        self, ts_filter: TimeseriesFilter
    ) -> Tuple[Optional[str], Optional[HierarchyFilter]]:
        if ts_filter.type == TimeseriesFilterType.all_channels:
            return None, None
        channel = self._require_channel(ts_filter.channel)
        if ts_filter.type == TimeseriesFilterType.channel:
            return channel, None
        return channel, HierarchyFilter(
            campaign_pk=ts_filter.ad_campaign_pk,
            ad_set_pk=ts_filter.ad_set_pk,
            ad_pk=ts_filter.ad_pk,
        )

    @staticmethod
    def _envelope(shop: ShopSettings, spec: QuerySpec) -> Dict[str, Any]:
        return {
            "shop_name": shop.shop_name,
            "start_date": spec.date_range.start_date.isoformat(),
            "end_date": spec.date_range.end_date.isoformat(),
            "attribution_model": spec.model.value,
            # Event mode has no lookback window: attribution is effectively lifetime
            "attribution_window": "lifetime" if spec.mode == DataMode.event else spec.window,
            "data_mode": spec.mode.value,
            "query_timestamp": _utc_now_iso(),
        }

    @contextmanager
    def _operation(self, name: str, account_id: str, request: AnalyticsRequest, **extra):
        """Log start, completion (elapsed ms + counts) or failure of a view."""
        started = time.perf_counter()
        stats: Dict[str, Any] = {}
        logger.info(
            "[ANALYTICS] %s started: account=%s range=%s..%s model=%s mode=%s %s",
            name, account_id, request.start_date, request.end_date,
            request.attribution_model, request.data_mode, extra or "",
        )
        try:
            yield stats
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[ANALYTICS] %s failed after %.1fms: account=%s error=%s",
                name, elapsed_ms, account_id, e,
            )
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("[ANALYTICS] %s completed in %.1fms: %s", name, elapsed_ms, stats)
