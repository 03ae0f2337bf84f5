"""
Attribution Analytics Router
============================

WHAT:
    Thin HTTP surface over AnalyticsService and DashboardService:
    - GET /analytics/channels                       channel performance
    - GET /analytics/channels/{channel}/hierarchy   paid campaign tree
    - GET /analytics/channels/{channel}/campaigns   non-paid campaigns
    - GET /analytics/timeseries                     spend / revenue / ROAS buckets
    - GET /analytics/channels/{channel}/orders      orders behind a slice
    - GET /analytics/dashboard                      shop-level totals and profit

WHY:
    All validation and aggregation happens in the service so the same
    views can be served from jobs or other transports. Routers only parse
    query parameters and shape the response models.

USAGE:
    GET /analytics/channels?start_date=2024-01-01&end_date=2024-01-31&attribution_model=linear_paid
    GET /analytics/timeseries?start_date=2024-01-01&end_date=2024-01-01&filter_type=channel&channel=meta-ads

REFERENCES:
    - services/analytics_service.py, services/dashboard_service.py
    - schemas.py
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .. import schemas
from ..deps import get_account_id, get_analytics_service, get_dashboard_service
from ..errors import InvalidFilter
from ..services.analytics_service import (
    AnalyticsRequest,
    AnalyticsService,
    TimeseriesFilter,
    TimeseriesFilterType,
)
from ..services.dashboard_service import DashboardService
from ..services.query_plan import HierarchyFilter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def analytics_request(
    start_date: date = Query(..., description="First day of the range (inclusive)"),
    end_date: date = Query(..., description="Last day of the range (inclusive)"),
    attribution_model: str = Query(
        "linear_paid",
        description="first_click, last_click, last_paid_click, linear_all, linear_paid",
    ),
    attribution_window: Optional[str] = Query(
        None, description="1_day, 7_day, 14_day, 28_day, 90_day or lifetime (window mode only)"
    ),
    data_mode: str = Query("window", description="window (precomputed) or event (raw touchpoints)"),
) -> AnalyticsRequest:
    """Common query parameters of every attribution view."""
    return AnalyticsRequest(
        start_date=start_date,
        end_date=end_date,
        attribution_model=attribution_model,
        attribution_window=attribution_window,
        data_mode=data_mode,
    )


def _parse_filter_type(value: str) -> TimeseriesFilterType:
    try:
        return TimeseriesFilterType(value)
    except ValueError as exc:
        raise InvalidFilter(f"Unknown timeseries filter type: {value}") from exc


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/channels",
    response_model=schemas.ChannelPerformanceResponse,
    summary="Channel performance",
)
def get_channel_performance(
    request: AnalyticsRequest = Depends(analytics_request),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Attributed revenue, spend, ROAS and profit per channel.

    WHAT: One row per channel, highest attributed revenue first
    WHY: Top-level overview of where revenue comes from
    """
    result = service.get_channel_performance(account_id, request)
    return schemas.ChannelPerformanceResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )


@router.get(
    "/channels/{channel}/hierarchy",
    response_model=schemas.ChannelHierarchyResponse,
    summary="Paid channel hierarchy",
)
def get_channel_hierarchy(
    channel: str,
    request: AnalyticsRequest = Depends(analytics_request),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Campaign -> ad set -> ad tree for an ad-spend channel.

    Rows without campaign / ad set / ad ids roll up into "Not Set" nodes.
    Non ad-spend channels are rejected with 400.
    """
    result = service.get_channel_hierarchy(account_id, channel, request)
    return schemas.ChannelHierarchyResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )


@router.get(
    "/channels/{channel}/campaigns",
    response_model=schemas.NonPaidCampaignResponse,
    summary="Non-paid campaign performance",
)
def get_non_paid_campaigns(
    channel: str,
    request: AnalyticsRequest = Depends(analytics_request),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Per-campaign revenue and profit for an organic channel (email, referral, ...)."""
    result = service.get_non_paid_campaigns(account_id, channel, request)
    return schemas.NonPaidCampaignResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )


@router.get(
    "/timeseries",
    response_model=schemas.TimeseriesResponse,
    summary="Spend and revenue timeseries",
)
def get_timeseries(
    request: AnalyticsRequest = Depends(analytics_request),
    filter_type: str = Query("all_channels", description="all_channels, channel or ad_hierarchy"),
    channel: Optional[str] = Query(None, description="Required for channel and ad_hierarchy filters"),
    ad_campaign_pk: Optional[int] = Query(None, description="Internal campaign id (ad_hierarchy)"),
    ad_set_pk: Optional[int] = Query(None, description="Internal ad set id (ad_hierarchy)"),
    ad_pk: Optional[int] = Query(None, description="Internal ad id (ad_hierarchy)"),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Ad spend, attributed revenue and ROAS per time bucket.

    Ranges of a single day are bucketed hourly, longer ranges daily; the
    chosen granularity is returned as `aggregation_level`.
    """
    ts_filter = TimeseriesFilter(
        type=_parse_filter_type(filter_type),
        channel=channel,
        ad_campaign_pk=ad_campaign_pk,
        ad_set_pk=ad_set_pk,
        ad_pk=ad_pk,
    )
    result = service.get_timeseries(account_id, request, ts_filter)
    return schemas.TimeseriesResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )


@router.get(
    "/channels/{channel}/orders",
    response_model=schemas.AttributedOrdersResponse,
    summary="Attributed orders",
)
def get_attributed_orders(
    channel: str,
    request: AnalyticsRequest = Depends(analytics_request),
    campaign: Optional[str] = Query(None, description="Campaign name (non ad-spend channels)"),
    ad_campaign_pk: Optional[int] = Query(None, description="Internal campaign id (ad-spend channels)"),
    ad_set_pk: Optional[int] = Query(None, description="Internal ad set id (ad-spend channels)"),
    ad_pk: Optional[int] = Query(None, description="Internal ad id (ad-spend channels)"),
    first_time_customers_only: bool = Query(False, description="Only first orders of new customers"),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    The orders behind a channel, campaign or ad, newest first.

    WHAT: Distinct orders credited to the slice under the requested model
    WHY: Lets a marketer drill from a number in a report down to the orders
    """
    hierarchy = None
    if ad_campaign_pk or ad_set_pk or ad_pk:
        hierarchy = HierarchyFilter(campaign_pk=ad_campaign_pk, ad_set_pk=ad_set_pk, ad_pk=ad_pk)
    result = service.get_attributed_orders(
        account_id,
        channel,
        request,
        campaign=campaign,
        hierarchy=hierarchy,
        first_time_customers_only=first_time_customers_only,
    )
    return schemas.AttributedOrdersResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )


@router.get(
    "/dashboard",
    response_model=schemas.DashboardResponse,
    summary="Dashboard metrics",
)
def get_dashboard_metrics(
    start_date: date = Query(..., description="First day of the range (inclusive, shop timezone)"),
    end_date: date = Query(..., description="Last day of the range (inclusive, shop timezone)"),
    account_id: str = Depends(get_account_id),
    service: DashboardService = Depends(get_dashboard_service),
):
    """
    Orders, revenue, refunds, costs, profit and new-customer CAC per bucket.

    Buckets are hourly for a single day and daily otherwise, both in the
    shop's local time. Profit drops VAT unless the shop ignores it.
    """
    result = service.get_dashboard_metrics(account_id, start_date, end_date)
    return schemas.DashboardResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )
