"""Pydantic schemas for request/response payloads."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Shared ----------------------------------------------------------

class ErrorResponse(BaseModel):
    """Body of every engine error response."""

    error: str = Field(description="Human readable error message")
    statusCode: int = Field(description="HTTP status code", example=400)


class HealthResponse(BaseModel):
    status: str = Field(example="ok")
    database: str = Field(example="ok")


class AnalyticsMetadata(BaseModel):
    """Envelope returned with every attribution view."""

    shop_name: str
    start_date: str
    end_date: str
    attribution_model: str = Field(example="linear_paid")
    attribution_window: str = Field(example="28_day")
    data_mode: str = Field(example="window")
    query_timestamp: str
    channel: Optional[str] = None
    total_channels: Optional[int] = None
    total_campaigns: Optional[int] = None
    total_ad_sets: Optional[int] = None
    total_ads: Optional[int] = None
    filter: Optional[Dict[str, Any]] = None


class AttributedMetrics(BaseModel):
    attributed_orders: float = 0
    attributed_revenue: float = 0
    distinct_orders_touched: int = 0
    attributed_cogs: float = 0
    attributed_payment_fees: float = 0
    attributed_tax: float = 0
    first_time_customer_orders: float = 0
    first_time_customer_revenue: float = 0


class PaidMetrics(AttributedMetrics):
    ad_spend: float = 0
    impressions: float = 0
    clicks: float = 0
    conversions: float = 0
    roas: float = 0
    net_profit: float = 0
    first_time_customer_roas: float = 0


# Channel performance ---------------------------------------------

class ChannelPerformanceOut(AttributedMetrics):
    channel: str = Field(example="meta-ads")
    ad_spend: float = 0
    roas: float = 0
    net_profit: float = 0
    first_time_customer_roas: float = 0


class ChannelPerformanceResponse(BaseModel):
    data: List[ChannelPerformanceOut]
    metadata: AnalyticsMetadata


# Paid channel hierarchy ------------------------------------------

class AdOut(PaidMetrics):
    id: int = Field(description="Internal ad id, 0 for unassigned")
    platform_ad_id: str
    name: str
    active: bool
    image_url: Optional[str] = None
    url: Optional[str] = None
    cpc: float = 0
    ctr: float = 0


class AdSetOut(PaidMetrics):
    id: int
    platform_ad_set_id: str
    name: str
    active: bool
    budget: Optional[float] = None
    url: Optional[str] = None
    ads: List[AdOut] = Field(default_factory=list)


class CampaignOut(PaidMetrics):
    id: int
    platform_ad_campaign_id: str
    name: str
    active: bool
    budget: Optional[float] = None
    url: Optional[str] = None
    ad_sets: List[AdSetOut] = Field(default_factory=list)


class ChannelHierarchyResponse(BaseModel):
    data: List[CampaignOut]
    metadata: AnalyticsMetadata


# Non-paid campaigns ----------------------------------------------

class NonPaidCampaignOut(AttributedMetrics):
    channel: str = Field(example="email")
    campaign: Optional[str] = None
    gross_revenue: float = 0
    net_profit: float = 0
    profit_margin_pct: float = 0
    avg_order_value: float = 0
    revenue_per_order_touched: float = 0


class NonPaidCampaignResponse(BaseModel):
    data: List[NonPaidCampaignOut]
    metadata: AnalyticsMetadata


# Timeseries ------------------------------------------------------

class TimeseriesPointOut(BaseModel):
    time_period: str = Field(description="YYYY-MM-DD, or YYYY-MM-DD HH:00:00 for hourly buckets")
    total_ad_spend: float
    total_attributed_revenue: float
    roas: float


class TimeseriesData(BaseModel):
    timeseries: List[TimeseriesPointOut]
    aggregation_level: str = Field(example="daily")


class TimeseriesResponse(BaseModel):
    data: TimeseriesData
    metadata: AnalyticsMetadata


# Attributed orders -----------------------------------------------

class AttributedOrderOut(BaseModel):
    order_id: str
    order_number: Optional[str] = None
    order_timestamp: Optional[str] = Field(None, example="2024-05-01 10:15:00")
    is_first_customer_order: bool = False


class AttributedOrdersData(BaseModel):
    orders: List[AttributedOrderOut]
    total: int


class AttributedOrdersResponse(BaseModel):
    data: AttributedOrdersData
    metadata: AnalyticsMetadata


# Dashboard -------------------------------------------------------

class DashboardPointOut(BaseModel):
    timestamp: str = Field(description="YYYY-MM-DD, or YYYY-MM-DD HH:00:00 for hourly buckets")
    total_orders: int
    total_revenue: float
    total_refunds: float
    total_cogs: float
    total_ad_spend: float
    profit: float = Field(description="Revenue minus VAT (unless ignored), spend, COGS, fees and refunds")
    roas: float
    new_customer_count: int
    new_customer_revenue: float
    new_customer_roas: float
    cac: float


class DashboardData(BaseModel):
    timeseries: List[DashboardPointOut]
    aggregation_level: str = Field(example="hourly")


class DashboardMetadata(BaseModel):
    shop_name: str
    start_date: str
    end_date: str
    timezone: str = Field(example="Europe/Berlin")
    query_timestamp: str


class DashboardResponse(BaseModel):
    data: DashboardData
    metadata: DashboardMetadata


# Cohorts ---------------------------------------------------------

class CohortIncrementalMetrics(BaseModel):
    active_customers: int
    active_customers_percentage: float
    orders: int
    net_revenue: float
    contribution_margin_one: float = Field(description="CM1 per active customer")
    contribution_margin_three: float = Field(description="CM3 per active customer")
    average_order_value: float


class CohortCumulativeMetrics(BaseModel):
    active_customers: int = Field(description="Approximated as max(previous, current)")
    active_customers_percentage: float
    orders: int
    net_revenue: float
    contribution_margin_one: float = Field(description="Cumulative CM1 per cohort customer")
    contribution_margin_three: float = Field(description="Cumulative CM3 per cohort customer")
    average_order_value: float
    ltv_to_date: float
    net_ltv_to_date: float
    ltv_to_cac_ratio: float
    net_ltv_to_cac_ratio: float
    is_payback_achieved: bool
    cumulative_contribution_margin_three_per_customer: float


class CohortPeriodMetrics(BaseModel):
    incremental: CohortIncrementalMetrics
    cumulative: CohortCumulativeMetrics


class CohortPeriodOut(BaseModel):
    period: int = Field(ge=0)
    metrics: CohortPeriodMetrics


class CohortOut(BaseModel):
    cohort: str = Field(description="Cohort start date (YYYY-MM-DD)", example="2024-01-01")
    cohort_size: int
    cohort_ad_spend: float
    cac_per_customer: float
    periods: List[CohortPeriodOut]


class CohortData(BaseModel):
    cohorts: List[CohortOut]


class CohortMetadata(BaseModel):
    shop_name: str
    cohort_type: str = Field(example="month")
    start_date: str
    end_date: str
    max_periods: int
    timezone: Optional[str] = Field(None, description="IANA zone cohorts are bucketed in", example="Europe/Berlin")
    query_timestamp: str
    filter_product_id: Optional[int] = None
    filter_variant_id: Optional[int] = None
    currency: Optional[str] = None


class CohortAnalyticsResponse(BaseModel):
    data: CohortData
    metadata: CohortMetadata
