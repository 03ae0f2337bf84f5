"""
Tests for the dashboard metrics view (service and HTTP API).

WHAT:
    Run DashboardService against the seeded order metrics, refunds, ad spend
    and customer facts.

WHY:
    Checks the profit formula per shop VAT policy, the new-customer rule and
    that buckets and query bounds follow the shop's timezone.

REFERENCES:
    - attribution_engine/services/dashboard_service.py
    - attribution_engine/engine/dashboard.py
    - attribution_engine/routers/analytics.py
"""

from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from attribution_engine.errors import InvalidFilter, ShopNotFound
from attribution_engine.models import Shop
from attribution_engine.services.dashboard_service import DashboardService

ACCOUNT_ID = "acct-1"
MAY_1 = date(2024, 5, 1)
MAY_2 = date(2024, 5, 2)


@pytest.fixture
def service(metadata_store, analytical_store) -> DashboardService:
    return DashboardService(metadata_store, analytical_store, max_workers=3)


def _set_timezone(session_factory, account_id: str, name: str) -> None:
    session = session_factory()
    try:
        session.execute(update(Shop).where(Shop.account_id == account_id).values(timezone=name))
        session.commit()
    finally:
        session.close()


def _by_timestamp(result) -> dict:
    return {point["timestamp"]: point for point in result.data["timeseries"]}


def test_daily_dashboard(service: DashboardService) -> None:
    result = service.get_dashboard_metrics(ACCOUNT_ID, MAY_1, MAY_2)

    assert result.data["aggregation_level"] == "daily"
    points = _by_timestamp(result)
    assert list(points) == ["2024-05-01", "2024-05-02"]

    may_1 = points["2024-05-01"]
    assert may_1["total_orders"] == 2
    assert may_1["total_revenue"] == pytest.approx(300.0)
    # Meta spend plus the TikTok spend at midnight
    assert may_1["total_ad_spend"] == pytest.approx(35.0)
    assert may_1["profit"] == pytest.approx(300 - 30 - 60 - 6 - 35)
    assert may_1["roas"] == pytest.approx(300 / 35)
    assert may_1["new_customer_count"] == 1
    assert may_1["new_customer_revenue"] == pytest.approx(100.0)
    assert may_1["new_customer_roas"] == pytest.approx(100 / 35)
    assert may_1["cac"] == pytest.approx(35.0)

    may_2 = points["2024-05-02"]
    assert may_2["total_refunds"] == pytest.approx(50.0)
    assert may_2["profit"] == pytest.approx(200 - 20 - 40 - 4 - 20 - 50)
    assert may_2["roas"] == pytest.approx(10.0)
    # Repeat order of a customer acquired the day before
    assert may_2["new_customer_count"] == 0
    assert may_2["cac"] == 0

    assert result.metadata["shop_name"] == "demo-shop"
    assert result.metadata["timezone"] == "UTC"


def test_single_day_is_hourly(service: DashboardService) -> None:
    result = service.get_dashboard_metrics(ACCOUNT_ID, MAY_1, MAY_1)

    assert result.data["aggregation_level"] == "hourly"
    points = _by_timestamp(result)
    assert list(points) == ["2024-05-01 00:00:00", "2024-05-01 09:00:00", "2024-05-01 10:00:00"]

    ten = points["2024-05-01 10:00:00"]
    assert ten["profit"] == pytest.approx(300 - 30 - 60 - 6)
    assert ten["new_customer_count"] == 1
    # No spend in this hour: ratios fall back to 0
    assert ten["roas"] == 0
    assert ten["cac"] == 0


def test_shop_ignoring_vat_keeps_vat_in_profit(service: DashboardService) -> None:
    result = service.get_dashboard_metrics("acct-2", MAY_1, MAY_1)

    points = _by_timestamp(result)
    assert points["2024-05-01 10:00:00"]["profit"] == pytest.approx(1000 - 100 - 10)
    assert points["2024-05-01 00:00:00"]["profit"] == pytest.approx(-999.0)


def test_buckets_follow_shop_timezone(service: DashboardService, metadata_session_factory) -> None:
    _set_timezone(metadata_session_factory, ACCOUNT_ID, "America/New_York")

    result = service.get_dashboard_metrics(ACCOUNT_ID, MAY_1, MAY_1)

    points = _by_timestamp(result)
    # 09:00 / 10:00 UTC are 05:00 / 06:00 in New York; midnight UTC is still April 30 there
    assert list(points) == ["2024-05-01 05:00:00", "2024-05-01 06:00:00"]
    assert points["2024-05-01 05:00:00"]["total_ad_spend"] == pytest.approx(20.0)
    assert points["2024-05-01 06:00:00"]["total_orders"] == 2
    assert points["2024-05-01 06:00:00"]["new_customer_count"] == 1
    assert result.metadata["timezone"] == "America/New_York"


def test_unknown_timezone_falls_back_to_utc(service: DashboardService, metadata_session_factory) -> None:
    _set_timezone(metadata_session_factory, ACCOUNT_ID, "Mars/Olympus_Mons")

    result = service.get_dashboard_metrics(ACCOUNT_ID, MAY_1, MAY_2)

    assert result.metadata["timezone"] == "UTC"
    assert [p["timestamp"] for p in result.data["timeseries"]] == ["2024-05-01", "2024-05-02"]


def test_dashboard_errors(service: DashboardService) -> None:
    with pytest.raises(InvalidFilter):
        service.get_dashboard_metrics(ACCOUNT_ID, MAY_2, MAY_1)
    with pytest.raises(ShopNotFound):
        service.get_dashboard_metrics("nobody", MAY_1, MAY_2)


# ============================================================================
# HTTP
# ============================================================================

def test_dashboard_endpoint(client: TestClient, account_headers) -> None:
    params = {"start_date": "2024-05-01", "end_date": "2024-05-02"}

    response = client.get("/analytics/dashboard", params=params, headers=account_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["aggregation_level"] == "daily"
    assert [p["timestamp"] for p in body["data"]["timeseries"]] == ["2024-05-01", "2024-05-02"]
    assert body["data"]["timeseries"][0]["total_orders"] == 2
    assert body["metadata"]["timezone"] == "UTC"


def test_dashboard_endpoint_rejects_reversed_range(client: TestClient, account_headers) -> None:
    params = {"start_date": "2024-05-02", "end_date": "2024-05-01"}

    response = client.get("/analytics/dashboard", params=params, headers=account_headers)

    assert response.status_code == 400
    assert response.json()["statusCode"] == 400
