"""Pytest configuration for attribution engine integration tests

WHAT: Provides seeded metadata/analytical SQLite stores, services and an HTTP client
WHY: Exercises the real SQL plans, thread-pooled fetches and FastAPI wiring end to end
REFERENCES:
    - attribution_engine/main.py: FastAPI application
    - attribution_engine/deps.py: Dependency injection
    - attribution_engine/services/analytical_store.py: Analytical tables
    - attribution_engine/models.py: Metadata tables
"""

import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment (database.py builds its engines at import time)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("SENTRY_DSN", None)

from attribution_engine.models import Ad, AdAccount, AdCampaign, AdSet, Base, Shop  # noqa: E402
from attribution_engine.services import analytical_store as tables  # noqa: E402
from attribution_engine.services.analytical_store import SqlAnalyticalStore  # noqa: E402
from attribution_engine.services.metadata_store import SqlMetadataStore  # noqa: E402

ACCOUNT_ID = "acct-1"
SHOP_NAME = "demo-shop"
OTHER_SHOP = "other-shop"


def _sqlite_engine(path):
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


def _session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


# ============================================================================
# Row builders (every insert carries every column)
# ============================================================================

def attribution_row(order_id, order_timestamp, channel, **overrides) -> dict:
    row = {
        "shopify_shop": SHOP_NAME,
        "order_id": order_id,
        "order_number": None,
        "order_timestamp": order_timestamp,
        "attribution_window": "28_day",
        "channel": channel,
        "campaign": None,
        "platform_ad_campaign_id": None,
        "platform_ad_set_id": None,
        "platform_ad_id": None,
        "ad_campaign_pk": None,
        "ad_set_pk": None,
        "ad_pk": None,
        "attribution_weight": 1.0,
        "attributed_revenue": 0.0,
        "attributed_cogs": 0.0,
        "attributed_payment_fees": 0.0,
        "attributed_tax": 0.0,
        "is_first_customer_order": False,
    }
    row.update(overrides)
    return row


def event_row(order_id, event_timestamp, channel, **overrides) -> dict:
    row = {
        "shopify_shop": SHOP_NAME,
        "order_id": order_id,
        "order_number": None,
        "order_timestamp": None,
        "event_timestamp": event_timestamp,
        "channel": channel,
        "campaign": None,
        "platform_ad_campaign_id": None,
        "platform_ad_set_id": None,
        "platform_ad_id": None,
        "ad_campaign_pk": None,
        "ad_set_pk": None,
        "ad_pk": None,
        "is_paid_channel": False,
        "is_first_event_overall": False,
        "is_last_event_overall": False,
        "is_last_paid_event_overall": False,
        "has_any_paid_events": True,
        "total_price": 100.0,
        "total_cogs": 20.0,
        "payment_fees": 3.0,
        "total_tax": 10.0,
        "is_first_customer_order": True,
    }
    row.update(overrides)
    return row


def spend_row(date_time, channel, spend, **overrides) -> dict:
    row = {
        "shop_name": SHOP_NAME,
        "date_time": date_time,
        "channel": channel,
        "platform_ad_campaign_id": None,
        "platform_ad_set_id": None,
        "platform_ad_id": None,
        "ad_campaign_pk": None,
        "ad_set_pk": None,
        "ad_pk": None,
        "spend": spend,
        "impressions": 0.0,
        "clicks": 0.0,
        "conversions": 0.0,
    }
    row.update(overrides)
    return row


META_AD = {
    "platform_ad_campaign_id": "111",
    "platform_ad_set_id": "222",
    "platform_ad_id": "333",
    "ad_campaign_pk": 1,
    "ad_set_pk": 1,
    "ad_pk": 1,
}


# ============================================================================
# Seed data
# ============================================================================

def seed_metadata(session_factory) -> None:
    session = session_factory()
    try:
        session.add_all([
            Shop(id=1, account_id=ACCOUNT_ID, shop_name=SHOP_NAME, ignore_vat=False, currency="EUR"),
            Shop(id=2, account_id="acct-2", shop_name=OTHER_SHOP, ignore_vat=True),
            AdAccount(id=1, ad_account_id="act_555", platform="meta-ads"),
            AdCampaign(id=1, ad_campaign_id="111", name="Spring Sale", active=True, budget=100, ad_account_pk=1),
            AdSet(id=1, ad_set_id="222", name="Broad Audience", active=True, budget=40, ad_campaign_pk=1),
            Ad(id=1, ad_id="333", name="Video A", active=True, image_url="https://cdn.example.com/a.jpg", ad_set_pk=1),
        ])
        session.commit()
    finally:
        session.close()


def seed_analytics(engine) -> None:
    may_1 = datetime(2024, 5, 1, 10, 15)
    may_2 = datetime(2024, 5, 2, 15, 30)
    linear_paid = tables.attribution_tables["int_order_attribution_linear_paid"]
    first_click = tables.attribution_tables["int_order_attribution_first_click"]

    with engine.begin() as conn:
        conn.execute(linear_paid.insert(), [
            attribution_row("o1", may_1, "meta-ads", campaign="Spring Sale", order_number="#1001", attribution_weight=0.5,
                            attributed_revenue=50.0, attributed_cogs=10.0, attributed_payment_fees=2.0,
                            attributed_tax=5.0, is_first_customer_order=True, **META_AD),
            attribution_row("o1", may_1, "google-ads", order_number="#1001", attribution_weight=0.5,
                            attributed_revenue=50.0),
            attribution_row("o2", may_2, "email", campaign="newsletter", attributed_revenue=200.0,
                            attributed_cogs=40.0, attributed_payment_fees=4.0, attributed_tax=20.0),
            # Ad without campaign / ad set / ad in the metadata store
            attribution_row("o3", datetime(2024, 5, 2, 16, 0), "meta-ads", attributed_revenue=30.0,
                            platform_ad_id="999", ad_campaign_pk=0, ad_set_pk=0, ad_pk=0),
            # Different window, out of range and other shop: never counted
            attribution_row("o4", may_1, "meta-ads", attribution_window="7_day", attributed_revenue=1000.0),
            attribution_row("o5", datetime(2024, 6, 1), "meta-ads", attributed_revenue=500.0),
            attribution_row("o6", may_1, "meta-ads", shopify_shop=OTHER_SHOP, attributed_revenue=700.0),
        ])
        conn.execute(first_click.insert(), [
            attribution_row("o1", may_1, "google-ads", attributed_revenue=100.0),
        ])
        conn.execute(tables.event_metadata.insert(), [
            event_row("e1", datetime(2024, 5, 1, 8, 0), "meta-ads", is_paid_channel=True,
                      is_first_event_overall=True, **META_AD),
            event_row("e1", datetime(2024, 5, 1, 9, 0), "email", campaign="newsletter"),
            event_row("e1", datetime(2024, 5, 1, 10, 0), "google-ads", is_paid_channel=True,
                      is_last_event_overall=True, is_last_paid_event_overall=True),
        ])
        conn.execute(tables.ad_spend.insert(), [
            spend_row(datetime(2024, 5, 1, 9, 0), "meta-ads", 20.0, impressions=1000.0, clicks=10.0, **META_AD),
            spend_row(datetime(2024, 5, 2, 9, 0), "meta-ads", 20.0, impressions=1000.0, clicks=10.0, **META_AD),
            spend_row(datetime(2024, 5, 1, 0, 0), "tiktok-ads", 15.0),
            spend_row(datetime(2024, 5, 1, 0, 0), "meta-ads", 999.0, shop_name=OTHER_SHOP),
            spend_row(datetime(2024, 1, 10, 0, 0), "meta-ads", 200.0),
        ])
        conn.execute(tables.customer_first_purchase.insert(), [
            {"customer_id": "A", "shopify_shop": SHOP_NAME, "customer_email": "a@example.com",
             "first_order_datetime": datetime(2024, 1, 5, 10, 0)},
            {"customer_id": "B", "shopify_shop": SHOP_NAME, "customer_email": "b@example.com",
             "first_order_datetime": datetime(2024, 1, 20, 18, 0)},
            # Acquired in May: only visible to the dashboard
            {"customer_id": "D", "shopify_shop": SHOP_NAME, "customer_email": "d@example.com",
             "first_order_datetime": may_1},
        ])
        conn.execute(tables.order_enriched.insert(), [
            {"order_id": "c1", "shopify_shop": SHOP_NAME, "customer_email": "a@example.com",
             "order_timestamp": datetime(2024, 1, 5, 10, 0), "total_price": 100.0, "total_tax": 10.0,
             "total_refund_amount": 0.0, "net_revenue": 90.0, "total_cogs": 30.0},
            {"order_id": "c2", "shopify_shop": SHOP_NAME, "customer_email": "b@example.com",
             "order_timestamp": datetime(2024, 1, 20, 18, 0), "total_price": 100.0, "total_tax": 10.0,
             "total_refund_amount": 0.0, "net_revenue": 90.0, "total_cogs": 30.0},
            {"order_id": "c3", "shopify_shop": SHOP_NAME, "customer_email": "a@example.com",
             "order_timestamp": datetime(2024, 2, 11, 9, 0), "total_price": 100.0, "total_tax": 10.0,
             "total_refund_amount": 0.0, "net_revenue": 90.0, "total_cogs": 30.0},
            {"order_id": "d1", "shopify_shop": SHOP_NAME, "customer_email": "d@example.com",
             "order_timestamp": may_1, "total_price": 100.0, "total_tax": 10.0,
             "total_refund_amount": 0.0, "net_revenue": 90.0, "total_cogs": 30.0},
            # Repeat order on another day: not a new customer there
            {"order_id": "d2", "shopify_shop": SHOP_NAME, "customer_email": "d@example.com",
             "order_timestamp": may_2, "total_price": 60.0, "total_tax": 6.0,
             "total_refund_amount": 0.0, "net_revenue": 54.0, "total_cogs": 18.0},
        ])
        conn.execute(tables.customer_first_order_line_items.insert(), [
            {"customer_id": "A", "shopify_product_id": 10, "variant_id": 100},
            {"customer_id": "B", "shopify_product_id": 20, "variant_id": 200},
        ])
        conn.execute(tables.order_metrics.insert(), [
            {"shopify_name": SHOP_NAME, "date": datetime(2024, 5, 1, 10, 0), "orders": 2,
             "revenue": 300.0, "cogs": 60.0, "vat": 30.0, "payment_fees": 6.0},
            {"shopify_name": SHOP_NAME, "date": datetime(2024, 5, 2, 15, 0), "orders": 1,
             "revenue": 200.0, "cogs": 40.0, "vat": 20.0, "payment_fees": 4.0},
            {"shopify_name": OTHER_SHOP, "date": datetime(2024, 5, 1, 10, 0), "orders": 1,
             "revenue": 1000.0, "cogs": 100.0, "vat": 100.0, "payment_fees": 10.0},
        ])
        conn.execute(tables.refunds.insert(), [
            {"shopify_name": SHOP_NAME, "date": datetime(2024, 5, 2, 12, 0), "refunds": 50.0},
        ])


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def metadata_session_factory(tmp_path):
    """File-backed metadata store with shops and ad structure."""
    engine = _sqlite_engine(tmp_path / "metadata.db")
    Base.metadata.create_all(bind=engine)
    factory = _session_factory(engine)
    seed_metadata(factory)
    yield factory
    engine.dispose()


@pytest.fixture
def analytics_session_factory(tmp_path):
    """File-backed analytical store with attribution, events, spend and cohort facts."""
    engine = _sqlite_engine(tmp_path / "analytics.db")
    tables.analytics_metadata.create_all(bind=engine)
    seed_analytics(engine)
    yield _session_factory(engine)
    engine.dispose()


@pytest.fixture
def broken_analytics_session_factory(tmp_path):
    """Analytical store without any tables: every query fails."""
    engine = _sqlite_engine(tmp_path / "empty.db")
    yield _session_factory(engine)
    engine.dispose()


@pytest.fixture
def metadata_store(metadata_session_factory) -> SqlMetadataStore:
    return SqlMetadataStore(metadata_session_factory)


@pytest.fixture
def analytical_store(analytics_session_factory) -> SqlAnalyticalStore:
    return SqlAnalyticalStore(analytics_session_factory)


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(metadata_store, analytical_store):
    """Create FastAPI test application backed by the seeded stores."""
    from attribution_engine.deps import get_analytical_store, get_metadata_store
    from attribution_engine.main import create_app

    test_app = create_app()
    test_app.dependency_overrides[get_metadata_store] = lambda: metadata_store
    test_app.dependency_overrides[get_analytical_store] = lambda: analytical_store
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Create TestClient for HTTP testing."""
    return TestClient(app)


@pytest.fixture
def account_headers():
    return {"X-Account-ID": ACCOUNT_ID}
