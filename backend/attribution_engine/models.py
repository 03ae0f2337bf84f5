"""SQLAlchemy ORM models for the metadata store.

The metadata store holds the slow-changing records the engine joins onto
analytical rows: shops (profit settings, currency, timezone) and the ad
structure (ad accounts, campaigns, ad sets, ads) used for display names,
status, budgets and deep links.

Analytical facts (attribution, events, spend, cohorts) are NOT ORM models;
they live in `services/analytical_store.py` as Core tables.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import declarative_base, relationship


# Single Base used by the entire application
Base = declarative_base()


class Shop(Base):
    """A merchant shop and the account that owns it.

    `account_id` is the opaque identifier callers send; `shop_name` is the
    key used by every analytical table.
    """
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String, unique=True, index=True, nullable=False)
    shop_name = Column(String, unique=True, index=True, nullable=False)
    ignore_vat = Column(Boolean, default=False, nullable=False)
    currency = Column(String, nullable=True)  # ISO 4217, e.g. "EUR"
    timezone = Column(String, nullable=True)  # IANA name, e.g. "Europe/Berlin"
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return self.shop_name


class AdAccount(Base):
    __tablename__ = "ad_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_account_id = Column(String, nullable=False)  # Platform id, Meta uses "act_<id>"
    platform = Column(String, nullable=True)

    campaigns = relationship("AdCampaign", back_populates="ad_account")


class AdCampaign(Base):
    __tablename__ = "ad_campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_campaign_id = Column(String, nullable=True)  # Platform campaign id
    name = Column(String, nullable=True)
    active = Column(Boolean, default=False)
    budget = Column(Numeric(18, 2), nullable=True)
    ad_account_pk = Column(Integer, ForeignKey("ad_accounts.id"), nullable=True)

    ad_account = relationship("AdAccount", back_populates="campaigns")
    ad_sets = relationship("AdSet", back_populates="campaign")


class AdSet(Base):
    __tablename__ = "ad_sets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_set_id = Column(String, nullable=True)  # Platform ad set id
    name = Column(String, nullable=True)
    active = Column(Boolean, default=False)
    budget = Column(Numeric(18, 2), nullable=True)
    ad_campaign_pk = Column(Integer, ForeignKey("ad_campaigns.id"), nullable=True)

    campaign = relationship("AdCampaign", back_populates="ad_sets")


class Ad(Base):
    __tablename__ = "ads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_id = Column(String, nullable=True)  # Platform ad id
    name = Column(String, nullable=True)
    active = Column(Boolean, default=False)
    image_url = Column(String, nullable=True)
    ad_set_pk = Column(Integer, ForeignKey("ad_sets.id"), nullable=True)
