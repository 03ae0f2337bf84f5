"""
Metadata Store
==============

WHAT:
    Reads shops and ad structure (campaigns, ad sets, ads) from the metadata
    database: account -> shop resolution, per-shop profit settings, and
    display metadata lookups by id-set.

WHY:
    Display names, status, budgets and deep-link account ids live outside
    the analytical store. Metrics must never disappear because this store
    is unavailable, so lookups degrade to empty maps instead of failing.

FAILURE POLICY:
    - resolve_shop(): ShopNotFound when no shop is linked (fatal)
    - fetch_*():      MetadataFetchFailed on database errors
    - load_lookup():  absorbs MetadataFetchFailed per entity type, logs a
                      warning, reports to Sentry, returns what it could load

REFERENCES:
    - models.py (ORM tables)
    - engine/hierarchy.py (MetadataLookup consumer)
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from attribution_engine.database import session_scope
from attribution_engine.engine.formulas import ProfitPolicy
from attribution_engine.engine.hierarchy import (
    AdMetadata,
    AdSetMetadata,
    CampaignMetadata,
    MetadataLookup,
)
from attribution_engine.errors import MetadataFetchFailed, ShopNotFound
from attribution_engine.models import Ad, AdAccount, AdCampaign, AdSet, Shop
from attribution_engine.telemetry import capture_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ShopSettings:
    """Per-shop settings resolved once per request."""

    account_id: str
    shop_name: str
    ignore_vat: bool = False
    currency: Optional[str] = None
    timezone: Optional[str] = None

    @property
    def profit_policy(self) -> ProfitPolicy:
        return ProfitPolicy(ignore_vat=self.ignore_vat)


def positive_ids(ids: Iterable[Optional[int]]) -> List[int]:
    """Unique ids > 0, in first-seen order (0 is the unassigned bucket)."""
    return list(dict.fromkeys(value for value in ids if value is not None and value > 0))


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None


class SqlMetadataStore:
    """Metadata lookups backed by the ORM models. One session per call."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # -------------------------------------------------------------------------
    # Shops
    # -------------------------------------------------------------------------

    def resolve_shop(self, account_id: str) -> ShopSettings:
        """Map an account id to its shop.

        Raises:
            ShopNotFound: No shop is linked to the account
        """
        with session_scope(self.session_factory) as db:
            shop = db.execute(
                select(Shop).where(Shop.account_id == account_id)
            ).scalar_one_or_none()
            if shop is None:
                logger.warning("[METADATA] No shop linked to account %s", account_id)
                raise ShopNotFound(account_id)
            return ShopSettings(
                account_id=account_id,
                shop_name=shop.shop_name,
                ignore_vat=bool(shop.ignore_vat),
                currency=shop.currency,
                timezone=shop.timezone,
            )

    def shop_currency(self, shop_name: str) -> Optional[str]:
        """Currency for a shop, or None if it cannot be looked up."""
        try:
            with session_scope(self.session_factory) as db:
                return db.execute(
                    select(Shop.currency).where(Shop.shop_name == shop_name)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning("[METADATA] Failed to fetch currency for %s: %s", shop_name, e)
            return None

    # -------------------------------------------------------------------------
    # Ad structure
    # -------------------------------------------------------------------------

    def fetch_campaigns(self, ids: List[int]) -> Dict[int, CampaignMetadata]:
        if not ids:
            return {}
        stmt = (
            select(
                AdCampaign.id,
                AdCampaign.name,
                AdCampaign.active,
                AdCampaign.budget,
                AdCampaign.ad_campaign_id,
                AdAccount.ad_account_id,
            )
            .outerjoin(AdAccount, AdCampaign.ad_account_pk == AdAccount.id)
            .where(AdCampaign.id.in_(ids))
        )
        rows = self._fetch("campaign", stmt)
        return {
            row.id: CampaignMetadata(
                id=row.id,
                name=row.name,
                active=row.active,
                budget=_to_float(row.budget),
                platform_id=row.ad_campaign_id,
                ad_account_id=row.ad_account_id,
            )
            for row in rows
        }

    def fetch_ad_sets(self, ids: List[int]) -> Dict[int, AdSetMetadata]:
        if not ids:
            return {}
        stmt = select(
            AdSet.id, AdSet.name, AdSet.active, AdSet.budget, AdSet.ad_set_id
        ).where(AdSet.id.in_(ids))
        rows = self._fetch("ad set", stmt)
        return {
            row.id: AdSetMetadata(
                id=row.id,
                name=row.name,
                active=row.active,
                budget=_to_float(row.budget),
                platform_id=row.ad_set_id,
            )
            for row in rows
        }

    def fetch_ads(self, ids: List[int]) -> Dict[int, AdMetadata]:
        if not ids:
            return {}
        stmt = select(Ad.id, Ad.name, Ad.active, Ad.image_url, Ad.ad_id).where(Ad.id.in_(ids))
        rows = self._fetch("ad", stmt)
        return {
            row.id: AdMetadata(
                id=row.id,
                name=row.name,
                active=row.active,
                image_url=row.image_url,
                platform_id=row.ad_id,
            )
            for row in rows
        }

    def _fetch(self, entity_type: str, stmt):
        try:
            with session_scope(self.session_factory) as db:
                return db.execute(stmt).all()
        except SQLAlchemyError as e:
            raise MetadataFetchFailed(entity_type, type(e).__name__) from e

    # -------------------------------------------------------------------------
    # Combined lookup
    # -------------------------------------------------------------------------

    def load_lookup(
        self,
        campaign_ids: Iterable[Optional[int]],
        ad_set_ids: Iterable[Optional[int]],
        ad_ids: Iterable[Optional[int]],
        executor: Optional[Executor] = None,
    ) -> MetadataLookup:
        """Fetch campaign, ad set and ad metadata (in parallel when given an executor).

        Each entity type degrades independently to an empty map on failure.
        """
        campaign_ids = positive_ids(campaign_ids)
        ad_set_ids = positive_ids(ad_set_ids)
        ad_ids = positive_ids(ad_ids)
        logger.info(
            "[METADATA] Fetching metadata: campaigns=%d ad_sets=%d ads=%d",
            len(campaign_ids), len(ad_set_ids), len(ad_ids),
        )

        jobs = [
            (self.fetch_campaigns, campaign_ids),
            (self.fetch_ad_sets, ad_set_ids),
            (self.fetch_ads, ad_ids),
        ]
        if executor is not None:
            futures = [executor.submit(_degrade, fn, ids) for fn, ids in jobs]
            campaigns, ad_sets, ads = [future.result() for future in futures]
        else:
            campaigns, ad_sets, ads = [_degrade(fn, ids) for fn, ids in jobs]

        return MetadataLookup(campaigns=campaigns, ad_sets=ad_sets, ads=ads)


def _degrade(fetch: Callable[[List[int]], Dict[int, T]], ids: List[int]) -> Dict[int, T]:
    try:
        return fetch(ids)
    except MetadataFetchFailed as e:
        logger.warning("[METADATA] %s - falling back to default names", e.message)
        capture_exception(e, extra={"entity_type": e.entity_type, "id_count": len(ids)})
        return {}
