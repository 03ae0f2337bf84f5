"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database import AnalyticsSessionLocal, SessionLocal
from .errors import InvalidFilter
from .services.analytical_store import SqlAnalyticalStore
from .services.analytics_service import AnalyticsService
from .services.cohort_service import CohortAnalyticsService
from .services.dashboard_service import DashboardService
from .services.metadata_store import SqlMetadataStore
from .services.row_source import MetricRowSource


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    DATABASE_URL: Optional[str] = None
    # Analytical store; falls back to DATABASE_URL when unset
    ANALYTICS_DATABASE_URL: Optional[str] = None
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    DEFAULT_ATTRIBUTION_WINDOW: str = "28_day"
    MAX_PARALLEL_FETCHES: int = 3
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_account_id(
    x_account_id: Optional[str] = Header(default=None, alias="X-Account-ID"),
) -> str:
    """Resolve the caller's account from the `X-Account-ID` header.

    Authentication happens upstream; this only requires the header to exist.
    """
    if not x_account_id or not x_account_id.strip():
        raise InvalidFilter("Missing X-Account-ID header")
    return x_account_id.strip()


def get_metadata_store() -> SqlMetadataStore:
    return SqlMetadataStore(SessionLocal)


def get_analytical_store() -> SqlAnalyticalStore:
    return SqlAnalyticalStore(AnalyticsSessionLocal)


def get_analytics_service(
    metadata_store: SqlMetadataStore = Depends(get_metadata_store),
    store: SqlAnalyticalStore = Depends(get_analytical_store),
    settings: Settings = Depends(get_settings),
) -> AnalyticsService:
    return AnalyticsService(
        metadata_store=metadata_store,
        row_source=MetricRowSource(store),
        max_workers=settings.MAX_PARALLEL_FETCHES,
        default_window=settings.DEFAULT_ATTRIBUTION_WINDOW,
    )


def get_cohort_service(
    metadata_store: SqlMetadataStore = Depends(get_metadata_store),
    store: SqlAnalyticalStore = Depends(get_analytical_store),
    settings: Settings = Depends(get_settings),
) -> CohortAnalyticsService:
    return CohortAnalyticsService(
        metadata_store=metadata_store,
        store=store,
        max_workers=settings.MAX_PARALLEL_FETCHES,
    )


def get_dashboard_service(
    metadata_store: SqlMetadataStore = Depends(get_metadata_store),
    store: SqlAnalyticalStore = Depends(get_analytical_store),
    settings: Settings = Depends(get_settings),
) -> DashboardService:
    return DashboardService(
        metadata_store=metadata_store,
        store=store,
        max_workers=settings.MAX_PARALLEL_FETCHES,
    )
