"""Database engines and session factories.

WHAT:
    Provides SQLAlchemy engines and session factories for the two stores the
    service reads from, plus FastAPI dependencies for both.

WHY:
    - Metadata store: shops, ad accounts, campaigns, ad sets, ads (ORM)
    - Analytical store: attribution, events, ad spend and cohort facts (Core)
    They are usually different databases in production, so each gets its
    own engine. Locally both default to DATABASE_URL.

ARCHITECTURE:
    ┌──────────────────┐     ┌─────────────────────┐
    │  engine          │     │  analytics_engine   │
    │  (DATABASE_URL)  │     │  (ANALYTICS_...)    │
    └────────┬─────────┘     └──────────┬──────────┘
             │                          │
    ┌────────▼─────────┐     ┌──────────▼──────────┐
    │  SessionLocal    │     │ AnalyticsSession... │
    └────────┬─────────┘     └──────────┬──────────┘
             │                          │
    ┌────────▼─────────┐     ┌──────────▼──────────┐
    │  get_db()        │     │  get_analytics_db() │
    └──────────────────┘     └─────────────────────┘

REFERENCES:
    - services/metadata_store.py, services/analytical_store.py
    - deps.py (wires the session factories into the services)
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    # Attempt to load from local .env for developer convenience
    from attribution_engine.utils.env import load_env_file, require_env
    load_env_file()
    return require_env("DATABASE_URL")


def _get_analytics_database_url(default_url: str) -> str:
    return os.getenv("ANALYTICS_DATABASE_URL") or default_url


def build_engine(url: str) -> Engine:
    """Create an engine with pool settings suited to the backend.

    NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow
    and must allow use from worker threads.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


DATABASE_URL = _get_database_url()
ANALYTICS_DATABASE_URL = _get_analytics_database_url(DATABASE_URL)

engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

if ANALYTICS_DATABASE_URL == DATABASE_URL:
    analytics_engine = engine
else:
    analytics_engine = build_engine(ANALYTICS_DATABASE_URL)
AnalyticsSessionLocal = sessionmaker(bind=analytics_engine, autoflush=False, autocommit=False)


# Base is defined in attribution_engine.models to ensure a single registry
from .models import Base  # noqa: E402,F401


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a metadata-store session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_analytics_db() -> Generator[Session, None, None]:
    """Yield an analytical-store session for FastAPI dependency injection."""
    db = AnalyticsSessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# CONTEXT MANAGERS (for non-FastAPI usage)
# =============================================================================

@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Open a session from `factory` and always close it.

    Used by worker threads, which must never share a session.

    Example:
        with session_scope(AnalyticsSessionLocal) as db:
            rows = db.execute(stmt).all()
    """
    db = factory()
    try:
        yield db
    finally:
        db.close()
