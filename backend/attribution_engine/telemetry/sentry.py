"""
Sentry Error Tracking
=====================

Centralized error tracking for the attribution service.

Related files:
- main.py: Initializes Sentry in create_app()
- services/analytical_store.py: Reports upstream query failures
- services/metadata_store.py: Reports degraded metadata lookups

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays off when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def get_sentry_dsn() -> Optional[str]:
    """Return the Sentry DSN from the environment, if configured."""
    return os.environ.get("SENTRY_DSN") or None


def init_sentry() -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Call once during application startup.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.
    """
    dsn = get_sentry_dsn()
    if not dsn:
        logger.debug("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,         # INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            release=os.environ.get("RELEASE_VERSION"),
        )
    except Exception as e:
        logger.error("[SENTRY] Failed to initialize: %s", e)
        return False

    logger.debug("[SENTRY] Initialized for %s environment", environment)
    return True


def set_shop_context(account_id: str, shop_name: Optional[str] = None) -> None:
    """Tag subsequent events with the account and resolved shop."""
    sentry_sdk.set_tag("account_id", account_id)
    if shop_name:
        sentry_sdk.set_tag("shop_name", shop_name)


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are caught and handled (or re-raised as a
    domain error) but should still be tracked.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event

    Example:
        try:
            rows = session.execute(stmt)
        except SQLAlchemyError as e:
            capture_exception(e, extra={"operation": "channel_performance"})
            raise UpstreamQueryFailed("channel_performance") from e
    """
    if not sentry_sdk.is_initialized():
        logger.debug("[SENTRY] Not initialized, skipping capture of %s", type(exception).__name__)
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
