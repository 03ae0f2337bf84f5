"""
Telemetry Module
================

Observability for the attribution service.

Components:
- sentry.py: Error tracking

Usage:
    from attribution_engine.telemetry import init_sentry, capture_exception
"""

from attribution_engine.telemetry.sentry import (
    capture_exception,
    init_sentry,
    set_shop_context,
)

__all__ = [
    "init_sentry",
    "set_shop_context",
    "capture_exception",
]
