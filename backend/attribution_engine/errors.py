"""
Engine Exceptions
=================

Custom exception types raised by the attribution engine and its data
collaborators.

WHY THIS FILE EXISTS
--------------------
The engine has four distinct failure modes, and each one is handled
differently:
- InvalidFilter: caller asked for something we don't support (fatal, 400)
- ShopNotFound: account -> shop resolution failed (fatal, 404)
- UpstreamQueryFailed: analytical store error or timeout (fatal, 502)
- MetadataFetchFailed: display metadata unavailable (degrades, never fatal)

Partial attribution data would silently understate performance, so an
upstream failure always fails the whole request. Metadata only affects
display names, so it never does.

RELATED FILES
-------------
- main.py: Maps AttributionEngineError to JSON responses
- services/analytical_store.py: Raises UpstreamQueryFailed
- services/metadata_store.py: Raises and absorbs MetadataFetchFailed
"""

from typing import Optional


class AttributionEngineError(Exception):
    """
    Base exception for all engine errors.

    WHAT:
        Parent class carrying a human-readable message and the HTTP status
        the API layer should answer with.

    WHY:
        Lets the API layer handle every engine failure with one handler.
    """

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message, "statusCode": self.status_code}


class InvalidFilter(AttributionEngineError):
    """Unsupported filter, model, window, granularity or date range."""

    status_code = 400


class ShopNotFound(AttributionEngineError):
    """No shop is linked to the requested account."""

    status_code = 404

    def __init__(self, account_id: str):
        super().__init__("Shop not found for account")
        self.account_id = account_id


class UpstreamQueryFailed(AttributionEngineError):
    """
    The analytical store failed or timed out.

    RECOVERY:
        None inside the engine. Retry policy belongs to the caller; the
        original driver error is chained as __cause__.
    """

    status_code = 502

    def __init__(self, operation: str, detail: Optional[str] = None):
        message = f"Analytical store query failed during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation


class MetadataFetchFailed(AttributionEngineError):
    """
    Campaign / ad set / ad metadata could not be loaded.

    RECOVERY:
        Caught by the metadata store, logged, and replaced by an empty
        lookup so nodes fall back to "<Type> <platform_id>" names.
    """

    status_code = 503

    def __init__(self, entity_type: str, detail: Optional[str] = None):
        message = f"Failed to fetch {entity_type} metadata"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.entity_type = entity_type
