"""Marketing attribution and metrics aggregation service."""
