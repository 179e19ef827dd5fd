"""Ingestion layer.

This package contains adapters that turn what the backend sends (query
responses, push frames) into normalized domain objects.
"""

__all__: list[str] = []
