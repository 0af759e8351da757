"""
import_jobs.sources -- Source protocols, registry, and concrete adapters.

ZERO db imports in base.py.  Adapter modules (github.py) talk to their
external service and translate its responses into domain types.
"""

from import_jobs.sources.base import (
    ImportSource,
    ItemProcessor,
    ListFetcher,
    ProfileSink,
    SourceRegistry,
)

__all__ = [
    "ImportSource",
    "ItemProcessor",
    "ListFetcher",
    "ProfileSink",
    "SourceRegistry",
]
