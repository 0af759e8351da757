"""
Source protocols, the ImportSource bundle, and SourceRegistry.

Contract:
    ``ListFetcher`` enumerates candidate identities page by page.
    ``ItemProcessor`` turns one identity into a stored/merged entity.
    ``ImportSource`` pairs the two under a job id; ``SourceRegistry`` maps
    job ids to sources for the driver.

Architecture:
    import_jobs/sources.  Only imports from import_jobs.domain and stdlib.
    Concrete adapters (e.g. sources.github) implement these protocols.

Invariants enforced:
    - One source per job id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from import_kernel.exceptions import SourceNotRegisteredError

from import_jobs.domain.types import BasicIdentity, ItemResult, ListPage


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class ListFetcher(Protocol):
    """Enumerates candidate identities.

    Contract:
        - ``page_size``: number of identities per full page.  Pages may
          come back shorter; the driver tracks its position per page.
        - ``fetch(page)``: 1-based page; an empty ``identities`` tuple
          signals exhaustion.  ``total`` is the upstream total count.

    Raises:
        RateLimitedError: the listing call itself hit the quota.
        Any other exception: listing failed (job moves to ERROR).
    """

    @property
    def page_size(self) -> int: ...

    def fetch(self, page: int) -> ListPage: ...


@runtime_checkable
class ItemProcessor(Protocol):
    """Fetches detail for one identity and merges/persists it.

    Raises:
        RateLimitedError: stop the batch and pause; item is retried later.
        Any other exception: the item counts as an error; batch continues.
    """

    def process(self, identity: BasicIdentity) -> ItemResult: ...


class ProfileSink(Protocol):
    """Decides how a fetched profile becomes a directory entry.

    Merge and fuzzy-matching heuristics live behind this seam.
    """

    def __call__(self, profile: dict[str, Any]) -> ItemResult: ...


# =============================================================================
# ImportSource + SourceRegistry
# =============================================================================


@dataclass(frozen=True)
class ImportSource:
    """A fetcher and processor bound to one job id."""

    job_id: str
    fetcher: ListFetcher
    processor: ItemProcessor
    description: str = ""


class SourceRegistry:
    """Registry mapping job ids to ImportSource bundles.

    Contract:
        - ``register()`` adds a source; raises ValueError on duplicate.
        - ``get()`` retrieves by job id; raises SourceNotRegisteredError.
        - ``list_jobs()`` returns all registered job ids, sorted.
    """

    def __init__(self) -> None:
        self._sources: dict[str, ImportSource] = {}

    def register(self, source: ImportSource) -> None:
        if source.job_id in self._sources:
            raise ValueError(
                f"Import source '{source.job_id}' is already registered"
            )
        self._sources[source.job_id] = source

    def get(self, job_id: str) -> ImportSource:
        try:
            return self._sources[job_id]
        except KeyError:
            raise SourceNotRegisteredError(job_id, self.list_jobs()) from None

    def list_jobs(self) -> tuple[str, ...]:
        return tuple(sorted(self._sources.keys()))

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._sources
