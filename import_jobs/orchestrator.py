"""
ImportOrchestrator -- DI container for the import engine.

Contract:
    Wires the SourceRegistry, the shared ActivityLog and the Clock into
    ImportJobDriver and ImportJobRunner instances.  Single place where all
    import dependencies are composed.

Architecture: import_jobs (top-level).  The canonical entry point for
    configuring and running import jobs; the only module in import_jobs
    that reads ``import_config`` types.

Invariants enforced:
    - Clock injection: every driver and runner receives the same Clock.
    - One ActivityLog per orchestrator, shared by all drivers it creates,
      so the progress view survives the session-per-tick runner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from sqlalchemy.orm import Session

from import_kernel.domain.clock import Clock, SystemClock
from import_kernel.logging_config import get_logger

from import_jobs.domain.types import DEFAULT_POLL_DELAY_MS, DriveOptions
from import_jobs.services.activity import ActivityLog
from import_jobs.services.driver import ImportJobDriver
from import_jobs.services.runner import ImportJobRunner, JobLocks
from import_jobs.sources.base import ImportSource, ProfileSink, SourceRegistry
from import_jobs.sources.github import (
    CollectingProfileSink,
    GitHubClient,
    GitHubNetworkFetcher,
    GitHubProfileProcessor,
    GitHubUserSearchFetcher,
)

if TYPE_CHECKING:
    from import_config.schema import ImportConfig, SourceDef

logger = get_logger("jobs.orchestrator")


def build_github_source(
    source_def: SourceDef,
    client: GitHubClient,
    sink: ProfileSink,
    include_social_accounts: bool = True,
) -> ImportSource:
    """Build the ImportSource a configured GitHub job describes."""
    if source_def.kind == "search":
        fetcher = GitHubUserSearchFetcher(
            client, source_def.location_terms, page_size=source_def.page_size,
        )
    elif source_def.kind == "network":
        fetcher = GitHubNetworkFetcher(
            client,
            source_def.username,
            mode=source_def.mode,
            page_size=source_def.page_size,
        )
    else:
        raise ValueError(f"Unknown source kind: {source_def.kind!r}")

    return ImportSource(
        job_id=source_def.job_id,
        fetcher=fetcher,
        processor=GitHubProfileProcessor(
            client, sink, include_social_accounts=include_social_accounts,
        ),
        description=source_def.description,
    )


def build_github_registry(
    config: ImportConfig,
    client: GitHubClient,
    sink: ProfileSink,
) -> SourceRegistry:
    """A SourceRegistry with one GitHub source per configured job."""
    registry = SourceRegistry()
    for source_def in config.sources:
        registry.register(
            build_github_source(
                source_def,
                client,
                sink,
                include_social_accounts=config.github.include_social_accounts,
            )
        )
    return registry


class ImportOrchestrator:
    """DI container for the import engine.

    Contract:
        - ``from_session()`` creates an orchestrator around a registry.
        - ``from_config()`` additionally builds GitHub sources and engine
          defaults from an ImportConfig.
        - ``create_driver()`` returns an ImportJobDriver for ad-hoc calls.
        - ``create_runner()`` returns an ImportJobRunner for polling use.

    Non-goals:
        - Does NOT start runners automatically -- caller decides.
        - Does NOT manage session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        sources: SourceRegistry,
        clock: Clock | None = None,
        activity: ActivityLog | None = None,
        defaults: DriveOptions | None = None,
        poll_delay_ms: int = DEFAULT_POLL_DELAY_MS,
        wait_for_rate_limit: bool = True,
    ) -> None:
        self._session = session
        self._sources = sources
        self._clock = clock or SystemClock()
        self._activity = activity or ActivityLog()
        self._defaults = defaults or DriveOptions()
        self._poll_delay_ms = poll_delay_ms
        self._wait_for_rate_limit = wait_for_rate_limit
        self._locks = JobLocks()

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        sources: SourceRegistry | None = None,
        clock: Clock | None = None,
    ) -> ImportOrchestrator:
        """Create an orchestrator with default engine settings.

        Args:
            session: SQLAlchemy session for persistence.
            sources: Registered import sources.  Empty if None.
            clock: Optional clock for deterministic testing.
        """
        return cls(
            session=session,
            sources=sources if sources is not None else SourceRegistry(),
            clock=clock or SystemClock(),
        )

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: ImportConfig,
        token: str | None = None,
        clock: Clock | None = None,
        client: GitHubClient | None = None,
        sink: ProfileSink | None = None,
    ) -> ImportOrchestrator:
        """Create an orchestrator for the GitHub jobs ``config`` declares.

        Args:
            token: GitHub token (see ``import_config.github_token``).
            client: Optional pre-built client (tests).
            sink: Where fetched profiles go.  Defaults to an in-memory
                CollectingProfileSink.
        """
        effective_clock = clock or SystemClock()
        github_client = client or GitHubClient(
            token=token,
            base_url=config.github.base_url,
            timeout=config.github.timeout_seconds,
            clock=effective_clock,
        )
        registry = build_github_registry(
            config, github_client, sink if sink is not None else CollectingProfileSink(),
        )
        engine = config.engine

        logger.info(
            "import_orchestrator_configured",
            extra={
                "config_name": config.name,
                "jobs": list(registry.list_jobs()),
                "authenticated": github_client.authenticated,
            },
        )
        return cls(
            session=session,
            sources=registry,
            clock=effective_clock,
            activity=ActivityLog(limit=engine.activity_limit),
            defaults=DriveOptions(
                batch_size=engine.batch_size, safety_margin=engine.safety_margin,
            ),
            poll_delay_ms=engine.poll_delay_ms,
            wait_for_rate_limit=engine.wait_for_rate_limit,
        )

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def create_driver(self, session: Session | None = None) -> ImportJobDriver:
        """Create an ImportJobDriver wired with the orchestrator's dependencies.

        Args:
            session: Optional session override. If None, uses the
                orchestrator's session.
        """
        return ImportJobDriver(
            session=session or self._session,
            sources=self._sources,
            clock=self._clock,
            activity=self._activity,
            defaults=self._defaults,
        )

    # -------------------------------------------------------------------------
    # Runner
    # -------------------------------------------------------------------------

    def create_runner(
        self,
        session_factory: Callable[[], Session],
        poll_delay_ms: int | None = None,
        options: DriveOptions | None = None,
    ) -> ImportJobRunner:
        """Create an ImportJobRunner that opens a new session per call.

        Args:
            session_factory: Callable returning new sessions.
            poll_delay_ms: Override the configured delay between batches.
            options: Override the default DriveOptions.
        """
        return ImportJobRunner(
            session_factory=session_factory,
            driver_factory=self.create_driver,
            clock=self._clock,
            poll_delay_ms=self._poll_delay_ms if poll_delay_ms is None else poll_delay_ms,
            options=options or self._defaults,
            wait_for_rate_limit=self._wait_for_rate_limit,
            locks=self._locks,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def sources(self) -> SourceRegistry:
        return self._sources

    @property
    def activity(self) -> ActivityLog:
        return self._activity

    @property
    def defaults(self) -> DriveOptions:
        return self._defaults
