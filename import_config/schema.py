"""
Configuration schema (``import_config.schema``).

Frozen dataclasses describing one import configuration set: engine
tuning, database location, GitHub client settings and the job sources the
engine may drive.  Instances are produced by ``import_config.loader``;
nothing here reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SOURCE_KINDS = ("search", "network")


@dataclass(frozen=True)
class EngineDef:
    """Batch driver and runner tuning."""

    batch_size: int = 5
    safety_margin: int = 5
    poll_delay_ms: int = 500
    activity_limit: int = 50
    wait_for_rate_limit: bool = True


@dataclass(frozen=True)
class DatabaseDef:
    url: str = "sqlite:///directory_import.db"
    echo: bool = False


@dataclass(frozen=True)
class GitHubDef:
    """GitHub client settings.  The token itself lives in ``token_env``."""

    token_env: str = "GITHUB_TOKEN"
    base_url: str = "https://api.github.com"
    timeout_seconds: float = 30.0
    include_social_accounts: bool = True


@dataclass(frozen=True)
class SourceDef:
    """One importable job.

    ``kind == "search"`` lists users by profile location (``location_terms``);
    ``kind == "network"`` lists the following/followers of ``username``.
    """

    job_id: str
    kind: str
    location_terms: tuple[str, ...] = ()
    username: str | None = None
    mode: str = "following"
    page_size: int = 30
    description: str = ""


@dataclass(frozen=True)
class ImportConfig:
    """A complete, validated configuration set."""

    name: str
    version: int = 1
    engine: EngineDef = field(default_factory=EngineDef)
    database: DatabaseDef = field(default_factory=DatabaseDef)
    github: GitHubDef = field(default_factory=GitHubDef)
    sources: tuple[SourceDef, ...] = ()
    checksum: str = ""

    def source(self, job_id: str) -> SourceDef:
        for source in self.sources:
            if source.job_id == job_id:
                return source
        raise KeyError(f"No source configured for job '{job_id}'")

    @property
    def job_ids(self) -> tuple[str, ...]:
        return tuple(s.job_id for s in self.sources)
