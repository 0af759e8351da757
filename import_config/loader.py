"""
Configuration Loader (``import_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into typed
``import_config.schema`` dataclass instances.  Runtime callers go through
``import_config.get_active_config()``.

Invariants enforced
-------------------
* Malformed structure raises ``ValueError`` or ``KeyError`` with a
  descriptive message; required keys have no silent defaults.
* Out-of-range engine parameters raise ``ConfigError``.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from import_kernel.exceptions import ConfigError

from import_config.schema import (
    SOURCE_KINDS,
    DatabaseDef,
    EngineDef,
    GitHubDef,
    ImportConfig,
    SourceDef,
)

_NETWORK_MODES = ("following", "followers", "both")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine(data: dict[str, Any]) -> EngineDef:
    """Parse an EngineDef; ConfigError for out-of-range values."""
    engine = EngineDef(
        batch_size=int(data.get("batch_size", 5)),
        safety_margin=int(data.get("safety_margin", 5)),
        poll_delay_ms=int(data.get("poll_delay_ms", 500)),
        activity_limit=int(data.get("activity_limit", 50)),
        wait_for_rate_limit=bool(data.get("wait_for_rate_limit", True)),
    )
    if engine.batch_size <= 0:
        raise ConfigError(f"engine.batch_size must be positive: {engine.batch_size}")
    if engine.safety_margin < 0:
        raise ConfigError(
            f"engine.safety_margin must be non-negative: {engine.safety_margin}"
        )
    if engine.poll_delay_ms < 0:
        raise ConfigError(
            f"engine.poll_delay_ms must be non-negative: {engine.poll_delay_ms}"
        )
    if engine.activity_limit <= 0:
        raise ConfigError(
            f"engine.activity_limit must be positive: {engine.activity_limit}"
        )
    return engine


def parse_database(data: dict[str, Any]) -> DatabaseDef:
    return DatabaseDef(
        url=data.get("url", DatabaseDef.url),
        echo=bool(data.get("echo", False)),
    )


def parse_github(data: dict[str, Any]) -> GitHubDef:
    return GitHubDef(
        token_env=data.get("token_env", GitHubDef.token_env),
        base_url=data.get("base_url", GitHubDef.base_url),
        timeout_seconds=float(data.get("timeout_seconds", GitHubDef.timeout_seconds)),
        include_social_accounts=bool(data.get("include_social_accounts", True)),
    )


def parse_source(data: dict[str, Any]) -> SourceDef:
    """
    Parse a SourceDef from a dict.

    Raises:
        KeyError: if ``job_id`` or ``kind`` is missing.
        ValueError: if the kind-specific fields are missing or invalid.
    """
    kind = data["kind"]
    if kind not in SOURCE_KINDS:
        raise ValueError(
            f"Source '{data['job_id']}': unknown kind {kind!r}; "
            f"expected one of {SOURCE_KINDS}"
        )

    source = SourceDef(
        job_id=data["job_id"],
        kind=kind,
        location_terms=tuple(data.get("location_terms", ())),
        username=data.get("username"),
        mode=data.get("mode", "following"),
        page_size=int(data.get("page_size", 30)),
        description=data.get("description", ""),
    )

    if source.kind == "search" and not source.location_terms:
        raise ValueError(f"Source '{source.job_id}': search requires location_terms")
    if source.kind == "network":
        if not source.username:
            raise ValueError(f"Source '{source.job_id}': network requires username")
        if source.mode not in _NETWORK_MODES:
            raise ValueError(
                f"Source '{source.job_id}': unknown mode {source.mode!r}"
            )
    if source.page_size <= 0:
        raise ValueError(
            f"Source '{source.job_id}': page_size must be positive"
        )
    return source


def parse_config(data: dict[str, Any]) -> ImportConfig:
    """Parse a whole configuration set.  Duplicate job ids are rejected."""
    sources = tuple(parse_source(s) for s in data.get("sources", ()))
    seen: set[str] = set()
    for source in sources:
        if source.job_id in seen:
            raise ValueError(f"Duplicate source job_id: {source.job_id!r}")
        seen.add(source.job_id)

    return ImportConfig(
        name=data["name"],
        version=int(data.get("version", 1)),
        engine=parse_engine(data.get("engine") or {}),
        database=parse_database(data.get("database") or {}),
        github=parse_github(data.get("github") or {}),
        sources=sources,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
