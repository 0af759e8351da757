"""
import_config -- single public entrypoint for import configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Returns an ``ImportConfig`` parsed from a
    YAML configuration set.  Secrets never live in YAML: the GitHub token
    is read from the environment variable the set names.

Architecture position:
    Sits above ``import_kernel`` and beside ``import_jobs``.  Neither the
    kernel nor the engine imports from ``import_config``; the orchestrator
    and scripts translate an ``ImportConfig`` into engine inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- structural problems in the file.
    - ``ConfigError`` -- engine parameters out of range.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from import_config.loader import load_yaml_file, parse_config
from import_config.schema import ImportConfig

_logger = logging.getLogger("import_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ImportConfig:
    """Load and validate a configuration set.

    Args:
        config_path: YAML file to load.  Defaults to
            import_config/sets/default.yaml.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "IMPORT_CONFIG_TRACE",
        extra={
            "trace_type": "IMPORT_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "source_count": len(config.sources),
        },
    )
    return config


def github_token(config: ImportConfig) -> str | None:
    """The GitHub token from the environment variable ``config`` names."""
    return os.environ.get(config.github.token_env) or None


__all__ = ["ImportConfig", "get_active_config", "github_token"]
