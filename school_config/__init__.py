"""
school_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive module ``*Config`` objects
    built by ``school_config.bridges``; they never read files themselves.

Architecture position:
    Configuration -- sits above ``school_kernel`` and beside
    ``school_modules``.  The kernel MUST NEVER import from
    ``school_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys in the file.
    - ``KeyError`` -- ``config_id`` missing.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SCHOOL_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying ledger behaviour to the exact configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from school_config.loader import load_config
from school_config.schema import SchoolConfig

_logger = logging.getLogger("school_kernel.config")

# Shipped default configuration
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> SchoolConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.
            Defaults to school_config/sets/default.yaml.

    Returns:
        SchoolConfig -- frozen, with checksum.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has unknown keys.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "SCHOOL_CONFIG_TRACE",
        extra={
            "trace_type": "SCHOOL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "SchoolConfig",
    "get_active_config",
]
