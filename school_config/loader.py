"""
Configuration Loader (``school_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``school_config.schema`` dataclasses.  Runtime callers go through
``school_config.get_active_config()``; this module is the tooling behind
it.

Invariants enforced
-------------------
* Unknown keys raise ``ValueError``; a typo never silently falls back to a
  default.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from school_config.schema import (
    BillingSection,
    LoggingSection,
    MembershipSection,
    PresenceSection,
    SchoolConfig,
)

_SECTIONS: dict[str, type] = {
    "billing": BillingSection,
    "membership": MembershipSection,
    "presence": PresenceSection,
    "logging": LoggingSection,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(name: str, data: dict[str, Any] | None) -> Any:
    section_cls = _SECTIONS[name]
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(data).__name__}")
    allowed = {f.name for f in fields(section_cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    return section_cls(**data)


def parse_config(data: dict[str, Any]) -> SchoolConfig:
    """
    Parse a full ``SchoolConfig`` from a dict.

    Missing sections take their defaults.

    Raises:
        KeyError: ``config_id`` is missing.
        ValueError: unknown top-level key or section key.
    """
    allowed = {"config_id", "version", *_SECTIONS}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    return SchoolConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        billing=_parse_section("billing", data.get("billing")),
        membership=_parse_section("membership", data.get("membership")),
        presence=_parse_section("presence", data.get("presence")),
        logging=_parse_section("logging", data.get("logging")),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> SchoolConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
