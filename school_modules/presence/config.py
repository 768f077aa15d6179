"""
Presence Configuration Schema.

Settings for the attendance ledger, loaded from the active configuration
set at runtime.
"""

from dataclasses import dataclass
from typing import Self

from school_kernel.logging_config import get_logger

logger = get_logger("modules.presence.config")


@dataclass
class PresenceConfig:
    """Configuration schema for the presence ledger."""

    # Accept attendance for days after the clock's current date
    allow_future_days: bool = False

    def __post_init__(self):
        if not isinstance(self.allow_future_days, bool):
            raise ValueError("allow_future_days must be a boolean")
        logger.info(
            "presence_config_initialized",
            extra={"allow_future_days": self.allow_future_days},
        )

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from YAML)."""
        logger.info(
            "presence_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
