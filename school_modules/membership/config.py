"""
Membership Configuration Schema.

Settings for the enrollment ledger.  Values are loaded from the active
configuration set at runtime (``school_config.bridges``).
"""

from dataclasses import dataclass
from typing import Self

from school_kernel.logging_config import get_logger

logger = get_logger("modules.membership.config")


@dataclass
class MembershipConfig:
    """
    Configuration schema for the membership ledger.

        config = MembershipConfig(enforce_capacity=True)
    """

    # Reject enroll/transfer into a group whose active count reached capacity
    enforce_capacity: bool = False

    # Reason recorded on memberships closed by a subject withdrawal
    subject_withdrawal_reason: str = "Subject record withdrawn"

    def __post_init__(self):
        if not isinstance(self.enforce_capacity, bool):
            raise ValueError("enforce_capacity must be a boolean")
        if not self.subject_withdrawal_reason or not self.subject_withdrawal_reason.strip():
            raise ValueError("subject_withdrawal_reason cannot be empty")

        logger.info(
            "membership_config_initialized",
            extra={"enforce_capacity": self.enforce_capacity},
        )

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from YAML)."""
        logger.info(
            "membership_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
