"""
SchoolConfig schema.

The human-authored configuration for the school ledgers, one section per
module.  YAML is parsed into these types by the loader; bridges turn each
section into the module's ``*Config`` dataclass.

Sections hold plain values only.  Range and format checks live in the
module config classes, which run them in ``__post_init__``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BillingSection:
    """Invoice and payment settings."""

    default_currency: str = "USD"
    invoice_prefix: str = "INV"
    payment_prefix: str = "PAY"
    number_width: int = 5
    allow_overpayment: bool = True


@dataclass(frozen=True)
class MembershipSection:
    """Enrollment settings."""

    enforce_capacity: bool = False
    subject_withdrawal_reason: str = "Subject record withdrawn"


@dataclass(frozen=True)
class PresenceSection:
    """Attendance settings."""

    allow_future_days: bool = False


@dataclass(frozen=True)
class LoggingSection:
    """Log output settings."""

    level: str = "INFO"


@dataclass(frozen=True)
class SchoolConfig:
    """
    A complete configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON form of the source
    mapping, so two files with the same content carry the same checksum.
    """

    config_id: str
    version: int
    billing: BillingSection = field(default_factory=BillingSection)
    membership: MembershipSection = field(default_factory=MembershipSection)
    presence: PresenceSection = field(default_factory=PresenceSection)
    logging: LoggingSection = field(default_factory=LoggingSection)
    checksum: str = ""
