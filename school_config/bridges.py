"""
Config -> Module Bridges.

Functions that convert a ``SchoolConfig`` into the module configuration
dataclasses.  They live here (the producer) so the modules never read
configuration files themselves.

Usage:
    from school_config import get_active_config
    from school_config.bridges import build_billing_config

    config = get_active_config()
    billing = BillingService(session, config=build_billing_config(config))
"""

from __future__ import annotations

from dataclasses import asdict

from school_config.schema import SchoolConfig
from school_kernel.logging_config import configure_logging
from school_modules.billing.config import BillingConfig
from school_modules.membership.config import MembershipConfig
from school_modules.presence.config import PresenceConfig


def build_billing_config(config: SchoolConfig) -> BillingConfig:
    """Billing settings; raises ValueError when a value is out of range."""
    return BillingConfig.from_dict(asdict(config.billing))


def build_membership_config(config: SchoolConfig) -> MembershipConfig:
    return MembershipConfig.from_dict(asdict(config.membership))


def build_presence_config(config: SchoolConfig) -> PresenceConfig:
    return PresenceConfig.from_dict(asdict(config.presence))


def apply_logging_config(config: SchoolConfig) -> None:
    """Configure the ledger log hierarchy at the configured level."""
    configure_logging(level=config.logging.level.upper())
