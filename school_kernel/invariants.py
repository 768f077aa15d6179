"""
Ledger Invariants Contract.

These invariants are structural law for the three school ledgers. No
configuration value may switch them off.

This module only declares them. Enforcement is distributed across the
membership, presence and billing services, the unique constraints on their
tables, and SequenceService.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the ledgers."""

    SINGLE_ACTIVE_MEMBERSHIP = "single_active_membership"
    """At most one active membership per (subject, group, period).
    Enforced by a partial unique index on memberships."""

    MONOTONIC_MEMBERSHIP_STATUS = "monotonic_membership_status"
    """Only active memberships transition; every other status is terminal.
    Enforced by MEMBERSHIP_WORKFLOW in MembershipService."""

    TRANSFER_LINKAGE = "transfer_linkage"
    """A transfer leaves exactly one transferred source and one active
    successor linked by successor_membership_id."""

    SINGLE_PRESENCE_PER_DAY = "single_presence_per_day"
    """At most one presence record per (subject, day). Enforced by a unique
    constraint on presence_records."""

    INVOICE_BALANCE = "invoice_balance"
    """balance == principal - amount_paid and amount_paid >= 0 after every
    invoice mutation."""

    PAYMENT_SUM = "payment_sum"
    """amount_paid equals the sum of counted payments on the invoice.
    Restored by BillingService.repair."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Invoice, payment and audit numbers come from locked counter rows,
    never from reading the current maximum."""

    AUDIT_CHAIN = "audit_chain"
    """Every audit event hashes its predecessor."""


# All invariants as a frozenset for programmatic checks.
ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "school_modules",
    "school_config",
)
