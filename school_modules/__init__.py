"""
School Modules.

Ledger modules layered over the School Kernel.
Each module contains:
- Domain models (frozen DTOs and pure calculations)
- ORM models (persistence)
- Workflows (state machines)
- Configuration schemas
- A service that owns the module's transactions

Modules:
- Roster: Subjects and groups
- Membership: Enrollment, transfer, completion, withdrawal, suspension
- Presence: Daily attendance, statistics, reports
- Billing: Invoices, payments, cancellation, repair
"""

from school_modules import billing, membership, presence, roster

__all__ = [
    "roster",
    "membership",
    "presence",
    "billing",
]
