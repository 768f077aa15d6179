"""
School Kernel - shared plumbing for the school record ledgers.

A small, append-only consistency core with:
- Locked per-tenant counters for document numbers
- Atomic, retry-safe ledger transitions
- Full auditability via hash chain
- Structured JSON logging
- Tenant-scoped actor context
"""

__version__ = "0.1.0"
