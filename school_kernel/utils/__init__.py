"""Utility functions for the school kernel."""

from school_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload
from school_kernel.utils.idempotency import generate_idempotency_key, parse_idempotency_key

__all__ = [
    "canonicalize_json",
    "hash_audit_event",
    "hash_payload",
    "generate_idempotency_key",
    "parse_idempotency_key",
]
