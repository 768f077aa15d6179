"""
Idempotency key generation utilities.

Idempotency keys let a caller retry a ledger operation after a timeout
without duplicating its effect.  A transfer's key is stored on the successor
membership under a unique constraint.
"""

from uuid import UUID


def generate_idempotency_key(
    operation: str,
    *parts: UUID | str,
) -> str:
    """
    Generate an idempotency key for a ledger operation.

    Format: operation:part1:part2:...

    Args:
        operation: Namespaced operation name (e.g. "membership.transfer").
        parts: Natural-key components, in a fixed order.

    Returns:
        Idempotency key string.

    Raises:
        ValueError: If no parts are given or a part contains ':'.

    Example:
        >>> generate_idempotency_key("membership.transfer", source_id, group_id)
        "membership.transfer:550e8400-...:7c9e6679-..."
    """
    if not parts:
        raise ValueError("Idempotency key needs at least one natural-key part")
    rendered = [str(p) for p in parts]
    if any(":" in p for p in rendered):
        raise ValueError(f"Idempotency key parts may not contain ':': {rendered}")
    return ":".join([operation, *rendered])


def parse_idempotency_key(key: str) -> tuple[str, tuple[str, ...]]:
    """
    Parse an idempotency key into its operation and parts.

    Raises:
        ValueError: If key format is invalid.
    """
    operation, sep, rest = key.partition(":")
    if not sep or not operation or not rest:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return operation, tuple(rest.split(":"))
