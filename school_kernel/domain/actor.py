"""
ActorContext -- the resolved caller identity passed into every ledger call.

Responsibility:
    Carries ``(actor_id, tenant_id, role)`` as resolved by the identity
    layer upstream.  The ledgers trust it completely and never re-derive it;
    their only check is that the record being touched belongs to the
    actor's tenant.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.

Invariants enforced:
    - Tenant scope: ``ensure_tenant`` raises TenantMismatchError whenever the
      target tenant differs from the actor's, unless the role is
      ``superadmin``.

Failure modes:
    - ValueError on an unknown role string.
    - TenantMismatchError (an AuthorizationError) on cross-tenant access.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from school_kernel.exceptions import TenantMismatchError
from school_kernel.logging_config import get_logger

logger = get_logger("domain.actor")


class Role(str, Enum):
    """Actor roles, highest privilege first."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    TEACHER = "teacher"
    PARENT = "parent"
    STUDENT = "student"

    @property
    def level(self) -> int:
        return ROLE_HIERARCHY[self]


# Higher number = more permissions
ROLE_HIERARCHY: dict[Role, int] = {
    Role.SUPERADMIN: 100,
    Role.ADMIN: 50,
    Role.TEACHER: 30,
    Role.PARENT: 20,
    Role.STUDENT: 10,
}

# Roles allowed to act on any tenant's records
CROSS_TENANT_ROLES: frozenset[Role] = frozenset({Role.SUPERADMIN})


@dataclass(frozen=True)
class ActorContext:
    """Authenticated actor for one ledger call.

    Contract: frozen; ``role`` accepts a Role or its string value.
    """

    actor_id: UUID
    tenant_id: UUID
    role: Role = Role.ADMIN

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))

    @property
    def is_cross_tenant(self) -> bool:
        return self.role in CROSS_TENANT_ROLES

    def has_role_at_least(self, role: Role | str) -> bool:
        """True when this actor's role ranks at or above ``role``."""
        return self.role.level >= Role(role).level

    def ensure_tenant(self, target_tenant_id: UUID) -> None:
        """Reject access to another tenant's record.

        Raises:
            TenantMismatchError: target tenant differs and the role does not
                grant cross-tenant access.
        """
        if target_tenant_id == self.tenant_id or self.is_cross_tenant:
            return
        logger.warning(
            "tenant_access_denied",
            extra={
                "actor_id": str(self.actor_id),
                "actor_tenant_id": str(self.tenant_id),
                "target_tenant_id": str(target_tenant_id),
                "role": self.role.value,
            },
        )
        raise TenantMismatchError(self.actor_id, self.tenant_id, target_tenant_id)
