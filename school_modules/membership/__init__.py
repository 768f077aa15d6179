"""
Membership Module.

Enrollment of subjects into groups and the lifecycle of each enrollment.
A transfer closes one membership and opens its successor in one step.
"""

from school_modules.membership.config import MembershipConfig
from school_modules.membership.models import Membership, MembershipStatus, TransferResult
from school_modules.membership.workflows import MEMBERSHIP_WORKFLOW

__all__ = [
    "Membership",
    "MembershipStatus",
    "TransferResult",
    "MEMBERSHIP_WORKFLOW",
    "MembershipConfig",
]
