"""
Pure domain layer.

Value objects and helpers with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (SystemClock is the single sanctioned exception for time)

All domain objects are immutable and deterministic.
"""

from school_kernel.domain.actor import ActorContext, Role
from school_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from school_kernel.domain.values import DateRange, normalize_day
from school_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "ActorContext",
    "Clock",
    "DateRange",
    "DeterministicClock",
    "Guard",
    "Role",
    "SystemClock",
    "Transition",
    "Workflow",
    "normalize_day",
]
