"""
Module ORM Registry (``school_modules._orm_registry``).

Responsibility
--------------
Import every module ORM model so ``Base.metadata`` holds the full schema,
and install the field-level immutability rules the module tables carry.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``school_modules``
packages and from ``school_kernel.db`` (allowed: modules -> kernel).
MUST NOT be imported by ``school_kernel``.

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_all_tables()`` and
``register_module_immutability()``.
"""

from school_kernel.logging_config import get_logger

logger = get_logger("modules.orm_registry")


def import_all_orm_models() -> None:
    """Import kernel models and every ``school_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    # Kernel tables first (audit_events, sequence_counters)
    import school_kernel.models  # noqa: F401
    # fmt: off
    import school_modules.roster.orm  # noqa: F401
    import school_modules.membership.orm  # noqa: F401
    import school_modules.presence.orm  # noqa: F401
    import school_modules.billing.orm  # noqa: F401
    # fmt: on


def register_module_immutability() -> None:
    """
    Freeze the facts of module ledger rows after insert.

    Kernel listeners (audit events) are registered as well.  Idempotent.
    """
    from school_kernel.db.immutability import (
        protect_fields,
        register_immutability_listeners,
    )
    from school_modules.billing.orm import InvoiceLineModel, PaymentModel
    from school_modules.membership.orm import MembershipModel

    register_immutability_listeners()
    protect_fields(
        PaymentModel,
        "Payment",
        ("amount", "invoice_id", "payment_number", "tenant_id", "subject_id", "reference"),
    )
    protect_fields(
        InvoiceLineModel,
        "InvoiceLine",
        ("invoice_id", "line_number", "description", "quantity", "unit_price", "amount"),
    )
    protect_fields(
        MembershipModel,
        "Membership",
        ("subject_id", "group_id", "period", "enrollment_date"),
    )
    logger.info("module_immutability_registered")


def create_all_tables() -> None:
    """Create kernel + module tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from school_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
