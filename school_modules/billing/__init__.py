"""
Billing Module.

Invoices, payments and refunds.  Amount paid, balance and status are
derived from the payments; repair rebuilds them when they drift.
"""

from school_modules.billing.config import BillingConfig
from school_modules.billing.models import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    Payment,
    PaymentApplication,
    PaymentMethod,
    PaymentStatus,
)
from school_modules.billing.workflows import INVOICE_WORKFLOW

__all__ = [
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "Payment",
    "PaymentApplication",
    "PaymentMethod",
    "PaymentStatus",
    "INVOICE_WORKFLOW",
    "BillingConfig",
]
