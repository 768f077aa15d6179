"""
Billing Configuration Schema.

Defines the structure and defaults for invoice and payment settings.
Actual values are loaded from the active configuration set at runtime.
"""

from dataclasses import dataclass
from typing import Self

from school_kernel.db.types import InvalidCurrencyError, validate_currency
from school_kernel.logging_config import get_logger

logger = get_logger("modules.billing.config")


@dataclass
class BillingConfig:
    """
    Configuration schema for the financial ledger.

        config = BillingConfig(default_currency="KES", allow_overpayment=False)
    """

    default_currency: str = "USD"

    # Document numbers: {prefix}-{year}-{counter zero-padded to number_width}
    invoice_prefix: str = "INV"
    payment_prefix: str = "PAY"
    number_width: int = 5

    # Accept payments larger than the outstanding balance
    allow_overpayment: bool = True

    def __post_init__(self):
        try:
            self.default_currency = validate_currency(self.default_currency)
        except InvalidCurrencyError as exc:
            raise ValueError(str(exc)) from exc

        for name in ("invoice_prefix", "payment_prefix"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"{name} cannot be empty")
            if "-" in value:
                raise ValueError(f"{name} cannot contain '-', got '{value}'")
        if self.invoice_prefix == self.payment_prefix:
            raise ValueError("invoice_prefix and payment_prefix must differ")

        if not 1 <= self.number_width <= 12:
            raise ValueError("number_width must be between 1 and 12")

        logger.info(
            "billing_config_initialized",
            extra={
                "default_currency": self.default_currency,
                "invoice_prefix": self.invoice_prefix,
                "payment_prefix": self.payment_prefix,
                "number_width": self.number_width,
                "allow_overpayment": self.allow_overpayment,
            },
        )

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from YAML)."""
        logger.info(
            "billing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
