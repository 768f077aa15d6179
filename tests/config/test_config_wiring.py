"""
Configuration loading and wiring tests.

Validates:
- The shipped default set loads and emits SCHOOL_CONFIG_TRACE
- Unknown keys are refused at both levels
- Checksums are deterministic and change with content
- Bridges build module configs that reach the services
"""

import logging
from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from school_config import get_active_config
from school_config.bridges import (
    apply_logging_config,
    build_billing_config,
    build_membership_config,
    build_presence_config,
)
from school_config.loader import compute_checksum, parse_config
from school_kernel.exceptions import GroupCapacityExceededError
from school_kernel.logging_config import configure_logging, reset_logging
from school_modules.billing.service import BillingService
from school_modules.membership.service import MembershipService
from tests.conftest import TEST_PERIOD


def _write(tmp_path, data) -> Path:
    path = tmp_path / "school.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestActiveConfig:

    def test_default_set_loads(self):
        config = get_active_config()
        assert config.config_id == "school-default"
        assert config.version == 1
        assert config.billing.default_currency == "USD"
        assert config.billing.invoice_prefix == "INV"
        assert not config.membership.enforce_capacity
        assert not config.presence.allow_future_days
        assert len(config.checksum) == 64

    def test_config_is_frozen(self):
        config = get_active_config()
        with pytest.raises(FrozenInstanceError):
            config.billing.invoice_prefix = "BILL"

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "SCHOOL_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["config_id"] == config.config_id
        assert traces[-1]["checksum"] == config.checksum

    def test_custom_path(self, tmp_path):
        path = _write(tmp_path, {
            "config_id": "nairobi-campus",
            "version": 3,
            "billing": {"default_currency": "KES"},
        })
        config = get_active_config(path)
        assert config.config_id == "nairobi-campus"
        assert config.version == 3
        assert config.billing.default_currency == "KES"
        assert config.billing.payment_prefix == "PAY"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParsing:

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_config({"config_id": "x", "grading": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="allow_overpaymnet"):
            parse_config({"config_id": "x", "billing": {"allow_overpaymnet": False}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_config({"config_id": "x", "presence": ["allow_future_days"]})

    def test_missing_config_id(self):
        with pytest.raises(KeyError):
            parse_config({"version": 1})

    def test_checksum_deterministic(self):
        a = {"config_id": "x", "billing": {"number_width": 4, "invoice_prefix": "F"}}
        b = {"billing": {"invoice_prefix": "F", "number_width": 4}, "config_id": "x"}
        assert compute_checksum(a) == compute_checksum(b)
        assert parse_config(a).checksum == parse_config(b).checksum

    def test_checksum_tracks_content(self):
        assert compute_checksum({"config_id": "x"}) != compute_checksum({"config_id": "y"})


class TestBridges:

    def test_module_configs_built(self):
        config = parse_config({
            "config_id": "x",
            "billing": {"invoice_prefix": "FEE", "allow_overpayment": False},
            "membership": {"enforce_capacity": True},
            "presence": {"allow_future_days": True},
        })
        assert build_billing_config(config).invoice_prefix == "FEE"
        assert not build_billing_config(config).allow_overpayment
        assert build_membership_config(config).enforce_capacity
        assert build_presence_config(config).allow_future_days

    def test_out_of_range_value_rejected_by_module(self):
        config = parse_config({"config_id": "x", "billing": {"number_width": 0}})
        with pytest.raises(ValueError, match="number_width"):
            build_billing_config(config)

    def test_invalid_currency_rejected_by_module(self):
        config = parse_config({"config_id": "x", "billing": {"default_currency": "XXQ"}})
        with pytest.raises(ValueError):
            build_billing_config(config)

    def test_billing_config_reaches_service(
        self, session, deterministic_clock, subject, actor
    ):
        config = parse_config({
            "config_id": "x",
            "billing": {"invoice_prefix": "FEE", "number_width": 3},
        })
        service = BillingService(
            session, clock=deterministic_clock, config=build_billing_config(config)
        )
        invoice = service.create_invoice(
            subject.id, Decimal("50"), date(2025, 2, 1), TEST_PERIOD, actor
        )
        assert invoice.invoice_number == "FEE-2025-001"

    def test_capacity_enforced_from_config(
        self, session, deterministic_clock, make_subject, make_group, actor
    ):
        config = parse_config({"config_id": "x", "membership": {"enforce_capacity": True}})
        service = MembershipService(
            session, clock=deterministic_clock, config=build_membership_config(config)
        )
        group = make_group(capacity=1)
        service.enroll(make_subject().id, group.id, actor)
        with pytest.raises(GroupCapacityExceededError):
            service.enroll(make_subject("Alan", "Turing").id, group.id, actor)

    def test_logging_level_applied(self):
        config = parse_config({"config_id": "x", "logging": {"level": "warning"}})
        reset_logging()
        try:
            apply_logging_config(config)
            assert logging.getLogger("school_kernel").level == logging.WARNING
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
