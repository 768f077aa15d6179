"""Tests for day normalization, DateRange and idempotency keys."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from school_kernel.domain.values import DateRange, normalize_day
from school_kernel.exceptions import ValidationError
from school_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
)


class TestNormalizeDay:

    @pytest.mark.parametrize(
        "value",
        [
            date(2025, 1, 15),
            datetime(2025, 1, 15, 23, 59, tzinfo=timezone.utc),
            "2025-01-15",
            " 2025-01-15T07:30:00 ",
        ],
    )
    def test_accepted_forms(self, value):
        assert normalize_day(value) == date(2025, 1, 15)

    @pytest.mark.parametrize("value", ["15/01/2025", "", None, 20250115])
    def test_rejected_forms(self, value):
        with pytest.raises(ValidationError) as exc_info:
            normalize_day(value)
        assert exc_info.value.field == "day"


class TestDateRange:

    def test_open_range_contains_everything(self):
        assert DateRange().contains(date(1999, 12, 31))

    def test_bounds_inclusive(self):
        window = DateRange(date(2025, 1, 1), date(2025, 1, 31))
        assert window.contains(date(2025, 1, 1))
        assert window.contains(date(2025, 1, 31))
        assert not window.contains(date(2025, 2, 1))
        assert not window.contains(date(2024, 12, 31))

    def test_strings_normalized(self):
        window = DateRange("2025-01-01", "2025-01-31")
        assert window.start == date(2025, 1, 1)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(date(2025, 2, 1), date(2025, 1, 1))


class TestIdempotencyKeys:

    def test_round_trip_parts(self):
        source, target = uuid4(), uuid4()
        key = generate_idempotency_key("membership.transfer", source, target)
        assert parse_idempotency_key(key) == (
            "membership.transfer", (str(source), str(target))
        )

    def test_same_parts_same_key(self):
        source, target = uuid4(), uuid4()
        assert generate_idempotency_key("t", source, target) == generate_idempotency_key(
            "t", source, target
        )

    def test_needs_parts(self):
        with pytest.raises(ValueError):
            generate_idempotency_key("membership.transfer")

    def test_colon_in_part_rejected(self):
        with pytest.raises(ValueError):
            generate_idempotency_key("op", "a:b")

    @pytest.mark.parametrize("key", ["nocolon", ":x", "op:"])
    def test_malformed_key(self, key):
        with pytest.raises(ValueError):
            parse_idempotency_key(key)
