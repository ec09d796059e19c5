"""
Unit tests for request value parsing.
"""
from datetime import date
from decimal import Decimal

import pytest

from purchasing.exceptions import ValidationFailedError
from purchasing.utils import parse_date, parse_decimal, parse_optional_int


@pytest.mark.unit
class TestParseDecimal:
    """User input may use a comma or a dot; anything that is not a finite number is rejected."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2,50", Decimal("2.50")),
            (" 10.5 ", Decimal("10.5")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("7.25"), Decimal("7.25")),
        ],
    )
    def test_accepted_spellings(self, raw, expected):
        assert parse_decimal(raw, "amount") == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_means_not_given(self, raw):
        assert parse_decimal(raw, "amount") is None

    @pytest.mark.parametrize(
        "raw",
        ["NaN", "nan", "sNaN", "Infinity", "-Infinity", "inf", float("inf"), float("nan"), Decimal("NaN")],
    )
    def test_non_finite_values_are_rejected(self, raw):
        with pytest.raises(ValidationFailedError) as excinfo:
            parse_decimal(raw, "lines[0].quantity")

        assert excinfo.value.field == "lines[0].quantity"
        assert "finite" in str(excinfo.value)

    @pytest.mark.parametrize("raw", ["lots", "1.2.3", True])
    def test_garbage_is_rejected(self, raw):
        with pytest.raises(ValidationFailedError) as excinfo:
            parse_decimal(raw, "amount")

        assert excinfo.value.field == "amount"


@pytest.mark.unit
class TestOtherParsers:
    def test_optional_int(self):
        assert parse_optional_int(" 42 ", "supplier_id") == 42
        assert parse_optional_int("", "supplier_id") is None

        with pytest.raises(ValidationFailedError):
            parse_optional_int("4x", "supplier_id")

    def test_date_truncates_timestamps(self):
        assert parse_date("2024-05-31T10:00:00", "due_date") == date(2024, 5, 31)

        with pytest.raises(ValidationFailedError) as excinfo:
            parse_date("31/05/2024", "due_date")

        assert excinfo.value.field == "due_date"
