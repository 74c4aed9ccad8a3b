"""Tests for money parsing helpers."""

from decimal import Decimal

import pytest

from cardtruth.parsers.money import detect_currency, find_amount, find_currency, parse_amount


class TestParseAmount:
    """Test amount parsing across grouping conventions."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("$1,074.43", Decimal("1074.43")),
            ("1.074,43", Decimal("1074.43")),
            ("45", Decimal("45")),
            ("12,34", Decimal("12.34")),
            ("1,234", Decimal("1234")),
            ("1,234,567", Decimal("1234567")),
            ("USD 2,500.00", Decimal("2500.00")),
            ("MX$ 8.450,10", Decimal("8450.10")),
        ],
    )
    def test_grouping_styles(self, text, expected):
        """Test US, European and bare amounts."""
        assert parse_amount(text) == expected

    def test_parenthesized_negative(self):
        """Test accounting-style negatives."""
        assert parse_amount("(1,234.56)") == Decimal("-1234.56")

    def test_leading_minus(self):
        assert parse_amount("-$500.00") == Decimal("-500.00")

    def test_trailing_minus(self):
        assert parse_amount("500.00-") == Decimal("-500.00")

    def test_credit_marker_stripped(self):
        """Test CR/DR markers are ignored."""
        assert parse_amount("150.00 CR") == Decimal("150.00")

    @pytest.mark.parametrize("text", [None, "", "abc", "12/25/2024", "1,23,4"])
    def test_unparseable_returns_none(self, text):
        """Test bad input never raises."""
        assert parse_amount(text) is None


class TestFindAmount:
    """Test amount search in free text."""

    def test_first_amount_in_text(self):
        assert find_amount("Total due: $35.00 by Friday") == Decimal("35.00")

    def test_no_amount(self):
        assert find_amount("nothing to see") is None


class TestCurrencyDetection:
    """Test currency hints."""

    def test_pesos(self):
        assert detect_currency("Saldo MXN 1,000.00") == "MXN"

    def test_euro_symbol(self):
        assert find_currency("Total €10,00") == "EUR"

    def test_dollar_symbol(self):
        assert detect_currency("New Balance $5.00") == "USD"

    def test_default_is_usd(self):
        """Test text without hints defaults to USD."""
        assert find_currency("plain text") is None
        assert detect_currency("plain text") == "USD"
