"""Tests de formatage des montants, dates et quantités."""

from datetime import date, datetime

import pytest

from speedybill.core.formatting import CURRENCIES, format_date, format_money, format_qty


class TestFormatMoney:
    @pytest.mark.parametrize(
        "currency,expected",
        [("USD", "$1,234.50"), ("EUR", "€1,234.50"), ("GBP", "£1,234.50"), ("INR", "₹1,234.50"), ("CAD", "CA$1,234.50")],
    )
    def test_known_currencies(self, currency, expected):
        assert format_money(1234.5, currency) == expected

    def test_negative_amount(self):
        assert format_money(-5, "USD") == "-$5.00"

    def test_no_negative_zero(self):
        assert format_money(-0.001, "USD") == "$0.00"

    def test_non_finite_is_zero(self):
        assert format_money(float("nan"), "USD") == "$0.00"
        assert format_money(float("inf"), "EUR") == "€0.00"

    def test_unknown_code_is_used_as_prefix(self):
        assert format_money(10, "chf") == "CHF 10.00"

    def test_currency_list(self):
        assert CURRENCIES == ("USD", "EUR", "GBP", "INR", "CAD")


class TestFormatDate:
    def test_date(self):
        assert format_date(date(2024, 3, 5)) == "Mar 05, 2024"

    def test_datetime(self):
        assert format_date(datetime(2024, 12, 31, 23, 0)) == "Dec 31, 2024"

    def test_iso_string(self):
        assert format_date("2024-01-09") == "Jan 09, 2024"

    def test_empty(self):
        assert format_date(None) == ""
        assert format_date("") == ""

    def test_unparseable_string_is_kept(self):
        assert format_date("next week") == "next week"


class TestFormatQty:
    @pytest.mark.parametrize("qty,expected", [(2.0, "2"), (1.5, "1.5"), (0, "0"), (None, "0")])
    def test_compact(self, qty, expected):
        assert format_qty(qty) == expected
