"""Tests for the arithmetic, coercion and formatting helpers."""
from __future__ import annotations

import re
from datetime import date
from decimal import Decimal

import pytest

from invoice_builder import utils
from invoice_builder.schemas import InvoiceItem


class TestTotals:

    @pytest.mark.parametrize("quantity,price,expected", [
        (3, "9.99", "29.97"),
        (1, "0", "0"),
        (10, "2.5", "25.0"),
        (0, "5", "0"),
    ])
    def test_item_total(self, quantity, price, expected) -> None:
        assert utils.item_total(quantity, Decimal(price)) == Decimal(expected)

    def test_subtotal_sums_item_totals(self) -> None:
        items = [
            InvoiceItem(product="A", quantity=2, price_per_unit=Decimal("10")),
            InvoiceItem(product="B", quantity=1, price_per_unit=Decimal("0.5")),
        ]
        assert utils.subtotal(items) == Decimal("20.5")

    @pytest.mark.parametrize("subtotal,rate,expected", [
        ("100", 0, "100"),
        ("100", 10, "110"),
        ("29.97", "8.25", "32.442525"),
        ("0", 20, "0"),
    ])
    def test_total_amount_adds_percentage_tax(self, subtotal, rate, expected) -> None:
        total = utils.total_amount(Decimal(subtotal), rate)
        assert total == Decimal(expected)
        assert total == Decimal(subtotal) + Decimal(subtotal) * Decimal(str(rate)) / 100

    def test_total_amount_defaults_to_no_tax(self) -> None:
        assert utils.total_amount(Decimal("42")) == Decimal("42")

    def test_tax_amount(self) -> None:
        assert utils.tax_amount(Decimal("200"), 5) == Decimal("10")

    def test_revenue(self) -> None:
        assert utils.revenue(Decimal("150"), Decimal("40")) == Decimal("110")
        assert utils.revenue(Decimal("150")) == Decimal("150")
        assert utils.revenue(Decimal("150"), None) == Decimal("150")


class TestRevenueRatio:

    def test_ratio_is_rounded_to_two_places(self) -> None:
        assert utils.revenue_ratio(200, 100) == Decimal("2.00")
        assert utils.revenue_ratio(100, 3) == Decimal("33.33")

    @pytest.mark.parametrize("total", [0, 1, 200, "99.99"])
    def test_zero_cost_gives_zero(self, total) -> None:
        assert utils.revenue_ratio(total, 0) == 0

    def test_missing_cost_gives_zero(self) -> None:
        assert utils.revenue_ratio(50) == 0
        assert utils.revenue_ratio(50, None) == 0


class TestCoercion:

    @pytest.mark.parametrize("value,expected", [
        ("3", 3),
        ("3.7", 3),
        (" 12 ", 12),
        ("7 boxes", 7),
        ("", 1),
        ("abc", 1),
        ("0", 1),
        (None, 1),
        ("-2", -2),
    ])
    def test_parse_int(self, value, expected) -> None:
        assert utils.parse_int(value, 1) == expected

    @pytest.mark.parametrize("value,expected", [
        ("9.99", Decimal("9.99")),
        (".5", Decimal(".5")),
        ("12abc", Decimal("12")),
        ("", Decimal("0")),
        ("n/a", Decimal("0")),
        (None, Decimal("0")),
        ("1e3", Decimal("1000")),
        ("1e999", Decimal("0")),
        ("-1e400 dollars", Decimal("0")),
    ])
    def test_parse_decimal(self, value, expected) -> None:
        assert utils.parse_decimal(value) == expected

    def test_to_decimal_handles_junk(self) -> None:
        assert utils.to_decimal("nope") == 0
        assert utils.to_decimal(None) == 0
        assert utils.to_decimal(2.5) == Decimal("2.5")

    def test_to_decimal_rejects_amounts_too_large_to_store(self) -> None:
        assert utils.to_decimal("1e999") == 0
        assert utils.to_decimal(Decimal("1e999")) == 0
        assert utils.to_decimal(Decimal("NaN")) == 0
        assert not utils.is_storable(Decimal("1e999"))
        assert utils.is_storable(Decimal("1e15"))

    @pytest.mark.parametrize("amount,expected", [
        ("9.99", 999),
        ("0.005", 1),
        ("10", 1000),
        ("1.234", 123),
    ])
    def test_to_minor_units(self, amount, expected) -> None:
        assert utils.to_minor_units(Decimal(amount)) == expected

    def test_parse_date(self) -> None:
        assert utils.parse_date("2026-10-19") == date(2026, 10, 19)
        assert utils.parse_date("") is None
        assert utils.parse_date("not a date") is None


class TestFormatting:

    @pytest.mark.parametrize("amount,symbol,expected", [
        ("1234.5", "$", "$1,234.50"),
        ("0", "€", "€0.00"),
        ("29.97", "£", "£29.97"),
        ("-5", "$", "-$5.00"),
        ("1000000", "R$", "R$1,000,000.00"),
    ])
    def test_format_currency(self, amount, symbol, expected) -> None:
        assert utils.format_currency(Decimal(amount), symbol) == expected


class TestIdentifiers:

    def test_invoice_number_shape(self) -> None:
        number = utils.format_invoice_number("ACME", date(2026, 3, 5))
        assert re.fullmatch(r"ACME-202603-\d{3}", number)

    def test_invoice_number_default_prefix(self) -> None:
        assert utils.format_invoice_number().startswith("TEST-")

    def test_import_numbers_are_distinct(self) -> None:
        numbers = {utils.import_invoice_number("TEST", date(2026, 1, 1)) for _ in range(200)}
        assert len(numbers) == 200

    def test_new_id(self) -> None:
        first, second = utils.new_id("item"), utils.new_id("item")
        assert first.startswith("item-")
        assert first != second
