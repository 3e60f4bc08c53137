"""Tests for the editor reducer."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from invoice_builder import editor
from invoice_builder.errors import ValidationError
from invoice_builder.schemas import AppSettings, CustomerType, PaymentStatus

from tests.conftest import make_invoice


@pytest.fixture
def state() -> editor.AppState:
    return editor.AppState.initial(AppSettings(invoice_prefix="ACME"))


def _first_item_id(state: editor.AppState) -> str:
    return state.invoice.items[0].id


class TestInitialState:

    def test_blank_invoice(self, state) -> None:
        inv = state.invoice
        assert inv.invoice_number.startswith("ACME-")
        assert len(inv.items) == 1
        assert inv.items[0].quantity == 1
        assert inv.total_amount == 0
        assert inv.status == PaymentStatus.DRAFT
        assert state.saved == []


class TestFieldActions:

    def test_set_customer_fields(self, state) -> None:
        state = editor.reduce(state, editor.SetCustomer("Acme Ltd"))
        state = editor.reduce(state, editor.SetCustomerType(CustomerType.COMPANY))
        state = editor.reduce(state, editor.SetCustomerEmail("billing@acme.test"))
        state = editor.reduce(state, editor.SetDueDate(date(2026, 11, 30)))
        assert state.invoice.customer == "Acme Ltd"
        assert state.invoice.customer_type == CustomerType.COMPANY
        assert state.invoice.customer_email == "billing@acme.test"
        assert state.invoice.due_date == date(2026, 11, 30)

    def test_reduce_does_not_mutate_previous_state(self, state) -> None:
        new_state = editor.reduce(state, editor.SetCustomer("Acme"))
        assert state.invoice.customer == ""
        assert new_state.invoice.customer == "Acme"

    def test_tax_and_cost_recalculate_totals(self, state) -> None:
        item_id = _first_item_id(state)
        state = editor.reduce(state, editor.SetItemQuantity(item_id, 2))
        state = editor.reduce(state, editor.SetItemPrice(item_id, "50"))
        state = editor.reduce(state, editor.SetTaxRate(Decimal("20")))
        state = editor.reduce(state, editor.SetProductionCost(Decimal("60")))
        inv = state.invoice
        assert inv.subtotal == Decimal("100")
        assert inv.tax == Decimal("20")
        assert inv.total_amount == Decimal("120")
        assert inv.revenue == Decimal("60")
        assert inv.revenue_ratio == Decimal("2.00")


class TestItemActions:

    def test_quantity_and_price_update_line_total(self, state) -> None:
        item_id = _first_item_id(state)
        state = editor.reduce(state, editor.SetItemQuantity(item_id, "3"))
        state = editor.reduce(state, editor.SetItemPrice(item_id, "9.99"))
        assert state.invoice.items[0].total == Decimal("29.97")
        assert state.invoice.subtotal == Decimal("29.97")

    def test_bad_numbers_fall_back_to_defaults(self, state) -> None:
        item_id = _first_item_id(state)
        state = editor.reduce(state, editor.SetItemQuantity(item_id, "lots"))
        state = editor.reduce(state, editor.SetItemPrice(item_id, "free"))
        assert state.invoice.items[0].quantity == 1
        assert state.invoice.items[0].price_per_unit == 0

    def test_negative_values_are_clamped(self, state) -> None:
        item_id = _first_item_id(state)
        state = editor.reduce(state, editor.SetItemQuantity(item_id, "-4"))
        state = editor.reduce(state, editor.SetItemPrice(item_id, "-2"))
        assert state.invoice.items[0].quantity == 1
        assert state.invoice.items[0].price_per_unit == 0

    def test_add_and_remove_item(self, state) -> None:
        state = editor.reduce(state, editor.AddItem())
        assert len(state.invoice.items) == 2
        removed_id = state.invoice.items[1].id
        state = editor.reduce(state, editor.RemoveItem(removed_id))
        assert removed_id not in [i.id for i in state.invoice.items]
        assert len(state.invoice.items) == 1

    def test_removing_last_item_is_rejected(self, state) -> None:
        with pytest.raises(ValidationError, match="At least one item"):
            editor.reduce(state, editor.RemoveItem(_first_item_id(state)))
        assert len(state.invoice.items) == 1

    def test_unknown_item_id(self, state) -> None:
        with pytest.raises(ValidationError):
            editor.reduce(state, editor.SetItemProduct("item-missing", "Widget"))

    def test_removing_unknown_item_is_rejected(self, state) -> None:
        state = editor.reduce(state, editor.AddItem())
        with pytest.raises(ValidationError, match="No item"):
            editor.reduce(state, editor.RemoveItem("item-missing"))
        assert len(state.invoice.items) == 2

    def test_text_fields(self, state) -> None:
        item_id = _first_item_id(state)
        state = editor.reduce(state, editor.SetItemProduct(item_id, "Widget"))
        state = editor.reduce(state, editor.SetItemCategory(item_id, "Prototypes"))
        state = editor.reduce(state, editor.SetItemProductType(item_id, "PLA Print"))
        item = state.invoice.items[0]
        assert (item.product, item.category, item.product_type) == ("Widget", "Prototypes", "PLA Print")


class TestStateActions:

    def test_new_invoice_keeps_saved_list(self, state) -> None:
        saved = [make_invoice()]
        state = editor.reduce(state, editor.InvoicesChanged(saved))
        state = editor.reduce(state, editor.SetCustomer("Someone"))
        state = editor.reduce(state, editor.NewInvoice(today=date(2026, 1, 2)))
        assert state.invoice.customer == ""
        assert state.invoice.date == date(2026, 1, 2)
        assert "-202601-" in state.invoice.invoice_number
        assert state.saved == saved

    def test_load_invoice(self, state) -> None:
        loaded = make_invoice("OLD-1")
        state = editor.reduce(state, editor.ToggleHistory(True))
        state = editor.reduce(state, editor.LoadInvoice(loaded))
        assert state.invoice.invoice_number == "OLD-1"
        assert state.show_history is False

    def test_update_settings_and_flags(self, state) -> None:
        state = editor.reduce(state, editor.UpdateSettings(AppSettings(invoice_prefix="NEW")))
        state = editor.reduce(state, editor.TogglePayment(True))
        assert state.settings.invoice_prefix == "NEW"
        assert state.show_payment is True
