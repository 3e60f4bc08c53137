"""Shared fixtures: a throwaway store, sample invoices and a fake checkout collaborator."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List

import pytest

from invoice_builder.schemas import CheckoutSession, Invoice, InvoiceItem, SessionStatus
from invoice_builder.storage import InvoiceStore


def make_invoice(number: str = "TEST-202610-001", **overrides) -> Invoice:
    fields = {
        "invoice_number": number,
        "date": date(2026, 10, 19),
        "customer": "Jane Doe",
        "customer_email": "jane@example.com",
        "customer_address": "1 Main St",
        "items": [InvoiceItem(id="item-1", product="Widget", quantity=3, price_per_unit=Decimal("9.99"))],
    }
    fields.update(overrides)
    return Invoice(**fields).recalculate()


class FakeCheckoutClient:
    """Records calls and answers with canned sessions and statuses."""

    def __init__(self, status: str = "paid", reference: str = "pi_123") -> None:
        self.created: List[Invoice] = []
        self.checked: List[str] = []
        self.status = status
        self.reference = reference

    def create_checkout_session(self, invoice: Invoice) -> CheckoutSession:
        self.created.append(invoice)
        return CheckoutSession(session_id="cs_test_1", client_secret="cs_secret")

    def get_session_status(self, session_id: str) -> SessionStatus:
        self.checked.append(session_id)
        ref = self.reference if self.status == "paid" else None
        return SessionStatus(status=self.status, payment_reference=ref)


@pytest.fixture
def store(tmp_path) -> InvoiceStore:
    return InvoiceStore.open(tmp_path / "data")


@pytest.fixture
def invoice() -> Invoice:
    return make_invoice()


@pytest.fixture
def checkout() -> FakeCheckoutClient:
    return FakeCheckoutClient()
