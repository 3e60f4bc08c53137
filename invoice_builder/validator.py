"""Precondition rules checked before an invoice is saved, exported, or paid."""
from __future__ import annotations

from decimal import Decimal
from typing import List

from .errors import ValidationError
from .schemas import Invoice


class InvoiceValidator:
    def __init__(self, minimum_total: Decimal = Decimal("0")) -> None:
        self.minimum_total = minimum_total

    def check_for_save(self, invoice: Invoice) -> List[str]:
        errors: list[str] = []

        # Completeness
        if not invoice.customer.strip():
            errors.append("missing_field: customer")
        for index, item in enumerate(invoice.items):
            if not item.product.strip():
                errors.append(f"missing_field: items[{index}].product")
        return errors

    def check_for_payment(self, invoice: Invoice) -> List[str]:
        errors: list[str] = []

        if not invoice.customer.strip():
            errors.append("missing_field: customer")
        if not invoice.customer_email.strip():
            errors.append("missing_field: customer_email")

        # Business rules
        if not invoice.items:
            errors.append("business: no_items")
        if invoice.total_amount <= self.minimum_total:
            errors.append("business: total_not_positive")
        return errors

    def ensure_savable(self, invoice: Invoice) -> None:
        errors = self.check_for_save(invoice)
        if errors:
            raise ValidationError(
                "Please fill in customer name and all product details.",
                errors=errors,
                details={"invoice": invoice.display_id},
            )

    def ensure_payable(self, invoice: Invoice) -> None:
        errors = self.check_for_payment(invoice)
        if not errors:
            return
        if any(e.startswith("missing_field") for e in errors):
            message = "Customer name and email are required"
        elif "business: no_items" in errors:
            message = "Invoice must have at least one item"
        else:
            message = "Invoice total must be greater than zero"
        raise ValidationError(message, errors=errors, details={"invoice": invoice.display_id})
