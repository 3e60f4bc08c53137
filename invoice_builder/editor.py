"""Application state for editing an invoice, updated through a reducer.

State is immutable; every change goes through :func:`reduce` with one of the
action classes below, and derived totals are recomputed after each action.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import List, Optional, Union

from .errors import ValidationError
from .schemas import AppSettings, CustomerType, Invoice, InvoiceItem, PaymentStatus
from .utils import format_invoice_number, parse_decimal, parse_int


def blank_invoice(settings: AppSettings, today: Optional[dt.date] = None) -> Invoice:
    today = today or dt.date.today()
    return Invoice(
        invoice_number=format_invoice_number(settings.invoice_prefix, today),
        date=today,
        items=[InvoiceItem()],
    ).recalculate()


@dataclass(frozen=True)
class AppState:
    settings: AppSettings
    invoice: Invoice
    saved: List[Invoice] = field(default_factory=list)
    show_history: bool = False
    show_payment: bool = False

    @classmethod
    def initial(cls, settings: AppSettings, saved: Optional[List[Invoice]] = None) -> "AppState":
        return cls(settings=settings, invoice=blank_invoice(settings), saved=list(saved or []))


# Invoice header fields
@dataclass(frozen=True)
class SetCustomer:
    name: str


@dataclass(frozen=True)
class SetCustomerType:
    customer_type: CustomerType


@dataclass(frozen=True)
class SetCustomerEmail:
    email: str


@dataclass(frozen=True)
class SetCustomerAddress:
    address: str


@dataclass(frozen=True)
class SetDate:
    date: dt.date


@dataclass(frozen=True)
class SetDueDate:
    due_date: Optional[dt.date]


@dataclass(frozen=True)
class SetTaxRate:
    tax_rate: Optional[Decimal]


@dataclass(frozen=True)
class SetProductionCost:
    production_cost: Optional[Decimal]


@dataclass(frozen=True)
class SetPlatform:
    platform: Optional[str]


@dataclass(frozen=True)
class SetNotes:
    notes: Optional[str]


@dataclass(frozen=True)
class SetStatus:
    status: PaymentStatus


# Line items
@dataclass(frozen=True)
class AddItem:
    pass


@dataclass(frozen=True)
class RemoveItem:
    item_id: str


@dataclass(frozen=True)
class SetItemProduct:
    item_id: str
    product: str


@dataclass(frozen=True)
class SetItemCategory:
    item_id: str
    category: str


@dataclass(frozen=True)
class SetItemProductType:
    item_id: str
    product_type: str


@dataclass(frozen=True)
class SetItemQuantity:
    item_id: str
    quantity: object


@dataclass(frozen=True)
class SetItemPrice:
    item_id: str
    price_per_unit: object


# Whole-state actions
@dataclass(frozen=True)
class NewInvoice:
    today: Optional[dt.date] = None


@dataclass(frozen=True)
class LoadInvoice:
    invoice: Invoice


@dataclass(frozen=True)
class InvoiceSaved:
    invoice: Invoice
    saved: List[Invoice]


@dataclass(frozen=True)
class InvoicesChanged:
    saved: List[Invoice]


@dataclass(frozen=True)
class UpdateSettings:
    settings: AppSettings


@dataclass(frozen=True)
class ToggleHistory:
    visible: bool


@dataclass(frozen=True)
class TogglePayment:
    visible: bool


Action = Union[
    SetCustomer, SetCustomerType, SetCustomerEmail, SetCustomerAddress, SetDate, SetDueDate,
    SetTaxRate, SetProductionCost, SetPlatform, SetNotes, SetStatus,
    AddItem, RemoveItem, SetItemProduct, SetItemCategory, SetItemProductType, SetItemQuantity, SetItemPrice,
    NewInvoice, LoadInvoice, InvoiceSaved, InvoicesChanged, UpdateSettings, ToggleHistory, TogglePayment,
]

_FIELD_ACTIONS = {
    SetCustomer: ("customer", "name"),
    SetCustomerType: ("customer_type", "customer_type"),
    SetCustomerEmail: ("customer_email", "email"),
    SetCustomerAddress: ("customer_address", "address"),
    SetDate: ("date", "date"),
    SetDueDate: ("due_date", "due_date"),
    SetTaxRate: ("tax_rate", "tax_rate"),
    SetProductionCost: ("production_cost", "production_cost"),
    SetPlatform: ("platform", "platform"),
    SetNotes: ("notes", "notes"),
    SetStatus: ("status", "status"),
}


def _require_item(invoice: Invoice, item_id: str) -> None:
    if not any(item.id == item_id for item in invoice.items):
        raise ValidationError(f"No item with id {item_id!r}", details={"item_id": item_id})


def _update_item(invoice: Invoice, item_id: str, **changes: object) -> Invoice:
    _require_item(invoice, item_id)
    items = [item.with_changes(**changes) if item.id == item_id else item for item in invoice.items]
    return invoice.model_copy(update={"items": items})


def _reduce_invoice(invoice: Invoice, action: Action) -> Invoice:
    target = _FIELD_ACTIONS.get(type(action))
    if target is not None:
        field_name, attr = target
        return invoice.model_copy(update={field_name: getattr(action, attr)})
    if isinstance(action, AddItem):
        return invoice.model_copy(update={"items": [*invoice.items, InvoiceItem()]})
    if isinstance(action, RemoveItem):
        _require_item(invoice, action.item_id)
        if len(invoice.items) <= 1:
            raise ValidationError("At least one item is required.", errors=["business: last_item"])
        return invoice.model_copy(update={"items": [i for i in invoice.items if i.id != action.item_id]})
    if isinstance(action, SetItemProduct):
        return _update_item(invoice, action.item_id, product=action.product)
    if isinstance(action, SetItemCategory):
        return _update_item(invoice, action.item_id, category=action.category)
    if isinstance(action, SetItemProductType):
        return _update_item(invoice, action.item_id, product_type=action.product_type)
    if isinstance(action, SetItemQuantity):
        return _update_item(invoice, action.item_id, quantity=max(parse_int(action.quantity, 1), 1))
    if isinstance(action, SetItemPrice):
        price = parse_decimal(action.price_per_unit)
        return _update_item(invoice, action.item_id, price_per_unit=max(price, Decimal("0")))
    raise TypeError(f"Unsupported invoice action: {action!r}")


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state that results from applying ``action`` to ``state``.

    Raises :class:`~invoice_builder.errors.ValidationError` for rejected
    actions (such as removing the only item); ``state`` is never modified.
    """
    if isinstance(action, NewInvoice):
        return AppState(
            settings=state.settings,
            invoice=blank_invoice(state.settings, action.today),
            saved=state.saved,
        )
    if isinstance(action, LoadInvoice):
        return AppState(settings=state.settings, invoice=action.invoice.recalculate(), saved=state.saved)
    if isinstance(action, InvoiceSaved):
        return replace(state, invoice=action.invoice, saved=list(action.saved))
    if isinstance(action, InvoicesChanged):
        return replace(state, saved=list(action.saved))
    if isinstance(action, UpdateSettings):
        return replace(state, settings=action.settings)
    if isinstance(action, ToggleHistory):
        return replace(state, show_history=action.visible)
    if isinstance(action, TogglePayment):
        return replace(state, show_payment=action.visible)
    return replace(state, invoice=_reduce_invoice(state.invoice, action).recalculate())

