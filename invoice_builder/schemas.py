"""Data models used across the editor, store, importer, renderer, CLI, and API."""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel

from . import utils


def _storable_amount(value: Decimal) -> Decimal:
    if not utils.is_storable(value):
        raise ValueError("amount is out of range")
    return value


# Amounts are Decimal in memory and plain JSON numbers on disk.
Money = Annotated[
    Decimal,
    AfterValidator(_storable_amount),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class PaymentStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class CustomerType(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"
    DIRECT_ORDER = "direct-order"


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Camel-cased, JSON-ready form used for persistence and the HTTP API."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class InvoiceItem(_Record):
    id: str = Field(default_factory=lambda: utils.new_id("item"))
    product: str = ""
    category: str = ""
    product_type: str = ""
    quantity: int = Field(default=1, ge=1)
    price_per_unit: Money = Field(default=Decimal("0"), ge=0)
    total: Money = Decimal("0")

    @model_validator(mode="after")
    def _sync_total(self) -> "InvoiceItem":
        self.total = utils.item_total(self.quantity, self.price_per_unit)
        return self

    def with_changes(self, **changes: object) -> "InvoiceItem":
        """Copy with ``changes`` applied and re-validated, so ``total`` follows."""
        return InvoiceItem.model_validate({**self.model_dump(), **changes})

    @property
    def details(self) -> str:
        """Category and product type joined for display, skipping blanks."""
        return " • ".join(part for part in (self.category, self.product_type) if part)


class Invoice(_Record):
    invoice_number: str
    date: dt.date = Field(default_factory=dt.date.today)
    due_date: Optional[dt.date] = None
    customer: str = ""
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    customer_address: str = ""
    customer_email: str = ""
    items: List[InvoiceItem] = Field(default_factory=lambda: [InvoiceItem()], min_length=1)
    subtotal: Money = Decimal("0")
    tax: Optional[Money] = None
    tax_rate: Optional[Money] = None
    total_amount: Money = Decimal("0")
    production_cost: Optional[Money] = None
    revenue: Optional[Money] = None
    revenue_ratio: Optional[Money] = None
    platform: Optional[str] = None
    status: PaymentStatus = PaymentStatus.DRAFT
    notes: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    paid_at: Optional[dt.datetime] = None
    payment_reference: Optional[str] = Field(default=None, alias="externalPaymentReference")
    checkout_session_id: Optional[str] = None

    def recalculate(self) -> "Invoice":
        """Return a copy with every derived amount recomputed from items, tax and cost.

        This is the one place where absent ``tax_rate`` and ``production_cost``
        are treated as zero.
        """
        tax_rate = self.tax_rate or Decimal("0")
        cost = self.production_cost or Decimal("0")
        sub = utils.subtotal(self.items)
        total = utils.total_amount(sub, tax_rate)
        return self.model_copy(
            update={
                "subtotal": sub,
                "tax": utils.tax_amount(sub, tax_rate),
                "total_amount": total,
                "revenue": utils.revenue(total, cost),
                "revenue_ratio": utils.revenue_ratio(total, cost),
            }
        )

    @property
    def display_id(self) -> str:
        """Fallback identifier for messages and reports."""
        return self.invoice_number or "<unknown>"


class Currency(_Record):
    code: str
    symbol: str
    name: str

    def format(self, amount: object) -> str:
        return utils.format_currency(amount, self.symbol)


CURRENCIES: List[Currency] = [
    Currency(code="USD", symbol="$", name="US Dollar"),
    Currency(code="EUR", symbol="€", name="Euro"),
    Currency(code="GBP", symbol="£", name="British Pound"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen"),
    Currency(code="CAD", symbol="C$", name="Canadian Dollar"),
    Currency(code="AUD", symbol="A$", name="Australian Dollar"),
    Currency(code="CHF", symbol="CHF", name="Swiss Franc"),
    Currency(code="CNY", symbol="¥", name="Chinese Yuan"),
    Currency(code="INR", symbol="₹", name="Indian Rupee"),
    Currency(code="MXN", symbol="$", name="Mexican Peso"),
    Currency(code="BRL", symbol="R$", name="Brazilian Real"),
    Currency(code="ZAR", symbol="R", name="South African Rand"),
    Currency(code="SGD", symbol="S$", name="Singapore Dollar"),
    Currency(code="HKD", symbol="HK$", name="Hong Kong Dollar"),
    Currency(code="SEK", symbol="kr", name="Swedish Krona"),
    Currency(code="NOK", symbol="kr", name="Norwegian Krone"),
    Currency(code="DKK", symbol="kr", name="Danish Krone"),
    Currency(code="NZD", symbol="NZ$", name="New Zealand Dollar"),
    Currency(code="KRW", symbol="₩", name="South Korean Won"),
    Currency(code="PLN", symbol="zł", name="Polish Zloty"),
]


def get_currency(code: str) -> Optional[Currency]:
    code = code.upper()
    return next((c for c in CURRENCIES if c.code == code), None)


class AppSettings(_Record):
    currency: Currency = Field(default_factory=lambda: CURRENCIES[0].model_copy())
    invoice_prefix: str = "TEST"


class CheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    session_id: str
    client_secret: Optional[str] = None


class SessionStatus(BaseModel):
    """Tri-state payment status reported by the checkout collaborator."""

    model_config = ConfigDict(extra="ignore")

    status: str  # "pending", "paid" or "failed"
    payment_reference: Optional[str] = None


class ImportOutcome(_Record):
    success: bool
    title: str
    message: str
    imported: int = 0
    dropped_rows: int = 0
    invoice_numbers: List[str] = Field(default_factory=list)


class ImportRequest(BaseModel):
    """Rows plus the column mapping chosen for them (HTTP import commit)."""

    model_config = ConfigDict(extra="ignore")

    rows: List[Dict[str, str]]
    mapping: Dict[str, str]


class ParsedTableResponse(_Record):
    headers: List[str]
    rows: List[Dict[str, str]]
    dropped_rows: int
    suggested_mapping: Dict[str, str]


class InvoiceSummary(_Record):
    """Headline figures shown above the invoice history."""

    total_invoices: int = 0
    paid: int = 0
    pending: int = 0
    total_revenue: Money = Decimal("0")
