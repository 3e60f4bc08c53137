"""Hosted checkout for invoices: session creation, status checks, reconciliation.

The checkout collaborator is anything implementing :class:`CheckoutClient`;
:class:`StripeCheckoutClient` talks to the Stripe Checkout Sessions API.
Amounts leave this module in minor currency units (cents).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import ExternalServiceError, ValidationError
from .schemas import CheckoutSession, Invoice, PaymentStatus, SessionStatus
from .storage import InvoiceStore
from .utils import to_minor_units
from .validator import InvoiceValidator

logger = logging.getLogger(__name__)

PENDING = "pending"
PAID = "paid"
FAILED = "failed"


class CheckoutClient(Protocol):
    def create_checkout_session(self, invoice: Invoice) -> CheckoutSession: ...

    def get_session_status(self, session_id: str) -> SessionStatus: ...


def build_line_items(invoice: Invoice, currency: str = "usd") -> List[Dict[str, Any]]:
    """One price line per item plus a separate tax line when tax applies."""
    lines: List[Dict[str, Any]] = []
    for item in invoice.items:
        product_data: Dict[str, Any] = {"name": item.product or "Item"}
        if item.category:
            product_data["description"] = item.category + (f" - {item.product_type}" if item.product_type else "")
        lines.append(
            {
                "price_data": {
                    "currency": currency,
                    "product_data": product_data,
                    "unit_amount": to_minor_units(item.price_per_unit),
                },
                "quantity": item.quantity,
            }
        )
    if invoice.tax and invoice.tax > 0:
        lines.append(
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": "Tax", "description": f"{invoice.tax_rate}% tax"},
                    "unit_amount": to_minor_units(invoice.tax),
                },
                "quantity": 1,
            }
        )
    return lines


def flatten_form(value: Any, prefix: str = "") -> Dict[str, str]:
    """Encode nested dicts/lists with bracket keys, as Stripe's form API expects."""
    out: Dict[str, str] = {}
    if isinstance(value, dict):
        for key, sub in value.items():
            out.update(flatten_form(sub, f"{prefix}[{key}]" if prefix else str(key)))
    elif isinstance(value, list):
        for index, sub in enumerate(value):
            out.update(flatten_form(sub, f"{prefix}[{index}]"))
    elif isinstance(value, bool):
        out[prefix] = "true" if value else "false"
    elif value is not None:
        out[prefix] = str(value)
    return out


class StripeCheckoutClient:
    """Stripe Checkout Sessions over plain HTTPS."""

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.stripe.com/v1",
        currency: str = "usd",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise ValidationError("A Stripe API key is required for checkout", errors=["missing_field: stripe_api_key"])
        self.currency = currency.lower()
        self._client = client or httpx.Client(base_url=api_base, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StripeCheckoutClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, data: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, data=data, headers=self._headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            message = _stripe_error_message(exc.response)
            logger.error("Stripe %s %s failed: %s - %s", method, path, exc.response.status_code, message)
            raise ExternalServiceError(message, service="stripe", status_code=exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.error("Network error calling Stripe %s %s: %s", method, path, exc)
            raise ExternalServiceError("Failed to reach the payment service", service="stripe") from exc

    def create_checkout_session(self, invoice: Invoice) -> CheckoutSession:
        payload = {
            "ui_mode": "embedded",
            "redirect_on_completion": "never",
            "mode": "payment",
            "line_items": build_line_items(invoice, self.currency),
            "customer_email": invoice.customer_email,
            "metadata": {"invoiceNumber": invoice.invoice_number, "customerName": invoice.customer},
            "payment_intent_data": {
                "metadata": {"invoiceNumber": invoice.invoice_number},
                "description": f"Invoice {invoice.invoice_number} for {invoice.customer}",
            },
        }
        body = self._request("POST", "/checkout/sessions", data=flatten_form(payload))
        return CheckoutSession(session_id=body["id"], client_secret=body.get("client_secret"))

    def get_session_status(self, session_id: str) -> SessionStatus:
        body = self._request("GET", f"/checkout/sessions/{quote(session_id, safe='')}")
        return session_status_from_stripe(body)


def checkout_client_from_settings(settings: Settings) -> StripeCheckoutClient:
    """Stripe client configured from process settings; the caller closes it."""
    return StripeCheckoutClient(
        settings.stripe_api_key or "",
        api_base=settings.stripe_api_base,
        currency=settings.checkout_currency,
        timeout=settings.http_timeout,
    )


def _stripe_error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"Payment service returned HTTP {response.status_code}"


def session_status_from_stripe(body: Dict[str, Any]) -> SessionStatus:
    payment_intent = body.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    if body.get("payment_status") in ("paid", "no_payment_required"):
        return SessionStatus(status=PAID, payment_reference=payment_intent)
    if body.get("status") == "expired":
        return SessionStatus(status=FAILED)
    return SessionStatus(status=PENDING)


class AttemptState(str, Enum):
    IDLE = "idle"
    SESSION_CREATING = "session_creating"
    SESSION_READY = "session_ready"
    CHECKOUT_IN_PROGRESS = "checkout_in_progress"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PaymentAttempt:
    invoice_number: str
    state: AttemptState = AttemptState.IDLE
    session: Optional[CheckoutSession] = None
    error: Optional[str] = None
    history: List[AttemptState] = field(default_factory=list)

    def move(self, state: AttemptState) -> None:
        self.history.append(self.state)
        self.state = state


class PaymentBridge:
    """Creates checkout sessions and mirrors confirmed payments into the store."""

    def __init__(
        self,
        client: CheckoutClient,
        store: InvoiceStore,
        validator: Optional[InvoiceValidator] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.validator = validator or InvoiceValidator()

    def create_session(self, invoice: Invoice, attempt: Optional[PaymentAttempt] = None) -> CheckoutSession:
        """Validate the invoice, then open a checkout session for it.

        Raises ``ValidationError`` before any request when the customer name or
        email is missing, there are no items, or the total is not positive.
        """
        attempt = attempt or PaymentAttempt(invoice.invoice_number)
        try:
            self.validator.ensure_payable(invoice)
            attempt.move(AttemptState.SESSION_CREATING)
            session = self.client.create_checkout_session(invoice)
        except (ValidationError, ExternalServiceError) as exc:
            attempt.error = exc.message
            attempt.move(AttemptState.FAILED)
            raise
        attempt.session = session
        attempt.move(AttemptState.SESSION_READY)
        logger.info("Checkout session %s created for invoice %s", session.session_id, invoice.invoice_number)
        return session

    def check_status(self, session_id: str) -> SessionStatus:
        return self.client.get_session_status(session_id)

    def reconcile(
        self,
        invoice: Invoice,
        session_id: str,
        attempt: Optional[PaymentAttempt] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Mark the invoice paid if the session is paid; pending leaves it as is.

        A failed session raises ``ExternalServiceError`` and the stored invoice
        is not touched. Nothing is retried.
        """
        attempt = attempt or PaymentAttempt(invoice.invoice_number)
        attempt.move(AttemptState.VERIFYING)
        try:
            result = self.check_status(session_id)
        except ExternalServiceError as exc:
            attempt.error = exc.message
            attempt.move(AttemptState.FAILED)
            raise
        if result.status == PAID:
            already_paid = invoice.status == PaymentStatus.PAID and invoice.paid_at is not None
            paid = invoice.model_copy(
                update={
                    "status": PaymentStatus.PAID,
                    "paid_at": invoice.paid_at if already_paid else (now or datetime.now()),
                    "payment_reference": result.payment_reference,
                    "checkout_session_id": session_id,
                }
            )
            self.store.upsert(paid)
            attempt.move(AttemptState.SUCCEEDED)
            logger.info("Invoice %s marked as paid (%s)", invoice.invoice_number, result.payment_reference)
            return paid
        if result.status == FAILED:
            attempt.error = "Checkout session expired without payment"
            attempt.move(AttemptState.FAILED)
            raise ExternalServiceError(
                attempt.error, service="checkout", details={"session_id": session_id}
            )
        attempt.move(AttemptState.CHECKOUT_IN_PROGRESS)
        return invoice


def payment_link(base_url: str, invoice_number: str) -> str:
    return f"{base_url.rstrip('/')}/payment/{quote(invoice_number, safe='')}"
