"""Printable HTML rendering of an invoice and hand-off to a PDF rasterizer."""
from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

from .errors import ExternalServiceError
from .schemas import Currency, Invoice, PaymentStatus
from .storage import InvoiceStore, save_invoice
from .validator import InvoiceValidator

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "invoice": "INVOICE",
        "issuer": "Invoice Generator",
        "tagline": "Professional Business Solutions",
        "bill_to": "Bill To",
        "issue_date": "Issue Date",
        "due_date": "Due Date",
        "item": "Item",
        "qty": "Quantity",
        "unit_price": "Unit Price",
        "total": "Total",
        "subtotal": "Subtotal",
        "tax": "Tax",
        "notes": "Notes",
        "platform": "Platform",
        "thank_you": "Thank you for your business!",
        "draft": "Draft",
        "sent": "Sent",
        "paid": "Paid",
        "overdue": "Overdue",
        "cancelled": "Cancelled",
        "individual": "Individual",
        "company": "Company",
        "direct-order": "Direct Order",
    },
    "pt": {
        "invoice": "FATURA",
        "issuer": "Invoice Generator",
        "tagline": "Soluções Profissionais",
        "bill_to": "Faturar a",
        "issue_date": "Data de Emissão",
        "due_date": "Data de Vencimento",
        "item": "Descrição",
        "qty": "Qtd",
        "unit_price": "Preço Unitário",
        "total": "Total",
        "subtotal": "Subtotal",
        "tax": "Imposto",
        "notes": "Notas Adicionais",
        "platform": "Plataforma",
        "thank_you": "Obrigado pela sua preferência!",
        "draft": "Rascunho",
        "sent": "Enviado",
        "paid": "Pago",
        "overdue": "Em Atraso",
        "cancelled": "Cancelado",
        "individual": "Individual",
        "company": "Empresa",
        "direct-order": "Pedido Direto",
    },
}

_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=jinja2.select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _format_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


def _format_number(value: Any) -> str:
    """Tax rates and similar: drop a trailing ``.0`` but keep real decimals."""
    text = f"{value:f}" if value is not None else "0"
    return text.rstrip("0").rstrip(".") if "." in text else text


_env.filters["date"] = _format_date
_env.filters["number"] = _format_number


def render(invoice: Invoice, currency: Currency, language: str = "en") -> str:
    """Render the invoice as a standalone, print-ready HTML page."""
    if language not in TRANSLATIONS:
        raise ValueError(f"Unsupported language {language!r}; expected one of {sorted(TRANSLATIONS)}")
    t = TRANSLATIONS[language]
    context = {
        "invoice": invoice,
        "t": t,
        "language": language,
        "money": currency.format,
        "status_label": t.get(invoice.status.value, invoice.status.value.title()),
        "customer_type_label": t.get(invoice.customer_type.value, invoice.customer_type.value),
        "show_tax": bool(invoice.tax and invoice.tax > 0),
    }
    return _env.get_template("invoice.html").render(**context)


def pdf_filename(invoice_number: str, language: str = "en") -> str:
    suffix = "" if language == "en" else f"_{language.upper()}"
    return f"Invoice_{invoice_number}{suffix}.pdf"


def export_pdf(html: str, output: str | Path) -> Path:
    """Rasterize rendered markup to a PDF file with WeasyPrint."""
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    try:
        from weasyprint import HTML
    except ImportError as exc:
        raise ExternalServiceError(
            "PDF export needs WeasyPrint; install invoice-builder[pdf]", service="weasyprint"
        ) from exc
    try:
        HTML(string=html).write_pdf(str(output))
    except Exception as exc:
        logger.error("PDF generation failed for %s: %s", output, exc)
        raise ExternalServiceError(f"PDF generation failed: {exc}", service="weasyprint") from exc
    logger.info("Wrote %s", output)
    return output


def export_invoice(
    store: InvoiceStore,
    invoice: Invoice,
    currency: Currency,
    output_dir: str | Path,
    language: str = "en",
    as_pdf: bool = True,
    validator: Optional[InvoiceValidator] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Save the invoice (draft becomes sent), render it, and write the document.

    With ``as_pdf=False`` the HTML itself is written next to where the PDF
    would go, for printing from a browser.
    """
    if invoice.status == PaymentStatus.DRAFT:
        invoice = invoice.model_copy(update={"status": PaymentStatus.SENT})
    saved = save_invoice(store, invoice, validator=validator, now=now)
    html = render(saved, currency, language)
    target = Path(output_dir) / pdf_filename(saved.invoice_number, language)
    if as_pdf:
        return export_pdf(html, target)
    target = target.with_suffix(".html")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(html, encoding="utf-8")
    logger.info("Wrote %s", target)
    return target
