"""FastAPI application exposing the invoice builder over HTTP."""
from __future__ import annotations

import logging
from typing import Iterator, List

from fastapi import Depends, FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import HTMLResponse, JSONResponse

from .config import get_settings
from .errors import ExternalServiceError, InvoiceBuilderError, ParseError, StorageError, ValidationError
from .importer import auto_map, import_rows, parse_csv
from .payment import PaymentBridge, checkout_client_from_settings, payment_link
from .renderer import render
from .schemas import AppSettings, ImportOutcome, ImportRequest, Invoice, InvoiceSummary, ParsedTableResponse
from .storage import InvoiceStore, save_invoice, summarize

logger = logging.getLogger(__name__)

app = FastAPI(title="Invoice Builder", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_CODES = {
    ValidationError: 422,
    ParseError: 400,
    ExternalServiceError: 502,
    StorageError: 500,
}


@app.exception_handler(InvoiceBuilderError)
async def invoice_builder_error_handler(request: Request, exc: InvoiceBuilderError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=body)


def get_store() -> InvoiceStore:
    return InvoiceStore.open(get_settings().data_dir)


def get_bridge(store: InvoiceStore = Depends(get_store)) -> Iterator[PaymentBridge]:
    with checkout_client_from_settings(get_settings()) as client:
        yield PaymentBridge(client, store)


def _find(store: InvoiceStore, invoice_number: str) -> Invoice:
    invoice = store.get(invoice_number)
    if invoice is None:
        raise ValidationError(f"Invoice {invoice_number} not found", errors=["missing: invoice"])
    return invoice


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/invoices")
def list_invoices(store: InvoiceStore = Depends(get_store)) -> List[dict]:
    return [inv.to_json_dict() for inv in store.load()]


@app.get("/invoices/summary", response_model=InvoiceSummary)
def invoice_summary(store: InvoiceStore = Depends(get_store)) -> InvoiceSummary:
    return summarize(store.load())


@app.get("/invoices/{invoice_number}")
def get_invoice(invoice_number: str, store: InvoiceStore = Depends(get_store)) -> dict:
    return _find(store, invoice_number).to_json_dict()


@app.put("/invoices")
def put_invoice(invoice: Invoice, store: InvoiceStore = Depends(get_store)) -> dict:
    return save_invoice(store, invoice).to_json_dict()


@app.delete("/invoices/{invoice_number}")
def delete_invoice(invoice_number: str, store: InvoiceStore = Depends(get_store)) -> dict:
    remaining = store.delete(invoice_number)
    return {"deleted": invoice_number, "remaining": len(remaining)}


@app.get("/invoices/{invoice_number}/render", response_class=HTMLResponse)
def render_invoice(invoice_number: str, language: str = "en", store: InvoiceStore = Depends(get_store)) -> str:
    invoice = _find(store, invoice_number)
    if language not in ("en", "pt"):
        raise ValidationError(f"Unsupported language {language!r}")
    return render(invoice, store.load_settings().currency, language)


@app.post("/invoices/{invoice_number}/checkout")
def create_checkout(
    invoice_number: str,
    store: InvoiceStore = Depends(get_store),
    bridge: PaymentBridge = Depends(get_bridge),
) -> dict:
    invoice = _find(store, invoice_number)
    session = bridge.create_session(invoice)
    store.upsert(invoice.model_copy(update={"checkout_session_id": session.session_id}))
    return {
        "sessionId": session.session_id,
        "clientSecret": session.client_secret,
        "paymentLink": payment_link(get_settings().public_base_url, invoice_number),
    }


@app.get("/checkout/{session_id}/status")
def checkout_status(
    session_id: str,
    invoice_number: str,
    store: InvoiceStore = Depends(get_store),
    bridge: PaymentBridge = Depends(get_bridge),
) -> dict:
    invoice = _find(store, invoice_number)
    updated = bridge.reconcile(invoice, session_id)
    return {"status": updated.status.value, "invoice": updated.to_json_dict()}


@app.post("/import/csv", response_model=ParsedTableResponse)
async def upload_csv(file: UploadFile = File(...), quoted: bool = Form(False)) -> ParsedTableResponse:
    content = await file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError("Please select a valid CSV file") from exc
    table = parse_csv(text, quoted=quoted)
    return ParsedTableResponse(
        headers=table.headers,
        rows=table.rows,
        dropped_rows=table.dropped,
        suggested_mapping=auto_map(table.headers),
    )


@app.post("/import/commit", response_model=ImportOutcome)
def commit_rows(request: ImportRequest, store: InvoiceStore = Depends(get_store)) -> ImportOutcome:
    return import_rows(store, request.rows, request.mapping, store.load_settings())


@app.get("/settings")
def read_settings(store: InvoiceStore = Depends(get_store)) -> dict:
    return store.load_settings().to_json_dict()


@app.put("/settings")
def write_settings(settings: AppSettings, store: InvoiceStore = Depends(get_store)) -> dict:
    store.save_settings(settings)
    return settings.to_json_dict()
