"""Tabular import: parse CSV text, map columns to invoice fields, build invoices.

The default parser splits every line on commas and strips double quotes, so
a quoted value containing a comma is split in two. Rows whose column count
differs from the header's are dropped and counted rather than rejected.
"""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as SchemaError

from .errors import ExternalServiceError, InvoiceBuilderError, ParseError, ValidationError
from .schemas import AppSettings, CustomerType, ImportOutcome, Invoice, InvoiceItem, PaymentStatus
from .storage import InvoiceStore
from .utils import import_invoice_number, new_id, parse_date, parse_decimal, parse_int

logger = logging.getLogger(__name__)

Row = Dict[str, str]
FieldMapping = Dict[str, str]  # invoice field key -> source column

SHEET_ID_PATTERN = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
SHEET_CSV_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&sheet={sheet}"


@dataclass(frozen=True)
class InvoiceField:
    key: str
    label: str
    required: bool = False
    kind: str = "text"
    options: tuple = ()


INVOICE_FIELDS: List[InvoiceField] = [
    InvoiceField("customer", "Customer Name", required=True),
    InvoiceField("customerType", "Customer Type", kind="select", options=("Individual", "Company", "Direct Order")),
    InvoiceField("customerEmail", "Customer Email", kind="email"),
    InvoiceField("customerAddress", "Customer Address"),
    InvoiceField("product", "Product Name", required=True),
    InvoiceField("category", "Product Category"),
    InvoiceField("productType", "Product Type"),
    InvoiceField("quantity", "Quantity", required=True, kind="number"),
    InvoiceField("pricePerUnit", "Price per Unit", required=True, kind="number"),
    InvoiceField("platform", "Platform", kind="select",
                 options=("Direct Order", "Etsy", "Website", "Referral", "Social Media")),
    InvoiceField("status", "Status", kind="select", options=("Draft", "Sent", "Paid", "Overdue", "Cancelled")),
    InvoiceField("productionCost", "Production Cost", kind="number"),
    InvoiceField("date", "Invoice Date", kind="date"),
    InvoiceField("notes", "Additional Notes"),
]

_CUSTOMER_TYPES = {
    "individual": CustomerType.INDIVIDUAL,
    "company": CustomerType.COMPANY,
    "business": CustomerType.COMPANY,
    "direct-order": CustomerType.DIRECT_ORDER,
    "direct order": CustomerType.DIRECT_ORDER,
}


@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[Row]
    dropped: int = 0


# Parse
def _clean(value: str) -> str:
    return value.strip().replace('"', "")


def parse_csv(text: str, quoted: bool = False) -> ParsedTable:
    """Split CSV text into a header list and row dicts.

    With ``quoted=True`` a standard quoted-field reader is used instead of the
    plain comma split, so ``"Doe, Jane"`` stays one value.
    """
    lines = [line for line in text.replace("\r", "").split("\n") if line.strip()]
    if len(lines) < 2:
        raise ParseError("CSV must contain at least a header row and one data row", details={"lines": len(lines)})

    if quoted:
        records = [[v.strip() for v in rec] for rec in csv.reader(io.StringIO("\n".join(lines)))]
    else:
        records = [[_clean(v) for v in line.split(",")] for line in lines]

    headers = records[0]
    rows: List[Row] = []
    dropped = 0
    for values in records[1:]:
        if len(values) != len(headers):
            dropped += 1
            continue
        rows.append({h: values[i] or "" for i, h in enumerate(headers)})

    if dropped:
        logger.info("Dropped %d row(s) whose column count did not match %d headers", dropped, len(headers))
    return ParsedTable(headers=headers, rows=rows, dropped=dropped)


def read_csv_file(path: str | Path, quoted: bool = False) -> ParsedTable:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ParseError(f"Could not read {path}") from exc
    return parse_csv(text, quoted=quoted)


# Google Sheets source
def extract_sheet_id(url: str) -> str:
    match = SHEET_ID_PATTERN.search(url or "")
    if not match:
        raise ValidationError("Please enter a valid Google Sheets URL", errors=["format: sheet_url"])
    return match.group(1)


def sheet_csv_url(sheet_id: str, sheet_name: str = "Sheet1") -> str:
    return SHEET_CSV_URL.format(sheet_id=sheet_id, sheet=quote(sheet_name, safe=""))


def fetch_sheet_csv(
    url: str,
    sheet_name: str = "Sheet1",
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> str:
    """Download a publicly shared sheet tab as CSV text."""
    export_url = sheet_csv_url(extract_sheet_id(url), sheet_name)
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = client.get(export_url)
        response.raise_for_status()
        return response.text
    except httpx.HTTPStatusError as exc:
        logger.error("Sheet export returned %s for %s", exc.response.status_code, export_url)
        raise ExternalServiceError(
            "Failed to access Google Sheet. Make sure it's publicly accessible.",
            service="google-sheets",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.RequestError as exc:
        logger.error("Network error fetching %s: %s", export_url, exc)
        raise ExternalServiceError("Failed to connect to Google Sheets", service="google-sheets") from exc
    finally:
        if owns_client:
            client.close()


# Mapping
def auto_map(headers: List[str]) -> FieldMapping:
    """Suggest a column for each invoice field by loose name similarity; first match wins."""
    mapping: FieldMapping = {}
    for fld in INVOICE_FIELDS:
        label = fld.label.lower()
        for header in headers:
            header_lower = header.lower()
            if not header_lower:
                continue
            if (
                label.split(" ")[0] in header_lower
                or header_lower.split(" ")[0] in label
                or header_lower == label
            ):
                mapping[fld.key] = header
                break
    return mapping


def missing_required(mapping: FieldMapping) -> List[InvoiceField]:
    return [fld for fld in INVOICE_FIELDS if fld.required and not mapping.get(fld.key)]


def ensure_mapping_complete(mapping: FieldMapping) -> None:
    missing = missing_required(mapping)
    if missing:
        raise ValidationError(
            "Map all required fields before importing: " + ", ".join(f.label for f in missing),
            errors=[f"missing_mapping: {f.key}" for f in missing],
        )


# Bulk construct
def _status(value: str) -> PaymentStatus:
    try:
        return PaymentStatus(value.strip().lower())
    except ValueError:
        return PaymentStatus.DRAFT


def _customer_type(value: str) -> CustomerType:
    return _CUSTOMER_TYPES.get(value.strip().lower(), CustomerType.INDIVIDUAL)


def build_invoice(
    row: Row,
    mapping: FieldMapping,
    settings: AppSettings,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Invoice:
    today = today or date.today()

    def col(key: str) -> str:
        column = mapping.get(key)
        return (row.get(column) or "").strip() if column else ""

    quantity = max(parse_int(col("quantity"), 1), 1)
    price = max(parse_decimal(col("pricePerUnit")), 0)
    cost = max(parse_decimal(col("productionCost")), 0)

    item = InvoiceItem(
        id=new_id("product"),
        product=col("product"),
        category=col("category"),
        product_type=col("productType"),
        quantity=quantity,
        price_per_unit=price,
    )
    invoice = Invoice(
        invoice_number=import_invoice_number(settings.invoice_prefix, today),
        date=parse_date(col("date")) or today,
        customer=col("customer"),
        customer_type=_customer_type(col("customerType")),
        customer_email=col("customerEmail"),
        customer_address=col("customerAddress"),
        items=[item],
        production_cost=cost,
        platform=col("platform") or None,
        status=_status(col("status") or "Draft"),
        notes=col("notes") or None,
        created_at=now or datetime.now(),
    )
    return invoice.recalculate()


def build_invoices(
    rows: List[Row],
    mapping: FieldMapping,
    settings: AppSettings,
    today: Optional[date] = None,
) -> List[Invoice]:
    """One single-item invoice per row; raises on the first structural failure."""
    ensure_mapping_complete(mapping)
    return [build_invoice(row, mapping, settings, today) for row in rows]


def commit_import(store: InvoiceStore, invoices: List[Invoice]) -> None:
    store.extend(invoices)
    logger.info("Imported %d invoice(s)", len(invoices))


class ImportState(str, Enum):
    IDLE = "idle"
    SOURCE_SELECTED = "source_selected"
    PARSED = "parsed"
    MAPPED = "mapped"
    IMPORTED = "imported"


@dataclass
class ImportSession:
    """Drives one import from source text to committed invoices."""

    store: InvoiceStore
    settings: AppSettings
    quoted: bool = False
    state: ImportState = ImportState.IDLE
    source_text: Optional[str] = None
    table: Optional[ParsedTable] = None
    mapping: FieldMapping = field(default_factory=dict)

    def _require(self, *states: ImportState) -> None:
        if self.state not in states:
            raise ParseError(
                f"Import step not allowed in state '{self.state.value}'",
                details={"expected": [s.value for s in states]},
            )

    def select_source(self, text: str) -> None:
        self._require(ImportState.IDLE, ImportState.SOURCE_SELECTED)
        self.source_text = text
        self.state = ImportState.SOURCE_SELECTED

    def select_file(self, path: str | Path) -> None:
        try:
            text = Path(path).read_text(encoding="utf-8-sig")
        except OSError as exc:
            raise ParseError(f"Could not read {path}") from exc
        self.select_source(text)

    def select_sheet(self, url: str, sheet_name: str = "Sheet1", client: Optional[httpx.Client] = None) -> None:
        self.select_source(fetch_sheet_csv(url, sheet_name, client=client))

    def parse(self) -> ParsedTable:
        self._require(ImportState.SOURCE_SELECTED)
        self.table = parse_csv(self.source_text or "", quoted=self.quoted)
        self.mapping = auto_map(self.table.headers)
        self.state = ImportState.PARSED
        return self.table

    def map(self, mapping: Optional[FieldMapping] = None) -> FieldMapping:
        """Confirm the column mapping; ``None`` keeps the suggested one."""
        self._require(ImportState.PARSED, ImportState.MAPPED)
        if mapping is not None:
            self.mapping = {key: column for key, column in mapping.items() if column and column != "none"}
        ensure_mapping_complete(self.mapping)
        self.state = ImportState.MAPPED
        return self.mapping

    def run(self, today: Optional[date] = None) -> ImportOutcome:
        """Build every invoice, then commit them in one write or not at all."""
        self._require(ImportState.MAPPED)
        outcome = import_rows(self.store, self.table.rows, self.mapping, self.settings, today=today)
        outcome.dropped_rows = self.table.dropped
        if outcome.success:
            self.state = ImportState.IMPORTED
        return outcome


def import_rows(
    store: InvoiceStore,
    rows: List[Row],
    mapping: FieldMapping,
    settings: AppSettings,
    today: Optional[date] = None,
) -> ImportOutcome:
    try:
        invoices = build_invoices(rows, mapping, settings, today)
        commit_import(store, invoices)
    except (InvoiceBuilderError, SchemaError, KeyError, TypeError) as exc:
        logger.error("Import failed, nothing committed: %s", exc)
        return ImportOutcome(
            success=False,
            title="Import Failed",
            message="There was an error importing the invoices. Please check your data and try again.",
        )
    return ImportOutcome(
        success=True,
        title="Import Successful",
        message=f"Successfully imported {len(invoices)} invoices.",
        imported=len(invoices),
        invoice_numbers=[inv.invoice_number for inv in invoices],
    )
