"""JSON key-value persistence for invoices and app settings.

Each fixed key is one JSON file under the data directory. The whole invoice
collection is read and written as a single unit on every change; there is no
locking, so two processes sharing a directory race and the last writer wins.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from .errors import StorageError
from .schemas import AppSettings, Invoice, InvoiceSummary, PaymentStatus
from .utils import ZERO
from .validator import InvoiceValidator

logger = logging.getLogger(__name__)

INVOICES_KEY = "invoices"
SETTINGS_KEY = "app-settings"


class JsonKeyValueStore:
    """Minimal get/set store keeping one ``<key>.json`` file per key."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        logger.debug("Reading %s", path)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Could not read '{key}' from {path}", key=key) from exc

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Could not serialize '{key}'", key=key) from exc
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"Could not write '{key}' to {path}", key=key) from exc
        logger.debug("Wrote %s", path)


class InvoiceStore:
    """The saved invoice collection plus app settings, keyed by invoice number."""

    def __init__(self, kv: JsonKeyValueStore) -> None:
        self.kv = kv

    @classmethod
    def open(cls, data_dir: str | Path) -> "InvoiceStore":
        return cls(JsonKeyValueStore(data_dir))

    # Invoices
    def load(self) -> List[Invoice]:
        raw = self.kv.get(INVOICES_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError("Stored invoices are not a list", key=INVOICES_KEY)
        try:
            return [Invoice.model_validate(item) for item in raw]
        except SchemaError as exc:
            raise StorageError("Stored invoices do not match the invoice model", key=INVOICES_KEY) from exc

    def save(self, invoices: Iterable[Invoice]) -> None:
        self.kv.set(INVOICES_KEY, [inv.to_json_dict() for inv in invoices])

    def get(self, invoice_number: str) -> Optional[Invoice]:
        return next((inv for inv in self.load() if inv.invoice_number == invoice_number), None)

    def upsert(self, invoice: Invoice) -> List[Invoice]:
        """Replace the record with the same number in place, or prepend a new one."""
        invoices = self.load()
        for index, existing in enumerate(invoices):
            if existing.invoice_number == invoice.invoice_number:
                invoices[index] = invoice
                logger.info("Updated invoice %s", invoice.invoice_number)
                break
        else:
            invoices.insert(0, invoice)
            logger.info("Added invoice %s", invoice.invoice_number)
        self.save(invoices)
        return invoices

    def delete(self, invoice_number: str) -> List[Invoice]:
        invoices = self.load()
        remaining = [inv for inv in invoices if inv.invoice_number != invoice_number]
        if len(remaining) == len(invoices):
            logger.info("Invoice %s not found; nothing deleted", invoice_number)
            return invoices
        self.save(remaining)
        logger.info("Deleted invoice %s", invoice_number)
        return remaining

    def extend(self, new_invoices: List[Invoice]) -> List[Invoice]:
        """Append a batch after the existing records in one write."""
        invoices = self.load() + list(new_invoices)
        self.save(invoices)
        return invoices

    # Settings
    def load_settings(self) -> AppSettings:
        try:
            raw = self.kv.get(SETTINGS_KEY)
            if raw is None:
                return AppSettings()
            return AppSettings.model_validate(raw)
        except (StorageError, SchemaError) as exc:
            logger.warning("Error loading settings, using defaults: %s", exc)
            return AppSettings()

    def save_settings(self, settings: AppSettings) -> None:
        self.kv.set(SETTINGS_KEY, settings.to_json_dict())
        logger.info("Saved settings (currency=%s, prefix=%s)", settings.currency.code, settings.invoice_prefix)


def save_invoice(
    store: InvoiceStore,
    invoice: Invoice,
    validator: Optional[InvoiceValidator] = None,
    now: Optional[datetime] = None,
) -> Invoice:
    """Validate, stamp, and upsert the invoice being edited; returns the stored copy."""
    (validator or InvoiceValidator()).ensure_savable(invoice)
    now = now or datetime.now()
    saved = invoice.recalculate().model_copy(
        update={"updated_at": now, "created_at": invoice.created_at or now}
    )
    store.upsert(saved)
    return saved


def summarize(invoices: Iterable[Invoice]) -> InvoiceSummary:
    """Count paid and pending (sent) invoices and add up their revenue."""
    invoices = list(invoices)
    return InvoiceSummary(
        total_invoices=len(invoices),
        paid=sum(1 for inv in invoices if inv.status == PaymentStatus.PAID),
        pending=sum(1 for inv in invoices if inv.status == PaymentStatus.SENT),
        total_revenue=sum((inv.revenue or ZERO for inv in invoices), ZERO),
    )
