"""Exceptions raised by the invoice builder.

Every error derives from :class:`InvoiceBuilderError` so front ends can turn
the whole family into an inline message with one ``except`` clause.

Hierarchy::

    InvoiceBuilderError
    ├── ValidationError       (missing field, non-positive amount, last item)
    ├── ParseError            (malformed import source, out-of-order step)
    ├── ExternalServiceError  (payment API or spreadsheet fetch failure)
    └── StorageError          (serialization or file failure)
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class InvoiceBuilderError(Exception):
    """Base exception for all invoice builder errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | details={self.details}"
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r})"


class ValidationError(InvoiceBuilderError):
    """Raised when user input blocks an action; fixing the input recovers."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.errors: List[str] = errors or []


class ParseError(InvoiceBuilderError):
    """Raised when an import source cannot be read into rows."""


class ExternalServiceError(InvoiceBuilderError):
    """Raised when the payment API or a spreadsheet endpoint fails."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.status_code = status_code


class StorageError(InvoiceBuilderError):
    """Raised when the invoice collection cannot be read or written."""

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.key = key
