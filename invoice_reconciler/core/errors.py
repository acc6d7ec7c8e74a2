"""
Error taxonomy for invoice reconciliation.

Every error carries enough context for the API layer to build a response
without re-parsing the message. ``to_dict`` is what the exception handler
returns to clients.
"""

from typing import Any


class ReconcilerError(Exception):
    """Base class for all reconciliation errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "detail": self.message, **self.context()}


class MalformedFieldError(ReconcilerError):
    """Extraction payload has a missing or unparseable required field"""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Malformed field: {field}")

    def context(self) -> dict[str, Any]:
        return {"field": self.field}


class RegistryUnavailableError(ReconcilerError):
    """Registry timed out or could not be reached. Safe to retry."""


class ExtractionUnavailableError(ReconcilerError):
    """Extraction service timed out or failed. Safe to retry."""


class NotFullyRegisteredError(ReconcilerError):
    """Invoice references suppliers or products missing from the registry"""

    def __init__(self, invoice_id: str, pending: list[str]):
        self.invoice_id = invoice_id
        self.pending = pending
        super().__init__(
            f"Invoice {invoice_id} is not fully registered: " + ", ".join(pending)
        )

    def context(self) -> dict[str, Any]:
        return {"invoice_id": self.invoice_id, "pending": self.pending}


class ValidationError(ReconcilerError):
    """User-supplied registration data is invalid"""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"field": self.field}


class DuplicateKeyError(ReconcilerError):
    """Another registry entry already owns this key"""

    def __init__(self, key: str, existing_id: str | None = None):
        self.key = key
        self.existing_id = existing_id
        super().__init__(f"Key '{key}' is already registered")

    def context(self) -> dict[str, Any]:
        return {"key": self.key, "existing_id": self.existing_id}


class NotFoundError(ReconcilerError):
    """Invoice (or registry entry) id is unknown"""


class InvoiceAlreadyDecidedError(ReconcilerError):
    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} was already {status}")

    def context(self) -> dict[str, Any]:
        return {"invoice_id": self.invoice_id, "status": self.status}
