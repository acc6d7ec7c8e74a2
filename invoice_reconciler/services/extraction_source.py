"""
Sources of pending invoice extractions.

The extraction service (OCR + field extraction) is external. When
BACKEND_BASE_URL is configured we talk to it over HTTP; otherwise a
static source serving a sample invoice is used so the API can be demoed
locally.
"""

import copy
from abc import ABC, abstractmethod

import httpx
from loguru import logger

from ..core.config import ClientConfig
from ..core.errors import ExtractionUnavailableError, NotFoundError


class ExtractionSource(ABC):
    @abstractmethod
    def get_pending_invoices(self) -> list[dict]:
        """Raw extraction documents awaiting a decision"""
        pass

    @abstractmethod
    def mark_processed(self, invoice_id: str) -> None:
        pass

    @abstractmethod
    def mark_rejected(self, invoice_id: str, reason: str) -> None:
        pass

    def get_pending_invoice(self, invoice_id: str) -> dict:
        for document in self.get_pending_invoices():
            if isinstance(document, dict) and str(document.get("id")) == invoice_id:
                return document
        raise NotFoundError(f"Invoice {invoice_id} is not pending")


def unwrap_results(payload) -> list[dict]:
    """
    Accept either ``{"results": [{"document": {...}}, ...]}`` (extraction
    service response) or a bare list of documents.
    """
    results = payload.get("results", []) if isinstance(payload, dict) else payload
    if not isinstance(results, list):
        return []
    documents = []
    for result in results:
        if isinstance(result, dict) and isinstance(result.get("document"), dict):
            documents.append(result["document"])
        else:
            documents.append(result)
    return documents


class HttpExtractionSource(ExtractionSource):
    """
    Client for the extraction service.

        GET  /invoice/pendings       -> {"results": [{"document": {...}}]}
        POST /invoice/{id}/process
        POST /invoice/{id}/reject    {"reason": "..."}
    """

    def __init__(self, config: ClientConfig, transport: httpx.BaseTransport | None = None):
        if not config.base_url:
            raise ValueError("HttpExtractionSource requires a base_url")
        self.config = config
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.config.base_url.rstrip('/')}{path}"
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                response = client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ExtractionUnavailableError(f"Extraction service timed out after {self.config.timeout}s") from e
        except httpx.TransportError as e:
            raise ExtractionUnavailableError(f"Extraction service unreachable: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Extraction service has no {path}")
        if response.status_code >= 400:
            logger.error("Extraction service error", url=url, status=response.status_code)
            raise ExtractionUnavailableError(f"Extraction service error {response.status_code}: {method} {path}")
        return response

    def get_pending_invoices(self) -> list[dict]:
        response = self._request("GET", "/invoice/pendings")
        documents = unwrap_results(response.json())
        logger.info("Fetched pending extractions", count=len(documents))
        return documents

    def mark_processed(self, invoice_id: str) -> None:
        self._request("POST", f"/invoice/{invoice_id}/process")

    def mark_rejected(self, invoice_id: str, reason: str) -> None:
        self._request("POST", f"/invoice/{invoice_id}/reject", json={"reason": reason})


SAMPLE_EXTRACTION = {
    "id": "INV-2023-0042",
    "confidence": 0.9,
    "content": {
        "merchant": {
            "name": {"value": "Tech Supplies Ltd", "confidence": 0.85},
            "cnpj": {"value": "12.345.678/0001-90", "confidence": 0.92},
            "address": {"value": "123 Tech Street, Tech City", "confidence": 0.70},
        },
        "itens": [
            {
                "code": {"value": "1", "confidence": 0.95},
                "description": {"value": "Laptop Dell XPS 15", "confidence": 0.96},
                "quantity": {"value": 2, "confidence": 0.99},
                "price": {"value": 899.99, "confidence": 0.95},
                "unit": {"value": "un", "confidence": 1.0},
                "totalPrice": {"value": 1799.98, "confidence": 0.97},
            },
            {
                "code": {"value": "2", "confidence": 0.90},
                "description": {"value": "Monitor UltraWide 34\"", "confidence": 0.78},
                "quantity": {"value": 1, "confidence": 0.99},
                "price": {"value": 499.99, "confidence": 0.85},
                "unit": {"value": "un", "confidence": 1.0},
                "totalPrice": {"value": 499.99, "confidence": 0.92},
            },
            {
                "code": {"value": "3", "confidence": 0.88},
                "description": {"value": "Wireless Keyboard", "confidence": 0.88},
                "quantity": {"value": 3, "confidence": 0.97},
                "price": {"value": 50.25, "confidence": 0.90},
                "unit": {"value": "un", "confidence": 1.0},
                "totalPrice": {"value": 150.75, "confidence": 0.95},
            },
        ],
        "total": {"value": 2450.75, "confidence": 0.98},
        "totalTax": {"value": 245.07, "confidence": 0.90},
        "transactionDate": {"value": "2023-11-15T00:00:00Z", "confidence": 0.95},
    },
}


class StaticExtractionSource(ExtractionSource):
    """In-process source. Decisions are recorded by the reconciler, not here."""

    def __init__(self, documents: list[dict] | None = None):
        self._documents = [copy.deepcopy(SAMPLE_EXTRACTION)] if documents is None else list(documents)
        self.processed: list[str] = []
        self.rejected: dict[str, str] = {}

    def get_pending_invoices(self) -> list[dict]:
        return [copy.deepcopy(document) for document in self._documents]

    def mark_processed(self, invoice_id: str) -> None:
        self.processed.append(invoice_id)

    def mark_rejected(self, invoice_id: str, reason: str) -> None:
        self.rejected[invoice_id] = reason
