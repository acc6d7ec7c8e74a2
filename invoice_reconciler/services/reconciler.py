"""
Invoice reconciler: the surface the API and CLI talk to.

Wires the normalizer, registration gate and registrar to a registry store,
an extraction source and the decision tracker. Every read re-fetches the
extraction and recomputes the gate; nothing about an invoice is cached
between calls, so a stale client view can never authorize processing.
"""

from loguru import logger

from ..core.config import ClientConfig, settings
from ..core.errors import (
    InvoiceAlreadyDecidedError,
    NotFoundError,
    MalformedFieldError,
    ValidationError,
)
from ..models.invoice import Invoice, InvoiceDecision, InvoiceFailure, PendingBatch
from ..models.registry import ProductFields, RegistryEntry, SupplierFields
from . import normalizer, registration_gate
from .events import EventPublisher, InvoiceDecisionEvent
from .extraction_source import ExtractionSource, HttpExtractionSource, StaticExtractionSource
from .registrar import EntityRegistrar
from .registry_client import HttpRegistryStore
from .storage import RegistryStoreBase, SQLiteDecisionTracker, SQLiteRegistryStore


class InvoiceReconciler:
    def __init__(
        self,
        config: ClientConfig,
        registry: RegistryStoreBase | None = None,
        source: ExtractionSource | None = None,
        decisions: SQLiteDecisionTracker | None = None,
        publisher: EventPublisher | None = None,
        db_path: str | None = None,
        consistency_tolerance: float | None = None,
    ):
        """
        Args:
            config: Backend root and per-call timeout. With a base_url the
                registry and the extraction source are the remote API;
                without one, a local SQLite registry and the sample source.
            registry / source / decisions / publisher: Explicit collaborators
                (override what ``config`` would build)
            db_path: SQLite file for the local registry and decisions
            consistency_tolerance: Allowed item total mismatch
        """
        self.config = config
        db_path = db_path or settings.registry_db_path

        if registry is None:
            registry = (
                HttpRegistryStore(config) if config.base_url
                else SQLiteRegistryStore(db_path, timeout=config.timeout)
            )
        if source is None:
            source = HttpExtractionSource(config) if config.base_url else StaticExtractionSource()

        self.registry = registry
        self.source = source
        self.decisions = decisions or SQLiteDecisionTracker(db_path, timeout=config.timeout)
        self.publisher = publisher or EventPublisher(service_bus_sender=None)
        self.registrar = EntityRegistrar(registry)
        self.consistency_tolerance = consistency_tolerance

    # Reconciliation

    def normalize(self, raw: dict) -> Invoice:
        return normalizer.normalize(raw, tolerance=self.consistency_tolerance)

    def compute_gate(self, invoice: Invoice) -> Invoice:
        return registration_gate.compute_gate(invoice, self.registry)

    def reconcile(self, raw: dict) -> Invoice:
        """Normalize then gate one raw extraction"""
        return self.compute_gate(self.normalize(raw))

    def fetch_pending(self) -> PendingBatch:
        """
        Fetch, normalize and gate every pending invoice.

        A malformed document is reported in ``failures`` and does not stop
        the rest of the batch. Invoices that already have a decision are
        skipped.
        """
        documents = self.source.get_pending_invoices()
        decided = self.decisions.decided_ids()

        batch = PendingBatch()
        for document in documents:
            invoice_id = document.get("id") if isinstance(document, dict) else None
            invoice_id = str(invoice_id) if invoice_id is not None else None
            if invoice_id in decided:
                continue
            try:
                invoice = self.normalize(document)
            except MalformedFieldError as e:
                logger.warning("Skipping malformed extraction", invoice_id=invoice_id, field=e.field, error=e.message)
                batch.failures.append(InvoiceFailure(
                    invoice_id=invoice_id,
                    error=type(e).__name__,
                    field=e.field,
                    message=e.message,
                ))
                continue
            batch.invoices.append(self.compute_gate(invoice))

        logger.info(
            "Pending invoices reconciled",
            invoices=len(batch.invoices),
            failures=len(batch.failures),
            ready=sum(1 for invoice in batch.invoices if invoice.is_registered),
        )
        return batch

    def get_invoice(self, invoice_id: str) -> Invoice:
        if self.decisions.get(invoice_id) is not None:
            raise NotFoundError(f"Invoice {invoice_id} is no longer pending")
        return self.reconcile(self.source.get_pending_invoice(invoice_id))

    # Decisions

    def _ensure_undecided(self, invoice_id: str) -> None:
        existing = self.decisions.get(invoice_id)
        if existing is not None:
            raise InvoiceAlreadyDecidedError(invoice_id, existing.status)

    def _publish(self, event_type: str, raw: dict, reason: str | None = None) -> None:
        invoice_id = str(raw.get("id"))
        try:
            try:
                invoice = self.normalize(raw)
                merchant, key = invoice.merchant.name.value, registration_gate.merchant_key(invoice)
                total, item_count = invoice.total.value, len(invoice.items)
            except MalformedFieldError:
                merchant, key, total, item_count = "Unknown", "", 0.0, 0
            self.publisher.publish(InvoiceDecisionEvent(
                invoice_id=invoice_id,
                event_type=event_type,
                merchant=merchant,
                supplier_key=key,
                total=total,
                item_count=item_count,
                reason=reason,
            ))
        except Exception as e:
            # Don't fail the decision if event publishing fails
            logger.warning("Failed to publish event", invoice_id=invoice_id, event_type=event_type, error=str(e))

    def process(self, invoice_id: str, decided_by: str = "user") -> InvoiceDecision:
        """
        Process an invoice after re-checking the gate against the registry.

        Raises:
            InvoiceAlreadyDecidedError: Invoice was processed or rejected before
            NotFoundError: Invoice is not pending at the source
            MalformedFieldError: Extraction cannot be normalized
            RegistryUnavailableError: Gate could not be fully evaluated
            NotFullyRegisteredError: Merchant or items still unregistered
        """
        self._ensure_undecided(invoice_id)
        raw = self.source.get_pending_invoice(invoice_id)
        invoice = self.reconcile(raw)
        registration_gate.ensure_processable(invoice)

        self.source.mark_processed(invoice_id)
        decision = self.decisions.record(invoice_id, "processed", decided_by=decided_by)
        logger.info("Invoice processed", invoice_id=invoice_id, decided_by=decided_by)
        self._publish("InvoiceProcessed", raw)
        return decision

    def reject(self, invoice_id: str, reason: str, decided_by: str = "user") -> InvoiceDecision:
        """
        Reject a pending invoice. Malformed extractions can be rejected too.

        Raises:
            ValidationError: Empty reason
            InvoiceAlreadyDecidedError / NotFoundError
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "A rejection reason is required")

        self._ensure_undecided(invoice_id)
        raw = self.source.get_pending_invoice(invoice_id)

        self.source.mark_rejected(invoice_id, reason)
        decision = self.decisions.record(invoice_id, "rejected", reason=reason, decided_by=decided_by)
        logger.info("Invoice rejected", invoice_id=invoice_id, reason=reason, decided_by=decided_by)
        self._publish("InvoiceRejected", raw, reason=reason)
        return decision

    def list_decisions(self, status: str | None = None) -> list[InvoiceDecision]:
        return self.decisions.list_all(status)

    # Registration (the gate is not recomputed here; re-fetch the invoice)

    def register_supplier(self, fields: SupplierFields) -> RegistryEntry:
        return self.registrar.register_supplier(fields)

    def register_product(self, fields: ProductFields) -> RegistryEntry:
        return self.registrar.register_product(fields)

    def update_supplier(self, entry_id: str, fields: SupplierFields) -> RegistryEntry:
        return self.registrar.update_supplier(entry_id, fields)

    def update_product(self, entry_id: str, fields: ProductFields) -> RegistryEntry:
        return self.registrar.update_product(entry_id, fields)

    def link_existing_supplier(self, invoice_id: str, entry_id: str) -> RegistryEntry:
        invoice = self.get_invoice(invoice_id)
        return self.registrar.link_existing_supplier(invoice.merchant, entry_id)

    def link_existing_product(self, invoice_id: str, item_code: int, entry_id: str) -> RegistryEntry:
        invoice = self.get_invoice(invoice_id)
        for item in invoice.items:
            if item.code.value == item_code:
                return self.registrar.link_existing_product(item, entry_id)
        raise ValidationError("item_code", f"Invoice {invoice_id} has no item with code {item_code}")

    def get_entry(self, kind: str, entry_id: str) -> RegistryEntry:
        entry = self.registry.get_entry(kind, entry_id)
        if entry is None:
            raise NotFoundError(f"No {kind} registered with id {entry_id}")
        return entry

    def search_suppliers(self, query: str) -> list[RegistryEntry]:
        return self.registrar.search_suppliers(query)

    def search_products(self, query: str) -> list[RegistryEntry]:
        return self.registrar.search_products(query)
