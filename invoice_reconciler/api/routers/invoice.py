from typing import Literal

from fastapi import APIRouter, Depends
from loguru import logger

from ..deps import ProcessRequest, RejectRequest, get_reconciler
from ...models.invoice import Invoice, InvoiceDecision, PendingBatch
from ...services.reconciler import InvoiceReconciler

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("/pending", response_model=PendingBatch)
def list_pending(reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """
    Pending invoices with registration status recomputed against the registry.

    Invoices that could not be normalized are listed under ``failures`` with
    the offending field; they do not hide the rest of the batch.
    """
    return reconciler.fetch_pending()


@router.get("/decisions")
def list_decisions(
    status: Literal["processed", "rejected"] | None = None,
    reconciler: InvoiceReconciler = Depends(get_reconciler),
):
    """List processed and rejected invoices, most recent first"""
    decisions = reconciler.list_decisions(status)
    return {"total": len(decisions), "decisions": decisions}


@router.get("/{invoice_id}", response_model=Invoice)
def get_invoice(invoice_id: str, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.get_invoice(invoice_id)


@router.post("/{invoice_id}/process", response_model=InvoiceDecision)
def process_invoice(
    invoice_id: str,
    req: ProcessRequest | None = None,
    reconciler: InvoiceReconciler = Depends(get_reconciler),
):
    """
    Process an invoice.

    The registration gate is recomputed here regardless of what the client
    last saw; a stale "ready" view gets a 409 NotFullyRegisteredError.
    """
    decided_by = req.decided_by if req else "user"
    logger.info("Process requested", invoice_id=invoice_id, decided_by=decided_by)
    return reconciler.process(invoice_id, decided_by=decided_by)


@router.post("/{invoice_id}/reject", response_model=InvoiceDecision)
def reject_invoice(
    invoice_id: str,
    req: RejectRequest,
    reconciler: InvoiceReconciler = Depends(get_reconciler),
):
    return reconciler.reject(invoice_id, req.reason, decided_by=req.decided_by)
