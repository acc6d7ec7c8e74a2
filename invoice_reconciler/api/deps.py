from functools import lru_cache

from pydantic import BaseModel

from ..core.config import settings
from ..services.events import create_event_publisher
from ..services.reconciler import InvoiceReconciler


@lru_cache
def get_reconciler() -> InvoiceReconciler:
    """Process-wide reconciler built from settings (override in tests)"""
    return InvoiceReconciler(
        settings.client_config(),
        publisher=create_event_publisher(settings.service_bus_connection_string, settings.service_bus_queue),
    )


class RejectRequest(BaseModel):
    reason: str = ""
    decided_by: str = "user"


class ProcessRequest(BaseModel):
    decided_by: str = "user"


class LinkSupplierRequest(BaseModel):
    invoice_id: str
    entry_id: str


class LinkProductRequest(BaseModel):
    invoice_id: str
    item_code: int
    entry_id: str
