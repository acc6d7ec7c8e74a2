"""
Supplier and product registration endpoints.

Registration never updates invoice state directly: after a successful
create, update or link the client re-fetches the invoice to see the new gate.
"""

from fastapi import APIRouter, Depends, status

from ..deps import LinkProductRequest, LinkSupplierRequest, get_reconciler
from ...models.registry import ProductFields, RegistryEntry, SupplierFields
from ...services.reconciler import InvoiceReconciler

suppliers_router = APIRouter(prefix="/suppliers", tags=["suppliers"])
products_router = APIRouter(prefix="/products", tags=["products"])


@suppliers_router.post("", response_model=RegistryEntry, status_code=status.HTTP_201_CREATED)
def register_supplier(fields: SupplierFields, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """Register a supplier. Re-registering the same tax id and name returns the existing entry."""
    return reconciler.register_supplier(fields)


@suppliers_router.get("", response_model=list[RegistryEntry])
def list_suppliers(reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.registry.list_entries("supplier")


@suppliers_router.get("/search", response_model=list[RegistryEntry])
def search_suppliers(q: str = "", reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """Search by name or tax id: exact key matches first, then name prefix, then substring"""
    return reconciler.search_suppliers(q)


@suppliers_router.post("/link", response_model=RegistryEntry)
def link_supplier(req: LinkSupplierRequest, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """Link an invoice's merchant to an existing supplier"""
    return reconciler.link_existing_supplier(req.invoice_id, req.entry_id)


@suppliers_router.get("/{entry_id}", response_model=RegistryEntry)
def get_supplier(entry_id: str, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.get_entry("supplier", entry_id)


@suppliers_router.put("/{entry_id}", response_model=RegistryEntry)
def update_supplier(entry_id: str, fields: SupplierFields, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """Correct a supplier. Changing the tax id to one another supplier holds is a 409."""
    return reconciler.update_supplier(entry_id, fields)


@products_router.post("", response_model=RegistryEntry, status_code=status.HTTP_201_CREATED)
def register_product(fields: ProductFields, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.register_product(fields)


@products_router.get("", response_model=list[RegistryEntry])
def list_products(reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.registry.list_entries("product")


@products_router.get("/search", response_model=list[RegistryEntry])
def search_products(q: str = "", reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.search_products(q)


@products_router.post("/link", response_model=RegistryEntry)
def link_product(req: LinkProductRequest, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    """Link an invoice line item (by code) to an existing product"""
    return reconciler.link_existing_product(req.invoice_id, req.item_code, req.entry_id)


@products_router.get("/{entry_id}", response_model=RegistryEntry)
def get_product(entry_id: str, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.get_entry("product", entry_id)


@products_router.put("/{entry_id}", response_model=RegistryEntry)
def update_product(entry_id: str, fields: ProductFields, reconciler: InvoiceReconciler = Depends(get_reconciler)):
    return reconciler.update_product(entry_id, fields)
