"""
Registration gate.

Decides whether an invoice may be processed: its merchant and every line
item must already exist in the registry. The gate never mutates the invoice
it is given; it returns a new one with the registration flags filled in, so
recomputing it is always safe and a request aborted midway leaves nothing
half-updated.

Lookups fail closed: a registry error marks the entity as not registered and
is recorded in ``Invoice.gate_errors``. ``ensure_processable`` turns those
records back into a RegistryUnavailableError so processing cannot go ahead
on an incomplete check.
"""

from typing import Protocol

from loguru import logger

from ..core.errors import NotFullyRegisteredError, RegistryUnavailableError
from ..models.invoice import Invoice
from .keys import product_key, supplier_key


class RegistryLookup(Protocol):
    def exists_supplier(self, key: str) -> bool: ...

    def exists_product(self, key: str) -> bool: ...


def merchant_key(invoice: Invoice) -> str:
    merchant = invoice.merchant
    return supplier_key(merchant.tax_id.value, merchant.name.value, merchant.address.value)


def _lookup(check, key: str, label: str, errors: list[str]) -> bool:
    try:
        return bool(check(key))
    except Exception as e:
        # RegistryUnavailableError from our stores, anything else from third-party lookups
        logger.warning("Registry lookup failed, treating as not registered", entity=label, key=key, error=str(e))
        errors.append(f"{label}: {e}")
        return False


def compute_gate(invoice: Invoice, lookup: RegistryLookup) -> Invoice:
    """
    Cross-reference an invoice against the registry.

    Args:
        invoice: Normalized invoice (flags may be stale or unset)
        lookup: Registry capability with exists_supplier / exists_product

    Returns:
        A new Invoice with merchant.is_registered, each item.is_registered
        and the overall is_registered set
    """
    errors: list[str] = []

    merchant_registered = _lookup(lookup.exists_supplier, merchant_key(invoice), "merchant", errors)

    # One registry call per distinct code
    item_status: dict[str, bool] = {}
    for index, item in enumerate(invoice.items):
        key = product_key(item.code.value)
        if key not in item_status:
            item_status[key] = _lookup(lookup.exists_product, key, f"items[{index}]", errors)

    items = [
        item.model_copy(update={"is_registered": item_status[product_key(item.code.value)]})
        for item in invoice.items
    ]
    merchant = invoice.merchant.model_copy(update={"is_registered": merchant_registered})

    gated = invoice.model_copy(update={
        "merchant": merchant,
        "items": items,
        "is_registered": merchant_registered and all(item.is_registered for item in items),
        "gate_errors": errors,
    })

    logger.info(
        "Registration gate computed",
        invoice_id=invoice.id,
        registered=gated.is_registered,
        pending=gated.pending_registrations,
        lookup_errors=len(errors),
    )
    return gated


def ensure_processable(invoice: Invoice) -> None:
    """
    Refuse processing unless the gate passed with every lookup answered.

    Raises:
        RegistryUnavailableError: Some lookups failed, the gate is incomplete
        NotFullyRegisteredError: Merchant or items are missing from the registry
    """
    if invoice.gate_errors:
        raise RegistryUnavailableError(
            f"Registry unavailable while checking invoice {invoice.id}: " + "; ".join(invoice.gate_errors)
        )
    if not invoice.is_registered:
        raise NotFullyRegisteredError(invoice.id, invoice.pending_registrations)
