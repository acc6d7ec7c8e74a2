"""
Tests for the registration gate.

Verifies that the gate:
- Flags the merchant and each item against the registry
- Is idempotent and never mutates its input
- Fails closed when registry lookups fail
"""

from unittest.mock import Mock

import pytest

from invoice_reconciler.core.errors import NotFullyRegisteredError, RegistryUnavailableError
from invoice_reconciler.services.normalizer import normalize
from invoice_reconciler.services.registration_gate import (
    compute_gate,
    ensure_processable,
    merchant_key,
)


@pytest.fixture
def invoice(raw_invoice):
    return normalize(raw_invoice)


def test_unregistered_supplier_and_item(invoice, registry, register_items):
    """Tax id and item 2 missing, items 1 and 3 registered"""
    register_items(codes=("1", "3"))

    gated = compute_gate(invoice, registry)

    assert gated.merchant.is_registered is False
    assert [item.is_registered for item in gated.items] == [True, False, True]
    assert gated.is_registered is False
    assert gated.pending_registrations == ["merchant", "items[1]"]

    with pytest.raises(NotFullyRegisteredError) as exc_info:
        ensure_processable(gated)
    assert exc_info.value.pending == ["merchant", "items[1]"]


def test_registering_missing_product_flips_item(invoice, registry, register_items):
    register_items(codes=("1", "3"))
    assert compute_gate(invoice, registry).items[1].is_registered is False

    registry.create_entry("product", "Monitor UltraWide 34\"", "2")

    assert compute_gate(invoice, registry).items[1].is_registered is True


def test_fully_registered_invoice_passes(invoice, registry, register_items):
    registry.create_entry("supplier", "Tech Supplies Ltd", "12345678000190")
    register_items()

    gated = compute_gate(invoice, registry)

    assert gated.is_registered is True
    assert gated.pending_registrations == []
    assert gated.gate_errors == []
    ensure_processable(gated)


def test_tax_id_formatting_does_not_matter(invoice, registry):
    registry.create_entry("supplier", "Tech Supplies Ltd", "12.345.678/0001-90")

    assert compute_gate(invoice, registry).merchant.is_registered is True


def test_gate_does_not_mutate_input(invoice, registry, register_items):
    registry.create_entry("supplier", "Tech Supplies Ltd", "12345678000190")
    register_items()

    gated = compute_gate(invoice, registry)

    assert gated.is_registered is True
    assert invoice.is_registered is False
    assert invoice.merchant.is_registered is False
    assert all(not item.is_registered for item in invoice.items)


def test_gate_is_idempotent(invoice, registry, register_items):
    register_items(codes=("2",))

    first = compute_gate(invoice, registry)
    second = compute_gate(first, registry)

    assert first == second


def test_invoice_registered_iff_merchant_and_all_items(invoice):
    for merchant_ok in (True, False):
        for item_ok in (True, False):
            lookup = Mock()
            lookup.exists_supplier.return_value = merchant_ok
            lookup.exists_product.return_value = item_ok

            gated = compute_gate(invoice, lookup)

            assert gated.is_registered == (
                gated.merchant.is_registered and all(item.is_registered for item in gated.items)
            )
            assert gated.is_registered == (merchant_ok and item_ok)


def test_one_lookup_per_distinct_code(raw_invoice):
    raw_invoice["content"]["itens"].append(raw_invoice["content"]["itens"][0])
    invoice = normalize(raw_invoice)
    lookup = Mock()
    lookup.exists_supplier.return_value = True
    lookup.exists_product.return_value = True

    compute_gate(invoice, lookup)

    assert lookup.exists_product.call_count == 3


def test_lookup_failure_fails_closed(invoice):
    """A timed-out lookup never counts as registered"""
    lookup = Mock()
    lookup.exists_supplier.return_value = True
    lookup.exists_product.side_effect = [True, RegistryUnavailableError("Registry timed out"), True]

    gated = compute_gate(invoice, lookup)

    assert [item.is_registered for item in gated.items] == [True, False, True]
    assert gated.is_registered is False
    assert len(gated.gate_errors) == 1
    assert gated.gate_errors[0].startswith("items[1]")

    with pytest.raises(RegistryUnavailableError):
        ensure_processable(gated)


def test_unexpected_lookup_error_fails_closed(invoice):
    lookup = Mock()
    lookup.exists_supplier.side_effect = ConnectionError("boom")
    lookup.exists_product.return_value = True

    gated = compute_gate(invoice, lookup)

    assert gated.merchant.is_registered is False
    assert gated.is_registered is False
    assert gated.gate_errors == ["merchant: boom"]


def test_merchant_without_tax_id_uses_name_key(raw_invoice, registry):
    del raw_invoice["content"]["merchant"]["cnpj"]
    invoice = normalize(raw_invoice)

    assert merchant_key(invoice) == "name:techsuppliesltd|123techstreettechcity"

    # Same display name under a tax id, or at another address, does not match
    registry.create_entry("supplier", "Tech Supplies Ltd", "99999999000199")
    registry.create_entry("supplier", "Tech Supplies Ltd", "name:Tech Supplies Ltd|9 Other Road")
    assert compute_gate(invoice, registry).merchant.is_registered is False

    registry.create_entry("supplier", "Tech Supplies Ltd", "name:Tech Supplies Ltd|123 Tech Street, Tech City")
    assert compute_gate(invoice, registry).merchant.is_registered is True


def test_merchant_without_tax_id_or_address_uses_name_only(raw_invoice):
    del raw_invoice["content"]["merchant"]["cnpj"]
    del raw_invoice["content"]["merchant"]["address"]

    assert merchant_key(normalize(raw_invoice)) == "name:techsuppliesltd"
