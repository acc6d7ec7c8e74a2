"""
Entity registrar: the write path into the supplier/product registry.

Every operation validates its input before touching the store, so a
rejected call leaves the registry unchanged. The registrar does not
recompute registration gates; callers re-fetch the affected invoice after a
successful registration.
"""

from loguru import logger

from ..core.errors import DuplicateKeyError, ValidationError
from ..models.invoice import LineItem, Merchant
from ..models.registry import EntryKind, ProductFields, RegistryEntry, SupplierFields
from .keys import normalize_key, product_key, supplier_key
from .storage.registry_base import RegistryStoreBase


def _same_name(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


class EntityRegistrar:
    def __init__(self, store: RegistryStoreBase):
        self.store = store

    def _create_or_return_existing(self, kind: EntryKind, name: str, key: str, **attrs) -> RegistryEntry:
        """
        Create an entry, or return the existing one when the same key is
        registered again under the same name. A different name under the
        same key is a conflict.
        """
        try:
            return self.store.create_entry(kind, name, key, **attrs)
        except DuplicateKeyError as e:
            existing = self.store.get_entry(kind, e.existing_id) if e.existing_id else None
            if existing is not None and _same_name(existing.name, name):
                logger.info("Registration already exists, returning existing entry", kind=kind, key=key, entry_id=existing.id)
                return existing
            logger.warning("Registration conflicts with existing entry", kind=kind, key=key, existing_id=e.existing_id)
            raise

    def _supplier_entry(self, fields: SupplierFields) -> tuple[str, str, dict]:
        """Validated (name, key, attributes) for a supplier create or update"""
        name = fields.name.strip()
        if not name:
            raise ValidationError("name", "Supplier name must not be empty")

        if not normalize_key(name):
            raise ValidationError("name", "Supplier name must contain letters or digits")

        tax_id = fields.tax_id.strip()
        address = fields.address.strip()
        key = tax_id if normalize_key(tax_id) else supplier_key("", name, address)
        return name, key, {"address": address or None}

    def _product_entry(self, fields: ProductFields) -> tuple[str, str, dict]:
        """Validated (description, code key, attributes) for a product create or update"""
        description = fields.description.strip()
        if not description:
            raise ValidationError("description", "Product description must not be empty")
        if fields.price < 0:
            raise ValidationError("price", "Product price must be zero or greater")
        code = product_key(fields.code)
        if not code:
            raise ValidationError("code", f"Product code must be a whole number: {fields.code!r}")
        return description, code, {"unit": fields.unit.strip() or None, "price": fields.price}

    def register_supplier(self, fields: SupplierFields) -> RegistryEntry:
        """
        Register a supplier confirmed by the user.

        The tax id is the identifying key; without one the supplier is keyed
        by its normalized name and address (``name:<name>|<address>``).

        Raises:
            ValidationError: Empty name
            DuplicateKeyError: Key already registered under another name
        """
        name, key, attrs = self._supplier_entry(fields)
        return self._create_or_return_existing("supplier", name, key, **attrs)

    def register_product(self, fields: ProductFields) -> RegistryEntry:
        """
        Register a product confirmed by the user.

        Raises:
            ValidationError: Empty description, negative price or code that is not a whole number
            DuplicateKeyError: Code already registered under another description
        """
        description, code, attrs = self._product_entry(fields)
        return self._create_or_return_existing("product", description, code, **attrs)

    def update_supplier(self, entry_id: str, fields: SupplierFields) -> RegistryEntry:
        """
        Correct a registered supplier. Validation matches ``register_supplier``.

        Raises:
            ValidationError: Invalid fields
            NotFoundError: Unknown supplier id
            DuplicateKeyError: The new key belongs to another supplier
        """
        name, key, attrs = self._supplier_entry(fields)
        entry = self.store.update_entry("supplier", entry_id, name, key, **attrs)
        logger.info("Supplier updated", entry_id=entry_id, key=key)
        return entry

    def update_product(self, entry_id: str, fields: ProductFields) -> RegistryEntry:
        description, code, attrs = self._product_entry(fields)
        entry = self.store.update_entry("product", entry_id, description, code, **attrs)
        logger.info("Product updated", entry_id=entry_id, key=code)
        return entry

    def _link(self, kind: EntryKind, key: str, entry_id: str) -> RegistryEntry:
        if not entry_id or not entry_id.strip():
            raise ValidationError("entry_id", f"An existing {kind} id is required")
        if self.store.get_entry(kind, entry_id) is None:
            raise ValidationError("entry_id", f"No {kind} registered with id {entry_id}")
        entry = self.store.add_alias(kind, entry_id, key)
        logger.info("Linked invoice entity to registry entry", kind=kind, key=key, entry_id=entry_id)
        return entry

    def link_existing_supplier(self, merchant: Merchant, entry_id: str) -> RegistryEntry:
        """
        Associate an invoice's merchant with an already registered supplier.

        The merchant's lookup key (tax id, or name key when the extraction
        has none) becomes an alias of the entry.
        """
        key = supplier_key(merchant.tax_id.value, merchant.name.value, merchant.address.value)
        if not normalize_key(merchant.tax_id.value) and not normalize_key(merchant.name.value):
            raise ValidationError("merchant", "Merchant has neither a tax id nor a name to link")
        return self._link("supplier", key, entry_id)

    def link_existing_product(self, item: LineItem, entry_id: str) -> RegistryEntry:
        """Associate an invoice line item's code with an already registered product"""
        return self._link("product", product_key(item.code.value), entry_id)

    def search_suppliers(self, query: str) -> list[RegistryEntry]:
        return self.store.search_suppliers(query)

    def search_products(self, query: str) -> list[RegistryEntry]:
        return self.store.search_products(query)
