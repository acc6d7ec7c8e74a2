"""
Abstract base class for registry stores.

Defines the interface the reconciler needs from the system of record for
suppliers and products, enabling dependency injection and easy swapping of
storage backends:
- SQLite (local, single-instance deployments and tests)
- A remote registry REST API (see services/registry_client.py)

Every method may raise RegistryUnavailableError when the backend times out
or cannot be reached. None of them may report "not found" for a failed call.
"""

from abc import ABC, abstractmethod

from ...models.registry import EntryKind, RegistryEntry
from ..keys import normalize_key


def rank_entries(entries: list[RegistryEntry], query: str) -> list[RegistryEntry]:
    """
    Filter and order search hits.

    Ranking (case-insensitive):
        0. exact match on the identifying key or an alias
        1. name starts with the query
        2. query appears anywhere in the name or a key
    Ties are ordered by name. A blank query matches nothing.
    """
    needle = (query or "").strip().casefold()
    if not needle:
        return []
    needle_key = normalize_key(query)

    ranked = []
    for entry in entries:
        name = entry.name.casefold()
        keys = [entry.identifying_key, *entry.aliases]
        if any(k.casefold() == needle or (needle_key and normalize_key(k) == needle_key) for k in keys):
            rank = 0
        elif name.startswith(needle):
            rank = 1
        elif needle in name or any(needle in k.casefold() for k in keys) or (
            needle_key and any(needle_key in normalize_key(k) for k in keys)
        ):
            rank = 2
        else:
            continue
        ranked.append((rank, name, entry))

    ranked.sort(key=lambda hit: (hit[0], hit[1]))
    return [entry for _, _, entry in ranked]


class RegistryStoreBase(ABC):
    """
    Abstract registry of known suppliers and products.

    Keys passed to ``exists``/``create_entry``/``update_entry``/``add_alias`` are compared in
    normalized form (see services/keys.py), so "12.345.678/0001-90" and
    "12345678000190" are the same supplier.
    """

    @abstractmethod
    def exists(self, kind: EntryKind, key: str) -> bool:
        """
        Check whether an entry or alias holds the key.

        Args:
            kind: "supplier" or "product"
            key: Identifying key (tax id, name key or product code)

        Returns:
            True if the key is registered
        """
        pass

    @abstractmethod
    def create_entry(
        self,
        kind: EntryKind,
        name: str,
        identifying_key: str,
        address: str | None = None,
        unit: str | None = None,
        price: float | None = None,
    ) -> RegistryEntry:
        """
        Create a new registry entry.

        Raises:
            DuplicateKeyError: The key already belongs to an entry or alias.
                Detection is atomic with the insert.
        """
        pass

    @abstractmethod
    def get_entry(self, kind: EntryKind, entry_id: str) -> RegistryEntry | None:
        """Get an entry (with its aliases) by kind and id, or None if not found"""
        pass

    @abstractmethod
    def add_alias(self, kind: EntryKind, entry_id: str, key: str) -> RegistryEntry:
        """
        Record ``key`` as another key of an existing entry.

        Linking a key the entry already owns is a no-op.

        Raises:
            DuplicateKeyError: The key belongs to a different entry
        """
        pass

    @abstractmethod
    def update_entry(
        self,
        kind: EntryKind,
        entry_id: str,
        name: str,
        identifying_key: str,
        address: str | None = None,
        unit: str | None = None,
        price: float | None = None,
    ) -> RegistryEntry:
        """
        Replace an entry's fields, including its identifying key.

        The previous key is dropped, not kept as an alias.

        Raises:
            NotFoundError: No entry of this kind has the id
            DuplicateKeyError: The new key belongs to a different entry
        """
        pass

    @abstractmethod
    def search(self, kind: EntryKind, query: str) -> list[RegistryEntry]:
        """Search entries, ordered as described in ``rank_entries``"""
        pass

    @abstractmethod
    def list_entries(self, kind: EntryKind) -> list[RegistryEntry]:
        """List all entries of a kind ordered by name"""
        pass

    # Lookup capability consumed by the registration gate

    def exists_supplier(self, key: str) -> bool:
        return self.exists("supplier", key)

    def exists_product(self, key: str) -> bool:
        return self.exists("product", key)

    def search_suppliers(self, query: str) -> list[RegistryEntry]:
        return self.search("supplier", query)

    def search_products(self, query: str) -> list[RegistryEntry]:
        return self.search("product", query)
