"""
Registry store backed by a remote registry REST API.

Endpoints (relative to ClientConfig.base_url):
    GET  /{kind}/exists?key=...     -> {"exists": bool}
    POST /{kind}                    -> entry (409 on duplicate key)
    PUT  /{kind}/{id}               -> entry (404 if unknown, 409 on duplicate key)
    GET  /{kind}/{id}               -> entry (404 if unknown)
    POST /{kind}/{id}/aliases       -> entry (409 on duplicate key)
    GET  /{kind}/search?q=...       -> [entry, ...]
    GET  /{kind}                    -> {"data": [entry, ...], "total": n}

where kind is "supplier" or "product". Keys are always sent normalized
(see services/keys.py), the same form the local store compares. A 400 or
422 answer is a ValidationError; other 4xx and 5xx answers are
RegistryUnavailableError.
"""

from typing import Any

import httpx
from loguru import logger

from ..core.config import ClientConfig
from ..core.errors import DuplicateKeyError, NotFoundError, RegistryUnavailableError, ValidationError
from ..models.registry import EntryKind, RegistryEntry
from .keys import normalize_key
from .storage.registry_base import RegistryStoreBase, rank_entries


class HttpRegistryStore(RegistryStoreBase):
    def __init__(self, config: ClientConfig, transport: httpx.BaseTransport | None = None):
        if not config.base_url:
            raise ValueError("HttpRegistryStore requires a base_url")
        self.config = config
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.config.base_url.rstrip('/')}{path}"
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                response = client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Registry request timed out", method=method, url=url, timeout=self.config.timeout)
            raise RegistryUnavailableError(f"Registry timed out after {self.config.timeout}s: {method} {path}") from e
        except httpx.TransportError as e:
            logger.error("Registry request failed", method=method, url=url, error=str(e))
            raise RegistryUnavailableError(f"Registry unreachable: {e}") from e

        if response.status_code >= 500:
            raise RegistryUnavailableError(f"Registry error {response.status_code}: {method} {path}")
        return response

    @staticmethod
    def _body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _expect_ok(self, response: httpx.Response, key: str | None = None) -> None:
        if response.status_code == 409:
            body = self._body(response)
            raise DuplicateKeyError(key or body.get("key", ""), body.get("existing_id"))
        if response.status_code in (400, 422):
            body = self._body(response)
            raise ValidationError(
                body.get("field", "registry"),
                body.get("detail") or f"Registry rejected request with {response.status_code}",
            )
        if response.status_code >= 400:
            raise RegistryUnavailableError(
                f"Registry rejected request with {response.status_code}: {response.text[:200]}"
            )

    def exists(self, kind: EntryKind, key: str) -> bool:
        lookup_key = normalize_key(key)
        if not lookup_key:
            return False
        response = self._request("GET", f"/{kind}/exists", params={"key": lookup_key})
        self._expect_ok(response)
        return bool(self._body(response).get("exists", False))

    @staticmethod
    def _entry_payload(
        name: str,
        identifying_key: str,
        address: str | None,
        unit: str | None,
        price: float | None,
    ) -> dict[str, Any]:
        return {
            "name": name,
            "identifying_key": normalize_key(identifying_key),
            "address": address,
            "unit": unit,
            "price": price,
        }

    def create_entry(
        self,
        kind: EntryKind,
        name: str,
        identifying_key: str,
        address: str | None = None,
        unit: str | None = None,
        price: float | None = None,
    ) -> RegistryEntry:
        payload = self._entry_payload(name, identifying_key, address, unit, price)
        response = self._request("POST", f"/{kind}", json=payload)
        self._expect_ok(response, payload["identifying_key"])
        return RegistryEntry.model_validate({"kind": kind, **response.json()})

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
        payload = self._entry_payload(name, identifying_key, address, unit, price)
        response = self._request("PUT", f"/{kind}/{entry_id}", json=payload)
        if response.status_code == 404:
            raise NotFoundError(f"No {kind} registered with id {entry_id}")
        self._expect_ok(response, payload["identifying_key"])
        return RegistryEntry.model_validate({"kind": kind, **response.json()})

    def get_entry(self, kind: EntryKind, entry_id: str) -> RegistryEntry | None:
        response = self._request("GET", f"/{kind}/{entry_id}")
        if response.status_code == 404:
            return None
        self._expect_ok(response)
        return RegistryEntry.model_validate({"kind": kind, **response.json()})

    def add_alias(self, kind: EntryKind, entry_id: str, key: str) -> RegistryEntry:
        lookup_key = normalize_key(key)
        response = self._request("POST", f"/{kind}/{entry_id}/aliases", json={"key": lookup_key})
        if response.status_code == 404:
            raise ValidationError("entry_id", f"No {kind} registered with id {entry_id}")
        self._expect_ok(response, lookup_key)
        return RegistryEntry.model_validate({"kind": kind, **response.json()})

    def search(self, kind: EntryKind, query: str) -> list[RegistryEntry]:
        if not (query or "").strip():
            return []
        response = self._request("GET", f"/{kind}/search", params={"q": query})
        self._expect_ok(response)
        entries = [RegistryEntry.model_validate({"kind": kind, **item}) for item in response.json()]
        # Remote ordering is not guaranteed; apply ours
        return rank_entries(entries, query)

    def list_entries(self, kind: EntryKind) -> list[RegistryEntry]:
        response = self._request("GET", f"/{kind}")
        self._expect_ok(response)
        data = self._body(response).get("data", [])
        return [RegistryEntry.model_validate({"kind": kind, **item}) for item in data]
