"""
Registry key derivation.

Tax ids arrive formatted in many ways ("12.345.678/0001-90", "12345678000190"),
so registry lookups compare normalized keys only.
"""

import re

NAME_KEY_PREFIX = "name:"
NAME_KEY_SEPARATOR = "|"

_NON_WORD = re.compile(r"[\W_]+")
_DECIMAL = re.compile(r"^\d+\.\d+$")


def _fold(text: str) -> str:
    return _NON_WORD.sub("", (text or "").casefold())


def normalize_key(raw: str) -> str:
    raw = (raw or "").strip()
    if raw.startswith(NAME_KEY_PREFIX):
        parts = raw[len(NAME_KEY_PREFIX):].split(NAME_KEY_SEPARATOR)
        return NAME_KEY_PREFIX + NAME_KEY_SEPARATOR.join(_fold(part) for part in parts)
    return _fold(raw)


def supplier_key(tax_id: str, name: str, address: str = "") -> str:
    """
    Registry key for a supplier.

    Without a tax id the key falls back to ``name:<name>|<address>`` (both
    normalized; the address part is omitted when none was extracted). Such a
    key exists only if someone registered or linked a supplier under that
    name and address, so an unrelated supplier with the same display name
    never matches.
    """
    key = normalize_key(tax_id)
    if key:
        return key
    key = NAME_KEY_PREFIX + _fold(name)
    if _fold(address):
        key += NAME_KEY_SEPARATOR + _fold(address)
    return key


def product_key(code: int | float | str) -> str:
    """
    Registry key for a product code: its integer value as a string.

    Numeric codes must be whole numbers, so 2.0 is product 2 and 2.5 has no
    key. Text codes keep their digits only ("00-2" and "#2" are product 2).
    Returns "" when no code can be derived.
    """
    if isinstance(code, bool):
        return ""
    if isinstance(code, (int, float)):
        if isinstance(code, float) and not code.is_integer():
            return ""
        return str(int(code)) if code >= 0 else ""
    text = str(code).strip()
    if _DECIMAL.match(text):
        value = float(text)
        return str(int(value)) if value.is_integer() else ""
    digits = re.sub(r"[^0-9]", "", text)
    return str(int(digits)) if digits else ""
