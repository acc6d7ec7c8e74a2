"""
Extraction normalizer.

Turns a raw extraction document, where every semantic field is a
``{"value": ..., "confidence": 0.0-1.0}`` pair, into a typed Invoice with
confidences expressed as 0-100 integers.

Raw shape (as returned by the extraction service):

    {
        "id": "INV-2023-0042",
        "confidence": 0.9,
        "content": {
            "merchant": {"name": {...}, "cnpj": {...}, "address": {...}},
            "itens": [{"code": {...}, "description": {...}, "quantity": {...},
                       "price": {...}, "unit": {...}, "totalPrice": {...}}],
            "total": {...},
            "totalTax": {...},
            "transactionDate": {...}
        }
    }

Optional fields (cnpj/taxId, address, totalTax) may be absent. Required
fields that are absent or unparseable raise MalformedFieldError naming the
field path, so a single bad document can be reported without failing the
batch it came in.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Callable

from loguru import logger

from ..core.config import settings
from ..core.errors import MalformedFieldError
from ..models.invoice import (
    FieldConsistencyWarning,
    Invoice,
    LineItem,
    Merchant,
)
from .keys import product_key

_MISSING = object()
_CURRENCY_NOISE = re.compile(r"(R\$|\$|€|£|\s)")
_GROUPED_THOUSANDS = re.compile(r"^-?\d{1,3}([.,]\d{3})+$")


def rescale_confidence(raw: Any, path: str = "confidence") -> int:
    """Fraction in [0, 1] to an integer percent in [0, 100]. Missing means 0."""
    if raw is None:
        return 0
    if isinstance(raw, bool):
        raise MalformedFieldError(path)
    try:
        fraction = float(raw)
    except (TypeError, ValueError):
        raise MalformedFieldError(path, f"Confidence is not a number at {path}: {raw!r}")
    if not math.isfinite(fraction):
        raise MalformedFieldError(path, f"Confidence is not a finite number at {path}: {raw!r}")
    return max(0, min(100, round(fraction * 100)))


def _to_decimal_point(text: str) -> str | None:
    """
    Rewrite a formatted amount so "." is its only separator.

    "1,234.50" and "1.234,50" both work: with both separators present the
    last one is the decimal separator. A single comma followed by exactly
    three digits ("1,234") could be either, so it returns None.
    """
    if "." in text and "," in text:
        decimal = "." if text.rfind(".") > text.rfind(",") else ","
        whole, _, fraction = text.rpartition(decimal)
        if not _GROUPED_THOUSANDS.match(whole):
            return None
        return re.sub(r"[.,]", "", whole) + "." + fraction

    for separator in (",", "."):
        count = text.count(separator)
        if count > 1:
            return text.replace(separator, "") if _GROUPED_THOUSANDS.match(text) else None
        if count == 1 and separator == ",":
            if len(text.rpartition(",")[2]) == 3:
                return None
            return text.replace(",", ".")
    return text


def parse_number(raw: Any, path: str) -> float:
    if isinstance(raw, bool):
        raise MalformedFieldError(path, f"Expected a number at {path}, got {raw!r}")
    if isinstance(raw, (int, float)) and math.isfinite(raw):
        return float(raw)
    if isinstance(raw, str):
        # Currency symbols and either thousands convention, e.g. "R$ 1.234,50"
        text = _to_decimal_point(_CURRENCY_NOISE.sub("", raw))
        if text is None:
            raise MalformedFieldError(path, f"Ambiguous number at {path}: {raw!r}")
        try:
            value = float(text)
        except ValueError:
            pass
        else:
            if math.isfinite(value):
                return value
    raise MalformedFieldError(path, f"Expected a number at {path}, got {raw!r}")


def parse_code(raw: Any, path: str) -> int:
    """Product code as an integer (see keys.product_key for the accepted forms)"""
    key = product_key(raw)
    if not key:
        raise MalformedFieldError(path, f"Product code is not a whole number at {path}: {raw!r}")
    return int(key)


def parse_date(raw: Any, path: str) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str) and raw.strip():
        text = raw.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise MalformedFieldError(path, f"Expected an ISO date at {path}, got {raw!r}")


def parse_text(raw: Any, path: str) -> str:
    if isinstance(raw, (dict, list)):
        raise MalformedFieldError(path, f"Expected text at {path}")
    return str(raw).strip()


def _extract(
    container: dict,
    key: str | tuple[str, ...],
    path: str,
    parse: Callable[[Any, str], Any],
    default: Any = _MISSING,
) -> dict:
    """
    Read one ``{value, confidence}`` pair.

    ``key`` may list alternative source names; the first present wins. When
    ``default`` is given the field is optional and absence yields the default
    with confidence 0.
    """
    keys = (key,) if isinstance(key, str) else key
    field = None
    for name in keys:
        if container.get(name) is not None:
            field = container[name]
            break

    optional = default is not _MISSING
    blank = isinstance(field, dict) and field.get("value") in (None, "")
    if field is None or (blank and (optional or field.get("value") is None)):
        if optional:
            return {"value": default, "confidence": 0}
        raise MalformedFieldError(path, f"Missing required field: {path}")
    if not isinstance(field, dict):
        raise MalformedFieldError(path, f"Expected a value/confidence pair at {path}")

    return {
        "value": parse(field["value"], f"{path}.value"),
        "confidence": rescale_confidence(field.get("confidence"), f"{path}.confidence"),
    }


def _normalize_merchant(content: dict) -> Merchant:
    raw = content.get("merchant")
    if not isinstance(raw, dict):
        raise MalformedFieldError("content.merchant", "Missing required field: content.merchant")

    return Merchant(
        name=_extract(raw, "name", "content.merchant.name", parse_text),
        tax_id=_extract(raw, ("cnpj", "taxId"), "content.merchant.cnpj", parse_text, default=""),
        address=_extract(raw, "address", "content.merchant.address", parse_text, default=""),
    )


def _normalize_item(raw: Any, path: str) -> LineItem:
    if not isinstance(raw, dict):
        raise MalformedFieldError(path, f"Expected an object at {path}")

    return LineItem(
        code=_extract(raw, "code", f"{path}.code", parse_code),
        description=_extract(raw, "description", f"{path}.description", parse_text),
        quantity=_extract(raw, "quantity", f"{path}.quantity", parse_number),
        unit_price=_extract(raw, ("price", "unitPrice"), f"{path}.price", parse_number),
        total_price=_extract(raw, "totalPrice", f"{path}.totalPrice", parse_number),
        unit=_extract(raw, "unit", f"{path}.unit", parse_text),
    )


def check_item_totals(items: list[LineItem], tolerance: float) -> list[FieldConsistencyWarning]:
    """Flag items whose extracted total disagrees with quantity * unit price"""
    warnings = []
    for index, item in enumerate(items):
        expected = round(item.quantity.value * item.unit_price.value, 2)
        actual = item.total_price.value
        if abs(expected - actual) > tolerance:
            warnings.append(FieldConsistencyWarning(
                field=f"items[{index}].total_price",
                expected=expected,
                actual=actual,
                message=(
                    f"Item {item.code.value}: total {actual:.2f} does not match "
                    f"{item.quantity.value:g} x {item.unit_price.value:.2f} = {expected:.2f}"
                ),
            ))
    return warnings


def normalize(raw: dict, tolerance: float | None = None) -> Invoice:
    """
    Normalize a raw extraction document into an Invoice.

    Args:
        raw: Extraction document (optionally wrapped as ``{"document": ...}``)
        tolerance: Allowed gap for the item total consistency check
            (default: CONSISTENCY_TOLERANCE setting)

    Returns:
        Invoice with every registration flag False

    Raises:
        MalformedFieldError: A required field is missing or unparseable
    """
    if not isinstance(raw, dict):
        raise MalformedFieldError("document", "Extraction document must be an object")
    if isinstance(raw.get("document"), dict):
        raw = raw["document"]

    invoice_id = raw.get("id")
    if invoice_id is None or str(invoice_id).strip() == "":
        raise MalformedFieldError("id", "Missing required field: id")

    content = raw.get("content")
    if not isinstance(content, dict):
        raise MalformedFieldError("content", "Missing required field: content")

    raw_items = content.get("itens", content.get("items"))
    if not isinstance(raw_items, list):
        raise MalformedFieldError("content.itens", "Missing required field: content.itens")

    items = [
        _normalize_item(item, f"content.itens[{index}]")
        for index, item in enumerate(raw_items)
    ]

    invoice = Invoice(
        id=str(invoice_id),
        confidence=rescale_confidence(raw.get("confidence"), "confidence"),
        merchant=_normalize_merchant(content),
        items=items,
        total=_extract(content, "total", "content.total", parse_number),
        tax=_extract(content, ("totalTax", "tax"), "content.totalTax", parse_number, default=0.0),
        transaction_date=_extract(content, "transactionDate", "content.transactionDate", parse_date),
        warnings=check_item_totals(
            items, settings.consistency_tolerance if tolerance is None else tolerance
        ),
    )

    for warning in invoice.warnings:
        logger.warning(
            "Extracted item total is inconsistent",
            invoice_id=invoice.id,
            field=warning.field,
            expected=warning.expected,
            actual=warning.actual,
        )

    logger.debug(
        "Normalized extraction",
        invoice_id=invoice.id,
        items=len(invoice.items),
        confidence=invoice.confidence,
    )
    return invoice
