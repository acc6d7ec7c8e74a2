"""
Tests for the extraction normalizer.

Covers confidence rescaling, optional vs required fields, number/code/date
parsing and the item total consistency warning.
"""

from datetime import date

import pytest

from invoice_reconciler.core.errors import MalformedFieldError
from invoice_reconciler.services.normalizer import (
    normalize,
    parse_code,
    parse_date,
    parse_number,
    rescale_confidence,
)


def test_normalize_sample_invoice(raw_invoice):
    invoice = normalize(raw_invoice)

    assert invoice.id == "INV-2023-0042"
    assert invoice.confidence == 90
    assert invoice.merchant.name.value == "Tech Supplies Ltd"
    assert invoice.merchant.name.confidence == 85
    assert invoice.merchant.tax_id.value == "12.345.678/0001-90"
    assert invoice.merchant.tax_id.confidence == 92
    assert [item.code.value for item in invoice.items] == [1, 2, 3]
    assert invoice.items[1].unit_price.value == 499.99
    assert invoice.items[2].quantity.value == 3
    assert invoice.total.value == 2450.75
    assert invoice.tax.value == 245.07
    assert invoice.transaction_date.value == date(2023, 11, 15)
    assert invoice.warnings == []


def test_normalized_invoice_is_never_registered(raw_invoice):
    """Registration flags are the gate's job"""
    invoice = normalize(raw_invoice)

    assert invoice.is_registered is False
    assert invoice.merchant.is_registered is False
    assert all(not item.is_registered for item in invoice.items)
    assert invoice.pending_registrations == ["merchant", "items[0]", "items[1]", "items[2]"]


def test_confidence_levels(raw_invoice):
    invoice = normalize(raw_invoice)

    assert invoice.merchant.tax_id.level == "high"     # 92
    assert invoice.merchant.name.level == "medium"     # 85
    assert invoice.merchant.address.level == "medium"  # 70
    assert invoice.items[1].description.level == "medium"  # 78


@pytest.mark.parametrize("raw,expected", [
    (None, 0),
    (0, 0),
    (0.856, 86),
    (1, 100),
    (1.7, 100),
    (-0.2, 0),
    ("0.5", 50),
])
def test_rescale_confidence(raw, expected):
    assert rescale_confidence(raw) == expected


def test_rescale_confidence_rejects_non_numbers():
    with pytest.raises(MalformedFieldError):
        rescale_confidence("high")
    with pytest.raises(MalformedFieldError):
        rescale_confidence(True)


def test_missing_field_confidence_defaults_to_zero(raw_invoice):
    del raw_invoice["content"]["merchant"]["name"]["confidence"]

    invoice = normalize(raw_invoice)

    assert invoice.merchant.name.confidence == 0
    assert invoice.merchant.name.level == "low"


def test_missing_optional_fields_default(raw_invoice):
    """cnpj, address and totalTax may be absent"""
    del raw_invoice["content"]["merchant"]["cnpj"]
    del raw_invoice["content"]["merchant"]["address"]
    del raw_invoice["content"]["totalTax"]

    invoice = normalize(raw_invoice)

    assert invoice.merchant.tax_id.value == ""
    assert invoice.merchant.tax_id.confidence == 0
    assert invoice.merchant.address.value == ""
    assert invoice.tax.value == 0.0
    assert invoice.tax.confidence == 0


def test_blank_optional_tax_id_defaults(raw_invoice):
    raw_invoice["content"]["merchant"]["cnpj"] = {"value": "", "confidence": 0.4}

    invoice = normalize(raw_invoice)

    assert invoice.merchant.tax_id.value == ""
    assert invoice.merchant.tax_id.confidence == 0


def test_tax_id_alias(raw_invoice):
    merchant = raw_invoice["content"]["merchant"]
    merchant["taxId"] = merchant.pop("cnpj")

    invoice = normalize(raw_invoice)

    assert invoice.merchant.tax_id.value == "12.345.678/0001-90"


def test_missing_required_price_names_field_path(raw_invoice):
    del raw_invoice["content"]["itens"][1]["price"]

    with pytest.raises(MalformedFieldError) as exc_info:
        normalize(raw_invoice)

    assert exc_info.value.field == "content.itens[1].price"


def test_non_numeric_price_is_malformed(raw_invoice):
    raw_invoice["content"]["itens"][0]["price"]["value"] = "about nine hundred"

    with pytest.raises(MalformedFieldError) as exc_info:
        normalize(raw_invoice)

    assert exc_info.value.field == "content.itens[0].price.value"


def test_missing_merchant_name_is_malformed(raw_invoice):
    del raw_invoice["content"]["merchant"]["name"]

    with pytest.raises(MalformedFieldError) as exc_info:
        normalize(raw_invoice)

    assert exc_info.value.field == "content.merchant.name"


def test_missing_id_is_malformed(raw_invoice):
    del raw_invoice["id"]

    with pytest.raises(MalformedFieldError) as exc_info:
        normalize(raw_invoice)

    assert exc_info.value.field == "id"


def test_code_without_digits_is_malformed(raw_invoice):
    raw_invoice["content"]["itens"][2]["code"]["value"] = "ABC"

    with pytest.raises(MalformedFieldError) as exc_info:
        normalize(raw_invoice)

    assert exc_info.value.field == "content.itens[2].code.value"


def test_items_key_alias_and_wrapped_document(raw_invoice):
    content = raw_invoice["content"]
    content["items"] = content.pop("itens")

    invoice = normalize({"document": raw_invoice})

    assert len(invoice.items) == 3


def test_empty_item_list_is_allowed(raw_invoice):
    raw_invoice["content"]["itens"] = []

    invoice = normalize(raw_invoice)

    assert invoice.items == []
    assert invoice.pending_registrations == ["merchant"]


def test_inconsistent_item_total_warns(raw_invoice):
    raw_invoice["content"]["itens"][0]["totalPrice"]["value"] = 1900.00

    invoice = normalize(raw_invoice)

    assert len(invoice.warnings) == 1
    warning = invoice.warnings[0]
    assert warning.field == "items[0].total_price"
    assert warning.expected == 1799.98
    assert warning.actual == 1900.00


def test_consistency_tolerance_is_configurable(raw_invoice):
    raw_invoice["content"]["itens"][0]["totalPrice"]["value"] = 1800.00

    assert len(normalize(raw_invoice).warnings) == 1
    assert normalize(raw_invoice, tolerance=0.05).warnings == []


def test_parse_number_accepts_formatted_strings():
    assert parse_number("499.99", "p") == 499.99
    assert parse_number("1,234.50", "p") == 1234.50
    assert parse_number("R$ 2,450.75", "p") == 2450.75
    assert parse_number(3, "p") == 3.0


def test_parse_code_strips_noise():
    assert parse_code("00-2", "c") == 2
    assert parse_code("#13", "c") == 13
    assert parse_code(7, "c") == 7


def test_parse_date_accepts_date_and_datetime():
    assert parse_date("2023-11-15", "d") == date(2023, 11, 15)
    assert parse_date("2023-11-15T00:00:00Z", "d") == date(2023, 11, 15)
    with pytest.raises(MalformedFieldError):
        parse_date("15/11/2023", "d")


def test_float_code_is_read_as_whole_number(raw_invoice):
    """A JSON code of 2.0 is product 2, not product 20"""
    raw_invoice["content"]["itens"][1]["code"]["value"] = 2.0

    invoice = normalize(raw_invoice)

    assert invoice.items[1].code.value == 2


@pytest.mark.parametrize("raw,expected", [
    (2.0, 2),
    ("2.0", 2),
    ("0002", 2),
])
def test_parse_code_whole_numbers(raw, expected):
    assert parse_code(raw, "c") == expected


@pytest.mark.parametrize("raw", [2.5, "2.5", float("inf"), -3, True])
def test_parse_code_rejects_non_whole_numbers(raw):
    with pytest.raises(MalformedFieldError):
        parse_code(raw, "c")


def test_parse_number_accepts_brazilian_format():
    assert parse_number("R$ 1.234,50", "p") == 1234.50
    assert parse_number("1.234.567,89", "p") == 1234567.89
    assert parse_number("499,99", "p") == 499.99
    assert parse_number("1.234.567", "p") == 1234567.0


@pytest.mark.parametrize("raw", ["1,234", "12.34,5", "1.23.4", "nan", float("inf")])
def test_parse_number_rejects_ambiguous_or_non_finite(raw):
    with pytest.raises(MalformedFieldError):
        parse_number(raw, "p")


def test_brazilian_amounts_in_extraction(raw_invoice):
    raw_invoice["content"]["total"]["value"] = "R$ 2.450,75"

    assert normalize(raw_invoice).total.value == 2450.75


@pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan")])
def test_rescale_confidence_rejects_non_finite(raw):
    with pytest.raises(MalformedFieldError):
        rescale_confidence(raw, "content.total.confidence")
