#!/usr/bin/env python3
"""
Invoice Reconciler CLI

Review pending invoices and act on them through the reconciler API.

Usage:
    invoice-reconciler pending
    invoice-reconciler show INV-2023-0042
    invoice-reconciler process INV-2023-0042
    invoice-reconciler reject INV-2023-0042 --reason "Duplicate invoice"
    invoice-reconciler search-products MON
    invoice-reconciler register-product 2 "Monitor UltraWide 34" --price 499.99 --unit un
    invoice-reconciler link-supplier INV-2023-0042 <supplier-id>
"""

import argparse
import json
import os
import sys

import requests

API_BASE_URL = os.environ.get("RECONCILER_API_URL", "http://127.0.0.1:8000")
REQUEST_TIMEOUT = 30


def mark(registered: bool) -> str:
    return "✅" if registered else "⏳"


def field(extracted: dict) -> str:
    """Render an extracted field with its confidence band"""
    return f"{extracted['value']} ({extracted['confidence']}% {extracted['level']})"


def print_invoice(invoice: dict):
    merchant = invoice["merchant"]
    print("=" * 70)
    print(f"{mark(invoice['is_registered'])} {invoice['id']}  (confidence {invoice['confidence']}%)")
    print("=" * 70)
    print(f"Merchant: {mark(merchant['is_registered'])} {field(merchant['name'])}")
    if merchant["tax_id"]["value"]:
        print(f"   Tax id: {field(merchant['tax_id'])}")
    print(f"Date: {field(invoice['transaction_date'])}")
    print(f"Total: {field(invoice['total'])}   Tax: {field(invoice['tax'])}")
    print()
    for item in invoice["items"]:
        print(
            f"  {mark(item['is_registered'])} [{item['code']['value']}] {item['description']['value']}"
            f"  {item['quantity']['value']} x {item['unit_price']['value']} = {item['total_price']['value']}"
        )
    for warning in invoice.get("warnings", []):
        print(f"  ⚠️  {warning['message']}")
    for error in invoice.get("gate_errors", []):
        print(f"  ❌ registry lookup failed: {error}")
    if invoice["pending_registrations"]:
        print(f"\nPending registrations: {', '.join(invoice['pending_registrations'])}")
    print()


def print_entries(entries: list[dict]):
    if not entries:
        print("No matches")
        return
    for entry in entries:
        print(f"{entry['id']}  {entry['name']}  [{entry['identifying_key']}]")


class ApiError(Exception):
    pass


def call(method: str, path: str, **kwargs) -> dict | list:
    response = requests.request(method, f"{API_BASE_URL}{path}", timeout=REQUEST_TIMEOUT, **kwargs)
    if response.status_code >= 400:
        try:
            body = response.json()
            message = f"{body.get('error', response.status_code)}: {body.get('detail')}"
        except ValueError:
            message = f"{response.status_code}: {response.text}"
        raise ApiError(message)
    return response.json()


def cmd_pending(args):
    batch = call("GET", "/invoices/pending")
    for invoice in batch["invoices"]:
        print_invoice(invoice)
    for failure in batch["failures"]:
        print(f"❌ {failure['invoice_id']}: {failure['message']}")
    ready = sum(1 for invoice in batch["invoices"] if invoice["is_registered"])
    print(f"{len(batch['invoices'])} pending, {ready} ready, {len(batch['failures'])} unreadable")


def cmd_show(args):
    invoice = call("GET", f"/invoices/{args.invoice_id}")
    if args.json:
        print(json.dumps(invoice, indent=2))
    else:
        print_invoice(invoice)


def cmd_process(args):
    decision = call("POST", f"/invoices/{args.invoice_id}/process")
    print(f"✅ {decision['invoice_id']} processed at {decision['decided_at']}")


def cmd_reject(args):
    decision = call("POST", f"/invoices/{args.invoice_id}/reject", json={"reason": args.reason})
    print(f"🚫 {decision['invoice_id']} rejected: {decision['reason']}")


def cmd_decisions(args):
    params = {"status": args.status} if args.status else None
    data = call("GET", "/invoices/decisions", params=params)
    for decision in data["decisions"]:
        print(f"{decision['decided_at']}  {decision['status']:<9}  {decision['invoice_id']}  {decision['reason'] or ''}")
    print(f"{data['total']} decisions")


def cmd_search_suppliers(args):
    print_entries(call("GET", "/suppliers/search", params={"q": args.query}))


def cmd_search_products(args):
    print_entries(call("GET", "/products/search", params={"q": args.query}))


def cmd_register_supplier(args):
    entry = call("POST", "/suppliers", json={"name": args.name, "tax_id": args.tax_id, "address": args.address})
    print(f"✅ Registered supplier {entry['id']}  {entry['name']}  [{entry['identifying_key']}]")


def cmd_register_product(args):
    entry = call("POST", "/products", json={
        "code": args.code,
        "description": args.description,
        "price": args.price,
        "unit": args.unit,
    })
    print(f"✅ Registered product {entry['id']}  {entry['name']}  [{entry['identifying_key']}]")


def cmd_link_supplier(args):
    entry = call("POST", "/suppliers/link", json={"invoice_id": args.invoice_id, "entry_id": args.entry_id})
    print(f"🔗 {args.invoice_id} merchant linked to {entry['name']} ({entry['id']})")


def cmd_link_product(args):
    entry = call("POST", "/products/link", json={
        "invoice_id": args.invoice_id,
        "item_code": args.item_code,
        "entry_id": args.entry_id,
    })
    print(f"🔗 {args.invoice_id} item {args.item_code} linked to {entry['name']} ({entry['id']})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-reconciler",
        description="Review extracted invoices and reconcile them against the supplier/product registry"
    )
    parser.add_argument(
        "--api-url",
        default=API_BASE_URL,
        help=f"API base URL (default: {API_BASE_URL})"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("pending", help="List pending invoices").set_defaults(func=cmd_pending)

    show = subparsers.add_parser("show", help="Show one pending invoice")
    show.add_argument("invoice_id")
    show.add_argument("--json", action="store_true", help="Print the raw API response")
    show.set_defaults(func=cmd_show)

    process = subparsers.add_parser("process", help="Process a fully registered invoice")
    process.add_argument("invoice_id")
    process.set_defaults(func=cmd_process)

    reject = subparsers.add_parser("reject", help="Reject an invoice")
    reject.add_argument("invoice_id")
    reject.add_argument("--reason", required=True)
    reject.set_defaults(func=cmd_reject)

    decisions = subparsers.add_parser("decisions", help="List processed and rejected invoices")
    decisions.add_argument("--status", choices=["processed", "rejected"])
    decisions.set_defaults(func=cmd_decisions)

    search_suppliers = subparsers.add_parser("search-suppliers", help="Search registered suppliers")
    search_suppliers.add_argument("query")
    search_suppliers.set_defaults(func=cmd_search_suppliers)

    search_products = subparsers.add_parser("search-products", help="Search registered products")
    search_products.add_argument("query")
    search_products.set_defaults(func=cmd_search_products)

    register_supplier = subparsers.add_parser("register-supplier", help="Register a supplier")
    register_supplier.add_argument("name")
    register_supplier.add_argument("--tax-id", default="", help="CNPJ or other tax id")
    register_supplier.add_argument("--address", default="")
    register_supplier.set_defaults(func=cmd_register_supplier)

    register_product = subparsers.add_parser("register-product", help="Register a product")
    register_product.add_argument("code")
    register_product.add_argument("description")
    register_product.add_argument("--price", type=float, default=0.0)
    register_product.add_argument("--unit", default="")
    register_product.set_defaults(func=cmd_register_product)

    link_supplier = subparsers.add_parser("link-supplier", help="Link an invoice's merchant to a registered supplier")
    link_supplier.add_argument("invoice_id")
    link_supplier.add_argument("entry_id")
    link_supplier.set_defaults(func=cmd_link_supplier)

    link_product = subparsers.add_parser("link-product", help="Link an invoice item to a registered product")
    link_product.add_argument("invoice_id")
    link_product.add_argument("item_code", type=int)
    link_product.add_argument("entry_id")
    link_product.set_defaults(func=cmd_link_product)

    return parser


def main(argv=None) -> int:
    global API_BASE_URL
    args = build_parser().parse_args(argv)
    API_BASE_URL = args.api_url.rstrip("/")

    try:
        args.func(args)
    except requests.exceptions.Timeout:
        print(f"⏱️  Request timed out after {REQUEST_TIMEOUT}s")
        return 1
    except requests.exceptions.ConnectionError:
        print(f"❌ Could not reach {API_BASE_URL}")
        return 1
    except ApiError as e:
        print(f"❌ {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
