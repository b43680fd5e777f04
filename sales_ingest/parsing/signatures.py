from __future__ import annotations

from collections.abc import Mapping
from typing import Any

"""Record fingerprints.

Two families:

- batch keys, built while normalizing one ecommerce file
  (``documento_numero_date_sku_qty_price``; returns add the order reference);
- persisted signatures, compared against what the store already holds
  (ecommerce sales keep the document form, everything else falls back to
  ``date_sku_qty_amount``).

Numbers render the same way however they were parsed (``120`` not ``120.0``)
so keys built from a spreadsheet and from a CSV of the same data agree.
"""

__all__ = [
    "format_number",
    "sale_dedup_key",
    "return_dedup_key",
    "sale_signature",
    "return_signature",
]


def format_number(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        f = float(value)
        if f.is_integer():
            return str(int(f))
        return repr(f)
    return str(value)


def sale_dedup_key(documento: str, numero: str, date: str, sku: str, quantity: Any, price: Any) -> str:
    return f"{documento}_{numero}_{date}_{sku}_{format_number(quantity)}_{format_number(price)}"


def return_dedup_key(
    documento: str,
    numero: str,
    date: str,
    order_reference: str,
    sku: str,
    quantity: Any,
    price: Any,
) -> str:
    return (
        f"{documento}_{numero}_{date}_{order_reference}_{sku}_"
        f"{format_number(quantity)}_{format_number(price)}"
    )


def sale_signature(sale: Mapping[str, Any]) -> str:
    """Signature of a persisted (camelCase) sale dictionary."""
    sku = sale.get("sku") or sale.get("productId") or ""
    quantity = sale.get("quantity") or 0
    amount = sale.get("amount") or 0
    if sale.get("documento") and sale.get("numero"):
        price = sale.get("price") or (amount / quantity if quantity else 0)
        return sale_dedup_key(sale["documento"], sale["numero"], sale.get("date", ""), sku, quantity, price)
    return f"{sale.get('date', '')}_{sku}_{format_number(quantity)}_{format_number(amount)}"


def return_signature(ret: Mapping[str, Any]) -> str:
    ref = ret.get("orderReference") or ret.get("sku") or ""
    return (
        f"{ret.get('date', '')}_{ref}_"
        f"{format_number(ret.get('quantity'))}_{format_number(ret.get('amount'))}"
    )
