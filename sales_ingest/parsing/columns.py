from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from typing import Any

"""Column lookup helpers for exports whose header names drift.

``resolve_column`` tries an ordered list of known header names and then, if
given, a predicate over the remaining headers. Candidate lists for each
logical field are kept here so every normalizer reads the same aliases.
"""

__all__ = [
    "RawRow",
    "is_present",
    "cell_text",
    "header_contains",
    "resolve_column",
    "PRICE_COLUMNS",
    "PRICE_FALLBACK",
    "QUANTITY_COLUMNS",
    "SHIPPING_COLUMNS",
    "PAYMENT_COLUMNS",
    "STORE_PAYMENT_COLUMNS",
    "TAX_RATE_COLUMNS",
    "DESCRIPTION_COLUMNS",
    "ORDER_REFERENCE_COLUMNS",
]

RawRow = Mapping[str, Any]

PRICE_COLUMNS: tuple[str, ...] = (
    "Prezzo articc",
    "Item Amount",
    "ItemAmount",
    "Prezzo",
    "Price",
    "Prezzo unitario",
    "PrezzoUnitario",
    "Prezzo Articc",
    "PREZZO ARTICC",
    "Prezzo Articolo",
)
QUANTITY_COLUMNS: tuple[str, ...] = ("Qty", "Quant.")
SHIPPING_COLUMNS: tuple[str, ...] = ("Spese trasporto", "Spese traspc")
PAYMENT_COLUMNS: tuple[str, ...] = ("Metodo pagamento", "Metodo paga")
STORE_PAYMENT_COLUMNS: tuple[str, ...] = (
    "Metodo pagamento",
    "Metodo paga",
    "Pagamento",
    "Payment Method",
)
TAX_RATE_COLUMNS: tuple[str, ...] = ("Aliquota per", "Tax Rate")
DESCRIPTION_COLUMNS: tuple[str, ...] = ("Item Description", "Articolo")
ORDER_REFERENCE_COLUMNS: tuple[str, ...] = ("Order/Reference Number",)


def is_present(value: Any) -> bool:
    """True for any cell that carries data; 0 counts as data, blanks do not."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def cell_text(value: Any) -> str:
    """Render a cell as trimmed text; whole floats lose their ``.0``."""
    if not is_present(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def header_contains(*needles: str) -> Callable[[str], bool]:
    lowered = tuple(n.lower() for n in needles)

    def _match(header: str) -> bool:
        h = header.lower()
        return any(n in h for n in lowered)

    return _match


PRICE_FALLBACK = header_contains("prezzo", "price")


def resolve_column(
    row: RawRow,
    candidates: Sequence[str],
    fallback_predicate: Callable[[str], bool] | None = None,
) -> tuple[str | None, Any]:
    """Return ``(header, value)`` for the first candidate holding data.

    Candidates are tried in priority order. When none matches, headers are
    scanned in file order and the first one accepted by ``fallback_predicate``
    that holds data wins. ``(None, None)`` when nothing is found.
    """
    for header in candidates:
        value = row.get(header)
        if is_present(value):
            return header, value
    if fallback_predicate is not None:
        for header, value in row.items():
            if fallback_predicate(str(header)) and is_present(value):
                return str(header), value
    return None, None
