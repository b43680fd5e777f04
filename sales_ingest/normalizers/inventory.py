from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.records import InventoryRecord
from ..models.upload_result import InventoryUploadResult, RowIssue, Severity
from ..parsing.columns import RawRow, cell_text, is_present
from ..parsing.locale import parse_number

"""Inventory normalizer.

Required: ``SKU``, ``Brand``, ``Prezzo di acquisto``. Optional:
``Prezzo di vendita``, ``Categoria``, ``Collezione``. SKU uniqueness is only
checked inside the file; the store handles SKUs it already holds.
"""

__all__ = [
    "normalize_inventory",
]

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


def normalize_inventory(rows: Sequence[RawRow]) -> InventoryUploadResult:
    """Validate inventory rows.

    Success means at least one record was produced, so operators can fix and
    re-upload only the rejected rows.
    """
    issues: list[RowIssue] = []
    processed: list[InventoryRecord] = []
    seen_skus: set[str] = set()

    for index, row in enumerate(rows):
        row_number = index + FIRST_DATA_ROW

        missing = next((c for c in ("SKU", "Brand", "Prezzo di acquisto") if not is_present(row.get(c))), None)
        if missing is not None:
            issues.append(RowIssue(
                row=row_number,
                error_type="MISSING_FIELD",
                message=f"Row {row_number}: field '{missing}' missing",
                field=missing,
            ))
            continue

        sku = cell_text(row["SKU"])
        if sku in seen_skus:
            issues.append(RowIssue(
                row=row_number,
                error_type="DUPLICATE_SKU",
                message=f"Row {row_number}: SKU '{sku}' duplicated in file - only the first occurrence is used",
                field="SKU",
                value=sku,
                severity=Severity.WARNING,
            ))
            continue
        seen_skus.add(sku)

        purchase_price = parse_number(row["Prezzo di acquisto"], "Prezzo di acquisto", row_number)
        if purchase_price is None or purchase_price < 0:
            issues.append(RowIssue(
                row=row_number,
                error_type="INVALID_PRICE",
                message=f"Row {row_number}: invalid purchase price: '{row['Prezzo di acquisto']}'",
                field="Prezzo di acquisto",
                value=row["Prezzo di acquisto"],
            ))
            continue

        sell_price = 0.0
        raw_sell = row.get("Prezzo di vendita")
        if is_present(raw_sell):
            parsed_sell = parse_number(raw_sell, "Prezzo di vendita", row_number)
            if parsed_sell is None or parsed_sell < 0:
                issues.append(RowIssue(
                    row=row_number,
                    error_type="INVALID_PRICE",
                    message=f"Row {row_number}: invalid sell price: '{raw_sell}'",
                    field="Prezzo di vendita",
                    value=raw_sell,
                ))
                continue
            sell_price = parsed_sell
        else:
            issues.append(RowIssue(
                row=row_number,
                error_type="MISSING_SELL_PRICE",
                message=f"Row {row_number}: sell price not specified - set to 0.00",
                field="Prezzo di vendita",
                severity=Severity.WARNING,
            ))

        processed.append(InventoryRecord(
            sku=sku,
            brand=cell_text(row["Brand"]),
            purchase_price=purchase_price,
            sell_price=sell_price,
            category=cell_text(row.get("Categoria")),
            collection=cell_text(row.get("Collezione")),
        ))

    if processed:
        message = f"{len(processed)} products processed out of {len(rows)} rows"
        if issues:
            message += f" ({len(issues)} warnings/errors)"
    else:
        message = "No valid products found in file"

    logger.info("inventory: rows=%d processed=%d issues=%d", len(rows), len(processed), len(issues))
    return InventoryUploadResult(
        success=bool(processed),
        message=message,
        processed_data=processed,
        issues=issues,
        total_rows=len(rows),
    )
