from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from ..models.records import Channel, SaleRecord
from ..models.upload_result import RowIssue, UploadResult
from ..parsing.columns import STORE_PAYMENT_COLUMNS, RawRow, cell_text, is_present, resolve_column
from ..parsing.locale import DateParseError, normalize_user, parse_date, parse_number, parse_quantity

"""Store-sales normalizer.

Physical store exports carry ``Data, Utente, SKU, Quant., Prezzo`` and
optionally a payment method column. The uploader name decides the store
channel through a fixed user -> channel table.
"""

__all__ = [
    "DEFAULT_USER_STORE_MAPPING",
    "REQUIRED_COLUMNS",
    "normalize_store_sales",
]

logger = logging.getLogger(__name__)

DEFAULT_USER_STORE_MAPPING: dict[str, Channel] = {
    "carla": Channel.NEGOZIO_DONNA,
    "alexander": Channel.NEGOZIO_UOMO,
    "paolo": Channel.NEGOZIO_UOMO,
}

REQUIRED_COLUMNS: tuple[str, ...] = ("Data", "Utente", "SKU", "Quant.", "Prezzo")

# row 1 of the file is the header
FIRST_DATA_ROW = 2


def normalize_store_sales(
    rows: Sequence[RawRow],
    user_store_mapping: Mapping[str, Channel] | None = None,
) -> UploadResult:
    """Validate store rows and map them to sale records.

    Every rejected row adds exactly one issue and processing moves on. The
    result keeps all valid rows even when ``success`` is False.
    """
    mapping = dict(user_store_mapping) if user_store_mapping else DEFAULT_USER_STORE_MAPPING
    issues: list[RowIssue] = []
    data: list[SaleRecord] = []

    for index, row in enumerate(rows):
        row_number = index + FIRST_DATA_ROW

        missing = next((c for c in REQUIRED_COLUMNS if not is_present(row.get(c))), None)
        if missing is not None:
            issues.append(RowIssue(
                row=row_number,
                error_type="MISSING_FIELD",
                message=f"Row {row_number}: field '{missing}' missing",
                field=missing,
            ))
            continue

        raw_user = cell_text(row["Utente"])
        channel = mapping.get(normalize_user(raw_user))
        if channel is None:
            issues.append(RowIssue(
                row=row_number,
                error_type="UNKNOWN_USER",
                message=(
                    f"Row {row_number}: user '{raw_user}' not recognised. "
                    f"Valid users: {', '.join(mapping)}"
                ),
                field="Utente",
                value=row["Utente"],
            ))
            continue

        try:
            date = parse_date(row["Data"])
        except DateParseError as e:
            issues.append(RowIssue(
                row=row_number,
                error_type="INVALID_DATE",
                message=(
                    f"Row {row_number}: {e}. Required format: dd/mm/yy or dd/mm/yyyy "
                    "(e.g. 15/12/24 or 15/12/2024)"
                ),
                field="Data",
                value=row["Data"],
            ))
            continue

        quantity = parse_quantity(row["Quant."], "Quant.", row_number)
        if quantity is None:
            issues.append(RowIssue(
                row=row_number,
                error_type="INVALID_QUANTITY",
                message=f"Row {row_number}: invalid quantity: '{row['Quant.']}'",
                field="Quant.",
                value=row["Quant."],
            ))
            continue

        price = parse_number(row["Prezzo"], "Prezzo", row_number)
        if price is None or price <= 0:
            issues.append(RowIssue(
                row=row_number,
                error_type="INVALID_PRICE",
                message=f"Row {row_number}: invalid price: '{row['Prezzo']}'",
                field="Prezzo",
                value=row["Prezzo"],
            ))
            continue

        _, payment = resolve_column(row, STORE_PAYMENT_COLUMNS)
        data.append(SaleRecord(
            date=date,
            user=raw_user,
            channel=channel,
            sku=cell_text(row["SKU"]),
            quantity=quantity,
            price=price,
            amount=round(quantity * price, 2),
            payment_method=cell_text(payment) or None,
        ))

    logger.info(
        "store sales: rows=%d valid=%d errors=%d", len(rows), len(data), len(issues)
    )
    return UploadResult(
        success=not issues,
        data=data,
        issues=issues,
        total_rows=len(rows),
    )
