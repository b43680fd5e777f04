from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field

from ..models.records import Area, Channel, PaymentMapping, ReturnRecord, SaleRecord
from ..models.upload_result import DuplicateEntry, EcommerceUploadResult, RowIssue
from ..parsing.columns import (
    DESCRIPTION_COLUMNS,
    ORDER_REFERENCE_COLUMNS,
    PAYMENT_COLUMNS,
    PRICE_COLUMNS,
    PRICE_FALLBACK,
    QUANTITY_COLUMNS,
    SHIPPING_COLUMNS,
    TAX_RATE_COLUMNS,
    RawRow,
    cell_text,
    resolve_column,
)
from ..parsing.locale import DateParseError, parse_date, parse_number, parse_quantity
from ..parsing.signatures import return_dedup_key, return_signature, sale_dedup_key, sale_signature

"""Ecommerce normalizer.

Ecommerce exports mix sales and credit notes in one sheet, one line item per
row. Rows are grouped into transactions by ``(Documento, Numero, Data)``;
document type, date, channel, area and shipping are decided once per group.

Return documents carry two kinds of lines:

- a positive price is a refunded item: stored with negative price and amount;
- a negative price is a return shipping deduction withheld from the refund:
  stored with positive price and amount, so a 120 refund with a 10
  deduction nets to -110.

Lines described as "spese di reso" are kept as a negative return shipping
line with no SKU.
"""

__all__ = [
    "RETURN_DOCUMENT_TYPES",
    "KNOWN_MARKETPLACES",
    "TransactionGroup",
    "group_transactions",
    "is_return_document",
    "extract_area",
    "determine_channel",
    "normalize_ecommerce",
]

logger = logging.getLogger(__name__)

RETURN_DOCUMENT_TYPES = frozenset({"RESO", "NOTA CRED", "NOTA DI CREDITO"})
KNOWN_MARKETPLACES: tuple[str, ...] = (
    "zalando", "cettire", "baltini", "yoox", "guhada", "thelist", "miinto",
)
RETURN_SHIPPING_MARKER = "spese di reso"
ECOMMERCE_USER = "ecommerce"
FIRST_DATA_ROW = 2


@dataclass
class TransactionGroup:
    """All line items sharing one document type, number and date."""
    documento: str
    numero: str
    raw_date: object
    rows: list[tuple[int, RawRow]] = field(default_factory=list)  # (file row number, row)


def group_transactions(rows: Sequence[RawRow]) -> list[TransactionGroup]:
    """Group rows by ``(Documento, Numero, Data)`` in order of first appearance."""
    groups: dict[tuple[str, str, str], TransactionGroup] = {}
    for index, row in enumerate(rows):
        key = (cell_text(row.get("Documento")), cell_text(row.get("Numero")), cell_text(row.get("Data")))
        group = groups.get(key)
        if group is None:
            group = TransactionGroup(documento=key[0], numero=key[1], raw_date=row.get("Data"))
            groups[key] = group
        group.rows.append((index + FIRST_DATA_ROW, row))
    return list(groups.values())


def is_return_document(documento: str | None) -> bool:
    if not documento:
        return False
    return " ".join(documento.upper().split()) in RETURN_DOCUMENT_TYPES


def extract_area(supplier_platform: str | None, area: str | None) -> Area | None:
    value = (supplier_platform or area or "").strip()
    for candidate in Area:
        if value == candidate.value:
            return candidate
    return None


def determine_channel(
    payment_method: str | None,
    supplier_platform: str | None,
    payment_mappings: Mapping[str, PaymentMapping] | None = None,
) -> Channel:
    """Payment mapping first, then known marketplace names, else ecommerce."""
    if payment_method and payment_mappings:
        mapping = payment_mappings.get(payment_method)
        if mapping is not None and mapping.channel in (Channel.ECOMMERCE.value, Channel.MARKETPLACE.value):
            return Channel(mapping.channel)
    platform = (supplier_platform or "").lower()
    if any(name in platform for name in KNOWN_MARKETPLACES):
        return Channel.MARKETPLACE
    return Channel.ECOMMERCE


@dataclass
class _Batch:
    """Mutable accumulator for one normalization pass."""
    sales: list[SaleRecord] = field(default_factory=list)
    returns: list[ReturnRecord] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    duplicates: list[DuplicateEntry] = field(default_factory=list)
    seen_keys: set[str] = field(default_factory=set)


def _row_issue(row_number: int, group: TransactionGroup, error_type: str, text: str, **kw) -> RowIssue:
    return RowIssue(
        row=row_number,
        error_type=error_type,
        message=f"Row {row_number} ({group.documento} {group.numero}): {text}",
        **kw,
    )


def _optional_number(row: RawRow, candidates: Sequence[str], row_number: int) -> float | None:
    header, value = resolve_column(row, candidates)
    if header is None:
        return None
    return parse_number(value, header, row_number)


def normalize_ecommerce(
    rows: Sequence[RawRow],
    payment_mappings: Mapping[str, PaymentMapping] | None = None,
    existing_signatures: Collection[str] | None = None,
) -> EcommerceUploadResult:
    """Turn a combined sales + returns export into sale and return records.

    Parameters
    ----------
    rows: raw rows in file order
    payment_mappings: payment method -> {macro area, channel}, read-only
    existing_signatures: signatures of already persisted sales / returns;
        matching rows are reported as duplicates with reason ``existing``

    The result always carries whatever was produced together with every
    issue and duplicate; ``success`` is True only when no row was rejected.
    """
    batch = _Batch()
    existing = existing_signatures or ()

    for group in group_transactions(rows):
        _normalize_group(group, payment_mappings, existing, batch)

    logger.info(
        "ecommerce: rows=%d sales=%d returns=%d errors=%d duplicates=%d",
        len(rows), len(batch.sales), len(batch.returns), len(batch.issues), len(batch.duplicates),
    )
    return EcommerceUploadResult(
        success=not batch.issues,
        sales=batch.sales,
        returns=batch.returns,
        issues=batch.issues,
        duplicates=batch.duplicates,
        total_rows=len(rows),
    )


def _normalize_group(
    group: TransactionGroup,
    payment_mappings: Mapping[str, PaymentMapping] | None,
    existing: Collection[str],
    batch: _Batch,
) -> None:
    first_row = group.rows[0][1]
    first_row_number = group.rows[0][0]

    # the date is shared by the whole group: one error rejects every row
    try:
        date = parse_date(group.raw_date)
    except DateParseError as e:
        date = None
        reason = str(e)
    else:
        reason = "date missing or invalid"
    if date is None:
        batch.issues.append(RowIssue(
            row=-1,
            error_type="INVALID_GROUP_DATE",
            message=f"Transaction {group.documento} {group.numero}: {reason}",
            field="Data",
            value=group.raw_date,
        ))
        logger.debug("rejected group %s %s (%d rows)", group.documento, group.numero, len(group.rows))
        return

    is_return = is_return_document(group.documento)
    country = cell_text(first_row.get("Nazione")).upper()
    supplier_platform = cell_text(first_row.get("Supplier/Platform"))
    area = extract_area(supplier_platform, cell_text(first_row.get("Area")))
    _, raw_payment = resolve_column(first_row, PAYMENT_COLUMNS)
    payment_method = cell_text(raw_payment)
    channel = determine_channel(payment_method, supplier_platform, payment_mappings)
    marketplace = supplier_platform if channel is Channel.MARKETPLACE and supplier_platform else None

    shipping_cost: float | None = None
    if not is_return:
        shipping = _optional_number(first_row, SHIPPING_COLUMNS, first_row_number)
        if shipping is not None and shipping > 0:
            shipping_cost = shipping

    for position, (row_number, row) in enumerate(group.rows):
        sku = cell_text(row.get("SKU"))
        if not sku and not is_return:
            batch.issues.append(_row_issue(row_number, group, "MISSING_FIELD", "SKU missing", field="SKU"))
            continue

        qty_header, raw_qty = resolve_column(row, QUANTITY_COLUMNS)
        quantity = parse_quantity(raw_qty, qty_header, row_number)
        if quantity is None:
            batch.issues.append(_row_issue(
                row_number, group, "INVALID_QUANTITY", "invalid quantity", field=qty_header, value=raw_qty,
            ))
            continue

        price_header, raw_price = resolve_column(row, PRICE_COLUMNS, PRICE_FALLBACK)
        parsed_price = parse_number(raw_price, price_header or "Prezzo", row_number)
        if parsed_price is None or (not is_return and parsed_price <= 0):
            shown = f'"{raw_price}"' if price_header is not None else "column not found"
            rule = "invalid price" if parsed_price is None else "invalid price for a sale (must be > 0)"
            batch.issues.append(_row_issue(
                row_number, group, "INVALID_PRICE",
                f"{rule}. Value: {shown}. Available columns: {', '.join(map(str, row.keys()))}",
                field=price_header, value=raw_price,
            ))
            continue

        price = abs(parsed_price)
        is_deduction = is_return and parsed_price < 0
        amount = quantity * price
        if is_return and not is_deduction:
            amount = -amount
        if not is_return and shipping_cost and position == 0:
            amount += shipping_cost
        amount = round(amount, 2)

        tax_rate = _optional_number(row, TAX_RATE_COLUMNS, row_number)
        _, raw_ref = resolve_column(row, ORDER_REFERENCE_COLUMNS)
        order_reference = cell_text(raw_ref)
        _, raw_description = resolve_column(row, DESCRIPTION_COLUMNS)
        description = cell_text(raw_description)

        if is_return:
            key = return_dedup_key(
                group.documento, group.numero, date, order_reference or sku, sku or description, quantity, price,
            )
        else:
            key = sale_dedup_key(group.documento, group.numero, date, sku, quantity, price)
        if key in batch.seen_keys:
            batch.duplicates.append(DuplicateEntry(
                row=row_number,
                documento=group.documento,
                numero=group.numero,
                date=date,
                sku=sku or description,
                quantity=quantity,
                price=price,
                reason="return" if is_return else "sale",
            ))
            continue
        batch.seen_keys.add(key)

        record: SaleRecord | ReturnRecord
        if is_return and RETURN_SHIPPING_MARKER in description.lower():
            shipping_line = -abs(parsed_price)
            record = ReturnRecord(
                date=date,
                channel=channel,
                quantity=1,
                price=shipping_line,
                amount=shipping_line,
                sku=None,
                country=country or None,
                area=area,
                payment_method=payment_method or None,
                order_reference=order_reference,
                return_shipping_cost=shipping_line,
                tax_rate=tax_rate,
                reason=group.documento,
            )
        elif is_return:
            record = ReturnRecord(
                date=date,
                channel=channel,
                quantity=quantity,
                price=price if is_deduction else -price,
                amount=amount,
                sku=sku or None,
                country=country or None,
                area=area,
                payment_method=payment_method or None,
                order_reference=order_reference,
                return_shipping_cost=price if is_deduction else None,
                tax_rate=tax_rate,
                reason=group.documento,
            )
        else:
            record = SaleRecord(
                date=date,
                user=ECOMMERCE_USER,
                channel=channel,
                sku=sku,
                quantity=quantity,
                price=price,
                amount=amount,
                marketplace=marketplace,
                payment_method=payment_method or None,
                area=area,
                country=country or None,
                order_reference=order_reference or None,
                shipping_cost=shipping_cost if position == 0 else None,
                tax_rate=tax_rate,
                documento=group.documento or None,
                numero=group.numero or None,
            )

        if existing:
            signature = (
                return_signature(record.to_dict()) if isinstance(record, ReturnRecord)
                else sale_signature(record.to_dict())
            )
            if signature in existing:
                batch.duplicates.append(DuplicateEntry(
                    row=row_number,
                    documento=group.documento,
                    numero=group.numero,
                    date=date,
                    sku=sku or description,
                    quantity=record.quantity,
                    price=record.price,
                    reason="existing",
                ))
                continue

        if isinstance(record, ReturnRecord):
            batch.returns.append(record)
        else:
            batch.sales.append(record)
