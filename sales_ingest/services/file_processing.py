from __future__ import annotations

import logging
from collections.abc import Collection, Mapping

from ..models.records import Channel, PaymentMapping
from ..models.upload_result import EcommerceUploadResult, InventoryUploadResult, RowIssue, UploadResult
from ..normalizers.ecommerce import normalize_ecommerce
from ..normalizers.inventory import normalize_inventory
from ..normalizers.store_sales import normalize_store_sales
from ..tabular.reader import FileFormatError, read_upload

"""File entry points: bytes in, typed upload result out.

A file that cannot be read (wrong extension, no bytes, corrupt content, no
data rows) short-circuits before any row is looked at and comes back as a
failed result with a single top-level issue on row -1.
"""

__all__ = [
    "process_store_sales_file",
    "process_ecommerce_file",
    "process_inventory_file",
]

logger = logging.getLogger(__name__)


def _file_issue(filename: str, e: FileFormatError) -> RowIssue:
    logger.warning("file rejected: %s (%s)", filename, e)
    return RowIssue(row=-1, error_type=e.error_type, message=str(e))


def process_store_sales_file(
    filename: str,
    content: bytes,
    user_store_mapping: Mapping[str, Channel] | None = None,
) -> UploadResult:
    try:
        rows = read_upload(filename, content)
    except FileFormatError as e:
        return UploadResult(success=False, issues=[_file_issue(filename, e)])
    return normalize_store_sales(rows, user_store_mapping)


def process_ecommerce_file(
    filename: str,
    content: bytes,
    payment_mappings: Mapping[str, PaymentMapping] | None = None,
    existing_signatures: Collection[str] | None = None,
) -> EcommerceUploadResult:
    try:
        rows = read_upload(filename, content)
    except FileFormatError as e:
        return EcommerceUploadResult(success=False, issues=[_file_issue(filename, e)])
    return normalize_ecommerce(rows, payment_mappings, existing_signatures)


def process_inventory_file(filename: str, content: bytes) -> InventoryUploadResult:
    try:
        rows = read_upload(filename, content)
    except FileFormatError as e:
        return InventoryUploadResult(success=False, message=str(e), issues=[_file_issue(filename, e)])
    return normalize_inventory(rows)
