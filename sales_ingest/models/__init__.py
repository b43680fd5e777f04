"""Domain models for the retail sales ingestion pipeline.

Canonical records produced by the normalizers, the typed upload results that
carry accepted / rejected / duplicate rows, and the caller context.
"""

from .caller_context import CallerContext, PermissionDeniedError, Role
from .error_record import ErrorRecord
from .records import Area, Channel, InventoryRecord, PaymentMapping, ReturnRecord, SaleRecord
from .upload_result import (
    DuplicateEntry,
    EcommerceUploadResult,
    InventoryUploadResult,
    RowIssue,
    Severity,
    UploadResult,
)

__all__ = [
    # Records
    "Area",
    "Channel",
    "InventoryRecord",
    "PaymentMapping",
    "ReturnRecord",
    "SaleRecord",
    # Results
    "DuplicateEntry",
    "EcommerceUploadResult",
    "ErrorRecord",
    "InventoryUploadResult",
    "RowIssue",
    "Severity",
    "UploadResult",
    # Caller
    "CallerContext",
    "PermissionDeniedError",
    "Role",
]
