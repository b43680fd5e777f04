from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .records import InventoryRecord, ReturnRecord, SaleRecord

"""Result models returned by the normalizers.

Each result carries three parallel lists: accepted records, rejected rows
(``RowIssue``) and duplicates (``DuplicateEntry``). The ``errors`` and
``warnings`` string lists shown to operators are derived from the issues.
"""

__all__ = [
    "Severity",
    "RowIssue",
    "DuplicateEntry",
    "UploadResult",
    "EcommerceUploadResult",
    "InventoryUploadResult",
]


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class RowIssue:
    """A rejected row (or group / file) with its reason.

    Attributes:
        row: 1-based file row number (header = 1). -1 when no single row applies
        error_type: Classification in UPPER_SNAKE_CASE
        message: Human-readable text shown to the operator
        field: Column label the problem refers to, if any
        value: Offending raw value, if any
        severity: ERROR excludes the row; WARNING is informational
    """
    row: int
    error_type: str
    message: str
    field: str | None = None
    value: Any = None
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass(frozen=True)
class DuplicateEntry:
    row: int
    documento: str
    numero: str
    date: str
    sku: str
    quantity: int
    price: float
    reason: str  # "sale" | "return" | "existing"


def _messages(issues: list[RowIssue], severity: Severity) -> list[str]:
    return [i.message for i in issues if i.severity is severity]


@dataclass
class UploadResult:
    """Store-sales upload outcome.

    ``data`` holds every valid row even when ``success`` is False so the
    caller can preview a partial upload before committing it.
    """
    success: bool
    data: list[SaleRecord] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    total_rows: int = 0

    @property
    def valid_rows(self) -> int:
        return len(self.data)

    @property
    def errors(self) -> list[str]:
        return _messages(self.issues, Severity.ERROR)


@dataclass
class EcommerceUploadResult:
    success: bool
    sales: list[SaleRecord] = field(default_factory=list)
    returns: list[ReturnRecord] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    duplicates: list[DuplicateEntry] = field(default_factory=list)
    total_rows: int = 0

    @property
    def valid_sales_rows(self) -> int:
        return len(self.sales)

    @property
    def valid_returns_rows(self) -> int:
        return len(self.returns)

    @property
    def skipped_duplicates(self) -> int:
        return len(self.duplicates)

    @property
    def errors(self) -> list[str]:
        return _messages(self.issues, Severity.ERROR)

    @property
    def sales_total(self) -> float:
        return round(sum(s.amount for s in self.sales), 2)

    @property
    def returns_total(self) -> float:
        return round(sum(r.amount for r in self.returns), 2)


@dataclass
class InventoryUploadResult:
    """Inventory upload outcome. Successful when at least one record was produced."""
    success: bool
    message: str
    processed_data: list[InventoryRecord] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    total_rows: int = 0

    @property
    def processed_count(self) -> int:
        return len(self.processed_data)

    @property
    def errors(self) -> list[str]:
        # operators see errors and warnings together, errors first
        return _messages(self.issues, Severity.ERROR) + _messages(self.issues, Severity.WARNING)

    @property
    def warnings(self) -> list[str]:
        return _messages(self.issues, Severity.WARNING)
