from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .upload_result import RowIssue, Severity

"""ErrorRecord model for the JSON Lines error log.

One record per rejected row, rejected transaction group or unreadable file,
plus one per warning on an accepted row (``severity="warning"``, inventory
only). ``row=-1`` is the sentinel for file-level and group-level errors where
no single row applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded filename
        row: Row number (1-based, header = 1). Use -1 when row is unknown
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human-readable description
        severity: "error" (row rejected) or "warning" (row accepted)
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int
    error_type: str  # UPPER_SNAKE
    message: str
    severity: str = Severity.ERROR.value

    @staticmethod
    def create(
        file: str,
        row: int,
        error_type: str,
        message: str,
        severity: Severity = Severity.ERROR,
    ) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            message=message,
            severity=severity.value,
        )

    @staticmethod
    def from_issue(file: str, issue: RowIssue) -> ErrorRecord:
        return ErrorRecord.create(file, issue.row, issue.error_type, issue.message, issue.severity)

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format (fixed key set)."""
        return json.dumps(asdict(self), ensure_ascii=False)
