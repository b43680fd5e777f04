from __future__ import annotations

import json
from pathlib import Path

from sales_ingest.logging.error_log import ErrorLogBuffer, ErrorRecord
from sales_ingest.models.upload_result import RowIssue, Severity

KEYS = {"timestamp", "file", "row", "error_type", "message", "severity"}


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(file="vendite.csv", row=10, error_type="INVALID_DATE", message="Row 10: bad date")
    data = json.loads(rec.to_json_line())
    assert data["file"] == "vendite.csv"
    assert data["row"] == 10
    assert data["error_type"] == "INVALID_DATE"
    assert data["timestamp"].endswith("Z")
    assert data["severity"] == "error"
    assert set(data.keys()) == KEYS


def test_error_record_from_issue_keeps_unicode():
    issue = RowIssue(row=-1, error_type="INVALID_GROUP_DATE", message="Transaction NOTA CRED 7: Date does not exist")
    rec = ErrorRecord.from_issue("resi è.xlsx", issue)
    assert rec.row == -1
    assert "è" in rec.to_json_line()


def test_warning_issues_keep_their_severity():
    issue = RowIssue(
        row=4, error_type="MISSING_SELL_PRICE", message="Row 4: sell price not specified - set to 0.00",
        severity=Severity.WARNING,
    )
    data = json.loads(ErrorRecord.from_issue("inventario.xlsx", issue).to_json_line())
    assert data["severity"] == "warning"
    assert data["error_type"] == "MISSING_SELL_PRICE"


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("f1.csv", 2, "UNKNOWN_USER", "Row 2: user 'x' not recognised"))
    added = buf.extend_issues("f1.csv", [
        RowIssue(row=3, error_type="MISSING_FIELD", message="Row 3: field 'SKU' missing"),
    ])
    assert added == 1
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent.resolve() == (temp_workdir / "logs").resolve()
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == KEYS
    assert len(buf) == 0


def test_error_log_buffer_multiple_flushes(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "custom")
    assert buf.flush() is None
    buf.append(ErrorRecord.create("f.csv", 1, "INVALID_PRICE", "p"))
    path = buf.flush()
    size1 = path.stat().st_size
    buf.append(ErrorRecord.create("f.csv", 2, "INVALID_PRICE", "p2"))
    path2 = buf.flush()
    assert path == path2
    assert path2.stat().st_size > size1
    assert path.parent == tmp_path / "custom"
