from __future__ import annotations

import re

from sales_ingest.models.upload_result import EcommerceUploadResult, RowIssue, UploadResult
from sales_ingest.services.bulk_upload import UploadTimeoutError
from sales_ingest.services.ingest import IngestOutcome
from sales_ingest.services.summary import format_seconds, render_summary_line

SUMMARY_RE = re.compile(
    r"^SUMMARY file=\S+ kind=(store|ecommerce|inventory) rows=\d+ valid=\d+ rejected=\d+ warnings=\d+ "
    r"duplicates=\d+ mode=(commit|preview) saved=\d+ skipped=\d+ upload=(ok|failed|skipped) "
    r"elapsed_sec=[0-9.]+$"
)


def test_preview_summary():
    result = UploadResult(success=False, issues=[RowIssue(3, "UNKNOWN_USER", "x")], total_rows=4)
    line = render_summary_line(IngestOutcome("vendite.csv", "store", result, elapsed_seconds=1.5))
    assert line == (
        "SUMMARY file=vendite.csv kind=store rows=4 valid=0 rejected=1 warnings=0 duplicates=0 "
        "mode=preview saved=0 skipped=0 upload=skipped elapsed_sec=1.5"
    )
    assert SUMMARY_RE.match(line)


def test_commit_summaries():
    result = EcommerceUploadResult(success=True, total_rows=10)
    ok = IngestOutcome("e.xlsx", "ecommerce", result, committed=True, saved_count=8, skipped_duplicates=2)
    assert "mode=commit saved=8 skipped=2 upload=ok" in render_summary_line(ok)
    failed = IngestOutcome("e.xlsx", "ecommerce", result, upload_error=UploadTimeoutError("chunk 2 timed out"))
    line = render_summary_line(failed)
    assert "mode=commit" in line and "upload=failed" in line
    assert SUMMARY_RE.match(line)


def test_format_seconds():
    assert format_seconds(0) == "0"
    assert format_seconds(2.0) == "2"
    assert format_seconds(0.0012) == "0.0012"
    assert format_seconds(1.23456) == "1.235"
    assert "e" not in format_seconds(0.000001)
