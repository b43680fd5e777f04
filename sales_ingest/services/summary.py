from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ingest import IngestOutcome

"""SUMMARY line rendering for one ingested file."""

__all__ = [
    "format_seconds",
    "render_summary_line",
]


def format_seconds(value: float) -> str:
    """Render seconds without trailing zeros or scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(outcome: IngestOutcome) -> str:
    """Render the SUMMARY line for ``outcome``.

    Format::

        SUMMARY file={name} kind={kind} rows={n} valid={v} rejected={r}
        warnings={w} duplicates={d} mode={commit|preview} saved={s}
        skipped={k} upload={ok|failed|skipped} elapsed_sec={t}

    Examples:
        >>> from sales_ingest.models.upload_result import UploadResult
        >>> from sales_ingest.services.ingest import IngestOutcome
        >>> render_summary_line(IngestOutcome("a.csv", "store", UploadResult(success=True, total_rows=3)))
        'SUMMARY file=a.csv kind=store rows=3 valid=0 rejected=0 warnings=0 duplicates=0 mode=preview saved=0 skipped=0 upload=skipped elapsed_sec=0'
    """
    if outcome.upload_error is not None:
        upload = "failed"
        mode = "commit"
    elif outcome.committed:
        upload = "ok"
        mode = "commit"
    else:
        upload = "skipped"
        mode = "preview"
    return (
        f"SUMMARY file={outcome.file} "
        f"kind={outcome.kind} "
        f"rows={outcome.total_rows} "
        f"valid={outcome.valid_rows} "
        f"rejected={outcome.rejected} "
        f"warnings={outcome.warnings} "
        f"duplicates={outcome.duplicates} "
        f"mode={mode} "
        f"saved={outcome.saved_count} "
        f"skipped={outcome.skipped_duplicates} "
        f"upload={upload} "
        f"elapsed_sec={format_seconds(outcome.elapsed_seconds)}"
    )
