from __future__ import annotations

import io
import zipfile
from datetime import datetime
from pathlib import PurePath
from typing import Any

import numpy as np
import pandas as pd

"""Tabular reader: CSV / spreadsheet bytes -> ordered list of raw rows.

A raw row maps the header label found in the file to the cell value.
Spreadsheet cells keep their native type (numbers stay numbers, date cells
become ``datetime``); CSV cells are trimmed strings. Rows that are entirely
blank are skipped. No domain knowledge lives here.
"""

__all__ = [
    "FileFormatError",
    "UnsupportedFileError",
    "EmptyFileError",
    "UnreadableFileError",
    "detect_delimiter",
    "read_delimited",
    "read_spreadsheet",
    "read_upload",
]

DELIMITED_SUFFIXES = (".csv",)
SPREADSHEET_SUFFIXES = (".xlsx", ".xls")
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


class FileFormatError(Exception):
    """Base class for failures that reject a whole file before row processing."""
    error_type = "FILE_ERROR"


class UnsupportedFileError(FileFormatError):
    error_type = "FILE_UNSUPPORTED"


class EmptyFileError(FileFormatError):
    error_type = "FILE_EMPTY"


class UnreadableFileError(FileFormatError):
    error_type = "FILE_UNREADABLE"


def detect_delimiter(header_line: str) -> str:
    """Pick ``;`` when the header line holds more semicolons than commas."""
    return ";" if header_line.count(";") > header_line.count(",") else ","


def _cell(val: Any) -> Any:
    if val is None:
        return None
    if val is pd.NaT:
        return None
    if isinstance(val, pd.Timestamp):
        return val.to_pydatetime()
    if isinstance(val, np.generic):
        val = val.item()
    if isinstance(val, float) and np.isnan(val):
        return None
    if isinstance(val, str):
        return val.strip()
    return val


def _is_blank(row: dict[str, Any]) -> bool:
    return all(v is None or v == "" for v in row.values())


def read_delimited(text: str) -> list[dict[str, Any]]:
    """Parse delimited text whose first non-empty line is the header."""
    text = text.lstrip("\ufeff")
    header_line = next((line for line in text.splitlines() if line.strip()), "")
    if not header_line:
        return []
    sep = detect_delimiter(header_line)
    df = pd.read_csv(
        io.StringIO(text),
        sep=sep,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    columns = [str(c).strip().strip('"') for c in df.columns]
    rows: list[dict[str, Any]] = []
    for values in df.itertuples(index=False, name=None):
        row = {col: _cell(val) for col, val in zip(columns, values, strict=False)}
        if _is_blank(row):
            continue
        rows.append(row)
    return rows


def read_spreadsheet(content: bytes) -> list[dict[str, Any]]:
    """Parse the first sheet of a workbook.

    The header is the first row holding any label; blank header cells get
    ``__EMPTY_<n>`` placeholders so their data is not lost.
    """
    df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None)
    df = df.dropna(how="all")
    if df.empty:
        return []
    header_series = df.iloc[0]
    columns: list[str] = []
    for idx, label in enumerate(header_series.tolist()):
        text = _cell(label)
        if text is None or text == "":
            columns.append(f"__EMPTY_{idx}")
        elif isinstance(text, datetime):
            columns.append(text.isoformat())
        else:
            columns.append(str(text).strip())
    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[1:].iterrows():
        row = {col: _cell(val) for col, val in zip(columns, raw.tolist(), strict=False)}
        if _is_blank(row):
            continue
        rows.append(row)
    return rows


def _decode(content: bytes) -> str:
    for enc in TEXT_ENCODINGS:
        try:
            return content.decode(enc)
        except UnicodeDecodeError:
            continue
    raise UnreadableFileError("could not decode file text")


def read_upload(filename: str, content: bytes) -> list[dict[str, Any]]:
    """Dispatch on the file extension and return the raw rows.

    Raises
    ------
    UnsupportedFileError: extension is not CSV / XLSX / XLS
    EmptyFileError: no bytes, or no data rows after the header
    UnreadableFileError: bytes could not be parsed
    """
    suffix = PurePath(filename).suffix.lower()
    if suffix not in DELIMITED_SUFFIXES + SPREADSHEET_SUFFIXES:
        raise UnsupportedFileError("Unsupported file format. Use CSV or XLSX.")
    if not content:
        raise EmptyFileError("The file is empty or contains no valid data.")

    try:
        if suffix in DELIMITED_SUFFIXES:
            rows = read_delimited(_decode(content))
        else:
            rows = read_spreadsheet(content)
    except FileFormatError:
        raise
    except (ValueError, OSError, zipfile.BadZipFile, pd.errors.ParserError) as e:
        raise UnreadableFileError(f"Error reading file {filename}: {e}") from e

    if not rows:
        raise EmptyFileError("The file is empty or contains no valid data.")
    return rows
