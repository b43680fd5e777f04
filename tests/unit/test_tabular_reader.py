from __future__ import annotations

import io
from datetime import datetime

import pandas as pd
import pytest

from sales_ingest.tabular.reader import (
    EmptyFileError,
    UnreadableFileError,
    UnsupportedFileError,
    detect_delimiter,
    read_spreadsheet,
    read_upload,
)


def test_detect_delimiter():
    assert detect_delimiter("Data;Utente;SKU") == ";"
    assert detect_delimiter("SKU,Brand") == ","
    assert detect_delimiter("SKU") == ","


def test_semicolon_csv_keeps_text_cells(store_csv: bytes):
    rows = read_upload("vendite.csv", store_csv)
    assert rows[0] == {"Data": "15/12/24", "Utente": "Carla", "SKU": "ABC1", "Quant.": "2", "Prezzo": "12,50"}
    assert rows[1]["Prezzo"] == "1.234,56"


def test_csv_with_bom_and_blank_rows():
    content = "\ufeffSKU,Brand\nA1,Gucci\n,\n\nB2, Prada \n".encode("utf-8")
    rows = read_upload("inv.CSV", content)
    assert rows == [{"SKU": "A1", "Brand": "Gucci"}, {"SKU": "B2", "Brand": "Prada"}]


def test_latin1_csv_is_decoded():
    content = "SKU;Brand\nA1;Maison Émile\n".encode("latin-1")
    assert read_upload("inv.csv", content)[0]["Brand"] == "Maison Émile"


def test_unsupported_extension():
    with pytest.raises(UnsupportedFileError) as exc:
        read_upload("report.pdf", b"%PDF")
    assert exc.value.error_type == "FILE_UNSUPPORTED"


def test_empty_content_and_header_only():
    with pytest.raises(EmptyFileError):
        read_upload("a.csv", b"")
    with pytest.raises(EmptyFileError):
        read_upload("a.csv", b"SKU;Brand\n")


def test_corrupt_workbook_is_unreadable():
    with pytest.raises(UnreadableFileError):
        read_upload("a.xlsx", b"definitely not a zip archive")


def test_xlsx_keeps_native_types(make_xlsx):
    content = make_xlsx([
        {"Data": datetime(2024, 12, 15), "SKU": "A1", "Quant.": 1, "Prezzo": 12.5},
        {"Data": datetime(2024, 12, 16), "SKU": "B2", "Quant.": 2, "Prezzo": 30.0},
    ])
    rows = read_upload("vendite.xlsx", content)
    assert len(rows) == 2
    assert isinstance(rows[0]["Data"], datetime)
    assert rows[0]["SKU"] == "A1"
    assert rows[0]["Quant."] == 1
    assert rows[1]["Prezzo"] == 30


def test_blank_header_cells_get_placeholders():
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame([["SKU", None, "Brand"], ["A1", "x", "Gucci"]]).to_excel(writer, index=False, header=False)
    rows = read_spreadsheet(buf.getvalue())
    assert rows == [{"SKU": "A1", "__EMPTY_1": "x", "Brand": "Gucci"}]
