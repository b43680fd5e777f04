# Shared pytest fixtures
from __future__ import annotations
import io
import tempfile
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from sales_ingest.db.kv_store import InMemoryKeyValueStore
from sales_ingest.models.caller_context import CallerContext, Role


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
kv_table: kv_store_sales
chunk_size: 500
timeouts:
  chunk_seconds: 30
  refresh_seconds: 10
user_store_mapping:
  carla: negozio_donna
  alexander: negozio_uomo
  paolo: negozio_uomo
payment_mappings:
  Zalando Pay:
    macroArea: marketplace
    channel: marketplace
logs_directory: logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def uploader() -> CallerContext:
    return CallerContext(user_id="u-1", role=Role.UPLOADER)


def xlsx_bytes(rows: list[dict[str, Any]]) -> bytes:
    """Build a single-sheet workbook from row dicts (header = dict keys)."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, index=False)
    return buf.getvalue()


@pytest.fixture()
def make_xlsx():
    return xlsx_bytes


STORE_CSV = (
    "Data;Utente;SKU;Quant.;Prezzo\n"
    "15/12/24;Carla;ABC1;2;12,50\n"
    "16/12/2024;Alexander;XYZ9;1;1.234,56\n"
)

ECOMMERCE_ROWS: list[dict[str, Any]] = [
    {
        "Documento": "FATT", "Numero": "100", "Data": "15/12/2024", "SKU": "A1", "Qty": 1,
        "Prezzo articc": 120.0, "Spese trasporto": 10.0, "Nazione": "it",
        "Supplier/Platform": "Ferraris", "Metodo pagamento": "PayPal",
    },
    {
        "Documento": "FATT", "Numero": "100", "Data": "15/12/2024", "SKU": "B2", "Qty": 2,
        "Prezzo articc": 30.0, "Spese trasporto": None, "Nazione": "it",
        "Supplier/Platform": "Ferraris", "Metodo pagamento": "PayPal",
    },
    {
        "Documento": "NOTA CRED", "Numero": "7", "Data": "16/12/2024", "SKU": "A1", "Qty": 1,
        "Prezzo articc": 120.0, "Spese trasporto": None, "Nazione": "it",
        "Supplier/Platform": "Ferraris", "Metodo pagamento": "PayPal",
    },
    {
        "Documento": "NOTA CRED", "Numero": "7", "Data": "16/12/2024", "SKU": None, "Qty": 1,
        "Prezzo articc": -10.0, "Spese trasporto": None, "Nazione": "it",
        "Supplier/Platform": "Ferraris", "Metodo pagamento": "PayPal",
    },
]


@pytest.fixture()
def store_csv() -> bytes:
    return STORE_CSV.encode("utf-8")


@pytest.fixture()
def ecommerce_rows() -> list[dict[str, Any]]:
    return [dict(r) for r in ECOMMERCE_ROWS]
