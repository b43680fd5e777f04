from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import patch

from sales_ingest.cli import main as cli_main
from sales_ingest.db.kv_store import StoreConnectionError
from sales_ingest.logging.init import reset_logging

"""Exit code contract: 0 all accepted, 2 partial (rows rejected / upload stopped), 1 fatal."""

SUMMARY_LINE = re.compile(r"^SUMMARY file=\S+ kind=\w+ rows=\d+ valid=\d+ rejected=\d+ .* elapsed_sec=[0-9.]+$", re.M)


def _csv(temp_workdir: Path, body: str) -> str:
    (temp_workdir / "data" / "vendite.csv").write_text("Data;Utente;SKU;Quant.;Prezzo\n" + body, encoding="utf-8")
    return "data/vendite.csv"


def test_exit_code_all_success(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()
    code = cli_main(["store", _csv(temp_workdir, "15/12/24;Carla;A1;1;10\n"), "--commit"])
    out = capsys.readouterr().out
    assert code == 0
    assert SUMMARY_LINE.search(out)


def test_exit_code_partial_rows(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()
    code = cli_main(["store", _csv(temp_workdir, "15/12/24;Carla;A1;1;10\n15/12/24;Carla;A2;0;10\n")])
    assert code == 2
    assert "rejected=1" in capsys.readouterr().out


def test_exit_code_upload_stopped(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()

    def failing_transport(_repository):
        async def transmit(_chunk):
            raise StoreConnectionError("connection refused")
        return transmit

    with patch("sales_ingest.services.ingest.repository_transport", failing_transport):
        code = cli_main(["store", _csv(temp_workdir, "15/12/24;Carla;A1;1;10\n"), "--commit"])
    out = capsys.readouterr().out
    assert code == 2
    assert "upload=failed" in out
    assert "ERROR upload: Could not reach the server" in out


def test_exit_code_fatal_empty_file(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()
    code = cli_main(["store", _csv(temp_workdir, "")])
    assert code == 1
    assert "ERROR The file is empty or contains no valid data." in capsys.readouterr().out
