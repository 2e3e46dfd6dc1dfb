from __future__ import annotations

"""CLI entry point tests."""

import pytest

from cascade_rag.app.dependencies import reset_caches
from cascade_rag.vectorstore.local import MANIFEST_FILE
from tools.ingest import main as ingest_main


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_caches()
    yield
    reset_caches()


def test_ingest_builds_index(tmp_path, capsys) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("Section 1. Warranty claims go to service centres.", encoding="utf-8")

    ingest_main([str(notes), "--index-path", str(tmp_path / "store")])

    assert (tmp_path / "store" / MANIFEST_FILE).exists()
    assert "Indexed 1 chunks from 1 documents" in capsys.readouterr().out


def test_ingest_exits_non_zero_without_documents(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc:
        ingest_main([str(tmp_path / "absent.pdf"), "--index-path", str(tmp_path / "store")])

    assert exc.value.code == 1
    assert not (tmp_path / "store").exists()


def test_ingest_rejects_invalid_chunking(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc:
        ingest_main(["notes.txt", "--chunk-size", "50", "--chunk-overlap", "50"])

    assert exc.value.code == 1
