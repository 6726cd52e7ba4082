from __future__ import annotations

import sqlite3
from pathlib import Path

from godoc_index.index.schema import SCHEMA_CHECKSUM, SCHEMA_STATEMENTS
from godoc_index.server import create_server


def test_schema_checksum_fits_user_version() -> None:
    assert SCHEMA_CHECKSUM != 0
    assert -(1 << 31) <= SCHEMA_CHECKSUM < (1 << 31)
    assert any("CREATE TABLE partial" in statement for statement in SCHEMA_STATEMENTS)


def test_incompatible_index_is_rebuilt_on_startup(tmp_path: Path) -> None:
    index_path = tmp_path / ".godoc_index" / "index.sqlite3"
    index_path.parent.mkdir(parents=True)
    conn = sqlite3.connect(index_path)
    conn.execute("CREATE TABLE chunks (id INTEGER PRIMARY KEY)")
    conn.execute("PRAGMA user_version = 999")
    conn.commit()
    conn.close()

    server = create_server(repo_root=str(tmp_path))
    response = server.handle_payload({"id": "req-schema", "method": "index.status", "params": {}})
    server.close()

    assert response["ok"] is True
    assert response["result"]["index_status"] == "not_indexed"
    assert response["result"]["schema_checksum"] == SCHEMA_CHECKSUM
    assert (index_path.parent / "index.sqlite3.old").exists()
