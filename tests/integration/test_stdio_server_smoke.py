from __future__ import annotations

import io
import json

from godoc_index.server import create_server, main

from conftest import GoWorld


def test_stdio_server_routes_multiple_requests(go_world: GoWorld) -> None:
    server = create_server(repo_root=str(go_world.work), runner=go_world.runner())
    in_stream = io.StringIO(
        "\n".join(
            [
                json.dumps({"id": "req-1", "method": "index.status", "params": {}}),
                "",
                json.dumps(
                    {
                        "id": "req-2",
                        "method": "tools/call",
                        "params": {"name": "index.search", "arguments": {"query": "net/h"}},
                    }
                ),
            ]
        )
        + "\n"
    )
    out_stream = io.StringIO()

    server.serve(in_stream=in_stream, out_stream=out_stream)
    server.close()
    lines = [line for line in out_stream.getvalue().splitlines() if line]

    assert len(lines) == 2
    first = json.loads(lines[0])
    second = json.loads(lines[1])

    assert first["request_id"] == "req-1"
    assert first["ok"] is True
    assert first["result"]["index_status"] == "not_indexed"

    assert second["request_id"] == "req-2"
    assert second["ok"] is True
    assert [match["import_path"] for match in second["result"]["matches"]] == ["net/http"]
    assert second["result"]["matches"][0]["dir"] == str(go_world.stdlib_src / "net" / "http")


def test_main_serves_stdin_until_eof(go_world: GoWorld, monkeypatch) -> None:
    stdin = io.StringIO(json.dumps({"id": 1, "method": "index.status"}) + "\n")
    stdout = io.StringIO()
    monkeypatch.setattr("sys.stdin", stdin)
    monkeypatch.setattr("sys.stdout", stdout)

    exit_code = main(["--repo-root", str(go_world.work), "--mode", "off"])

    assert exit_code == 0
    response = json.loads(stdout.getvalue())
    assert response["request_id"] == "1"
    assert response["result"]["config"]["index"]["mode"] == "off"
