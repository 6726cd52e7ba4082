from __future__ import annotations

import json
from pathlib import Path

from godoc_index.index.store import SyncInProgressError
from godoc_index.server import create_server

from conftest import GoWorld


def test_malformed_json_returns_invalid_json_error(tmp_path: Path) -> None:
    server = create_server(repo_root=str(tmp_path))

    response = server.handle_json_line("{not-json")
    server.close()

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INVALID_JSON",
        "message": "Request must be valid JSON.",
    }
    assert str(response["request_id"]).startswith("req-")


def test_unknown_tool_returns_explicit_error(tmp_path: Path) -> None:
    server = create_server(repo_root=str(tmp_path))

    response = server.handle_payload(
        {"id": "abc-123", "method": "index.unknown", "params": {"k": "v"}}
    )
    server.close()

    assert response["ok"] is False
    assert response["request_id"] == "abc-123"
    assert response["error"] == {
        "code": "UNKNOWN_TOOL",
        "message": "Unknown tool: index.unknown",
    }


def test_invalid_tools_call_params_returns_invalid_params_error(tmp_path: Path) -> None:
    server = create_server(repo_root=str(tmp_path))
    payload = {"id": 7, "method": "tools/call", "params": {"name": "index.status", "arguments": []}}

    response = server.handle_payload(json.loads(json.dumps(payload)))
    server.close()

    assert response["ok"] is False
    assert response["request_id"] == "7"
    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "tools/call params.arguments must be an object.",
    }


def test_non_object_request_returns_invalid_request(tmp_path: Path) -> None:
    server = create_server(repo_root=str(tmp_path))

    response = server.handle_payload(["index.status"])
    server.close()

    assert response["ok"] is False
    assert response["error"]["code"] == "INVALID_REQUEST"


def test_toolchain_failure_on_explicit_sync_is_reported(go_world: GoWorld) -> None:
    server = create_server(repo_root=str(go_world.work), runner=go_world.runner(fail=True))

    response = server.handle_payload({"id": "s1", "method": "index.sync", "params": {}})
    server.close()

    assert response["ok"] is False
    assert response["error"] == {"code": "TOOLCHAIN_ERROR", "message": "go: command not found"}


def test_sync_in_progress_is_reported(go_world: GoWorld) -> None:
    server = create_server(repo_root=str(go_world.work), runner=go_world.runner())
    session = server.index_manager.store.begin_sync()
    try:
        response = server.handle_payload({"id": "s2", "method": "index.sync", "params": {}})
    finally:
        session.abort()
        server.close()

    assert response["ok"] is False
    assert response["error"] == {
        "code": "SYNC_IN_PROGRESS",
        "message": str(SyncInProgressError()),
    }
