from __future__ import annotations

from godoc_index.server import create_server

from conftest import GoWorld, write_packages


def test_sync_roundtrip_tracks_disk_changes(go_world: GoWorld) -> None:
    server = create_server(repo_root=str(go_world.work), runner=go_world.runner())

    first = server.handle_payload({"id": "req-s1", "method": "index.sync", "params": {}})
    assert first["ok"] is True
    assert first["result"]["reason"] == "no previous sync"
    assert first["result"]["modules_inserted"] == 4
    assert first["result"]["packages_inserted"] == 20

    second = server.handle_payload({"id": "req-s2", "method": "index.sync", "params": {}})
    assert second["ok"] is True
    assert second["result"]["synced"] is False
    assert second["result"]["reason"] == "index up to date"

    write_packages(go_world.work, ("api",))
    (go_world.work / "cmd" / "tool" / "doc.go").unlink()
    third = server.handle_payload(
        {"id": "req-s3", "method": "index.sync", "params": {"force": True}}
    )
    assert third["ok"] is True
    assert third["result"]["modules_walked"] == ["example.com/work"]
    assert third["result"]["packages_inserted"] == 1
    assert third["result"]["packages_removed"] == ["example.com/work/cmd/tool"]

    search = server.handle_payload(
        {"id": "req-s4", "method": "index.search", "params": {"query": "work/a"}}
    )
    assert [match["import_path"] for match in search["result"]["matches"]] == ["example.com/work/api"]

    log = server.handle_payload({"id": "req-s5", "method": "index.sync_log", "params": {}})
    assert [entry["reason"] for entry in log["result"]["entries"]] == ["no previous sync", "forced"]
    server.close()


def test_go_mod_edit_triggers_sync_on_next_server(go_world: GoWorld) -> None:
    server = create_server(repo_root=str(go_world.work), runner=go_world.runner())
    server.handle_payload({"id": "req-e1", "method": "index.sync", "params": {}})
    server.close()

    (go_world.work / "go.mod").write_text("module example.com/work\n\ngo 1.23\n", encoding="utf-8")
    restarted = create_server(repo_root=str(go_world.work), runner=go_world.runner())
    response = restarted.handle_payload({"id": "req-e2", "method": "index.sync", "params": {}})
    status = restarted.handle_payload({"id": "req-e3", "method": "index.status", "params": {}})
    restarted.close()

    assert response["result"]["reason"] == "environment changed"
    assert response["result"]["changed"] is False
    assert status["result"]["package_count"] == 20
