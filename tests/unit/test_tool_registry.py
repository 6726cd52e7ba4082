from __future__ import annotations

import pytest

from godoc_index.tools import ToolDispatchError, ToolRegistry


def test_registry_keeps_deterministic_registration_order() -> None:
    registry = ToolRegistry()
    registry.register("index.alpha", lambda _: {"tool": "alpha"})
    registry.register("index.beta", lambda _: {"tool": "beta"}, "Second tool.")

    assert registry.names() == ("index.alpha", "index.beta")
    assert registry.describe() == [
        {"name": "index.alpha", "description": ""},
        {"name": "index.beta", "description": "Second tool."},
    ]


def test_registry_dispatches_registered_tool() -> None:
    registry = ToolRegistry()
    registry.register("index.echo", lambda payload: {"payload": payload})

    result = registry.dispatch("index.echo", {"k": "v"})

    assert result == {"payload": {"k": "v"}}


def test_registry_rejects_duplicate_names() -> None:
    registry = ToolRegistry()
    registry.register("index.echo", lambda payload: payload)

    with pytest.raises(ValueError, match="index.echo"):
        registry.register("index.echo", lambda payload: payload)


def test_registry_unknown_tool_raises_dispatch_error() -> None:
    registry = ToolRegistry()

    with pytest.raises(ToolDispatchError) as excinfo:
        registry.dispatch("index.missing", {})

    assert excinfo.value.code == "UNKNOWN_TOOL"
    assert registry.get("index.missing") is None
