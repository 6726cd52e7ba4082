from __future__ import annotations

from godoc_index.index.search import SearchEngine
from godoc_index.index.store import PackageStore


def test_full_completions_offer_import_paths(std_store: PackageStore) -> None:
    engine = SearchEngine(std_store)

    completions = engine.complete("json")

    assert [item.value for item in completions] == [
        "encoding/json",
        "net/rpc/jsonrpc",
        "example.com/json",
    ]


def test_short_completions_use_shortest_unique_suffix(std_store: PackageStore) -> None:
    engine = SearchEngine(std_store)

    completions = engine.complete("json", short=True)

    # "json" is shared by two packages, "jsonrpc" is not.
    assert [item.value for item in completions] == [
        "encoding/json",
        "jsonrpc",
        "example.com/json",
    ]
    assert [item.import_path for item in completions] == [
        "encoding/json",
        "net/rpc/jsonrpc",
        "example.com/json",
    ]


def test_short_completion_keeps_what_was_typed(std_store: PackageStore) -> None:
    engine = SearchEngine(std_store)

    completions = engine.complete("rpc/j", short=True)

    assert [item.value for item in completions] == ["rpc/jsonrpc"]


def test_short_completion_values_are_unique(std_store: PackageStore) -> None:
    engine = SearchEngine(std_store)

    values = [item.value for item in engine.complete("", short=True)]

    assert len(values) == len(set(values))
    assert "fmt" in values
