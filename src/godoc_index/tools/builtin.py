"""Built-in index tools."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict

from godoc_index.config import ServerConfig
from godoc_index.index.manager import IndexManager
from godoc_index.index.models import SyncReport
from godoc_index.index.search import PackageMatch
from godoc_index.tools.registry import ToolDispatchError, ToolHandler, ToolRegistry

STALE_INDEX_WARNING = "Index sync failed; results come from the last committed index."


def register_builtin_tools(
    registry: ToolRegistry,
    manager: IndexManager,
    config: ServerConfig,
    ensure_ready: Callable[[], list[str]],
    read_sync_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> None:
    """Register the index tool set."""
    registry.register(
        "index.status", _status_handler(manager, config), "Report index state and effective config."
    )
    registry.register("index.sync", _sync_handler(manager), "Run a sync pass now.")
    registry.register(
        "index.search",
        _search_handler(manager, config, ensure_ready),
        "Find packages by partial, exact or globbed import path.",
    )
    registry.register(
        "index.resolve",
        _resolve_handler(manager, ensure_ready),
        "Resolve a path suffix to its package directory.",
    )
    registry.register(
        "index.complete",
        _complete_handler(manager, config, ensure_ready),
        "Complete a partially typed import path.",
    )
    registry.register(
        "index.sync_log", _sync_log_handler(config, read_sync_entries), "Read recent sync events."
    )


def report_to_dict(report: SyncReport) -> dict[str, object]:
    """Return a JSON-ready sync report."""
    payload = asdict(report)
    for key in ("modules_removed", "modules_walked", "packages_removed", "scan_errors"):
        payload[key] = list(payload[key])
    payload["changed"] = report.changed
    return payload


def _match_to_dict(match: PackageMatch) -> dict[str, object]:
    return {"import_path": match.import_path, "dir": match.dir, "match": match.match}


def _optional_bool(arguments: dict[str, object], tool: str, key: str) -> bool:
    value = arguments.get(key, False)
    if not isinstance(value, bool):
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} {key} must be a boolean.")
    return value


def _string(arguments: dict[str, object], tool: str, key: str, required: bool) -> str:
    value = arguments.get(key, None if required else "")
    if not isinstance(value, str) or (required and not value.strip()):
        qualifier = "a non-empty string" if required else "a string"
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} {key} must be {qualifier}.")
    return value


def _limit(arguments: dict[str, object], tool: str, config: ServerConfig) -> int:
    value = arguments.get("limit", config.limits.max_results)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} limit must be an integer.")
    if value < 1:
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} limit must be >= 1.")
    return min(value, config.limits.max_results)


def _with_warnings(result: dict[str, object], warnings: list[str]) -> dict[str, object]:
    if warnings:
        result["__warnings__"] = warnings
    return result


def _status_handler(manager: IndexManager, config: ServerConfig) -> ToolHandler:
    def handler(_: dict[str, object]) -> dict[str, object]:
        status = manager.status()
        return {**asdict(status), "config": config.to_public_dict()}

    return handler


def _sync_handler(manager: IndexManager) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        force = _optional_bool(arguments, "index.sync", "force")
        return report_to_dict(manager.sync(force=force))

    return handler


def _search_handler(
    manager: IndexManager, config: ServerConfig, ensure_ready: Callable[[], list[str]]
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        query = _string(arguments, "index.search", "query", required=False)
        exact = _optional_bool(arguments, "index.search", "exact")
        limit = _limit(arguments, "index.search", config)
        warnings = ensure_ready()
        matches = manager.search(query, exact=exact, limit=limit)
        return _with_warnings(
            {"query": query, "exact": exact, "matches": [_match_to_dict(match) for match in matches]},
            warnings,
        )

    return handler


def _resolve_handler(manager: IndexManager, ensure_ready: Callable[[], list[str]]) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        path = _string(arguments, "index.resolve", "path", required=True)
        warnings = ensure_ready()
        match = manager.resolve(path)
        return _with_warnings(
            {"path": path, "package": _match_to_dict(match) if match is not None else None},
            warnings,
        )

    return handler


def _complete_handler(
    manager: IndexManager, config: ServerConfig, ensure_ready: Callable[[], list[str]]
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        partial = _string(arguments, "index.complete", "partial", required=False)
        short = _optional_bool(arguments, "index.complete", "short")
        limit = _limit(arguments, "index.complete", config)
        warnings = ensure_ready()
        completions = manager.complete(partial, short=short, limit=limit)
        return _with_warnings(
            {
                "partial": partial,
                "completions": [
                    {"value": item.value, "import_path": item.import_path, "dir": item.dir}
                    for item in completions
                ],
            },
            warnings,
        )

    return handler


def _sync_log_handler(
    config: ServerConfig,
    read_sync_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        since_value = arguments.get("since")
        limit_value = arguments.get("limit", config.limits.max_results)

        since: str | None = since_value if isinstance(since_value, str) else None
        limit = limit_value if isinstance(limit_value, int) else config.limits.max_results
        if limit < 1:
            limit = 1
        if limit > config.limits.max_results:
            limit = config.limits.max_results

        return {"entries": read_sync_entries(since, limit)}

    return handler
