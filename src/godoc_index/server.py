"""JSON-lines STDIO server entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from godoc_index.coderoots import Runner, ToolchainError, run_command
from godoc_index.config import SYNC_MODES, CliOverrides, ServerConfig, load_effective_config
from godoc_index.index.manager import IndexManager
from godoc_index.index.store import IndexStoreError, SyncInProgressError
from godoc_index.index.walker import SyncCancelledError
from godoc_index.logging import AuditEvent, JsonlAuditLogger, sanitize_arguments, utc_timestamp
from godoc_index.tools.builtin import STALE_INDEX_WARNING, register_builtin_tools
from godoc_index.tools.registry import ToolDispatchError, ToolRegistry

logger = logging.getLogger(__name__)

AUDIT_LOG_FILE_NAME = "audit.jsonl"

# Checked in order; subclasses come before their bases.
_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (SyncInProgressError, "SYNC_IN_PROGRESS"),
    (SyncCancelledError, "SYNC_CANCELLED"),
    (IndexStoreError, "INDEX_STORE_ERROR"),
    (ToolchainError, "TOOLCHAIN_ERROR"),
)


@dataclass(slots=True, frozen=True)
class Request:
    """Normalized incoming request."""

    request_id: str
    method: str
    params: dict[str, object]


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for server startup configuration."""
    parser = argparse.ArgumentParser(prog="godoc-index")
    parser.add_argument("--repo-root", required=False, default=".")
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument("--mode", choices=SYNC_MODES, required=False, default=None)
    parser.add_argument("--resync-interval", type=int, required=False, default=None)
    parser.add_argument("--trust-dir-mtime", choices=("true", "false"), required=False, default=None)
    parser.add_argument("--sync-workers", type=int, required=False, default=None)
    parser.add_argument("--go-command", required=False, default=None)
    parser.add_argument("--log-level", required=False, default="WARNING")
    return parser


class StdioServer:
    """Routes JSON-line requests to index tools."""

    def __init__(self, config: ServerConfig, runner: Runner = run_command) -> None:
        self._config = config
        self._data_dir = config.data_dir
        self._audit_logger = JsonlAuditLogger(path=self._data_dir / AUDIT_LOG_FILE_NAME)
        self._index_manager = IndexManager(config, runner=runner)
        self._ready_warnings: list[str] | None = None
        self._registry = ToolRegistry()
        register_builtin_tools(
            self._registry,
            manager=self._index_manager,
            config=self._config,
            ensure_ready=self._ensure_ready,
            read_sync_entries=self._index_manager.sync_log.read,
        )
        self._fallback_request_counter = 0

    @property
    def index_manager(self) -> IndexManager:
        """Return the index manager serving requests."""
        return self._index_manager

    def close(self) -> None:
        """Release the index."""
        self._index_manager.close()

    def _ensure_ready(self) -> list[str]:
        """Sync once per process before the first query."""
        if self._ready_warnings is None:
            report = self._index_manager.ensure_synced()
            self._ready_warnings = [STALE_INDEX_WARNING] if report is None else []
        return list(self._ready_warnings)

    def serve(self, in_stream: TextIO, out_stream: TextIO) -> None:
        """Process JSON-line requests from stdin and write JSON-line responses."""
        for raw_line in in_stream:
            line = raw_line.strip()
            if not line:
                continue
            response = self.handle_json_line(line)
            out_stream.write(f"{json.dumps(response, sort_keys=True)}\n")
            out_stream.flush()

    def handle_json_line(self, raw_line: str) -> dict[str, object]:
        """Handle a single JSON-line request."""
        try:
            payload = json.loads(raw_line)
        except json.JSONDecodeError:
            request_id = self.next_request_id()
            response = self.error_response(
                request_id=request_id,
                code="INVALID_JSON",
                message="Request must be valid JSON.",
            )
            self.log_request(
                request_id=request_id,
                tool_name="invalid_json",
                arguments={"raw_line_length": len(raw_line)},
                response=response,
            )
            return response
        return self.handle_payload(payload)

    def handle_payload(self, payload: object) -> dict[str, object]:
        """Validate and dispatch a parsed payload."""
        parsed = self.parse_request(payload)
        if isinstance(parsed, dict):
            request_id_value = parsed.get("request_id")
            request_id = (
                request_id_value if isinstance(request_id_value, str) else self.next_request_id()
            )
            self.log_request(
                request_id=request_id,
                tool_name="invalid_request",
                arguments={},
                response=parsed,
            )
            return parsed

        request = parsed
        if request.method == "tools/list":
            return self.success_response(
                request_id=request.request_id, result={"tools": self._registry.describe()}
            )

        tool_name: str
        arguments: dict[str, object]
        if request.method == "tools/call":
            tool_name_value = request.params.get("name")
            arguments_value = request.params.get("arguments", {})
            if not isinstance(tool_name_value, str) or not tool_name_value:
                return self.error_response(
                    request_id=request.request_id,
                    code="INVALID_PARAMS",
                    message="tools/call params.name must be a non-empty string.",
                )
            if not isinstance(arguments_value, dict):
                return self.error_response(
                    request_id=request.request_id,
                    code="INVALID_PARAMS",
                    message="tools/call params.arguments must be an object.",
                )
            tool_name = tool_name_value
            arguments = arguments_value
        else:
            tool_name = request.method
            arguments = request.params

        try:
            result = self._registry.dispatch(name=tool_name, arguments=arguments)
        except ToolDispatchError as error:
            response = self.error_response(
                request_id=request.request_id,
                code=error.code,
                message=error.message,
            )
        except Exception as error:
            response = self.error_response(
                request_id=request.request_id,
                code=_error_code(error),
                message=_error_message(error),
            )
        else:
            warnings = _extract_result_warnings(result)
            response = self.success_response(
                request_id=request.request_id,
                result=result,
                warnings=warnings,
            )
        self.log_request(
            request_id=request.request_id,
            tool_name=tool_name,
            arguments=arguments,
            response=response,
        )
        return response

    def parse_request(self, payload: object) -> Request | dict[str, object]:
        """Validate request payload and return normalized Request."""
        if not isinstance(payload, dict):
            return self.error_response(
                request_id=self.next_request_id(),
                code="INVALID_REQUEST",
                message="Request must be an object.",
            )

        request_id = self.extract_request_id(payload.get("id"))
        method = payload.get("method")
        params = payload.get("params", {})

        if not isinstance(method, str) or not method:
            return self.error_response(
                request_id=request_id,
                code="INVALID_REQUEST",
                message="Request method must be a non-empty string.",
            )
        if not isinstance(params, dict):
            return self.error_response(
                request_id=request_id,
                code="INVALID_PARAMS",
                message="Request params must be an object.",
            )

        return Request(request_id=request_id, method=method, params=params)

    def extract_request_id(self, request_id: object) -> str:
        """Extract request ID from payload or synthesize a fallback."""
        if isinstance(request_id, str) and request_id:
            return request_id
        if isinstance(request_id, int):
            return str(request_id)
        return self.next_request_id()

    def next_request_id(self) -> str:
        """Generate sequential fallback request IDs for invalid/missing IDs."""
        self._fallback_request_counter += 1
        return f"req-{self._fallback_request_counter:06d}"

    @staticmethod
    def success_response(
        request_id: str,
        result: dict[str, object],
        warnings: list[str] | None = None,
    ) -> dict[str, object]:
        """Build success envelope."""
        return {
            "request_id": request_id,
            "ok": True,
            "result": result,
            "warnings": warnings or [],
            "blocked": False,
        }

    @staticmethod
    def error_response(request_id: str, code: str, message: str) -> dict[str, object]:
        """Build explicit error envelope."""
        return {
            "request_id": request_id,
            "ok": False,
            "result": {},
            "warnings": [],
            "blocked": False,
            "error": {"code": code, "message": message},
        }

    def log_request(
        self,
        request_id: str,
        tool_name: str,
        arguments: dict[str, object],
        response: dict[str, object],
    ) -> None:
        """Log one sanitized request event."""
        error_payload = response.get("error")
        error_code: str | None = None
        if isinstance(error_payload, dict):
            code_value = error_payload.get("code")
            if isinstance(code_value, str):
                error_code = code_value
        event = AuditEvent(
            timestamp=utc_timestamp(),
            request_id=request_id,
            tool=tool_name,
            ok=bool(response.get("ok", False)),
            blocked=bool(response.get("blocked", False)),
            error_code=error_code,
            metadata=sanitize_arguments(arguments),
        )
        self._audit_logger.append(event)


def create_server(
    repo_root: str,
    data_dir: str | None = None,
    cli_overrides: CliOverrides | None = None,
    runner: Runner = run_command,
) -> StdioServer:
    """Create a configured STDIO server instance."""
    overrides = cli_overrides or CliOverrides()
    if data_dir is not None and overrides.data_dir is None:
        overrides = CliOverrides(
            data_dir=Path(data_dir).resolve(),
            mode=overrides.mode,
            resync_interval_seconds=overrides.resync_interval_seconds,
            trust_dir_mtime=overrides.trust_dir_mtime,
            sync_workers=overrides.sync_workers,
            go_command=overrides.go_command,
        )
    config = load_effective_config(repo_root=Path(repo_root).resolve(), overrides=overrides)
    return StdioServer(config=config, runner=runner)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for the index server process."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)
    trust_dir_mtime: bool | None = None
    if args.trust_dir_mtime == "true":
        trust_dir_mtime = True
    if args.trust_dir_mtime == "false":
        trust_dir_mtime = False
    overrides = CliOverrides(
        data_dir=Path(args.data_dir).resolve() if args.data_dir is not None else None,
        mode=args.mode,
        resync_interval_seconds=args.resync_interval,
        trust_dir_mtime=trust_dir_mtime,
        sync_workers=args.sync_workers,
        go_command=args.go_command,
    )
    server = create_server(repo_root=args.repo_root, cli_overrides=overrides)
    try:
        server.serve(in_stream=sys.stdin, out_stream=sys.stdout)
    finally:
        server.close()
    return 0


def _error_code(error: Exception) -> str:
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return "INTERNAL_ERROR"


def _error_message(error: Exception) -> str:
    if _error_code(error) == "INTERNAL_ERROR":
        logger.exception("unhandled error while executing tool")
        return "Unhandled server error while executing tool."
    return str(error)


def _extract_result_warnings(result: dict[str, object]) -> list[str]:
    raw = result.pop("__warnings__", None)
    if not isinstance(raw, list):
        return []
    warnings: list[str] = []
    for item in raw:
        if isinstance(item, str):
            warnings.append(item)
    return warnings
