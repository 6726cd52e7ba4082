"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

CONFIG_FILE_NAME = "godoc_index.toml"
DATA_DIR_NAME = ".godoc_index"

SYNC_MODES = ("off", "auto", "force", "skip")
DEFAULT_RESYNC_INTERVAL_SECONDS = 20 * 60
DEFAULT_SYNC_WORKERS = 4
SYNC_WORKERS_CAP = 32
DEFAULT_MAX_RESULTS = 200
MAX_RESULTS_CAP = 5_000


@dataclass(slots=True, frozen=True)
class IndexConfig:
    """Sync policy and directory walk settings."""

    mode: str = "auto"
    resync_interval_seconds: int = DEFAULT_RESYNC_INTERVAL_SECONDS
    trust_dir_mtime: bool = False
    rewalk_unversioned: bool = True
    sync_workers: int = DEFAULT_SYNC_WORKERS


@dataclass(slots=True, frozen=True)
class ToolchainConfig:
    """How the Go toolchain is invoked."""

    go_command: str = "go"


@dataclass(slots=True, frozen=True)
class LimitsConfig:
    """Response size limits."""

    max_results: int = DEFAULT_MAX_RESULTS


@dataclass(slots=True, frozen=True)
class ServerConfig:
    """Fully merged configuration."""

    repo_root: Path
    data_dir: Path
    index: IndexConfig
    toolchain: ToolchainConfig
    limits: LimitsConfig

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for tool responses."""
        return {
            "repo_root": str(self.repo_root),
            "data_dir": str(self.data_dir),
            "index": {
                "mode": self.index.mode,
                "resync_interval_seconds": self.index.resync_interval_seconds,
                "trust_dir_mtime": self.index.trust_dir_mtime,
                "rewalk_unversioned": self.index.rewalk_unversioned,
                "sync_workers": self.index.sync_workers,
            },
            "toolchain": {
                "go_command": self.toolchain.go_command,
            },
            "limits": {
                "max_results": self.limits.max_results,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    mode: str | None = None
    resync_interval_seconds: int | None = None
    trust_dir_mtime: bool | None = None
    sync_workers: int | None = None
    go_command: str | None = None


def default_config(repo_root: Path) -> ServerConfig:
    """Build default config for a given main module root."""
    resolved_root = repo_root.resolve()
    return ServerConfig(
        repo_root=resolved_root,
        data_dir=resolved_root / DATA_DIR_NAME,
        index=IndexConfig(),
        toolchain=ToolchainConfig(),
        limits=LimitsConfig(),
    )


def load_repo_config_file(repo_root: Path) -> dict[str, object]:
    """Load optional godoc_index.toml from the main module root."""
    config_path = repo_root / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _optional_bool(value: object, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Config field '{name}' must be a boolean.")
    return value


def _optional_mode(value: object, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or value not in SYNC_MODES:
        raise ValueError(f"Config field '{name}' must be one of: {', '.join(SYNC_MODES)}.")
    return value


def _optional_non_empty_string(value: object, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config field '{name}' must be a non-empty string.")
    return value


def _optional_non_negative_int(value: object, name: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Config field '{name}' must be a non-negative integer.")
    return value


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value


def merge_config(
    base: ServerConfig, repo_payload: dict[str, object], overrides: CliOverrides
) -> ServerConfig:
    """Merge defaults, repo config, then CLI/startup overrides."""
    index_payload = _get_table(repo_payload, "index")
    toolchain_payload = _get_table(repo_payload, "toolchain")
    limits_payload = _get_table(repo_payload, "limits")

    index = IndexConfig(
        mode=_optional_mode(index_payload.get("mode"), "index.mode", base.index.mode),
        resync_interval_seconds=_optional_non_negative_int(
            index_payload.get("resync_interval_seconds"),
            "index.resync_interval_seconds",
            base.index.resync_interval_seconds,
        ),
        trust_dir_mtime=_optional_bool(
            index_payload.get("trust_dir_mtime"), "index.trust_dir_mtime", base.index.trust_dir_mtime
        ),
        rewalk_unversioned=_optional_bool(
            index_payload.get("rewalk_unversioned"),
            "index.rewalk_unversioned",
            base.index.rewalk_unversioned,
        ),
        sync_workers=_optional_positive_int_with_cap(
            index_payload.get("sync_workers"),
            "index.sync_workers",
            base.index.sync_workers,
            SYNC_WORKERS_CAP,
        ),
    )
    toolchain = ToolchainConfig(
        go_command=_optional_non_empty_string(
            toolchain_payload.get("go_command"), "toolchain.go_command", base.toolchain.go_command
        )
    )
    limits = LimitsConfig(
        max_results=_optional_positive_int_with_cap(
            limits_payload.get("max_results"),
            "limits.max_results",
            base.limits.max_results,
            MAX_RESULTS_CAP,
        )
    )
    merged = ServerConfig(
        repo_root=base.repo_root,
        data_dir=base.data_dir,
        index=index,
        toolchain=toolchain,
        limits=limits,
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: ServerConfig, overrides: CliOverrides) -> ServerConfig:
    """Apply startup overrides at highest precedence."""
    index = IndexConfig(
        mode=_optional_mode(overrides.mode, "overrides.mode", config.index.mode),
        resync_interval_seconds=_optional_non_negative_int(
            overrides.resync_interval_seconds,
            "overrides.resync_interval_seconds",
            config.index.resync_interval_seconds,
        ),
        trust_dir_mtime=_optional_bool(
            overrides.trust_dir_mtime, "overrides.trust_dir_mtime", config.index.trust_dir_mtime
        ),
        rewalk_unversioned=config.index.rewalk_unversioned,
        sync_workers=_optional_positive_int_with_cap(
            overrides.sync_workers,
            "overrides.sync_workers",
            config.index.sync_workers,
            SYNC_WORKERS_CAP,
        ),
    )
    toolchain = ToolchainConfig(
        go_command=_optional_non_empty_string(
            overrides.go_command, "overrides.go_command", config.toolchain.go_command
        )
    )
    data_dir = overrides.data_dir or config.data_dir
    return ServerConfig(
        repo_root=config.repo_root,
        data_dir=data_dir.resolve(),
        index=index,
        toolchain=toolchain,
        limits=config.limits,
    )


def load_effective_config(repo_root: Path, overrides: CliOverrides | None = None) -> ServerConfig:
    """Load effective config using merge order defaults -> repo config -> overrides."""
    resolved_root = repo_root.resolve()
    base = default_config(resolved_root)
    payload = load_repo_config_file(resolved_root)
    return merge_config(base, payload, overrides or CliOverrides())
