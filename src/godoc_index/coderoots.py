"""Discovery of code roots through the Go toolchain."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from godoc_index.config import ServerConfig
from godoc_index.index.models import VENDOR_DIR_NAME, CodeRoot
from godoc_index.index.vendor import MODULES_TXT

logger = logging.getLogger(__name__)

GO_ENV_KEYS = ("GOROOT", "GOMOD", "GOMODCACHE", "GOFLAGS", "GOVERSION")
MODULE_LIST_FORMAT = "{{.Path}}\t{{.Dir}}"
_NON_VENDOR_MOD_FLAGS = frozenset({"-mod=mod", "-mod=readonly"})

Runner = Callable[[list[str], Path], str]


class ToolchainError(Exception):
    """Raised when the Go toolchain cannot be run or returns an error."""


@dataclass(slots=True, frozen=True)
class GoEnvironment:
    """Toolchain facts and the code roots derived from them."""

    goroot: str
    gomod: str
    gomodcache: str
    goflags: str
    goversion: str
    main_module_dir: Path | None
    vendor: bool
    code_roots: tuple[CodeRoot, ...]


def run_command(args: list[str], cwd: Path) -> str:
    """Run a toolchain command and return its stdout."""
    try:
        completed = subprocess.run(
            args,
            cwd=cwd,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as error:
        raise ToolchainError(f"failed to run {args[0]}: {error}") from error
    if completed.returncode != 0:
        raise ToolchainError(completed.stderr.strip() or f"{' '.join(args)} failed")
    return completed.stdout


def read_go_env(config: ServerConfig, runner: Runner = run_command) -> dict[str, str]:
    """Return the toolchain variables the index depends on."""
    output = runner([config.toolchain.go_command, "env", "-json", *GO_ENV_KEYS], config.repo_root)
    try:
        payload = json.loads(output)
    except json.JSONDecodeError as error:
        raise ToolchainError(f"go env returned invalid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise ToolchainError("go env returned a non-object payload.")
    return {key: str(payload.get(key) or "") for key in GO_ENV_KEYS}


def parse_module_list(output: str) -> list[CodeRoot]:
    """Parse ``path<TAB>dir`` lines, skipping modules that are not on disk."""
    roots: list[CodeRoot] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        import_path, _, module_dir = line.partition("\t")
        import_path = import_path.strip()
        module_dir = module_dir.strip()
        if not import_path or not module_dir:
            logger.debug("skipping module without a directory: %r", line)
            continue
        roots.append(CodeRoot(import_path=import_path, dir=module_dir))
    return roots


def list_module_roots(
    config: ServerConfig, runner: Runner = run_command, all_modules: bool = True
) -> list[CodeRoot]:
    """Return the main module, followed by every required module when asked."""
    args = [config.toolchain.go_command, "list", "-m", "-f", MODULE_LIST_FORMAT]
    if all_modules:
        args.append("all")
    return parse_module_list(runner(args, config.repo_root))


def main_module_dir(gomod: str) -> Path | None:
    """Return the main module directory, or None outside module mode."""
    if not gomod or gomod == os.devnull:
        return None
    return Path(gomod).parent


def uses_vendor(module_dir: Path | None, goflags: str) -> bool:
    """Return True when the build reads dependencies from the vendor tree."""
    if module_dir is None:
        return False
    if not (module_dir / VENDOR_DIR_NAME / MODULES_TXT).is_file():
        return False
    return not any(flag in _NON_VENDOR_MOD_FLAGS for flag in goflags.split())


def stdlib_roots(goroot: str) -> list[CodeRoot]:
    """Return the standard library and ``cmd`` roots under GOROOT."""
    if not goroot:
        return []
    src = os.path.join(goroot, "src")
    return [CodeRoot(import_path="", dir=src), CodeRoot(import_path="cmd", dir=os.path.join(src, "cmd"))]


def discover_environment(config: ServerConfig, runner: Runner = run_command) -> GoEnvironment:
    """Ask the toolchain for every code root visible from the main module."""
    env = read_go_env(config, runner)
    module_dir = main_module_dir(env["GOMOD"])
    vendor = uses_vendor(module_dir, env["GOFLAGS"])

    roots = stdlib_roots(env["GOROOT"])
    if module_dir is not None:
        if vendor:
            roots.extend(list_module_roots(config, runner, all_modules=False))
            roots.append(CodeRoot(import_path="", dir=str(module_dir / VENDOR_DIR_NAME)))
        else:
            roots.extend(list_module_roots(config, runner))
    logger.debug("discovered %d code roots (vendor=%s)", len(roots), vendor)
    return GoEnvironment(
        goroot=env["GOROOT"],
        gomod=env["GOMOD"],
        gomodcache=env["GOMODCACHE"],
        goflags=env["GOFLAGS"],
        goversion=env["GOVERSION"],
        main_module_dir=module_dir,
        vendor=vendor,
        code_roots=tuple(roots),
    )
