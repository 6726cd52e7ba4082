from __future__ import annotations

import os
from pathlib import Path

import pytest

from godoc_index.coderoots import (
    ToolchainError,
    discover_environment,
    main_module_dir,
    parse_module_list,
    run_command,
    uses_vendor,
)
from godoc_index.config import load_effective_config
from godoc_index.index.models import CodeRoot

from conftest import GoWorld


def test_discover_lists_stdlib_then_modules(go_world: GoWorld) -> None:
    runner = go_world.runner()
    config = load_effective_config(go_world.work)

    environment = discover_environment(config, runner)

    assert environment.vendor is False
    assert environment.goversion == "go1.22.0"
    assert environment.main_module_dir == go_world.work
    assert environment.code_roots == (
        CodeRoot("", str(go_world.stdlib_src)),
        CodeRoot("cmd", str(go_world.stdlib_src / "cmd")),
        CodeRoot("example.com/work", str(go_world.work)),
        CodeRoot("example.com/lib", str(go_world.lib_dir())),
    )
    assert runner.calls[1] == ["go", "list", "-m", "-f", "{{.Path}}\t{{.Dir}}", "all"]


def test_vendor_mode_uses_manifest_root(go_world: GoWorld) -> None:
    vendor = go_world.work / "vendor"
    vendor.mkdir()
    (vendor / "modules.txt").write_text("# example.com/dep v1.0.0\n", encoding="utf-8")
    runner = go_world.runner()

    environment = discover_environment(load_effective_config(go_world.work), runner)

    assert environment.vendor is True
    assert environment.code_roots[-2:] == (
        CodeRoot("example.com/work", str(go_world.work)),
        CodeRoot("", str(vendor)),
    )
    assert runner.calls[1][-1] != "all"


@pytest.mark.parametrize("goflags", ["-mod=mod", "-trimpath -mod=readonly"])
def test_mod_flag_disables_vendor_mode(go_world: GoWorld, goflags: str) -> None:
    vendor = go_world.work / "vendor"
    vendor.mkdir()
    (vendor / "modules.txt").write_text("", encoding="utf-8")

    environment = discover_environment(load_effective_config(go_world.work), go_world.runner(goflags))

    assert environment.vendor is False
    assert uses_vendor(go_world.work, "-mod=vendor") is True


def test_outside_module_mode_indexes_stdlib_only() -> None:
    assert main_module_dir("") is None
    assert main_module_dir(os.devnull) is None
    assert main_module_dir("/src/m/go.mod") == Path("/src/m")
    assert uses_vendor(None, "") is False


def test_parse_module_list_skips_modules_without_directory() -> None:
    roots = parse_module_list("example.com/a\t/mod/a@v1\nexample.com/b\t\n\n  \nexample.com/c\t/mod/c@v2\n")

    assert roots == [CodeRoot("example.com/a", "/mod/a@v1"), CodeRoot("example.com/c", "/mod/c@v2")]


def test_toolchain_failure_propagates(go_world: GoWorld) -> None:
    with pytest.raises(ToolchainError, match="command not found"):
        discover_environment(load_effective_config(go_world.work), go_world.runner(fail=True))


def test_run_command_reports_missing_binary(tmp_path: Path) -> None:
    with pytest.raises(ToolchainError, match="failed to run"):
        run_command([str(tmp_path / "no-such-go"), "env"], tmp_path)
