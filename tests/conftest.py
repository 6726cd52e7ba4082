from __future__ import annotations

import json
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest

from godoc_index.coderoots import ToolchainError
from godoc_index.index.models import CodeRoot, EnvironmentFingerprint, ModuleClass
from godoc_index.index.store import PackageStore

TEST_FINGERPRINT = EnvironmentFingerprint(
    build_revision="test",
    go_version="go1.22.0",
    go_mod_hash="",
    go_sum_hash="",
    vendor=False,
)

STDLIB_PACKAGES = (
    "encoding",
    "encoding/json",
    "encoding/xml",
    "fmt",
    "image",
    "image/jpeg",
    "internal/cpu",
    "net",
    "net/http",
    "net/http/internal/ascii",
    "net/rpc",
    "net/rpc/jsonrpc",
)


def write_packages(root: Path, relative_dirs: Iterable[str], file_name: str = "doc.go") -> None:
    """Create one Go source file in each directory below ``root``."""
    for relative in relative_dirs:
        directory = root.joinpath(*relative.split("/")) if relative else root
        directory.mkdir(parents=True, exist_ok=True)
        (directory / file_name).write_text("package x\n", encoding="utf-8")


def populate_store(
    store: PackageStore,
    modules: dict[str, Iterable[str]],
    fingerprint: EnvironmentFingerprint = TEST_FINGERPRINT,
) -> None:
    """Load modules and their relative package paths in one committed session."""
    with store.begin_sync() as session:
        for module_path, packages in modules.items():
            module_class = ModuleClass.STDLIB if module_path in ("", "cmd") else ModuleClass.REQUIRED
            module_dir = f"/goroot/src/{module_path}".rstrip("/")
            if module_class is ModuleClass.REQUIRED:
                module_dir = f"/gomodcache/{module_path}@v1.0.0"
            module, _ = session.upsert_module(module_path, module_dir, module_class, "")
            for relative_path in packages:
                session.upsert_package(module.id, relative_path)
        session.finish(fingerprint)


@pytest.fixture
def std_store() -> Iterator[PackageStore]:
    store = PackageStore.open(":memory:")
    populate_store(
        store,
        {
            "": STDLIB_PACKAGES,
            "cmd": ("go", "internal/obj"),
            "example.com/json": ("",),
        },
    )
    yield store
    store.close()


@dataclass(slots=True, frozen=True)
class GoWorld:
    """A fake GOROOT, module cache and main module on disk."""

    root: Path
    goroot: Path
    modcache: Path
    work: Path

    @property
    def stdlib_src(self) -> Path:
        return self.goroot / "src"

    def lib_dir(self, version: str = "v1.2.0") -> Path:
        return self.modcache / "example.com" / f"lib@{version}"

    def code_roots(self, lib_version: str | None = "v1.2.0") -> list[CodeRoot]:
        roots = [
            CodeRoot("", str(self.stdlib_src)),
            CodeRoot("cmd", str(self.stdlib_src / "cmd")),
            CodeRoot("example.com/work", str(self.work)),
        ]
        if lib_version is not None:
            roots.append(CodeRoot("example.com/lib", str(self.lib_dir(lib_version))))
        return roots

    def runner(self, goflags: str = "", fail: bool = False) -> FakeGo:
        """Return a toolchain runner answering ``go env`` and ``go list``."""
        return FakeGo(self, goflags=goflags, fail=fail)


class FakeGo:
    """Stands in for the go command, recording every invocation."""

    def __init__(self, world: GoWorld, goflags: str = "", fail: bool = False) -> None:
        self.world = world
        self.goflags = goflags
        self.fail = fail
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], cwd: Path) -> str:
        self.calls.append(list(args))
        if self.fail:
            raise ToolchainError("go: command not found")
        world = self.world
        if args[1] == "env":
            return json.dumps(
                {
                    "GOROOT": str(world.goroot),
                    "GOMOD": str(world.work / "go.mod"),
                    "GOMODCACHE": str(world.modcache),
                    "GOFLAGS": self.goflags,
                    "GOVERSION": "go1.22.0",
                }
            )
        if args[1] == "list":
            lines = [f"example.com/work\t{world.work}"]
            if args[-1] == "all":
                lines.append(f"example.com/lib\t{world.lib_dir()}")
                lines.append("example.com/missing\t")
            return "\n".join(lines) + "\n"
        raise ToolchainError(f"unexpected command: {args}")


@pytest.fixture
def go_world(tmp_path: Path) -> GoWorld:
    goroot = tmp_path / "goroot"
    src = goroot / "src"
    write_packages(src, STDLIB_PACKAGES)
    (src / "go.mod").write_text("module std\n", encoding="utf-8")
    write_packages(src / "cmd", ("go", "internal/obj"))
    (src / "cmd" / "go.mod").write_text("module cmd\n", encoding="utf-8")
    write_packages(src, ("encoding/json/testdata",))

    modcache = tmp_path / "gomodcache"
    lib = modcache / "example.com" / "lib@v1.2.0"
    write_packages(lib, ("", "codec", "codec/internal/wire"))

    work = tmp_path / "work"
    write_packages(work, ("", "cmd/tool", "internal/util", "_scratch", ".cache"))
    (work / "go.mod").write_text("module example.com/work\n\ngo 1.22\n", encoding="utf-8")
    (work / "go.sum").write_text("example.com/lib v1.2.0 h1:abc=\n", encoding="utf-8")
    os.makedirs(work / "docs", exist_ok=True)
    return GoWorld(root=tmp_path, goroot=goroot, modcache=modcache, work=work)
