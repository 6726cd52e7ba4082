"""Typed models for index state."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import PurePath

from godoc_index.index.segments import join_import_path, split_import_path


class ModuleClass(enum.IntEnum):
    """Where a module's code comes from."""

    STDLIB = 0
    LOCAL = 1
    REQUIRED = 2
    VENDORED = 3


STDLIB_MODULE_PATHS = ("", "cmd")
VENDOR_DIR_NAME = "vendor"


def classify_module(import_path: str, module_dir: str) -> tuple[ModuleClass, str]:
    """Derive a module's class and version from its import path and directory."""
    if import_path in STDLIB_MODULE_PATHS:
        return ModuleClass.STDLIB, ""
    base = PurePath(module_dir).name
    _, at, version = base.partition("@")
    if at:
        return ModuleClass.REQUIRED, version
    if VENDOR_DIR_NAME in PurePath(module_dir).parts:
        return ModuleClass.VENDORED, ""
    return ModuleClass.LOCAL, ""


def is_vendor_root(module_dir: str) -> bool:
    """Return True when ``module_dir`` is a vendor tree root."""
    return PurePath(module_dir).name == VENDOR_DIR_NAME


@dataclass(slots=True, frozen=True)
class PackageDir:
    """An import path and the directory holding it."""

    import_path: str
    dir: str


@dataclass(slots=True, frozen=True)
class CodeRoot:
    """Top of one module's package tree, as reported by the toolchain."""

    import_path: str
    dir: str


@dataclass(slots=True, frozen=True)
class Module:
    """Versioned root of packages."""

    id: int
    import_path: str
    dir: str
    module_class: ModuleClass
    version: str
    synced_at_ns: int | None = None


@dataclass(slots=True, frozen=True)
class Package:
    """One importable directory within a module."""

    id: int
    module_id: int
    relative_path: str
    num_parts: int


@dataclass(slots=True, frozen=True)
class Partial:
    """Right-aligned suffix of a package import path."""

    package_id: int
    parts: str
    num_parts: int


@dataclass(slots=True, frozen=True)
class PackageRow:
    """Package joined with its owning module."""

    package_id: int
    module_path: str
    module_dir: str
    relative_path: str

    @property
    def import_path(self) -> str:
        return join_import_path(self.module_path, self.relative_path)

    @property
    def dir(self) -> str:
        if not self.relative_path:
            return self.module_dir
        return str(PurePath(self.module_dir, *split_import_path(self.relative_path)))


@dataclass(slots=True, frozen=True)
class EnvironmentFingerprint:
    """Inputs that decide whether a sync pass is needed at all."""

    build_revision: str
    go_version: str
    go_mod_hash: str
    go_sum_hash: str
    vendor: bool
    vendor_manifest_hash: str = ""


@dataclass(slots=True, frozen=True)
class SyncMetadata:
    """Singleton record describing the last committed sync."""

    created_at: str
    updated_at: str
    fingerprint: EnvironmentFingerprint


@dataclass(slots=True, frozen=True)
class SyncReport:
    """Deterministic summary of one sync pass."""

    synced: bool
    reason: str
    modules_inserted: int
    modules_updated: int
    modules_removed: tuple[str, ...]
    modules_walked: tuple[str, ...]
    packages_inserted: int
    packages_removed: tuple[str, ...]
    scan_errors: tuple[str, ...]
    duration_ms: int
    timestamp: str

    @property
    def changed(self) -> bool:
        return bool(
            self.modules_inserted
            or self.modules_updated
            or self.modules_removed
            or self.packages_inserted
            or self.packages_removed
        )
