"""Parsing of vendor/modules.txt manifests."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MODULES_TXT = "modules.txt"
_MODULE_MARKER = "#"
_GO_VERSION_MARKER = "##"
_REPLACE_ARROW = "=>"
_VERSION_PREFIX = "v"


@dataclass(slots=True, frozen=True)
class VendoredModule:
    """One module listed in a vendor manifest with its vendored packages."""

    import_path: str
    version: str
    packages: tuple[str, ...]


def _module_version(fields: list[str]) -> str | None:
    """Return the effective version for a ``# path ...`` line, or None if invalid.

    An empty string means the module has no stable version, e.g. a relative
    path replacement, and must always be re-synced.
    """
    if len(fields) < 2:
        return None
    version, rest = fields[1], fields[2:]
    if version == _REPLACE_ARROW or not version.startswith(_VERSION_PREFIX):
        return None
    if not rest:
        return version
    if len(rest) < 2 or rest[0] != _REPLACE_ARROW:
        return None
    replace_path, replace_rest = rest[1], rest[2:]
    if not replace_rest:
        return ""
    if not replace_rest[0].startswith(_VERSION_PREFIX):
        return None
    return f"{version}=>{replace_path}@{replace_rest[0]}"


def parse_vendor_manifest(lines: Iterable[str]) -> list[VendoredModule]:
    """Parse modules.txt lines into modules in manifest order.

    ``# module version`` lines open a module, ``##`` lines are ignored and any
    other non-empty line names a package of the open module. Package lines
    after an invalid or replacement-only module line are dropped.
    """
    modules: list[VendoredModule] = []
    current_path: str | None = None
    current_version = ""
    current_packages: list[str] = []

    def _close() -> None:
        if current_path is not None:
            modules.append(VendoredModule(current_path, current_version, tuple(current_packages)))

    for line in lines:
        fields = line.split()
        if not fields or fields[0] == _GO_VERSION_MARKER:
            continue
        if fields[0] == _MODULE_MARKER:
            _close()
            current_packages = []
            version = _module_version(fields[1:])
            if version is None:
                current_path = None
                current_version = ""
                continue
            current_path = fields[1]
            current_version = version
            continue
        if current_path is not None:
            current_packages.append(fields[0])
    _close()
    return modules


def read_vendor_manifest(vendor_dir: Path) -> list[VendoredModule]:
    """Read ``vendor_dir/modules.txt``; a missing or unreadable manifest yields nothing."""
    manifest = vendor_dir / MODULES_TXT
    try:
        with manifest.open("r", encoding="utf-8") as handle:
            return parse_vendor_manifest(handle)
    except OSError as error:
        logger.warning("failed to read vendor manifest %s: %s", manifest, error)
        return []
