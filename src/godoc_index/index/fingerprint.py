"""Environment fingerprint deciding whether a sync is needed."""

from __future__ import annotations

import hashlib
from importlib import metadata
from pathlib import Path

from godoc_index.index.models import VENDOR_DIR_NAME, EnvironmentFingerprint
from godoc_index.index.schema import SCHEMA_CHECKSUM
from godoc_index.index.vendor import MODULES_TXT

DISTRIBUTION_NAME = "godoc-index"


def sha256_file(path: Path) -> str:
    """Compute SHA-256 hash in deterministic chunked reads."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(1024 * 128)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def _optional_sha256(path: Path) -> str:
    if not path.is_file():
        return ""
    return sha256_file(path)


def build_revision() -> str:
    """Return an identifier for this build of the indexer."""
    try:
        version = metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        version = "unknown"
    return f"{version}+schema.{SCHEMA_CHECKSUM}"


def compute_fingerprint(main_module_dir: Path | None, go_version: str, vendor: bool) -> EnvironmentFingerprint:
    """Hash go.mod/go.sum (and the vendor manifest in vendor mode) with toolchain facts."""
    go_mod_hash = ""
    go_sum_hash = ""
    vendor_manifest_hash = ""
    if main_module_dir is not None:
        go_mod_hash = _optional_sha256(main_module_dir / "go.mod")
        go_sum_hash = _optional_sha256(main_module_dir / "go.sum")
        if vendor:
            vendor_manifest_hash = _optional_sha256(main_module_dir / VENDOR_DIR_NAME / MODULES_TXT)
    return EnvironmentFingerprint(
        build_revision=build_revision(),
        go_version=go_version,
        go_mod_hash=go_mod_hash,
        go_sum_hash=go_sum_hash,
        vendor=vendor,
        vendor_manifest_hash=vendor_manifest_hash,
    )
