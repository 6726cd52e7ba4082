from __future__ import annotations

import hashlib
from pathlib import Path

from godoc_index.index.fingerprint import build_revision, compute_fingerprint, sha256_file
from godoc_index.index.schema import SCHEMA_CHECKSUM


def test_fingerprint_hashes_module_files(tmp_path: Path) -> None:
    (tmp_path / "go.mod").write_text("module example.com/m\n", encoding="utf-8")

    fingerprint = compute_fingerprint(tmp_path, "go1.22.0", vendor=False)

    assert fingerprint.go_mod_hash == hashlib.sha256(b"module example.com/m\n").hexdigest()
    assert fingerprint.go_sum_hash == ""
    assert fingerprint.go_version == "go1.22.0"
    assert fingerprint.vendor is False
    assert fingerprint.build_revision == build_revision()


def test_fingerprint_changes_with_go_sum(tmp_path: Path) -> None:
    (tmp_path / "go.mod").write_text("module example.com/m\n", encoding="utf-8")
    before = compute_fingerprint(tmp_path, "go1.22.0", vendor=False)
    (tmp_path / "go.sum").write_text("example.com/dep v1.0.0 h1:x=\n", encoding="utf-8")

    after = compute_fingerprint(tmp_path, "go1.22.0", vendor=False)

    assert before != after
    assert after.go_sum_hash == sha256_file(tmp_path / "go.sum")


def test_vendor_mode_hashes_vendor_manifest(tmp_path: Path) -> None:
    (tmp_path / "go.mod").write_text("module example.com/m\n", encoding="utf-8")
    (tmp_path / "vendor").mkdir()
    manifest = tmp_path / "vendor" / "modules.txt"
    manifest.write_text("# example.com/dep v1.0.0\nexample.com/dep\n", encoding="utf-8")
    before = compute_fingerprint(tmp_path, "go1.22.0", vendor=True)

    manifest.write_text("# example.com/dep v1.0.0\nexample.com/dep\nexample.com/dep/sub\n", encoding="utf-8")
    after = compute_fingerprint(tmp_path, "go1.22.0", vendor=True)

    assert before.vendor_manifest_hash != after.vendor_manifest_hash
    assert after.vendor_manifest_hash == sha256_file(manifest)
    assert before != after
    assert compute_fingerprint(tmp_path, "go1.22.0", vendor=False).vendor_manifest_hash == ""


def test_fingerprint_outside_module_has_no_hashes() -> None:
    fingerprint = compute_fingerprint(None, "go1.22.0", vendor=False)

    assert fingerprint.go_mod_hash == ""
    assert fingerprint.go_sum_hash == ""


def test_build_revision_carries_schema_checksum() -> None:
    assert build_revision().endswith(f"+schema.{SCHEMA_CHECKSUM}")
