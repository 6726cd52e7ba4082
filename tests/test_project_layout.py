from __future__ import annotations

from pathlib import Path


def test_required_package_paths_exist() -> None:
    root = Path(__file__).resolve().parents[1]
    required = [
        "src/godoc_index/server.py",
        "src/godoc_index/config.py",
        "src/godoc_index/coderoots.py",
        "src/godoc_index/tools/__init__.py",
        "src/godoc_index/index/__init__.py",
        "src/godoc_index/logging/__init__.py",
    ]
    for rel in required:
        assert (root / rel).exists(), rel
