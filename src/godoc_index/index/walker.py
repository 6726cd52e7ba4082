"""Breadth-first discovery of package directories under a code root."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from godoc_index.config import IndexConfig
from godoc_index.index.models import VENDOR_DIR_NAME, PackageDir
from godoc_index.index.segments import join_import_path

logger = logging.getLogger(__name__)

GO_SOURCE_SUFFIX = ".go"
GO_MOD_FILE = "go.mod"
_SKIPPED_DIR_NAMES = frozenset({"testdata", VENDOR_DIR_NAME})


class SyncCancelledError(Exception):
    """Raised when a sync or walk observes its cancellation signal."""

    def __init__(self) -> None:
        super().__init__("sync cancelled")


@dataclass(slots=True, frozen=True)
class WalkResult:
    """Packages and diagnostics from walking one code root."""

    root: PackageDir
    packages: tuple[PackageDir, ...]
    unchanged: tuple[str, ...]
    errors: tuple[str, ...]
    directories_scanned: int
    started_at_ns: int


def is_skipped_name(name: str) -> bool:
    """Return True for entries the Go tool ignores."""
    return name.startswith((".", "_")) or name in _SKIPPED_DIR_NAMES


def check_cancelled(cancel: threading.Event | None) -> None:
    """Raise SyncCancelledError when ``cancel`` is set."""
    if cancel is not None and cancel.is_set():
        raise SyncCancelledError()


class DirWalker:
    """Lists package directories one breadth-first pass at a time."""

    def __init__(self, config: IndexConfig | None = None) -> None:
        self._config = config or IndexConfig()

    def walk(
        self,
        root: PackageDir,
        on_package: Callable[[PackageDir], None] | None = None,
        *,
        since_ns: int | None = None,
        on_unchanged: Callable[[str], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> WalkResult:
        """Walk ``root`` and collect every package below it.

        Unreadable subdirectories are recorded in ``errors``; an OSError listing
        ``root`` itself propagates.
        """
        started_at_ns = time.time_ns()
        errors: list[str] = []
        unchanged: list[str] = []
        packages: list[PackageDir] = []
        scanned = [0]

        def _unchanged(import_path: str) -> None:
            unchanged.append(import_path)
            if on_unchanged is not None:
                on_unchanged(import_path)

        for package in self._iter(root, since_ns, _unchanged, cancel, errors, scanned):
            packages.append(package)
            if on_package is not None:
                on_package(package)
        return WalkResult(
            root=root,
            packages=tuple(packages),
            unchanged=tuple(unchanged),
            errors=tuple(errors),
            directories_scanned=scanned[0],
            started_at_ns=started_at_ns,
        )

    def iter_packages(
        self,
        root: PackageDir,
        *,
        since_ns: int | None = None,
        on_unchanged: Callable[[str], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[PackageDir]:
        """Yield packages below ``root`` lazily, shallowest first."""
        yield from self._iter(root, since_ns, on_unchanged, cancel, [], [0])

    def _iter(
        self,
        root: PackageDir,
        since_ns: int | None,
        on_unchanged: Callable[[str], None] | None,
        cancel: threading.Event | None,
        errors: list[str],
        scanned: list[int],
    ) -> Iterator[PackageDir]:
        trust_mtime = self._config.trust_dir_mtime and since_ns is not None
        this_pass: list[PackageDir] = [root]
        while this_pass:
            next_pass: list[PackageDir] = []
            for directory in this_pass:
                check_cancelled(cancel)
                if trust_mtime and _unchanged_since(directory.dir, since_ns):
                    if on_unchanged is not None:
                        on_unchanged(directory.import_path)
                    continue
                try:
                    with os.scandir(directory.dir) as entries:
                        ordered_entries = sorted(entries, key=lambda item: item.name)
                except OSError as error:
                    # An unlistable root says nothing about its packages.
                    if directory is root:
                        raise
                    logger.debug("skipping unreadable directory %s: %s", directory.dir, error)
                    errors.append(f"{directory.dir}: {error.strerror or error}")
                    continue
                scanned[0] += 1
                has_go_files = False
                for entry in ordered_entries:
                    if is_skipped_name(entry.name):
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        if os.path.exists(os.path.join(entry.path, GO_MOD_FILE)):
                            continue
                        next_pass.append(
                            PackageDir(
                                import_path=join_import_path(directory.import_path, entry.name),
                                dir=entry.path,
                            )
                        )
                        continue
                    if entry.name.endswith(GO_SOURCE_SUFFIX) and entry.is_file(follow_symlinks=False):
                        has_go_files = True
                if has_go_files:
                    yield directory
            this_pass = next_pass


def _unchanged_since(path: str, since_ns: int | None) -> bool:
    if since_ns is None:
        return False
    try:
        return os.stat(path).st_mtime_ns <= since_ns
    except OSError:
        return False
