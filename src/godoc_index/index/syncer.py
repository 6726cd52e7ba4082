"""Reconciles code roots on disk with the package store."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path

from godoc_index.config import IndexConfig
from godoc_index.index.models import (
    CodeRoot,
    EnvironmentFingerprint,
    Module,
    ModuleClass,
    PackageDir,
    SyncReport,
    classify_module,
    is_vendor_root,
)
from godoc_index.index.segments import relative_import_path, split_import_path
from godoc_index.index.store import PackageStore, SyncSession
from godoc_index.index.vendor import read_vendor_manifest
from godoc_index.index.walker import DirWalker, WalkResult, check_cancelled
from godoc_index.logging import utc_timestamp

logger = logging.getLogger(__name__)


def _skipped_report(reason: str) -> SyncReport:
    return SyncReport(
        synced=False,
        reason=reason,
        modules_inserted=0,
        modules_updated=0,
        modules_removed=(),
        modules_walked=(),
        packages_inserted=0,
        packages_removed=(),
        scan_errors=(),
        duration_ms=0,
        timestamp=utc_timestamp(),
    )


def _age_seconds(timestamp: str) -> float | None:
    try:
        updated_at = datetime.fromisoformat(timestamp)
    except ValueError:
        return None
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    return (datetime.now(tz=UTC) - updated_at).total_seconds()


class Syncer:
    """Brings a PackageStore in line with the current set of code roots."""

    def __init__(
        self,
        store: PackageStore,
        config: IndexConfig | None = None,
        walker: DirWalker | None = None,
    ) -> None:
        self._store = store
        self._config = config or IndexConfig()
        self._walker = walker or DirWalker(self._config)

    def needs_sync(self, fingerprint: EnvironmentFingerprint, force: bool = False) -> tuple[bool, str]:
        """Decide whether a sync pass should run, and why."""
        mode = self._config.mode
        if mode == "off":
            return False, "indexing disabled"
        if force:
            return True, "forced"
        if mode == "skip":
            return False, "sync skipped"
        if mode == "force":
            return True, "forced"
        metadata = self._store.select_metadata()
        if metadata is None:
            return True, "no previous sync"
        if metadata.fingerprint != fingerprint:
            return True, "environment changed"
        interval = self._config.resync_interval_seconds
        if interval > 0:
            age = _age_seconds(metadata.updated_at)
            if age is None or age > interval:
                return True, "resync interval elapsed"
        return False, "index up to date"

    def sync(
        self,
        code_roots: Sequence[CodeRoot],
        fingerprint: EnvironmentFingerprint,
        cancel: threading.Event | None = None,
        force: bool = False,
    ) -> SyncReport:
        """Run one sync pass if the policy calls for it."""
        needed, reason = self.needs_sync(fingerprint, force=force)
        if not needed:
            logger.debug("skipping sync: %s", reason)
            return _skipped_report(reason)

        started = time.perf_counter()
        scan_errors: list[str] = []
        walked: list[str] = []
        with self._store.begin_sync() as session:
            jobs = self._upsert_roots(session, code_roots, fingerprint, cancel)
            self._walk_modules(session, jobs, cancel, walked, scan_errors)
            check_cancelled(cancel)
            removed_modules, removed_packages = session.prune_unmarked()
            session.finish(fingerprint)
            stats = session.stats

        report = SyncReport(
            synced=True,
            reason=reason,
            modules_inserted=stats.modules_inserted,
            modules_updated=stats.modules_updated,
            modules_removed=tuple(module.import_path for module in removed_modules),
            modules_walked=tuple(walked),
            packages_inserted=stats.packages_inserted,
            packages_removed=tuple(row.import_path for row in removed_packages),
            scan_errors=tuple(scan_errors),
            duration_ms=int((time.perf_counter() - started) * 1000),
            timestamp=utc_timestamp(),
        )
        logger.info(
            "sync complete (%s): %d modules walked, +%d/-%d packages in %d ms",
            reason,
            len(report.modules_walked),
            report.packages_inserted,
            len(report.packages_removed),
            report.duration_ms,
        )
        return report

    def _upsert_roots(
        self,
        session: SyncSession,
        code_roots: Sequence[CodeRoot],
        fingerprint: EnvironmentFingerprint,
        cancel: threading.Event | None,
    ) -> list[tuple[Module, CodeRoot]]:
        jobs: list[tuple[Module, CodeRoot]] = []
        seen: set[str] = set()
        for root in code_roots:
            check_cancelled(cancel)
            if is_vendor_root(root.dir):
                self._sync_vendor_root(session, root, cancel)
                continue
            if root.import_path in seen:
                logger.debug("ignoring duplicate code root %s at %s", root.import_path, root.dir)
                continue
            seen.add(root.import_path)
            module_class, version = classify_module(root.import_path, root.dir)
            if module_class is ModuleClass.STDLIB and not version:
                version = fingerprint.go_version
            module, needs_package_sync = session.upsert_module(
                root.import_path,
                root.dir,
                module_class,
                version,
                rescan=self._config.rewalk_unversioned and not version,
            )
            if needs_package_sync:
                jobs.append((module, root))
        return jobs

    def _sync_vendor_root(
        self, session: SyncSession, root: CodeRoot, cancel: threading.Event | None
    ) -> None:
        # The vendor root is a placeholder keyed by its directory so it never
        # collides with the stdlib's empty import path.
        session.upsert_module(root.dir, root.dir, ModuleClass.VENDORED, "")
        for vendored in read_vendor_manifest(Path(root.dir)):
            check_cancelled(cancel)
            module_dir = os.path.join(root.dir, *split_import_path(vendored.import_path))
            # Package lines are re-applied on every pass; a version can keep its
            # number while its vendored package set changes.
            module, _ = session.upsert_module(
                vendored.import_path,
                module_dir,
                ModuleClass.VENDORED,
                vendored.version,
                rescan=True,
            )
            for package_path in vendored.packages:
                relative_path = relative_import_path(vendored.import_path, package_path)
                if relative_path is None:
                    logger.warning(
                        "vendored package %s is outside module %s", package_path, vendored.import_path
                    )
                    continue
                session.upsert_package(module.id, relative_path)
            session.mark_module_synced(module.id, time.time_ns())

    def _walk_modules(
        self,
        session: SyncSession,
        jobs: list[tuple[Module, CodeRoot]],
        cancel: threading.Event | None,
        walked: list[str],
        scan_errors: list[str],
    ) -> None:
        if not jobs:
            return
        workers = max(1, min(self._config.sync_workers, len(jobs)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="godoc-index-walk") as pool:
            futures: list[Future[WalkResult]] = [
                pool.submit(
                    self._walker.walk,
                    PackageDir(import_path=root.import_path, dir=root.dir),
                    since_ns=module.synced_at_ns,
                    cancel=cancel,
                )
                for module, root in jobs
            ]
            # Writes stay on this thread, in code-root order.
            for (module, root), future in zip(jobs, futures):
                try:
                    result = future.result()
                except OSError as error:
                    logger.warning("failed to walk %s: %s", root.dir, error)
                    scan_errors.append(f"{root.dir}: {error}")
                    session.mark_module_stale(module.id)
                    continue
                check_cancelled(cancel)
                self._apply_walk(session, module, result)
                walked.append(module.import_path)
                scan_errors.extend(result.errors)

    def _apply_walk(self, session: SyncSession, module: Module, result: WalkResult) -> None:
        for import_path in result.unchanged:
            relative_path = relative_import_path(module.import_path, import_path)
            if relative_path is not None:
                session.keep_packages(module.id, relative_path)
        for package in result.packages:
            relative_path = relative_import_path(module.import_path, package.import_path)
            if relative_path is None:
                continue
            session.upsert_package(module.id, relative_path)
        session.mark_module_synced(module.id, result.started_at_ns)
