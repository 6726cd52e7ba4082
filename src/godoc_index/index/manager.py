"""Index lifecycle: store location, sync policy and query entry points."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from godoc_index.coderoots import GoEnvironment, Runner, ToolchainError, discover_environment, run_command
from godoc_index.config import ServerConfig
from godoc_index.index.dirs import PackageDirs
from godoc_index.index.fingerprint import compute_fingerprint
from godoc_index.index.models import CodeRoot, EnvironmentFingerprint, SyncReport
from godoc_index.index.schema import SCHEMA_CHECKSUM
from godoc_index.index.search import Completion, PackageMatch, SearchEngine
from godoc_index.index.store import IndexStoreError, PackageStore
from godoc_index.index.syncer import Syncer
from godoc_index.logging import JsonlAuditLogger, SyncEvent

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "index.sqlite3"
SYNC_LOG_FILE_NAME = "sync.jsonl"


@dataclass(slots=True, frozen=True)
class IndexStatus:
    """Current index status snapshot."""

    index_status: str
    schema_checksum: int
    created_at: str | None
    last_sync_timestamp: str | None
    module_count: int
    package_count: int
    partial_count: int
    vendor: bool | None
    go_version: str | None


class IndexManager:
    """Owns the package store for one main module."""

    def __init__(
        self,
        config: ServerConfig,
        runner: Runner = run_command,
        store_path: str | Path | None = None,
    ) -> None:
        self._config = config
        self._runner = runner
        self._data_dir = config.data_dir
        self._store = PackageStore.open_or_rebuild(store_path or self._data_dir / INDEX_FILE_NAME)
        self._syncer = Syncer(self._store, config.index)
        self._engine = SearchEngine(self._store)
        self._sync_log = JsonlAuditLogger(self._data_dir / SYNC_LOG_FILE_NAME)
        self._cancel = threading.Event()

    @property
    def store(self) -> PackageStore:
        """Return the underlying store."""
        return self._store

    @property
    def sync_log(self) -> JsonlAuditLogger:
        """Return the sync event log."""
        return self._sync_log

    def cancel(self) -> None:
        """Ask an in-flight sync to stop and roll back."""
        self._cancel.set()

    def discover(self) -> tuple[list[CodeRoot], EnvironmentFingerprint]:
        """Ask the toolchain for code roots and the current fingerprint."""
        environment: GoEnvironment = discover_environment(self._config, self._runner)
        fingerprint = compute_fingerprint(
            environment.main_module_dir, environment.goversion, environment.vendor
        )
        return list(environment.code_roots), fingerprint

    def sync(
        self,
        code_roots: Sequence[CodeRoot] | None = None,
        fingerprint: EnvironmentFingerprint | None = None,
        force: bool = False,
    ) -> SyncReport:
        """Run the sync policy and log the outcome."""
        if code_roots is None or fingerprint is None:
            discovered_roots, discovered_fingerprint = self.discover()
            code_roots = discovered_roots if code_roots is None else code_roots
            fingerprint = discovered_fingerprint if fingerprint is None else fingerprint
        self._cancel.clear()
        report = self._syncer.sync(code_roots, fingerprint, cancel=self._cancel, force=force)
        if report.synced:
            self._sync_log.append(
                SyncEvent(
                    timestamp=report.timestamp,
                    synced=report.synced,
                    reason=report.reason,
                    modules_inserted=report.modules_inserted,
                    modules_updated=report.modules_updated,
                    modules_removed=len(report.modules_removed),
                    modules_walked=len(report.modules_walked),
                    packages_inserted=report.packages_inserted,
                    packages_removed=len(report.packages_removed),
                    scan_errors=list(report.scan_errors),
                    duration_ms=report.duration_ms,
                )
            )
        return report

    def ensure_synced(
        self, code_roots: Sequence[CodeRoot] | None = None, force: bool = False
    ) -> SyncReport | None:
        """Sync if needed; fall back to the last committed index on failure."""
        try:
            return self.sync(code_roots=code_roots, force=force)
        except (ToolchainError, IndexStoreError) as error:
            logger.warning("index sync failed, serving last committed index: %s", error)
            return None

    def status(self) -> IndexStatus:
        """Return status derived from stored metadata."""
        counts = self._store.counts()
        metadata = self._store.select_metadata()
        if metadata is None:
            return IndexStatus(
                index_status="not_indexed",
                schema_checksum=SCHEMA_CHECKSUM,
                created_at=None,
                last_sync_timestamp=None,
                module_count=counts["modules"],
                package_count=counts["packages"],
                partial_count=counts["partials"],
                vendor=None,
                go_version=None,
            )
        return IndexStatus(
            index_status="ready",
            schema_checksum=SCHEMA_CHECKSUM,
            created_at=metadata.created_at,
            last_sync_timestamp=metadata.updated_at,
            module_count=counts["modules"],
            package_count=counts["packages"],
            partial_count=counts["partials"],
            vendor=metadata.fingerprint.vendor,
            go_version=metadata.fingerprint.go_version,
        )

    def search(self, query: str, exact: bool = False, limit: int | None = None) -> list[PackageMatch]:
        """Return packages matching ``query`` in resolution order."""
        return self._engine.search_packages(query, exact=exact, limit=limit)

    def resolve(self, path: str) -> PackageMatch | None:
        """Return the first package whose import path ends exactly with ``path``."""
        matches = self._engine.search_packages(path, exact=True, limit=1)
        return matches[0] if matches else None

    def complete(self, partial: str, short: bool = False, limit: int | None = None) -> list[Completion]:
        """Return completion candidates for a partially typed path."""
        return self._engine.complete(partial, short=short, limit=limit)

    def package_dirs(self) -> PackageDirs:
        """Return a fresh directory cursor over the index."""
        return PackageDirs(self._engine)

    def close(self) -> None:
        """Release the store."""
        self._store.close()
