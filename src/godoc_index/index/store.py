"""Persistent module/package/partial store backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from godoc_index.index.models import (
    EnvironmentFingerprint,
    Module,
    ModuleClass,
    Package,
    PackageRow,
    Partial,
    SyncMetadata,
)
from godoc_index.index.schema import APPLICATION_ID, SCHEMA_CHECKSUM, SCHEMA_STATEMENTS
from godoc_index.index.search import SearchEngine
from godoc_index.index.segments import count_segments, join_import_path, suffixes
from godoc_index.logging import utc_timestamp

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
_SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")


class IndexStoreError(Exception):
    """Raised when the backing store cannot be opened or written."""


class SchemaMismatchError(IndexStoreError):
    """Raised when a stored index was written by an incompatible schema."""

    def __init__(self, found: int, expected: int) -> None:
        super().__init__(f"index schema checksum {found} does not match expected {expected}")
        self.found = found
        self.expected = expected


class SyncInProgressError(IndexStoreError):
    """Raised when a second sync session is started against the same store."""

    def __init__(self, detail: str = "sync already in progress") -> None:
        super().__init__(detail)


@dataclass(slots=True)
class SessionStats:
    """Mutation counters for one sync session."""

    modules_inserted: int = 0
    modules_updated: int = 0
    packages_inserted: int = 0


class PackageStore:
    """Module, package and partial tables with all-or-nothing sync sessions."""

    def __init__(self, path: str, conn: sqlite3.Connection, reader: sqlite3.Connection) -> None:
        self._path = path
        self._conn = conn
        self._reader = reader
        self._session_lock = threading.Lock()
        self._reader_lock = threading.RLock()
        self._session_thread: int | None = None

    @classmethod
    def open(cls, path: str | Path, busy_timeout: float = 1.0) -> PackageStore:
        """Open or create a store; raise on an incompatible or corrupt file."""
        db_path = str(path)
        if db_path != MEMORY_PATH:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                db_path, timeout=busy_timeout, isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as error:
            raise IndexStoreError(f"failed to open index database {db_path}: {error}") from error
        try:
            _initialize(conn, in_memory=db_path == MEMORY_PATH)
            reader = conn
            if db_path != MEMORY_PATH:
                reader = sqlite3.connect(
                    db_path, timeout=busy_timeout, isolation_level=None, check_same_thread=False
                )
                reader.execute("PRAGMA query_only = ON")
        except IndexStoreError:
            conn.close()
            raise
        except sqlite3.Error as error:
            conn.close()
            raise IndexStoreError(f"failed to initialize index database {db_path}: {error}") from error
        return cls(db_path, conn, reader)

    @classmethod
    def open_or_rebuild(cls, path: str | Path, busy_timeout: float = 1.0) -> PackageStore:
        """Open a store, moving an unusable file aside and starting fresh."""
        try:
            return cls.open(path, busy_timeout=busy_timeout)
        except IndexStoreError as error:
            db_path = Path(path)
            if str(path) == MEMORY_PATH or not db_path.exists():
                raise
            aside = db_path.with_name(db_path.name + ".old")
            logger.warning("index at %s is unusable (%s); rebuilding, old copy at %s", db_path, error, aside)
            db_path.replace(aside)
            for suffix in _SIDE_FILE_SUFFIXES:
                side = db_path.with_name(db_path.name + suffix)
                if side.exists():
                    side.unlink()
            return cls.open(path, busy_timeout=busy_timeout)

    @property
    def path(self) -> str:
        """Return the database path."""
        return self._path

    def close(self) -> None:
        """Close all connections."""
        if self._reader is not self._conn:
            self._reader.close()
        self._conn.close()

    def begin_sync(self) -> SyncSession:
        """Start the single writable sync session."""
        if not self._session_lock.acquire(blocking=False):
            raise SyncInProgressError()
        self._session_thread = threading.get_ident()
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as error:
            self._release_session()
            if "locked" in str(error) or "busy" in str(error):
                raise SyncInProgressError(f"sync already in progress: {error}") from error
            raise IndexStoreError(f"failed to begin sync: {error}") from error
        except BaseException:
            self._release_session()
            raise
        try:
            generation = self._next_generation()
        except sqlite3.Error as error:
            self._conn.execute("ROLLBACK")
            self._release_session()
            raise IndexStoreError(f"failed to begin sync: {error}") from error
        return SyncSession(self, self._conn, generation)

    def _next_generation(self) -> int:
        row = self._conn.execute(
            "SELECT MAX(COALESCE((SELECT MAX(generation) FROM module), 0),"
            " COALESCE((SELECT MAX(generation) FROM package), 0))"
        ).fetchone()
        return int(row[0]) + 1

    def _release_session(self) -> None:
        self._session_thread = None
        self._session_lock.release()

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        if self._reader is self._conn and self._session_thread not in (None, threading.get_ident()):
            # In-memory stores share one connection; wait for the session to end.
            with self._session_lock, self._reader_lock:
                yield self._reader
            return
        with self._reader_lock:
            yield self._reader

    def _query(self, sql: str, params: tuple[object, ...] = ()) -> list[tuple]:
        try:
            with self._reading() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as error:
            raise IndexStoreError(f"index query failed: {error}") from error

    def select_metadata(self) -> SyncMetadata | None:
        """Return the committed sync metadata, if any sync has completed."""
        rows = self._query(
            "SELECT created_at, updated_at, build_revision, go_version, go_mod_hash,"
            " go_sum_hash, vendor, vendor_hash FROM metadata WHERE rowid = 1"
        )
        if not rows:
            return None
        (
            created_at,
            updated_at,
            build_revision,
            go_version,
            go_mod_hash,
            go_sum_hash,
            vendor,
            vendor_hash,
        ) = rows[0]
        return SyncMetadata(
            created_at=created_at,
            updated_at=updated_at,
            fingerprint=EnvironmentFingerprint(
                build_revision=build_revision,
                go_version=go_version,
                go_mod_hash=go_mod_hash,
                go_sum_hash=go_sum_hash,
                vendor=bool(vendor),
                vendor_manifest_hash=vendor_hash,
            ),
        )

    def counts(self) -> dict[str, int]:
        """Return row counts per table.

        Vendor-root placeholder modules (keyed by their directory, owning no
        packages) are not counted as modules.
        """
        rows = self._query(
            "SELECT (SELECT COUNT(*) FROM module WHERE NOT (class = ? AND import_path = dir)),"
            " (SELECT COUNT(*) FROM package),"
            " (SELECT COUNT(*) FROM partial)",
            (int(ModuleClass.VENDORED),),
        )
        modules, packages, partials = rows[0]
        return {"modules": modules, "packages": packages, "partials": partials}

    def modules(self) -> list[Module]:
        """Return every module ordered by import path."""
        rows = self._query(
            "SELECT rowid, import_path, dir, class, version, synced_at_ns FROM module"
            " ORDER BY import_path"
        )
        return [_module_from_row(row) for row in rows]

    def module_packages(self, module_id: int) -> list[Package]:
        """Return a module's packages ordered by relative path."""
        rows = self._query(
            "SELECT rowid, module_id, relative_path, num_parts FROM package"
            " WHERE module_id = ? ORDER BY relative_path",
            (module_id,),
        )
        return [Package(id=row[0], module_id=row[1], relative_path=row[2], num_parts=row[3]) for row in rows]

    def package_partials(self, package_id: int) -> list[Partial]:
        """Return a package's partials, shortest first."""
        rows = self._query(
            "SELECT package_id, parts, num_parts FROM partial WHERE package_id = ? ORDER BY num_parts",
            (package_id,),
        )
        return [Partial(package_id=row[0], parts=row[1], num_parts=row[2]) for row in rows]

    def all_packages(self) -> list[PackageRow]:
        """Return every package joined with its module."""
        rows = self._query(
            "SELECT p.rowid, m.import_path, m.dir, p.relative_path FROM package AS p"
            " JOIN module AS m ON m.rowid = p.module_id"
            " ORDER BY m.import_path, p.num_parts, p.relative_path"
        )
        return [PackageRow(*row) for row in rows]

    def candidates(self, num_parts: int, low: str, high: str | None = None) -> list[PackageRow]:
        """Return packages owning a partial of ``num_parts`` segments.

        With ``high`` the partial's parts must lie in ``[low, high)``; without it
        they must equal ``low``.
        """
        select = (
            "SELECT DISTINCT p.rowid, m.import_path, m.dir, p.relative_path FROM partial AS pt"
            " JOIN package AS p ON p.rowid = pt.package_id"
            " JOIN module AS m ON m.rowid = p.module_id"
            " WHERE pt.num_parts = ? AND "
        )
        if high is None:
            rows = self._query(select + "pt.parts = ?", (num_parts, low))
        else:
            rows = self._query(select + "pt.parts >= ? AND pt.parts < ?", (num_parts, low, high))
        return [PackageRow(*row) for row in rows]

    def count_partial_owners(self, parts: str) -> int:
        """Return how many packages have ``parts`` as a right-aligned suffix."""
        rows = self._query(
            "SELECT COUNT(*) FROM partial WHERE num_parts = ? AND parts = ?",
            (count_segments(parts), parts),
        )
        return int(rows[0][0])

    def search(self, query: str, exact: bool = False) -> list[str]:
        """Return matching import paths in resolution order."""
        return SearchEngine(self).search(query, exact=exact)


class SyncSession:
    """One atomic reconciliation pass; nothing is visible until ``finish``."""

    def __init__(self, store: PackageStore, conn: sqlite3.Connection, generation: int) -> None:
        self._store = store
        self._conn = conn
        self._generation = generation
        self._module_paths: dict[int, str] = {}
        self._open = True
        self.stats = SessionStats()

    @property
    def generation(self) -> int:
        """Return the mark stamped on every row touched by this session."""
        return self._generation

    def __enter__(self) -> SyncSession:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if self._open:
            self.abort()

    def _execute(self, sql: str, params: tuple[object, ...] = ()) -> sqlite3.Cursor:
        if not self._open:
            raise IndexStoreError("sync session is closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as error:
            raise IndexStoreError(f"index write failed: {error}") from error

    def upsert_module(
        self,
        import_path: str,
        dir: str,
        module_class: ModuleClass,
        version: str,
        *,
        rescan: bool = False,
    ) -> tuple[Module, bool]:
        """Insert or update a module and report whether its packages need a walk.

        An unchanged module has its packages marked as live and reports False,
        unless ``rescan`` asks for a walk regardless. ``synced_at_ns`` on the
        returned module is only set when the previous walk still describes
        the module's directory.
        """
        row = self._execute(
            "SELECT rowid, dir, class, version, stale, synced_at_ns FROM module WHERE import_path = ?",
            (import_path,),
        ).fetchone()
        if row is None:
            cursor = self._execute(
                "INSERT INTO module (import_path, dir, class, version, generation) VALUES (?, ?, ?, ?, ?)",
                (import_path, dir, int(module_class), version, self._generation),
            )
            module_id = int(cursor.lastrowid)
            self._module_paths[module_id] = import_path
            self.stats.modules_inserted += 1
            module = Module(module_id, import_path, dir, module_class, version, None)
            return module, True

        module_id, old_dir, old_class, old_version, stale, synced_at_ns = row
        self._module_paths[module_id] = import_path
        changed = old_dir != dir or old_class != int(module_class) or old_version != version
        if changed:
            self._execute(
                "UPDATE module SET dir = ?, class = ?, version = ?, generation = ?, synced_at_ns = NULL"
                " WHERE rowid = ?",
                (dir, int(module_class), version, self._generation, module_id),
            )
            self.stats.modules_updated += 1
        else:
            self._execute(
                "UPDATE module SET generation = ? WHERE rowid = ?", (self._generation, module_id)
            )
        if changed or stale:
            synced_at_ns = None
        needs_package_sync = changed or bool(stale) or rescan
        if not needs_package_sync:
            self.keep_packages(module_id)
        module = Module(module_id, import_path, dir, module_class, version, synced_at_ns)
        return module, needs_package_sync

    def upsert_package(self, module_id: int, relative_path: str) -> Package:
        """Insert a package with its partials, or mark an existing one."""
        relative_path = relative_path.strip("/")
        row = self._execute(
            "SELECT rowid, num_parts FROM package WHERE module_id = ? AND relative_path = ?",
            (module_id, relative_path),
        ).fetchone()
        if row is not None:
            self._execute(
                "UPDATE package SET generation = ? WHERE rowid = ?", (self._generation, row[0])
            )
            return Package(id=row[0], module_id=module_id, relative_path=relative_path, num_parts=row[1])

        num_parts = count_segments(relative_path)
        cursor = self._execute(
            "INSERT INTO package (module_id, relative_path, num_parts, generation) VALUES (?, ?, ?, ?)",
            (module_id, relative_path, num_parts, self._generation),
        )
        package_id = int(cursor.lastrowid)
        import_path = join_import_path(self._module_path(module_id), relative_path)
        for parts in suffixes(import_path):
            self._execute(
                "INSERT INTO partial (package_id, parts, num_parts) VALUES (?, ?, ?)",
                (package_id, parts, count_segments(parts)),
            )
        self.stats.packages_inserted += 1
        return Package(id=package_id, module_id=module_id, relative_path=relative_path, num_parts=num_parts)

    def _module_path(self, module_id: int) -> str:
        cached = self._module_paths.get(module_id)
        if cached is not None:
            return cached
        row = self._execute("SELECT import_path FROM module WHERE rowid = ?", (module_id,)).fetchone()
        if row is None:
            raise IndexStoreError(f"unknown module id {module_id}")
        self._module_paths[module_id] = row[0]
        return row[0]

    def keep_packages(self, module_id: int, prefix: str = "") -> None:
        """Mark a module's packages at or below ``prefix`` as live."""
        prefix = prefix.strip("/")
        if not prefix:
            self._execute(
                "UPDATE package SET generation = ? WHERE module_id = ?", (self._generation, module_id)
            )
            return
        # "0" is the character after "/", so the range covers "<prefix>/...".
        self._execute(
            "UPDATE package SET generation = ? WHERE module_id = ? AND"
            " (relative_path = ? OR (relative_path >= ? AND relative_path < ?))",
            (self._generation, module_id, prefix, f"{prefix}/", f"{prefix}0"),
        )

    def mark_module_stale(self, module_id: int) -> None:
        """Keep a module's packages and force a walk on the next sync."""
        self.keep_packages(module_id)
        self._execute("UPDATE module SET stale = 1 WHERE rowid = ?", (module_id,))

    def mark_module_synced(self, module_id: int, synced_at_ns: int) -> None:
        """Record when a module's packages were last walked."""
        self._execute(
            "UPDATE module SET stale = 0, synced_at_ns = ? WHERE rowid = ?", (synced_at_ns, module_id)
        )

    def prune_unmarked(self) -> tuple[list[Module], list[PackageRow]]:
        """Delete every module and package this session did not touch."""
        package_rows = self._execute(
            "SELECT p.rowid, m.import_path, m.dir, p.relative_path FROM package AS p"
            " JOIN module AS m ON m.rowid = p.module_id WHERE p.generation < ?"
            " ORDER BY m.import_path, p.num_parts, p.relative_path",
            (self._generation,),
        ).fetchall()
        module_rows = self._execute(
            "SELECT rowid, import_path, dir, class, version, synced_at_ns FROM module"
            " WHERE generation < ? ORDER BY import_path",
            (self._generation,),
        ).fetchall()
        self._execute("DELETE FROM package WHERE generation < ?", (self._generation,))
        self._execute("DELETE FROM module WHERE generation < ?", (self._generation,))
        return [_module_from_row(row) for row in module_rows], [PackageRow(*row) for row in package_rows]

    def finish(self, fingerprint: EnvironmentFingerprint) -> SyncMetadata:
        """Write sync metadata and commit the session."""
        now = utc_timestamp()
        self._execute(
            "INSERT INTO metadata (rowid, created_at, updated_at, build_revision, go_version,"
            " go_mod_hash, go_sum_hash, vendor, vendor_hash) VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(rowid) DO UPDATE SET updated_at = excluded.updated_at,"
            " build_revision = excluded.build_revision, go_version = excluded.go_version,"
            " go_mod_hash = excluded.go_mod_hash, go_sum_hash = excluded.go_sum_hash,"
            " vendor = excluded.vendor, vendor_hash = excluded.vendor_hash",
            (
                now,
                now,
                fingerprint.build_revision,
                fingerprint.go_version,
                fingerprint.go_mod_hash,
                fingerprint.go_sum_hash,
                int(fingerprint.vendor),
                fingerprint.vendor_manifest_hash,
            ),
        )
        created_at = self._execute("SELECT created_at FROM metadata WHERE rowid = 1").fetchone()[0]
        try:
            self._execute("COMMIT")
        except IndexStoreError:
            self.abort()
            raise
        self._close()
        return SyncMetadata(created_at=created_at, updated_at=now, fingerprint=fingerprint)

    def abort(self) -> None:
        """Roll back every change made in this session."""
        if not self._open:
            return
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error as error:
            logger.warning("failed to roll back sync session: %s", error)
        finally:
            self._close()

    def _close(self) -> None:
        self._open = False
        self._store._release_session()


def _module_from_row(row: tuple) -> Module:
    module_id, import_path, dir, module_class, version, synced_at_ns = row
    return Module(module_id, import_path, dir, ModuleClass(module_class), version, synced_at_ns)


def _initialize(conn: sqlite3.Connection, in_memory: bool) -> None:
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        app_id = conn.execute("PRAGMA application_id").fetchone()[0]
        user_version = conn.execute("PRAGMA user_version").fetchone()[0]
        schema_version = conn.execute("PRAGMA schema_version").fetchone()[0]
    except sqlite3.DatabaseError as error:
        raise IndexStoreError(f"index database is corrupt: {error}") from error

    if app_id == 0 and user_version == 0 and schema_version == 0:
        _apply_schema(conn, in_memory)
        return
    if app_id != APPLICATION_ID:
        raise IndexStoreError(f"unrecognized database application id {app_id}")
    if user_version != SCHEMA_CHECKSUM:
        raise SchemaMismatchError(found=user_version, expected=SCHEMA_CHECKSUM)


def _apply_schema(conn: sqlite3.Connection, in_memory: bool) -> None:
    logger.debug("applying index schema %d", SCHEMA_CHECKSUM)
    if not in_memory:
        # journal_mode is persistent and must be set outside a transaction.
        conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("BEGIN IMMEDIATE")
    try:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)
        conn.execute(f"PRAGMA application_id = {APPLICATION_ID}")
        conn.execute(f"PRAGMA user_version = {SCHEMA_CHECKSUM}")
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
