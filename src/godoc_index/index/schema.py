"""SQLite schema for the package-path index."""

from __future__ import annotations

import zlib

# "gdix"
APPLICATION_ID = 0x67646978

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
CREATE TABLE metadata (
  rowid          INTEGER PRIMARY KEY CHECK (rowid = 1),
  created_at     TEXT    NOT NULL,
  updated_at     TEXT    NOT NULL,
  build_revision TEXT    NOT NULL,
  go_version     TEXT    NOT NULL,
  go_mod_hash    TEXT    NOT NULL,
  go_sum_hash    TEXT    NOT NULL,
  vendor         INTEGER NOT NULL,
  vendor_hash    TEXT    NOT NULL DEFAULT ''
)
""",
    """
CREATE TABLE module (
  rowid        INTEGER PRIMARY KEY,
  import_path  TEXT    NOT NULL UNIQUE,
  dir          TEXT    NOT NULL,
  class        INTEGER NOT NULL,
  version      TEXT    NOT NULL DEFAULT '',
  generation   INTEGER NOT NULL,
  stale        INTEGER NOT NULL DEFAULT 0,
  synced_at_ns INTEGER
)
""",
    """
CREATE TABLE package (
  rowid         INTEGER PRIMARY KEY,
  module_id     INTEGER NOT NULL REFERENCES module(rowid) ON DELETE CASCADE,
  relative_path TEXT    NOT NULL,
  num_parts     INTEGER NOT NULL,
  generation    INTEGER NOT NULL,
  UNIQUE (module_id, relative_path)
)
""",
    """
CREATE TABLE partial (
  rowid      INTEGER PRIMARY KEY,
  package_id INTEGER NOT NULL REFERENCES package(rowid) ON DELETE CASCADE,
  parts      TEXT    NOT NULL,
  num_parts  INTEGER NOT NULL,
  UNIQUE (package_id, num_parts)
)
""",
    "CREATE INDEX partial_num_parts_parts ON partial(num_parts, parts)",
    "CREATE INDEX package_module_generation ON package(module_id, generation)",
    "CREATE INDEX module_generation ON module(generation)",
)


def _minify(statement: str) -> str:
    lines = (line.strip() for line in statement.splitlines())
    return "\n".join(line for line in lines if line)


def _signed32(value: int) -> int:
    return value - (1 << 32) if value >= (1 << 31) else value


# PRAGMA user_version is a signed 32-bit integer.
SCHEMA_CHECKSUM = _signed32(
    zlib.crc32("\n".join(_minify(stmt) for stmt in SCHEMA_STATEMENTS).encode("utf-8"))
)
