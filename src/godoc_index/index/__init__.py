"""Package-path indexing and search."""

from .dirs import PackageDirs
from .fingerprint import compute_fingerprint, sha256_file
from .models import (
    CodeRoot,
    EnvironmentFingerprint,
    Module,
    ModuleClass,
    Package,
    PackageDir,
    PackageRow,
    Partial,
    SyncMetadata,
    SyncReport,
    classify_module,
)
from .schema import SCHEMA_CHECKSUM
from .search import Completion, PackageMatch, SearchEngine, match_segments
from .segments import GLOB, query_segments
from .store import (
    IndexStoreError,
    PackageStore,
    SchemaMismatchError,
    SyncInProgressError,
    SyncSession,
)
from .syncer import Syncer
from .vendor import VendoredModule, parse_vendor_manifest, read_vendor_manifest
from .walker import DirWalker, SyncCancelledError, WalkResult

__all__ = [
    "CodeRoot",
    "Completion",
    "DirWalker",
    "EnvironmentFingerprint",
    "GLOB",
    "IndexStoreError",
    "Module",
    "ModuleClass",
    "Package",
    "PackageDir",
    "PackageDirs",
    "PackageMatch",
    "PackageRow",
    "PackageStore",
    "Partial",
    "SCHEMA_CHECKSUM",
    "SchemaMismatchError",
    "SearchEngine",
    "SyncCancelledError",
    "SyncInProgressError",
    "SyncMetadata",
    "SyncReport",
    "SyncSession",
    "Syncer",
    "VendoredModule",
    "WalkResult",
    "classify_module",
    "compute_fingerprint",
    "match_segments",
    "parse_vendor_manifest",
    "query_segments",
    "read_vendor_manifest",
    "sha256_file",
]
