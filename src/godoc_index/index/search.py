"""Right-anchored, glob-aware package path search over the partial index."""

from __future__ import annotations

import bisect
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from godoc_index.index.models import PackageRow
from godoc_index.index.segments import (
    GLOB,
    count_segments,
    query_segments,
    split_import_path,
    suffixes,
    trailing_literal_run,
)

if TYPE_CHECKING:
    from godoc_index.index.store import PackageStore

INTERNAL_SEGMENT = "internal"
# Sorts after every character a path segment can contain.
_PREFIX_UPPER_BOUND = "\U0010ffff"


@dataclass(slots=True, frozen=True)
class PackageMatch:
    """A package that matched a query, with the matched tail of its path."""

    import_path: str
    dir: str
    module_path: str
    match: str


@dataclass(slots=True, frozen=True)
class Completion:
    """A completion candidate offered for a partially typed path."""

    value: str
    import_path: str
    dir: str


def match_segments(
    segments: Sequence[str], query: Sequence[str], exact: bool = False
) -> int | None:
    """Match ``query`` against the right end of ``segments``.

    Returns the index of the first matched segment, or None. A glob absorbs
    zero or more segments, fewest first. In prefix mode an ``internal``
    segment left of the matched region rejects that alignment.
    """
    segments = tuple(segments)
    query = tuple(query)
    memo: dict[tuple[int, int], int | None] = {}

    def _match(query_end: int, segment_end: int) -> int | None:
        key = (query_end, segment_end)
        if key in memo:
            return memo[key]
        result: int | None = None
        if query_end == 0:
            if exact or INTERNAL_SEGMENT not in segments[:segment_end]:
                result = segment_end
        elif query[query_end - 1] == GLOB:
            for absorbed in range(segment_end + 1):
                result = _match(query_end - 1, segment_end - absorbed)
                if result is not None:
                    break
        elif segment_end > 0:
            wanted = query[query_end - 1]
            segment = segments[segment_end - 1]
            if segment == wanted or (not exact and segment.startswith(wanted)):
                result = _match(query_end - 1, segment_end - 1)
        memo[key] = result
        return result

    if not query:
        return None
    return _match(len(query), len(segments))


def _order_key(module_path: str, import_path: str, match: str) -> tuple:
    tail = split_import_path(match)
    full = split_import_path(import_path)
    return (module_path, len(tail), tail, len(full), full)


class SearchEngine:
    """Answers path queries from a PackageStore's partial index."""

    def __init__(self, store: PackageStore) -> None:
        self._store = store

    def _candidates(self, segments: tuple[str, ...], exact: bool) -> list[PackageRow]:
        run = trailing_literal_run(segments)
        if exact:
            return self._store.candidates(len(run), "/".join(run))
        return self._store.candidates(len(run), run[0], run[0] + _PREFIX_UPPER_BOUND)

    def search_packages(
        self, query: str, exact: bool = False, limit: int | None = None
    ) -> list[PackageMatch]:
        """Return matching packages in resolution order."""
        segments = query_segments(query)
        by_module: dict[str, list[tuple[tuple, PackageMatch]]] = {}
        for row in self._candidates(segments, exact):
            import_path = row.import_path
            parts = split_import_path(import_path)
            start = match_segments(parts, segments, exact=exact)
            if start is None:
                continue
            matched = PackageMatch(
                import_path=import_path,
                dir=row.dir,
                module_path=row.module_path,
                match="/".join(parts[start:]),
            )
            entries = by_module.setdefault(row.module_path, [])
            key = _order_key(row.module_path, import_path, matched.match)
            position = bisect.bisect_left(entries, key, key=lambda entry: entry[0])
            if position < len(entries) and entries[position][0] == key:
                continue
            entries.insert(position, (key, matched))

        output: list[PackageMatch] = []
        seen: set[str] = set()
        for module_path in sorted(by_module):
            for _, matched in by_module[module_path]:
                if matched.import_path in seen:
                    continue
                seen.add(matched.import_path)
                output.append(matched)
                if limit is not None and len(output) >= limit:
                    return output
        return output

    def search(self, query: str, exact: bool = False, limit: int | None = None) -> list[str]:
        """Return matching import paths in resolution order."""
        return [match.import_path for match in self.search_packages(query, exact=exact, limit=limit)]

    def complete(
        self, partial: str, short: bool = False, limit: int | None = None
    ) -> list[Completion]:
        """Offer completions for a partially typed path.

        With ``short`` each package is offered as the shortest suffix of its
        import path that no other indexed package shares, unless the typed
        match is already longer.
        """
        matches = self.search_packages(partial, exact=False, limit=limit)
        if not short:
            return [Completion(match.import_path, match.import_path, match.dir) for match in matches]

        claimed: set[str] = set()
        output: list[Completion] = []
        for match in matches:
            value = match.import_path
            for suffix in suffixes(match.import_path):
                if suffix in claimed:
                    continue
                if self._store.count_partial_owners(suffix) != 1:
                    continue
                value = suffix
                break
            if count_segments(value) < count_segments(match.match):
                value = match.match
            claimed.add(value)
            output.append(Completion(value, match.import_path, match.dir))
        return output
