"""Cursor over package directories backed by the search engine."""

from __future__ import annotations

from collections.abc import Iterator

from godoc_index.index.models import PackageDir
from godoc_index.index.search import SearchEngine


class PackageDirs:
    """Iterates the packages matching the current filter.

    Before any filter is applied every indexed package is listed. Applying
    the same filter twice keeps the cursor; a new filter restarts it.
    """

    def __init__(self, engine: SearchEngine) -> None:
        self._engine = engine
        self._filter: tuple[str, bool] | None = None
        self._results: list[PackageDir] | None = None
        self._offset = 0

    def _load(self) -> list[PackageDir]:
        if self._results is None:
            path, exact = self._filter or ("", False)
            self._results = [
                PackageDir(import_path=match.import_path, dir=match.dir)
                for match in self._engine.search_packages(path, exact=exact)
            ]
        return self._results

    def _apply(self, path: str, exact: bool) -> None:
        if self._filter == (path, exact):
            return
        self._filter = (path, exact)
        self._results = None
        self._offset = 0

    def filter_exact(self, path: str) -> None:
        """Restrict iteration to packages whose path ends exactly with ``path``."""
        self._apply(path, True)

    def filter_partial(self, path: str) -> None:
        """Restrict iteration to packages whose segments start with ``path``'s."""
        self._apply(path, False)

    def reset(self) -> None:
        """Rewind to the first result."""
        self._offset = 0

    def next(self) -> PackageDir | None:
        """Return the next package, or None when exhausted."""
        results = self._load()
        if self._offset >= len(results):
            return None
        self._offset += 1
        return results[self._offset - 1]

    def __iter__(self) -> Iterator[PackageDir]:
        while True:
            package = self.next()
            if package is None:
                return
            yield package
