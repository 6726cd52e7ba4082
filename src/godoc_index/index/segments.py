"""Import path segment helpers."""

from __future__ import annotations

GLOB = "..."


def split_import_path(import_path: str) -> list[str]:
    """Split an import path into segments; the empty path has none."""
    if not import_path:
        return []
    return import_path.split("/")


def join_import_path(*parts: str) -> str:
    """Join path pieces, ignoring empty pieces such as the stdlib module path."""
    return "/".join(part.strip("/") for part in parts if part.strip("/"))


def count_segments(import_path: str) -> int:
    """Return the number of segments in an import path."""
    return len(split_import_path(import_path))


def suffixes(import_path: str) -> list[str]:
    """Return every right-aligned suffix of an import path, shortest first.

    ``a/b/c`` yields ``["c", "b/c", "a/b/c"]``.
    """
    segments = split_import_path(import_path)
    return ["/".join(segments[len(segments) - size :]) for size in range(1, len(segments) + 1)]


def query_segments(query: str) -> tuple[str, ...]:
    """Normalize a user query into match segments.

    A leading empty segment is dropped, a glob is dropped at the start or when
    it follows another glob, and a trailing glob becomes an empty segment so it
    stands for any single segment. A query with nothing left is ``("",)``.
    """
    output: list[str] = []
    for segment in query.split("/"):
        if segment == "" and not output:
            continue
        if segment == GLOB and (not output or output[-1] == GLOB):
            continue
        output.append(segment)
    if not output:
        return ("",)
    if output[-1] == GLOB:
        output[-1] = ""
    return tuple(output)


def count_globs(segments: tuple[str, ...] | list[str]) -> int:
    """Count glob segments."""
    return sum(1 for segment in segments if segment == GLOB)


def trailing_literal_run(segments: tuple[str, ...]) -> tuple[str, ...]:
    """Return the literal segments after the last glob."""
    for index in range(len(segments) - 1, -1, -1):
        if segments[index] == GLOB:
            return segments[index + 1 :]
    return segments


def relative_import_path(module_path: str, import_path: str) -> str | None:
    """Return ``import_path`` relative to ``module_path``, or None when outside it."""
    if not module_path:
        return import_path.strip("/")
    if import_path == module_path:
        return ""
    prefix = f"{module_path}/"
    if not import_path.startswith(prefix):
        return None
    return import_path[len(prefix) :]
