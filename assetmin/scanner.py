"""Directory scanning with Ant-style include/exclude patterns."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from pathspec import PathSpec

DEFAULT_INCLUDES: tuple[str, ...] = ("**/*.css", "**/*.js")

# Always excluded: version-control metadata plus editor and temp droppings.
DEFAULT_EXCLUDES: tuple[str, ...] = (
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    "**/CVS",
    "**/CVS/**",
    "**/.cvsignore",
    "**/.svn",
    "**/.svn/**",
    "**/.git",
    "**/.git/**",
    "**/.gitignore",
    "**/.gitattributes",
    "**/.hg",
    "**/.hg/**",
    "**/.hgignore",
    "**/.bzr",
    "**/.bzr/**",
    "**/.bzrignore",
    "**/.DS_Store",
    "**/Thumbs.db",
    "**/*.tmp",
)


_WILDCARD_CHARS = ("*", "?")


def is_wildcard(pattern: str) -> bool:
    return any(char in pattern for char in _WILDCARD_CHARS)


def _anchor(pattern: str) -> str:
    """Turn an Ant-style pattern into a gitwildmatch line anchored at the scan root."""
    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.lstrip("/")
    if normalized.endswith("/"):
        normalized += "**"
    return "/" + normalized


def build_spec(patterns: Iterable[str]) -> PathSpec:
    """Compile Ant-style patterns (``**`` spans directories, ``*`` and ``?`` stay in one).

    Patterns are anchored at the root, so ``*.js`` only matches top-level
    files. A pattern matching a directory covers everything beneath it.
    """
    lines = [_anchor(pattern) for pattern in patterns if pattern and pattern.strip()]
    return PathSpec.from_lines("gitwildmatch", lines)


class Scanner:
    """Walks a root directory and returns the sorted relative paths that match."""

    def __init__(self, default_excludes: Sequence[str] = DEFAULT_EXCLUDES) -> None:
        self._default_excludes = list(default_excludes)

    def scan(
        self,
        root: Path | str,
        includes: Sequence[str] | None = None,
        excludes: Sequence[str] | None = None,
    ) -> List[str]:
        """Return matching files under ``root``; a missing root yields an empty list."""
        root_path = Path(root)
        if not root_path.is_dir():
            return []

        include_spec = build_spec(includes or DEFAULT_INCLUDES)
        exclude_spec = build_spec(list(excludes or ()) + self._default_excludes)

        matched = [
            rel_path
            for rel_path in _iter_files(root_path, exclude_spec)
            if include_spec.match_file(rel_path) and not exclude_spec.match_file(rel_path)
        ]
        matched.sort()
        return matched


def _iter_files(root: Path, exclude_spec: PathSpec) -> Iterator[str]:
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        # A trailing slash marks the path as a directory for the spec.
        dirnames[:] = [
            name
            for name in dirnames
            if not exclude_spec.match_file(f"{rel_dir}/{name}/" if rel_dir else f"{name}/")
        ]

        for filename in filenames:
            yield f"{rel_dir}/{filename}" if rel_dir else filename


__all__ = [
    "DEFAULT_EXCLUDES",
    "DEFAULT_INCLUDES",
    "Scanner",
    "build_spec",
    "is_wildcard",
]
