"""Core data models shared across assetmin components."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"


def _is_readable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


@dataclass(frozen=True)
class SourceFile:
    """A discovered asset, addressed relative to its source and destination roots."""

    source_root: Path
    dest_root: Path
    relative_path_without_extension: str
    extension: str
    prefer_destination_as_source: bool = False

    @classmethod
    def from_name(
        cls,
        source_root: Path,
        dest_root: Path,
        name: str,
        prefer_destination_as_source: bool = False,
    ) -> "SourceFile":
        """Split ``name`` on its last dot; a leading dot never starts an extension."""
        if name is None or not name.strip():
            raise ValueError("name must not be empty")
        sep = name.rfind(".")
        if sep > 0:
            stem, extension = name[:sep], name[sep:]
        else:
            stem, extension = name, ""
        return cls(
            source_root=Path(source_root),
            dest_root=Path(dest_root),
            relative_path_without_extension=stem,
            extension=extension,
            prefer_destination_as_source=prefer_destination_as_source,
        )

    @property
    def relative_path(self) -> str:
        return self.relative_path_without_extension + self.extension

    def to_source_path(
        self, is_readable: Callable[[Path], bool] = _is_readable_file
    ) -> Path:
        """Return the file to read, preferring an existing destination copy when asked."""
        if self.prefer_destination_as_source:
            candidate = self.dest_root / self.relative_path
            if is_readable(candidate):
                return candidate
        return self.source_root / self.relative_path

    def to_destination_path(self, suffix: str) -> Path:
        if suffix is None:
            raise ValueError("suffix must not be None")
        return self.dest_root / f"{self.relative_path_without_extension}{suffix}{self.extension}"

    def short_name(self, is_readable: Callable[[Path], bool] = _is_readable_file) -> str:
        """Display name used when a diagnostic carries no source name."""
        return "..." + self.to_source_path(is_readable).name


@dataclass(frozen=True)
class Diagnostic:
    """A warning or error raised by a transform for a single input."""

    severity: str
    message: str
    line: int = 0
    column: int = 0
    source_name: Optional[str] = None
    line_source: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR


def warning(message: str, line: int = 0, column: int = 0, **extra: Optional[str]) -> Diagnostic:
    return Diagnostic(SEVERITY_WARNING, message, line, column, **extra)


def error(message: str, line: int = 0, column: int = 0, **extra: Optional[str]) -> Diagnostic:
    return Diagnostic(SEVERITY_ERROR, message, line, column, **extra)
