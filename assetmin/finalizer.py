"""Committing transform output to its destination."""

from __future__ import annotations

import gzip
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .logging import get_logger

TEMP_SUFFIX = ".tmp"
GZIP_SUFFIX = ".gz"
PROCESSED_EXTENSIONS: tuple[str, ...] = (".js", ".css", GZIP_SUFFIX)

SKIP_ALREADY_MINIFIED = "already minified"
SKIP_EXISTS_IN_SOURCE = "compressed file already exists in source directory"
SKIP_UP_TO_DATE = "output file is newer than input"


class FinalizationError(RuntimeError):
    """Raised when a transformed artifact cannot be committed."""


@dataclass(frozen=True)
class FinalizeResult:
    """Outcome of committing one artifact."""

    path: Path
    used_original: bool
    source_size: int
    output_size: int


def temp_path_for(dest_path: Path) -> Path:
    return Path(f"{dest_path}{TEMP_SUFFIX}")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        get_logger("finalizer").debug("Could not remove %s: %s", path, exc)


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot > 0 else ""


class OutputFinalizer:
    """Applies the smallest-file policy, atomic replace and optional gzip sidecars."""

    def __init__(
        self,
        *,
        use_smallest_file: bool = True,
        gzip_enabled: bool = False,
        gzip_level: int = 9,
    ) -> None:
        if not 0 <= gzip_level <= 9:
            raise ValueError(f"gzip level must be between 0 and 9, got {gzip_level}")
        self.use_smallest_file = use_smallest_file
        self.gzip_enabled = gzip_enabled
        self.gzip_level = gzip_level
        self.logger = get_logger("finalizer")

    def skip_reason(
        self,
        source_path: Path,
        dest_path: Path,
        *,
        suffix: str,
        force: bool = False,
    ) -> Optional[str]:
        """Return why ``source_path`` needs no transform, or None when it does."""
        if suffix:
            filename = source_path.name.lower()
            marker = suffix.lower()
            if filename.endswith(f"{marker}.js") or filename.endswith(f"{marker}.css"):
                return SKIP_ALREADY_MINIFIED

        # When output goes beside the source, the sibling is our own earlier output.
        sibling = source_path.parent / dest_path.name
        sibling_path = os.path.abspath(sibling)
        if (
            sibling_path != os.path.abspath(dest_path)
            and sibling_path != os.path.abspath(source_path)
            and sibling.exists()
        ):
            return SKIP_EXISTS_IN_SOURCE

        if not force and dest_path.exists():
            if dest_path.stat().st_mtime_ns > source_path.stat().st_mtime_ns:
                return SKIP_UP_TO_DATE
        return None

    def finalize(self, source_path: Path, temp_path: Path, dest_path: Path) -> FinalizeResult:
        """Move ``temp_path`` onto ``dest_path``, or commit the original when it is smaller."""
        try:
            source_size = source_path.stat().st_size
            temp_size = temp_path.stat().st_size
            use_original = self.use_smallest_file and source_size < temp_size
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            if use_original:
                shutil.copyfile(source_path, temp_path)
                self.logger.debug("Compressed output larger than input, using original: %s", source_path)
            os.replace(temp_path, dest_path)
            output_size = dest_path.stat().st_size
        except OSError as exc:
            _discard(temp_path)
            raise FinalizationError(f"Failed to commit {dest_path}: {exc}") from exc

        return FinalizeResult(
            path=dest_path,
            used_original=use_original,
            source_size=source_size,
            output_size=output_size,
        )

    def gzip_if_requested(self, path: Path | None) -> Optional[Path]:
        """Write ``path.gz`` beside ``path``; failures are logged and yield None."""
        if not self.gzip_enabled or path is None or not path.exists():
            return None
        if _extension(path.name).lower() == GZIP_SUFFIX:
            return None

        gzipped = Path(f"{path}{GZIP_SUFFIX}")
        temp_path = temp_path_for(gzipped)
        self.logger.debug("Creating gzip version: %s", gzipped.name)
        try:
            with path.open("rb") as source, temp_path.open("wb") as raw:
                # mtime=0 keeps sidecars byte-identical across runs.
                with gzip.GzipFile(
                    filename=path.name,
                    mode="wb",
                    compresslevel=self.gzip_level,
                    fileobj=raw,
                    mtime=0,
                ) as target:
                    shutil.copyfileobj(source, target)
            os.replace(temp_path, gzipped)
        except OSError as exc:
            _discard(temp_path)
            self.logger.warning("Failed to create gzip version of %s: %s", path, exc)
            return None
        return gzipped


def clean_stale_temp_files(
    root: Path, extensions: Sequence[str] = PROCESSED_EXTENSIONS
) -> int:
    """Delete ``*.tmp`` leftovers of earlier interrupted runs below ``root``."""
    if not Path(root).is_dir():
        return 0
    logger = get_logger("finalizer")
    removed = 0
    lowered = tuple(ext.lower() for ext in extensions)
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            if not filename.endswith(TEMP_SUFFIX):
                continue
            original = filename[: -len(TEMP_SUFFIX)]
            if not original.lower().endswith(lowered):
                continue
            stale = Path(dirpath) / filename
            logger.info("Removing stale temporary file %s", stale)
            _discard(stale)
            removed += 1
    return removed


__all__ = [
    "FinalizationError",
    "FinalizeResult",
    "OutputFinalizer",
    "GZIP_SUFFIX",
    "TEMP_SUFFIX",
    "clean_stale_temp_files",
    "temp_path_for",
]
