"""Concatenation of several files into one aggregate output."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import AbstractSet, BinaryIO, List, Optional, Sequence

from .finalizer import temp_path_for
from .incremental import IncrementalTracker
from .logging import get_logger
from .scanner import Scanner, is_wildcard


class AggregationError(RuntimeError):
    """Base class for failures that abort a single aggregation."""


class AggregationInputError(AggregationError):
    """The aggregation's input directory is missing or not a directory."""


class AggregationIOError(AggregationError):
    """An input could not be read/deleted or the output could not be written."""


@dataclass
class Aggregation:
    """One configured concatenation rule."""

    output: Path
    input_dir: Optional[Path] = None
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    remove_included: bool = False
    insert_new_line: bool = False
    insert_file_header: bool = False
    fix_last_semicolon: bool = False
    auto_exclude_wildcards: bool = False

    def resolved_input_dir(self) -> Path:
        """Return the canonical input directory, defaulting to the output's parent."""
        base = self.input_dir if self.input_dir is not None else Path(self.output).parent
        input_dir = Path(base).resolve()
        if not input_dir.is_dir():
            raise AggregationInputError(f"Input directory not found or not a directory: {input_dir}")
        return input_dir


class Aggregator:
    """Resolves the ordered input list of an aggregation and writes the output."""

    def __init__(
        self,
        tracker: IncrementalTracker | None = None,
        scanner: Scanner | None = None,
    ) -> None:
        self.tracker = tracker or IncrementalTracker()
        self.scanner = scanner or Scanner()
        self.logger = get_logger("aggregator")

    def run(
        self,
        aggregation: Aggregation,
        previously_included: AbstractSet[Path] | None = None,
    ) -> List[Path]:
        """Resolve and write ``aggregation``; return the files it consumed."""
        files = self.resolve(aggregation, previously_included)
        if files:
            self.write(files, aggregation)
        return files

    def resolve(
        self,
        aggregation: Aggregation,
        previously_included: AbstractSet[Path] | None = None,
    ) -> List[Path]:
        input_dir = aggregation.resolved_input_dir()
        excluded: Optional[set[Path]] = None
        if aggregation.auto_exclude_wildcards and previously_included:
            excluded = {Path(os.path.realpath(path)) for path in previously_included}

        files: List[Path] = []
        seen: set[Path] = set()
        for include in aggregation.includes:
            if is_wildcard(include):
                candidates = self._expand_wildcard(include, input_dir, aggregation.excludes)
                for candidate in candidates:
                    if candidate in seen or (
                        excluded is not None and Path(os.path.realpath(candidate)) in excluded
                    ):
                        continue
                    seen.add(candidate)
                    files.append(candidate)
            else:
                candidate = Path(include)
                if not candidate.is_absolute():
                    candidate = input_dir / include
                candidate = Path(os.path.abspath(candidate))
                if candidate not in seen:
                    seen.add(candidate)
                    files.append(candidate)

        if self.tracker.is_incremental_run():
            # Rebuild only when one of the inputs was written by this run.
            if not self.tracker.any_output_matches(files):
                self.logger.debug("No input of %s changed, skipping", aggregation.output)
                return []
        return files

    def _expand_wildcard(
        self, include: str, input_dir: Path, excludes: Sequence[str]
    ) -> List[Path]:
        rel_paths = self.scanner.scan(input_dir, [include], excludes)
        return [input_dir / rel_path for rel_path in sorted(rel_paths)]

    def write(self, files: Sequence[Path], aggregation: Aggregation) -> Path:
        """Concatenate ``files`` into the aggregation output and return its path."""
        output = Path(aggregation.output).resolve()
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise AggregationIOError(f"Failed to create output directory: {output.parent}") from exc

        temp_path = temp_path_for(output)
        consumed: List[Path] = []
        try:
            with temp_path.open("wb") as out:
                for path in files:
                    if Path(path).resolve() == output:
                        continue
                    self._append(Path(path), out, aggregation)
                    consumed.append(Path(path))
        except OSError as exc:
            _discard(temp_path)
            raise AggregationIOError(f"Failed to write aggregation {output}: {exc}") from exc
        except AggregationError:
            _discard(temp_path)
            raise

        try:
            os.replace(temp_path, output)
        except OSError as exc:
            _discard(temp_path)
            raise AggregationIOError(f"Failed to commit aggregation {output}: {exc}") from exc
        self.tracker.record_output(output)

        # Inputs are only deleted once the aggregate is safely in place.
        if aggregation.remove_included:
            for path in consumed:
                self._remove(path)
        return output

    def _append(self, path: Path, out: BinaryIO, aggregation: Aggregation) -> None:
        try:
            with path.open("rb") as handle:
                if aggregation.insert_file_header:
                    out.write(_file_header(path, aggregation.insert_new_line))
                shutil.copyfileobj(handle, out)
                if aggregation.fix_last_semicolon:
                    out.write(b";")
                if aggregation.insert_new_line:
                    out.write(b"\n")
        except FileNotFoundError as exc:
            raise AggregationIOError(f"Aggregation input not found: {path}") from exc
        except OSError as exc:
            raise AggregationIOError(f"Failed to read aggregation input {path}: {exc}") from exc

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as exc:
            raise AggregationIOError(f"Failed to delete file after aggregation: {path}") from exc
        self.tracker.record_removed(path)


def _file_header(path: Path, insert_new_line: bool) -> bytes:
    header = f"/*{path.name}*/"
    if insert_new_line:
        header += "\n"
    return header.encode("utf-8")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


__all__ = [
    "Aggregation",
    "AggregationError",
    "AggregationIOError",
    "AggregationInputError",
    "Aggregator",
]
