"""Byte-count bookkeeping for end-of-run reporting."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional


def ratio_of_size(before: int, after: int) -> int:
    """Return ``after`` as an integer percentage of ``before``; empty files count as one byte."""
    return (max(after, 1) * 100) // max(before, 1)


@dataclass
class SizeRecord:
    """Before/after sizes for a single file or aggregate."""

    name: str
    output_name: str
    before: int
    after: int
    gzip_name: Optional[str] = None
    gzip_size: Optional[int] = None
    used_original: bool = False

    @property
    def ratio(self) -> int:
        return ratio_of_size(self.before, self.after)

    def describe(self) -> str:
        if self.used_original:
            text = (
                f"{self.name} ({self.before}b) -> {self.output_name} ({self.after}b) "
                "[original used - compressed was larger]"
            )
        else:
            text = f"{self.name} ({self.before}b) -> {self.output_name} ({self.after}b) [{self.ratio}%]"
        if self.gzip_name is not None and self.gzip_size is not None:
            text += (
                f" -> {self.gzip_name} ({self.gzip_size}b) "
                f"[{ratio_of_size(self.before, self.gzip_size)}%]"
            )
        return text


@dataclass
class RunStatistics:
    """Mutable accumulator shared by every step of a run."""

    input_bytes: int = 0
    output_bytes: int = 0
    files: List[SizeRecord] = field(default_factory=list)
    aggregates: List[SizeRecord] = field(default_factory=list)
    warnings: int = 0
    errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_file(self, record: SizeRecord) -> None:
        with self._lock:
            self.input_bytes += record.before
            self.output_bytes += record.after
            self.files.append(record)

    def record_aggregate(self, record: SizeRecord) -> None:
        # Aggregates are listed but stay out of the run totals.
        with self._lock:
            self.aggregates.append(record)

    def record_diagnostic(self, is_error: bool) -> None:
        with self._lock:
            if is_error:
                self.errors += 1
            else:
                self.warnings += 1

    @property
    def processed_count(self) -> int:
        with self._lock:
            return len(self.files)

    @property
    def ratio(self) -> Optional[int]:
        with self._lock:
            if self.input_bytes <= 0:
                return None
            return (self.output_bytes * 100) // self.input_bytes

    def summary(self) -> Optional[str]:
        ratio = self.ratio
        if ratio is None:
            return None
        return f"Total: input ({self.input_bytes}b) -> output ({self.output_bytes}b) [{ratio}%]"


__all__ = ["RunStatistics", "SizeRecord", "ratio_of_size"]
