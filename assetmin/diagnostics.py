"""Routing of transform diagnostics to the log and the run counters."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .logging import get_logger
from .models import Diagnostic
from .stats import RunStatistics


@dataclass(frozen=True)
class ReportedDiagnostic:
    """A diagnostic together with the file it was reported against."""

    diagnostic: Diagnostic
    path: Optional[Path]
    text: str


class DiagnosticsSink:
    """Counts and logs warnings/errors, and decides whether they fail the run."""

    def __init__(
        self,
        stats: RunStatistics | None = None,
        *,
        accept_warnings: bool = True,
    ) -> None:
        self.stats = stats or RunStatistics()
        self.accept_warnings = accept_warnings
        self.diagnostics: List[ReportedDiagnostic] = []
        self._lock = threading.Lock()
        self.logger = get_logger("diagnostics")

    @property
    def warning_count(self) -> int:
        return self.stats.warnings

    @property
    def error_count(self) -> int:
        return self.stats.errors

    def report(
        self,
        diagnostic: Diagnostic,
        *,
        path: Path | None = None,
        default_name: str | None = None,
    ) -> bool:
        """Record ``diagnostic``; return False when it was dropped as an unwanted warning."""
        if not diagnostic.is_error and not self.accept_warnings:
            return False

        text = format_diagnostic(diagnostic, default_name=default_name)
        if diagnostic.is_error:
            self.logger.error(text)
        else:
            self.logger.warning(text)

        self.stats.record_diagnostic(diagnostic.is_error)
        with self._lock:
            self.diagnostics.append(ReportedDiagnostic(diagnostic=diagnostic, path=path, text=text))
        return True

    def should_fail(self, *, fail_on_warning: bool = False, fail_on_error: bool = False) -> bool:
        if fail_on_warning and self.warning_count > 0:
            return True
        return fail_on_error and self.error_count > 0

    def summary(self) -> str:
        return f"Warnings: {self.warning_count}, Errors: {self.error_count}"


def format_diagnostic(diagnostic: Diagnostic, *, default_name: str | None = None) -> str:
    """Render ``name:line L:column C:message`` with the offending source line when known."""
    parts: List[str] = []
    source_name = diagnostic.source_name
    if not source_name or not source_name.strip():
        source_name = default_name if default_name and default_name.strip() else None

    if source_name is not None:
        parts.append(f"{source_name}:line {diagnostic.line}:column {diagnostic.column}:")

    message = diagnostic.message
    parts.append(message if message and message.strip() else "unknown error")

    if diagnostic.line_source and diagnostic.line_source.strip():
        parts.append(f"\n\t{diagnostic.line_source}")
    return "".join(parts)


__all__ = ["DiagnosticsSink", "ReportedDiagnostic", "format_diagnostic"]
