"""Contract shared by all asset transforms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence

from ..models import Diagnostic, error


@dataclass(frozen=True)
class FormattingOptions:
    """Knobs forwarded to every transform; each transform honours the ones it understands."""

    line_break_pos: int = -1
    munge: bool = True
    preserve_semicolons: bool = False
    disable_optimizations: bool = False
    warn: bool = True


@dataclass
class TransformResult:
    """Transformed text and the diagnostics produced on the way."""

    text: str
    diagnostics: List[Diagnostic] = field(default_factory=list)


class TransformError(RuntimeError):
    """Raised when a transform rejects its input."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = list(diagnostics) if diagnostics else [error(message)]


class Transform(ABC):
    """Turns the text of one asset into its processed form."""

    name: str = "transform"

    @abstractmethod
    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        """Return the processed text; raise TransformError when the input is malformed."""


class CopyTransform(Transform):
    """Passes text through untouched (compression disabled)."""

    name = "copy"

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        return TransformResult(text=text)


def line_and_column(text: str, index: int) -> tuple[int, int]:
    """Return the 1-based line and 0-based column of ``index`` in ``text``."""
    line = text.count("\n", 0, index) + 1
    column = index - (text.rfind("\n", 0, index) + 1)
    return line, column


def source_line(text: str, line: int) -> str:
    lines = text.splitlines()
    if 1 <= line <= len(lines):
        return lines[line - 1].strip()
    return ""


def syntax_error(text: str, index: int, message: str) -> TransformError:
    line, column = line_and_column(text, index)
    diagnostic = error(message, line, column, line_source=source_line(text, line))
    return TransformError(message, [diagnostic])
