"""Delegation to an external minifier reading stdin and writing stdout."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..models import Diagnostic, warning
from .base import FormattingOptions, Transform, TransformError, TransformResult


@dataclass
class CommandRequest:
    """Everything the runner needs to invoke the external tool once."""

    args: List[str]
    text: str
    encoding: str
    timeout: Optional[float]


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str = ""


class CommandTransform(Transform):
    """Pipes asset text through a configured command line.

    ``{line_break_pos}`` in an argument is replaced with the configured column,
    so tools such as ``terser`` or ``csso`` can receive their own wrapping flag.
    """

    name = "command"

    def __init__(
        self,
        command: Sequence[str],
        *,
        encoding: str = "utf-8",
        timeout: Optional[float] = 120.0,
        runner: Callable[[CommandRequest], CommandResult] | None = None,
    ) -> None:
        if not command:
            raise ValueError("command must contain at least the executable")
        self.command = [str(part) for part in command]
        self.encoding = encoding
        self.timeout = timeout
        self._runner = runner or self._subprocess_runner
        self.name = self.command[0]

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        args = [part.replace("{line_break_pos}", str(options.line_break_pos)) for part in self.command]
        request = CommandRequest(args=args, text=text, encoding=self.encoding, timeout=self.timeout)
        result = self._runner(request)
        if result.returncode != 0:
            detail = result.stderr.strip() or "no output on stderr"
            raise TransformError(f"{args[0]} failed with exit code {result.returncode}: {detail}")

        diagnostics: List[Diagnostic] = []
        if options.warn:
            diagnostics = [warning(line.strip()) for line in result.stderr.splitlines() if line.strip()]
        return TransformResult(text=result.stdout, diagnostics=diagnostics)

    @staticmethod
    def _subprocess_runner(request: CommandRequest) -> CommandResult:
        try:
            completed = subprocess.run(
                request.args,
                input=request.text,
                capture_output=True,
                text=True,
                encoding=request.encoding,
                timeout=request.timeout,
                check=False,
            )
        except FileNotFoundError as exc:  # pragma: no cover - depends on environment
            raise TransformError(
                f"Unable to locate '{request.args[0]}'. Install it or adjust the transforms config."
            ) from exc
        except subprocess.TimeoutExpired as exc:  # pragma: no cover - depends on environment
            raise TransformError(f"{request.args[0]} timed out after {request.timeout}s") from exc
        return CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr or "",
        )


__all__ = ["CommandRequest", "CommandResult", "CommandTransform"]
