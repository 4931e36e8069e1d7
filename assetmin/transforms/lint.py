"""Static checks for JavaScript sources (lint goal)."""

from __future__ import annotations

from typing import List, Sequence

from ..models import Diagnostic, error, warning
from .base import FormattingOptions, Transform, TransformError, TransformResult, line_and_column, source_line
from .javascript import KEYWORDS, Token, ends_expression, starts_expression, tokenize

# Keywords that still close an expression when a statement ends on them.
_VALUE_KEYWORDS = frozenset({"this", "true", "false", "null", "super"})
_BLOCK_FOLLOWERS = frozenset({"else", "catch", "finally", "while"})
_PAIRS = {"(": ")", "[": "]", "{": "}"}


class JavaScriptLinter(Transform):
    """Reports suspicious constructs and returns the text unchanged."""

    name = "jslint"

    def __init__(self, *, max_line_length: int = 120) -> None:
        self.max_line_length = max_line_length

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        diagnostics: List[Diagnostic] = []
        diagnostics.extend(self._check_lines(text))
        try:
            tokens = tokenize(text)
        except TransformError as exc:
            diagnostics.extend(exc.diagnostics)
            return TransformResult(text=text, diagnostics=_ordered(diagnostics))

        diagnostics.extend(self._check_tokens(text, tokens))
        diagnostics.extend(_check_brackets(text, tokens))
        return TransformResult(text=text, diagnostics=_ordered(diagnostics))

    def _check_lines(self, text: str) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for number, line in enumerate(text.splitlines(), start=1):
            stripped = line.rstrip()
            if stripped != line:
                found.append(warning("Unexpected trailing space.", number, len(stripped), line_source=stripped))
            indent = line[: len(line) - len(line.lstrip())]
            if " " in indent and "\t" in indent:
                found.append(warning("Mixed spaces and tabs.", number, 0, line_source=stripped))
            if self.max_line_length > 0 and len(stripped) > self.max_line_length:
                found.append(
                    warning("Line too long.", number, self.max_line_length, line_source=stripped.strip())
                )
        return found

    def _check_tokens(self, text: str, tokens: Sequence[Token]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        previous: Token | None = None
        code = [token for token in tokens if token.kind != "comment"]
        for index, token in enumerate(code):
            following = code[index + 1] if index + 1 < len(code) else None
            message = None
            if token.kind == "punct" and token.text in ("==", "!="):
                message = f"Expected '{token.text}=' and instead saw '{token.text}'."
            elif token.kind == "word" and token.text == "debugger":
                message = "Unexpected 'debugger'."
            elif token.kind == "word" and token.text == "with" and _opens_call(following):
                message = "Unexpected 'with'."
            elif token.kind == "word" and token.text == "eval" and _opens_call(following):
                if previous is None or previous.text not in (".", "?."):
                    message = "eval is evil."
            elif previous is not None and _missing_semicolon(previous, token):
                # Reported where the semicolon belongs, at the end of the previous line.
                found.append(
                    _at(text, previous.index + len(previous.text), f"Expected ';' and instead saw '{token.text}'.")
                )

            if message:
                found.append(_at(text, token.index, message))
            previous = token
        return found


def _opens_call(token: Token | None) -> bool:
    return token is not None and token.kind == "punct" and token.text == "("


def _missing_semicolon(previous: Token, token: Token) -> bool:
    if not token.newline_before or previous.closes_control:
        return False
    if previous.kind == "word" and previous.text in KEYWORDS and previous.text not in _VALUE_KEYWORDS:
        return False
    if previous.kind == "punct" and previous.text == "}":
        return False
    if token.kind == "punct" and token.text == "{":
        return False
    if token.kind == "word" and token.text in _BLOCK_FOLLOWERS:
        return False
    return ends_expression(previous) and starts_expression(token)


def _check_brackets(text: str, tokens: Sequence[Token]) -> List[Diagnostic]:
    stack: List[Token] = []
    for token in tokens:
        if token.kind != "punct":
            continue
        if token.text in _PAIRS:
            stack.append(token)
        elif token.text in _PAIRS.values():
            if not stack or _PAIRS[stack[-1].text] != token.text:
                return [_at(text, token.index, f"Unmatched '{token.text}'.", severity_error=True)]
            stack.pop()
    if stack:
        opener = stack[-1]
        return [_at(text, opener.index, f"Unclosed '{opener.text}'.", severity_error=True)]
    return []


def _at(text: str, index: int, message: str, *, severity_error: bool = False) -> Diagnostic:
    line, column = line_and_column(text, index)
    factory = error if severity_error else warning
    return factory(message, line, column, line_source=source_line(text, line))


def _ordered(diagnostics: List[Diagnostic]) -> List[Diagnostic]:
    return sorted(diagnostics, key=lambda item: (item.line, item.column))


__all__ = ["JavaScriptLinter"]
