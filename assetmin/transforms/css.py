"""Stylesheet minifier."""

from __future__ import annotations

import re
from typing import List, Optional

from ..models import Diagnostic, warning
from .base import FormattingOptions, Transform, TransformResult, line_and_column, syntax_error

# No whitespace is needed after these characters...
_TIGHT_AFTER = "{};,>(:"
# ...or before these. Never ":" since "a :hover" is not "a:hover".
_TIGHT_BEFORE = "{};,>)"

_ZERO_UNIT_RE = re.compile(
    r"(?<![\w.#-])0(?:\.0+)?(?:px|em|rem|ex|ch|vw|vh|vmin|vmax|cm|mm|in|pt|pc)(?![\w%])"
)
_LEADING_ZERO_RE = re.compile(r"(?<![\w.#-])0+\.(\d)")
_HEX_RE = re.compile(
    r"#([0-9a-fA-F])\1([0-9a-fA-F])\2([0-9a-fA-F])\3(?![0-9a-fA-F])"
)


def _shrink_value(value: str) -> str:
    """Apply value-level rewrites; values holding strings or urls are left alone."""
    if '"' in value or "'" in value or "url(" in value.lower():
        return value
    value = _ZERO_UNIT_RE.sub("0", value)
    value = _LEADING_ZERO_RE.sub(r".\1", value)
    return _HEX_RE.sub(lambda m: "#" + m.group(1) + m.group(2) + m.group(3), value)


def _scan_string(text: str, start: int) -> int:
    quote = text[start]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        if char in "\n\r":
            break
        index += 1
    raise syntax_error(text, start, "unterminated string")


class _Buffer:
    """Output under construction, with the start of the current declaration value."""

    def __init__(self) -> None:
        self.text = ""
        self.value_start: Optional[int] = None

    def last(self) -> str:
        return self.text[-1:] if self.text else ""

    def line_length(self) -> int:
        return len(self.text) - self.text.rfind("\n") - 1

    def close_value(self, optimize: bool) -> None:
        if self.value_start is None:
            return
        if optimize:
            head = self.text[: self.value_start]
            self.text = head + _shrink_value(self.text[self.value_start :])
        self.value_start = None

    def drop_empty_rule(self) -> bool:
        """Remove a trailing ``selector{`` when the block is about to close empty."""
        if not self.text.endswith("{"):
            return False
        body = self.text[:-1]
        comment = body.rfind("*/")
        cut = max(body.rfind("{"), body.rfind("}"), body.rfind(";"), comment + 1 if comment >= 0 else -1)
        self.text = body[: cut + 1] if cut >= 0 else ""
        return True


def minify_css(text: str, options: FormattingOptions) -> TransformResult:
    optimize = not options.disable_optimizations
    diagnostics: List[Diagnostic] = []
    out = _Buffer()
    pending_space = False
    depth = 0
    index = 0
    length = len(text)

    while index < length:
        char = text[index]

        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            if end == -1:
                raise syntax_error(text, index, "unterminated comment")
            if text.startswith("/*!", index):
                out.text += text[index : end + 2]
                pending_space = False
            else:
                pending_space = True
            index = end + 2
            continue

        if char.isspace():
            pending_space = True
            index += 1
            continue

        if pending_space and out.text and out.last() not in _TIGHT_AFTER and char not in _TIGHT_BEFORE:
            out.text += " "
        pending_space = False

        if char in "'\"":
            end = _scan_string(text, index)
            out.text += text[index:end]
            index = end
            continue

        if char == "\\":
            out.text += text[index : index + 2]
            index += 2
            continue

        if char == "{":
            # A "value" opened by a pseudo-class colon was really a selector.
            out.value_start = None
            depth += 1
            out.text += "{"
        elif char == ";":
            out.close_value(optimize)
            if out.last() not in (";", "{"):
                out.text += ";"
        elif char == "}":
            out.close_value(optimize)
            if depth == 0:
                line, column = line_and_column(text, index)
                diagnostics.append(warning("Unbalanced '}'", line, column))
                index += 1
                continue
            depth -= 1
            if out.text.endswith(";"):
                out.text = out.text[:-1]
            if not (optimize and out.drop_empty_rule()):
                out.text += "}"
                if 0 <= options.line_break_pos <= out.line_length():
                    out.text += "\n"
        elif char == ":":
            out.text += ":"
            if depth > 0 and out.value_start is None:
                out.value_start = len(out.text)
        else:
            out.text += char
        index += 1

    if depth > 0:
        diagnostics.append(warning(f"Unbalanced braces: {depth} block(s) not closed"))
    return TransformResult(text=out.text.rstrip("\n"), diagnostics=diagnostics)


class CssMinifier(Transform):
    name = "css"

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        return minify_css(text, options)


__all__ = ["CssMinifier", "minify_css"]
