"""A conservative, token-level JavaScript minifier.

The minifier never renames identifiers. It removes comments (except ``/*!``
license blocks) and redundant whitespace, keeps every line break that automatic
semicolon insertion could depend on, and optionally applies a couple of safe
rewrites (``a["b"]`` to ``a.b``, quoted object keys to bare keys).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..models import Diagnostic, warning
from .base import (
    FormattingOptions,
    Transform,
    TransformResult,
    line_and_column,
    source_line,
    syntax_error,
)

_NEWLINES = "\n\r\u2028\u2029"
_WHITESPACE_RE = re.compile("[ \t\f\v\u00a0\ufeff\n\r\u2028\u2029]+")
_IDENT_RE = re.compile(
    r"(?:[A-Za-z_$\u0080-\uffff]|\\u[0-9a-fA-F]{4})(?:[\w$\u0080-\uffff]|\\u[0-9a-fA-F]{4})*"
)
_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]+n?|0[bB][01_]+n?|0[oO][0-7_]+n?"
    r"|(?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)(?:[eE][+-]?\d[\d_]*)?n?"
)
_PLAIN_NAME_RE = re.compile(r"[A-Za-z_$][\w$]*\Z")

_PUNCTUATORS: tuple[str, ...] = tuple(
    sorted(
        (
            ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", ">>>", "&&=", "||=", "??=",
            "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--", "+=", "-=",
            "*=", "/=", "%=", "&=", "|=", "^=", "**", "<<", ">>",
            "{", "}", "(", ")", "[", "]", ";", ",", "<", ">", "+", "-", "*", "/", "%",
            "&", "|", "^", "!", "~", "?", ":", "=", ".", "@", "#",
        ),
        key=len,
        reverse=True,
    )
)

KEYWORDS = frozenset(
    {
        "await", "break", "case", "catch", "class", "const", "continue", "debugger",
        "default", "delete", "do", "else", "enum", "export", "extends", "false",
        "finally", "for", "function", "if", "implements", "import", "in",
        "instanceof", "interface", "let", "new", "null", "package", "private",
        "protected", "public", "return", "static", "super", "switch", "this",
        "throw", "true", "try", "typeof", "var", "void", "while", "with", "yield",
    }
)

_REGEX_AFTER_WORDS = frozenset(
    {
        "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
        "throw", "case", "do", "else", "yield", "await",
    }
)
_CONTROL_WORDS = frozenset({"if", "for", "while", "with"})
_VALUE_KINDS = frozenset({"word", "number", "string", "template", "regex"})


@dataclass
class Token:
    """One lexical unit together with its position in the source."""

    kind: str
    text: str
    index: int
    newline_before: bool = False
    closes_control: bool = False


def tokenize(text: str) -> List[Token]:
    """Split ``text`` into tokens; raises TransformError on unterminated literals."""
    tokens: List[Token] = []
    paren_owners: List[bool] = []
    newline = False
    length = len(text)
    index = 0

    if text.startswith("#!"):
        end = _line_end(text, 0)
        tokens.append(Token("comment", text[:end], 0))
        index = end

    while index < length:
        match = _WHITESPACE_RE.match(text, index)
        if match:
            if any(char in _NEWLINES for char in match.group()):
                newline = True
            index = match.end()
            continue

        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            if end == -1:
                raise syntax_error(text, index, "unterminated comment")
            body = text[index : end + 2]
            if body.startswith("/*!"):
                tokens.append(Token("comment", body, index, newline))
                newline = False
            elif any(char in _NEWLINES for char in body):
                newline = True
            index = end + 2
            continue

        if text.startswith("//", index):
            index = _line_end(text, index)
            continue

        char = text[index]
        if char in "'\"":
            end = _scan_string(text, index)
            token = Token("string", text[index:end], index)
        elif char == "`":
            end = _scan_template(text, index)
            token = Token("template", text[index:end], index)
        elif char == "/" and _regex_allowed(tokens):
            end = _scan_regex(text, index)
            token = Token("regex", text[index:end], index)
        elif char.isdigit() or (char == "." and index + 1 < length and text[index + 1].isdigit()):
            number = _NUMBER_RE.match(text, index)
            assert number is not None
            end = number.end()
            token = Token("number", number.group(), index)
        else:
            ident = _IDENT_RE.match(text, index)
            if ident:
                end = ident.end()
                token = Token("word", ident.group(), index)
            else:
                punct = _match_punctuator(text, index)
                if punct is None:
                    raise syntax_error(text, index, f"illegal character '{char}'")
                end = index + len(punct)
                token = Token("punct", punct, index)

        token.newline_before = newline
        newline = False
        if token.kind == "punct" and token.text == "(":
            previous = _last_code_token(tokens)
            paren_owners.append(
                previous is not None and previous.kind == "word" and previous.text in _CONTROL_WORDS
            )
        elif token.kind == "punct" and token.text == ")":
            token.closes_control = paren_owners.pop() if paren_owners else False
        tokens.append(token)
        index = end

    return tokens


def _line_end(text: str, index: int) -> int:
    positions = [pos for pos in (text.find(nl, index) for nl in _NEWLINES) if pos != -1]
    return min(positions) if positions else len(text)


def _match_punctuator(text: str, index: int) -> Optional[str]:
    for punct in _PUNCTUATORS:
        if text.startswith(punct, index):
            # "?.5" is a conditional followed by a number, not optional chaining.
            if punct == "?." and index + 2 < len(text) and text[index + 2].isdigit():
                continue
            return punct
    return None


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
    raise syntax_error(text, start, "unterminated string literal")


def _scan_template(text: str, start: int) -> int:
    index = start + 1
    depth = 0
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if depth == 0 and char == "`":
            return index + 1
        if char == "$" and text.startswith("${", index):
            depth += 1
            index += 2
            continue
        if depth > 0 and char == "{":
            depth += 1
        elif depth > 0 and char == "}":
            depth -= 1
        index += 1
    raise syntax_error(text, start, "unterminated template literal")


def _scan_regex(text: str, start: int) -> int:
    index = start + 1
    in_class = False
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char in _NEWLINES:
            break
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "/":
            index += 1
            while index < len(text) and text[index].isalpha():
                index += 1
            return index
        index += 1
    raise syntax_error(text, start, "unterminated regular expression literal")


def _last_code_token(tokens: Sequence[Token]) -> Optional[Token]:
    for token in reversed(tokens):
        if token.kind != "comment":
            return token
    return None


def _regex_allowed(tokens: Sequence[Token]) -> bool:
    previous = _last_code_token(tokens)
    if previous is None:
        return True
    if previous.kind == "word":
        return previous.text in _REGEX_AFTER_WORDS
    if previous.kind == "punct":
        return previous.text not in (")", "]", "++", "--")
    return False


def ends_expression(token: Token) -> bool:
    if token.kind in _VALUE_KINDS:
        return True
    return token.kind == "punct" and token.text in (")", "]", "}", "++", "--")


def starts_expression(token: Token) -> bool:
    if token.kind in _VALUE_KINDS:
        return True
    return token.kind == "punct" and token.text in (
        "(", "[", "{", "++", "--", "+", "-", "!", "~", "/", "#", "@", "...",
    )


def _is_ident_char(char: str) -> bool:
    return char.isalnum() or char in "_$\\" or ord(char) > 127


def _needs_space(previous: Token, token: Token) -> bool:
    last = previous.text[-1]
    first = token.text[0]
    if _is_ident_char(last) and _is_ident_char(first):
        return True
    if previous.kind == "regex" and _is_ident_char(first):
        return True
    if previous.kind == "number" and first == ".":
        return True
    if last in "+-" and first == last:
        return True
    return last == "/" and first in "/*"


def _plain_name(literal: str) -> Optional[str]:
    body = literal[1:-1]
    if "\\" in body or not _PLAIN_NAME_RE.match(body) or body in KEYWORDS:
        return None
    return body


def _is_member_target(token: Token) -> bool:
    if token.kind == "word":
        return token.text not in KEYWORDS or token.text in ("this", "super")
    if token.kind in ("string", "template"):
        return True
    return token.kind == "punct" and token.text in (")", "]")


def _optimize(tokens: Sequence[Token]) -> List[Token]:
    result: List[Token] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        following = tokens[index + 1] if index + 1 < len(tokens) else None

        if (
            token.kind == "punct"
            and token.text == "["
            and index + 2 < len(tokens)
            and tokens[index + 1].kind == "string"
            and tokens[index + 2].kind == "punct"
            and tokens[index + 2].text == "]"
            and result
            and _is_member_target(result[-1])
        ):
            name = _plain_name(tokens[index + 1].text)
            if name is not None:
                result.append(Token("punct", ".", token.index))
                result.append(Token("word", name, tokens[index + 1].index))
                index += 3
                continue

        if (
            token.kind == "string"
            and following is not None
            and following.kind == "punct"
            and following.text == ":"
            and result
            and result[-1].kind == "punct"
            and result[-1].text in ("{", ",")
        ):
            name = _plain_name(token.text)
            if name is not None:
                result.append(Token("word", name, token.index, token.newline_before))
                index += 1
                continue

        result.append(token)
        index += 1
    return result


def _drop_semicolon(previous: Optional[Token], following: Optional[Token]) -> bool:
    if following is None or following.kind != "punct" or following.text != "}":
        return False
    if previous is None:
        return False
    if previous.closes_control:
        return False
    if previous.kind == "word" and previous.text in ("else", "do"):
        return False
    return not (previous.kind == "punct" and previous.text == ":")


def _emit(tokens: Sequence[Token], options: FormattingOptions) -> str:
    parts: List[str] = []
    line_length = 0
    previous: Optional[Token] = None
    after_break = False

    for index, token in enumerate(tokens):
        following = tokens[index + 1] if index + 1 < len(tokens) else None
        if (
            token.kind == "punct"
            and token.text == ";"
            and not options.preserve_semicolons
            and _drop_semicolon(previous, following)
        ):
            continue

        if previous is None or after_break:
            separator = ""
        elif token.kind == "comment" or previous.kind == "comment":
            separator = "\n"
        elif token.newline_before and ends_expression(previous) and starts_expression(token):
            separator = "\n"
        elif _needs_space(previous, token):
            separator = " "
        else:
            separator = ""

        chunk = separator + token.text
        parts.append(chunk)
        if "\n" in chunk:
            line_length = len(chunk) - chunk.rfind("\n") - 1
        else:
            line_length += len(chunk)
        after_break = False

        if (
            options.line_break_pos >= 0
            and token.kind == "punct"
            and token.text in (";", "}")
            and line_length >= options.line_break_pos
            and following is not None
            and not (token.text == "}" and following.text in ("++", "--"))
        ):
            parts.append("\n")
            line_length = 0
            after_break = True

        previous = token

    return "".join(parts)


_DISCOURAGED = {
    "eval": "Using 'eval' is not recommended. Moreover, using 'eval' reduces the level of compression!",
    "with": "Using 'with' is not recommended. Moreover, using 'with' reduces the level of compression!",
}


def _discouraged_usage(text: str, tokens: Sequence[Token]) -> List[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for index, token in enumerate(tokens[:-1]):
        if token.kind != "word" or token.text not in _DISCOURAGED:
            continue
        following = tokens[index + 1]
        if following.kind != "punct" or following.text != "(":
            continue
        if index > 0 and tokens[index - 1].kind == "punct" and tokens[index - 1].text in (".", "?."):
            continue
        line, column = line_and_column(text, token.index)
        diagnostics.append(
            warning(_DISCOURAGED[token.text], line, column, line_source=source_line(text, line))
        )
    return diagnostics


class JavaScriptMinifier(Transform):
    """Whitespace/comment minifier for ``.js`` assets."""

    name = "javascript"

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        tokens = tokenize(text)
        diagnostics: List[Diagnostic] = []
        if options.munge and options.warn:
            diagnostics.extend(_discouraged_usage(text, tokens))
        if not options.disable_optimizations:
            tokens = _optimize(tokens)
        return TransformResult(text=_emit(tokens, options), diagnostics=diagnostics)


__all__ = ["JavaScriptMinifier", "KEYWORDS", "Token", "ends_expression", "starts_expression", "tokenize"]
