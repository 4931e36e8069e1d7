"""Transforms applied to individual assets."""

from __future__ import annotations

from typing import Dict, Mapping, Sequence

from .base import (
    CopyTransform,
    FormattingOptions,
    Transform,
    TransformError,
    TransformResult,
)
from .command import CommandTransform
from .css import CssMinifier
from .javascript import JavaScriptMinifier
from .lint import JavaScriptLinter


def default_transforms() -> Dict[str, Transform]:
    """Return the builtin minifiers keyed by lower-cased extension."""
    return {".js": JavaScriptMinifier(), ".css": CssMinifier()}


def build_transforms(
    commands: Mapping[str, Sequence[str]] | None = None,
    *,
    encoding: str = "utf-8",
) -> Dict[str, Transform]:
    """Builtin minifiers, overridden per extension by configured external commands."""
    transforms = default_transforms()
    for extension, command in (commands or {}).items():
        key = extension.lower() if extension.startswith(".") else f".{extension.lower()}"
        transforms[key] = CommandTransform(command, encoding=encoding)
    return transforms


__all__ = [
    "CommandTransform",
    "CopyTransform",
    "CssMinifier",
    "FormattingOptions",
    "JavaScriptLinter",
    "JavaScriptMinifier",
    "Transform",
    "TransformError",
    "TransformResult",
    "build_transforms",
    "default_transforms",
]
