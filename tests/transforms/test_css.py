"""Tests for assetmin.transforms.css."""

from __future__ import annotations

import pytest

from assetmin.transforms import CssMinifier, FormattingOptions, TransformError


def _minify(text: str, **options: object) -> str:
    return CssMinifier().transform(text, FormattingOptions(**options)).text  # type: ignore[arg-type]


def test_collapses_whitespace_and_last_semicolon() -> None:
    assert _minify("body {\n  color: red;\n  margin: 0px;\n}\n") == "body{color:red;margin:0}"


def test_comments_removed_except_license() -> None:
    assert _minify("/* note */ a { b: c } /*! keep */") == "a{b:c}/*! keep */"


def test_strings_are_preserved() -> None:
    source = 'a { content: "x  /* y */"; } /* gone */ b{}'

    assert _minify(source) == 'a{content:"x  /* y */"}'


def test_value_shortening() -> None:
    source = "p{color:#AABBCC;padding:0.5em 0em;width:10px;height:0%}"

    assert _minify(source) == "p{color:#ABC;padding:.5em 0;width:10px;height:0%}"


def test_pseudo_classes_keep_meaningful_space() -> None:
    assert _minify("a:hover, a:focus { color: blue }") == "a:hover,a:focus{color:blue}"
    assert _minify("div :first-child { a: b }") == "div :first-child{a:b}"


def test_media_queries() -> None:
    source = "@media screen and (max-width: 100px) {\n  .a { color: red; }\n}"

    assert _minify(source) == "@media screen and (max-width:100px){.a{color:red}}"


def test_empty_rules_are_dropped() -> None:
    assert _minify("a{}b{c:d}") == "b{c:d}"
    assert _minify("@media print{.a{ }}") == ""


def test_disable_optimizations_keeps_values_and_empty_rules() -> None:
    assert _minify("a{ }p{margin:0px}", disable_optimizations=True) == "a{}p{margin:0px}"


def test_line_break_position() -> None:
    assert _minify("a{b:c}d{e:f}", line_break_pos=0) == "a{b:c}\nd{e:f}"


def test_unbalanced_braces_warn() -> None:
    result = CssMinifier().transform("a{color:red", FormattingOptions())

    assert result.text == "a{color:red"
    assert [diagnostic.is_error for diagnostic in result.diagnostics] == [False]


def test_unterminated_comment_is_an_error() -> None:
    with pytest.raises(TransformError):
        _minify("a{} /* open")
