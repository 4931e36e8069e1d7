"""Tests for assetmin.models."""

from __future__ import annotations

from pathlib import Path

import pytest

from assetmin.models import SEVERITY_ERROR, SEVERITY_WARNING, SourceFile, error, warning


def test_from_name_splits_on_last_dot() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "js/app.bundle.js")

    assert source.relative_path_without_extension == "js/app.bundle"
    assert source.extension == ".js"
    assert source.relative_path == "js/app.bundle.js"


def test_from_name_without_extension() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "LICENSE")

    assert source.extension == ""
    assert source.relative_path_without_extension == "LICENSE"


def test_leading_dot_does_not_start_an_extension() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), ".hidden")

    assert source.extension == ""
    assert source.relative_path_without_extension == ".hidden"


def test_dot_rule_applies_to_the_whole_relative_name() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "dir/.hidden")

    assert source.extension == ".hidden"
    assert source.relative_path_without_extension == "dir/"


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_name_is_rejected(name: str) -> None:
    with pytest.raises(ValueError):
        SourceFile.from_name(Path("/src"), Path("/dest"), name)


def test_destination_path_inserts_suffix_before_extension() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "css/site.css")

    assert source.to_destination_path("-min") == Path("/dest/css/site-min.css")
    assert source.to_destination_path("") == Path("/dest/css/site.css")


def test_destination_path_requires_a_suffix() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "a.js")

    with pytest.raises(ValueError):
        source.to_destination_path(None)  # type: ignore[arg-type]


def test_source_path_prefers_readable_destination_copy() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "a.js", prefer_destination_as_source=True)

    assert source.to_source_path(lambda path: True) == Path("/dest/a.js")
    assert source.to_source_path(lambda path: False) == Path("/src/a.js")


def test_source_path_ignores_destination_unless_preferred() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "a.js")
    seen: list[Path] = []

    def readable(path: Path) -> bool:
        seen.append(path)
        return True

    assert source.to_source_path(readable) == Path("/src/a.js")
    assert seen == []


def test_short_name_uses_final_segment() -> None:
    source = SourceFile.from_name(Path("/src"), Path("/dest"), "js/lib/util.js")

    assert source.short_name(lambda path: False) == "...util.js"


def test_diagnostic_factories_set_severity() -> None:
    found = warning("careful", 3, 4, line_source="x == y")
    failed = error("broken")

    assert found.severity == SEVERITY_WARNING
    assert not found.is_error
    assert found.line == 3 and found.column == 4
    assert found.line_source == "x == y"
    assert failed.severity == SEVERITY_ERROR
    assert failed.is_error
