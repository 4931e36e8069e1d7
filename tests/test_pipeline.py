"""Tests for assetmin.pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from assetmin.aggregator import Aggregation
from assetmin.config import AssetminConfig, RootSpec
from assetmin.pipeline import CompressGoal, LintGoal, MissingDestinationError, Pipeline
from assetmin.transforms import FormattingOptions, Transform, TransformResult
from tests._fixtures.tree_builder import TreeBuilder


class PaddingTransform(Transform):
    name = "padding"

    def transform(self, text: str, options: FormattingOptions) -> TransformResult:
        return TransformResult(text=text + "/* grew */")


def _config(tree_builder: TreeBuilder, **overrides: object) -> AssetminConfig:
    root = tree_builder.path()
    settings: dict[str, object] = {
        "root": root,
        "roots": [RootSpec(source=root / "src", destination=root / "dist")],
    }
    settings.update(overrides)
    return AssetminConfig(**settings)  # type: ignore[arg-type]


def _write_assets(tree_builder: TreeBuilder) -> None:
    tree_builder.write(
        {
            "src/js/app.js": "var answer = 42;\n",
            "src/css/site.css": "body {\n  color: red;\n}\n",
        }
    )
    tree_builder.age("src/js/app.js")
    tree_builder.age("src/css/site.css")


def test_compress_minifies_into_destination(tree_builder: TreeBuilder) -> None:
    _write_assets(tree_builder)

    outcome = Pipeline(_config(tree_builder)).run(CompressGoal())

    assert outcome.success
    assert tree_builder.read("dist/js/app-min.js") == "var answer=42;"
    assert tree_builder.read("dist/css/site-min.css") == "body{color:red}"
    assert outcome.stats.processed_count == 2
    assert outcome.stats.input_bytes == 17 + 23
    assert outcome.stats.output_bytes == 14 + 15


def test_second_run_skips_up_to_date_outputs(tree_builder: TreeBuilder) -> None:
    _write_assets(tree_builder)
    config = _config(tree_builder)

    Pipeline(config).run(CompressGoal())
    second = Pipeline(config).run(CompressGoal())

    assert second.success
    assert second.stats.processed_count == 0


def test_force_reprocesses_up_to_date_outputs(tree_builder: TreeBuilder) -> None:
    _write_assets(tree_builder)

    Pipeline(_config(tree_builder)).run(CompressGoal())
    second = Pipeline(_config(tree_builder, force=True)).run(CompressGoal())

    assert second.stats.processed_count == 2


def test_larger_output_falls_back_to_original(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "a();"})

    outcome = Pipeline(_config(tree_builder)).run(CompressGoal(transforms={".js": PaddingTransform()}))

    assert tree_builder.read("dist/a-min.js") == "a();"
    (record,) = outcome.stats.files
    assert record.used_original
    assert record.after <= record.before


def test_manifest_incremental_runs(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "src/b.js": "var b = 2;"})
    config = _config(tree_builder, force=True)
    config.incremental.mode = "manifest"

    first = Pipeline(config).run(CompressGoal())
    assert first.stats.processed_count == 2
    assert (tree_builder.path(".assetmin") / "manifest_cache.json").is_file()

    second = Pipeline(config).run(CompressGoal())
    assert second.stats.processed_count == 0

    tree_builder.write({"src/b.js": "var b = 22;"})
    third = Pipeline(config).run(CompressGoal())
    assert [record.name for record in third.stats.files] == ["b.js"]
    assert tree_builder.read("dist/b-min.js") == "var b=22;"


def test_manifest_retries_files_whose_commit_failed(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "src/b.js": "var b = 2;"})
    blocker = tree_builder.path("dist/b-min.js")
    blocker.mkdir(parents=True)
    config = _config(tree_builder, force=True)
    config.incremental.mode = "manifest"

    first = Pipeline(config).run(CompressGoal())
    assert not first.success
    assert [record.name for record in first.stats.files] == ["a.js"]

    blocker.rmdir()
    second = Pipeline(config).run(CompressGoal())

    assert second.success
    assert [record.name for record in second.stats.files] == ["b.js"]
    assert tree_builder.read("dist/b-min.js") == "var b=2;"


def test_manifest_keeps_reporting_broken_sources(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/bad.js": "var s = \"open\n", "src/good.js": "var g = 1;"})
    config = _config(tree_builder, force=True)
    config.incremental.mode = "manifest"

    first = Pipeline(config).run(CompressGoal())
    second = Pipeline(config).run(CompressGoal())

    assert first.sink.error_count == 1
    assert second.sink.error_count == 1
    assert second.stats.processed_count == 0


def test_incremental_aggregation_rebuilds_only_when_inputs_changed(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/01.js": "var a = 1;", "src/02.js": "var b = 2;"})
    dist = tree_builder.path("dist")
    aggregation = Aggregation(output=dist / "all.js", input_dir=dist, includes=["*-min.js"], insert_new_line=True)
    config = _config(tree_builder, force=True, aggregations=[aggregation])
    config.incremental.mode = "manifest"

    Pipeline(config).run(CompressGoal())
    assert tree_builder.read("dist/all.js") == "var a=1;\nvar b=2;\n"

    (dist / "all.js").write_text("untouched", encoding="utf-8")
    Pipeline(config).run(CompressGoal())
    assert tree_builder.read("dist/all.js") == "untouched"

    tree_builder.write({"src/02.js": "var b = 22;"})
    Pipeline(config).run(CompressGoal())
    assert tree_builder.read("dist/all.js") == "var a=1;\nvar b=22;\n"


def test_aggregations_run_after_files_and_are_recorded(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/01.js": "var a = 1;", "src/02.js": "var b = 2;"})
    dist = tree_builder.path("dist")
    aggregation = Aggregation(output=dist / "all.js", includes=["01-min.js", "02-min.js"], fix_last_semicolon=False)

    outcome = Pipeline(_config(tree_builder, aggregations=[aggregation], gzip=True)).run(CompressGoal())

    assert tree_builder.read("dist/all.js") == "var a=1;var b=2;"
    assert (dist / "all.js.gz").is_file()
    assert (dist / "01-min.js.gz").is_file()
    (record,) = outcome.stats.aggregates
    assert record.name == "all.js"
    assert record.output_name == "all.js.gz"
    assert outcome.stats.input_bytes == 20


def test_aggregation_failure_is_isolated(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;"})
    root = tree_builder.path()
    broken = Aggregation(output=root / "dist" / "broken.js", input_dir=root / "missing", includes=["*.js"])
    working = Aggregation(output=root / "dist" / "all.js", includes=["a-min.js"])

    outcome = Pipeline(_config(tree_builder, aggregations=[broken, working])).run(CompressGoal())

    assert not outcome.success
    assert len(outcome.failures) == 1
    assert "broken.js" in outcome.failures[0]
    assert tree_builder.read("dist/all.js") == "var a=1;"


def test_pre_process_aggregates_runs_before_files(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "src/b.js": "var b = 2;"})
    src = tree_builder.path("src")
    aggregation = Aggregation(output=src / "all.js", includes=["a.js", "b.js"], remove_included=True)

    outcome = Pipeline(_config(tree_builder, aggregations=[aggregation], pre_process_aggregates=True)).run(
        CompressGoal()
    )

    assert outcome.success
    assert not (src / "a.js").exists()
    assert tree_builder.read("dist/all-min.js") == "var a=1;var b=2;"
    assert [record.name for record in outcome.stats.files] == ["all.js"]


def test_transform_errors_are_reported_not_fatal(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/bad.js": 'var s = "open\n', "src/good.js": "var g = 1;"})

    outcome = Pipeline(_config(tree_builder)).run(CompressGoal())

    assert outcome.success
    assert outcome.sink.error_count == 1
    assert outcome.sink.diagnostics[0].text.startswith("...bad.js:line 1:column 8:")
    assert not tree_builder.path("dist/bad-min.js").exists()
    assert tree_builder.read("dist/good-min.js") == "var g=1;"

    strict = Pipeline(_config(tree_builder, fail_on_error=True, force=True)).run(CompressGoal())
    assert not strict.success


def test_fail_on_warning(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "eval('x');"})

    relaxed = Pipeline(_config(tree_builder)).run(CompressGoal())
    strict = Pipeline(_config(tree_builder, warn=False, fail_on_warning=True, force=True)).run(CompressGoal())

    assert relaxed.success and relaxed.sink.warning_count == 1
    assert not strict.success and strict.sink.warning_count == 1


def test_warnings_dropped_when_disabled(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "eval('x');"})

    outcome = Pipeline(_config(tree_builder, warn=False)).run(CompressGoal())

    assert outcome.sink.warning_count == 0


def test_nocompress_copies_content(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;\n"})

    Pipeline(_config(tree_builder, nocompress=True)).run(CompressGoal())

    assert tree_builder.read("dist/a-min.js") == "var a = 1;\n"


def test_unknown_extensions_are_copied(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/notes.txt": "keep   me"})

    Pipeline(_config(tree_builder, includes=["**/*.txt"])).run(CompressGoal())

    assert tree_builder.read("dist/notes-min.txt") == "keep   me"


def test_minified_siblings_and_already_minified_files_are_skipped(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "src/a-min.js": "var a=1;", "src/lib-min.js": "x"})

    outcome = Pipeline(_config(tree_builder)).run(CompressGoal())

    assert outcome.stats.processed_count == 0
    assert not tree_builder.path("dist").exists()


def test_default_root_writes_beside_sources(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"js/a.js": "var a = 1;"})
    tree_builder.age("js/a.js")

    outcome = Pipeline(AssetminConfig(root=tree_builder.path())).run(CompressGoal())
    again = Pipeline(AssetminConfig(root=tree_builder.path())).run(CompressGoal())

    assert tree_builder.read("js/a-min.js") == "var a=1;"
    assert outcome.stats.processed_count == 1
    assert again.stats.processed_count == 0


def test_default_root_rebuilds_edited_sources(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"js/a.js": "var a = 1;"})
    tree_builder.age("js/a.js", seconds=300)
    Pipeline(AssetminConfig(root=tree_builder.path())).run(CompressGoal())

    tree_builder.write({"js/a.js": "var b = 2;"})
    tree_builder.age("js/a-min.js", seconds=120)
    edited = Pipeline(AssetminConfig(root=tree_builder.path())).run(CompressGoal())
    forced = Pipeline(AssetminConfig(root=tree_builder.path(), force=True)).run(CompressGoal())

    assert edited.stats.processed_count == 1
    assert forced.stats.processed_count == 1
    assert tree_builder.read("js/a-min.js") == "var b=2;"


def test_parallel_jobs_process_every_file(tree_builder: TreeBuilder) -> None:
    tree_builder.write({f"src/f{index:02d}.js": f"var v{index} = {index};" for index in range(12)})

    outcome = Pipeline(_config(tree_builder, jobs=4)).run(CompressGoal())

    assert outcome.stats.processed_count == 12
    assert tree_builder.read("dist/f07-min.js") == "var v7=7;"


def test_stale_temp_files_are_removed(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "dist/old-min.js.tmp": "partial"})

    Pipeline(_config(tree_builder)).run(CompressGoal())

    assert not tree_builder.path("dist/old-min.js.tmp").exists()


def test_missing_source_root_is_skipped(tree_builder: TreeBuilder) -> None:
    root = tree_builder.path()
    config = _config(tree_builder, roots=[RootSpec(source=root / "missing", destination=root / "dist")])

    outcome = Pipeline(config).run(CompressGoal())

    assert outcome.success
    assert outcome.stats.processed_count == 0


def test_missing_destination_aborts(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;"})
    root = tree_builder.path()
    config = _config(tree_builder, roots=[RootSpec(source=root / "src", destination=None)])

    with pytest.raises(MissingDestinationError):
        Pipeline(config).run(CompressGoal())


def test_skip_does_nothing(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;"})

    outcome = Pipeline(_config(tree_builder, skip=True)).run(CompressGoal())

    assert outcome.skipped and outcome.success
    assert not tree_builder.path("dist").exists()


def test_prefer_destination_reads_processed_copy(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"src/a.js": "var a = 1;", "dist/a.js": "var fromDest = 2;"})
    root = tree_builder.path()
    config = _config(
        tree_builder,
        roots=[RootSpec(source=root / "src", destination=root / "dist", prefer_destination=True)],
    )

    Pipeline(config).run(CompressGoal())

    assert tree_builder.read("dist/a-min.js") == "var fromDest=2;"


def test_lint_goal_reports_without_writing(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"js/a.js": "if (a == b) {\n  go();\n}\n", "css/site.css": "a{}"})

    outcome = Pipeline(AssetminConfig(root=tree_builder.path())).run(LintGoal())

    assert outcome.success
    assert [item.text for item in outcome.sink.diagnostics] == [
        "...a.js:line 1:column 6:Expected '===' and instead saw '=='.\n\tif (a == b) {"
    ]
    assert not tree_builder.path("js/a-min.js").exists()


def test_lint_goal_fails_on_warning_when_asked(tree_builder: TreeBuilder) -> None:
    tree_builder.write({"a.js": "debugger;\n"})

    outcome = Pipeline(AssetminConfig(root=tree_builder.path(), fail_on_warning=True)).run(LintGoal())

    assert not outcome.success
