"""Pipeline orchestration for the compress and lint goals."""

from __future__ import annotations

import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Set

from .aggregator import Aggregation, AggregationError, Aggregator
from .config import AssetminConfig, RootSpec
from .diagnostics import DiagnosticsSink
from .finalizer import (
    FinalizationError,
    OutputFinalizer,
    clean_stale_temp_files,
    temp_path_for,
)
from .incremental import GitDelta, IncrementalTracker, ManifestDelta
from .logging import get_logger
from .models import SourceFile
from .scanner import DEFAULT_INCLUDES, Scanner
from .stats import RunStatistics, SizeRecord
from .transforms import (
    CopyTransform,
    JavaScriptLinter,
    Transform,
    TransformError,
    build_transforms,
)


class PipelineError(RuntimeError):
    """Raised when a run cannot continue at all."""


class MissingDestinationError(PipelineError):
    """A configured source root has no destination."""


@dataclass
class RunContext:
    """Everything a goal needs while a run is in progress."""

    config: AssetminConfig
    stats: RunStatistics
    sink: DiagnosticsSink
    tracker: IncrementalTracker
    scanner: Scanner
    failures: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def fail(self, message: str) -> None:
        get_logger("pipeline").error(message)
        with self._lock:
            self.failures.append(message)


@dataclass
class RunOutcome:
    """Result of a pipeline run."""

    stats: RunStatistics
    sink: DiagnosticsSink
    failures: List[str]
    success: bool
    skipped: bool = False


class ProcessingGoal(ABC):
    """One kind of per-file work driven by the pipeline."""

    name = "goal"

    def default_includes(self) -> Sequence[str]:
        return DEFAULT_INCLUDES

    def before_run(self, run: RunContext) -> None:
        """Hook invoked once before any root is scanned."""

    @abstractmethod
    def process_file(self, source: SourceFile, run: RunContext) -> bool:
        """Handle one discovered file; return False when it must be looked at again next run.

        Raise only for failures of that file.
        """

    def after_run(self, run: RunContext) -> None:
        """Hook invoked once after every root was processed."""


class CompressGoal(ProcessingGoal):
    """Minifies each asset, commits it safely and builds the configured aggregates."""

    name = "compress"

    def __init__(
        self,
        transforms: Mapping[str, Transform] | None = None,
        finalizer: OutputFinalizer | None = None,
    ) -> None:
        self._transforms = dict(transforms) if transforms is not None else None
        self._finalizer = finalizer
        self.logger = get_logger("compress")

    @property
    def finalizer(self) -> OutputFinalizer:
        if self._finalizer is None:
            raise PipelineError("CompressGoal used before before_run()")
        return self._finalizer

    def before_run(self, run: RunContext) -> None:
        config = run.config
        if self._finalizer is None:
            self._finalizer = OutputFinalizer(
                use_smallest_file=config.use_smallest_file,
                gzip_enabled=config.gzip,
                gzip_level=config.gzip_level,
            )
        if self._transforms is None:
            self._transforms = build_transforms(config.transforms, encoding=config.encoding)

        for root in config.roots:
            if root.destination is not None:
                clean_stale_temp_files(root.destination)

        if config.pre_process_aggregates:
            self._aggregate(run)

    def after_run(self, run: RunContext) -> None:
        summary = run.stats.summary()
        if run.config.statistics and summary:
            self.logger.info(summary)
        if not run.config.pre_process_aggregates:
            self._aggregate(run)

    def transform_for(self, extension: str, nocompress: bool = False) -> Optional[Transform]:
        if nocompress:
            return CopyTransform()
        return (self._transforms or {}).get(extension.lower())

    def process_file(self, source: SourceFile, run: RunContext) -> bool:
        config = run.config
        in_path = source.to_source_path()
        out_path = source.to_destination_path(config.suffix)

        reason = self.finalizer.skip_reason(in_path, out_path, suffix=config.suffix, force=config.force)
        if reason is not None:
            self.logger.info("Skipping %s (%s)", in_path, reason)
            return True

        self.logger.debug("Compressing: %s -> %s", in_path, out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = temp_path_for(out_path)
        transform = self.transform_for(source.extension, config.nocompress)
        default_name = source.short_name()

        if transform is None:
            self.logger.debug("No transform for %s, copying", in_path.name)
            shutil.copyfile(in_path, temp_path)
        else:
            if config.nocompress:
                self.logger.info("Compression disabled, copying: %s", in_path.name)
            text = in_path.read_text(encoding=config.encoding)
            try:
                result = transform.transform(text, config.formatting())
            except TransformError as exc:
                for diagnostic in exc.diagnostics:
                    run.sink.report(diagnostic, path=in_path, default_name=default_name)
                return False
            for diagnostic in result.diagnostics:
                run.sink.report(diagnostic, path=in_path, default_name=default_name)
            with temp_path.open("w", encoding=config.encoding, newline="") as handle:
                handle.write(result.text)

        committed = self.finalizer.finalize(in_path, temp_path, out_path)
        run.tracker.record_output(committed.path)
        gzipped = self.finalizer.gzip_if_requested(committed.path)

        record = SizeRecord(
            name=in_path.name,
            output_name=committed.path.name,
            before=committed.source_size,
            after=committed.output_size,
            gzip_name=gzipped.name if gzipped else None,
            gzip_size=gzipped.stat().st_size if gzipped else None,
            used_original=committed.used_original,
        )
        run.stats.record_file(record)
        if config.statistics:
            self.logger.info(record.describe())
        return True

    def _aggregate(self, run: RunContext) -> None:
        if not run.config.aggregations:
            return
        aggregator = Aggregator(tracker=run.tracker, scanner=run.scanner)
        previously_included: Set[Path] = set()
        for aggregation in run.config.aggregations:
            self.logger.info("Generating aggregation: %s", aggregation.output)
            try:
                files = aggregator.run(aggregation, previously_included)
            except AggregationError as exc:
                run.fail(f"Aggregation {aggregation.output} failed: {exc}")
                continue
            previously_included.update(files)

            gzipped = self.finalizer.gzip_if_requested(Path(aggregation.output))
            self._record_aggregate(aggregation, gzipped, run)

    def _record_aggregate(
        self, aggregation: Aggregation, gzipped: Optional[Path], run: RunContext
    ) -> None:
        output = Path(aggregation.output)
        if not output.exists():
            if run.config.statistics:
                self.logger.warning("%s not created", output.name)
            return
        size = output.stat().st_size
        record = SizeRecord(
            name=output.name,
            output_name=gzipped.name if gzipped else output.name,
            before=size,
            after=gzipped.stat().st_size if gzipped else size,
        )
        run.stats.record_aggregate(record)
        if not run.config.statistics:
            return
        if gzipped is not None:
            self.logger.info(record.describe())
        else:
            self.logger.info("%s (%db)", output.name, size)


class LintGoal(ProcessingGoal):
    """Reports diagnostics for each JavaScript file without writing anything."""

    name = "lint"

    def __init__(self, linter: Transform | None = None) -> None:
        self.linter = linter or JavaScriptLinter()
        self.logger = get_logger("lint")

    def default_includes(self) -> Sequence[str]:
        return ("**/*.js",)

    def process_file(self, source: SourceFile, run: RunContext) -> bool:
        in_path = source.to_source_path()
        self.logger.info("Checking file: %s", in_path)
        text = in_path.read_text(encoding=run.config.encoding)
        default_name = source.short_name()
        try:
            result = self.linter.transform(text, run.config.formatting())
            diagnostics = result.diagnostics
        except TransformError as exc:
            diagnostics = exc.diagnostics
        for diagnostic in diagnostics:
            run.sink.report(diagnostic, path=in_path, default_name=default_name)
        return not any(diagnostic.is_error for diagnostic in diagnostics)


class Pipeline:
    """Scans every configured root and drives a goal over the selected files."""

    def __init__(
        self,
        config: AssetminConfig,
        *,
        scanner: Scanner | None = None,
        tracker: IncrementalTracker | None = None,
    ) -> None:
        self.config = config
        self.scanner = scanner or Scanner()
        self.tracker = tracker or build_tracker(config)
        self.logger = get_logger("pipeline")

    def run(self, goal: ProcessingGoal) -> RunOutcome:
        config = self.config
        stats = RunStatistics()
        sink = DiagnosticsSink(stats, accept_warnings=config.accept_warnings)
        if config.skip:
            self.logger.info("Execution of %s skipped", goal.name)
            return RunOutcome(stats=stats, sink=sink, failures=[], success=True, skipped=True)

        run = RunContext(
            config=config,
            stats=stats,
            sink=sink,
            tracker=self.tracker,
            scanner=self.scanner,
        )
        goal.before_run(run)
        for root in config.roots:
            self._process_root(goal, root, run)
        goal.after_run(run)

        self.logger.info(sink.summary())
        self.tracker.persist()

        success = not run.failures and not sink.should_fail(
            fail_on_warning=config.fail_on_warning,
            fail_on_error=config.fail_on_error,
        )
        if config.fail_on_warning and sink.warning_count > 0:
            self.logger.error("Warnings detected and fail_on_warning is enabled (see log)")
        return RunOutcome(stats=stats, sink=sink, failures=list(run.failures), success=success)

    def select(self, goal: ProcessingGoal, root: RootSpec) -> List[str]:
        """Return the names under ``root`` that the goal should look at."""
        includes = self.config.includes or list(goal.default_includes())
        excludes = list(root.excludes) + list(self.config.excludes)
        names = self.scanner.scan(root.source, includes, excludes)
        # Full builds still pass every path through the provider.
        return [name for name in names if self.tracker.has_delta(root.source / name)]

    def _process_root(self, goal: ProcessingGoal, root: RootSpec, run: RunContext) -> None:
        if not root.source.exists():
            self.logger.info("Directory %s does not exist", root.source)
            return
        if root.destination is None:
            raise MissingDestinationError(f"Destination directory for {root.source} is null")

        names = self.select(goal, root)
        if not names:
            if self.tracker.is_incremental_run():
                self.logger.info("No files have changed, skipping processing")
            else:
                self.logger.info("No files to process")
            return

        sources = [
            SourceFile.from_name(root.source, root.destination, name, root.prefer_destination)
            for name in names
        ]
        jobs = max(1, self.config.jobs)
        if jobs == 1 or len(sources) == 1:
            for source in sources:
                self._process_one(goal, source, run)
            return

        with ThreadPoolExecutor(max_workers=jobs) as pool:
            futures = [pool.submit(self._process_one, goal, source, run) for source in sources]
            for future in futures:
                future.result()

    def _process_one(self, goal: ProcessingGoal, source: SourceFile, run: RunContext) -> None:
        scanned = source.source_root / source.relative_path
        try:
            done = goal.process_file(source, run)
        except FinalizationError as exc:
            run.fail(str(exc))
            return
        except (OSError, ValueError) as exc:
            run.fail(f"Failed to process {scanned}: {exc}")
            return
        if done:
            run.tracker.record_processed(scanned)


def build_tracker(config: AssetminConfig) -> IncrementalTracker:
    """Create the tracker matching ``config.incremental.mode``."""
    settings = config.incremental
    if settings.mode == "manifest":
        state_dir = settings.state_dir or config.root / ".assetmin"
        return IncrementalTracker(ManifestDelta(state_dir))
    if settings.mode == "git":
        provider = GitDelta(config.root, diff_base=settings.diff_base)
        try:
            provider.changed_files()
        except (RuntimeError, OSError, subprocess.CalledProcessError) as exc:
            raise PipelineError(f"Cannot use git change detection: {exc}") from exc
        return IncrementalTracker(provider)
    return IncrementalTracker()


__all__ = [
    "CompressGoal",
    "LintGoal",
    "MissingDestinationError",
    "Pipeline",
    "PipelineError",
    "ProcessingGoal",
    "RunContext",
    "RunOutcome",
    "build_tracker",
]
