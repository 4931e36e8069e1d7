"""CLI entrypoints for assetmin commands."""

from __future__ import annotations

import argparse
from pathlib import Path

from .config import CONFIG_FILENAME, INCREMENTAL_MODES, AssetminConfig, ConfigError, load_config
from .logging import configure_logging
from .pipeline import CompressGoal, LintGoal, Pipeline, PipelineError, ProcessingGoal


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_quiet_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Only log warnings and errors.",
    )


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Project directory holding the assets (defaults to current directory).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Configuration file (defaults to <path>/{CONFIG_FILENAME}).",
    )
    parser.add_argument(
        "--incremental",
        choices=INCREMENTAL_MODES,
        default=None,
        help="Change detection to use instead of the configured one.",
    )
    parser.add_argument(
        "--diff-base",
        default=None,
        help="Commit or ref to compare against with --incremental git.",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=None,
        help="Number of files processed in parallel within a root.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write the log to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetmin",
        description="Minify, aggregate and check JavaScript/CSS assets incrementally.",
    )
    _add_verbose_option(parser)
    _add_quiet_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    compress_parser = subparsers.add_parser(
        "compress",
        help="Minify assets and build the configured aggregations.",
    )
    _add_verbose_option(compress_parser, suppress_default=True)
    _add_quiet_option(compress_parser, suppress_default=True)
    _add_run_options(compress_parser)
    compress_parser.add_argument(
        "--force",
        action="store_true",
        help="Reprocess files even when their output is newer than the source.",
    )
    compress_parser.add_argument(
        "--gzip",
        action="store_true",
        help="Write a .gz sidecar next to every output.",
    )

    lint_parser = subparsers.add_parser(
        "lint",
        help="Report suspicious constructs in JavaScript sources.",
    )
    _add_verbose_option(lint_parser, suppress_default=True)
    _add_quiet_option(lint_parser, suppress_default=True)
    _add_run_options(lint_parser)

    return parser


def _load(args: argparse.Namespace) -> AssetminConfig:
    config_path = Path(args.config) if args.config else Path(args.path)
    config = load_config(config_path)
    if getattr(args, "force", False):
        config.force = True
    if getattr(args, "gzip", False):
        config.gzip = True
    if args.incremental:
        config.incremental.mode = args.incremental
    if args.diff_base:
        config.incremental.diff_base = args.diff_base
    if args.jobs is not None:
        if args.jobs < 1:
            raise ConfigError(f"--jobs must be at least 1, got {args.jobs}")
        config.jobs = args.jobs
    return config


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for assetmin commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=args.log_file
    )

    try:
        config = _load(args)
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")

    goal: ProcessingGoal
    if args.command == "compress":
        goal = CompressGoal()
    elif args.command == "lint":
        goal = LintGoal()
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")

    try:
        outcome = Pipeline(config).run(goal)
    except PipelineError as exc:
        parser.exit(1, f"assetmin {args.command} failed: {exc}\n")

    if not outcome.success:
        reasons = list(outcome.failures)
        if not reasons:
            reasons.append(outcome.sink.summary())
        parser.exit(
            1,
            f"assetmin {args.command} failed: {'; '.join(reasons)}\n"
            "Run with --verbose for more details.\n",
        )

    summary = outcome.stats.summary() if args.command == "compress" else None
    print(summary or outcome.sink.summary())
