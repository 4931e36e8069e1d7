"""Configuration loading for assetmin (.assetmin.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .aggregator import Aggregation
from .transforms import FormattingOptions

CONFIG_FILENAME = ".assetmin.yml"
INCREMENTAL_MODES = ("none", "manifest", "git")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or holds invalid values."""


@dataclass
class RootSpec:
    """A source tree and the tree its processed files are written to."""

    source: Path
    destination: Optional[Path]
    excludes: List[str] = field(default_factory=list)
    prefer_destination: bool = False


@dataclass
class IncrementalConfig:
    """Change detection settings."""

    mode: str = "none"
    diff_base: str = "origin/main"
    state_dir: Optional[Path] = None


@dataclass
class AssetminConfig:
    """Represents the settings defined in .assetmin.yml."""

    root: Path
    roots: List[RootSpec] = field(default_factory=list)
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    suffix: str = "-min"
    encoding: str = "utf-8"
    line_break_pos: int = -1
    nocompress: bool = False
    munge: bool = True
    preserve_semicolons: bool = False
    disable_optimizations: bool = False
    warn: bool = True
    fail_on_warning: bool = False
    fail_on_error: bool = False
    force: bool = False
    gzip: bool = False
    gzip_level: int = 9
    statistics: bool = True
    use_smallest_file: bool = True
    pre_process_aggregates: bool = False
    jobs: int = 1
    skip: bool = False
    incremental: IncrementalConfig = field(default_factory=IncrementalConfig)
    transforms: Dict[str, List[str]] = field(default_factory=dict)
    aggregations: List[Aggregation] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.roots:
            self.roots = [RootSpec(source=self.root, destination=self.root)]
        if self.incremental.state_dir is None:
            self.incremental.state_dir = self.root / ".assetmin"

    @property
    def accept_warnings(self) -> bool:
        return self.warn or self.fail_on_warning

    def formatting(self) -> FormattingOptions:
        return FormattingOptions(
            line_break_pos=self.line_break_pos,
            munge=self.munge,
            preserve_semicolons=self.preserve_semicolons,
            disable_optimizations=self.disable_optimizations,
            warn=self.accept_warnings,
        )


def load_config(config_path: Path) -> AssetminConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return AssetminConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    gzip_level = _as_int(data.get("gzip_level"))
    if gzip_level is None:
        gzip_level = 9
    if not 0 <= gzip_level <= 9:
        raise ConfigError(f"gzip_level must be between 0 and 9, got {gzip_level}")

    jobs = _as_int(data.get("jobs"))
    if jobs is not None and jobs < 1:
        raise ConfigError(f"jobs must be at least 1, got {jobs}")

    suffix = _as_str(data.get("suffix"))
    if _flag(data, "nosuffix", False):
        suffix = ""

    line_break_pos = _as_int(data.get("line_break_pos"))

    return AssetminConfig(
        root=root,
        roots=_parse_roots(data.get("roots"), root),
        includes=_as_str_list(data.get("includes")),
        excludes=_as_str_list(data.get("excludes")),
        suffix=suffix if suffix is not None else "-min",
        encoding=_as_str(data.get("encoding")) or "utf-8",
        line_break_pos=line_break_pos if line_break_pos is not None else -1,
        nocompress=_flag(data, "nocompress", False),
        munge=not _flag(data, "nomunge", False),
        preserve_semicolons=_flag(data, "preserve_semicolons", False),
        disable_optimizations=_flag(data, "disable_optimizations", False),
        warn=_flag(data, "warn", True),
        fail_on_warning=_flag(data, "fail_on_warning", False),
        fail_on_error=_flag(data, "fail_on_error", False),
        force=_flag(data, "force", False),
        gzip=_flag(data, "gzip", False),
        gzip_level=gzip_level,
        statistics=_flag(data, "statistics", True),
        use_smallest_file=_flag(data, "use_smallest_file", True),
        pre_process_aggregates=_flag(data, "pre_process_aggregates", False),
        jobs=jobs or 1,
        skip=_flag(data, "skip", False),
        incremental=_parse_incremental(data.get("incremental"), root),
        transforms=_parse_transforms(data.get("transforms")),
        aggregations=_parse_aggregations(data.get("aggregations"), root),
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _parse_roots(value: Any, root: Path) -> List[RootSpec]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("roots must be a list of mappings")
    roots: List[RootSpec] = []
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"roots[{index}] must be a mapping")
        source = _as_str(item.get("source"))
        if not source:
            raise ConfigError(f"roots[{index}] requires a source")
        source_path = _resolve_path(root, source)
        # An explicit null destination is kept and rejected when the run starts.
        if "destination" in item and item["destination"] is None:
            destination: Optional[Path] = None
        else:
            dest = _as_str(item.get("destination"))
            destination = _resolve_path(root, dest) if dest else source_path
        roots.append(
            RootSpec(
                source=source_path,
                destination=destination,
                excludes=_as_str_list(item.get("excludes")),
                prefer_destination=_flag(item, "prefer_destination", False),
            )
        )
    return roots


def _parse_incremental(value: Any, root: Path) -> IncrementalConfig:
    if value is None:
        return IncrementalConfig(state_dir=root / ".assetmin")
    if isinstance(value, str):
        value = {"mode": value}
    if not isinstance(value, dict):
        raise ConfigError("incremental must be a mapping or a mode name")
    mode = (_as_str(value.get("mode")) or "none").lower()
    if mode not in INCREMENTAL_MODES:
        raise ConfigError(
            f"Unknown incremental mode '{mode}' (expected one of {', '.join(INCREMENTAL_MODES)})"
        )
    state_dir = _as_str(value.get("state_dir")) or ".assetmin"
    return IncrementalConfig(
        mode=mode,
        diff_base=_as_str(value.get("diff_base")) or "origin/main",
        state_dir=_resolve_path(root, state_dir),
    )


def _parse_transforms(value: Any) -> Dict[str, List[str]]:
    mapping = _as_dict(value)
    transforms: Dict[str, List[str]] = {}
    for extension, command in mapping.items():
        parts = command.split() if isinstance(command, str) else _as_str_list(command)
        if not parts:
            raise ConfigError(f"transforms[{extension!r}] must name a command")
        transforms[str(extension)] = parts
    return transforms


def _parse_aggregations(value: Any, root: Path) -> List[Aggregation]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("aggregations must be a list of mappings")
    aggregations: List[Aggregation] = []
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"aggregations[{index}] must be a mapping")
        output = _as_str(item.get("output"))
        if not output:
            raise ConfigError(f"aggregations[{index}] requires an output")
        input_dir = _as_str(item.get("input_dir"))
        aggregations.append(
            Aggregation(
                output=_resolve_path(root, output),
                input_dir=_resolve_path(root, input_dir) if input_dir else None,
                includes=_as_str_list(item.get("includes")),
                excludes=_as_str_list(item.get("excludes")),
                remove_included=_flag(item, "remove_included", False),
                insert_new_line=_flag(item, "insert_new_line", False),
                insert_file_header=_flag(item, "insert_file_header", False),
                fix_last_semicolon=_flag(item, "fix_last_semicolon", False),
                auto_exclude_wildcards=_flag(item, "auto_exclude_wildcards", False),
            )
        )
    return aggregations


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _flag(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = _as_bool(data.get(key))
    return default if value is None else value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"Expected an integer, got {value!r}") from None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "AssetminConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "IncrementalConfig",
    "RootSpec",
    "load_config",
]
