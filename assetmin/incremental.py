"""Change detection for incremental runs."""

from __future__ import annotations

import hashlib
import json
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set

from .logging import get_logger

_CACHE_FILENAME = "manifest_cache.json"
_CACHE_VERSION = 1


class DeltaProvider(Protocol):
    """Source of truth for what changed since the previous invocation."""

    def is_incremental_run(self) -> bool:
        """Return True when only changed files should be processed."""

    def has_changed(self, path: Path) -> bool:
        """Return True when ``path`` changed since the reference point."""

    def processed(self, path: Path) -> None:
        """Record that ``path`` was handled successfully by this run."""

    def removed(self, path: Path) -> None:
        """Record that ``path`` was deleted by this run."""

    def persist(self) -> None:
        """Save whatever state the next run needs."""


class FullBuildDelta:
    """Provider used when no change detection is configured: everything is stale."""

    def is_incremental_run(self) -> bool:
        return False

    def has_changed(self, path: Path) -> bool:
        return True

    def processed(self, path: Path) -> None:
        return None

    def removed(self, path: Path) -> None:
        return None

    def persist(self) -> None:
        return None


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ManifestDelta:
    """Fingerprints files (size, mtime, sha256) in a JSON manifest between runs.

    The first run, or a run whose manifest is unreadable, is a full build. Later
    runs treat a file as changed when its size or mtime moved and its content
    hash no longer matches the recorded one. A new fingerprint is only kept
    once ``processed`` confirms the file, so failures are retried next time.
    """

    def __init__(self, state_dir: Path) -> None:
        self._path = Path(state_dir) / _CACHE_FILENAME
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, object]] = {}
        self._pending: Dict[str, Dict[str, object]] = {}
        self._loaded = self._load()
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    def is_incremental_run(self) -> bool:
        return self._loaded

    def has_changed(self, path: Path) -> bool:
        key = str(Path(path).absolute())
        try:
            stat_result = Path(path).stat()
        except FileNotFoundError:
            self.removed(path)
            return True

        size = stat_result.st_size
        mtime_ns = stat_result.st_mtime_ns
        with self._lock:
            cached = self._entries.get(key)
        if cached and cached.get("size") == size and cached.get("mtime_ns") == mtime_ns:
            return False

        file_hash = _hash_file(Path(path))
        entry: Dict[str, object] = {"size": size, "mtime_ns": mtime_ns, "hash": file_hash}
        with self._lock:
            if cached and cached.get("hash") == file_hash:
                # Touched only: the content was already processed.
                self._entries[key] = entry
                self._dirty = True
                return False
            self._pending[key] = entry
        return True

    def processed(self, path: Path) -> None:
        key = str(Path(path).absolute())
        with self._lock:
            entry = self._pending.pop(key, None)
            if entry is not None:
                self._entries[key] = entry
                self._dirty = True

    def removed(self, path: Path) -> None:
        key = str(Path(path).absolute())
        with self._lock:
            self._pending.pop(key, None)
            if self._entries.pop(key, None) is not None:
                self._dirty = True

    def persist(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            payload = {"version": _CACHE_VERSION, "files": self._entries}
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            self._dirty = False

    def _load(self) -> bool:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return False
        except (OSError, ValueError):
            return False

        if not isinstance(payload, dict) or payload.get("version") != _CACHE_VERSION:
            return False
        files = payload.get("files")
        if not isinstance(files, dict):
            return False

        for key, entry in files.items():
            if not isinstance(entry, dict):
                continue
            size = entry.get("size")
            mtime_ns = entry.get("mtime_ns")
            file_hash = entry.get("hash")
            if (
                isinstance(key, str)
                and isinstance(size, int)
                and isinstance(mtime_ns, int)
                and isinstance(file_hash, str)
            ):
                self._entries[key] = {"size": size, "mtime_ns": mtime_ns, "hash": file_hash}
        return True


class GitDelta:
    """Treats files touched since ``diff_base`` (committed or not) as changed."""

    def __init__(
        self,
        repo_path: Path,
        diff_base: str = "origin/main",
        runner: Callable[..., str] | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self.diff_base = diff_base
        self._runner = runner or self._default_runner
        self._changed: Optional[Set[str]] = None

    def is_incremental_run(self) -> bool:
        return True

    def has_changed(self, path: Path) -> bool:
        changed = self.changed_files()
        try:
            rel_path = Path(path).resolve().relative_to(self.repo_path).as_posix()
        except ValueError:
            # Outside the repository: git cannot vouch for it.
            return True
        return rel_path in changed

    def processed(self, path: Path) -> None:
        return None

    def removed(self, path: Path) -> None:
        return None

    def persist(self) -> None:
        return None

    def changed_files(self) -> Set[str]:
        if self._changed is None:
            if not (self.repo_path / ".git").exists():
                raise RuntimeError(f"{self.repo_path} is not a Git repository")
            self._changed = set(self._collect())
        return self._changed

    def _collect(self) -> List[str]:
        args = ["git", "diff", "--name-only", f"{self.diff_base}...HEAD"]
        output = self._runner(args, cwd=self.repo_path, capture_output=True)
        files = [line.strip() for line in output.splitlines() if line.strip()]
        # Include staged and unstaged work relative to HEAD.
        status = self._runner(["git", "status", "--short"], cwd=self.repo_path, capture_output=True)
        for line in status.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            path = stripped.split(maxsplit=1)[-1]
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            if path not in files:
                files.append(path)
        return files

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        import subprocess

        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
        return completed.stdout if capture_output else ""


class IncrementalTracker:
    """Run-scoped record of written outputs, backed by a delta provider."""

    def __init__(self, provider: DeltaProvider | None = None) -> None:
        self.provider: DeltaProvider = provider or FullBuildDelta()
        self._outputs: Set[str] = set()
        self._lock = threading.Lock()
        self.logger = get_logger("incremental")

    def is_incremental_run(self) -> bool:
        return self.provider.is_incremental_run()

    def has_delta(self, path: Path) -> bool:
        # The provider sees every path, full builds included.
        changed = self.provider.has_changed(path)
        return changed or not self.is_incremental_run()

    def record_processed(self, path: Path) -> None:
        """Confirm that the source at ``path`` was handled; failed files stay stale."""
        self.provider.processed(Path(path))

    def record_output(self, path: Path) -> None:
        with self._lock:
            self._outputs.add(os.path.abspath(path))

    def record_removed(self, path: Path) -> None:
        self.logger.debug("Removed %s", path)
        with self._lock:
            self._outputs.discard(os.path.abspath(path))
        self.provider.removed(Path(path))

    def any_output_matches(self, candidates: Iterable[Path]) -> bool:
        with self._lock:
            outputs = set(self._outputs)
        return any(os.path.abspath(candidate) in outputs for candidate in candidates)

    @property
    def outputs(self) -> Set[str]:
        with self._lock:
            return set(self._outputs)

    def persist(self) -> None:
        self.provider.persist()


__all__ = [
    "DeltaProvider",
    "FullBuildDelta",
    "GitDelta",
    "IncrementalTracker",
    "ManifestDelta",
]
