from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

from .errors import StorageIOError

logger = logging.getLogger(__name__)


def _safe_unlink(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.debug("temp file cleanup failed path=%s err=%s", path, exc)


def ensure_dir(path: Path) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageIOError(f"Failed to create temp dir: {exc}") from exc
    return path


def unique_stem() -> str:
    return str(uuid.uuid4())


class TempFileGuard:
    """Owns a set of temp paths and removes them once released.

    The guard can be created on one thread and released on another, which is how the
    streaming relay hands its request file to the background worker thread.
    """

    def __init__(self, paths: List[Path] | None = None, *, keep: bool = False) -> None:
        self._paths: List[Path] = list(paths or [])
        self._keep = keep
        self._released = False

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def add(self, path: Path) -> Path:
        self._paths.append(path)
        return path

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._keep:
            logger.debug("keeping temp files %s", [str(p) for p in self._paths])
            return
        for path in self._paths:
            _safe_unlink(path)

    def __enter__(self) -> "TempFileGuard":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


def write_json_payload(tmp_dir: Path, tag: str, payload: Any, *, keep: bool = False) -> TempFileGuard:
    ensure_dir(tmp_dir)
    path = tmp_dir / f"{unique_stem()}_{tag}.json"
    try:
        path.write_text(json.dumps(payload), encoding="utf-8")
    except (OSError, TypeError, ValueError) as exc:
        raise StorageIOError(f"Failed to write {tag} payload: {exc}") from exc
    return TempFileGuard([path], keep=keep)


@contextmanager
def scoped_temp_paths(tmp_dir: Path, *suffixes: str, keep: bool = False) -> Iterator[List[Path]]:
    """Yield sibling temp paths sharing one unique stem, removed on exit."""
    ensure_dir(tmp_dir)
    stem = unique_stem()
    paths = [tmp_dir / f"{stem}{suffix}" for suffix in suffixes]
    guard = TempFileGuard(paths, keep=keep)
    try:
        yield paths
    finally:
        guard.release()
