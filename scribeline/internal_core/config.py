from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # scribeline/internal_core/config.py -> scribeline -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_opt_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    parsed = float(value)
    return parsed if parsed > 0 else None


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class ServiceConfig:
    SCRIBE_DATA_DIR: str
    SCRIBE_TMP_DIR: str
    SCRIBE_KEEP_TEMP_FILES: bool
    SCRIBE_WORKER_SCRIPTS_DIR: str
    SCRIBE_WORKER_RUNTIME: str
    SCRIBE_STREAMING_ENV_VAR: str
    SCRIBE_WORKER_TIMEOUT_SEC: Optional[float]
    SCRIBE_REMOTE_TIMEOUT_SEC: Optional[float]
    SCRIBE_EVENT_QUEUE_SIZE: int
    SCRIBE_EXPORT_DIR: str
    SCRIBE_LOG_LEVEL: str
    SCRIBE_LOG_DIR: str

    def data_dir_path(self) -> Path:
        return Path(self.SCRIBE_DATA_DIR).expanduser().resolve()

    def tmp_dir_path(self) -> Path:
        return Path(self.SCRIBE_TMP_DIR).expanduser().resolve()

    def worker_scripts_dir_path(self) -> Path:
        return Path(self.SCRIBE_WORKER_SCRIPTS_DIR).expanduser().resolve()

    def settings_path(self) -> Path:
        return self.data_dir_path() / "settings.json"

    def meetings_path(self) -> Path:
        return self.data_dir_path() / "meetings.json"

    def worker_runtime_prefix(self) -> list[str]:
        runtime = self.SCRIBE_WORKER_RUNTIME.strip()
        return [runtime] if runtime else []


def _default_export_dir() -> str:
    documents = Path.home() / "Documents"
    base = documents if documents.is_dir() else Path(tempfile.gettempdir())
    return str(base / "Scribeline")


def load_config() -> ServiceConfig:
    project_root = _project_root()
    return ServiceConfig(
        SCRIBE_DATA_DIR=_getenv_str("SCRIBE_DATA_DIR", str(project_root / "data")),
        SCRIBE_TMP_DIR=_getenv_str(
            "SCRIBE_TMP_DIR", str(Path(tempfile.gettempdir()) / "scribeline")
        ),
        SCRIBE_KEEP_TEMP_FILES=_getenv_bool("SCRIBE_KEEP_TEMP_FILES", False),
        SCRIBE_WORKER_SCRIPTS_DIR=_getenv_str(
            "SCRIBE_WORKER_SCRIPTS_DIR", str(project_root / "workers")
        ),
        SCRIBE_WORKER_RUNTIME=_getenv_str("SCRIBE_WORKER_RUNTIME", "node"),
        SCRIBE_STREAMING_ENV_VAR=_getenv_str("SCRIBE_STREAMING_ENV_VAR", "STREAMING"),
        SCRIBE_WORKER_TIMEOUT_SEC=_getenv_opt_float("SCRIBE_WORKER_TIMEOUT_SEC"),
        SCRIBE_REMOTE_TIMEOUT_SEC=_getenv_opt_float("SCRIBE_REMOTE_TIMEOUT_SEC"),
        SCRIBE_EVENT_QUEUE_SIZE=max(0, _getenv_int("SCRIBE_EVENT_QUEUE_SIZE", 1000)),
        SCRIBE_EXPORT_DIR=_getenv_str("SCRIBE_EXPORT_DIR", _default_export_dir()),
        SCRIBE_LOG_LEVEL=_getenv_str("SCRIBE_LOG_LEVEL", "INFO"),
        SCRIBE_LOG_DIR=_getenv_str("SCRIBE_LOG_DIR", str(project_root / "logs")),
    )
