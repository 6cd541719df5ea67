from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import List

from pydantic import TypeAdapter, ValidationError

from scribeline.internal_core.contracts import MeetingRecord
from scribeline.internal_core.errors import DecodeError, StorageIOError

logger = logging.getLogger(__name__)

_MEETING_LIST = TypeAdapter(List[MeetingRecord])


class MeetingStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[MeetingRecord]:
        with self._lock:
            if not self._path.exists():
                return []
            try:
                raw = self._path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StorageIOError(f"Failed to read meetings: {exc}") from exc
            try:
                return _MEETING_LIST.validate_json(raw)
            except ValidationError as exc:
                raise DecodeError(f"Failed to parse meetings: {exc}") from exc

    def save(self, meetings: List[MeetingRecord]) -> None:
        payload = [m.model_dump(by_alias=True) for m in meetings]
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            except OSError as exc:
                raise StorageIOError(f"Failed to save meetings: {exc}") from exc
        logger.info("meetings saved count=%d path=%s", len(meetings), self._path)
