from __future__ import annotations

"""
User-editable settings persisted as camelCase JSON.

Design intent:
- Version 2 nests transcription/ai/export/ui sections.
- Version 1 files kept paths and language at the top level; they are still read,
  migrated on load, and never written back.
"""

import json
import logging
from pathlib import Path
from threading import RLock

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .contracts import TranscriptionProviderName
from .errors import DecodeError, StorageIOError

logger = logging.getLogger(__name__)

SETTINGS_VERSION = 2


class _SettingsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StreamingSettings(_SettingsModel):
    enabled: bool = True
    chunk_duration_ms: int = 5000
    overlap_ms: int = 500


class LocalTranscriptionSettings(_SettingsModel):
    whisper_path: str = ""
    model_path: str = ""
    model_name: str = ""
    beam_size: int = 5
    best_of: int = 5


class OpenAICompatibleSettings(_SettingsModel):
    endpoint: str = "https://api.openai.com/v1/audio/transcriptions"
    api_key: str = ""
    model: str = "whisper-1"


class TranscriptionSettings(_SettingsModel):
    provider: TranscriptionProviderName = "local"
    language: str = ""
    streaming: StreamingSettings = Field(default_factory=StreamingSettings)
    local: LocalTranscriptionSettings = Field(default_factory=LocalTranscriptionSettings)
    openai_compatible: OpenAICompatibleSettings = Field(default_factory=OpenAICompatibleSettings)


class AISettings(_SettingsModel):
    default_model: str = "gpt-4.1"


class ExportSettings(_SettingsModel):
    default_format: str = "markdown"
    local_path: str = ""


class UISettings(_SettingsModel):
    theme: str = "system"
    show_diagnostics: bool = False
    include_system_audio: bool = False


class AppSettings(_SettingsModel):
    version: int = SETTINGS_VERSION
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)
    ai: AISettings = Field(default_factory=AISettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    ui: UISettings = Field(default_factory=UISettings)

    # Version 1 layout; accepted on input only.
    whisper_path: str = Field(default="", exclude=True)
    model_path: str = Field(default="", exclude=True)
    language: str = Field(default="", exclude=True)
    include_system_audio: bool = Field(default=True, exclude=True)
    default_model: str = Field(default="", exclude=True)

    def migrate_from_v1(self) -> bool:
        if self.version >= SETTINGS_VERSION:
            return False
        if self.whisper_path:
            self.transcription.local.whisper_path = self.whisper_path
        if self.model_path:
            self.transcription.local.model_path = self.model_path
        if self.language:
            self.transcription.language = self.language
        self.ui.include_system_audio = self.include_system_audio
        if self.default_model:
            self.ai.default_model = self.default_model
        self.version = SETTINGS_VERSION
        return True

    def effective_whisper_path(self) -> str:
        return self.transcription.local.whisper_path or self.whisper_path

    def effective_model_path(self) -> str:
        return self.transcription.local.model_path or self.model_path

    def effective_language(self) -> str:
        return self.transcription.language or self.language or "en"

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2)


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, settings: AppSettings) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(settings.to_json(), encoding="utf-8")
        except OSError as exc:
            raise StorageIOError(f"Failed to save config: {exc}") from exc

    def load(self) -> AppSettings:
        with self._lock:
            if not self._path.exists():
                settings = AppSettings()
                self._write(settings)
                return settings
            try:
                raw = self._path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StorageIOError(f"Failed to read config: {exc}") from exc
            try:
                settings = AppSettings.model_validate_json(raw or "{}")
            except ValidationError as exc:
                raise DecodeError(f"Failed to parse config: {exc}") from exc
            # A file without "version" is read as current; effective_* still honor legacy keys.
            if settings.migrate_from_v1():
                logger.info("migrated settings to version %d path=%s", SETTINGS_VERSION, self._path)
                try:
                    self._write(settings)
                except StorageIOError as exc:
                    logger.warning("could not persist migrated settings: %s", exc)
            return settings

    def save(self, settings: AppSettings) -> AppSettings:
        with self._lock:
            settings.migrate_from_v1()
            self._write(settings)
            return settings
