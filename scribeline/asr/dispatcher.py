from __future__ import annotations

"""
Provider selection for speech-to-text.

Design intent:
- Settings are re-read on every call so resolved binaries, models and API keys
  always reflect the current configuration.
- Selection order: explicit per-call override, else the configured provider;
  "auto" and an empty value both mean the local backend.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from scribeline.internal_core.asr import (
    OpenAICompatibleBackend,
    TranscriptionBackend,
    WhisperCppBackend,
    local_backend_status,
    remote_backend_configured,
)
from scribeline.internal_core.audio_utils import decode_audio_base64
from scribeline.internal_core.contracts import ConcreteProviderName, TranscribeResponse
from scribeline.internal_core.errors import ConfigurationError
from scribeline.internal_core.settings_store import AppSettings

logger = logging.getLogger(__name__)

_PROVIDER_ALIASES: Dict[str, ConcreteProviderName] = {
    "": "local",
    "auto": "local",
    "local": "local",
    "openai-compatible": "openai-compatible",
    "openai_compatible": "openai-compatible",
    "openaicompatible": "openai-compatible",
    "remote": "openai-compatible",
}


def normalize_provider(raw: Optional[str]) -> ConcreteProviderName:
    key = (raw or "").strip().lower()
    provider = _PROVIDER_ALIASES.get(key)
    if provider is None:
        raise ConfigurationError(f"Unknown transcription provider: {raw}")
    return provider


class TranscriptionDispatcher:
    def __init__(
        self,
        settings_loader: Callable[[], AppSettings],
        tmp_dir: Path,
        *,
        keep_temp_files: bool = False,
        local_timeout_sec: Optional[float] = None,
        remote_timeout_sec: Optional[float] = None,
    ) -> None:
        self._settings_loader = settings_loader
        self._tmp_dir = tmp_dir
        self._keep_temp_files = keep_temp_files
        self._local_timeout_sec = local_timeout_sec
        self._remote_timeout_sec = remote_timeout_sec

    def resolve_provider(
        self, override: Optional[str] = None, settings: Optional[AppSettings] = None
    ) -> ConcreteProviderName:
        if override is not None and override.strip():
            return normalize_provider(override)
        current = settings if settings is not None else self._settings_loader()
        return normalize_provider(current.transcription.provider)

    def backend_for(self, provider: ConcreteProviderName, settings: AppSettings) -> TranscriptionBackend:
        if provider == "openai-compatible":
            return OpenAICompatibleBackend(settings, timeout_sec=self._remote_timeout_sec)
        return WhisperCppBackend(
            settings,
            self._tmp_dir,
            keep_temp_files=self._keep_temp_files,
            timeout_sec=self._local_timeout_sec,
        )

    def transcribe_bytes(
        self,
        audio_bytes: bytes,
        language: Optional[str] = None,
        provider_override: Optional[str] = None,
    ) -> TranscribeResponse:
        settings = self._settings_loader()
        provider = self.resolve_provider(provider_override, settings)
        backend = self.backend_for(provider, settings)
        logger.info("transcribe provider=%s bytes=%d", backend.name(), len(audio_bytes))
        return backend.transcribe(audio_bytes, language)

    def transcribe(
        self,
        audio_base64: str,
        language: Optional[str] = None,
        provider_override: Optional[str] = None,
    ) -> TranscribeResponse:
        audio_bytes = decode_audio_base64(audio_base64)
        return self.transcribe_bytes(audio_bytes, language, provider_override)

    def transcription_status(self) -> Dict[str, Any]:
        settings = self._settings_loader()
        local_ok, local_reason = local_backend_status(settings)
        streaming = settings.transcription.streaming
        return {
            "provider": settings.transcription.provider,
            "effectiveProvider": self.resolve_provider(None, settings),
            "language": settings.effective_language(),
            "streaming": streaming.model_dump(by_alias=True),
            "localConfigured": local_ok,
            "localReason": local_reason,
            "remoteConfigured": remote_backend_configured(settings),
        }
