from __future__ import annotations

import logging
from typing import Optional

import requests

from ..contracts import TranscribeResponse
from ..errors import ConfigurationError, DecodeError, RemoteAPIError
from ..settings_store import AppSettings
from .base import TranscriptionBackend

logger = logging.getLogger(__name__)


def remote_backend_configured(settings: AppSettings) -> bool:
    remote = settings.transcription.openai_compatible
    return bool(remote.api_key.strip()) and bool(remote.endpoint.strip())


class OpenAICompatibleBackend(TranscriptionBackend):
    """Speech-to-text over an OpenAI-compatible `/audio/transcriptions` endpoint."""

    def __init__(self, settings: AppSettings, timeout_sec: Optional[float] = None) -> None:
        self._settings = settings
        self._timeout_sec = timeout_sec

    def name(self) -> str:
        return "openai-compatible"

    def transcribe(self, audio_bytes: bytes, language: Optional[str] = None) -> TranscribeResponse:
        remote = self._settings.transcription.openai_compatible
        if not remote.api_key.strip():
            raise ConfigurationError("OpenAI-compatible API key not configured")
        if not remote.endpoint.strip():
            raise ConfigurationError("OpenAI-compatible endpoint not configured")

        data = {"model": remote.model}
        lang = language if language is not None else self._settings.effective_language()
        if lang.strip():
            data["language"] = lang

        try:
            response = requests.post(
                remote.endpoint,
                headers={"Authorization": f"Bearer {remote.api_key}"},
                files={"file": ("audio.wav", audio_bytes, "audio/wav")},
                data=data,
                timeout=self._timeout_sec,
            )
        except requests.RequestException as exc:
            raise RemoteAPIError(f"Failed to call transcription API: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body = response.text or ""
            logger.warning("transcription API failed status=%s", response.status_code)
            raise RemoteAPIError(
                f"Transcription API failed ({response.status_code}): {body}",
                status=response.status_code,
                body=body,
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise DecodeError(f"Failed to parse API response: {exc}") from exc

        text = result.get("text") if isinstance(result, dict) else None
        return TranscribeResponse(
            transcript=text if isinstance(text, str) else "",
            command=f"POST {remote.endpoint}",
            provider="openai-compatible",
        )
