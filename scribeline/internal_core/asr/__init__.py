from __future__ import annotations

from .base import TranscriptionBackend
from .remote import OpenAICompatibleBackend, remote_backend_configured
from .whisper_cpp import (
    WhisperCppBackend,
    build_whisper_command,
    diagnose_whisper,
    local_backend_status,
)

__all__ = [
    "TranscriptionBackend",
    "OpenAICompatibleBackend",
    "WhisperCppBackend",
    "build_whisper_command",
    "diagnose_whisper",
    "local_backend_status",
    "remote_backend_configured",
]
