from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..contracts import TranscribeResponse


class TranscriptionBackend(ABC):
    @abstractmethod
    def transcribe(self, audio_bytes: bytes, language: Optional[str] = None) -> TranscribeResponse: ...

    @abstractmethod
    def name(self) -> str: ...
