from __future__ import annotations

"""
Incremental transcription over successive audio chunks.

Design intent:
- A session pins its provider when it is created; every chunk reuses it.
- The registry lock is never held across a transcription call: the provider is
  read, the chunk is transcribed, then the text is appended in a separate call.
- Progress and failures are published on the bus as `transcription-chunk` and
  `transcription-error`; failures are also raised to the submitting caller.
"""

import logging
import time
from typing import Any, Dict, Optional

from scribeline.internal_core.audio_utils import decode_audio_base64, describe_wav_bytes
from scribeline.internal_core.errors import ScribeError
from scribeline.internal_core.session_store import SessionRegistry
from scribeline.relay.bus import EventBus

from .dispatcher import TranscriptionDispatcher

logger = logging.getLogger(__name__)

CHUNK_TOPIC = "transcription-chunk"
ERROR_TOPIC = "transcription-error"


class StreamingTranscriptionService:
    def __init__(
        self,
        registry: SessionRegistry,
        dispatcher: TranscriptionDispatcher,
        bus: EventBus,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._bus = bus

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def create_session(self, provider: Optional[str] = None) -> str:
        pinned = self._dispatcher.resolve_provider(provider)
        return self._registry.create(pinned)

    def _publish_error(self, session_id: str, chunk_index: int, provider: Optional[str], message: str) -> None:
        self._bus.publish(
            ERROR_TOPIC,
            {
                "sessionId": session_id,
                "chunkIndex": chunk_index,
                "error": message,
                "provider": provider,
            },
        )

    def submit_chunk(
        self,
        session_id: str,
        chunk_index: int,
        audio_base64: str,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        provider: Optional[str] = None
        t0 = time.time()
        try:
            provider = self._registry.get_provider(session_id)
            audio_bytes = decode_audio_base64(audio_base64)
            response = self._dispatcher.transcribe_bytes(audio_bytes, language, provider)
            text = response.transcript.strip()
            audio = describe_wav_bytes(audio_bytes)
            self._registry.append_chunk(session_id, chunk_index, text)
        except (ScribeError, ValueError) as exc:
            message = exc.message if isinstance(exc, ScribeError) else str(exc)
            logger.warning(
                "chunk failed session_id=%s chunk=%s provider=%s err=%s",
                session_id,
                chunk_index,
                provider,
                message,
            )
            self._publish_error(session_id, chunk_index, provider, message)
            raise

        data: Dict[str, Any] = {
            "sessionId": session_id,
            "chunkIndex": chunk_index,
            "text": text,
            "provider": provider,
            "elapsedMs": int((time.time() - t0) * 1000),
        }
        if audio is not None:
            data["audio"] = audio
        self._bus.publish(CHUNK_TOPIC, data)
        logger.info(
            "chunk transcribed session_id=%s chunk=%s chars=%d elapsed_ms=%d",
            session_id,
            chunk_index,
            len(text),
            data["elapsedMs"],
        )
        return data

    def end_session(self, session_id: str) -> str:
        return self._registry.finalize(session_id)
