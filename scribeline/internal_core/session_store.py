from __future__ import annotations

"""
Streaming transcription session registry.

Design intent:
- One lock guards the whole map; each call holds it only for its own map operation.
- Chunks are kept in arrival order; finalize merges by chunk index with a stable sort.
- Finalize removes the session, so a second finalize fails instead of repeating the merge.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, List, Literal, Tuple

from .contracts import TranscriptionProviderName
from .errors import SessionNotFoundError

logger = logging.getLogger(__name__)

SessionState = Literal["created", "accumulating"]


@dataclass
class StreamingSession:
    provider: TranscriptionProviderName
    chunks: List[Tuple[int, str]] = field(default_factory=list)
    state: SessionState = "created"
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    provider: TranscriptionProviderName
    state: SessionState
    chunk_count: int
    chunk_indices: Tuple[int, ...]
    created_at: float
    updated_at: float


def merge_chunks(chunks: List[Tuple[int, str]]) -> str:
    # sorted() is stable, so equal indices keep their append order.
    ordered = sorted(chunks, key=lambda item: item[0])
    return " ".join(text for _, text in ordered)


class SessionRegistry:
    def __init__(self) -> None:
        self._lock = RLock()
        self._sessions: Dict[str, StreamingSession] = {}

    def create(self, provider: TranscriptionProviderName) -> str:
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = StreamingSession(provider=provider)
        logger.info("streaming session created session_id=%s provider=%s", session_id, provider)
        return session_id

    def _require(self, session_id: str) -> StreamingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def append_chunk(self, session_id: str, index: int, text: str) -> None:
        if index < 0:
            raise ValueError(f"chunk index must be >= 0, got {index}")
        with self._lock:
            session = self._require(session_id)
            session.chunks.append((int(index), text))
            session.state = "accumulating"
            session.updated_at = time.time()

    def get_provider(self, session_id: str) -> TranscriptionProviderName:
        with self._lock:
            return self._require(session_id).provider

    def snapshot(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._require(session_id)
            return SessionSnapshot(
                session_id=session_id,
                provider=session.provider,
                state=session.state,
                chunk_count=len(session.chunks),
                chunk_indices=tuple(index for index, _ in session.chunks),
                created_at=session.created_at,
                updated_at=session.updated_at,
            )

    def finalize(self, session_id: str) -> str:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        merged = merge_chunks(session.chunks)
        logger.info(
            "streaming session finalized session_id=%s chunks=%d chars=%d",
            session_id,
            len(session.chunks),
            len(merged),
        )
        return merged

    def discard(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("streaming session discarded session_id=%s", session_id)
        return removed is not None

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def cleanup_idle_sessions(self, max_idle_sec: float) -> int:
        cutoff = time.time() - max_idle_sec
        with self._lock:
            stale = [sid for sid, session in self._sessions.items() if session.updated_at <= cutoff]
            for sid in stale:
                self._sessions.pop(sid, None)
        for sid in stale:
            logger.warning("streaming session abandoned session_id=%s", sid)
        return len(stale)
