"""
Transcription orchestration boundary.

Design intent:
- Pick a backend per call and hide its differences behind one response contract.
- Accumulate chunk transcripts per streaming session and merge them on end.
"""

from .dispatcher import TranscriptionDispatcher, normalize_provider
from .streaming import StreamingTranscriptionService

__all__ = ["TranscriptionDispatcher", "StreamingTranscriptionService", "normalize_provider"]
