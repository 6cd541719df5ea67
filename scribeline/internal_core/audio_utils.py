from __future__ import annotations

import base64
import binascii
import io
import wave
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from .errors import DecodeError, StorageIOError


def decode_audio_base64(audio_base64: str) -> bytes:
    try:
        return base64.b64decode(audio_base64 or "", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Failed to decode audio: {exc}") from exc


def write_audio_bytes(path: Path, audio_bytes: bytes) -> Path:
    try:
        path.write_bytes(audio_bytes)
    except OSError as exc:
        raise StorageIOError(f"Failed to write audio file: {exc}") from exc
    return path


def compute_rms(audio: np.ndarray) -> float:
    if audio.size == 0:
        return 0.0
    x = audio.astype(np.float32)
    return float(np.sqrt(np.mean(x * x)))


def describe_wav_bytes(audio_bytes: bytes) -> Optional[Dict[str, Any]]:
    """Best-effort duration/level summary of a 16-bit PCM WAV payload.

    Returns None for anything that is not a readable 16-bit WAV (e.g. webm chunks);
    callers only use this for progress metadata.
    """
    try:
        with wave.open(io.BytesIO(audio_bytes), "rb") as wf:
            channels = wf.getnchannels()
            rate = wf.getframerate()
            width = wf.getsampwidth()
            frames = wf.getnframes()
            raw = wf.readframes(frames)
    except (wave.Error, EOFError, ValueError):
        return None
    if width != 2 or rate <= 0:
        return None
    # Truncated recordings can end on half a sample.
    samples = np.frombuffer(raw[: len(raw) - len(raw) % 2], dtype="<i2")
    frames = min(frames, samples.size // max(channels, 1))
    audio = (samples.astype(np.float32) / 32768.0).clip(-1.0, 1.0)
    return {
        "duration_sec": round(frames / float(rate), 3),
        "sample_rate_hz": int(rate),
        "channels": int(channels),
        "rms": round(compute_rms(audio), 5),
    }
