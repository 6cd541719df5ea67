import base64
import itertools
from typing import Optional

import pytest

from conftest import b64, make_wav_bytes
from scribeline.asr.dispatcher import normalize_provider
from scribeline.asr.streaming import StreamingTranscriptionService
from scribeline.internal_core.contracts import TranscribeResponse
from scribeline.internal_core.errors import DecodeError, ProcessExitError, SessionNotFoundError
from scribeline.internal_core.session_store import SessionRegistry
from scribeline.relay.bus import EventBus


class FakeDispatcher:
    """Echoes the chunk bytes back as the transcript; `fail_on` bytes raise."""

    def __init__(self, default_provider: str = "local", fail_on: Optional[bytes] = None) -> None:
        self.default_provider = default_provider
        self.fail_on = fail_on
        self.calls = []

    def resolve_provider(self, override=None, settings=None):
        return normalize_provider(override or self.default_provider)

    def transcribe_bytes(self, audio_bytes, language=None, provider_override=None):
        self.calls.append((audio_bytes, language, provider_override))
        if self.fail_on is not None and audio_bytes == self.fail_on:
            raise ProcessExitError("Whisper", returncode=1, command="whisper-cli", stdout="", stderr="boom")
        text = "wav audio" if audio_bytes.startswith(b"RIFF") else audio_bytes.decode("utf-8")
        return TranscribeResponse(transcript=f" {text} ", provider=provider_override)


def _service(dispatcher: FakeDispatcher):
    bus = EventBus()
    return StreamingTranscriptionService(SessionRegistry(), dispatcher, bus), bus.subscribe()


@pytest.mark.parametrize(
    "order",
    list(itertools.permutations([(2, "world"), (0, "hello"), (1, "there")])),
)
def test_end_session_merges_submitted_chunks(order) -> None:
    service, _ = _service(FakeDispatcher())
    session_id = service.create_session("local")
    for index, word in order:
        service.submit_chunk(session_id, index, b64(word.encode("utf-8")))
    assert service.end_session(session_id) == "hello there world"


def test_session_pins_provider_for_every_chunk() -> None:
    dispatcher = FakeDispatcher(default_provider="openai-compatible")
    service, _ = _service(dispatcher)
    session_id = service.create_session()
    dispatcher.default_provider = "local"

    service.submit_chunk(session_id, 0, b64(b"a"))
    service.submit_chunk(session_id, 1, b64(b"b"))

    assert [call[2] for call in dispatcher.calls] == ["openai-compatible", "openai-compatible"]
    assert service.create_session("auto") != session_id
    assert service.registry.get_provider(session_id) == "openai-compatible"


def test_chunk_event_carries_text_provider_and_audio_metadata() -> None:
    service, sub = _service(FakeDispatcher())
    session_id = service.create_session("local")
    service.submit_chunk(session_id, 4, base64.b64encode(b"hi").decode("ascii"))
    service.submit_chunk(session_id, 5, b64(make_wav_bytes(duration_sec=0.5)))
    messages = sub.drain()

    assert [m.topic for m in messages] == ["transcription-chunk", "transcription-chunk"]
    data = messages[0].data
    assert data["sessionId"] == session_id
    assert data["chunkIndex"] == 4
    assert data["text"] == "hi"
    assert data["provider"] == "local"
    assert "audio" not in data

    wav_data = messages[1].data
    assert wav_data["text"] == "wav audio"
    assert wav_data["audio"]["duration_sec"] == 0.5
    assert wav_data["audio"]["sample_rate_hz"] == 16000
    assert wav_data["audio"]["rms"] > 0.0


def test_failed_chunk_publishes_error_and_raises() -> None:
    service, sub = _service(FakeDispatcher(fail_on=b"bad"))
    session_id = service.create_session("local")

    with pytest.raises(ProcessExitError):
        service.submit_chunk(session_id, 0, b64(b"bad"))

    messages = sub.drain()
    assert [m.topic for m in messages] == ["transcription-error"]
    assert messages[0].data["chunkIndex"] == 0
    assert "boom" in messages[0].data["error"]
    assert service.end_session(session_id) == ""


def test_unknown_session_and_bad_audio_publish_errors() -> None:
    service, sub = _service(FakeDispatcher())

    with pytest.raises(SessionNotFoundError):
        service.submit_chunk("missing", 0, b64(b"x"))

    session_id = service.create_session("local")
    with pytest.raises(DecodeError):
        service.submit_chunk(session_id, 0, "%%%")

    topics = [m.topic for m in sub.drain()]
    assert topics == ["transcription-error", "transcription-error"]


def test_chunk_racing_end_session_fails_with_session_not_found() -> None:
    dispatcher = FakeDispatcher()
    service, _ = _service(dispatcher)
    session_id = service.create_session("local")

    original = dispatcher.transcribe_bytes

    def end_during_transcription(audio_bytes, language=None, provider_override=None):
        result = original(audio_bytes, language, provider_override)
        service.end_session(session_id)
        return result

    dispatcher.transcribe_bytes = end_during_transcription
    with pytest.raises(SessionNotFoundError):
        service.submit_chunk(session_id, 0, b64(b"late"))


def test_truncated_wav_chunk_is_stored_once_and_published() -> None:
    service, sub = _service(FakeDispatcher())
    session_id = service.create_session("local")

    result = service.submit_chunk(session_id, 0, b64(make_wav_bytes(duration_sec=0.1)[:-1]))

    assert result["text"] == "wav audio"
    assert result["audio"]["sample_rate_hz"] == 16000
    assert [m.topic for m in sub.drain()] == ["transcription-chunk"]
    assert service.registry.snapshot(session_id).chunk_count == 1
    assert service.end_session(session_id) == "wav audio"
