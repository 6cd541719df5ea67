from __future__ import annotations

"""
HTTP and WebSocket surface for the Scribeline backend.

Design intent:
- Keep handlers thin: validate, call the service object, map errors.
- Blocking calls (worker runs, transcription) use sync handlers so they run in
  the threadpool; streaming starts return immediately and report via the bus.
- `/ws/events` forwards bus messages for the requested topics.
"""

import asyncio
import contextlib
import logging
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from scribeline.internal_core.asr import diagnose_whisper
from scribeline.internal_core.config import ServiceConfig, load_config
from scribeline.internal_core.contracts import MeetingRecord, TranscribeResponse
from scribeline.internal_core.errors import ScribeError
from scribeline.internal_core.logging_setup import configure_logging
from scribeline.internal_core.settings_store import AppSettings
from scribeline.meetings.export import export_meeting_markdown
from scribeline.relay.subprocess_relay import RelayHandle
from scribeline.services import ScribeServices
from scribeline.utils.model_paths import list_local_models

logger = logging.getLogger(__name__)


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class TranscribeRequest(_ApiModel):
    audio_base64: str
    language: Optional[str] = Field(default=None, max_length=16)
    provider: Optional[str] = None


class DiagnoseRequest(_ApiModel):
    whisper_path: Optional[str] = None


class CreateSessionRequest(_ApiModel):
    provider: Optional[str] = None


class CreateSessionResponse(_ApiModel):
    session_id: str
    provider: str


class ChunkRequest(_ApiModel):
    chunk_index: int = Field(ge=0)
    audio_base64: str
    language: Optional[str] = Field(default=None, max_length=16)


class EndSessionResponse(_ApiModel):
    session_id: str
    transcript: str


class SummaryRequest(_ApiModel):
    transcript: str = ""
    notes: str = ""
    model: Optional[str] = None


class SummaryStreamRequest(SummaryRequest):
    meeting_id: str = Field(min_length=1, max_length=128)


class TextRequest(_ApiModel):
    text: str
    model: Optional[str] = None


class EnhanceStreamRequest(TextRequest):
    meeting_id: str = Field(min_length=1, max_length=128)
    selection_id: str = Field(min_length=1, max_length=128)


class CleanTranscriptStreamRequest(TextRequest):
    meeting_id: str = Field(min_length=1, max_length=128)


class ActionItemsRequest(SummaryStreamRequest):
    pass


class ContentResponse(_ApiModel):
    content: str


class JobStartedResponse(_ApiModel):
    job_id: str
    channel: str
    meeting_id: str
    selection_id: Optional[str] = None


class ExportRequest(_ApiModel):
    meeting: MeetingRecord
    include_transcript: bool = False


class ExportResponse(_ApiModel):
    path: str


def _http_error(exc: ScribeError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _services(request: Request) -> ScribeServices:
    return request.app.state.services


def _started(
    services: ScribeServices,
    handle: RelayHandle,
    channel: str,
    meeting_id: str,
    selection_id: Optional[str] = None,
) -> JobStartedResponse:
    return JobStartedResponse(
        job_id=services.track_job(handle),
        channel=channel,
        meeting_id=meeting_id,
        selection_id=selection_id,
    )


def _parse_topics(raw: str) -> Optional[list[str]]:
    topics = [t.strip() for t in (raw or "").split(",") if t.strip()]
    return topics or None


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    cfg = config if config is not None else load_config()
    app = FastAPI(title="scribeline backend service")
    app.state.services = ScribeServices.build(cfg)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    @app.post("/transcribe", response_model=TranscribeResponse)
    def transcribe(payload: TranscribeRequest, request: Request) -> TranscribeResponse:
        try:
            return _services(request).dispatcher.transcribe(
                payload.audio_base64, payload.language, payload.provider
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.get("/transcription/status")
    def transcription_status(request: Request) -> dict[str, Any]:
        try:
            return _services(request).dispatcher.transcription_status()
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.post("/transcription/diagnose")
    def transcription_diagnose(payload: DiagnoseRequest, request: Request) -> dict[str, str]:
        services = _services(request)
        try:
            raw = payload.whisper_path
            if raw is None:
                raw = services.settings().effective_whisper_path()
            return {"report": diagnose_whisper(raw)}
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.get("/models/local")
    def models_local(request: Request, model_dir: Optional[str] = Query(default=None, alias="modelDir")) -> dict[str, Any]:
        services = _services(request)
        try:
            target = model_dir if model_dir is not None else services.settings().effective_model_path()
            return {"models": list_local_models(target)}
        except ScribeError as exc:
            raise _http_error(exc) from exc

    # ------------------------------------------------------------------
    # Streaming sessions
    # ------------------------------------------------------------------

    @app.post("/streaming/sessions", response_model=CreateSessionResponse)
    def streaming_create(payload: CreateSessionRequest, request: Request) -> CreateSessionResponse:
        streaming = _services(request).streaming
        try:
            session_id = streaming.create_session(payload.provider)
            provider = streaming.registry.get_provider(session_id)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return CreateSessionResponse(session_id=session_id, provider=provider)

    @app.post("/streaming/sessions/{session_id}/chunks")
    def streaming_chunk(session_id: str, payload: ChunkRequest, request: Request) -> dict[str, Any]:
        try:
            return _services(request).streaming.submit_chunk(
                session_id, payload.chunk_index, payload.audio_base64, payload.language
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.post("/streaming/sessions/{session_id}/end", response_model=EndSessionResponse)
    def streaming_end(session_id: str, request: Request) -> EndSessionResponse:
        try:
            transcript = _services(request).streaming.end_session(session_id)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return EndSessionResponse(session_id=session_id, transcript=transcript)

    # ------------------------------------------------------------------
    # AI workers
    # ------------------------------------------------------------------

    @app.post("/ai/summary", response_model=ContentResponse)
    def ai_summary(payload: SummaryRequest, request: Request) -> ContentResponse:
        try:
            content = _services(request).workers.generate_summary(
                payload.transcript, payload.notes, payload.model
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return ContentResponse(content=content)

    @app.post("/ai/summary/stream", response_model=JobStartedResponse)
    def ai_summary_stream(payload: SummaryStreamRequest, request: Request) -> JobStartedResponse:
        services = _services(request)
        try:
            handle = services.workers.start_summary_stream(
                payload.meeting_id, payload.transcript, payload.notes, payload.model
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return _started(services, handle, "summary", payload.meeting_id)

    @app.post("/ai/enhance", response_model=ContentResponse)
    def ai_enhance(payload: TextRequest, request: Request) -> ContentResponse:
        try:
            content = _services(request).workers.enhance_text(payload.text, payload.model)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return ContentResponse(content=content)

    @app.post("/ai/enhance/stream", response_model=JobStartedResponse)
    def ai_enhance_stream(payload: EnhanceStreamRequest, request: Request) -> JobStartedResponse:
        services = _services(request)
        try:
            handle = services.workers.start_enhance_stream(
                payload.meeting_id, payload.selection_id, payload.text, payload.model
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return _started(services, handle, "enhance", payload.meeting_id, payload.selection_id)

    @app.post("/ai/clean-transcript", response_model=ContentResponse)
    def ai_clean_transcript(payload: TextRequest, request: Request) -> ContentResponse:
        try:
            content = _services(request).workers.clean_transcript(payload.text, payload.model)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return ContentResponse(content=content)

    @app.post("/ai/clean-transcript/stream", response_model=JobStartedResponse)
    def ai_clean_transcript_stream(payload: CleanTranscriptStreamRequest, request: Request) -> JobStartedResponse:
        services = _services(request)
        try:
            handle = services.workers.start_clean_transcript_stream(
                payload.meeting_id, payload.text, payload.model
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return _started(services, handle, "clean-transcript", payload.meeting_id)

    @app.post("/ai/action-items", response_model=JobStartedResponse)
    def ai_action_items(payload: ActionItemsRequest, request: Request) -> JobStartedResponse:
        services = _services(request)
        try:
            handle = services.workers.extract_action_items(
                payload.meeting_id, payload.transcript, payload.notes, payload.model
            )
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return _started(services, handle, "actions", payload.meeting_id)

    @app.post("/ai/jobs/{job_id}/cancel")
    def ai_job_cancel(job_id: str, request: Request) -> dict[str, Any]:
        if not _services(request).cancel_job(job_id):
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        return {"jobId": job_id, "cancelRequested": True}

    @app.get("/ai/models")
    def ai_models(request: Request) -> dict[str, Any]:
        try:
            return {"models": _services(request).workers.list_models()}
        except ScribeError as exc:
            raise _http_error(exc) from exc

    # ------------------------------------------------------------------
    # Settings and meetings
    # ------------------------------------------------------------------

    @app.get("/settings")
    def settings_get(request: Request) -> dict[str, Any]:
        try:
            return _services(request).settings().model_dump(by_alias=True)
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.put("/settings")
    def settings_put(payload: dict[str, Any], request: Request) -> dict[str, Any]:
        try:
            settings = AppSettings.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        try:
            saved = _services(request).settings_store.save(settings)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return saved.model_dump(by_alias=True)

    @app.get("/meetings", response_model=list[MeetingRecord])
    def meetings_get(request: Request) -> list[MeetingRecord]:
        try:
            return _services(request).meeting_store.load()
        except ScribeError as exc:
            raise _http_error(exc) from exc

    @app.put("/meetings")
    def meetings_put(payload: list[MeetingRecord], request: Request) -> dict[str, int]:
        try:
            _services(request).meeting_store.save(payload)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return {"saved": len(payload)}

    @app.post("/meetings/export", response_model=ExportResponse)
    def meetings_export(payload: ExportRequest, request: Request) -> ExportResponse:
        services = _services(request)
        try:
            path = export_meeting_markdown(payload.meeting, services.export_dir(), payload.include_transcript)
        except ScribeError as exc:
            raise _http_error(exc) from exc
        return ExportResponse(path=str(path))

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    @app.websocket("/ws/events")
    async def events_ws(websocket: WebSocket) -> None:
        await websocket.accept()
        topics = _parse_topics(str(websocket.query_params.get("topics", "")))
        subscription = websocket.app.state.services.bus.subscribe(topics)

        async def _forward() -> None:
            while True:
                message = await asyncio.to_thread(subscription.get, 0.25)
                if message is None:
                    continue
                try:
                    await websocket.send_json(message.as_json())
                except (WebSocketDisconnect, RuntimeError) as exc:
                    logger.info("event forwarder stopped topic=%s err=%s", message.topic, exc)
                    return

        await websocket.send_json({"type": "subscribed", "topics": topics or []})
        forwarder = asyncio.create_task(_forward())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            forwarder.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await forwarder
            subscription.close()
            if subscription.dropped:
                logger.warning("event subscriber closed dropped=%d", subscription.dropped)

    return app


app = create_app()


def main() -> None:
    config = app.state.services.config
    configure_logging(config)
    uvicorn.run(app, host="127.0.0.1", port=8000, log_config=None)


if __name__ == "__main__":
    main()
