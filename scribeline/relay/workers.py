from __future__ import annotations

"""
AI processing operations backed by external worker scripts.

Design intent:
- Each operation builds its request payload, resolves its script, and hands the rest
  to the relay; nothing here interprets what the worker does with the request.
- Streaming starts return immediately with a handle; results arrive as bus events
  on the operation's channel (`summary`, `enhance`, `clean-transcript`, `actions`).
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from scribeline.internal_core.contracts import CorrelationContext
from scribeline.internal_core.errors import DecodeError, NotFoundError
from scribeline.internal_core.settings_store import AppSettings

from .subprocess_relay import CancellationToken, RelayHandle, SubprocessEventRelay, WorkerInvocation

logger = logging.getLogger(__name__)

SUMMARY_SECTIONS = ["Agenda", "Summary", "Decisions", "Risks", "Actions"]

WORKER_SCRIPTS: Dict[str, str] = {
    "summary": "summary.mjs",
    "enhance": "enhance.mjs",
    "clean-transcript": "clean-transcript.mjs",
    "actions": "actions.mjs",
    "models": "models.mjs",
}

_WORKER_LABELS: Dict[str, str] = {
    "summary": "Summary worker",
    "enhance": "Enhance worker",
    "clean-transcript": "Clean transcript worker",
    "actions": "Actions worker",
    "models": "Models worker",
}


def parse_action_items(content: str) -> Dict[str, Any]:
    parsed = json.loads(content.strip())
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object with an 'items' list")
    items = parsed.get("items")
    if items is None:
        parsed["items"] = []
    elif not isinstance(items, list):
        raise ValueError("'items' must be a list")
    return parsed


class AIWorkerService:
    def __init__(
        self,
        relay: SubprocessEventRelay,
        scripts_dir: Path,
        runtime_prefix: List[str],
        settings_loader: Callable[[], AppSettings],
    ) -> None:
        self._relay = relay
        self._scripts_dir = scripts_dir
        self._runtime_prefix = list(runtime_prefix)
        self._settings_loader = settings_loader

    def script_path(self, operation: str) -> Path:
        return self._scripts_dir / WORKER_SCRIPTS[operation]

    def _command(self, operation: str) -> List[str]:
        script = self.script_path(operation)
        if not script.is_file():
            raise NotFoundError(f"{_WORKER_LABELS[operation]} script not found: {script}")
        return [*self._runtime_prefix, str(script)]

    def _model(self, model: Optional[str]) -> str:
        chosen = (model or "").strip()
        if chosen:
            return chosen
        return self._settings_loader().ai.default_model

    def _invocation(
        self,
        operation: str,
        payload: Optional[Dict[str, Any]],
        correlation: Optional[CorrelationContext] = None,
    ) -> WorkerInvocation:
        return WorkerInvocation(
            channel=operation,
            command=self._command(operation),
            payload=payload,
            payload_tag=operation.replace("-", "_"),
            correlation=correlation,
            label=_WORKER_LABELS[operation],
        )

    def _summary_payload(self, transcript: str, notes: str, model: Optional[str]) -> Dict[str, Any]:
        return {
            "transcript": transcript,
            "notes": notes,
            "sections": list(SUMMARY_SECTIONS),
            "model": self._model(model),
        }

    def _text_payload(self, text: str, model: Optional[str]) -> Dict[str, Any]:
        return {"text": text, "model": self._model(model)}

    # Summaries

    def generate_summary(
        self,
        transcript: str,
        notes: str,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        invocation = self._invocation("summary", self._summary_payload(transcript, notes, model))
        return self._relay.run_buffered(invocation, cancel)

    def start_summary_stream(
        self,
        meeting_id: str,
        transcript: str,
        notes: str,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RelayHandle:
        invocation = self._invocation(
            "summary",
            self._summary_payload(transcript, notes, model),
            CorrelationContext(meeting_id=meeting_id),
        )
        return self._relay.start_stream(invocation, cancel)

    # Selection enhancement

    def enhance_text(
        self, text: str, model: Optional[str] = None, cancel: Optional[CancellationToken] = None
    ) -> str:
        return self._relay.run_buffered(self._invocation("enhance", self._text_payload(text, model)), cancel)

    def start_enhance_stream(
        self,
        meeting_id: str,
        selection_id: str,
        text: str,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RelayHandle:
        invocation = self._invocation(
            "enhance",
            self._text_payload(text, model),
            CorrelationContext(meeting_id=meeting_id, selection_id=selection_id),
        )
        return self._relay.start_stream(invocation, cancel)

    # Transcript cleanup

    def clean_transcript(
        self, text: str, model: Optional[str] = None, cancel: Optional[CancellationToken] = None
    ) -> str:
        invocation = self._invocation("clean-transcript", self._text_payload(text, model))
        return self._relay.run_buffered(invocation, cancel)

    def start_clean_transcript_stream(
        self,
        meeting_id: str,
        text: str,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RelayHandle:
        invocation = self._invocation(
            "clean-transcript",
            self._text_payload(text, model),
            CorrelationContext(meeting_id=meeting_id),
        )
        return self._relay.start_stream(invocation, cancel)

    # Action items

    def extract_action_items(
        self,
        meeting_id: str,
        transcript: str,
        notes: str,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RelayHandle:
        invocation = self._invocation(
            "actions",
            {"transcript": transcript, "notes": notes, "model": self._model(model)},
            CorrelationContext(meeting_id=meeting_id),
        )
        return self._relay.start_buffered(invocation, transform=parse_action_items, cancel=cancel)

    # Model catalog

    def list_models(self, cancel: Optional[CancellationToken] = None) -> List[Any]:
        stdout = self._relay.run_buffered_raw(self._invocation("models", None), cancel)
        try:
            models = json.loads(stdout.strip())
        except ValueError as exc:
            raise DecodeError(f"Failed to parse models list: {exc}") from exc
        if not isinstance(models, list):
            raise DecodeError("Failed to parse models list: expected a JSON array")
        return models
