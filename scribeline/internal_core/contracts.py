from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TranscriptionProviderName = Literal["local", "openai-compatible", "auto"]
ConcreteProviderName = Literal["local", "openai-compatible"]

RelayEventKind = Literal["log", "delta", "final", "error", "done"]


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


class CorrelationContext(BaseModel):
    """Opaque identifiers threaded through one relay invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    meeting_id: str
    selection_id: Optional[str] = None

    def as_message_fields(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"meetingId": self.meeting_id}
        if self.selection_id is not None:
            out["selectionId"] = self.selection_id
        return out


class RelayEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: RelayEventKind
    channel: str
    correlation: Optional[CorrelationContext] = None
    line: Optional[str] = None
    payload: Any = None
    content: Optional[str] = None
    message: Optional[str] = None
    ts_iso: str = Field(default_factory=_ts_iso)

    @property
    def topic(self) -> str:
        return f"{self.channel}-{self.kind}"

    @classmethod
    def log(cls, channel: str, line: str, correlation: Optional[CorrelationContext] = None) -> "RelayEvent":
        return cls(kind="log", channel=channel, line=line, correlation=correlation)

    @classmethod
    def delta(cls, channel: str, payload: Any, correlation: Optional[CorrelationContext] = None) -> "RelayEvent":
        return cls(kind="delta", channel=channel, payload=payload, correlation=correlation)

    @classmethod
    def final(
        cls,
        channel: str,
        content: str,
        correlation: Optional[CorrelationContext] = None,
        payload: Any = None,
    ) -> "RelayEvent":
        return cls(kind="final", channel=channel, content=content, payload=payload, correlation=correlation)

    @classmethod
    def error(cls, channel: str, message: str, correlation: Optional[CorrelationContext] = None) -> "RelayEvent":
        return cls(kind="error", channel=channel, message=message, correlation=correlation)

    @classmethod
    def done(
        cls, channel: str, content: Optional[str], correlation: Optional[CorrelationContext] = None
    ) -> "RelayEvent":
        return cls(kind="done", channel=channel, content=content, correlation=correlation)

    def to_message(self) -> Dict[str, Any]:
        """Flatten into the JSON shape delivered to subscribers."""
        data: Dict[str, Any] = {"kind": self.kind, "channel": self.channel, "ts": self.ts_iso}
        if self.correlation is not None:
            data.update(self.correlation.as_message_fields())
        if self.kind == "log":
            data["line"] = self.line
        elif self.kind == "delta":
            data["event"] = self.payload
        elif self.kind == "final":
            data["content"] = self.content
            if self.payload is not None:
                data["payload"] = self.payload
        elif self.kind == "error":
            data["error"] = self.message
        else:
            data["content"] = self.content
        return data


class TranscribeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transcript: str
    stdout: str = ""
    stderr: str = ""
    command: str = ""
    provider: ConcreteProviderName


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActionItem(_CamelModel):
    id: str
    task: str
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    priority: str = "medium"
    status: str = "pending"
    context: Optional[str] = None


class MeetingRecord(_CamelModel):
    id: str
    title: str
    notes: str = ""
    transcript: str = ""
    summary: str = ""
    action_items: List[ActionItem] = Field(default_factory=list)
    created_at: str
    updated_at: str
