from __future__ import annotations

"""
Process-wide service object.

Design intent:
- Built once at startup and passed to every caller; no module-level registries.
- Background relay jobs are tracked by id so they can be cancelled later.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from scribeline.asr.dispatcher import TranscriptionDispatcher
from scribeline.asr.streaming import StreamingTranscriptionService
from scribeline.internal_core.config import ServiceConfig
from scribeline.internal_core.session_store import SessionRegistry
from scribeline.internal_core.settings_store import AppSettings, SettingsStore
from scribeline.meetings.store import MeetingStore
from scribeline.relay.bus import EventBus
from scribeline.relay.subprocess_relay import RelayHandle, SubprocessEventRelay
from scribeline.relay.workers import AIWorkerService

logger = logging.getLogger(__name__)


@dataclass
class ScribeServices:
    config: ServiceConfig
    bus: EventBus
    registry: SessionRegistry
    settings_store: SettingsStore
    meeting_store: MeetingStore
    relay: SubprocessEventRelay
    dispatcher: TranscriptionDispatcher
    streaming: StreamingTranscriptionService
    workers: AIWorkerService
    _jobs: Dict[str, RelayHandle] = field(default_factory=dict)
    _jobs_lock: threading.Lock = field(default_factory=threading.Lock)

    @classmethod
    def build(cls, config: ServiceConfig) -> "ScribeServices":
        tmp_dir = config.tmp_dir_path()
        bus = EventBus(default_maxsize=config.SCRIBE_EVENT_QUEUE_SIZE)
        registry = SessionRegistry()
        settings_store = SettingsStore(config.settings_path())
        relay = SubprocessEventRelay(
            bus,
            tmp_dir,
            keep_temp_files=config.SCRIBE_KEEP_TEMP_FILES,
            streaming_env_var=config.SCRIBE_STREAMING_ENV_VAR,
            default_timeout_sec=config.SCRIBE_WORKER_TIMEOUT_SEC,
        )
        dispatcher = TranscriptionDispatcher(
            settings_store.load,
            tmp_dir,
            keep_temp_files=config.SCRIBE_KEEP_TEMP_FILES,
            local_timeout_sec=config.SCRIBE_WORKER_TIMEOUT_SEC,
            remote_timeout_sec=config.SCRIBE_REMOTE_TIMEOUT_SEC,
        )
        return cls(
            config=config,
            bus=bus,
            registry=registry,
            settings_store=settings_store,
            meeting_store=MeetingStore(config.meetings_path()),
            relay=relay,
            dispatcher=dispatcher,
            streaming=StreamingTranscriptionService(registry, dispatcher, bus),
            workers=AIWorkerService(
                relay,
                config.worker_scripts_dir_path(),
                config.worker_runtime_prefix(),
                settings_store.load,
            ),
        )

    def settings(self) -> AppSettings:
        return self.settings_store.load()

    def export_dir(self) -> Path:
        local_path = self.settings().export.local_path.strip()
        return Path(local_path or self.config.SCRIBE_EXPORT_DIR).expanduser()

    def track_job(self, handle: RelayHandle) -> str:
        job_id = str(uuid.uuid4())
        with self._jobs_lock:
            for stale in [jid for jid, h in self._jobs.items() if h.done]:
                del self._jobs[stale]
            self._jobs[job_id] = handle
        return job_id

    def job(self, job_id: str) -> Optional[RelayHandle]:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def cancel_job(self, job_id: str) -> bool:
        handle = self.job(job_id)
        if handle is None:
            return False
        handle.cancel()
        logger.info("relay job cancel requested job_id=%s", job_id)
        return True
