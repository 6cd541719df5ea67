from __future__ import annotations

"""
Run one external worker process per invocation and relay its output as events.

Design intent:
- The worker reads a JSON request file (sole positional argument) and writes
  newline-delimited JSON events to stdout; stderr is always diagnostic text.
- Streaming invocations drain stdout and stderr on two dedicated reader threads and
  publish every line as it arrives; a `{"type": "final"}` line designates the result.
- Once the process is spawned, failures are reported as events only; the terminal
  `done` event is always published after the `error` event, if any.
- Spawn failures publish a single `error` and no `done`.
"""

import json
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Sequence, Tuple

from scribeline.internal_core.contracts import CorrelationContext, RelayEvent
from scribeline.internal_core.errors import (
    ProcessExitError,
    ProcessSpawnError,
    WorkerCancelledError,
)
from scribeline.internal_core.temp_files import TempFileGuard, write_json_payload

from .bus import EventBus

logger = logging.getLogger(__name__)

_POLL_SEC = 0.1
_READER_JOIN_SEC = 5.0


class CancellationToken:
    """Cooperative cancellation with an optional deadline; no deadline by default."""

    def __init__(self, timeout_sec: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_sec if timeout_sec else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.timed_out


@dataclass(frozen=True)
class WorkerInvocation:
    channel: str
    command: Sequence[str]
    payload: Optional[Dict[str, Any]] = None
    payload_tag: str = "request"
    correlation: Optional[CorrelationContext] = None
    label: str = "Worker"


@dataclass(frozen=True)
class RelayOutcome:
    spawned: bool
    returncode: Optional[int] = None
    final_content: Optional[str] = None
    stderr: str = ""
    cancelled: bool = False
    elapsed_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.spawned and self.returncode == 0 and not self.cancelled


class RelayHandle:
    def __init__(self, token: CancellationToken) -> None:
        self._token = token
        self._finished = threading.Event()
        self._outcome: Optional[RelayOutcome] = None
        self._thread: Optional[threading.Thread] = None

    def _attach(self, thread: threading.Thread) -> None:
        self._thread = thread
        thread.start()

    def _complete(self, outcome: RelayOutcome) -> None:
        self._outcome = outcome
        self._finished.set()

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def outcome(self) -> Optional[RelayOutcome]:
        return self._outcome

    def cancel(self) -> None:
        self._token.cancel()

    def wait(self, timeout: Optional[float] = None) -> Optional[RelayOutcome]:
        self._finished.wait(timeout)
        return self._outcome


def parse_event_line(line: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(line)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def final_content_of(event: Dict[str, Any]) -> Optional[str]:
    if event.get("type") != "final":
        return None
    content = event.get("content")
    return content if isinstance(content, str) else None


def select_final_content(stdout: str) -> Optional[str]:
    """Last `{"type": "final", "content": ...}` line in a buffered stdout, if any."""
    selected: Optional[str] = None
    for line in (stdout or "").splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        event = parse_event_line(trimmed)
        if event is None:
            continue
        content = final_content_of(event)
        if content is not None:
            selected = content
    return selected


def final_or_raw(stdout: str) -> str:
    selected = select_final_content(stdout)
    return selected if selected is not None else (stdout or "").strip()


class SubprocessEventRelay:
    def __init__(
        self,
        bus: EventBus,
        tmp_dir: Path,
        *,
        keep_temp_files: bool = False,
        streaming_env_var: str = "STREAMING",
        default_timeout_sec: Optional[float] = None,
    ) -> None:
        self._bus = bus
        self._tmp_dir = tmp_dir
        self._keep_temp_files = keep_temp_files
        self._streaming_env_var = streaming_env_var
        self._default_timeout_sec = default_timeout_sec

    def _emit(self, event: RelayEvent) -> None:
        try:
            self._bus.publish(event.topic, event.to_message())
        except Exception as exc:
            # Delivery is fire-and-forget; the worker outcome never depends on it.
            logger.warning("event delivery failed topic=%s err=%s", event.topic, exc)

    def _token(self, cancel: Optional[CancellationToken]) -> CancellationToken:
        return cancel if cancel is not None else CancellationToken(self._default_timeout_sec)

    def _prepare(self, invocation: WorkerInvocation) -> Tuple[List[str], TempFileGuard]:
        argv = [str(part) for part in invocation.command]
        if invocation.payload is None:
            return argv, TempFileGuard(keep=self._keep_temp_files)
        guard = write_json_payload(
            self._tmp_dir,
            invocation.payload_tag,
            invocation.payload,
            keep=self._keep_temp_files,
        )
        argv.append(str(guard.paths[0]))
        return argv, guard

    def _env(self, streaming: bool) -> Dict[str, str]:
        env = dict(os.environ)
        if streaming and self._streaming_env_var:
            env[self._streaming_env_var] = "1"
        return env

    def _spawn(self, argv: List[str], *, streaming: bool) -> subprocess.Popen:
        return subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            env=self._env(streaming),
            start_new_session=os.name == "posix",
        )

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the worker and every process it started in its session."""
        if os.name == "posix":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError as exc:
                logger.warning("process group kill failed pid=%s err=%s", proc.pid, exc)
                proc.kill()
            return
        proc.kill()

    # ------------------------------------------------------------------
    # Streaming mode
    # ------------------------------------------------------------------

    def start_stream(
        self, invocation: WorkerInvocation, cancel: Optional[CancellationToken] = None
    ) -> RelayHandle:
        """Write the request, then relay the worker on a background thread."""
        argv, guard = self._prepare(invocation)
        token = self._token(cancel)
        handle = RelayHandle(token)

        def _run() -> None:
            outcome = RelayOutcome(spawned=False)
            try:
                with guard:
                    outcome = self._stream(invocation, argv, token)
            finally:
                handle._complete(outcome)

        handle._attach(
            threading.Thread(target=_run, name=f"relay-{invocation.channel}", daemon=True)
        )
        return handle

    def run_stream(
        self, invocation: WorkerInvocation, cancel: Optional[CancellationToken] = None
    ) -> RelayOutcome:
        argv, guard = self._prepare(invocation)
        with guard:
            return self._stream(invocation, argv, self._token(cancel))

    def _drain_stderr(
        self, stream: IO[str], invocation: WorkerInvocation, captured: List[str]
    ) -> None:
        for raw in stream:
            line = raw.rstrip("\r\n")
            captured.append(line)
            self._emit(RelayEvent.log(invocation.channel, line, invocation.correlation))

    def _drain_stdout(
        self, stream: IO[str], invocation: WorkerInvocation, state: Dict[str, Any]
    ) -> None:
        for raw in stream:
            line = raw.rstrip()
            if not line.strip():
                continue
            event = parse_event_line(line)
            if event is None:
                self._emit(RelayEvent.log(invocation.channel, line, invocation.correlation))
                continue
            if state["first_event_ms"] is None:
                state["first_event_ms"] = int((time.monotonic() - state["started"]) * 1000)
            content = final_content_of(event)
            if content is not None:
                state["final"] = content
            self._emit(RelayEvent.delta(invocation.channel, event, invocation.correlation))

    def _wait(self, proc: subprocess.Popen, token: CancellationToken) -> Tuple[int, bool]:
        while True:
            try:
                return proc.wait(timeout=_POLL_SEC), False
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    self._kill(proc)
                    return proc.wait(), True

    def _stream(
        self, invocation: WorkerInvocation, argv: List[str], token: CancellationToken
    ) -> RelayOutcome:
        started = time.monotonic()
        channel = invocation.channel
        logger.info("relay start channel=%s command=%s", channel, shlex.join(argv))
        try:
            proc = self._spawn(argv, streaming=True)
        except OSError as exc:
            logger.error("relay spawn failed channel=%s err=%s", channel, exc)
            self._emit(
                RelayEvent.error(
                    channel, f"Failed to start {invocation.label}: {exc}", invocation.correlation
                )
            )
            return RelayOutcome(spawned=False)

        stderr_lines: List[str] = []
        state: Dict[str, Any] = {"final": None, "first_event_ms": None, "started": started}
        readers = [
            threading.Thread(
                target=self._drain_stderr,
                args=(proc.stderr, invocation, stderr_lines),
                name=f"relay-{channel}-stderr",
                daemon=True,
            ),
            threading.Thread(
                target=self._drain_stdout,
                args=(proc.stdout, invocation, state),
                name=f"relay-{channel}-stdout",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        returncode, cancelled = self._wait(proc, token)
        for reader in readers:
            reader.join(timeout=_READER_JOIN_SEC if cancelled else None)
        if any(reader.is_alive() for reader in readers):
            logger.warning("relay readers still attached after cancel channel=%s", channel)
        else:
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()

        stderr_text = "\n".join(stderr_lines)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        if cancelled:
            logger.warning("relay cancelled channel=%s elapsed_ms=%d", channel, elapsed_ms)
            self._emit(
                RelayEvent.error(
                    channel, f"{invocation.label} cancelled: {stderr_text}", invocation.correlation
                )
            )
        elif returncode != 0:
            self._emit(
                RelayEvent.error(
                    channel, f"{invocation.label} failed: {stderr_text}", invocation.correlation
                )
            )
        self._emit(RelayEvent.done(channel, state["final"], invocation.correlation))
        logger.info(
            "relay done channel=%s code=%s first_event_ms=%s elapsed_ms=%d final=%s",
            channel,
            returncode,
            state["first_event_ms"],
            elapsed_ms,
            state["final"] is not None,
        )
        return RelayOutcome(
            spawned=True,
            returncode=returncode,
            final_content=state["final"],
            stderr=stderr_text,
            cancelled=cancelled,
            elapsed_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Buffered mode
    # ------------------------------------------------------------------

    def _communicate(
        self, invocation: WorkerInvocation, argv: List[str], token: CancellationToken
    ) -> Tuple[int, str, str, bool]:
        try:
            proc = self._spawn(argv, streaming=False)
        except OSError as exc:
            raise ProcessSpawnError(f"Failed to run {invocation.label}: {exc}") from exc
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_SEC)
                return proc.returncode, stdout or "", stderr or "", False
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    self._kill(proc)
                    stdout, stderr = proc.communicate()
                    return proc.returncode, stdout or "", stderr or "", True

    def run_buffered_raw(
        self, invocation: WorkerInvocation, cancel: Optional[CancellationToken] = None
    ) -> str:
        """Wait for the worker and return its complete stdout; raise on failure."""
        argv, guard = self._prepare(invocation)
        with guard:
            returncode, stdout, stderr, cancelled = self._communicate(
                invocation, argv, self._token(cancel)
            )
        if cancelled:
            raise WorkerCancelledError(f"{invocation.label} cancelled")
        if returncode != 0:
            raise ProcessExitError(
                invocation.label,
                returncode=returncode,
                command=shlex.join(argv),
                stdout=stdout,
                stderr=stderr,
            )
        return stdout

    def run_buffered(
        self, invocation: WorkerInvocation, cancel: Optional[CancellationToken] = None
    ) -> str:
        """Final-line content of the worker's stdout, else the trimmed raw stdout."""
        return final_or_raw(self.run_buffered_raw(invocation, cancel))

    def start_buffered(
        self,
        invocation: WorkerInvocation,
        transform: Optional[Callable[[str], Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RelayHandle:
        """Background buffered run that reports its result as `final` + `done` events."""
        argv, guard = self._prepare(invocation)
        token = self._token(cancel)
        handle = RelayHandle(token)

        def _run() -> None:
            outcome = RelayOutcome(spawned=False)
            try:
                with guard:
                    outcome = self._buffered_events(invocation, argv, token, transform)
            finally:
                handle._complete(outcome)

        handle._attach(
            threading.Thread(target=_run, name=f"relay-{invocation.channel}-buffered", daemon=True)
        )
        return handle

    def _buffered_events(
        self,
        invocation: WorkerInvocation,
        argv: List[str],
        token: CancellationToken,
        transform: Optional[Callable[[str], Any]],
    ) -> RelayOutcome:
        started = time.monotonic()
        channel = invocation.channel
        correlation = invocation.correlation
        try:
            returncode, stdout, stderr, cancelled = self._communicate(invocation, argv, token)
        except ProcessSpawnError as exc:
            self._emit(RelayEvent.error(channel, exc.message, correlation))
            return RelayOutcome(spawned=False)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        final: Optional[str] = None
        if cancelled:
            self._emit(RelayEvent.error(channel, f"{invocation.label} cancelled", correlation))
        elif returncode != 0:
            self._emit(RelayEvent.error(channel, f"{invocation.label} failed: {stderr}", correlation))
        else:
            content = final_or_raw(stdout)
            try:
                payload = transform(content) if transform is not None else None
            except ValueError as exc:
                self._emit(RelayEvent.error(channel, f"Failed to parse {channel}: {exc}", correlation))
            else:
                final = content
                self._emit(RelayEvent.final(channel, content, correlation, payload=payload))
        self._emit(RelayEvent.done(channel, final, correlation))
        logger.info(
            "buffered relay done channel=%s code=%s elapsed_ms=%d", channel, returncode, elapsed_ms
        )
        return RelayOutcome(
            spawned=True,
            returncode=returncode,
            final_content=final,
            stderr=stderr,
            cancelled=cancelled,
            elapsed_ms=elapsed_ms,
        )
