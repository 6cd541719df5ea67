from __future__ import annotations

import argparse
import json
import shlex
import tempfile
from pathlib import Path
from typing import Any

from scribeline.internal_core.errors import ScribeError
from scribeline.relay.bus import BusMessage, EventBus
from scribeline.relay.subprocess_relay import CancellationToken, SubprocessEventRelay, WorkerInvocation


def format_message(message: BusMessage) -> str:
    data = message.data
    kind = data.get("kind", "")
    if kind == "log":
        body = str(data.get("line", ""))
    elif kind == "delta":
        body = json.dumps(data.get("event"), ensure_ascii=False)
    elif kind == "error":
        body = str(data.get("error", ""))
    else:
        body = json.dumps(data.get("content"), ensure_ascii=False)
    return f"{message.topic:<24} {body}"


def _load_payload(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    candidate = Path(raw).expanduser()
    text = candidate.read_text(encoding="utf-8") if candidate.is_file() else raw
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise SystemExit("payload must be a JSON object")
    return payload


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run one worker script through the event relay and print every event."
    )
    parser.add_argument("script", help="Worker script or executable to run.")
    parser.add_argument(
        "--payload",
        default="",
        help="Request JSON, inline or as a file path. Omit to run without a request file.",
    )
    parser.add_argument("--channel", default="probe", help="Event channel name (default: probe).")
    parser.add_argument(
        "--runtime",
        default="node",
        help="Interpreter prefix, e.g. 'node' or 'python3'. Empty runs the script directly.",
    )
    parser.add_argument(
        "--buffered",
        action="store_true",
        help="Wait for exit and print the selected final content instead of streaming events.",
    )
    parser.add_argument("--timeout-sec", type=float, default=None, help="Kill the worker after N seconds.")
    parser.add_argument("--keep-temp-files", action="store_true", help="Keep the request file on disk.")
    args = parser.parse_args()

    script = Path(args.script).expanduser()
    if not script.exists():
        raise SystemExit(f"worker not found: {script}")

    bus = EventBus(default_maxsize=0)
    relay = SubprocessEventRelay(
        bus,
        Path(tempfile.gettempdir()) / "scribeline-probe",
        keep_temp_files=args.keep_temp_files,
    )
    invocation = WorkerInvocation(
        channel=args.channel,
        command=[*shlex.split(args.runtime), str(script)],
        payload=_load_payload(args.payload),
        label="Probe worker",
    )
    token = CancellationToken(args.timeout_sec)

    if args.buffered:
        try:
            print(relay.run_buffered(invocation, token))
        except ScribeError as exc:
            raise SystemExit(exc.message) from exc
        return

    with bus.subscribe() as subscription:
        outcome = relay.run_stream(invocation, token)
        for message in subscription.drain():
            print(format_message(message))

    print(
        f"exit_code: {outcome.returncode} cancelled: {outcome.cancelled} "
        f"elapsed_ms: {outcome.elapsed_ms}"
    )


if __name__ == "__main__":
    main()
