import sys
from pathlib import Path

import pytest

from scribeline.internal_core.errors import DecodeError, NotFoundError, ProcessExitError
from scribeline.internal_core.settings_store import AppSettings
from scribeline.relay.bus import EventBus
from scribeline.relay.subprocess_relay import SubprocessEventRelay
from scribeline.relay.workers import SUMMARY_SECTIONS, AIWorkerService, parse_action_items

SUMMARY_WORKER = """
import json
import sys

with open(sys.argv[1], encoding="utf-8") as f:
    req = json.load(f)
print(json.dumps({"type": "delta", "content": "partial"}), flush=True)
content = "sections=%s model=%s notes=%s" % (",".join(req["sections"]), req["model"], req["notes"])
print(json.dumps({"type": "final", "content": content}), flush=True)
"""

TEXT_WORKER = """
import json
import sys

with open(sys.argv[1], encoding="utf-8") as f:
    req = json.load(f)
print(json.dumps({"type": "final", "content": req["text"].upper() + "|" + req["model"]}), flush=True)
"""


def _service(tmp_path: Path, bus: EventBus, settings: AppSettings | None = None) -> AIWorkerService:
    relay = SubprocessEventRelay(bus, tmp_path / "tmp")
    current = settings or AppSettings()
    return AIWorkerService(relay, tmp_path / "workers", [sys.executable], lambda: current)


def test_generate_summary_sends_sections_and_default_model(tmp_path: Path, write_script) -> None:
    write_script("summary.mjs", SUMMARY_WORKER, directory=tmp_path / "workers")
    service = _service(tmp_path, EventBus())

    content = service.generate_summary("transcript", "my notes")

    assert content == f"sections={','.join(SUMMARY_SECTIONS)} model=gpt-4.1 notes=my notes"


def test_explicit_model_overrides_settings_default(tmp_path: Path, write_script) -> None:
    write_script("enhance.mjs", TEXT_WORKER, directory=tmp_path / "workers")
    write_script("clean-transcript.mjs", TEXT_WORKER, directory=tmp_path / "workers")
    settings = AppSettings()
    settings.ai.default_model = "house-model"
    service = _service(tmp_path, EventBus(), settings)

    assert service.enhance_text("make better", "gpt-x") == "MAKE BETTER|gpt-x"
    assert service.clean_transcript("um hello") == "UM HELLO|house-model"


def test_summary_stream_publishes_correlated_events(tmp_path: Path, write_script) -> None:
    write_script("summary.mjs", SUMMARY_WORKER, directory=tmp_path / "workers")
    bus = EventBus()
    sub = bus.subscribe()
    service = _service(tmp_path, bus)

    handle = service.start_summary_stream("meeting-1", "t", "n")
    outcome = handle.wait(timeout=10)
    messages = sub.drain()

    assert outcome is not None and outcome.succeeded
    assert [m.topic for m in messages] == ["summary-delta", "summary-delta", "summary-done"]
    assert all(m.data["meetingId"] == "meeting-1" for m in messages)
    assert messages[-1].data["content"].startswith("sections=Agenda")


def test_enhance_stream_carries_selection_id(tmp_path: Path, write_script) -> None:
    write_script("enhance.mjs", TEXT_WORKER, directory=tmp_path / "workers")
    bus = EventBus()
    sub = bus.subscribe(["enhance-done"])
    service = _service(tmp_path, bus)

    service.start_enhance_stream("m", "sel-7", "abc").wait(timeout=10)
    done = sub.drain()

    assert len(done) == 1
    assert done[0].data["selectionId"] == "sel-7"
    assert done[0].data["content"] == "ABC|gpt-4.1"


def test_clean_transcript_stream_uses_its_channel(tmp_path: Path, write_script) -> None:
    write_script("clean-transcript.mjs", TEXT_WORKER, directory=tmp_path / "workers")
    bus = EventBus()
    sub = bus.subscribe()
    service = _service(tmp_path, bus)

    service.start_clean_transcript_stream("m", "x").wait(timeout=10)

    assert [m.topic for m in sub.drain()] == ["clean-transcript-delta", "clean-transcript-done"]


def test_missing_script_fails_before_spawning(tmp_path: Path) -> None:
    service = _service(tmp_path, EventBus())
    with pytest.raises(NotFoundError) as excinfo:
        service.generate_summary("t", "n")
    assert "summary.mjs" in excinfo.value.message
    with pytest.raises(NotFoundError):
        service.start_summary_stream("m", "t", "n")


def test_worker_failure_surfaces_process_exit(tmp_path: Path, write_script) -> None:
    write_script(
        "summary.mjs",
        "import sys\nsys.stderr.write('no token')\nsys.exit(2)\n",
        directory=tmp_path / "workers",
    )
    service = _service(tmp_path, EventBus())
    with pytest.raises(ProcessExitError) as excinfo:
        service.generate_summary("t", "n")
    assert excinfo.value.stderr == "no token"


def test_extract_action_items_publishes_parsed_items(tmp_path: Path, write_script) -> None:
    write_script(
        "actions.mjs",
        """
        import json
        print(json.dumps({"items": [{"task": "Send deck", "assignee": "Sam"}]}))
        """,
        directory=tmp_path / "workers",
    )
    bus = EventBus()
    sub = bus.subscribe()
    service = _service(tmp_path, bus)

    service.extract_action_items("meeting-2", "t", "n").wait(timeout=10)
    messages = sub.drain()

    assert [m.topic for m in messages] == ["actions-final", "actions-done"]
    assert messages[0].data["payload"]["items"][0]["task"] == "Send deck"
    assert messages[0].data["meetingId"] == "meeting-2"


def test_extract_action_items_bad_output_publishes_error(tmp_path: Path, write_script) -> None:
    write_script("actions.mjs", "print('Sure! Here are the items:')\n", directory=tmp_path / "workers")
    bus = EventBus()
    sub = bus.subscribe()
    service = _service(tmp_path, bus)

    service.extract_action_items("m", "t", "n").wait(timeout=10)
    messages = sub.drain()

    assert [m.topic for m in messages] == ["actions-error", "actions-done"]
    assert messages[0].data["error"].startswith("Failed to parse actions")


def test_list_models_parses_json_array(tmp_path: Path, write_script) -> None:
    write_script(
        "models.mjs",
        "import sys\nassert len(sys.argv) == 1\nprint('[\"gpt-4.1\", \"claude\"]')\n",
        directory=tmp_path / "workers",
    )
    service = _service(tmp_path, EventBus())
    assert service.list_models() == ["gpt-4.1", "claude"]


def test_list_models_rejects_non_array(tmp_path: Path, write_script) -> None:
    write_script("models.mjs", "print('{\"models\": []}')\n", directory=tmp_path / "workers")
    service = _service(tmp_path, EventBus())
    with pytest.raises(DecodeError):
        service.list_models()


def test_parse_action_items_shapes() -> None:
    assert parse_action_items('{"items": []}') == {"items": []}
    assert parse_action_items(' {"note": "none"} ') == {"note": "none", "items": []}
    with pytest.raises(ValueError):
        parse_action_items("[1, 2]")
    with pytest.raises(ValueError):
        parse_action_items('{"items": "x"}')
