import logging
from pathlib import Path

from scribeline.internal_core.config import load_config
from scribeline.internal_core.logging_setup import configure_logging
from scribeline.relay.bus import BusMessage
from scribeline.scripts.relay_probe import format_message


def test_load_config_reads_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SCRIBE_DATA_DIR", str(tmp_path / "d"))
    monkeypatch.setenv("SCRIBE_KEEP_TEMP_FILES", "yes")
    monkeypatch.setenv("SCRIBE_WORKER_RUNTIME", "")
    monkeypatch.setenv("SCRIBE_WORKER_TIMEOUT_SEC", "12.5")
    monkeypatch.setenv("SCRIBE_REMOTE_TIMEOUT_SEC", "0")
    monkeypatch.setenv("SCRIBE_EVENT_QUEUE_SIZE", "5")

    cfg = load_config()

    assert cfg.settings_path() == (tmp_path / "d").resolve() / "settings.json"
    assert cfg.meetings_path().name == "meetings.json"
    assert cfg.SCRIBE_KEEP_TEMP_FILES is True
    assert cfg.worker_runtime_prefix() == []
    assert cfg.SCRIBE_WORKER_TIMEOUT_SEC == 12.5
    assert cfg.SCRIBE_REMOTE_TIMEOUT_SEC is None
    assert cfg.SCRIBE_EVENT_QUEUE_SIZE == 5


def test_load_config_defaults(monkeypatch) -> None:
    for name in ("SCRIBE_WORKER_RUNTIME", "SCRIBE_STREAMING_ENV_VAR", "SCRIBE_WORKER_TIMEOUT_SEC"):
        monkeypatch.delenv(name, raising=False)
    cfg = load_config()
    assert cfg.worker_runtime_prefix() == ["node"]
    assert cfg.SCRIBE_STREAMING_ENV_VAR == "STREAMING"
    assert cfg.SCRIBE_WORKER_TIMEOUT_SEC is None
    assert cfg.worker_scripts_dir_path().name == "workers"


def test_configure_logging_writes_to_log_dir(service_config) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        log_path = Path(configure_logging(service_config))
        logging.getLogger("scribeline.test").info("hello log")
        for handler in root.handlers:
            handler.flush()
        assert log_path.parent == Path(service_config.SCRIBE_LOG_DIR)
        assert "hello log" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)
        root.propagate = True


def test_probe_formats_each_event_kind() -> None:
    assert format_message(BusMessage("probe-log", {"kind": "log", "line": "warming up"})).endswith("warming up")
    delta = format_message(BusMessage("probe-delta", {"kind": "delta", "event": {"type": "final"}}))
    assert delta.startswith("probe-delta")
    assert delta.endswith('{"type": "final"}')
    assert format_message(BusMessage("probe-done", {"kind": "done", "content": None})).endswith("null")
