import base64
import io
import sys
import textwrap
import wave
from dataclasses import replace
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from scribeline.internal_core.config import ServiceConfig, load_config


def make_wav_bytes(duration_sec: float = 0.25, sample_rate_hz: int = 16000, amplitude: float = 0.2) -> bytes:
    n = int(duration_sec * sample_rate_hz)
    t = np.arange(n, dtype=np.float32) / float(sample_rate_hz)
    samples = (amplitude * np.sin(2.0 * np.pi * 440.0 * t) * 32767.0).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate_hz)
        wf.writeframes(samples.tobytes())
    return buf.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[..., Path]:
    """Write a Python script; `executable=True` adds a shebang and the exec bit."""

    def _write(name: str, body: str, *, directory: Path | None = None, executable: bool = False) -> Path:
        target_dir = directory or (tmp_path / "scripts")
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        source = textwrap.dedent(body).lstrip("\n")
        if executable:
            source = f"#!{sys.executable}\n{source}"
        path.write_text(source, encoding="utf-8")
        if executable:
            path.chmod(0o755)
        return path

    return _write


@pytest.fixture
def service_config(tmp_path: Path) -> ServiceConfig:
    return replace(
        load_config(),
        SCRIBE_DATA_DIR=str(tmp_path / "data"),
        SCRIBE_TMP_DIR=str(tmp_path / "tmp"),
        SCRIBE_KEEP_TEMP_FILES=False,
        SCRIBE_WORKER_SCRIPTS_DIR=str(tmp_path / "workers"),
        SCRIBE_WORKER_RUNTIME=sys.executable,
        SCRIBE_WORKER_TIMEOUT_SEC=None,
        SCRIBE_REMOTE_TIMEOUT_SEC=None,
        SCRIBE_EVENT_QUEUE_SIZE=1000,
        SCRIBE_EXPORT_DIR=str(tmp_path / "exports"),
        SCRIBE_LOG_DIR=str(tmp_path / "logs"),
    )
