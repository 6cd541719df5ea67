from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from scribeline.utils.model_paths import resolve_executable, resolve_model

from ..audio_utils import write_audio_bytes
from ..contracts import TranscribeResponse
from ..errors import (
    NotFoundError,
    ProcessExitError,
    ProcessSpawnError,
    StorageIOError,
    WorkerCancelledError,
)
from ..settings_store import AppSettings
from ..temp_files import scoped_temp_paths
from .base import TranscriptionBackend

logger = logging.getLogger(__name__)


def local_backend_status(settings: AppSettings) -> Tuple[bool, str]:
    try:
        resolve_executable(settings.effective_whisper_path())
        resolve_model(settings.effective_model_path(), settings.transcription.local.model_name)
    except NotFoundError as exc:
        return False, exc.message
    return True, ""


def _loader_path_var() -> str:
    if sys.platform == "darwin":
        return "DYLD_LIBRARY_PATH"
    if sys.platform.startswith("win"):
        return "PATH"
    return "LD_LIBRARY_PATH"


def _with_library_paths(bin_path: Path, env: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Expose whisper.cpp shared libraries when the binary sits in a build/bin tree."""
    env_out = dict(os.environ) if env is None else dict(env)
    try:
        build_dir = bin_path.resolve().parents[1]
    except (OSError, IndexError):
        return env_out

    candidates = [
        build_dir / "src",
        build_dir / "ggml" / "src",
        build_dir / "ggml" / "src" / "ggml-blas",
        build_dir / "ggml" / "src" / "ggml-metal",
    ]
    new_paths = [str(p) for p in candidates if p.is_dir()]
    if not new_paths:
        return env_out

    var = _loader_path_var()
    existing = env_out.get(var, "")
    joined = os.pathsep.join(new_paths)
    env_out[var] = joined if not existing else f"{joined}{os.pathsep}{existing}"
    return env_out


def build_whisper_command(
    whisper_path: Path,
    model_path: Path,
    wav_path: Path,
    out_base: Path,
    *,
    best_of: int,
    beam_size: int,
    language: str,
) -> List[str]:
    cmd = [
        str(whisper_path),
        "-m",
        str(model_path),
        "-f",
        str(wav_path),
        "-otxt",
        "-of",
        str(out_base),
        "--best-of",
        str(best_of),
        "--beam-size",
        str(beam_size),
    ]
    if language:
        cmd.extend(["-l", language])
    return cmd


def diagnose_whisper(whisper_path: str) -> str:
    resolved = resolve_executable(whisper_path)
    try:
        res = subprocess.run(
            [str(resolved), "-h"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=_with_library_paths(resolved),
        )
    except OSError as exc:
        raise ProcessSpawnError(f"Failed to run whisper diagnostics: {exc}") from exc

    return (
        f"Resolved binary: {resolved}\n"
        f"Exit code: {res.returncode}\n"
        f"stdout:\n{res.stdout}\n"
        f"stderr:\n{res.stderr}"
    )


class WhisperCppBackend(TranscriptionBackend):
    def __init__(
        self,
        settings: AppSettings,
        tmp_dir: Path,
        *,
        keep_temp_files: bool = False,
        timeout_sec: Optional[float] = None,
    ):
        self._settings = settings
        self._tmp_dir = tmp_dir
        self._keep_temp_files = keep_temp_files
        self._timeout_sec = timeout_sec

    def name(self) -> str:
        return "local"

    def transcribe(self, audio_bytes: bytes, language: Optional[str] = None) -> TranscribeResponse:
        local = self._settings.transcription.local
        whisper_path = resolve_executable(self._settings.effective_whisper_path())
        model_path = resolve_model(self._settings.effective_model_path(), local.model_name)
        lang = (language if language is not None else self._settings.effective_language()).strip()

        with scoped_temp_paths(
            self._tmp_dir, ".wav", "_out.txt", keep=self._keep_temp_files
        ) as (wav_path, transcript_path):
            write_audio_bytes(wav_path, audio_bytes)
            out_base = transcript_path.with_suffix("")
            cmd = build_whisper_command(
                whisper_path,
                model_path,
                wav_path,
                out_base,
                best_of=local.best_of,
                beam_size=local.beam_size,
                language=lang,
            )
            command = shlex.join(cmd)
            logger.info("whisper start bytes=%d command=%s", len(audio_bytes), command)

            try:
                res = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                    timeout=self._timeout_sec,
                    env=_with_library_paths(whisper_path),
                )
            except subprocess.TimeoutExpired as exc:
                raise WorkerCancelledError(
                    f"Whisper timed out after {self._timeout_sec}s.\nCommand: {command}"
                ) from exc
            except OSError as exc:
                raise ProcessSpawnError(f"Failed to run whisper: {exc}") from exc

            stdout = res.stdout or ""
            stderr = res.stderr or ""
            if res.returncode != 0:
                raise ProcessExitError(
                    "Whisper",
                    returncode=res.returncode,
                    command=command,
                    stdout=stdout,
                    stderr=stderr,
                )

            try:
                transcript = transcript_path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise StorageIOError(f"Failed to read transcript: {exc}") from exc

        return TranscribeResponse(
            transcript=transcript,
            stdout=stdout,
            stderr=stderr,
            command=command,
            provider="local",
        )
