from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from scribeline.internal_core.errors import NotFoundError, StorageIOError

MODEL_EXTENSION = ".bin"

# Directory-only configuration picks the first of these that exists.
# ggml-small.en.bin and ggml-base.en.bin must stay off this list: a directory
# holding only those resolves to the larger file by size.
PREFERRED_MODEL_NAMES = [
    "ggml-medium.en-q8_0.bin",
    "ggml-medium.en.bin",
    "ggml-medium.en-q5_0.bin",
    "ggml-medium-q8_0.bin",
    "ggml-medium.bin",
    "ggml-small.en-q8_0.bin",
]


def executable_candidates(platform: Optional[str] = None) -> list[str]:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return ["whisper-cli.exe", "main.exe", "whisper.exe"]
    return ["whisper-cli", "whisper", "main"]


def resolve_executable(raw_input: str, *, platform: Optional[str] = None) -> Path:
    """Resolve a configured whisper binary path or the folder that contains it."""
    value = (raw_input or "").strip()
    if not value:
        raise NotFoundError("Whisper path not configured")

    path = Path(value).expanduser()
    if path.is_file():
        return path
    if path.is_dir():
        for name in executable_candidates(platform):
            candidate = path / name
            if candidate.is_file():
                return candidate
    raise NotFoundError(
        "Whisper binary not found. Provide the whisper binary path or folder containing it. "
        f"Got: {raw_input}"
    )


def _scan_model_candidates(search_dirs: list[Path]) -> list[tuple[Path, int, str]]:
    candidates: list[tuple[Path, int, str]] = []
    for directory in search_dirs:
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            continue
        for entry in entries:
            if entry.suffix != MODEL_EXTENSION:
                continue
            try:
                if not entry.is_file():
                    continue
                size = entry.stat().st_size
            except OSError:
                continue
            candidates.append((entry, size, entry.name.lower()))
    return candidates


def _resolve_model_from_base(base: Path, raw_input: str) -> Path:
    if base.is_file():
        return base

    search_dirs = [base, base / "models"] if base.is_dir() else []
    candidates = _scan_model_candidates(search_dirs)

    for preferred in PREFERRED_MODEL_NAMES:
        wanted = preferred.lower()
        for path, _, name in candidates:
            if name == wanted:
                return path

    if candidates:
        # max() keeps the first of equal sizes, i.e. the alphabetically earlier file.
        largest = max(candidates, key=lambda item: item[1])
        return largest[0]

    raise NotFoundError(
        "Model not found. Provide a .bin file or a folder containing ggml-*.bin models. "
        f"Got: {raw_input}"
    )


def resolve_model(base_path: str, explicit_selection: str = "") -> Path:
    """
    Resolve the whisper model with precedence:
    1) explicit selection naming an existing file
    2) explicit selection joined onto a base directory (must exist, no fallback)
    3) base path itself when it is a file
    4) preferred names, then the largest .bin, under base and base/models
    """

    selection = (explicit_selection or "").strip()
    if selection:
        selection_path = Path(selection).expanduser()
        if selection_path.is_file():
            return selection_path

    base_value = (base_path or "").strip()
    if not base_value:
        raise NotFoundError("Model path not configured")

    base = Path(base_value).expanduser()
    if selection and base.is_dir():
        candidate = base / selection
        if candidate.is_file():
            return candidate
        raise NotFoundError(f"Selected model not found: {candidate}")

    return _resolve_model_from_base(base, base_value)


def list_local_models(model_dir: str) -> list[str]:
    value = (model_dir or "").strip()
    if not value:
        return []

    path = Path(value).expanduser()
    if path.is_file():
        return [path.name] if path.name else []
    if not path.is_dir():
        return []

    try:
        names = [entry.name for entry in path.iterdir() if entry.suffix == MODEL_EXTENSION]
    except OSError as exc:
        raise StorageIOError(f"Failed to read model dir: {exc}") from exc
    return sorted(names)
