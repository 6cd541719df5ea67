import json
from pathlib import Path

import pytest

from scribeline.internal_core.errors import DecodeError
from scribeline.internal_core.settings_store import AppSettings, SettingsStore


def test_missing_file_is_created_with_defaults(tmp_path: Path) -> None:
    path = tmp_path / "data" / "settings.json"
    settings = SettingsStore(path).load()

    assert settings.version == 2
    assert settings.transcription.provider == "local"
    assert settings.transcription.local.beam_size == 5
    assert settings.ai.default_model == "gpt-4.1"
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["transcription"]["openaiCompatible"]["model"] == "whisper-1"
    assert on_disk["transcription"]["streaming"]["chunkDurationMs"] == 5000


def test_v1_file_is_migrated_and_rewritten_without_legacy_keys(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "whisperPath": "/opt/whisper",
                "modelPath": "/opt/models",
                "language": "de",
                "includeSystemAudio": False,
                "defaultModel": "gpt-x",
            }
        ),
        encoding="utf-8",
    )

    settings = SettingsStore(path).load()

    assert settings.version == 2
    assert settings.transcription.local.whisper_path == "/opt/whisper"
    assert settings.transcription.local.model_path == "/opt/models"
    assert settings.transcription.language == "de"
    assert settings.ui.include_system_audio is False
    assert settings.ai.default_model == "gpt-x"

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["version"] == 2
    assert "whisperPath" not in on_disk
    assert on_disk["transcription"]["local"]["whisperPath"] == "/opt/whisper"


def test_legacy_fields_still_feed_effective_values() -> None:
    settings = AppSettings.model_validate({"whisperPath": "/legacy/whisper", "modelPath": "/legacy/models"})
    assert settings.effective_whisper_path() == "/legacy/whisper"
    assert settings.effective_model_path() == "/legacy/models"
    assert settings.effective_language() == "en"


def test_unparseable_file_raises_decode_error(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(DecodeError):
        SettingsStore(path).load()


def test_save_round_trips_camel_case(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    settings = store.load()
    settings.transcription.provider = "openai-compatible"
    settings.transcription.openai_compatible.api_key = "sk-test"
    store.save(settings)

    reloaded = store.load()
    assert reloaded.transcription.provider == "openai-compatible"
    assert reloaded.transcription.openai_compatible.api_key == "sk-test"
