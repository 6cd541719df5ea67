import requests
from fastapi.testclient import TestClient

from conftest import b64
from scribeline.api.main import create_app


def test_transcribe_rejects_invalid_base64(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/transcribe", json={"audioBase64": "***"})
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Failed to decode audio")


def test_transcribe_local_without_whisper_path_is_404(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/transcribe", json={"audioBase64": b64(b"x"), "provider": "local"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Whisper path not configured"


def test_remote_without_api_key_is_400(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/transcribe", json={"audioBase64": b64(b"x"), "provider": "openai-compatible"})
    assert response.status_code == 400
    assert "API key" in response.json()["detail"]


def test_unknown_provider_is_400(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/streaming/sessions", json={"provider": "carrier-pigeon"})
    assert response.status_code == 400
    assert "carrier-pigeon" in response.json()["detail"]


def test_remote_api_failure_is_502(service_config, monkeypatch) -> None:
    client = TestClient(create_app(service_config))
    settings = client.get("/settings").json()
    settings["transcription"]["openaiCompatible"]["apiKey"] = "sk-test"
    client.put("/settings", json=settings)

    class _Denied:
        status_code = 401
        text = "invalid api key"

    monkeypatch.setattr(requests, "post", lambda url, **kwargs: _Denied())
    response = client.post("/transcribe", json={"audioBase64": b64(b"x"), "provider": "openai-compatible"})
    assert response.status_code == 502
    assert "invalid api key" in response.json()["detail"]


def test_unknown_session_chunk_is_404(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post(
        "/streaming/sessions/nope/chunks",
        json={"chunkIndex": 0, "audioBase64": b64(b"x")},
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found: nope"


def test_negative_chunk_index_is_422(service_config) -> None:
    client = TestClient(create_app(service_config))
    session_id = client.post("/streaming/sessions", json={}).json()["sessionId"]
    response = client.post(
        f"/streaming/sessions/{session_id}/chunks",
        json={"chunkIndex": -1, "audioBase64": b64(b"x")},
    )
    assert response.status_code == 422


def test_missing_worker_script_is_404(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/ai/summary/stream", json={"meetingId": "m", "transcript": "t"})
    assert response.status_code == 404
    assert "summary.mjs" in response.json()["detail"]


def test_failing_worker_is_502(service_config, write_script) -> None:
    write_script(
        "enhance.mjs",
        "import sys\nsys.stderr.write('quota exceeded')\nsys.exit(4)\n",
        directory=service_config.worker_scripts_dir_path(),
    )
    client = TestClient(create_app(service_config))
    response = client.post("/ai/enhance", json={"text": "x"})
    assert response.status_code == 502
    assert "quota exceeded" in response.json()["detail"]


def test_cancel_unknown_job_is_404(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.post("/ai/jobs/missing/cancel")
    assert response.status_code == 404


def test_invalid_settings_payload_is_422(service_config) -> None:
    client = TestClient(create_app(service_config))
    response = client.put("/settings", json={"transcription": {"provider": "fax"}})
    assert response.status_code == 422
