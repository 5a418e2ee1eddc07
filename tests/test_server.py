from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from pronouncer.server.app import create_app
from pronouncer.services.audio_utils import AudioFormat, parse_wav_header
from pronouncer.services.gemini import SpeechNetworkError
from pronouncer.services.pronunciation import GENERIC_FAILURE_MESSAGE, PronunciationService

MONO_24K = AudioFormat(sample_rate=24_000, channels=1, bits_per_sample=16)


class FakeSpeechClient:
    def __init__(self, *, audio_b64: str = "", error: Exception | None = None) -> None:
        self._audio_b64 = audio_b64
        self._error = error
        self.closed = False

    async def request_speech(self, text: str) -> str:
        _ = text
        if self._error is not None:
            raise self._error
        return self._audio_b64

    async def aclose(self) -> None:
        self.closed = True


def _test_client(fake: FakeSpeechClient, audio_format: AudioFormat = MONO_24K) -> TestClient:
    service = PronunciationService(client=fake, audio_format=audio_format)
    return TestClient(create_app(service=service))


def test_speech_endpoint_returns_downloadable_wav() -> None:
    pcm = b"\x00\x00\x01\x00"
    client = _test_client(FakeSpeechClient(audio_b64=base64.b64encode(pcm).decode("ascii")))

    response = client.post("/speech", json={"text": "Aluminium foil"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.headers["content-disposition"] == (
        'attachment; filename="pronunciation_aluminium.wav"'
    )
    assert len(response.content) == 48
    assert response.content[44:] == pcm


def test_speech_endpoint_maps_errors_to_status_codes() -> None:
    client = _test_client(FakeSpeechClient(error=SpeechNetworkError("offline")))

    assert client.post("/speech", json={"text": "  "}).status_code == 400
    failed = client.post("/speech", json={"text": "hello"})
    assert failed.status_code == 502
    assert failed.json()["detail"] == GENERIC_FAILURE_MESSAGE


def test_misconfigured_format_is_reported_at_startup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("pronouncer.services.pronunciation.settings.audio_bits_per_sample", 12)
    client = TestClient(create_app())

    health = client.get("/health").json()
    assert "bits_per_sample" in (health["service_init_error"] or "")
    response = client.post("/speech", json={"text": "hello"})
    assert response.status_code == 500
    assert "misconfigured" in response.json()["detail"]


def test_speech_endpoint_without_provider_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("pronouncer.services.pronunciation.settings.gemini_api_key", None, raising=False)
    client = TestClient(create_app())

    health = client.get("/health").json()
    assert health["provider_configured"] is False
    assert client.post("/speech", json={"text": "hello"}).status_code == 503


def test_health_reports_audio_format() -> None:
    client = _test_client(FakeSpeechClient())

    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["provider_configured"] is True
    assert body["audio_format"] == {"sample_rate": 24_000, "channels": 1, "bits_per_sample": 16}


def test_encode_endpoint_wraps_payload_with_requested_format() -> None:
    client = _test_client(FakeSpeechClient())
    pcm = bytes(range(8))

    response = client.post(
        "/encode",
        json={
            "data": base64.b64encode(pcm).decode("ascii"),
            "sample_rate": 16_000,
            "channels": 2,
            "bits_per_sample": 16,
            "filename": "clip.wav",
        },
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="clip.wav"'
    fmt, data_length = parse_wav_header(response.content)
    assert fmt == AudioFormat(sample_rate=16_000, channels=2, bits_per_sample=16)
    assert data_length == len(pcm)


def test_encode_endpoint_rejects_bad_payload_and_format() -> None:
    client = _test_client(FakeSpeechClient())

    assert client.post("/encode", json={"data": "abc"}).status_code == 400
    assert client.post("/encode", json={"data": "", "channels": -1}).status_code == 422
    assert client.post("/encode", json={"data": "", "filename": "a b\".wav"}).status_code == 422


def test_lifespan_closes_speech_client() -> None:
    fake = FakeSpeechClient()
    service = PronunciationService(client=fake, audio_format=MONO_24K)

    with TestClient(create_app(service=service)) as client:
        assert client.get("/health").status_code == 200

    assert fake.closed
