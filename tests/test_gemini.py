from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from pronouncer.services.gemini import (
    GeminiSpeechClient,
    SpeechApiError,
    SpeechClientConfigError,
    SpeechNetworkError,
    declared_sample_rate,
)


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _client(handler, **kwargs) -> GeminiSpeechClient:  # noqa: ANN001
    return GeminiSpeechClient(
        api_key="test-key",
        api_base="https://gemini.example.com/v1beta/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _audio_response(data: str, mime_type: str = "audio/L16;codec=pcm;rate=24000") -> dict:
    return {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": mime_type, "data": data}}]}}
        ]
    }


def test_request_speech_returns_inline_audio_and_sends_voice_config() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_audio_response("AAABAA=="))

    client = _client(handler, voice_name="Puck", prompt_template="Say in British English: {text}")

    audio = _run(client.request_speech("tomato"))

    assert audio == "AAABAA=="
    request = seen[0]
    assert str(request.url) == (
        "https://gemini.example.com/v1beta/models/gemini-2.5-flash-preview-tts:generateContent"
    )
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "Say in British English: tomato"
    assert body["generationConfig"]["responseModalities"] == ["AUDIO"]
    voice = body["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
    assert voice == {"voiceName": "Puck"}


def test_request_speech_maps_http_errors_to_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"code": 403, "message": "API key not valid"}})

    client = _client(handler)

    with pytest.raises(SpeechApiError) as excinfo:
        _run(client.request_speech("hello"))

    assert excinfo.value.status_code == 403
    assert "API key not valid" in str(excinfo.value)


def test_request_speech_rejects_response_without_audio() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "no"}]}}]})

    with pytest.raises(SpeechApiError):
        _run(_client(handler).request_speech("hello"))


def test_request_speech_maps_transport_errors_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SpeechNetworkError):
        _run(_client(handler).request_speech("hello"))


def test_mismatched_declared_rate_is_logged_not_fatal(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_audio_response("AAAA", "audio/L16;codec=pcm;rate=16000"))

    client = _client(handler, expected_sample_rate=24_000)

    with caplog.at_level("WARNING", logger="pronouncer.services.gemini"):
        assert _run(client.request_speech("hello")) == "AAAA"

    assert "16000" in caplog.text


def test_client_requires_api_key_and_text_placeholder() -> None:
    with pytest.raises(SpeechClientConfigError):
        GeminiSpeechClient(api_key="  ")
    with pytest.raises(SpeechClientConfigError):
        GeminiSpeechClient(api_key="key", prompt_template="no placeholder")


def test_declared_sample_rate_parses_mime_parameters() -> None:
    assert declared_sample_rate("audio/L16;codec=pcm;rate=24000") == 24_000
    assert declared_sample_rate("audio/wav") is None
    assert declared_sample_rate(None) is None
