from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

_RATE_RE = re.compile(r"rate=(\d+)")


class SpeechClientError(RuntimeError):
    """Raised when speech request/response handling fails."""


class SpeechClientConfigError(SpeechClientError):
    """Raised when required speech client configuration is missing."""


class SpeechNetworkError(SpeechClientError):
    """Raised when the speech API cannot be reached."""


class SpeechApiError(SpeechClientError):
    """Raised when the speech API rejects a request or returns no audio."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_gemini_configured(*, api_key: Optional[str] = None) -> bool:
    """Return True if enough env is set to create a GeminiSpeechClient."""
    return bool((api_key or "").strip())


def _extract_api_error(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
    return None


def _extract_inline_audio(data: Any) -> tuple[Optional[str], Optional[str]]:
    """Return (base64 data, mime type) from the first audio part of a response."""
    if not isinstance(data, dict):
        return None, None
    for candidate in data.get("candidates") or []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts or []:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if isinstance(inline, dict) and isinstance(inline.get("data"), str):
                return inline["data"], inline.get("mimeType")
    return None, None


def declared_sample_rate(mime_type: Optional[str]) -> Optional[int]:
    """Parse the `rate=` parameter of an `audio/L16;codec=pcm;rate=24000` mime type."""
    match = _RATE_RE.search(mime_type or "")
    return int(match.group(1)) if match else None


class GeminiSpeechClient:
    """HTTP client for the Gemini `generateContent` speech endpoint.

    Returns the base64-encoded PCM payload exactly as the API sends it; wrapping
    it in a container is left to the caller.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gemini-2.5-flash-preview-tts",
        voice_name: str = "Kore",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        prompt_template: str = "{text}",
        expected_sample_rate: Optional[int] = None,
        request_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        normalized_key = (api_key or "").strip()
        if not normalized_key:
            raise SpeechClientConfigError("GEMINI_API_KEY is required")
        if "{text}" not in prompt_template:
            raise SpeechClientConfigError("GEMINI_PROMPT_TEMPLATE must contain '{text}'")

        self._api_key = normalized_key
        self._model = model.strip()
        self._voice_name = voice_name.strip()
        self._prompt_template = prompt_template
        self._expected_sample_rate = expected_sample_rate
        self._url = f"{api_base.rstrip('/')}/models/{self._model}:generateContent"
        self._http = httpx.AsyncClient(
            timeout=request_timeout_seconds,
            headers=self.headers,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            http2=True,
            transport=transport,
        )

    @property
    def headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @property
    def url(self) -> str:
        return self._url

    def build_payload(self, text: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": self._prompt_template.format(text=text)}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": self._voice_name},
                    },
                },
            },
        }

    async def request_speech(self, text: str) -> str:
        """Synthesize `text` and return the base64 PCM payload."""
        try:
            response = await self._http.post(self._url, json=self.build_payload(text))
        except httpx.HTTPError as exc:
            logger.warning("Gemini speech request failed: %s", exc)
            raise SpeechNetworkError(f"Gemini speech request failed: {exc}") from exc

        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            detail = _extract_api_error(response) or response.reason_phrase or "HTTP error"
            raise SpeechApiError(
                f"Gemini speech request failed with status {response.status_code}: {detail}",
                status_code=response.status_code,
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise SpeechApiError(
                "Gemini returned a non-JSON response", status_code=response.status_code
            ) from exc

        audio_b64, mime_type = _extract_inline_audio(data)
        if not audio_b64:
            raise SpeechApiError(
                "Gemini response did not contain audio data", status_code=response.status_code
            )

        declared = declared_sample_rate(mime_type)
        if declared and self._expected_sample_rate and declared != self._expected_sample_rate:
            logger.warning(
                "Gemini declared %s Hz audio but %s Hz is configured; trusting configuration",
                declared,
                self._expected_sample_rate,
            )
        return audio_b64

    async def aclose(self) -> None:
        """Close persistent HTTP resources used by this client."""
        await self._http.aclose()
