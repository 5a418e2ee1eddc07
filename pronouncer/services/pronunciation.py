from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from pronouncer.config import default_audio_format, settings
from pronouncer.services.audio_utils import AudioFormat, DecodeError, WavContainer, encode
from pronouncer.services.gemini import (
    GeminiSpeechClient,
    SpeechClientConfigError,
    SpeechClientError,
    is_gemini_configured,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Failed to generate audio. Please try again."
_UNSAFE_FILENAME_RE = re.compile(r"[^\w.-]+")


class SpeechClient(Protocol):
    """Anything that turns text into a base64 PCM payload."""

    async def request_speech(self, text: str) -> str:
        raise NotImplementedError


class PronunciationServiceError(RuntimeError):
    """Raised when a pronunciation cannot be produced."""

    user_message = GENERIC_FAILURE_MESSAGE

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class EmptyTextError(PronunciationServiceError):
    user_message = "Please enter some text."


class TextTooLongError(PronunciationServiceError):
    """Raised when input text exceeds the configured character limit."""


class SpeechUnavailableError(PronunciationServiceError):
    user_message = "Speech provider is not configured."


class SpeechGenerationError(PronunciationServiceError):
    """Raised when the speech API call or decoding of its payload fails."""


@dataclass(slots=True)
class PronunciationResult:
    text: str
    filename: str
    container: WavContainer


def download_filename(text: str) -> str:
    """Name the download after the first word of the input, e.g. `pronunciation_hello.wav`."""
    words = (text or "").strip().split(" ")
    first = _UNSAFE_FILENAME_RE.sub("_", words[0].lower()).strip("._")
    return f"pronunciation_{first or 'audio'}.wav"


class PronunciationService:
    """Turns user text into a downloadable WAV pronunciation.

    An injected client takes precedence (e.g. tests/fakes); otherwise a Gemini
    client is built from settings when an API key is configured.
    """

    def __init__(
        self,
        *,
        client: Optional[SpeechClient] = None,
        audio_format: Optional[AudioFormat] = None,
        max_text_chars: Optional[int] = None,
    ) -> None:
        self._audio_format = audio_format or default_audio_format(settings)
        # Fail at startup rather than after a billed speech request.
        self._audio_format.validate()
        self._max_text_chars = max_text_chars if max_text_chars is not None else settings.max_text_chars
        self._client = client if client is not None else self._build_default_client()

    @staticmethod
    def _build_default_client() -> GeminiSpeechClient | None:
        """Return a Gemini client if configured; otherwise None (generation disabled)."""
        if not is_gemini_configured(api_key=settings.gemini_api_key):
            return None
        return GeminiSpeechClient(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_tts_model,
            voice_name=settings.gemini_voice_name,
            api_base=settings.gemini_api_base,
            prompt_template=settings.gemini_prompt_template,
            expected_sample_rate=settings.audio_sample_rate,
            request_timeout_seconds=settings.gemini_request_timeout_seconds,
        )

    @property
    def audio_format(self) -> AudioFormat:
        return self._audio_format

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def generate(self, text: str) -> PronunciationResult:
        """Synthesize `text` and wrap the returned PCM as a WAV container.

        `InvalidFormatError` is not wrapped: it signals a misconfigured audio
        format rather than a failure the user can retry.
        """
        normalized = (text or "").strip()
        if not normalized:
            raise EmptyTextError("Input text is empty")
        if self._max_text_chars > 0 and len(normalized) > self._max_text_chars:
            raise TextTooLongError(
                f"Input text has {len(normalized)} characters (max {self._max_text_chars})",
                user_message=f"Please keep the text under {self._max_text_chars} characters.",
            )
        if self._client is None:
            raise SpeechUnavailableError("Speech provider unavailable. Configure GEMINI_API_KEY.")

        try:
            audio_b64 = await self._client.request_speech(normalized)
        except SpeechClientError as exc:
            logger.error("Speech request failed: %s", exc)
            raise SpeechGenerationError(f"Speech request failed: {exc}") from exc

        try:
            container = encode(audio_b64, self._audio_format)
        except DecodeError as exc:
            logger.error("Speech payload could not be decoded: %s", exc)
            raise SpeechGenerationError(f"Speech payload could not be decoded: {exc}") from exc

        logger.info("Generated %d-byte pronunciation for %r", len(container), normalized[:40])
        return PronunciationResult(
            text=normalized,
            filename=download_filename(normalized),
            container=container,
        )

    async def aclose(self) -> None:
        """Close the speech client if it holds network resources."""
        if self._client is not None and hasattr(self._client, "aclose"):
            await self._client.aclose()  # type: ignore[attr-defined]


def build_default_service() -> PronunciationService:
    """Build a service from settings, surfacing client config errors as service errors.

    `InvalidFormatError` from the configured audio format propagates unchanged.
    """
    try:
        return PronunciationService()
    except SpeechClientConfigError as exc:
        raise SpeechUnavailableError(str(exc)) from exc
