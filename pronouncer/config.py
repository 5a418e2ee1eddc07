"""Configuration helpers for the pronunciation service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pronouncer.services.audio_utils import AudioFormat


DEFAULT_PROMPT_TEMPLATE = (
    "Say the following clearly in a natural British English (UK) accent: {text}"
)


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once at import time; restart the process to pick up changes.
    """

    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
    gemini_api_base: str = os.getenv(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )
    gemini_tts_model: str = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
    # Prebuilt voice; see the Gemini speech generation docs for the catalogue.
    gemini_voice_name: str = os.getenv("GEMINI_VOICE_NAME", "Kore")
    gemini_prompt_template: str = os.getenv("GEMINI_PROMPT_TEMPLATE", DEFAULT_PROMPT_TEMPLATE)
    gemini_request_timeout_seconds: float = float(os.getenv("GEMINI_REQUEST_TIMEOUT_SECONDS", "30"))

    # PCM layout returned by the speech API. The encoder trusts these values.
    audio_sample_rate: int = int(os.getenv("AUDIO_SAMPLE_RATE", "24000"))
    audio_channels: int = int(os.getenv("AUDIO_CHANNELS", "1"))
    audio_bits_per_sample: int = int(os.getenv("AUDIO_BITS_PER_SAMPLE", "16"))

    max_text_chars: int = int(os.getenv("MAX_TEXT_CHARS", "500"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


def default_audio_format(current: Optional[Settings] = None) -> AudioFormat:
    """Build the configured PCM format descriptor."""
    current = current or get_settings()
    return AudioFormat(
        sample_rate=current.audio_sample_rate,
        channels=current.audio_channels,
        bits_per_sample=current.audio_bits_per_sample,
    )


settings = get_settings()
