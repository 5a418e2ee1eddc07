from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class SpeechRequest(BaseModel):
  text: str = Field(..., max_length=10_000)


class Base64Pcm(BaseModel):
  encoding: Literal["base64"] = "base64"
  # Format fields fall back to the configured defaults when omitted.
  sample_rate: Optional[int] = None
  channels: Optional[int] = None
  bits_per_sample: Optional[int] = None
  filename: str = Field("audio.wav", min_length=1, max_length=200, pattern=r"^[A-Za-z0-9_.-]+$")
  data: str = ""


class AudioFormatInfo(BaseModel):
  sample_rate: int
  channels: int
  bits_per_sample: int


class HealthResponse(BaseModel):
  service: str
  status: str
  provider_configured: bool
  audio_format: AudioFormatInfo
  service_init_error: Optional[str] = None
