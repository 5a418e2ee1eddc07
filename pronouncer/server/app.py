from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from pronouncer.config import default_audio_format, settings
from pronouncer.server.models import AudioFormatInfo, Base64Pcm, HealthResponse, SpeechRequest
from pronouncer.services.audio_utils import (
  WAV_MEDIA_TYPE,
  AudioFormat,
  DecodeError,
  InvalidFormatError,
  WavContainer,
  encode,
)
from pronouncer.services.pronunciation import (
  EmptyTextError,
  PronunciationService,
  PronunciationServiceError,
  SpeechUnavailableError,
  TextTooLongError,
  build_default_service,
)

logger = logging.getLogger(__name__)


def _wav_response(container: WavContainer, filename: str) -> Response:
  return Response(
    content=container.data,
    media_type=WAV_MEDIA_TYPE,
    headers={"Content-Disposition": f'attachment; filename="{filename}"'},
  )


def _status_for(exc: PronunciationServiceError) -> int:
  if isinstance(exc, EmptyTextError):
    return 400
  if isinstance(exc, TextTooLongError):
    return 413
  if isinstance(exc, SpeechUnavailableError):
    return 503
  return 502


def create_app(service: Optional[PronunciationService] = None) -> FastAPI:
  logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

  service_init_error: Optional[str] = None
  service_init_status = 503
  if service is None:
    try:
      service = build_default_service()
    except InvalidFormatError as exc:
      logger.error("Configured audio format is invalid: %s", exc)
      service_init_error = f"Audio format is misconfigured: {exc}"
      service_init_status = 500
    except PronunciationServiceError as exc:
      # Server should still start so the user can hit /health and see what's wrong.
      logger.error("Pronunciation service failed to initialise: %s", exc)
      service_init_error = str(exc)

  @asynccontextmanager
  async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    if app.state.service is not None:
      await app.state.service.aclose()

  app = FastAPI(title="UK Pronunciation Generator", version="0.1.0", lifespan=lifespan)
  app.state.service = service
  app.state.service_init_error = service_init_error
  app.state.service_init_status = service_init_status

  @app.get("/health", response_model=HealthResponse)
  async def health() -> HealthResponse:
    current: Optional[PronunciationService] = app.state.service
    fmt = current.audio_format if current is not None else default_audio_format(settings)
    return HealthResponse(
      service="uk-pronouncer",
      status="ok",
      provider_configured=bool(current is not None and current.is_available),
      audio_format=AudioFormatInfo(
        sample_rate=fmt.sample_rate,
        channels=fmt.channels,
        bits_per_sample=fmt.bits_per_sample,
      ),
      service_init_error=app.state.service_init_error,
    )

  @app.post("/speech")
  async def speech(req: SpeechRequest) -> Response:
    current: Optional[PronunciationService] = app.state.service
    if current is None:
      raise HTTPException(
        status_code=app.state.service_init_status, detail=app.state.service_init_error
      )

    try:
      result = await current.generate(req.text)
    except InvalidFormatError as exc:
      logger.error("Configured audio format is invalid: %s", exc)
      raise HTTPException(status_code=500, detail=f"Audio format is misconfigured: {exc}")
    except PronunciationServiceError as exc:
      raise HTTPException(status_code=_status_for(exc), detail=exc.user_message)

    return _wav_response(result.container, result.filename)

  @app.post("/encode")
  async def encode_pcm(req: Base64Pcm) -> Response:
    defaults = default_audio_format(settings)
    fmt = AudioFormat(
      sample_rate=req.sample_rate if req.sample_rate is not None else defaults.sample_rate,
      channels=req.channels if req.channels is not None else defaults.channels,
      bits_per_sample=(
        req.bits_per_sample if req.bits_per_sample is not None else defaults.bits_per_sample
      ),
    )
    try:
      container = encode(req.data, fmt)
    except DecodeError as exc:
      raise HTTPException(status_code=400, detail=str(exc))
    except InvalidFormatError as exc:
      raise HTTPException(status_code=422, detail=str(exc))

    return _wav_response(container, req.filename)

  return app
