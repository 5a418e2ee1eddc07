from __future__ import annotations

import base64
import logging
import re
import struct
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

WAV_MEDIA_TYPE = "audio/wav"
WAV_HEADER_SIZE = 44
FMT_CHUNK_SIZE = 16
PCM_AUDIO_FORMAT = 1

# RIFF descriptor + fmt subchunk + data subchunk descriptor.
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")
_UINT16_MAX = 0xFFFF
_UINT32_MAX = 0xFFFFFFFF
# Whole quads only; "=" may appear solely as the tail of the final quad.
_BASE64_RE = re.compile(r"(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?")


class AudioEncodingError(ValueError):
    """Raised when a PCM payload cannot be wrapped in a WAV container."""


class DecodeError(AudioEncodingError):
    """Raised when the base64 payload or the PCM buffer it carries is malformed."""


class InvalidFormatError(AudioEncodingError):
    """Raised when an audio format descriptor cannot be represented in a WAV header."""


@dataclass(frozen=True, slots=True)
class AudioFormat:
    """Immutable PCM layout: sample rate, channel count and bit depth."""

    sample_rate: int
    channels: int
    bits_per_sample: int

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        return self.channels * self.bytes_per_sample

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align

    def validate(self) -> None:
        """Raise InvalidFormatError unless every field fits a canonical PCM header."""
        for name in ("sample_rate", "channels", "bits_per_sample"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidFormatError(f"{name} must be an integer, got {value!r}")
        if self.sample_rate <= 0:
            raise InvalidFormatError(f"sample_rate must be > 0, got {self.sample_rate}")
        if self.channels <= 0:
            raise InvalidFormatError(f"channels must be > 0, got {self.channels}")
        if self.bits_per_sample <= 0:
            raise InvalidFormatError(f"bits_per_sample must be > 0, got {self.bits_per_sample}")
        if self.bits_per_sample % 8:
            raise InvalidFormatError(
                f"bits_per_sample must be a multiple of 8, got {self.bits_per_sample}"
            )
        if self.channels > _UINT16_MAX or self.bits_per_sample > _UINT16_MAX:
            raise InvalidFormatError("channels and bits_per_sample must fit in 16 bits")
        if self.block_align > _UINT16_MAX:
            raise InvalidFormatError(f"block_align {self.block_align} does not fit in 16 bits")
        if self.byte_rate > _UINT32_MAX:
            raise InvalidFormatError(f"byte_rate {self.byte_rate} does not fit in 32 bits")


@dataclass(frozen=True, slots=True)
class WavContainer:
    """A complete WAV file held in memory.

    The object owns no OS resources, so dropping it (or calling `release`
    any number of times) is always safe.
    """

    data: bytes
    media_type: str = WAV_MEDIA_TYPE

    def __len__(self) -> int:
        return len(self.data)

    def __bytes__(self) -> bytes:
        return self.data

    @property
    def header(self) -> bytes:
        return self.data[:WAV_HEADER_SIZE]

    @property
    def pcm(self) -> bytes:
        return self.data[WAV_HEADER_SIZE:]

    @property
    def data_length(self) -> int:
        return len(self.data) - WAV_HEADER_SIZE

    def save(self, path: str | Path) -> Path:
        """Write the container to `path` and return the resolved location."""
        target = Path(path).expanduser().resolve()
        target.write_bytes(self.data)
        return target

    def release(self) -> None:
        """No-op; present so callers can release containers uniformly."""
        return None


def decode_base64(payload: str) -> bytes:
    """Decode standard, padded base64. An empty string yields empty bytes."""
    if not payload:
        return b""
    if len(payload) % 4:
        raise DecodeError(f"Invalid base64 payload: length {len(payload)} is not a multiple of 4")
    if not _BASE64_RE.fullmatch(payload):
        raise DecodeError("Invalid base64 payload: bad character or misplaced padding")
    try:
        return base64.b64decode(payload, validate=True)
    except ValueError as exc:
        # binascii.Error subclasses ValueError; non-ASCII text raises ValueError.
        raise DecodeError(f"Invalid base64 payload: {exc}") from exc


def build_wav_header(audio_format: AudioFormat, data_length: int) -> bytes:
    """Return the canonical 44-byte PCM WAVE header for `data_length` bytes of samples."""
    audio_format.validate()
    if data_length < 0:
        raise InvalidFormatError(f"data_length must be >= 0, got {data_length}")
    riff_chunk_size = 4 + (8 + FMT_CHUNK_SIZE) + (8 + data_length)
    if riff_chunk_size > _UINT32_MAX:
        raise InvalidFormatError(f"PCM payload of {data_length} bytes is too large for WAV")

    return _HEADER_STRUCT.pack(
        b"RIFF",
        riff_chunk_size,
        b"WAVE",
        b"fmt ",
        FMT_CHUNK_SIZE,
        PCM_AUDIO_FORMAT,
        audio_format.channels,
        audio_format.sample_rate,
        audio_format.byte_rate,
        audio_format.block_align,
        audio_format.bits_per_sample,
        b"data",
        data_length,
    )


def parse_wav_header(data: bytes) -> tuple[AudioFormat, int]:
    """Read a canonical PCM WAVE header back into its format and data length."""
    if len(data) < WAV_HEADER_SIZE:
        raise DecodeError(f"WAV header needs {WAV_HEADER_SIZE} bytes, got {len(data)}")
    (
        riff,
        riff_chunk_size,
        wave,
        fmt_id,
        fmt_size,
        audio_format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        data_id,
        data_length,
    ) = _HEADER_STRUCT.unpack_from(data)
    if (riff, wave, fmt_id, data_id) != (b"RIFF", b"WAVE", b"fmt ", b"data"):
        raise DecodeError("Not a canonical RIFF/WAVE header")
    if fmt_size != FMT_CHUNK_SIZE or audio_format_tag != PCM_AUDIO_FORMAT:
        raise DecodeError("Only uncompressed PCM fmt chunks are supported")
    if riff_chunk_size != 36 + data_length:
        raise DecodeError(
            f"RIFF chunk size {riff_chunk_size} disagrees with data length {data_length}"
        )

    audio_format = AudioFormat(
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits_per_sample,
    )
    if byte_rate != audio_format.byte_rate or block_align != audio_format.block_align:
        raise DecodeError("byte_rate/block_align disagree with the declared format")
    return audio_format, data_length


def pcm_to_wav(pcm: bytes, audio_format: AudioFormat) -> WavContainer:
    """Wrap raw little-endian PCM in a WAV container without touching sample bytes."""
    audio_format.validate()
    if len(pcm) % audio_format.block_align:
        raise DecodeError(
            f"PCM length {len(pcm)} is not a multiple of the {audio_format.block_align}-byte "
            "frame size; payload is truncated or malformed"
        )
    header = build_wav_header(audio_format, len(pcm))
    return WavContainer(data=header + bytes(pcm))


def encode(payload: str, audio_format: AudioFormat) -> WavContainer:
    """Decode a base64 PCM payload and wrap it as a WAV container."""
    audio_format.validate()
    pcm = decode_base64(payload)
    container = pcm_to_wav(pcm, audio_format)
    logger.debug(
        "Encoded %d PCM bytes as WAV (%d Hz, %d ch, %d-bit)",
        len(pcm),
        audio_format.sample_rate,
        audio_format.channels,
        audio_format.bits_per_sample,
    )
    return container
