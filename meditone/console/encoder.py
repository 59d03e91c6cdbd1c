"""MEDITONE Encoder: compressed container first, PCM WAV as the fallback.

OGG Vorbis goes through libsndfile (``soundfile``). If that fails for
any reason the program is written as a canonical 16-bit WAV (44-byte
header + interleaved samples) with the standard library, which needs
no codec and cannot be unavailable.
"""

from __future__ import annotations

import io
import re
import wave
from dataclasses import dataclass
from typing import Literal

import numpy as np
import soundfile as sf
import structlog
from numpy.typing import NDArray

logger = structlog.get_logger()

OutputFormat = Literal["ogg", "wav"]

MIME_TYPES: dict[str, str] = {
    "ogg": "audio/ogg",
    "wav": "audio/wav",
}


@dataclass
class EncodedAudio:
    """Finished asset ready for download or playback."""

    data: bytes
    mime_type: str
    filename: str

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1]


def slugify(title: str, default: str = "meditation") -> str:
    """Lowercase ASCII slug usable in filenames and HTTP headers."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.strip().lower()).strip("-")
    return slug[:80] or default


def to_pcm16(data: NDArray[np.float64]) -> bytes:
    """Interleaved little-endian 16-bit PCM (asymmetric scaling, clipped)."""
    clipped = np.clip(data, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype("<i2").tobytes()


def encode_wav(data: NDArray[np.float64], sample_rate: int) -> bytes:
    frames = data if data.ndim == 2 else data[:, np.newaxis]
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(frames.shape[1])
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(to_pcm16(frames))
    return buf.getvalue()


def encode_ogg(data: NDArray[np.float64], sample_rate: int, compression_level: float = 0.6) -> bytes:
    buf = io.BytesIO()
    sf.write(
        buf,
        np.clip(data, -1.0, 1.0).astype(np.float32),
        sample_rate,
        format="OGG",
        subtype="VORBIS",
        compression_level=compression_level,
    )
    return buf.getvalue()


def encode_audio(
    data: NDArray[np.float64],
    sample_rate: int,
    title: str = "meditation",
    output_format: OutputFormat = "ogg",
    compression_level: float = 0.6,
) -> EncodedAudio:
    """Encode to the preferred format, degrading to WAV on any failure."""
    slug = slugify(title)
    if output_format == "ogg":
        try:
            payload = encode_ogg(data, sample_rate, compression_level)
            logger.info("encode.done", format="ogg", size_kb=round(len(payload) / 1024, 1))
            return EncodedAudio(payload, MIME_TYPES["ogg"], f"{slug}.ogg")
        except Exception as e:
            logger.warning("encode.fallback", format="wav", error=str(e))

    payload = encode_wav(data, sample_rate)
    logger.info("encode.done", format="wav", size_kb=round(len(payload) / 1024, 1))
    return EncodedAudio(payload, MIME_TYPES["wav"], f"{slug}.wav")
