"""MEDITONE PCM decoding and Lanczos-3 rate conversion.

Speech services deliver narration as raw 16-bit little-endian mono PCM,
typically at 24 kHz. This module turns those bytes into normalized float
samples at the render rate, and stitches multi-chunk narration with the
same crossfade primitive the bed extender uses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import structlog
from numpy.typing import NDArray

from meditone.hands.effects import crossfade_concat

logger = structlog.get_logger()

LANCZOS_A = 3
RATE_TOLERANCE_HZ = 1.0


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class RawNarration:
    """Decoded mono narration. The sample buffer is read-only."""

    samples: NDArray[np.float64]
    sample_rate: int

    def __post_init__(self) -> None:
        self.samples.setflags(write=False)

    @property
    def duration_s(self) -> float:
        return len(self.samples) / self.sample_rate

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0


# ── Kernel & Resampler ───────────────────────────────────


def lanczos3(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Lanczos kernel with a = 3: ``sinc(x) * sinc(x / 3)`` inside |x| < 3."""
    x = np.asarray(x, dtype=np.float64)
    # np.sinc is the normalized sinc and equals 1 at 0
    kernel = np.sinc(x) * np.sinc(x / LANCZOS_A)
    return np.where(np.abs(x) < LANCZOS_A, kernel, 0.0)


def resample_lanczos(
    samples: NDArray[np.float64],
    src_rate: float,
    dst_rate: float,
) -> NDArray[np.float64]:
    """Windowed-sinc resampling from ``src_rate`` to ``dst_rate``.

    Output length is ``ceil(len(samples) / (src_rate / dst_rate))``.
    Works on mono ``(n,)`` and multichannel ``(n, ch)`` arrays. Rates within
    1 Hz of each other return the input unchanged.
    """
    if abs(src_rate - dst_rate) <= RATE_TOLERANCE_HZ:
        return samples

    n = len(samples)
    ratio = src_rate / dst_rate
    dst_len = math.ceil(n / ratio)
    if n == 0:
        return np.zeros((0,) + samples.shape[1:], dtype=np.float64)

    src_pos = np.arange(dst_len, dtype=np.float64) * ratio
    base = np.floor(src_pos).astype(np.int64)
    out = np.zeros((dst_len,) + samples.shape[1:], dtype=np.float64)

    for offset in range(-LANCZOS_A + 1, LANCZOS_A + 1):
        j = base + offset
        valid = (j >= 0) & (j < n)
        weight = lanczos3(src_pos - j) * valid
        taps = samples[np.clip(j, 0, n - 1)]
        if samples.ndim == 2:
            weight = weight[:, np.newaxis]
        out += taps * weight

    return out


# ── Decoding ─────────────────────────────────────────────


def pcm16_to_float(data: bytes | bytearray | memoryview) -> NDArray[np.float64]:
    """Interpret bytes as 16-bit LE PCM, normalized to [-1, 1).

    A trailing odd byte is dropped. The usable bytes are always copied into
    a fresh buffer so callers may pass unaligned slices.
    """
    raw = memoryview(data).cast("B")
    usable = len(raw) - (len(raw) % 2)
    if usable != len(raw):
        logger.debug("pcm.truncated_partial_sample", byte_length=len(raw))
    scratch = bytes(raw[:usable])
    ints = np.frombuffer(scratch, dtype="<i2")
    return ints.astype(np.float64) / 32768.0


def decode_pcm(
    data: bytes | bytearray | memoryview,
    target_rate: int,
    source_rate: int = 24000,
) -> RawNarration:
    """Decode raw narration PCM and convert it to the render rate."""
    samples = pcm16_to_float(data)

    if abs(target_rate - source_rate) > RATE_TOLERANCE_HZ:
        logger.info("pcm.resample", src_rate=source_rate, dst_rate=target_rate, samples=len(samples))
        samples = resample_lanczos(samples, source_rate, target_rate)

    return RawNarration(samples=np.ascontiguousarray(samples), sample_rate=target_rate)


def stitch_chunks(
    chunks: list[bytes],
    target_rate: int,
    source_rate: int = 24000,
    crossfade_ms: float = 30.0,
) -> RawNarration:
    """Decode independently synthesized narration chunks into one buffer.

    Adjacent chunks overlap by ``crossfade_ms`` with an equal-sum crossfade,
    which hides clicks and timbre jumps at the seams.
    """
    decoded = [pcm16_to_float(chunk) for chunk in chunks]
    fade_len = int(round(crossfade_ms / 1000.0 * source_rate))
    merged = crossfade_concat(decoded, fade_len)

    logger.info("pcm.stitched", chunks=len(chunks), samples=len(merged))

    if abs(target_rate - source_rate) > RATE_TOLERANCE_HZ:
        merged = resample_lanczos(merged, source_rate, target_rate)
    return RawNarration(samples=np.ascontiguousarray(merged), sample_rate=target_rate)
