"""MEDITONE Bed Extender: background music acquisition and looping.

A background reference is a catalog id, an http(s) URL or a local file.
Short clips are looped to the exact render length with crossfaded seams.
Anything that goes wrong while fetching or decoding degrades to a quiet
pink-noise bed; acquisition problems never surface as errors.
"""

from __future__ import annotations

import asyncio
import io
import math
from dataclasses import dataclass
from pathlib import Path

import httpx
import numpy as np
import soundfile as sf
import structlog
from numpy.typing import NDArray

from meditone.ear.pcm import resample_lanczos
from meditone.hands.effects import crossfade_gains
from meditone.hands.synth import pink_noise

logger = structlog.get_logger()

AudioArray = NDArray[np.float64]

FALLBACK_GAIN = 0.003


@dataclass(frozen=True)
class BackgroundTrack:
    id: str
    name: str
    url: str


BACKGROUND_TRACKS: tuple[BackgroundTrack, ...] = (
    BackgroundTrack("zen-forest", "Quiet Forest", "https://assets.mixkit.co/active_storage/sfx/2432/2432-preview.mp3"),
    BackgroundTrack("deep-rain", "Meditation Rain", "https://assets.mixkit.co/active_storage/sfx/2515/2515-preview.mp3"),
    BackgroundTrack("ocean-waves", "Tidal Rhythm", "https://assets.mixkit.co/active_storage/sfx/2417/2417-preview.mp3"),
    BackgroundTrack("white-noise", "Warm Hearth", "https://assets.mixkit.co/active_storage/sfx/2527/2527-preview.mp3"),
)

DEFAULT_BACKGROUND = BACKGROUND_TRACKS[0].id


@dataclass
class BackgroundBed:
    """Stereo bed at render rate plus where it came from."""

    audio: AudioArray
    source: str
    fallback: bool = False


def resolve_background(ref: str | None) -> str | None:
    """Map a catalog id to its URL; URLs and paths pass through."""
    if not ref:
        return None
    for track in BACKGROUND_TRACKS:
        if track.id == ref:
            return track.url
    return ref


# ── Looping ──────────────────────────────────────────────


def loop_with_crossfade(
    clip: AudioArray,
    target_s: float,
    sr: int,
    crossfade_s: float = 2.0,
) -> AudioArray:
    """Extend ``clip`` to exactly ``ceil(target_s * sr)`` samples.

    The first pass writes the whole clip. Each later pass starts one
    effective length (clip minus crossfade) further on and blends the
    clip's own tail into its head over the crossfade window. Clips no
    longer than the window are repeated modulo their length instead.
    """
    target = math.ceil(sr * target_s)
    length = len(clip)
    out = np.zeros((target,) + clip.shape[1:], dtype=np.float64)
    if length == 0 or target == 0:
        return out

    fade = int(math.floor(sr * crossfade_s))
    effective = length - fade
    if effective <= 0:
        return clip[np.arange(target) % length].astype(np.float64)

    head = min(length, target)
    out[:head] = clip[:head]
    if target <= effective:
        return out

    fade_out, fade_in = crossfade_gains(fade)
    if clip.ndim == 2:
        fade_out = fade_out[:, np.newaxis]
        fade_in = fade_in[:, np.newaxis]
    seam = clip[effective:effective + fade] * fade_out + clip[:fade] * fade_in
    # One pass: seam then the untouched middle of the clip
    block = np.concatenate([seam, clip[fade:effective]])
    cycle = block[:effective]

    rest = target - effective
    reps = -(-rest // effective)
    tiling = (reps,) + (1,) * (clip.ndim - 1)
    out[effective:] = np.tile(cycle, tiling)[:rest]

    # The final pass is never overwritten, so it keeps its whole seam
    last = effective * reps
    out[last:] = block[: target - last]
    return out


def fit_to_length(audio: AudioArray, duration_s: float, sr: int, crossfade_s: float = 2.0) -> AudioArray:
    """Loop short audio up to ``duration_s``; trim long audio down to it."""
    target = math.ceil(duration_s * sr)
    if len(audio) >= target:
        return audio[:target]
    return loop_with_crossfade(audio, duration_s, sr, crossfade_s)


def fallback_bed(duration_s: float, sr: int, rng: np.random.Generator | None = None) -> AudioArray:
    """Very quiet pink noise, used instead of silence when no clip is available."""
    mono = pink_noise(duration_s, sr, gain=FALLBACK_GAIN, rng=rng)
    return np.column_stack([mono, mono])


# ── Acquisition ──────────────────────────────────────────


def _to_stereo(audio: AudioArray) -> AudioArray:
    if audio.shape[1] == 1:
        return np.repeat(audio, 2, axis=1)
    return audio[:, :2]


def decode_clip(data: bytes, sr: int) -> AudioArray:
    """Decode a compressed or PCM container to stereo float at ``sr``."""
    audio, file_sr = sf.read(io.BytesIO(data), dtype="float64", always_2d=True)
    if len(audio) == 0:
        msg = "background clip is empty"
        raise ValueError(msg)
    return resample_lanczos(_to_stereo(audio), file_sr, sr)


async def _fetch(url: str, client: httpx.AsyncClient) -> bytes:
    resp = await client.get(url)
    resp.raise_for_status()
    return resp.content


async def _load_bytes(location: str, timeout_s: float, client: httpx.AsyncClient | None) -> bytes:
    if location.startswith(("http://", "https://")):
        if client is not None:
            return await _fetch(location, client)
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as owned:
            return await _fetch(location, owned)
    return await asyncio.to_thread(Path(location).read_bytes)


async def acquire_background(
    ref: str | None,
    sr: int,
    duration_s: float,
    timeout_s: float = 15.0,
    crossfade_s: float = 2.0,
    client: httpx.AsyncClient | None = None,
    rng: np.random.Generator | None = None,
) -> BackgroundBed:
    """Fetch, decode and extend the background track to ``duration_s``.

    Args:
        ref: Catalog id, URL or local path. ``None`` selects the noise bed.
        sr: Render sample rate.
        duration_s: Required bed length.
        timeout_s: Deadline for loading the whole clip.
        crossfade_s: Loop seam length.
        client: Optional shared ``httpx.AsyncClient``.
        rng: Generator for the fallback bed.

    Returns:
        BackgroundBed of exactly ``ceil(duration_s * sr)`` stereo frames.
    """
    location = resolve_background(ref)
    if location is None:
        logger.info("bed.none", duration_s=round(duration_s, 2))
        return BackgroundBed(fallback_bed(duration_s, sr, rng), source="pink-noise", fallback=True)

    try:
        data = await asyncio.wait_for(_load_bytes(location, timeout_s, client), timeout_s)
        clip = await asyncio.to_thread(decode_clip, data, sr)
    except (asyncio.TimeoutError, httpx.HTTPError, OSError, RuntimeError, ValueError) as e:
        logger.warning("bed.fallback", source=location, error=str(e) or type(e).__name__)
        return BackgroundBed(fallback_bed(duration_s, sr, rng), source="pink-noise", fallback=True)

    if len(clip) / sr < duration_s:
        logger.info("bed.loop", clip_s=round(len(clip) / sr, 2), target_s=round(duration_s, 2))
    return BackgroundBed(fit_to_length(clip, duration_s, sr, crossfade_s), source=location)
