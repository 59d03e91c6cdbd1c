"""MEDITONE Effects Engine: DSP primitives shared by the render graph.

Pure numpy/scipy implementation.
Supports: biquad EQ (shelf, peak, band-pass, notch), one-pole smoothing,
block-rate compression/limiting, convolution, constant-power panning,
equal-sum crossfades and micro-fades.

Audio is ``(n,)`` for mono or ``(n, channels)`` for multichannel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np
import numpy.typing as npt
from scipy import signal

# ── Type Aliases ────────────────────────────────────────────
AudioArray = npt.NDArray[np.float64]
FilterType = Literal["lowpass", "highpass", "bandpass", "notch", "peak", "lowshelf", "highshelf"]


# ── Unit Conversions ────────────────────────────────────────


def seconds_to_samples(seconds: float, sr: int) -> int:
    """Convert seconds to a sample count (rounded to nearest)."""
    return int(round(seconds * sr))


def db_to_linear(db: float) -> float:
    """Convert decibels to linear amplitude."""
    return float(10 ** (db / 20))


def linear_to_db(value: float, floor: float = 1e-10) -> float:
    return float(20 * np.log10(max(value, floor)))


def as_2d(audio: AudioArray) -> AudioArray:
    """View mono audio as ``(n, 1)``; multichannel passes through."""
    return audio[:, np.newaxis] if audio.ndim == 1 else audio


# ── Effect Configs ──────────────────────────────────────────


@dataclass
class BiquadConfig:
    """Second-order IIR filter (RBJ cookbook)."""

    type: FilterType = "lowpass"
    freq_hz: float = 1000.0
    q: float = 0.707
    gain_db: float = 0.0  # shelf / peak only


@dataclass
class CompressorConfig:
    """Dynamic range compressor with a soft knee."""

    threshold_db: float = -24.0
    ratio: float = 12.0
    attack_ms: float = 3.0
    release_ms: float = 250.0
    knee_db: float = 6.0
    makeup_db: float = 0.0


LIMITER = CompressorConfig(threshold_db=-3.0, ratio=12.0, attack_ms=3.0, release_ms=250.0, knee_db=6.0)
DE_ESSER = CompressorConfig(threshold_db=-30.0, ratio=8.0, attack_ms=3.0, release_ms=50.0, knee_db=6.0)


# ── Biquad Filters ──────────────────────────────────────────


def biquad_sos(config: BiquadConfig, sr: int) -> npt.NDArray[np.float64]:
    """Single-section SOS matrix for a biquad filter.

    Args:
        config: filter type, frequency, Q and (for shelves/peaks) gain.
        sr: sample rate.

    Returns:
        ``(1, 6)`` array usable by ``scipy.signal.sosfilt``.
    """
    w0 = 2 * np.pi * min(config.freq_hz, sr * 0.49) / sr
    cos_w = float(np.cos(w0))
    sin_w = float(np.sin(w0))
    alpha = sin_w / (2 * config.q)
    a = 10 ** (config.gain_db / 40.0)

    if config.type == "lowpass":
        b0, b1, b2 = (1 - cos_w) / 2, 1 - cos_w, (1 - cos_w) / 2
        a0, a1, a2 = 1 + alpha, -2 * cos_w, 1 - alpha
    elif config.type == "highpass":
        b0, b1, b2 = (1 + cos_w) / 2, -(1 + cos_w), (1 + cos_w) / 2
        a0, a1, a2 = 1 + alpha, -2 * cos_w, 1 - alpha
    elif config.type == "bandpass":
        b0, b1, b2 = alpha, 0.0, -alpha
        a0, a1, a2 = 1 + alpha, -2 * cos_w, 1 - alpha
    elif config.type == "notch":
        b0, b1, b2 = 1.0, -2 * cos_w, 1.0
        a0, a1, a2 = 1 + alpha, -2 * cos_w, 1 - alpha
    elif config.type == "peak":
        b0, b1, b2 = 1 + alpha * a, -2 * cos_w, 1 - alpha * a
        a0, a1, a2 = 1 + alpha / a, -2 * cos_w, 1 - alpha / a
    elif config.type in ("lowshelf", "highshelf"):
        # Shelf slope S = 1
        sq = 2 * np.sqrt(a) * (sin_w / 2 * np.sqrt(2.0))
        if config.type == "lowshelf":
            b0 = a * ((a + 1) - (a - 1) * cos_w + sq)
            b1 = 2 * a * ((a - 1) - (a + 1) * cos_w)
            b2 = a * ((a + 1) - (a - 1) * cos_w - sq)
            a0 = (a + 1) + (a - 1) * cos_w + sq
            a1 = -2 * ((a - 1) + (a + 1) * cos_w)
            a2 = (a + 1) + (a - 1) * cos_w - sq
        else:
            b0 = a * ((a + 1) + (a - 1) * cos_w + sq)
            b1 = -2 * a * ((a - 1) + (a + 1) * cos_w)
            b2 = a * ((a + 1) + (a - 1) * cos_w - sq)
            a0 = (a + 1) - (a - 1) * cos_w + sq
            a1 = 2 * ((a - 1) - (a + 1) * cos_w)
            a2 = (a + 1) - (a - 1) * cos_w - sq
    else:
        msg = f"Unknown filter type: {config.type}"
        raise ValueError(msg)

    return np.array([[b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0]])


def apply_biquad(audio: AudioArray, config: BiquadConfig, sr: int) -> AudioArray:
    """Filter mono or multichannel audio along the time axis."""
    return signal.sosfilt(biquad_sos(config, sr), audio, axis=0).astype(np.float64)


def one_pole_lowpass(x: AudioArray, coeff: float) -> AudioArray:
    """``y[i] = coeff * y[i-1] + (1 - coeff) * x[i]``."""
    return signal.lfilter([1.0 - coeff], [1.0, -coeff], x, axis=0)


def leaky_integrator(x: AudioArray, coeff: float, gain: float) -> AudioArray:
    """``y[i] = coeff * y[i-1] + gain * x[i]``."""
    return signal.lfilter([gain], [1.0, -coeff], x, axis=0)


# ── Dynamics ────────────────────────────────────────────────


def _gain_computer(env_db: AudioArray, config: CompressorConfig) -> AudioArray:
    """Static soft-knee curve: gain reduction in dB (<= 0)."""
    knee = config.knee_db
    over = env_db - config.threshold_db
    slope = 1 - 1 / config.ratio
    gain_db = np.where(over > knee / 2, -over * slope, 0.0)
    if knee > 0:
        in_knee = np.abs(over) <= knee / 2
        x = over + knee / 2
        gain_db = np.where(in_knee, -(x**2 / (2 * knee)) * slope, gain_db)
    return gain_db


def compressor_gain(
    audio: AudioArray,
    config: CompressorConfig,
    sr: int,
    block: int = 32,
) -> AudioArray:
    """Per-sample linear gain curve for ``audio``.

    Peak detection runs at block rate (``block`` samples); the attack/release
    follower and knee are evaluated per block and the resulting gain is
    interpolated back to sample rate. The detector is linked across channels.
    """
    data = as_2d(audio)
    n = data.shape[0]
    if n == 0:
        return np.ones(0, dtype=np.float64)

    detector = np.max(np.abs(data), axis=1)
    n_blocks = -(-n // block)
    padded = np.zeros(n_blocks * block, dtype=np.float64)
    padded[:n] = detector
    peaks = padded.reshape(n_blocks, block).max(axis=1)

    atk_c = np.exp(-block / max(config.attack_ms * sr / 1000.0, 1e-9))
    rel_c = np.exp(-block / max(config.release_ms * sr / 1000.0, 1e-9))
    env = np.empty(n_blocks, dtype=np.float64)
    e = 0.0
    for i, p in enumerate(peaks):
        c = atk_c if p > e else rel_c
        e = c * e + (1 - c) * p
        env[i] = e

    env_db = 20 * np.log10(np.maximum(env, 1e-10))
    gain_db = _gain_computer(env_db, config) + config.makeup_db

    centers = np.arange(n_blocks, dtype=np.float64) * block + (block - 1) / 2
    per_sample = np.interp(np.arange(n, dtype=np.float64), centers, gain_db)
    return 10 ** (per_sample / 20)


def apply_compressor(audio: AudioArray, config: CompressorConfig, sr: int) -> AudioArray:
    """Apply dynamic range compression (or limiting at high ratios)."""
    gain = compressor_gain(audio, config, sr)
    return audio * gain if audio.ndim == 1 else audio * gain[:, np.newaxis]


# ── Space ───────────────────────────────────────────────────


def apply_convolution(audio: AudioArray, impulse: AudioArray) -> AudioArray:
    """Convolve ``audio`` with an impulse response (full length, tail kept).

    Mono input against a stereo IR yields stereo output; channel counts
    must otherwise match or be mono.
    """
    x = as_2d(audio)
    h = as_2d(impulse)
    channels = max(x.shape[1], h.shape[1])
    out = np.zeros((x.shape[0] + h.shape[0] - 1, channels), dtype=np.float64)
    for ch in range(channels):
        xc = x[:, min(ch, x.shape[1] - 1)]
        hc = h[:, min(ch, h.shape[1] - 1)]
        out[:, ch] = signal.fftconvolve(xc, hc)
    return out


def pan_gains(position: float) -> tuple[float, float]:
    """Constant-power (left, right) gains for a pan position in [-1, 1]."""
    angle = (np.clip(position, -1.0, 1.0) + 1) * 0.25 * np.pi
    return float(np.cos(angle)), float(np.sin(angle))


def apply_pan(audio: AudioArray, position: float) -> AudioArray:
    """Place audio in the stereo field -> ``(n, 2)``.

    Mono sources use constant-power panning; stereo sources are balanced
    by shifting part of one channel into the other.
    """
    data = as_2d(audio)
    if data.shape[1] == 1:
        left, right = pan_gains(position)
        mono = data[:, 0]
        return np.column_stack([mono * left, mono * right])

    x = float(np.clip(position, -1.0, 1.0))
    l_in, r_in = data[:, 0], data[:, 1]
    if x <= 0:
        theta = (x + 1) * 0.5 * np.pi
        return np.column_stack([l_in + r_in * np.cos(theta), r_in * np.sin(theta)])
    theta = x * 0.5 * np.pi
    return np.column_stack([l_in * np.cos(theta), r_in + l_in * np.sin(theta)])


# ── Fades & Crossfades ──────────────────────────────────────


def crossfade_gains(length: int) -> tuple[AudioArray, AudioArray]:
    """Linear (fade_out, fade_in) pair whose sum is exactly 1 per sample."""
    fade_in = np.arange(length, dtype=np.float64) / max(length, 1)
    return 1.0 - fade_in, fade_in


def crossfade(tail: AudioArray, head: AudioArray) -> AudioArray:
    """Blend the end of one signal into the start of another (equal length)."""
    fade_out, fade_in = crossfade_gains(len(tail))
    if tail.ndim == 2:
        fade_out = fade_out[:, np.newaxis]
        fade_in = fade_in[:, np.newaxis]
    return tail * fade_out + head * fade_in


def crossfade_concat(chunks: list[AudioArray], fade_len: int) -> AudioArray:
    """Concatenate chunks, overlapping each seam by ``fade_len`` samples."""
    if not chunks:
        return np.zeros(0, dtype=np.float64)
    result = chunks[0].copy()
    for chunk in chunks[1:]:
        n = min(fade_len, len(result), len(chunk))
        if n > 0:
            seam = crossfade(result[-n:], chunk[:n])
            result = np.concatenate([result[:-n], seam, chunk[n:]])
        else:
            result = np.concatenate([result, chunk])
    return result


def micro_fade(audio: AudioArray, fade_samples: int) -> AudioArray:
    """Short linear fade-in/out at both ends (click prevention)."""
    out = audio.copy()
    n = min(fade_samples, len(out) // 2)
    if n <= 0:
        return out
    ramp = np.linspace(0.0, 1.0, n)
    if out.ndim == 2:
        ramp = ramp[:, np.newaxis]
    out[:n] *= ramp
    out[-n:] *= ramp[::-1]
    return out
