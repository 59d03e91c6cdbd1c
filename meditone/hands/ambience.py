"""MEDITONE Ambience Generator: procedural biome soundscapes.

Every bed is stereo and evolves organically: mutually prime periods that
never line up, Poisson-timed events and decorrelated channels, so long
sections never audibly loop.

Biomes:
  rain    gusty filtered noise with a ~40 s intensity cycle
  ocean   three prime-period swells (7.3 / 11.7 / 19.1 s)
  forest  breeze floor plus Poisson bird calls
  fire    warm breathing floor, crackles, rare log-shift thuds
  space   drifting low drones with distant sparkles
  other   near-silent pink floor
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import structlog
from numpy.typing import NDArray

from meditone.grid.script import Ambience
from meditone.hands.effects import leaky_integrator, one_pole_lowpass

logger = structlog.get_logger()

AudioArray = NDArray[np.float64]


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class BirdCall:
    """A single scheduled bird event."""

    time_s: float
    freq_hz: float
    pan: float  # -0.6..0.6
    motif: int  # 0 chirp glide, 1 two-note call, 2 trill


BIRD_CALL_S = 1.5
BIRD_MIN_GAP_S = 3.0
BIRD_MEAN_GAP_S = 8.0


# ── Helpers ──────────────────────────────────────────────


def _time(n: int, sr: int) -> AudioArray:
    return np.arange(n, dtype=np.float64) / sr


def _noise(gen: np.random.Generator, n: int) -> AudioArray:
    return gen.uniform(-1.0, 1.0, n)


# ── Rain ─────────────────────────────────────────────────


def _rain(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    t = _time(n, sr)
    out = np.zeros((n, 2), dtype=np.float64)
    for ch in range(2):
        # Gust cycle; channels use different periods so they never sync
        period = 40.0 + ch * 7.0
        intensity = 0.5 + 0.5 * np.sin(2 * np.pi * t / period)
        drop_prob = 0.001 + 0.004 * intensity
        drops = np.where(gen.random(n) < drop_prob, gen.random(n) * 0.4 * intensity, 0.0)
        excitation = _noise(gen, n) + drops
        dark = one_pole_lowpass(excitation, 0.98)
        bright = one_pole_lowpass(excitation, 0.96)
        filtered = dark + (bright - dark) * intensity
        pan_jitter = 1 + (0.1 if ch == 0 else -0.1) * np.sin(t * 0.3)
        out[:, ch] = filtered * 0.04 * pan_jitter
    return out


# ── Ocean ────────────────────────────────────────────────

WAVE_PERIODS_S = (7.3, 11.7, 19.1)


def swell_envelope(t: AudioArray, phase_offset: float = 0.0) -> AudioArray:
    """Sum of asymmetric (fast rise, slow fall) swells, normalized to <= 1."""
    env = np.zeros_like(t)
    for w, period in enumerate(WAVE_PERIODS_S):
        saw = np.mod((t + phase_offset + w * 2.3) / period, 1.0)
        rise = np.power(saw / 0.3, 0.7)
        fall = np.power(np.clip(1 - (saw - 0.3) / 0.7, 0.0, 1.0), 1.5)
        env += np.where(saw < 0.3, rise, fall) / (w + 1)
    return np.minimum(1.0, env / 1.5)


def _ocean(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    t = _time(n, sr)
    out = np.zeros((n, 2), dtype=np.float64)
    for ch in range(2):
        wave_env = swell_envelope(t, phase_offset=ch * 0.4)
        white = _noise(gen, n)
        body = one_pole_lowpass(white, 0.9)
        # Spray: cresting swells let more of the raw noise through
        surf = body + (white - body) * (0.3 * wave_env)
        brightness = 0.7 + 0.3 * wave_env
        out[:, ch] = surf * wave_env * brightness * 0.035
    return out


# ── Forest ───────────────────────────────────────────────


def schedule_birds(duration_s: float, gen: np.random.Generator) -> list[BirdCall]:
    """Poisson bird calls: first in 2-7 s, gaps of 3 s + Exp(mean 8 s)."""
    calls: list[BirdCall] = []
    when = 2.0 + gen.random() * 5.0
    while when < duration_s - 2.0:
        calls.append(
            BirdCall(
                time_s=when,
                freq_hz=1800.0 + gen.random() * 1200.0,
                pan=(gen.random() - 0.5) * 1.2,
                motif=int(gen.integers(0, 3)),
            )
        )
        when += BIRD_MIN_GAP_S + gen.exponential(BIRD_MEAN_GAP_S)
    return calls


def render_bird(call: BirdCall, sr: int) -> AudioArray:
    """Mono bird call of ``BIRD_CALL_S`` seconds."""
    dt = _time(math.ceil(BIRD_CALL_S * sr), sr)
    env = np.exp(-dt * 4) * (1 - np.exp(-dt * 30))
    f = call.freq_hz

    if call.motif == 0:
        glide = f * (1 + 0.3 * np.exp(-dt * 8))
        phase = 2 * np.pi * np.cumsum(glide) / sr
        return np.sin(phase) * env
    if call.motif == 1:
        note1 = np.where(dt < 0.3, np.sin(2 * np.pi * f * dt), 0.0)
        note2 = np.where((dt > 0.5) & (dt < 0.8), np.sin(2 * np.pi * f * 1.2 * (dt - 0.5)), 0.0)
        return (note1 + note2) * env
    trill = np.sin(2 * np.pi * 25 * dt)
    return np.sin(2 * np.pi * f * dt) * trill * env


def _forest(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    t = _time(n, sr)
    out = np.zeros((n, 2), dtype=np.float64)
    gust = 0.7 + 0.3 * np.sin(2 * np.pi * t / 23) * np.sin(2 * np.pi * t / 37)
    for ch in range(2):
        wind = one_pole_lowpass(_noise(gen, n), 0.995)
        out[:, ch] = wind * 0.03 * gust

    for call in schedule_birds(n / sr, gen):
        start = int(call.time_s * sr)
        if start >= n:
            continue
        chirp = render_bird(call, sr)[: n - start]
        gains = (max(0.0, 1 - call.pan), max(0.0, 1 + call.pan))
        for ch in range(2):
            out[start:start + len(chirp), ch] += chirp * gains[ch] * 0.012
    return out


# ── Fire ─────────────────────────────────────────────────

CRACKLE_RATE_HZ = 2.0
THUD_RATE_HZ = 0.02


def _fire(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    t = _time(n, sr)
    duration_s = n / sr
    out = np.zeros((n, 2), dtype=np.float64)
    breathe = 0.7 + 0.3 * np.sin(2 * np.pi * t / 8) * np.sin(2 * np.pi * t / 13)
    brightness = (breathe - 0.4) / 0.6

    crackle_len = max(1, int(0.003 * sr))
    crackle_shape = np.exp(-np.arange(crackle_len) / max(crackle_len / 4, 1))

    for ch in range(2):
        white = _noise(gen, n)
        warm = one_pole_lowpass(white, 0.98)
        lively = one_pole_lowpass(white, 0.93)
        floor = warm + (lively * 0.6 - warm) * brightness * 0.5
        out[:, ch] = floor * 0.025 * breathe

        for _ in range(gen.poisson(CRACKLE_RATE_HZ * duration_s)):
            pos = int(gen.integers(0, n))
            amp = 0.08 * (0.5 + 0.5 * gen.random()) * (0.7 + gen.random() * 0.3)
            seg = crackle_shape[: n - pos] * gen.uniform(-1.0, 1.0, min(crackle_len, n - pos))
            out[pos:pos + len(seg), ch] += seg * amp

    thud_len = int(0.25 * sr)
    thud_t = _time(thud_len, sr)
    thud = np.sin(2 * np.pi * 80 * thud_t) * np.exp(-thud_t * 10) * 0.02
    for _ in range(gen.poisson(THUD_RATE_HZ * duration_s)):
        pos = int(gen.integers(0, n))
        seg = thud[: n - pos]
        out[pos:pos + len(seg)] += seg[:, np.newaxis]
    return out


# ── Space ────────────────────────────────────────────────


def _space(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    t = _time(n, sr)
    out = np.zeros((n, 2), dtype=np.float64)
    drift = np.sin(2 * np.pi * 0.02 * t + gen.uniform(0, 2 * np.pi)) * 5
    sparkle_hz = min(3000.0, sr * 0.4)

    for ch in range(2):
        def drone(base: float, depth: float, offset: float = 0.0) -> AudioArray:
            freq = base + drift * depth + offset
            return np.sin(2 * np.pi * np.cumsum(freq) / sr)

        pulse1 = 0.75 + 0.25 * np.sin(2 * np.pi * 0.021 * t)
        pulse2 = 0.75 + 0.25 * np.sin(2 * np.pi * 0.027 * t + 1.0)
        pulse3 = (1 + np.sin(2 * np.pi * 0.03 * t)) * 0.5
        layer = (
            drone(60.0, 1.0) * 0.008 * pulse1
            + drone(90.0, 0.7, ch * 2.0) * 0.006 * pulse2
            + drone(120.0, 0.5) * 0.004 * pulse3
        )

        cycle = 17.0 + ch * 7.0
        phase = np.mod(t, cycle) / cycle
        window = (phase > 0.96) & (phase < 0.99)
        sp = (phase - 0.96) / 0.03
        sparkle = np.where(window, np.sin(2 * np.pi * sparkle_hz * t) * np.exp(-sp * 15) * 0.003, 0.0)
        out[:, ch] = layer + sparkle
    return out


# ── Floor ────────────────────────────────────────────────


def _pink_floor(n: int, sr: int, gen: np.random.Generator) -> AudioArray:
    out = np.zeros((n, 2), dtype=np.float64)
    for ch in range(2):
        white = _noise(gen, n)
        pink = (
            leaky_integrator(white, 0.99, 0.01)
            + leaky_integrator(white, 0.96, 0.04)
            + leaky_integrator(white, 0.80, 0.20)
        )
        out[:, ch] = pink * 0.002
    return out


_BIOMES = {
    Ambience.RAIN: _rain,
    Ambience.OCEAN: _ocean,
    Ambience.FOREST: _forest,
    Ambience.FIRE: _fire,
    Ambience.SPACE: _space,
}


def generate_ambience(
    ambience: Ambience,
    duration_s: float,
    sr: int = 44100,
    rng: np.random.Generator | None = None,
) -> AudioArray:
    """Render a stereo biome bed.

    Args:
        ambience: Biome to render; silence and unknown values give a pink floor.
        duration_s: Length in seconds.
        sr: Sample rate.
        rng: Optional generator for reproducible beds.

    Returns:
        ``(ceil(duration_s * sr), 2)`` array.
    """
    gen = rng if rng is not None else np.random.default_rng()
    n = max(0, math.ceil(duration_s * sr))
    render = _BIOMES.get(ambience, _pink_floor)
    logger.debug("ambience.generate", biome=str(ambience.value), duration_s=round(duration_s, 2))
    return render(n, sr, gen)
