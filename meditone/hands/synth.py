"""MEDITONE Synthesis Engine: procedural ritual and utility sounds.

Pure numpy/scipy implementation with no shared state. Every generator takes
its duration, parameters and sample rate and returns a fresh buffer, so
calls are safe to run concurrently. Randomized generators accept an
optional ``numpy.random.Generator``; without one each call draws fresh
entropy and repeated calls differ audibly.

Sounds: reverb impulse response, singing bowl, breathing guide, transition
chime, pink-noise floor, plain and amplitude-pulsed sine tones.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from meditone.hands.effects import leaky_integrator, one_pole_lowpass

AudioArray = NDArray[np.float64]


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class BowlPartial:
    """One inharmonic partial of a singing bowl."""

    ratio: float
    amp: float
    decay: float  # 1/s
    pan: float  # -1..1, positive leans left
    drift: float  # relative frequency wander depth


BOWL_PARTIALS: tuple[BowlPartial, ...] = (
    BowlPartial(1.0, 1.0, 0.7, 0.0, 0.001),
    BowlPartial(2.71, 0.55, 0.9, 0.15, 0.0015),
    BowlPartial(4.95, 0.3, 1.1, -0.1, 0.002),
    BowlPartial(7.77, 0.18, 1.5, 0.2, 0.0018),
    BowlPartial(11.2, 0.09, 1.9, -0.15, 0.0025),
    BowlPartial(15.1, 0.05, 2.3, 0.25, 0.003),
    BowlPartial(19.8, 0.025, 2.8, -0.2, 0.004),
)

# (delay_s, gain): walls, ceiling, back wall, corner, second-order
EARLY_REFLECTIONS: tuple[tuple[float, float], ...] = (
    (0.023, 0.72),
    (0.031, 0.58),
    (0.041, 0.45),
    (0.053, 0.38),
    (0.067, 0.28),
    (0.079, 0.20),
)

PRE_DELAY_S = 0.020
LATE_START_S = 0.080
STEREO_OFFSET_S = 0.003


# ── Helpers ──────────────────────────────────────────────


def _rng(rng: np.random.Generator | None) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def _n_samples(duration_s: float, sr: int) -> int:
    return max(0, math.ceil(duration_s * sr))


def _time(n: int, sr: int) -> AudioArray:
    return np.arange(n, dtype=np.float64) / sr


def _phase(freq_hz: AudioArray | float, n: int, sr: int) -> AudioArray:
    """Integrated phase (radians) of a possibly time-varying frequency."""
    freq = np.broadcast_to(np.asarray(freq_hz, dtype=np.float64), (n,))
    return 2 * np.pi * (np.cumsum(freq) - freq[0]) / sr if n else np.zeros(0)


def fade_envelope(n: int, sr: int, fade_in_s: float, fade_out_s: float | None = None) -> AudioArray:
    """Linear fade-in/fade-out envelope of ``n`` samples."""
    fade_out_s = fade_in_s if fade_out_s is None else fade_out_s
    t = _time(n, sr)
    dur = n / sr
    rise = t / fade_in_s if fade_in_s > 0 else np.ones(n)
    fall = (dur - t) / fade_out_s if fade_out_s > 0 else np.ones(n)
    return np.clip(np.minimum(np.minimum(rise, fall), 1.0), 0.0, 1.0)


# ── Reverb Impulse Response ──────────────────────────────


def reverb_impulse(
    duration_s: float = 2.5,
    decay: float = 2.0,
    sr: int = 44100,
    rng: np.random.Generator | None = None,
) -> AudioArray:
    """Stereo impulse response of a small, warm meditation room.

    Three layers:
      1. 20 ms of silent pre-delay
      2. six discrete early reflections (23-79 ms), 2 ms decaying impulses,
         right channel offset by 3 ms
      3. a diffuse tail from 80 ms: one-pole low-passed noise under
         ``exp(-t * decay)`` with a 0.5 Hz modulation

    Returns:
        ``(n, 2)`` impulse response.
    """
    gen = _rng(rng)
    n = _n_samples(duration_s, sr)
    ir = np.zeros((n, 2), dtype=np.float64)
    impulse_len = math.ceil(sr * 0.002)
    late = min(math.ceil(sr * LATE_START_S), n)

    for ch in range(2):
        for delay_s, gain in EARLY_REFLECTIONS:
            start = math.ceil(sr * (delay_s + (STEREO_OFFSET_S if ch == 1 else 0.0)))
            if start >= n:
                continue
            length = min(impulse_len, n - start)
            ramp = 1.0 - np.arange(length) / length
            jitter = 0.9 + gen.random(length) * 0.2
            ir[start:start + length, ch] += gain * ramp * jitter

        tail_n = n - late
        if tail_n <= 0:
            continue
        t = _time(tail_n, sr)
        damped = one_pole_lowpass(gen.uniform(-1.0, 1.0, tail_n), 0.7)
        envelope = np.exp(-t * decay)
        modulation = 1 + 0.05 * np.sin(2 * np.pi * 0.5 * t)
        ir[late:, ch] += damped * envelope * modulation * 0.3

    ir[: min(math.ceil(sr * PRE_DELAY_S), n)] = 0.0
    return ir


# ── Singing Bowl ─────────────────────────────────────────


def singing_bowl(
    duration_s: float = 8.0,
    fundamental_hz: float = 220.0,
    sr: int = 44100,
    rng: np.random.Generator | None = None,
) -> AudioArray:
    """Tibetan singing bowl strike via inharmonic additive synthesis.

    Seven partials with their own decay, pan and slow frequency wander,
    a two-stage strike (2 ms hard attack, 18 ms soft spread), per-partial
    vibrato around 4.5-4.8 Hz and a metallic shimmer burst in the first
    half second. Initial phases are random, so every strike differs.

    Returns:
        ``(n, 2)`` stereo strike.
    """
    gen = _rng(rng)
    n = _n_samples(duration_s, sr)
    t = _time(n, sr)
    left = np.zeros(n, dtype=np.float64)
    right = np.zeros(n, dtype=np.float64)

    hard_attack = np.minimum(t / 0.002, 1.0)
    soft_spread = np.where(t < 0.02, 0.7 + 0.3 * (t / 0.02), 1.0)
    attack = hard_attack * soft_spread
    phases = gen.uniform(0.0, 2 * np.pi, len(BOWL_PARTIALS))

    for h, partial in enumerate(BOWL_PARTIALS):
        freq = fundamental_hz * partial.ratio
        if freq >= sr * 0.45:
            continue
        wander = 1 + partial.drift * np.sin(2 * np.pi * (0.3 + h * 0.1) * t)
        vib_depth = 0.003 if h < 3 else 0.001
        vibrato = 1 + vib_depth * np.sin(2 * np.pi * (4.5 + h * 0.05) * t)
        osc = np.sin(_phase(freq * wander * vibrato, n, sr) + phases[h])
        val = partial.amp * np.exp(-t * partial.decay) * attack * osc
        left += val * (0.5 + partial.pan * 0.5)
        right += val * (0.5 - partial.pan * 0.5)

    shimmer_env = np.exp(-t * 5)
    shimmer = gen.uniform(-1.0, 1.0, n) * 0.03 * np.where(shimmer_env > 0.01, shimmer_env, 0.0)
    left += shimmer
    right += shimmer * 0.8

    return np.column_stack([left, right]) * 0.15


# ── Breathing Guide ──────────────────────────────────────

INHALE_S = 4.0
HOLD_S = 2.0
EXHALE_S = 6.0
BREATH_CYCLE_S = INHALE_S + HOLD_S + EXHALE_S


def breath_envelope(t: AudioArray) -> tuple[AudioArray, AudioArray]:
    """Amplitude envelope and frequency multiplier of the 4-2-6 breath cycle."""
    phase = np.mod(t, BREATH_CYCLE_S)
    p_in = phase / INHALE_S
    p_out = np.clip((phase - INHALE_S - HOLD_S) / EXHALE_S, 0.0, 1.0)

    inhale = phase < INHALE_S
    hold = (phase >= INHALE_S) & (phase < INHALE_S + HOLD_S)
    envelope = np.where(inhale, p_in**2, np.where(hold, 1.0, (1 - p_out) ** 2))
    freq_mod = np.where(inhale, 1.0 + 0.08 * p_in, np.where(hold, 1.08, 1.08 - 0.08 * p_out))
    return envelope, freq_mod


def breathing_guide(
    duration_s: float,
    base_freq_hz: float = 160.0,
    sr: int = 44100,
) -> AudioArray:
    """Subliminal swell that follows a 4 s in / 2 s hold / 6 s out cycle.

    Returns:
        ``(n, 2)`` stereo tone (identical channels).
    """
    n = _n_samples(duration_s, sr)
    t = _time(n, sr)
    envelope, freq_mod = breath_envelope(t)
    theta = _phase(base_freq_hz * freq_mod, n, sr)
    tone = 0.6 * np.sin(theta) + 0.15 * np.sin(2 * theta) + 0.025 * np.sin(3 * theta)
    global_fade = fade_envelope(n, sr, 2.0)
    mono = tone * envelope * global_fade * 0.025
    return np.column_stack([mono, mono])


# ── Transition Chime ─────────────────────────────────────


def transition_chime(
    duration_s: float = 2.5,
    freq_hz: float = 880.0,
    sr: int = 44100,
) -> AudioArray:
    """Soft crystal chime (1x, 1.5x, 3x partials) marking a section change."""
    n = _n_samples(duration_s, sr)
    t = _time(n, sr)
    envelope = np.exp(-t * 2.5) * np.minimum(t / 0.005, 1.0)
    tone = np.zeros(n, dtype=np.float64)
    for mult, amp in ((1.0, 0.6), (1.5, 0.3), (3.0, 0.1)):
        if freq_hz * mult < sr * 0.45:
            tone += amp * np.sin(2 * np.pi * freq_hz * mult * t)
    return tone * envelope * 0.08


# ── Noise Floors ─────────────────────────────────────────


def pink_noise(
    duration_s: float,
    sr: int = 44100,
    gain: float = 0.003,
    rng: np.random.Generator | None = None,
) -> AudioArray:
    """Mono pink noise (Paul Kellet's refined filter), very low level."""
    gen = _rng(rng)
    n = _n_samples(duration_s, sr)
    white = gen.uniform(-1.0, 1.0, n)
    pink = (
        leaky_integrator(white, 0.99886, 0.0555179)
        + leaky_integrator(white, 0.99332, 0.0750759)
        + leaky_integrator(white, 0.96900, 0.1538520)
        + leaky_integrator(white, 0.86650, 0.3104856)
        + leaky_integrator(white, 0.55000, 0.5329522)
        + leaky_integrator(white, -0.7616, -0.0168980)
        + white * 0.5362
    )
    # b6 term: previous white sample
    pink[1:] += white[:-1] * 0.115926
    return pink * gain


# ── Tones ────────────────────────────────────────────────


def sine_tone(duration_s: float, freq_hz: float, sr: int = 44100) -> AudioArray:
    """Constant-amplitude mono sine."""
    n = _n_samples(duration_s, sr)
    return np.sin(2 * np.pi * freq_hz * _time(n, sr))


def isochronic_tone(
    duration_s: float,
    carrier_hz: float = 400.0,
    pulse_hz: float = 8.0,
    sr: int = 44100,
) -> AudioArray:
    """Mono carrier gated on/off at ``pulse_hz`` (soft-edged square gate).

    Works on speakers as well as headphones, complementing binaural pairs.
    """
    n = _n_samples(duration_s, sr)
    t = _time(n, sr)
    gate = 0.5 * (1 + np.tanh(6.0 * np.sin(2 * np.pi * pulse_hz * t)))
    return np.sin(2 * np.pi * carrier_hz * t) * gate
