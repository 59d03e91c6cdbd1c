"""MEDITONE Synthesis Tests: ritual sounds, tones and biome ambience.

Everything renders at 8 kHz to keep the suite fast.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

SR = 8000


def _rms(x: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.square(x))))


# ── Reverb Impulse ───────────────────────────────────────


def test_reverb_impulse_layout():
    """Stereo IR with silent pre-delay and a decaying tail."""
    from meditone.hands.synth import reverb_impulse

    ir = reverb_impulse(2.5, 2.0, SR, np.random.default_rng(0))
    assert ir.shape == (math.ceil(2.5 * SR), 2)
    assert np.all(ir[: int(0.02 * SR)] == 0.0)
    assert np.all(np.isfinite(ir))

    half = len(ir) // 2
    assert np.sum(ir[:half] ** 2) > np.sum(ir[half:] ** 2)


def test_reverb_channels_offset():
    """Early reflections land ~3 ms later on the right channel."""
    from meditone.hands.synth import reverb_impulse

    ir = reverb_impulse(0.07, 2.0, SR, np.random.default_rng(0))
    first_left = int(np.argmax(np.abs(ir[:, 0]) > 0))
    first_right = int(np.argmax(np.abs(ir[:, 1]) > 0))
    assert first_right - first_left == pytest.approx(0.003 * SR, abs=1)


# ── Singing Bowl ─────────────────────────────────────────


def test_singing_bowl_shape_and_level():
    from meditone.hands.synth import singing_bowl

    bowl = singing_bowl(8.0, 220.0, SR, np.random.default_rng(3))
    assert bowl.shape == (8 * SR, 2)
    assert np.all(np.isfinite(bowl))
    assert 0.0 < np.max(np.abs(bowl)) < 1.0
    # Strike decays
    assert _rms(bowl[: SR]) > _rms(bowl[-SR:])


def test_singing_bowl_strikes_differ():
    """Random initial phases make every strike unique unless seeded."""
    from meditone.hands.synth import singing_bowl

    a = singing_bowl(1.0, 220.0, SR)
    b = singing_bowl(1.0, 220.0, SR)
    assert not np.allclose(a, b)

    c = singing_bowl(1.0, 220.0, SR, np.random.default_rng(7))
    d = singing_bowl(1.0, 220.0, SR, np.random.default_rng(7))
    assert np.array_equal(c, d)


def test_singing_bowl_high_fundamental_stays_finite():
    """Partials above 0.45 * sr are skipped instead of aliasing."""
    from meditone.hands.synth import singing_bowl

    bowl = singing_bowl(0.5, 1500.0, SR, np.random.default_rng(0))
    assert np.all(np.isfinite(bowl))


# ── Breathing Guide ──────────────────────────────────────


def test_breath_envelope_phases():
    """4 s inhale rises, 2 s hold is full, 6 s exhale falls."""
    from meditone.hands.synth import breath_envelope

    env, freq = breath_envelope(np.array([0.0, 2.0, 5.0, 9.0, 12.0]))
    assert env[0] == pytest.approx(0.0)
    assert env[1] == pytest.approx(0.25)
    assert env[2] == pytest.approx(1.0)
    assert env[3] == pytest.approx(0.25)
    assert env[4] == pytest.approx(0.0)  # next cycle
    assert freq[2] == pytest.approx(1.08)
    assert freq[0] == pytest.approx(1.0)


def test_breathing_guide_is_subliminal():
    from meditone.hands.synth import breathing_guide

    guide = breathing_guide(24.0, sr=SR)
    assert guide.shape == (24 * SR, 2)
    assert np.array_equal(guide[:, 0], guide[:, 1])
    assert np.max(np.abs(guide)) < 0.03


# ── Chime & Tones ────────────────────────────────────────


def test_transition_chime_decays():
    from meditone.hands.synth import transition_chime

    chime = transition_chime(2.5, 1300.0, SR)
    assert chime.ndim == 1
    assert len(chime) == math.ceil(2.5 * SR)
    assert _rms(chime[: SR // 4]) > 10 * _rms(chime[-SR // 4:])


def test_pink_noise_is_quiet():
    from meditone.hands.synth import pink_noise

    noise = pink_noise(5.0, SR, rng=np.random.default_rng(0))
    assert noise.shape == (5 * SR,)
    assert 0.0 < _rms(noise) < 0.01


def test_isochronic_gate_pulses():
    """The carrier is near-silent in the gate's off half-cycles."""
    from meditone.hands.synth import isochronic_tone

    tone = isochronic_tone(1.0, carrier_hz=400.0, pulse_hz=4.0, sr=SR)
    assert np.max(np.abs(tone)) <= 1.0
    on = tone[int(0.03 * SR):int(0.09 * SR)]  # first positive half of the 4 Hz gate
    off = tone[int(0.155 * SR):int(0.22 * SR)]  # negative half
    assert _rms(on) > 10 * _rms(off)


# ── Ambience ─────────────────────────────────────────────


@pytest.mark.parametrize("biome", ["rain", "ocean", "forest", "fire", "space"])
def test_biomes_render_stereo(biome):
    """Every biome is stereo, finite, audible and channel-decorrelated."""
    from meditone.grid.script import Ambience
    from meditone.hands.ambience import generate_ambience

    bed = generate_ambience(Ambience(biome), 20.0, SR, np.random.default_rng(11))
    assert bed.shape == (20 * SR, 2)
    assert np.all(np.isfinite(bed))
    assert _rms(bed) > 1e-4
    assert np.max(np.abs(bed)) < 1.0
    assert not np.allclose(bed[:, 0], bed[:, 1])


def test_silence_biome_is_pink_floor():
    from meditone.grid.script import Ambience
    from meditone.hands.ambience import generate_ambience

    bed = generate_ambience(Ambience.SILENCE, 5.0, SR, np.random.default_rng(0))
    assert bed.shape == (5 * SR, 2)
    assert 0.0 < _rms(bed) < 0.01


def test_ambience_is_reproducible_with_seed():
    from meditone.grid.script import Ambience
    from meditone.hands.ambience import generate_ambience

    a = generate_ambience(Ambience.FIRE, 3.0, SR, np.random.default_rng(5))
    b = generate_ambience(Ambience.FIRE, 3.0, SR, np.random.default_rng(5))
    assert np.array_equal(a, b)


def test_bird_schedule_spacing():
    """First call in 2-7 s, then at least 3 s between calls."""
    from meditone.hands.ambience import schedule_birds

    calls = schedule_birds(600.0, np.random.default_rng(2))
    assert calls
    assert 2.0 <= calls[0].time_s <= 7.0
    gaps = np.diff([c.time_s for c in calls])
    assert np.all(gaps >= 3.0)
    assert all(1800.0 <= c.freq_hz <= 3000.0 for c in calls)
    assert all(-0.6 <= c.pan <= 0.6 for c in calls)


def test_swell_envelope_bounded():
    from meditone.hands.ambience import swell_envelope

    env = swell_envelope(np.linspace(0, 120, 12000))
    assert np.all(env >= 0.0)
    assert np.all(env <= 1.0)
    assert env.max() > 0.5
