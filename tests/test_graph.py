"""MEDITONE Graph Tests: automation curves, render nodes and the offline renderer."""

from __future__ import annotations

import math

import numpy as np
import pytest

SR = 1000


# ── Automation ───────────────────────────────────────────


def test_linear_and_step_events():
    from meditone.console.automation import AutomationCurve

    curve = AutomationCurve(0.0).linear_ramp(1.0, 2.0).set(0.25, 3.0)
    assert curve.value_at(1.0) == pytest.approx(0.5)
    assert curve.value_at(2.5) == pytest.approx(1.0)
    assert curve.value_at(3.0) == pytest.approx(0.25)
    assert curve.value_at(100.0) == pytest.approx(0.25)


def test_exponential_ramp_is_geometric():
    from meditone.console.automation import AutomationCurve

    curve = AutomationCurve(1.0).set(0.01, 0.0).exp_ramp(1.0, 2.0)
    assert curve.value_at(1.0) == pytest.approx(0.1)


def test_exponential_ramp_from_zero_uses_floor():
    """Ramps starting at 0 start from the 1e-4 floor instead of NaN."""
    from meditone.console.automation import EXP_FLOOR, AutomationCurve

    curve = AutomationCurve(0.0).exp_ramp(1.0, 1.0)
    values = curve.render(SR, SR)
    assert np.all(np.isfinite(values))
    assert values[0] == pytest.approx(EXP_FLOOR)


def test_events_sorted_by_time_ties_keep_insertion_order():
    from meditone.console.automation import AutomationCurve

    curve = AutomationCurve(0.0).set(2.0, 1.0).set(0.5, 0.5).set(3.0, 1.0)
    assert curve.value_at(0.75) == pytest.approx(0.5)
    assert curve.value_at(1.0) == pytest.approx(3.0)


def test_hold_pins_current_value():
    from meditone.console.automation import AutomationCurve

    curve = AutomationCurve(0.0).linear_ramp(1.0, 2.0)
    assert curve.value_at(3.5) == pytest.approx(1.0)
    curve.hold(3.0).linear_ramp(0.0, 4.0)
    # Without the hold the ramp would start back at 2 s
    assert curve.value_at(3.0) == pytest.approx(1.0)
    assert curve.value_at(3.5) == pytest.approx(0.5)


def test_render_with_offset():
    from meditone.console.automation import AutomationCurve

    curve = AutomationCurve(0.0).linear_ramp(1.0, 1.0)
    values = curve.render(4, 8, offset_s=0.5)
    assert values == pytest.approx([0.5, 0.625, 0.75, 0.875])


def test_fade_curve_shrinks_fades_on_short_windows():
    from meditone.console.automation import fade_curve

    curve = fade_curve(0.0, 2.0, 3.0, 1.0)
    values = curve.render(2 * SR, SR)
    assert values.max() == pytest.approx(1.0, abs=2e-3)
    assert np.all(np.diff(values[: int(1.5 * SR)]) >= 0)
    assert curve.value_at(2.0) == 0.0


# ── Nodes ────────────────────────────────────────────────


def _render(node, duration_s: float = 1.0):
    from meditone.console.renderer import RenderSession

    return RenderSession(duration_s, SR).render(node)


def test_buffer_source_offset_and_mono_upmix():
    from meditone.console.graph import BufferSource

    out = _render(BufferSource(np.ones(100), start_s=0.2))
    assert out.shape == (SR, 2)
    assert np.all(out[200:300] == 1.0)
    assert np.all(out[:200] == 0.0)
    assert np.all(out[300:] == 0.0)


def test_buffer_past_end_is_trimmed():
    from meditone.console.graph import BufferSource

    out = _render(BufferSource(np.ones(500), start_s=0.8))
    assert out.shape == (SR, 2)
    assert np.all(out[800:] == 1.0)


def test_gain_automation_uses_timeline_time():
    from meditone.console.automation import AutomationCurve
    from meditone.console.graph import BufferSource, Gain

    curve = AutomationCurve(0.0).set(1.0, 0.5)
    out = _render(Gain(BufferSource(np.ones(400), start_s=0.3), curve))
    assert np.all(out[300:500] == 0.0)
    assert np.all(out[500:700] == 1.0)


def test_delay_and_pan():
    from meditone.console.graph import BufferSource, Delay, Panner

    out = _render(Panner(Delay(BufferSource(np.ones(10)), 0.1), -1.0))
    assert np.allclose(out[100:110, 0], 1.0)
    assert np.allclose(out[100:110, 1], 0.0, atol=1e-12)
    assert np.all(out[:100] == 0.0)


def test_center_pan_is_constant_power():
    from meditone.console.graph import BufferSource, Panner

    out = _render(Panner(BufferSource(np.ones(10)), 0.0))
    assert np.allclose(out[:10], math.sqrt(0.5))


def test_bus_sums_inputs():
    from meditone.console.graph import BufferSource, Bus

    out = _render(Bus(BufferSource(np.full(10, 0.25)), BufferSource(np.full(10, 0.5), start_s=0.005)))
    assert out[0, 0] == pytest.approx(0.25)
    assert out[7, 0] == pytest.approx(0.75)
    assert out[12, 0] == pytest.approx(0.5)


def test_convolver_keeps_tail_within_program():
    from meditone.console.graph import BufferSource, Convolver

    impulse = np.zeros(300)
    impulse[0] = 1.0
    impulse[250] = 0.5
    out = _render(Convolver(BufferSource(np.ones(10), start_s=0.1), impulse))
    assert np.allclose(out[100:110, 0], 1.0)
    assert np.allclose(out[350:360, 0], 0.5)


def test_limiter_holds_peaks_down():
    from meditone.console.graph import BufferSource, Compressor
    from meditone.hands.effects import LIMITER

    t = np.arange(SR) / SR
    hot = np.sin(2 * np.pi * 50 * t) * 2.0
    out = _render(Compressor(BufferSource(hot), LIMITER))
    steady = out[300:, 0]
    assert np.max(np.abs(steady)) < 1.0


def test_merge_clips_spans_and_upmixes():
    from meditone.console.graph import Clip, merge_clips

    merged = merge_clips([Clip(5, np.ones(5)), Clip(8, np.full((4, 2), 2.0))])
    assert merged.offset == 5
    assert merged.data.shape == (7, 2)
    assert np.allclose(merged.data[3:5], 3.0)
    assert merge_clips([]) is None


# ── Renderer ─────────────────────────────────────────────


def test_render_length_is_ceil_of_duration():
    from meditone.console.graph import Bus
    from meditone.console.renderer import RenderSession

    session = RenderSession(2.0004, SR)
    out = session.render(Bus())
    assert out.shape == (math.ceil(2.0004 * SR), 2)


def test_shared_node_is_rendered_once():
    """A node feeding several consumers is synthesized a single time."""
    from meditone.console.graph import Bus, Gain, ProceduralSource

    calls = []

    def generate():
        calls.append(1)
        return np.ones(10)

    shared = ProceduralSource(generate)
    out = _render(Bus(Gain(shared, 0.5), Gain(shared, 0.25), shared))
    assert len(calls) == 1
    assert np.allclose(out[:10, 0], 1.75)


def test_procedural_source_after_end_never_runs():
    from meditone.console.graph import ProceduralSource

    def explode():
        raise AssertionError("should not synthesize")

    out = _render(ProceduralSource(explode, start_s=5.0))
    assert np.all(out == 0.0)


def test_session_is_single_use():
    from meditone.console.graph import Bus
    from meditone.console.renderer import RenderSession
    from meditone.errors import RenderError

    session = RenderSession(1.0, SR)
    session.render(Bus())
    with pytest.raises(RenderError):
        session.render(Bus())


def test_non_positive_duration_is_fatal():
    from meditone.console.renderer import RenderSession
    from meditone.errors import RenderError

    with pytest.raises(RenderError):
        RenderSession(0.0, SR)


def test_non_finite_render_is_fatal():
    from meditone.console.graph import BufferSource
    from meditone.console.renderer import RenderSession
    from meditone.errors import RenderError

    with pytest.raises(RenderError):
        RenderSession(1.0, SR).render(BufferSource(np.array([np.nan])))
