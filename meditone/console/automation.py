"""MEDITONE Automation: piecewise gain curves on the render timeline.

A curve is a list of timed events evaluated the way a mixing console's
automation lane is: a ``set`` steps to a value, a ramp travels from the
previous event's value to its own over the gap between them, and the
last value holds forever after. Events are applied in time order; ties
keep insertion order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
from numpy.typing import NDArray

EXP_FLOOR = 1e-4

EventKind = Literal["set", "linear", "exp"]


@dataclass(frozen=True)
class AutomationEvent:
    kind: EventKind
    time_s: float
    value: float


@dataclass
class AutomationCurve:
    """Gain automation for one node.

    Example:
        >>> curve = AutomationCurve(0.0)
        >>> curve.linear_ramp(1.0, 2.0).value_at(1.0)
        0.5
    """

    initial: float = 1.0
    events: list[AutomationEvent] = field(default_factory=list)

    # ── Authoring ────────────────────────────────────────

    def set(self, value: float, time_s: float) -> AutomationCurve:
        self.events.append(AutomationEvent("set", time_s, value))
        return self

    def linear_ramp(self, value: float, time_s: float) -> AutomationCurve:
        self.events.append(AutomationEvent("linear", time_s, value))
        return self

    def exp_ramp(self, value: float, time_s: float) -> AutomationCurve:
        """Geometric ramp; both ends are floored at ``EXP_FLOOR``."""
        self.events.append(AutomationEvent("exp", time_s, value))
        return self

    def hold(self, time_s: float) -> AutomationCurve:
        """Pin the current value at ``time_s`` so the next ramp starts there."""
        return self.set(self.value_at(time_s), time_s)

    # ── Evaluation ───────────────────────────────────────

    def _ordered(self) -> list[AutomationEvent]:
        return sorted(self.events, key=lambda e: e.time_s)

    def evaluate(self, times: NDArray[np.float64]) -> NDArray[np.float64]:
        """Curve value at each time in ``times`` (seconds)."""
        out = np.full(times.shape, self.initial, dtype=np.float64)
        prev_t, prev_v = 0.0, self.initial

        for event in self._ordered():
            t, v = event.time_s, event.value
            if event.kind != "set" and t > prev_t:
                seg = (times >= prev_t) & (times < t)
                frac = (times[seg] - prev_t) / (t - prev_t)
                if event.kind == "linear":
                    out[seg] = prev_v + (v - prev_v) * frac
                else:
                    v0 = max(prev_v, EXP_FLOOR)
                    v1 = max(v, EXP_FLOOR)
                    out[seg] = v0 * (v1 / v0) ** frac
            out[times >= t] = v
            prev_t, prev_v = t, v

        return out

    def value_at(self, time_s: float) -> float:
        return float(self.evaluate(np.array([time_s], dtype=np.float64))[0])

    def render(self, n: int, sr: int, offset_s: float = 0.0) -> NDArray[np.float64]:
        """``n`` per-sample values starting at ``offset_s`` on the timeline."""
        return self.evaluate(offset_s + np.arange(n, dtype=np.float64) / sr)

    @property
    def end_s(self) -> float:
        return max((e.time_s for e in self.events), default=0.0)


def fade_curve(start_s: float, end_s: float, fade_in_s: float, fade_out_s: float, level: float = 1.0) -> AutomationCurve:
    """0 -> ``level`` over ``fade_in_s`` from ``start_s``; back to 0 at ``end_s``."""
    span = end_s - start_s
    if fade_in_s + fade_out_s > span > 0:
        scale = span / (fade_in_s + fade_out_s)
        fade_in_s, fade_out_s = fade_in_s * scale, fade_out_s * scale
    curve = AutomationCurve(0.0).set(0.0, start_s)
    peak_at = start_s + fade_in_s
    fall_at = max(peak_at, end_s - fade_out_s)
    if math.isclose(fade_in_s, 0.0):
        curve.set(level, start_s)
    else:
        curve.linear_ramp(level, peak_at)
    curve.set(level, fall_at)
    curve.linear_ramp(0.0, end_s)
    return curve
