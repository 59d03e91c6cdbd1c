"""MEDITONE Render Graph: node types for the offline mix.

Nodes form a DAG rooted at the master node. Each node turns the clips
produced by its inputs into new clips; a clip is a block of samples
placed at a frame offset on the program timeline, so silent stretches
cost nothing. Nodes never modify the clips they receive, which lets a
single output feed several consumers.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from meditone.console.automation import AutomationCurve
from meditone.hands.effects import (
    AudioArray,
    BiquadConfig,
    CompressorConfig,
    apply_biquad,
    apply_compressor,
    apply_convolution,
    apply_pan,
    as_2d,
)


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class Clip:
    """Samples placed at ``offset`` frames on the timeline."""

    offset: int
    data: AudioArray

    @property
    def end(self) -> int:
        return self.offset + len(self.data)

    @property
    def channels(self) -> int:
        return 1 if self.data.ndim == 1 else self.data.shape[1]


@dataclass(frozen=True)
class RenderContext:
    sample_rate: int
    n_frames: int

    def frames(self, seconds: float) -> int:
        return int(round(seconds * self.sample_rate))

    def trim(self, clip: Clip) -> Clip | None:
        """Cut a clip to ``[0, n_frames)``; ``None`` when nothing is left."""
        start = max(clip.offset, 0)
        end = min(clip.end, self.n_frames)
        if end <= start:
            return None
        if start == clip.offset and end == clip.end:
            return clip
        return Clip(start, clip.data[start - clip.offset:end - clip.offset])


def merge_clips(clips: list[Clip]) -> Clip | None:
    """Sum clips into one contiguous clip covering all of them."""
    if not clips:
        return None
    start = min(c.offset for c in clips)
    end = max(c.end for c in clips)
    channels = max(c.channels for c in clips)
    shape = (end - start,) if channels == 1 else (end - start, channels)
    out = np.zeros(shape, dtype=np.float64)
    for c in clips:
        data = c.data
        if channels > 1:
            data = np.broadcast_to(as_2d(data), (len(data), channels))
        out[c.offset - start:c.end - start] += data
    return Clip(start, out)


# ── Nodes ────────────────────────────────────────────────


class Node:
    """Base node: passes its inputs' clips through unchanged."""

    kind = "node"

    def __init__(self, *inputs: Node, name: str = "") -> None:
        self.inputs: tuple[Node, ...] = inputs
        self.name = name or self.kind

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        return clips

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class Bus(Node):
    """Sums every input."""

    kind = "bus"


class BufferSource(Node):
    """Plays a fixed buffer starting at ``start_s``."""

    kind = "buffer"

    def __init__(self, buffer: AudioArray, start_s: float = 0.0, name: str = "") -> None:
        super().__init__(name=name)
        self.buffer = buffer
        self.start_s = start_s

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        clip = ctx.trim(Clip(ctx.frames(self.start_s), self.buffer))
        return [clip] if clip is not None else []


class ProceduralSource(Node):
    """Synthesizes its buffer only when the graph is rendered."""

    kind = "procedural"

    def __init__(self, generate: Callable[[], AudioArray], start_s: float = 0.0, name: str = "") -> None:
        super().__init__(name=name)
        self.generate = generate
        self.start_s = start_s

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        if ctx.frames(self.start_s) >= ctx.n_frames:
            return []
        clip = ctx.trim(Clip(ctx.frames(self.start_s), self.generate()))
        return [clip] if clip is not None else []


class Gain(Node):
    """Fixed or automated gain. Curve times are absolute timeline seconds."""

    kind = "gain"

    def __init__(self, source: Node, gain: float | AutomationCurve = 1.0, name: str = "") -> None:
        super().__init__(source, name=name)
        self.gain = gain

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        if not isinstance(self.gain, AutomationCurve):
            return [Clip(c.offset, c.data * self.gain) for c in clips]
        out = []
        for c in clips:
            curve = self.gain.render(len(c.data), ctx.sample_rate, c.offset / ctx.sample_rate)
            if c.data.ndim == 2:
                curve = curve[:, np.newaxis]
            out.append(Clip(c.offset, c.data * curve))
        return out


class Filter(Node):
    kind = "filter"

    def __init__(self, source: Node, config: BiquadConfig, name: str = "") -> None:
        super().__init__(source, name=name)
        self.config = config

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        return [Clip(c.offset, apply_biquad(c.data, self.config, ctx.sample_rate)) for c in clips]


class Convolver(Node):
    """Convolution with an impulse response; the reverb tail is kept."""

    kind = "convolver"

    def __init__(self, source: Node, impulse: AudioArray, name: str = "") -> None:
        super().__init__(source, name=name)
        self.impulse = impulse

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        out = []
        for c in clips:
            wet = ctx.trim(Clip(c.offset, apply_convolution(c.data, self.impulse)))
            if wet is not None:
                out.append(wet)
        return out


class Panner(Node):
    """Constant-power placement; always outputs stereo."""

    kind = "panner"

    def __init__(self, source: Node, position: float = 0.0, name: str = "") -> None:
        super().__init__(source, name=name)
        self.position = position

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        return [Clip(c.offset, apply_pan(c.data, self.position)) for c in clips]


class Delay(Node):
    kind = "delay"

    def __init__(self, source: Node, delay_s: float, name: str = "") -> None:
        super().__init__(source, name=name)
        self.delay_s = delay_s

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        shift = ctx.frames(self.delay_s)
        out = []
        for c in clips:
            moved = ctx.trim(Clip(c.offset + shift, c.data))
            if moved is not None:
                out.append(moved)
        return out


class Compressor(Node):
    """Compressor or limiter. Inputs are summed to one span first, since
    the detector needs continuous history."""

    kind = "compressor"

    def __init__(self, source: Node, config: CompressorConfig, name: str = "") -> None:
        super().__init__(source, name=name)
        self.config = config

    def process(self, clips: list[Clip], ctx: RenderContext) -> list[Clip]:
        merged = merge_clips(clips)
        if merged is None:
            return []
        return [Clip(merged.offset, apply_compressor(merged.data, self.config, ctx.sample_rate))]


def walk(root: Node) -> list[Node]:
    """Every node reachable from ``root``, inputs before consumers."""
    order: list[Node] = []
    seen: set[int] = set()

    def visit(node: Node) -> None:
        if id(node) in seen:
            return
        seen.add(id(node))
        for child in node.inputs:
            visit(child)
        order.append(node)

    visit(root)
    return order


def frames_for(duration_s: float, sr: int) -> int:
    """Program length in frames: ``ceil(duration_s * sr)``."""
    return math.ceil(duration_s * sr)
