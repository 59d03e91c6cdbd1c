"""MEDITONE Offline Renderer.

A ``RenderSession`` is built for one render and discarded afterwards. It
evaluates a node graph once, inputs first, and mixes the master's clips
into a stereo buffer of exactly ``ceil(duration_s * sample_rate)`` frames.
Outputs feeding more than one consumer are cached until their last
consumer has read them.
"""

from __future__ import annotations

import time
from collections import Counter

import numpy as np
import structlog

from meditone.console.graph import Clip, Node, RenderContext, frames_for, walk
from meditone.errors import RenderError
from meditone.hands.effects import AudioArray

logger = structlog.get_logger()


class RenderSession:
    """Single-use offline render of a graph."""

    def __init__(self, duration_s: float, sample_rate: int) -> None:
        if not duration_s > 0:
            msg = f"render duration must be positive, got {duration_s}"
            raise RenderError(msg)
        self.duration_s = duration_s
        self.context = RenderContext(sample_rate, frames_for(duration_s, sample_rate))
        self._done = False

    @property
    def n_frames(self) -> int:
        return self.context.n_frames

    def render(self, master: Node) -> AudioArray:
        """Run the graph and return ``(n_frames, 2)`` samples."""
        if self._done:
            msg = "render session already used"
            raise RenderError(msg)
        self._done = True

        order = walk(master)
        consumers: Counter[int] = Counter()
        for node in order:
            for child in node.inputs:
                consumers[id(child)] += 1

        logger.info("render.start", nodes=len(order), frames=self.n_frames, sample_rate=self.context.sample_rate)
        t0 = time.monotonic()

        outputs: dict[int, list[Clip]] = {}
        for node in order:
            clips: list[Clip] = []
            for child in node.inputs:
                clips.extend(outputs[id(child)])
                consumers[id(child)] -= 1
                if consumers[id(child)] == 0:
                    del outputs[id(child)]
            outputs[id(node)] = node.process(clips, self.context)

        out = self._mixdown(outputs.pop(id(master)))
        if not np.all(np.isfinite(out)):
            msg = "render produced non-finite samples"
            raise RenderError(msg)

        logger.info("render.done", elapsed_s=round(time.monotonic() - t0, 2), frames=len(out))
        return out

    def _mixdown(self, clips: list[Clip]) -> AudioArray:
        out = np.zeros((self.n_frames, 2), dtype=np.float64)
        for clip in clips:
            trimmed = self.context.trim(clip)
            if trimmed is None:
                continue
            data = trimmed.data
            if data.ndim == 1:
                data = data[:, np.newaxis]
            out[trimmed.offset:trimmed.end] += data[:, :2]
        return out
