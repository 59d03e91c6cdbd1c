"""MEDITONE Render Pipeline: narration + script -> finished asset.

    decode -> plan -> fetch bed -> build graph -> render -> master -> encode

Every call builds its own graph and render session; nothing is shared
between renders. The background fetch is the only I/O and is awaited
with a timeout. The CPU-bound stages run in a worker thread.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path

import httpx
import numpy as np
import structlog

from meditone.config import MixConfig, Settings, settings
from meditone.console.encoder import EncodedAudio, encode_audio
from meditone.console.mastering import MasterConfig, MasterResult, master
from meditone.console.mix_graph import ProgressCallback, build_mix_graph, report_progress
from meditone.console.renderer import RenderSession
from meditone.ear.pcm import RawNarration, decode_pcm
from meditone.errors import RenderError
from meditone.grid.script import MeditationScript
from meditone.grid.timeline import Timeline, plan_timeline
from meditone.hands.bed import DEFAULT_BACKGROUND, acquire_background

logger = structlog.get_logger()


@dataclass
class RenderResult:
    """Finished render plus what went into it."""

    audio: EncodedAudio
    duration_s: float
    sample_rate: int
    timeline: Timeline
    mastering: MasterResult
    background_source: str
    background_fallback: bool

    @property
    def mime_type(self) -> str:
        return self.audio.mime_type

    @property
    def filename(self) -> str:
        return self.audio.filename

    def save(self, directory: str | Path | None = None) -> Path:
        """Write the encoded asset under ``directory`` (default: settings.output_dir)."""
        out_dir = Path(directory) if directory is not None else settings.output_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / self.filename
        path.write_bytes(self.audio.data)
        logger.info("render.saved", path=str(path), size_kb=round(len(self.audio.data) / 1024, 1))
        return path


async def render_meditation(
    narration: RawNarration | bytes,
    script: MeditationScript,
    background: str | None = DEFAULT_BACKGROUND,
    on_progress: ProgressCallback | None = None,
    *,
    config: Settings | None = None,
    mix: MixConfig | None = None,
    client: httpx.AsyncClient | None = None,
    rng: np.random.Generator | None = None,
) -> RenderResult:
    """Render a complete meditation track.

    Args:
        narration: Decoded narration, or raw 16-bit PCM at
            ``config.voice_sample_rate``.
        script: Ordered sections; may be empty.
        background: Catalog id, URL or path of the background bed.
        on_progress: Called with ``(stage, percent)`` at each checkpoint.
        config: Settings override (defaults to the global settings).
        mix: Mix constants override.
        client: Shared HTTP client for the background fetch.
        rng: Generator for reproducible procedural layers.

    Raises:
        RenderError: narration is empty or the render is unusable.
    """
    cfg = config or settings
    sr = cfg.sample_rate
    t0 = time.monotonic()

    if not isinstance(narration, RawNarration):
        narration = await asyncio.to_thread(decode_pcm, narration, sr, cfg.voice_sample_rate)
    if narration.is_empty:
        msg = "narration has zero length"
        raise RenderError(msg)

    logger.info(
        "render.begin",
        title=script.title,
        sections=len(script.sections),
        narration_s=round(narration.duration_s, 2),
        sample_rate=sr,
    )

    timeline = plan_timeline(narration.duration_s, script.sections, mix)
    bed = await acquire_background(
        background,
        sr,
        timeline.total_s,
        timeout_s=cfg.background_timeout_s,
        crossfade_s=cfg.crossfade_s,
        client=client,
        rng=rng,
    )

    graph = build_mix_graph(
        narration,
        timeline,
        bed.audio,
        sr,
        config=mix,
        rng=rng,
        default_ambience=script.dominant_ambience(),
        on_progress=on_progress,
    )

    report_progress(on_progress, "render", 65)
    session = RenderSession(timeline.total_s, sr)
    rendered = await asyncio.to_thread(session.render, graph.master)

    report_progress(on_progress, "mastering", 85)
    mastered, mastering = master(
        rendered,
        MasterConfig(target_lufs=cfg.target_lufs, clamp_db=cfg.loudness_clamp_db),
    )

    report_progress(on_progress, "encoding", 92)
    encoded = await asyncio.to_thread(
        encode_audio,
        mastered,
        sr,
        script.title,
        cfg.output_format,
        cfg.ogg_compression_level,
    )
    report_progress(on_progress, "done", 100)

    logger.info(
        "render.complete",
        duration_s=round(timeline.total_s, 2),
        elapsed_s=round(time.monotonic() - t0, 2),
        format=encoded.mime_type,
        size_kb=round(len(encoded.data) / 1024, 1),
    )
    return RenderResult(
        audio=encoded,
        duration_s=len(mastered) / sr,
        sample_rate=sr,
        timeline=timeline,
        mastering=mastering,
        background_source=bed.source,
        background_fallback=bed.fallback,
    )
