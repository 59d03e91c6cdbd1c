"""MEDITONE Mix Graph Builder: the full production routing, unrendered.

Layers, all summed into one master limiter:

  voice        narration -> warm shelf -> split de-esser -> envelope
               -> dry left / Haas-delayed dry right / convolution reverb
  background   looped bed under a section-aware ducking curve
  ritual       intro bowl at 0 s, outro bowl after the last pause
  ambience     one biome bed per section, crossfading into the next
  chimes       one per section boundary
  breathing    swell tone under long breathing sections
  entrainment  binaural pair + isochronic tone, stepping 10 -> 6 -> 4 Hz

Procedural layers are wrapped in ``ProceduralSource`` nodes, so nothing
is synthesized until the graph is rendered.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np
import structlog

from meditone.config import MixConfig
from meditone.console.automation import AutomationCurve, fade_curve
from meditone.console.graph import (
    BufferSource,
    Bus,
    Compressor,
    Convolver,
    Delay,
    Filter,
    Gain,
    Node,
    Panner,
    ProceduralSource,
)
from meditone.ear.pcm import RawNarration, resample_lanczos
from meditone.errors import RenderError
from meditone.grid.script import Ambience, SectionKind
from meditone.grid.timeline import Timeline, duck_level, pause_lift_level
from meditone.hands.ambience import generate_ambience
from meditone.hands.effects import (
    DE_ESSER,
    LIMITER,
    AudioArray,
    BiquadConfig,
    micro_fade,
)
from meditone.hands.synth import (
    breathing_guide,
    isochronic_tone,
    reverb_impulse,
    sine_tone,
    singing_bowl,
    transition_chime,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[str, int], None]

WARMTH = BiquadConfig(type="lowshelf", freq_hz=300.0, gain_db=3.0)
SIBILANCE_BAND = BiquadConfig(type="bandpass", freq_hz=5800.0, q=1.5)
SIBILANCE_NOTCH = BiquadConfig(type="notch", freq_hz=5800.0, q=1.5)
DE_ESS_LEVEL = 0.4


@dataclass
class MixGraph:
    """Built graph: the master node plus each layer's bus for inspection."""

    master: Node
    timeline: Timeline
    sample_rate: int
    layers: dict[str, Node] = field(default_factory=dict)


def report_progress(on_progress: ProgressCallback | None, stage: str, percent: int) -> None:
    """Log a pipeline checkpoint and forward it to the caller's callback."""
    logger.info("render.progress", stage=stage, percent=percent)
    if on_progress is not None:
        on_progress(stage, percent)


# ── Background Ducking ───────────────────────────────────


def ducking_curve(timeline: Timeline, config: MixConfig | None = None) -> AutomationCurve:
    """Background gain over the whole program.

    Fade in across the lead-in, duck per section, lift inside pauses
    longer than ``pause_lift_min_s``, recover after the narration and
    fade out over the last ``final_fade_s``.
    """
    cfg = config or MixConfig()
    base = cfg.bgm_base_gain
    curve = AutomationCurve(0.0).set(0.0, 0.0).linear_ramp(base, timeline.lead_in_s)

    events = timeline.events
    if events:
        for i, event in enumerate(events):
            duck = duck_level(event.kind, cfg)
            curve.hold(event.start_s)
            curve.exp_ramp(duck, event.start_s + cfg.duck_ramp_s)

            if event.pause_s > cfg.pause_lift_min_s and i < len(events) - 1:
                lift = pause_lift_level(event.kind, cfg)
                pause_start = event.voice_end_s
                curve.set(duck, pause_start)
                curve.exp_ramp(lift, pause_start + cfg.pause_lift_ramp_s)
                curve.set(lift, event.end_s - cfg.pause_lift_ramp_s)
                curve.exp_ramp(duck_level(events[i + 1].kind, cfg), event.end_s)

        curve.hold(timeline.end_s)
        curve.exp_ramp(base, timeline.end_s + cfg.recovery_s)
    else:
        voice_end = timeline.lead_in_s + timeline.narration_s
        curve.set(base, timeline.lead_in_s)
        curve.exp_ramp(cfg.bgm_ducked_gain, timeline.lead_in_s + cfg.fallback_duck_ramp_s)
        curve.set(cfg.bgm_ducked_gain, voice_end)
        curve.exp_ramp(base, voice_end + cfg.recovery_s)

    fade_start = timeline.total_s - cfg.final_fade_s
    curve.set(base, fade_start)
    curve.linear_ramp(0.0, timeline.total_s)
    return curve


# ── Voice ────────────────────────────────────────────────


def _voice_sources(narration: AudioArray, timeline: Timeline, sr: int, cfg: MixConfig) -> tuple[list[Node], float]:
    """Narration placed on the timeline; returns sources and speech end."""
    if not timeline.events:
        end = timeline.lead_in_s + len(narration) / sr
        return [BufferSource(narration, timeline.lead_in_s, name="narration")], end

    fade = int(round(cfg.segment_fade_s * sr))
    sources: list[Node] = []
    for i, event in enumerate(timeline.events):
        lo = int(round(event.voice_offset_s * sr))
        hi = len(narration) if i == len(timeline.events) - 1 else int(round((event.voice_offset_s + event.voice_s) * sr))
        segment = narration[lo:hi]
        if len(segment) == 0:
            continue
        sources.append(BufferSource(micro_fade(segment, fade), event.start_s, name=f"narration:{i}"))
    last = timeline.events[-1]
    return sources, last.voice_end_s


def build_voice_chain(
    narration: AudioArray,
    timeline: Timeline,
    sr: int,
    config: MixConfig | None = None,
    rng: np.random.Generator | None = None,
) -> Node:
    cfg = config or MixConfig()
    sources, voice_end = _voice_sources(narration, timeline, sr, cfg)
    warm = Filter(Bus(*sources, name="narration"), WARMTH, name="warmth")

    # De-esser: compressed sibilance band back in at 40%, plus everything else
    band = Gain(
        Compressor(Filter(warm, SIBILANCE_BAND, name="sibilance"), DE_ESSER, name="de-esser"),
        DE_ESS_LEVEL,
    )
    rest = Filter(warm, SIBILANCE_NOTCH, name="notch")
    envelope = Gain(
        Bus(band, rest, name="de-essed"),
        fade_curve(timeline.voice_start_s, voice_end, cfg.voice_fade_in_s, cfg.voice_fade_out_s),
        name="voice-envelope",
    )

    dry = cfg.voice_gain * (1 - cfg.reverb_mix)
    left = Panner(Gain(envelope, dry), -cfg.voice_pan, name="voice-left")
    right = Panner(
        Gain(Delay(envelope, cfg.haas_delay_s, name="haas"), dry * cfg.haas_right_gain),
        cfg.voice_pan,
        name="voice-right",
    )
    impulse = reverb_impulse(cfg.reverb_s, cfg.reverb_decay, sr, rng)
    wet = Gain(Convolver(envelope, impulse, name="reverb"), cfg.voice_gain * cfg.reverb_mix, name="voice-wet")
    return Bus(left, right, wet, name="voice")


# ── Procedural Layers ────────────────────────────────────


def build_ritual(timeline: Timeline, sr: int, cfg: MixConfig, rng: np.random.Generator | None) -> Node:
    intro = ProceduralSource(
        lambda: singing_bowl(cfg.bowl_s, cfg.intro_bowl_hz, sr, rng), 0.0, name="intro-bowl"
    )
    outro = ProceduralSource(
        lambda: singing_bowl(cfg.bowl_s, cfg.outro_bowl_hz, sr, rng), timeline.end_s, name="outro-bowl"
    )
    return Bus(Gain(intro, cfg.intro_bowl_gain), Gain(outro, cfg.outro_bowl_gain), name="ritual")


def build_entrainment(timeline: Timeline, sr: int, cfg: MixConfig) -> Node:
    """Three equal thirds of the program, one brainwave target each."""
    total = timeline.total_s
    third = total / 3
    nodes: list[Node] = []
    for k, beat in enumerate(cfg.beat_hz):
        start = k * third
        dur = total - 2 * third if k == 2 else third
        carrier = cfg.binaural_carrier_hz
        binaural_env = fade_curve(start, start + dur, cfg.binaural_fade_s, cfg.binaural_fade_s, cfg.binaural_gain)
        for freq, pan in ((carrier, -1.0), (carrier + beat, 1.0)):
            tone = ProceduralSource(lambda f=freq, d=dur: sine_tone(d, f, sr), start, name=f"binaural:{freq:g}")
            nodes.append(Panner(Gain(tone, binaural_env), pan))

        iso_carrier = cfg.isochronic_carriers_hz[k]
        iso = ProceduralSource(
            lambda c=iso_carrier, p=beat, d=dur: isochronic_tone(d, c, p, sr),
            start,
            name=f"isochronic:{iso_carrier:g}",
        )
        iso_env = fade_curve(start, start + dur, cfg.isochronic_fade_s, cfg.isochronic_fade_s, cfg.isochronic_gain)
        nodes.append(Gain(iso, iso_env))
    return Bus(*nodes, name="entrainment")


def build_ambience(
    timeline: Timeline,
    sr: int,
    cfg: MixConfig,
    rng: np.random.Generator | None,
    default_ambience: Ambience = Ambience.FOREST,
) -> Node:
    """One bed per section; each fades out over the next one's fade-in."""
    total = timeline.total_s
    xf = cfg.ambience_crossfade_s
    nodes: list[Node] = []

    if not timeline.events:
        bed = ProceduralSource(
            lambda: generate_ambience(default_ambience, total, sr, rng), 0.0, name=f"ambience:{default_ambience.value}"
        )
        env = fade_curve(0.0, total, cfg.ambience_first_fade_s, cfg.final_fade_s)
        return Bus(Gain(bed, env), name="ambience")

    last = len(timeline.events) - 1
    for i, event in enumerate(timeline.events):
        if event.duration_s <= 0:
            continue
        fade_in = cfg.ambience_first_fade_s if i == 0 else xf
        if i == last:
            end = total
            length = total - event.start_s
            env = fade_curve(event.start_s, end, fade_in, cfg.final_fade_s)
        else:
            end = event.end_s + xf
            length = event.duration_s + xf
            env = fade_curve(event.start_s, end, fade_in, xf)
        bed = ProceduralSource(
            lambda a=event.ambience, d=length: generate_ambience(a, d, sr, rng),
            event.start_s,
            name=f"ambience:{event.ambience.value}",
        )
        nodes.append(Gain(bed, env))
    return Bus(*nodes, name="ambience")


def build_chimes(timeline: Timeline, sr: int, cfg: MixConfig) -> Node:
    nodes: list[Node] = []
    for i in range(1, len(timeline.events)):
        if timeline.events[i - 1].ambience == Ambience.SILENCE:
            continue
        freq = cfg.chime_base_hz + i * cfg.chime_step_hz
        start = max(0.0, timeline.events[i].start_s - cfg.chime_lead_s)
        chime = ProceduralSource(lambda f=freq: transition_chime(cfg.chime_s, f, sr), start, name=f"chime:{i}")
        nodes.append(Gain(chime, cfg.chime_gain))
    return Bus(*nodes, name="chimes")


def build_breathing(timeline: Timeline, sr: int, cfg: MixConfig) -> Node:
    nodes: list[Node] = []
    for event in timeline.events:
        if event.kind != SectionKind.BREATHING or event.duration_s <= cfg.breathing_min_s:
            continue
        guide = ProceduralSource(
            lambda d=event.duration_s: breathing_guide(d, sr=sr), event.start_s, name="breathing-guide"
        )
        nodes.append(Gain(guide, cfg.breathing_gain))
    return Bus(*nodes, name="breathing")


# ── Assembly ─────────────────────────────────────────────


def build_mix_graph(
    narration: RawNarration,
    timeline: Timeline,
    background: AudioArray | None,
    sample_rate: int,
    config: MixConfig | None = None,
    rng: np.random.Generator | None = None,
    default_ambience: Ambience = Ambience.FOREST,
    on_progress: ProgressCallback | None = None,
) -> MixGraph:
    """Assemble every layer under the master limiter.

    Raises:
        RenderError: the narration is empty.
    """
    cfg = config or MixConfig()
    if narration.is_empty:
        msg = "narration has zero length"
        raise RenderError(msg)

    voice = np.asarray(narration.samples, dtype=np.float64)
    if narration.sample_rate != sample_rate:
        voice = resample_lanczos(voice, narration.sample_rate, sample_rate)

    layers: dict[str, Node] = {}
    report_progress(on_progress, "voice", 30)
    layers["voice"] = build_voice_chain(voice, timeline, sample_rate, cfg, rng)
    if background is not None:
        layers["background"] = Gain(
            BufferSource(background, 0.0, name="background-bed"),
            ducking_curve(timeline, cfg),
            name="background",
        )
    layers["ritual"] = build_ritual(timeline, sample_rate, cfg, rng)

    report_progress(on_progress, "entrainment", 45)
    layers["entrainment"] = build_entrainment(timeline, sample_rate, cfg)

    report_progress(on_progress, "ambience", 55)
    layers["ambience"] = build_ambience(timeline, sample_rate, cfg, rng, default_ambience)
    layers["chimes"] = build_chimes(timeline, sample_rate, cfg)
    layers["breathing"] = build_breathing(timeline, sample_rate, cfg)

    master = Compressor(Bus(*layers.values(), name="mix"), LIMITER, name="master")
    logger.info("mix.graph_built", layers=list(layers), sections=len(timeline.events))
    return MixGraph(master=master, timeline=timeline, sample_rate=sample_rate, layers=layers)
