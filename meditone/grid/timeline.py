"""MEDITONE Timeline Planner: sections to absolute time windows.

Narration time is shared out in proportion to each section's text
length; each section then gets its own pause appended. Windows start
after a fixed lead-in that carries the intro bowl.

  0 ─ lead-in ─┬─ section 1 ─┬─ ... ─┬─ section n ─┬─ outro bowl ─┬─ fade ─ total
               voice | pause  voice | pause        timeline end
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from meditone.config import MixConfig
from meditone.errors import RenderError
from meditone.grid.script import Ambience, ScriptSection, SectionKind

logger = structlog.get_logger()


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class TimelineEvent:
    """One section placed on the render timeline."""

    start_s: float
    end_s: float
    ambience: Ambience
    kind: SectionKind
    pause_s: float = 0.0
    voice_offset_s: float = 0.0  # position of this section's speech in the narration buffer

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s

    @property
    def voice_end_s(self) -> float:
        """Timeline position where speech stops and the pause begins."""
        return self.end_s - self.pause_s

    @property
    def voice_s(self) -> float:
        return self.voice_end_s - self.start_s


@dataclass
class Timeline:
    """Planned program layout."""

    narration_s: float
    lead_in_s: float
    outro_s: float
    final_fade_s: float
    events: list[TimelineEvent] = field(default_factory=list)

    @property
    def voice_start_s(self) -> float:
        return self.lead_in_s

    @property
    def end_s(self) -> float:
        """End of narration plus all pauses; the outro bowl starts here."""
        if self.events:
            return self.events[-1].end_s
        return self.lead_in_s + self.narration_s

    @property
    def total_s(self) -> float:
        return self.end_s + self.outro_s + self.final_fade_s

    def boundaries(self) -> list[float]:
        """Start times of every section after the first."""
        return [e.start_s for e in self.events[1:]]


# ── Planning ─────────────────────────────────────────────


def plan_timeline(
    narration_s: float,
    sections: list[ScriptSection],
    config: MixConfig | None = None,
) -> Timeline:
    """Lay sections out after the lead-in.

    Sections with zero total text length share narration time equally.

    Raises:
        RenderError: narration duration is not positive.
    """
    cfg = config or MixConfig()
    if not narration_s > 0:
        msg = f"narration duration must be positive, got {narration_s}"
        raise RenderError(msg)

    timeline = Timeline(
        narration_s=narration_s,
        lead_in_s=cfg.lead_in_s,
        outro_s=cfg.bowl_s,
        final_fade_s=cfg.final_fade_s,
    )
    if not sections:
        return timeline

    total_len = sum(s.text_length for s in sections)
    cursor = cfg.lead_in_s
    voice_offset = 0.0
    for section in sections:
        if total_len > 0:
            share = narration_s * section.text_length / total_len
        else:
            share = narration_s / len(sections)
        end = cursor + share + section.pause_s
        timeline.events.append(
            TimelineEvent(
                start_s=cursor,
                end_s=end,
                ambience=section.ambience,
                kind=section.kind,
                pause_s=section.pause_s,
                voice_offset_s=voice_offset,
            )
        )
        voice_offset += share
        cursor = end

    logger.info(
        "timeline.planned",
        sections=len(timeline.events),
        end_s=round(timeline.end_s, 2),
        total_s=round(timeline.total_s, 2),
    )
    return timeline


# ── Ducking Policy ───────────────────────────────────────

_DUCK_LEVELS: dict[SectionKind, float] = {
    SectionKind.BREATHING: 0.10,
    SectionKind.BODY_SCAN: 0.04,
    SectionKind.VISUALIZATION: 0.04,
    SectionKind.INTRO: 0.07,
    SectionKind.OUTRO: 0.07,
}


def duck_level(kind: SectionKind | None, config: MixConfig | None = None) -> float:
    """Background gain while a section of ``kind`` is spoken.

    Breathing stays shallow so its natural gaps breathe; body scans and
    visualizations go near-silent; everything else sits at the default.
    """
    cfg = config or MixConfig()
    if kind is None:
        return cfg.bgm_ducked_gain
    return _DUCK_LEVELS.get(kind, cfg.bgm_ducked_gain)


def pause_lift_level(kind: SectionKind, config: MixConfig | None = None) -> float:
    """Level the background rises to inside a long pause, below base."""
    cfg = config or MixConfig()
    return min(cfg.bgm_base_gain * cfg.pause_lift_ratio, duck_level(kind, cfg) * 3)
