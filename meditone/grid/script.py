"""MEDITONE Script Model: sections, kinds and ambience biomes.

A meditation script is an ordered list of narrative sections. Order is
narrative order. Kinds and ambiences are closed enums; anything outside
them is rejected at parse time.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from meditone.errors import ScriptError

DEFAULT_TEXT_LENGTH = 100


class SectionKind(str, Enum):
    INTRO = "intro"
    BREATHING = "breathing"
    BODY_SCAN = "body-scan"
    VISUALIZATION = "visualization"
    SILENCE = "silence"
    OUTRO = "outro"


class Ambience(str, Enum):
    FOREST = "forest"
    RAIN = "rain"
    OCEAN = "ocean"
    FIRE = "fire"
    SPACE = "space"
    SILENCE = "silence"


_KIND_ALIASES: dict[str, SectionKind] = {
    "closing": SectionKind.OUTRO,
    "body_scan": SectionKind.BODY_SCAN,
    "bodyscan": SectionKind.BODY_SCAN,
}


def parse_kind(value: str) -> SectionKind:
    key = value.strip().lower()
    if key in _KIND_ALIASES:
        return _KIND_ALIASES[key]
    try:
        return SectionKind(key)
    except ValueError:
        msg = f"Unknown section kind: {value!r}"
        raise ScriptError(msg) from None


def parse_ambience(value: Any) -> Ambience:
    if not value:
        return Ambience.FOREST
    try:
        return Ambience(str(value).strip().lower())
    except ValueError:
        msg = f"Unknown ambience: {value!r}"
        raise ScriptError(msg) from None


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class ScriptSection:
    """One narrative section of a meditation script."""

    kind: SectionKind
    text_length: int = DEFAULT_TEXT_LENGTH
    pause_s: float = 0.0
    ambience: Ambience = Ambience.FOREST

    def __post_init__(self) -> None:
        if self.pause_s < 0:
            msg = f"pause_s must be >= 0, got {self.pause_s}"
            raise ScriptError(msg)
        if self.text_length < 0:
            msg = f"text_length must be >= 0, got {self.text_length}"
            raise ScriptError(msg)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ScriptSection:
        """Build from the speech collaborator's JSON shape.

        Accepts ``type``, ``content``, ``pauseSeconds`` and ``ambientHint``
        (snake_case spellings work too). Content is only measured.
        """
        content = d.get("content")
        text_length = d.get("text_length")
        if text_length is None:
            text_length = len(content) if content else DEFAULT_TEXT_LENGTH
        pause = d.get("pauseSeconds", d.get("pause_s", 0.0))
        try:
            text_length = int(text_length)
            pause_s = float(pause or 0.0)
        except (TypeError, ValueError) as e:
            msg = f"Invalid section values: {e}"
            raise ScriptError(msg) from e
        return cls(
            kind=parse_kind(str(d.get("type", d.get("kind", "visualization")))),
            text_length=text_length,
            pause_s=pause_s,
            ambience=parse_ambience(d.get("ambientHint", d.get("ambience"))),
        )


@dataclass
class MeditationScript:
    """Titled, ordered section list."""

    title: str = "meditation"
    sections: list[ScriptSection] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MeditationScript:
        """Build from the speech collaborator's JSON script.

        Raises:
            ScriptError: ``sections`` is not a list of objects.
        """
        raw_sections = d.get("sections")
        if raw_sections is None:
            raw_sections = []
        if not isinstance(raw_sections, list) or not all(isinstance(s, dict) for s in raw_sections):
            msg = "sections must be a list of objects"
            raise ScriptError(msg)
        return cls(
            title=str(d.get("title") or "meditation"),
            sections=[ScriptSection.from_dict(s) for s in raw_sections],
        )

    @property
    def total_pause_s(self) -> float:
        return sum(s.pause_s for s in self.sections)

    def dominant_ambience(self) -> Ambience:
        """Most frequent non-silence ambience (first wins ties), else forest."""
        counts = Counter(s.ambience for s in self.sections if s.ambience != Ambience.SILENCE)
        if not counts:
            return Ambience.FOREST
        return counts.most_common(1)[0][0]
