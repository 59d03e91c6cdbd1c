"""MEDITONE global configuration."""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    env: str = "development"

    # Render
    sample_rate: int = 44100
    voice_sample_rate: int = 24000
    crossfade_s: float = 2.0

    # Mastering
    target_lufs: float = -16.0
    loudness_clamp_db: float = 12.0

    # Encoding
    output_format: Literal["ogg", "wav"] = "ogg"
    ogg_compression_level: float = 0.6  # libsndfile Vorbis, ~128 kbps

    # Background acquisition
    background_timeout_s: float = 15.0

    # Paths
    output_dir: Path = Path("./renders")

    model_config = {"env_prefix": "MEDITONE_"}


settings = Settings()


@dataclass(frozen=True)
class MixConfig:
    """Gains, fades and timings of the produced mix."""

    # Timeline
    lead_in_s: float = 5.0
    bowl_s: float = 8.0
    final_fade_s: float = 5.0

    # Background bed
    bgm_base_gain: float = 0.18
    bgm_ducked_gain: float = 0.05
    duck_ramp_s: float = 0.8
    pause_lift_min_s: float = 2.0
    pause_lift_ramp_s: float = 1.0
    pause_lift_ratio: float = 0.6
    recovery_s: float = 3.0
    fallback_duck_ramp_s: float = 1.5

    # Ritual tones
    intro_bowl_hz: float = 220.0
    intro_bowl_gain: float = 0.9
    outro_bowl_hz: float = 330.0
    outro_bowl_gain: float = 0.7

    # Voice
    voice_gain: float = 0.85
    reverb_mix: float = 0.15
    reverb_s: float = 2.5
    reverb_decay: float = 2.0
    voice_pan: float = 0.15
    haas_delay_s: float = 0.0006
    haas_right_gain: float = 0.95
    voice_fade_in_s: float = 0.8
    voice_fade_out_s: float = 1.5
    segment_fade_s: float = 0.01

    # Ambience & chimes
    ambience_crossfade_s: float = 2.0
    ambience_first_fade_s: float = 3.0
    chime_s: float = 2.5
    chime_lead_s: float = 0.5
    chime_base_hz: float = 1200.0
    chime_step_hz: float = 100.0
    chime_gain: float = 0.5
    breathing_gain: float = 0.6
    breathing_min_s: float = 2.0

    # Entrainment (alpha -> theta -> deep theta)
    beat_hz: tuple[float, float, float] = (10.0, 6.0, 4.0)
    binaural_carrier_hz: float = 180.0
    binaural_gain: float = 0.025
    binaural_fade_s: float = 3.0
    isochronic_carriers_hz: tuple[float, float, float] = (400.0, 380.0, 360.0)
    isochronic_gain: float = 0.015
    isochronic_fade_s: float = 4.0
