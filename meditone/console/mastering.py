"""MEDITONE Mastering: loudness normalization and safety clipping.

Loudness is approximated from RMS over all samples and channels:
``20 * log10(rms) - 0.691``. One global gain moves the program toward
the target, clamped so near-silent or very hot input is never pushed by
more than ``clamp_db``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog
from numpy.typing import NDArray

logger = structlog.get_logger()

SILENCE_LUFS = -100.0
K_WEIGHT_OFFSET = 0.691


# ── Data Types ───────────────────────────────────────────


@dataclass
class MasterConfig:
    target_lufs: float = -16.0
    clamp_db: float = 12.0
    ceiling: float = 1.0


@dataclass
class MasterResult:
    """Output of the mastering stage."""

    measured_lufs: float
    gain_db: float
    output_lufs: float
    peak_db: float
    clipped_samples: int


# ── Measurement ──────────────────────────────────────────


def _rms(data: NDArray[np.float64]) -> float:
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))


def _peak_db(data: NDArray[np.float64]) -> float:
    if data.size == 0:
        return SILENCE_LUFS
    return float(20 * np.log10(max(float(np.max(np.abs(data))), 1e-10)))


def estimate_lufs(data: NDArray[np.float64]) -> float:
    """Approximate integrated loudness; silence reads as -100."""
    rms = _rms(data)
    if rms <= 0:
        return SILENCE_LUFS
    return float(20 * np.log10(rms) - K_WEIGHT_OFFSET)


def loudness_gain_db(measured_lufs: float, config: MasterConfig | None = None) -> float:
    """Clamped correction toward the target. Silence gets 0 dB."""
    cfg = config or MasterConfig()
    if measured_lufs <= SILENCE_LUFS:
        return 0.0
    return float(np.clip(cfg.target_lufs - measured_lufs, -cfg.clamp_db, cfg.clamp_db))


# ── Processing ───────────────────────────────────────────


def master(data: NDArray[np.float64], config: MasterConfig | None = None) -> tuple[NDArray[np.float64], MasterResult]:
    """Normalize loudness then hard-clip to ``[-ceiling, ceiling]``.

    Returns:
        (mastered audio, MasterResult)
    """
    cfg = config or MasterConfig()
    measured = estimate_lufs(data)
    gain_db = loudness_gain_db(measured, cfg)

    out = data * 10 ** (gain_db / 20)
    clipped = int(np.count_nonzero(np.abs(out) > cfg.ceiling))
    out = np.clip(out, -cfg.ceiling, cfg.ceiling)

    result = MasterResult(
        measured_lufs=round(measured, 2),
        gain_db=round(gain_db, 2),
        output_lufs=round(estimate_lufs(out), 2),
        peak_db=round(_peak_db(out), 2),
        clipped_samples=clipped,
    )
    logger.info(
        "mastering.loudness",
        measured_lufs=result.measured_lufs,
        gain_db=result.gain_db,
        output_lufs=result.output_lufs,
        clipped=clipped,
    )
    return out, result
