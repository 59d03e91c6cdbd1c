"""EAR: narration intake.

- PCM: 16-bit LE decode, Lanczos-3 resampling, multi-chunk stitching
"""

from meditone.ear.pcm import (
    RawNarration,
    decode_pcm,
    lanczos3,
    pcm16_to_float,
    resample_lanczos,
    stitch_chunks,
)

__all__ = [
    "RawNarration",
    "decode_pcm",
    "lanczos3",
    "pcm16_to_float",
    "resample_lanczos",
    "stitch_chunks",
]
