"""MEDITONE: offline meditation track renderer.

Turns a narrated voice recording plus a sectioned meditation script into a
mastered stereo asset with ritual bowls, biome ambience, entrainment tones,
section-aware ducking, reverb and loudness normalization.
"""

__version__ = "0.1.0"
