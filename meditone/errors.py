"""MEDITONE error types."""

from __future__ import annotations


class MeditoneError(Exception):
    """Base class for all MEDITONE errors."""


class ScriptError(MeditoneError, ValueError):
    """Script data that cannot be mapped onto the closed section model."""


class RenderError(MeditoneError):
    """Fatal render failure: the caller must report "rendering failed".

    Raised for zero-length narration, non-positive durations and
    buffers that are empty or non-finite where audio is required.
    """
