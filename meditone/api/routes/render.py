"""API routes for rendering meditation tracks."""

from __future__ import annotations

import asyncio
import json
from typing import Annotated

import structlog
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from meditone.config import settings
from meditone.console.session import render_meditation
from meditone.ear.pcm import decode_pcm
from meditone.errors import RenderError
from meditone.grid.script import MeditationScript
from meditone.hands.bed import BACKGROUND_TRACKS, DEFAULT_BACKGROUND

logger = structlog.get_logger()

router = APIRouter(tags=["render"])


# ── Models ───────────────────────────────────────────────


class BackgroundInfo(BaseModel):
    id: str
    name: str
    url: str


# ── Endpoints ────────────────────────────────────────────


@router.get("/backgrounds")
async def list_backgrounds() -> list[BackgroundInfo]:
    """Background beds available by id."""
    return [BackgroundInfo(id=t.id, name=t.name, url=t.url) for t in BACKGROUND_TRACKS]


@router.post("/render")
async def render_track(
    narration: Annotated[UploadFile, File(...)],
    script: Annotated[str, Form()] = "{}",
    background: Annotated[str | None, Form()] = DEFAULT_BACKGROUND,
    voice_sample_rate: Annotated[int, Form()] = settings.voice_sample_rate,
) -> Response:
    """Render raw 16-bit PCM narration under a script.

    ``script`` is JSON: ``{"title": ..., "sections": [{"type", "content",
    "pauseSeconds", "ambientHint"}, ...]}``.
    """
    try:
        payload = json.loads(script)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"script is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="script must be a JSON object")

    try:
        parsed = MeditationScript.from_dict(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    pcm = await narration.read()
    voice = await asyncio.to_thread(decode_pcm, pcm, settings.sample_rate, voice_sample_rate)
    # "none" skips the fetch and uses the quiet noise bed; an empty field means the default track
    bed = None if background in (None, "none") else background

    try:
        result = await render_meditation(voice, parsed, bed)
    except RenderError as e:
        logger.error("api.render_failed", error=str(e))
        raise HTTPException(status_code=422, detail=f"rendering failed: {e}") from e

    return Response(
        content=result.audio.data,
        media_type=result.mime_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Duration-Seconds": f"{result.duration_s:.2f}",
            "X-Loudness-LUFS": f"{result.mastering.output_lufs:.1f}",
            "X-Background-Fallback": str(result.background_fallback).lower(),
        },
    )
