"""MEDITONE Bed Tests: crossfaded looping and background acquisition.

Network access is never used: fetches go through ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import io
import math

import httpx
import numpy as np
import pytest
import soundfile as sf

SR = 1000


def _wav_bytes(data: np.ndarray, sr: int) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, data, sr, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Looping ──────────────────────────────────────────────


@pytest.mark.parametrize("clip_len", [500, 2000, 2500, 5000, 12345])
@pytest.mark.parametrize("target_s", [3.0, 10.0, 7.3333])
def test_loop_length_is_exact(clip_len, target_s):
    """Output is ceil(target * sr) samples for any clip length."""
    from meditone.hands.bed import loop_with_crossfade

    clip = np.random.default_rng(0).uniform(-1, 1, clip_len)
    out = loop_with_crossfade(clip, target_s, SR, crossfade_s=2.0)
    assert len(out) == math.ceil(target_s * SR)


def test_crossfade_gains_sum_to_one():
    from meditone.hands.effects import crossfade_gains

    fade_out, fade_in = crossfade_gains(2000)
    assert np.allclose(fade_out + fade_in, 1.0)
    assert fade_in[0] == 0.0
    assert fade_out[0] == 1.0


def test_constant_clip_stays_constant_across_seams():
    """Equal-sum seams keep a DC clip flat for the whole loop."""
    from meditone.hands.bed import loop_with_crossfade

    out = loop_with_crossfade(np.ones(5000), 30.0, SR, crossfade_s=2.0)
    assert np.allclose(out, 1.0)


def test_first_pass_is_the_clip_itself():
    from meditone.hands.bed import loop_with_crossfade

    clip = np.random.default_rng(4).uniform(-1, 1, 5000)
    out = loop_with_crossfade(clip, 20.0, SR, crossfade_s=2.0)
    effective = 5000 - 2000
    assert np.array_equal(out[:effective], clip[:effective])
    # Second pass opens with the tail blended into the head
    expected_seam_start = clip[effective]
    assert out[effective] == pytest.approx(expected_seam_start)


def test_short_clip_falls_back_to_modulo():
    from meditone.hands.bed import loop_with_crossfade

    clip = np.arange(5, dtype=np.float64)
    out = loop_with_crossfade(clip, 0.5, SR, crossfade_s=0.01)
    assert np.array_equal(out, np.arange(500) % 5)


def test_stereo_loop_keeps_channels():
    from meditone.hands.bed import loop_with_crossfade

    clip = np.column_stack([np.ones(3000), -np.ones(3000)])
    out = loop_with_crossfade(clip, 12.0, SR, crossfade_s=1.0)
    assert out.shape == (12000, 2)
    assert np.allclose(out[:, 0], 1.0)
    assert np.allclose(out[:, 1], -1.0)


def test_fit_to_length_trims_long_clips():
    from meditone.hands.bed import fit_to_length

    out = fit_to_length(np.zeros((9000, 2)), 4.5, SR)
    assert out.shape == (4500, 2)


# ── Acquisition ──────────────────────────────────────────


def test_catalog_ids_resolve_to_urls():
    from meditone.hands.bed import BACKGROUND_TRACKS, resolve_background

    ids = [t.id for t in BACKGROUND_TRACKS]
    assert ids == ["zen-forest", "deep-rain", "ocean-waves", "white-noise"]
    assert resolve_background("deep-rain").endswith("2515-preview.mp3")
    assert resolve_background("https://example.com/a.wav") == "https://example.com/a.wav"
    assert resolve_background(None) is None


def test_http_error_falls_back_to_noise():
    """A failing fetch yields a quiet, non-silent pink bed, never an error."""
    from meditone.hands.bed import acquire_background

    client = _client(lambda request: httpx.Response(404))
    bed = asyncio.run(acquire_background("zen-forest", SR, 12.0, client=client))
    assert bed.fallback
    assert bed.audio.shape == (12 * SR, 2)
    rms = float(np.sqrt(np.mean(bed.audio**2)))
    assert 0.0 < rms < 0.02


def test_connection_error_falls_back():
    from meditone.hands.bed import acquire_background

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    bed = asyncio.run(acquire_background("https://cdn.invalid/x.mp3", SR, 3.0, client=_client(refuse)))
    assert bed.fallback
    assert len(bed.audio) == 3 * SR


def test_undecodable_payload_falls_back():
    from meditone.hands.bed import acquire_background

    client = _client(lambda request: httpx.Response(200, content=b"not audio at all"))
    bed = asyncio.run(acquire_background("https://cdn.example/x.mp3", SR, 2.0, client=client))
    assert bed.fallback


def test_fetched_clip_is_looped_to_length():
    from meditone.hands.bed import acquire_background

    clip = np.full((4 * 8000, 1), 0.25)
    payload = _wav_bytes(clip, 8000)
    client = _client(lambda request: httpx.Response(200, content=payload))
    bed = asyncio.run(acquire_background("https://cdn.example/bed.wav", 8000, 10.0, client=client))
    assert not bed.fallback
    assert bed.audio.shape == (80000, 2)
    assert np.allclose(bed.audio, 0.25, atol=1e-3)


def test_local_file_background(tmp_path):
    from meditone.hands.bed import acquire_background

    path = tmp_path / "bed.wav"
    path.write_bytes(_wav_bytes(np.full((2000, 2), 0.1), 1000))
    bed = asyncio.run(acquire_background(str(path), 2000, 3.0))
    assert not bed.fallback
    assert bed.audio.shape == (6000, 2)


def test_missing_reference_uses_noise():
    from meditone.hands.bed import acquire_background

    bed = asyncio.run(acquire_background(None, SR, 1.0))
    assert bed.fallback
    assert bed.source == "pink-noise"


def test_stalled_fetch_hits_the_deadline():
    """A server that never finishes sending is abandoned after timeout_s."""
    import time

    from meditone.hands.bed import acquire_background

    async def stall(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(10.0)
        return httpx.Response(200, content=b"")

    t0 = time.monotonic()
    bed = asyncio.run(acquire_background("https://cdn.example/slow.mp3", SR, 2.0, timeout_s=0.2, client=_client(stall)))
    assert bed.fallback
    assert len(bed.audio) == 2 * SR
    assert time.monotonic() - t0 < 5.0
