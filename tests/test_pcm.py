"""MEDITONE PCM Tests: decoding, Lanczos-3 resampling and chunk stitching."""

from __future__ import annotations

import math
import struct

import numpy as np
import pytest


# ── Kernel ───────────────────────────────────────────────


def test_lanczos_kernel_shape():
    """Kernel is 1 at 0, crosses zero at integers, vanishes from |x| = 3."""
    from meditone.ear.pcm import lanczos3

    values = lanczos3(np.array([0.0, 1.0, 2.0, 3.0, -3.0, 3.5]))
    assert values[0] == pytest.approx(1.0)
    assert values[1] == pytest.approx(0.0, abs=1e-12)
    assert values[2] == pytest.approx(0.0, abs=1e-12)
    assert np.all(values[3:] == 0.0)


# ── Resampling ───────────────────────────────────────────


def test_resample_same_rate_is_identity():
    """Resampling to the same rate returns the buffer untouched."""
    from meditone.ear.pcm import resample_lanczos

    x = np.random.default_rng(1).uniform(-1, 1, 1000)
    assert resample_lanczos(x, 24000, 24000) is x
    # Within the 1 Hz tolerance counts as the same rate
    assert resample_lanczos(x, 24000, 24000.5) is x


@pytest.mark.parametrize(("src", "dst", "n"), [(24000, 44100, 1000), (44100, 16000, 4410), (24000, 8000, 777)])
def test_resample_length(src, dst, n):
    """Output length is ceil(n / (src / dst))."""
    from meditone.ear.pcm import resample_lanczos

    out = resample_lanczos(np.zeros(n), src, dst)
    assert len(out) == math.ceil(n / (src / dst))


def test_resample_preserves_low_frequency_sine():
    """A 100 Hz tone survives 8 kHz -> 16 kHz conversion."""
    from meditone.ear.pcm import resample_lanczos

    src_sr, dst_sr = 8000, 16000
    t_src = np.arange(8000) / src_sr
    out = resample_lanczos(np.sin(2 * np.pi * 100 * t_src), src_sr, dst_sr)
    t_dst = np.arange(len(out)) / dst_sr
    expected = np.sin(2 * np.pi * 100 * t_dst)
    interior = slice(100, len(out) - 100)
    assert np.max(np.abs(out[interior] - expected[interior])) < 0.02


def test_resample_multichannel():
    from meditone.ear.pcm import resample_lanczos

    stereo = np.zeros((500, 2))
    stereo[:, 0] = 0.5
    out = resample_lanczos(stereo, 22050, 44100)
    assert out.shape == (1000, 2)
    assert np.allclose(out[:, 1], 0.0)


# ── Decoding ─────────────────────────────────────────────


def test_pcm16_scaling():
    from meditone.ear.pcm import pcm16_to_float

    data = struct.pack("<4h", 0, 16384, -32768, 32767)
    assert np.allclose(pcm16_to_float(data), [0.0, 0.5, -1.0, 32767 / 32768])


def test_odd_byte_count_truncates_last_sample():
    """A dangling byte is dropped, not an error."""
    from meditone.ear.pcm import pcm16_to_float

    data = struct.pack("<2h", 100, -100) + b"\x7f"
    out = pcm16_to_float(data)
    assert len(out) == 2


def test_unaligned_buffer_decodes():
    """Slices starting at an odd address are copied before decoding."""
    from meditone.ear.pcm import pcm16_to_float

    payload = bytearray(b"\x00" + struct.pack("<3h", 1000, 2000, 3000))
    view = memoryview(payload)[1:]
    assert np.allclose(pcm16_to_float(view) * 32768, [1000, 2000, 3000])


def test_decode_pcm_resamples_and_freezes():
    from meditone.ear.pcm import decode_pcm

    data = struct.pack("<2400h", *([1000] * 2400))
    narration = decode_pcm(data, target_rate=48000, source_rate=24000)
    assert narration.sample_rate == 48000
    assert len(narration.samples) == 4800
    assert narration.duration_s == pytest.approx(0.1)
    with pytest.raises(ValueError):
        narration.samples[0] = 1.0


def test_empty_narration_flag():
    from meditone.ear.pcm import decode_pcm

    assert decode_pcm(b"", 16000).is_empty
    assert decode_pcm(b"\x01", 16000).is_empty


# ── Stitching ────────────────────────────────────────────


def test_stitch_chunks_overlaps_seams():
    """Two 1000-sample chunks with a 30 ms seam at 8 kHz lose 240 samples."""
    from meditone.ear.pcm import stitch_chunks

    chunk = struct.pack("<1000h", *([8192] * 1000))  # 0.25 full scale
    narration = stitch_chunks([chunk, chunk], target_rate=8000, source_rate=8000, crossfade_ms=30)
    assert len(narration.samples) == 2000 - 240
    # Equal-sum crossfade keeps a constant signal constant across the seam
    assert np.allclose(narration.samples, 0.25)


def test_stitch_single_chunk_passthrough():
    from meditone.ear.pcm import stitch_chunks

    chunk = struct.pack("<10h", *range(10))
    narration = stitch_chunks([chunk], target_rate=8000, source_rate=8000)
    assert np.allclose(narration.samples * 32768, np.arange(10))
