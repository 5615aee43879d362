"""
audio_utils.py — Decoding & Single-Cycle DSP Utilities
──────────────────────────────────────────────────────────────
• decode_audio(): soundfile first, pydub (ffmpeg) fallback for mp3/ogg
  variants libsndfile cannot open; always mono float64 peak-normalized
• Loop-point reconciliation so a cycle wraps without an audible step
• Circular smoothing, linear resampling, loop-extension fitting
• No module-level state; every helper returns a new array
"""

from pathlib import Path
from typing import Union

import numpy as np
import soundfile as sf

from config import DEBUG
from errors.tablemorph_errors import DecodeError

PathLike = Union[str, Path]

_SILENCE_FLOOR = 1e-5


# ============================================================
# 🎧 Decoding
# ============================================================

def _to_mono(data: np.ndarray) -> np.ndarray:
    if data.ndim == 2:
        return data.mean(axis=1)
    return data


def _decode_with_pydub(path: str) -> np.ndarray:
    # pydub pulls in audioop/ffmpeg; only loaded when libsndfile gives up
    from pydub import AudioSegment

    clip = AudioSegment.from_file(path)
    raw = np.array(clip.get_array_of_samples(), dtype=np.float64)
    if clip.channels > 1:
        raw = raw.reshape(-1, clip.channels)
    full_scale = float(1 << (8 * clip.sample_width - 1))
    return _to_mono(raw) / full_scale


def decode_audio(path: PathLike) -> np.ndarray:
    """Decode any supported file to normalized mono samples; DecodeError on failure."""
    p = str(path)
    try:
        data, _sr = sf.read(p, dtype="float64", always_2d=False)
        samples = _to_mono(np.asarray(data, dtype=np.float64))
    except (sf.LibsndfileError, RuntimeError, TypeError, ValueError) as sf_err:
        if DEBUG:
            print(f"⚠️ soundfile could not open {p} ({sf_err}); trying pydub")
        try:
            samples = _decode_with_pydub(p)
        except Exception as e:
            raise DecodeError(p, f"{type(e).__name__}: {e}") from e

    if samples.size == 0:
        raise DecodeError(p, "no audio frames")
    if not np.all(np.isfinite(samples)):
        raise DecodeError(p, "non-finite samples")

    return normalize(samples)


# ============================================================
# 🎚️ Level
# ============================================================

def normalize(wave: np.ndarray) -> np.ndarray:
    """Peak-normalize to 1.0; near-silent input is returned unchanged."""
    wave = np.asarray(wave, dtype=np.float64)
    peak = float(np.max(np.abs(wave))) if wave.size else 0.0
    if peak < _SILENCE_FLOOR:
        return wave.copy()
    return wave / peak


def clip_unit(wave: np.ndarray) -> np.ndarray:
    return np.clip(wave, -1.0, 1.0)


# ============================================================
# 🔁 Loop points & smoothing
# ============================================================

def smooth(wave: np.ndarray, window: int) -> np.ndarray:
    """Triangular-weighted moving average that wraps around the cycle."""
    wave = np.asarray(wave, dtype=np.float64)
    if window < 1 or wave.size < 3:
        return wave.copy()
    offsets = np.arange(-window, window + 1)
    weights = 1.0 - np.abs(offsets) / (window + 1)
    out = np.zeros_like(wave)
    for off, w in zip(offsets, weights):
        out += w * np.roll(wave, -off)
    return out / weights.sum()


def smooth_loop_points(wave: np.ndarray) -> np.ndarray:
    """
    Crossfade the tail of the cycle toward its first sample.

    The last ~1% of samples receive a linear ramp of the start/end gap, so
    the wrap from the final sample back to the first becomes a small step
    of roughly gap / (window + 1). Output is normalized and clipped.
    """
    wave = np.asarray(wave, dtype=np.float64).copy()
    n = wave.size
    if n < 3:
        return clip_unit(wave)

    window = min(n - 1, max(2, n // 100))
    gap = wave[0] - wave[-1]
    ramp = np.arange(1, window + 1, dtype=np.float64) / (window + 1)
    wave[n - window:] += gap * ramp
    return clip_unit(normalize(wave))


# ============================================================
# 📏 Length handling
# ============================================================

def resample(wave: np.ndarray, target_length: int) -> np.ndarray:
    """Linear resample of a whole sample onto target_length points."""
    wave = np.asarray(wave, dtype=np.float64)
    if wave.size == target_length:
        return wave.copy()
    if wave.size == 1:
        return np.full(target_length, wave[0])
    src = np.linspace(0.0, 1.0, wave.size)
    dst = np.linspace(0.0, 1.0, target_length)
    return np.interp(dst, src, wave)


def fit_length(wave: np.ndarray, target_length: int) -> np.ndarray:
    """Loop-extend short input by tiling, truncate long input."""
    wave = np.asarray(wave, dtype=np.float64)
    if wave.size >= target_length:
        return wave[:target_length].copy()
    return np.resize(wave, target_length)


def loop_gap(wave: np.ndarray) -> float:
    """Absolute step between the last and first sample."""
    return float(abs(wave[0] - wave[-1]))


# ============================================================
# 🧪 Diagnostics
# ============================================================

def describe(wave: np.ndarray) -> dict:
    wave = np.asarray(wave, dtype=np.float64)
    if wave.size == 0:
        return {"error": "empty_wave"}
    return {
        "samples": int(wave.size),
        "peak": round(float(np.max(np.abs(wave))), 6),
        "rms": round(float(np.sqrt(np.mean(wave ** 2))), 6),
        "dc_offset": round(float(np.mean(wave)), 6),
        "loop_gap": round(loop_gap(wave), 6),
    }


if __name__ == "__main__":
    print("🎚️ audio_utils — decode, normalize, loop-point reconciliation.")
