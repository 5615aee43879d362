"""
morph_engine.py — Turn real audio samples into wavetable frames
──────────────────────────────────────────────────────────────
Pipeline per morph call:
  1. no sources → InsufficientInputError
  2. seeded subset of at most max_morph_samples files
  3. decode → one segment of exactly sample_count samples per file
       • full-sample mode (full_sample_probability): whole file resampled
       • otherwise a random window; short files are loop-extended
       • undecodable files are logged and dropped
  4. COMBINERS[morph_type](segments, frame_count, sample_count, seed)
  5. every frame loop-reconciled and peak-normalized on its own

Combiners are pure functions; the engine owns decoding and selection.
"""

import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from audio_utils import decode_audio, fit_length, normalize, resample, smooth_loop_points
from errors.tablemorph_errors import DecodeError, InsufficientInputError
from observability.logging_utils import log_event, log_timing, log_warning
from waveform_synth import fold_wave, generate, pick_waveform_type
from wavetable_builder import interpolate_keyframes, keyframe_positions, resolve_seed
from wavetable_types import GenerationRequest, MorphType, WaveformType, Wavetable, WavetableKind

PathLike = Union[str, Path]
Decoder = Callable[[PathLike], np.ndarray]
Combiner = Callable[[List[np.ndarray], int, int, int], np.ndarray]

_SEED_SPACE = 2 ** 63


# ============================================================
# ✂️ Segment extraction
# ============================================================

def extract_segment(
    samples: np.ndarray,
    sample_count: int,
    rng: np.random.Generator,
    full_sample_probability: float,
) -> np.ndarray:
    """Exactly sample_count samples; short input is loop-extended, never zero-padded."""
    if rng.random() < full_sample_probability:
        return normalize(resample(samples, sample_count))
    if samples.size <= sample_count:
        return normalize(fit_length(samples, sample_count))
    start = int(rng.integers(samples.size - sample_count + 1))
    return normalize(samples[start:start + sample_count])


def _frame_positions(frame_count: int) -> np.ndarray:
    if frame_count == 1:
        return np.zeros((1, 1))
    return np.linspace(0.0, 1.0, frame_count).reshape(-1, 1)


def _keyed(segments: List[np.ndarray], frame_count: int) -> Tuple[List[np.ndarray], List[int]]:
    """Segments to place at evenly spaced frames; thinned evenly when there are more than frames."""
    if len(segments) > frame_count:
        pick = np.round(np.linspace(0, len(segments) - 1, frame_count)).astype(int)
        segments = [segments[i] for i in pick]
    return segments, keyframe_positions(frame_count, len(segments))


# ============================================================
# 🧬 Combiners
# ============================================================

def combine_blend(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    t = _frame_positions(frame_count)
    return (1.0 - t) * segments[0] + t * segments[-1]


def combine_interpolate(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    keys, positions = _keyed(segments, frame_count)
    return interpolate_keyframes(keys, positions, frame_count)


def combine_concatenate(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    frames = np.empty((frame_count, sample_count))
    for f in range(frame_count):
        if f < len(segments):
            frames[f] = segments[f]
        else:
            # slots past the last segment get synthesized cycles
            wtype = pick_waveform_type(rng, 0.0)
            frames[f] = generate(wtype, int(rng.integers(_SEED_SPACE)), sample_count)
    return frames


def combine_spectral(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    keys, positions = _keyed(segments, frame_count)
    spectra = [np.fft.rfft(k) for k in keys]
    mags = [np.abs(s) for s in spectra]
    phases = [np.angle(s) for s in spectra]

    frames = np.empty((frame_count, sample_count))
    if len(keys) == 1:
        frames[:] = np.fft.irfft(spectra[0], n=sample_count)
        return frames

    for j in range(len(positions) - 1):
        lo, hi = positions[j], positions[j + 1]
        # shortest-arc phase difference in (-pi, pi]
        dphi = np.angle(np.exp(1j * (phases[j + 1] - phases[j])))
        for f in range(lo, hi + 1):
            a = (f - lo) / (hi - lo)
            mag = (1.0 - a) * mags[j] + a * mags[j + 1]
            phase = phases[j] + a * dphi
            frames[f] = np.fft.irfft(mag * np.exp(1j * phase), n=sample_count)
    return frames


def combine_fold(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    threshold = 0.5 + rng.random() * 0.4
    t = _frame_positions(frame_count)
    base = combine_blend(segments, frame_count, sample_count, seed)
    return fold_wave(base * (1.0 + 3.0 * t), threshold) / threshold


def combine_harmonic(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    harmonics = np.arange(1, 2 + int(rng.integers(5)), dtype=np.float64)
    amount = 0.1 + 0.8 * _frame_positions(frame_count)
    base = combine_blend(segments, frame_count, sample_count, seed)

    phase = np.arange(sample_count) / sample_count
    modulated = np.mod(phase + base * amount * 0.2, 1.0)
    series = np.zeros_like(base)
    for h in harmonics:
        series += np.sin(2.0 * np.pi * h * modulated) / h
    return (1.0 - amount) * base + amount * series


def combine_additive(segments: List[np.ndarray], frame_count: int, sample_count: int, seed: int) -> np.ndarray:
    """Harmonic-series base with the blended sources layered on, deeper toward the last frame."""
    rng = np.random.default_rng(seed)
    base = generate(WaveformType.ADDITIVE, int(rng.integers(_SEED_SPACE)), sample_count)
    t = _frame_positions(frame_count)
    return base + 0.5 * t * combine_blend(segments, frame_count, sample_count, seed)


COMBINERS: Dict[MorphType, Combiner] = {
    MorphType.BLEND: combine_blend,
    MorphType.INTERPOLATE: combine_interpolate,
    MorphType.CONCATENATE: combine_concatenate,
    MorphType.SPECTRAL: combine_spectral,
    MorphType.FOLD: combine_fold,
    MorphType.HARMONIC: combine_harmonic,
    MorphType.ADDITIVE: combine_additive,
}


# ============================================================
# 🎛️ Engine
# ============================================================

class SampleMorphEngine:
    def __init__(self, decoder: Optional[Decoder] = None):
        self.decoder = decoder or decode_audio

    def select_sources(self, source_files: Sequence[PathLike], limit: int,
                       rng: np.random.Generator) -> List[PathLike]:
        files = list(source_files)
        if len(files) <= limit:
            return files
        picked = sorted(int(i) for i in rng.permutation(len(files))[:limit])
        return [files[i] for i in picked]

    def load_segments(self, files: Sequence[PathLike], request: GenerationRequest,
                      rng: np.random.Generator) -> Tuple[List[np.ndarray], List[str]]:
        segments, used = [], []
        for path in files:
            try:
                samples = self.decoder(path)
            except DecodeError as e:
                log_warning("source skipped", scope="morph", action="decode", path=str(path), error=e.reason)
                continue
            segments.append(
                extract_segment(samples, request.sample_count, rng, request.full_sample_probability)
            )
            used.append(Path(path).name)
        return segments, used

    def morph(self, morph_type: Union[MorphType, str], source_files: Sequence[PathLike],
              request: GenerationRequest) -> Wavetable:
        morph_type = MorphType(morph_type)
        if not source_files:
            raise InsufficientInputError(f"{morph_type.value} morph needs at least one source file")

        t0 = time.time()
        seed = resolve_seed(request.seed)
        rng = np.random.default_rng(seed)

        files = self.select_sources(source_files, request.max_morph_samples, rng)
        segments, used = self.load_segments(files, request, rng)
        if not segments:
            label = str(files[0]) if len(files) == 1 else f"{len(files)} source files"
            raise DecodeError(label, "no source file could be decoded")

        combine_seed = int(rng.integers(_SEED_SPACE))
        raw = COMBINERS[morph_type](segments, request.frame_count, request.sample_count, combine_seed)
        frames = np.stack([smooth_loop_points(frame) for frame in raw])

        log_timing("morph", morph_type.value, t0, seed=seed, sources=len(used), dropped=len(files) - len(used))
        log_event("DEBUG", "morph sources", scope="morph", action="sources", files=used)

        return Wavetable(
            frames=frames,
            kind=WavetableKind.MORPH,
            seed=seed,
            morph_type=morph_type,
            sources=tuple(used),
        )


__all__ = [
    "COMBINERS",
    "extract_segment",
    "SampleMorphEngine",
]
