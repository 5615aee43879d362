"""
wavetable_builder.py — Multi-frame and single-cycle wavetable assembly
──────────────────────────────────────────────────────────────
• One seed stream per table: keyframe types, keyframe seeds and the
  modulation parameters are all drawn from default_rng(seed)
• 2–4 keyframes sit at evenly spaced frame indices; frames in between
  are linear interpolations of their neighbours
• Modulation parameters are drawn once per table and scaled by frame
  position, so consecutive frames stay related when a synth sweeps them
• seed=None → derived from wall-clock time (resolve_seed)
"""

import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from audio_utils import smooth_loop_points
from waveform_synth import generate, pick_waveform_type, synthesize
from wavetable_types import GenerationRequest, Wavetable, WavetableKind, WaveformType

_SEED_SPACE = 2 ** 63


def resolve_seed(seed: Optional[int]) -> int:
    if seed is not None:
        return int(seed)
    return time.time_ns() % _SEED_SPACE


# ────────────────────────────────────────────────
# Inter-frame modulation
# ────────────────────────────────────────────────

@dataclass(frozen=True)
class FrameModulation:
    mode: str  # "harmonic" | "phase"
    harmonic: int
    amount: float
    offset: float
    max_shift: float

    @classmethod
    def draw(cls, rng: np.random.Generator) -> "FrameModulation":
        return cls(
            mode="harmonic" if rng.random() < 0.5 else "phase",
            harmonic=2 + int(rng.integers(7)),
            amount=0.1 + rng.random() * 0.4,
            offset=rng.random(),
            max_shift=0.05 + rng.random() * 0.2,
        )

    def apply(self, frame: np.ndarray, position: float) -> np.ndarray:
        """Perturb one frame; position in [0, 1] scales the depth."""
        n = frame.size
        if self.mode == "harmonic":
            phase = np.arange(n, dtype=np.float64) / n
            partial = np.sin(2.0 * np.pi * (self.harmonic * phase + self.offset))
            return frame + self.amount * position * partial
        shift = int(round(self.max_shift * position * n))
        return np.roll(frame, shift)


def keyframe_positions(frame_count: int, key_count: int) -> List[int]:
    if frame_count == 1:
        return [0]
    raw = np.linspace(0, frame_count - 1, num=min(key_count, frame_count))
    return sorted(set(int(round(p)) for p in raw))


def interpolate_keyframes(keys: List[np.ndarray], positions: List[int], frame_count: int) -> np.ndarray:
    """Place keys at positions and fill every other frame by linear interpolation."""
    sample_count = keys[0].size
    frames = np.empty((frame_count, sample_count), dtype=np.float64)
    if len(keys) == 1:
        frames[:] = keys[0]
        return frames

    for j in range(len(positions) - 1):
        lo, hi = positions[j], positions[j + 1]
        span = hi - lo
        for f in range(lo, hi + 1):
            alpha = (f - lo) / span
            frames[f] = (1.0 - alpha) * keys[j] + alpha * keys[j + 1]
    return frames


# ────────────────────────────────────────────────
# Builders
# ────────────────────────────────────────────────

def build_random(request: GenerationRequest) -> Wavetable:
    seed = resolve_seed(request.seed)
    rng = np.random.default_rng(seed)
    frame_count, sample_count = request.frame_count, request.sample_count

    positions = keyframe_positions(frame_count, 2 + int(rng.integers(3)))
    keys = []
    for _ in positions:
        wtype = request.waveform_type or pick_waveform_type(rng, request.experimental_probability)
        key_seed = int(rng.integers(_SEED_SPACE))
        keys.append(generate(wtype, key_seed, sample_count))

    frames = interpolate_keyframes(keys, positions, frame_count)

    modulation = FrameModulation.draw(rng)
    modulated = rng.random(frame_count) < request.modulation_probability
    denom = max(1, frame_count - 1)
    for f in range(frame_count):
        frame = frames[f]
        if modulated[f]:
            frame = modulation.apply(frame, f / denom)
        frames[f] = smooth_loop_points(frame)

    return Wavetable(
        frames=frames,
        kind=WavetableKind.WAVETABLE,
        seed=seed,
        waveform_type=request.waveform_type,
    )


def build_single_cycle(request: GenerationRequest) -> Wavetable:
    """One frame; non-experimental types are swapped for Experimental with experimental_probability."""
    seed = resolve_seed(request.seed)
    rng = np.random.default_rng(seed)

    wtype = request.waveform_type
    if wtype is None:
        wtype = pick_waveform_type(rng, request.experimental_probability)
    elif wtype is not WaveformType.EXPERIMENTAL and rng.random() < request.experimental_probability:
        wtype = WaveformType.EXPERIMENTAL

    wave = synthesize(wtype, rng, request.sample_count)
    return Wavetable(
        frames=wave.reshape(1, -1),
        kind=WavetableKind.SINGLE_CYCLE,
        seed=seed,
        waveform_type=wtype,
    )


__all__ = [
    "resolve_seed",
    "FrameModulation",
    "keyframe_positions",
    "interpolate_keyframes",
    "build_random",
    "build_single_cycle",
]
