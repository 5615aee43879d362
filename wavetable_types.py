"""
wavetable_types.py — Shared value types for the generation core
──────────────────────────────────────────────────────────────
• WaveformType / MorphType are plain enums; behavior lives in the
  SYNTHESIZERS and COMBINERS lookup tables of their modules
• GenerationRequest is frozen per invocation
• Wavetable freezes its frame array on construction
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import numpy as np


class WaveformType(str, Enum):
    SINE = "sine"
    TRIANGLE = "triangle"
    SAW = "saw"
    SQUARE = "square"
    NOISE = "noise"
    FM = "fm"
    ADDITIVE = "additive"
    FORMANT = "formant"
    EXPERIMENTAL = "experimental"


BASE_WAVEFORM_TYPES = tuple(t for t in WaveformType if t is not WaveformType.EXPERIMENTAL)


class MorphType(str, Enum):
    BLEND = "blend"
    INTERPOLATE = "interpolate"
    CONCATENATE = "concatenate"
    SPECTRAL = "spectral"
    FOLD = "fold"
    HARMONIC = "harmonic"
    ADDITIVE = "additive"


class WavetableKind(str, Enum):
    WAVETABLE = "wavetable"
    SINGLE_CYCLE = "single_cycle"
    MORPH = "morph"


@dataclass(frozen=True)
class GenerationRequest:
    frame_count: int
    sample_count: int
    modulation_probability: float = 0.5
    experimental_probability: float = 0.1
    max_morph_samples: int = 10
    full_sample_probability: float = 0.3
    seed: Optional[int] = None
    waveform_type: Optional[WaveformType] = None


@dataclass(frozen=True)
class Wavetable:
    """Frames × samples float32 array plus provenance. Read-only after construction."""

    frames: np.ndarray
    kind: WavetableKind
    seed: int
    waveform_type: Optional[WaveformType] = None
    morph_type: Optional[MorphType] = None
    sources: tuple = field(default_factory=tuple)

    def __post_init__(self) -> None:
        arr = np.array(self.frames, dtype=np.float32, copy=True)
        if arr.ndim == 1:
            arr = arr.reshape(1, -1)
        if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError(f"Wavetable frames must be a non-empty 2-D array, got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "frames", arr)

    @property
    def frame_count(self) -> int:
        return int(self.frames.shape[0])

    @property
    def sample_count(self) -> int:
        return int(self.frames.shape[1])

    @property
    def label(self) -> str:
        """Waveform or morph type name used in output filenames."""
        kind: Union[WaveformType, MorphType, None] = self.morph_type or self.waveform_type
        return kind.value if kind is not None else "mixed"

    def describe(self) -> dict:
        return {
            "kind": self.kind.value,
            "frame_count": self.frame_count,
            "sample_count": self.sample_count,
            "seed": self.seed,
            "waveform_type": self.waveform_type.value if self.waveform_type else None,
            "morph_type": self.morph_type.value if self.morph_type else None,
            "sources": list(self.sources),
        }
