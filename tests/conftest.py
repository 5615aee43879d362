# tests/conftest.py
import sys
from pathlib import Path

# Import from the real project root, not from an installed copy.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import numpy as np
import pytest
import soundfile as sf

from config import load_settings
from wavetable_types import GenerationRequest

SR = 44100


def write_tone(path: Path, seconds: float = 0.1, freq: float = 220.0, channels: int = 1) -> Path:
    """Write a short sine (optionally multi-channel) as 16-bit PCM."""
    path.parent.mkdir(parents=True, exist_ok=True)
    t = np.arange(int(SR * seconds)) / SR
    tone = 0.5 * np.sin(2 * np.pi * freq * t)
    data = np.stack([tone] * channels, axis=1) if channels > 1 else tone
    sf.write(str(path), data, SR, subtype="PCM_16")
    return path


@pytest.fixture
def tone_writer():
    return write_tone


@pytest.fixture
def sounds_dir(tmp_path: Path) -> Path:
    d = tmp_path / "sounds"
    d.mkdir()
    return d


@pytest.fixture
def settings(tmp_path: Path, sounds_dir: Path):
    return load_settings({
        "frame_count": 8,
        "sample_count": 256,
        "single_cycle_samples": 256,
        "sounds_dir": sounds_dir,
        "wavetables_dir": tmp_path / "wavetables",
        "singlecycle_dir": tmp_path / "singlecycles",
        "morphs_dir": tmp_path / "morphs",
        "cache_file": tmp_path / ".soundscache.json",
        "save_to_external_synth": False,
        "wavetable_format": "wt",
        "cache_enabled": True,
        "cache_lifetime_minutes": 60,
    })


@pytest.fixture
def small_request() -> GenerationRequest:
    return GenerationRequest(
        frame_count=8,
        sample_count=256,
        modulation_probability=0.5,
        experimental_probability=0.1,
        max_morph_samples=10,
        full_sample_probability=0.3,
        seed=123,
    )
