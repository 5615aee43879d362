"""
Configuration for the TableMorph wavetable service.

• Loads .env from the project root (python-dotenv)
• Exposes env-driven defaults as module constants
• Builds one immutable Settings value at process start; every generator,
  writer and cache receives it explicitly instead of reading globals
• validate_settings() is the only place ranges are checked
"""

import os
import platform
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from errors.tablemorph_errors import ConfigurationError
from wavetable_types import GenerationRequest, WaveformType

# ────────────────────────────────────────────────
# 🔧 Load .env from project root
# ────────────────────────────────────────────────

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


# ────────────────────────────────────────────────
# 📁 Core Directories (local)
# ────────────────────────────────────────────────

SOUNDS_DIR = Path(os.getenv("SOUNDS_DIR", BASE_DIR / "sounds"))
WAVETABLES_DIR = Path(os.getenv("WAVETABLES_DIR", BASE_DIR / "wavetables"))
SINGLECYCLE_DIR = Path(os.getenv("SINGLECYCLE_DIR", BASE_DIR / "singlecycles"))
MORPHS_DIR = Path(os.getenv("MORPHS_DIR", BASE_DIR / "morphs"))
LOGS_DIR = BASE_DIR / "logs"

SOUND_CACHE_FILE = Path(os.getenv("SOUND_CACHE_FILE", BASE_DIR / ".soundscache.json"))

AUDIO_EXTENSIONS = (".wav", ".aif", ".aiff", ".flac", ".ogg", ".mp3")

# ────────────────────────────────────────────────
# 🎚️ Generator Defaults
# ────────────────────────────────────────────────

WAVETABLE_FRAMES = int(os.getenv("TABLEMORPH_FRAMES", 64))
WAVETABLE_SAMPLES = int(os.getenv("TABLEMORPH_SAMPLES", 2048))
MODULATION_PROBABILITY = float(os.getenv("MODULATION_PROBABILITY", 0.5))
SINGLECYCLE_SAMPLES = int(os.getenv("SINGLECYCLE_SAMPLES", 2048))
EXPERIMENTAL_PROBABILITY = float(os.getenv("EXPERIMENTAL_PROBABILITY", 0.1))
MAX_MORPH_SAMPLES = int(os.getenv("MAX_MORPH_SAMPLES", 10))
FULL_SAMPLE_PROBABILITY = float(os.getenv("FULL_SAMPLE_PROBABILITY", 0.3))

# Binary .wt layout by default; "wav" writes 32-bit float WAV instead
WAVETABLE_FORMAT = os.getenv("WAVETABLE_FORMAT", "wt").lower()

# ────────────────────────────────────────────────
# 🗂️ Sound file cache
# ────────────────────────────────────────────────

CACHE_ENABLED = _env_bool("CACHE_ENABLED", "true")
CACHE_LIFETIME_MINUTES = int(os.getenv("CACHE_LIFETIME_MINUTES", 60))

# ────────────────────────────────────────────────
# 🎹 External synth integration (Vital wavetable folder)
# ────────────────────────────────────────────────


def default_external_directory() -> str:
    """OS-dependent default; empty where no default is known."""
    system = platform.system().lower()
    if system == "darwin":
        return str(Path.home() / "Music" / "Vital" / "User" / "Wavetables")
    if system == "windows":
        appdata = os.getenv("APPDATA", "")
        return str(Path(appdata) / "Vital" / "wavetables") if appdata else ""
    return ""


SAVE_TO_EXTERNAL_SYNTH = _env_bool("SAVE_TO_EXTERNAL_SYNTH", "false")
EXTERNAL_SYNTH_DIR = os.getenv("EXTERNAL_SYNTH_DIR", default_external_directory())

# ────────────────────────────────────────────────
# 📊 Logging / Debug
# ────────────────────────────────────────────────

DEBUG = _env_bool("DEBUG", "false")

# ────────────────────────────────────────────────
# Limits enforced at the boundary
# ────────────────────────────────────────────────

MIN_SAMPLES = 256
MAX_SAMPLES = 8192
MAX_FRAMES = 256
MAX_MORPH_SAMPLES_LIMIT = 20
MAX_CACHE_LIFETIME_MINUTES = 1440


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


# ────────────────────────────────────────────────
# 🧱 Immutable settings
# ────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    frame_count: int = WAVETABLE_FRAMES
    sample_count: int = WAVETABLE_SAMPLES
    modulation_probability: float = MODULATION_PROBABILITY
    single_cycle_samples: int = SINGLECYCLE_SAMPLES
    experimental_probability: float = EXPERIMENTAL_PROBABILITY
    max_morph_samples: int = MAX_MORPH_SAMPLES
    full_sample_probability: float = FULL_SAMPLE_PROBABILITY
    cache_enabled: bool = CACHE_ENABLED
    cache_lifetime_minutes: int = CACHE_LIFETIME_MINUTES
    save_to_external_synth: bool = SAVE_TO_EXTERNAL_SYNTH
    external_directory: str = EXTERNAL_SYNTH_DIR
    wavetable_format: str = WAVETABLE_FORMAT
    sounds_dir: Path = SOUNDS_DIR
    wavetables_dir: Path = WAVETABLES_DIR
    singlecycle_dir: Path = SINGLECYCLE_DIR
    morphs_dir: Path = MORPHS_DIR
    cache_file: Path = SOUND_CACHE_FILE

    def generation_request(
        self,
        *,
        seed: Optional[int] = None,
        waveform_type: Optional[WaveformType] = None,
        single_cycle: bool = False,
        frame_count: Optional[int] = None,
        sample_count: Optional[int] = None,
    ) -> GenerationRequest:
        """Freeze the generation parameters for one invocation."""
        if single_cycle:
            frames = 1
            samples = sample_count or self.single_cycle_samples
        else:
            frames = frame_count or self.frame_count
            samples = sample_count or self.sample_count
        return GenerationRequest(
            frame_count=frames,
            sample_count=samples,
            modulation_probability=self.modulation_probability,
            experimental_probability=self.experimental_probability,
            max_morph_samples=self.max_morph_samples,
            full_sample_probability=self.full_sample_probability,
            seed=seed,
            waveform_type=waveform_type,
        )

    @property
    def external_target(self) -> Optional[Path]:
        """Mirror directory for finished wavetables, or None when disabled."""
        if not self.save_to_external_synth or not self.external_directory:
            return None
        return Path(self.external_directory)


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """Build the process-wide Settings from env defaults plus overrides."""
    settings = Settings(**dict(overrides or {}))
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    """Reject out-of-range values; the generation core never re-checks them."""
    errors: list[str] = []

    for name in ("sample_count", "single_cycle_samples"):
        value = getattr(settings, name)
        if not (MIN_SAMPLES <= value <= MAX_SAMPLES) or not is_power_of_two(value):
            errors.append(f"{name} must be a power of two in [{MIN_SAMPLES}, {MAX_SAMPLES}], got {value}")

    if not (1 <= settings.frame_count <= MAX_FRAMES):
        errors.append(f"frame_count must be in [1, {MAX_FRAMES}], got {settings.frame_count}")

    for name in ("modulation_probability", "experimental_probability", "full_sample_probability"):
        value = getattr(settings, name)
        if not (0.0 <= value <= 1.0):
            errors.append(f"{name} must be in [0, 1], got {value}")

    if not (1 <= settings.max_morph_samples <= MAX_MORPH_SAMPLES_LIMIT):
        errors.append(
            f"max_morph_samples must be in [1, {MAX_MORPH_SAMPLES_LIMIT}], got {settings.max_morph_samples}"
        )

    if not (1 <= settings.cache_lifetime_minutes <= MAX_CACHE_LIFETIME_MINUTES):
        errors.append(
            f"cache_lifetime_minutes must be in [1, {MAX_CACHE_LIFETIME_MINUTES}], "
            f"got {settings.cache_lifetime_minutes}"
        )

    if settings.wavetable_format not in ("wt", "wav"):
        errors.append(f"wavetable_format must be 'wt' or 'wav', got {settings.wavetable_format!r}")

    if settings.save_to_external_synth and not settings.external_directory:
        errors.append("save_to_external_synth is enabled but external_directory is empty")

    if errors:
        raise ConfigurationError("; ".join(errors))


def ensure_directories(settings: Settings) -> None:
    for d in (settings.sounds_dir, settings.wavetables_dir, settings.singlecycle_dir, settings.morphs_dir):
        Path(d).mkdir(parents=True, exist_ok=True)


def summarize_config(settings: Settings) -> Dict[str, Any]:
    summary = {k: (str(v) if isinstance(v, Path) else v) for k, v in asdict(settings).items()}
    summary["env_path"] = str(ENV_PATH)
    summary["debug"] = DEBUG
    return summary


if __name__ == "__main__":
    print("🔧 Config Loaded:")
    for k, v in summarize_config(load_settings()).items():
        print("•", k, "=", v)
