"""
waveform_synth.py — Deterministic single-cycle waveform synthesis
──────────────────────────────────────────────────────────────
• Every algorithm is a pure function (rng, sample_count) -> ndarray
• SYNTHESIZERS maps WaveformType -> algorithm; no behavior on the enum
• generate() owns the random stream: numpy default_rng(seed), so equal
  (type, seed, sample_count) gives byte-identical output
• Output is loop-reconciled, peak-normalized and clipped to [-1, 1]
• Experimental composes 2–3 algorithms (base shapes plus the
  fractal / chaotic / spectral / folding / feedback-FM / layered family)
  with Dirichlet blend weights drawn from the same stream
"""

from typing import Callable, Dict, Union

import numpy as np

from audio_utils import clip_unit, normalize, smooth, smooth_loop_points
from wavetable_types import BASE_WAVEFORM_TYPES, WaveformType

Synthesizer = Callable[[np.random.Generator, int], np.ndarray]

TWO_PI = 2.0 * np.pi


def _phase(n: int) -> np.ndarray:
    return np.arange(n, dtype=np.float64) / n


def fold_wave(wave: np.ndarray, threshold: float) -> np.ndarray:
    """Reflect everything beyond ±threshold back inside, as often as needed."""
    t = float(threshold)
    period = 4.0 * t
    y = np.mod(wave + t, period)
    y = np.where(y > 2.0 * t, period - y, y)
    return y - t


# ============================================================
# 🎛️ Base shapes
# ============================================================

def synth_sine(rng: np.random.Generator, n: int) -> np.ndarray:
    phase = _phase(n)
    # subtle phase modulation half of the time
    if rng.random() < 0.5:
        depth = 0.05 + rng.random() * 0.1
        rate = 1 + int(rng.integers(3))
        phase = np.mod(phase + depth * np.sin(TWO_PI * phase * rate), 1.0)
    return np.sin(TWO_PI * phase)


def synth_triangle(rng: np.random.Generator, n: int) -> np.ndarray:
    asymmetry = 0.2 + rng.random() * 0.6 if rng.random() < 0.4 else 0.5
    phase = _phase(n)
    wave = np.where(
        phase < asymmetry,
        -1.0 + 2.0 * (phase / asymmetry),
        1.0 - 2.0 * ((phase - asymmetry) / (1.0 - asymmetry)),
    )
    if rng.random() < 0.3:
        wave = smooth(wave, 1 + int(rng.integers(3)))
    return wave


def synth_saw(rng: np.random.Generator, n: int) -> np.ndarray:
    phase = _phase(n)
    if rng.random() < 0.25:
        return 1.0 - 2.0 * phase
    return 2.0 * phase - 1.0


def synth_square(rng: np.random.Generator, n: int) -> np.ndarray:
    pulse_width = 0.3 + rng.random() * 0.4
    wave = np.where(_phase(n) < pulse_width, 1.0, -1.0)
    if rng.random() < 0.4:
        wave = smooth(wave, 1)
    return wave


def synth_noise(rng: np.random.Generator, n: int) -> np.ndarray:
    wave = rng.uniform(-1.0, 1.0, n)
    # 0 = white, 1 = pink-ish, 2 = darker
    for _ in range(int(rng.integers(3))):
        wave = smooth(wave, 1 + int(rng.integers(3)))
    return normalize(wave)


def synth_fm(rng: np.random.Generator, n: int) -> np.ndarray:
    phase = _phase(n)
    modulator_ratio = 1 + int(rng.integers(5))
    index = 0.5 + rng.random() * 4.5
    modulator = np.sin(TWO_PI * phase * modulator_ratio)
    return np.sin(TWO_PI * (phase + modulator * index))


def synth_additive(rng: np.random.Generator, n: int) -> np.ndarray:
    count = 3 + int(rng.integers(15))
    rolloff = int(rng.integers(3))
    harmonics = np.arange(1, count + 1, dtype=np.float64)

    if rolloff == 0:
        amps = 1.0 / harmonics
    elif rolloff == 1:
        amps = np.where(harmonics % 2 == 1, 1.0 / harmonics, 0.0)
    else:
        decay = 0.7 + rng.random(count) * 0.25
        amps = decay ** (harmonics - 1)
    amps = amps * (0.8 + rng.random(count) * 0.4)

    phase = _phase(n)
    wave = amps @ np.sin(TWO_PI * np.outer(harmonics, phase))
    return normalize(wave)


# vowel-like formant centres as a fraction of the cycle
_VOWELS = (
    (0.10, 0.25, 0.35),  # a
    (0.07, 0.30, 0.45),  # e
    (0.06, 0.35, 0.43),  # i
    (0.08, 0.15, 0.28),  # o
    (0.05, 0.12, 0.30),  # u
)


def synth_formant(rng: np.random.Generator, n: int) -> np.ndarray:
    count = 2 + int(rng.integers(2))
    vowel = _VOWELS[int(rng.integers(len(_VOWELS)))]
    freqs = np.array(vowel[:count]) * (0.9 + rng.random(count) * 0.2)
    amps = 0.7 + rng.random(count) * 0.6
    qs = 0.05 + rng.random(count) * 0.05

    phase = _phase(n)
    carrier = 2.0 * phase - 1.0 if rng.random() < 0.5 else np.sin(TWO_PI * phase)

    wave = np.zeros(n)
    for f, a, q in zip(freqs, amps, qs):
        resonance = np.sin(TWO_PI * phase / f)
        envelope = np.exp(-phase / q)
        wave += carrier * resonance * envelope * a

    return smooth(normalize(wave), 1 + int(rng.integers(2)))


# ============================================================
# 🧪 Experimental family
# ============================================================

def synth_fractal(rng: np.random.Generator, n: int) -> np.ndarray:
    wave = np.sin(TWO_PI * _phase(n))
    iterations = 3 + int(rng.integers(3))
    roughness = 0.2 + rng.random() * 0.6
    idx = np.arange(n)

    for _ in range(iterations):
        detail = np.zeros(n)
        for j in range(1, 5):
            detail += wave[(idx * j) % n] * roughness ** j
        wave = wave + detail * (0.7 / iterations)
    return normalize(wave)


def _lowpass_circular(wave: np.ndarray, half_width: int) -> np.ndarray:
    acc = np.zeros_like(wave)
    for off in range(-half_width, half_width + 1):
        acc += np.roll(wave, off)
    return acc / (2 * half_width + 1)


def synth_chaotic(rng: np.random.Generator, n: int) -> np.ndarray:
    wave = np.empty(n)
    system = int(rng.integers(3))

    if system == 0:
        # logistic map in its chaotic region
        r = 3.7 + rng.random() * 0.29
        x = rng.random()
        for i in range(n):
            for _ in range(10):
                x = r * x * (1.0 - x)
            wave[i] = 2.0 * x - 1.0
    elif system == 1:
        # Lorenz attractor, x projection
        x, y, z = rng.random(3) * 0.1
        a, b, c, dt = 10.0, 28.0, 8.0 / 3.0, 0.005
        for i in range(n):
            dx = a * (y - x) * dt
            dy = (x * (b - z) - y) * dt
            dz = (x * y - c * z) * dt
            x, y, z = x + dx, y + dy, z + dz
            wave[i] = x / 20.0
    else:
        # Hénon map
        a = 1.3 + rng.random() * 0.2
        b = 0.2 + rng.random() * 0.1
        x, y = rng.random(2) * 0.1
        for i in range(n):
            x, y = 1.0 - a * x * x + y, b * x
            wave[i] = x

    wave = np.clip(np.nan_to_num(wave), -1.0, 1.0)
    return normalize(_lowpass_circular(wave, 5))


def synth_spectral(rng: np.random.Generator, n: int) -> np.ndarray:
    half = n // 2
    bins = np.arange(half)

    low = bins < max(1, half // 8)
    profile_a = np.where(low, rng.random(half) ** 1.5, rng.random(half) ** 3.0 * 0.3)

    moduli = rng.integers(2, 5, size=half)
    profile_b = np.where(bins % moduli == 0, rng.random(half) ** 1.2, rng.random(half) ** 4.0 * 0.2)

    depth = rng.random()
    magnitude = profile_a * (1.0 - depth) + profile_b * depth
    phases = rng.random(half) * TWO_PI

    spectrum = np.zeros(half + 1, dtype=np.complex128)
    spectrum[1:half] = magnitude[1:] * np.exp(1j * phases[1:])
    return normalize(np.fft.irfft(spectrum, n=n))


def synth_fold(rng: np.random.Generator, n: int) -> np.ndarray:
    phase = _phase(n)
    base = int(rng.integers(3))
    if base == 0:
        wave = np.sin(TWO_PI * phase)
    elif base == 1:
        wave = 2.0 * (phase - np.floor(phase + 0.5))
    else:
        wave = np.where(phase < 0.5, 1.0, -1.0)

    wave = wave * (1.5 + rng.random() * 4.5)
    threshold = 0.8 + rng.random() * 0.4
    for _ in range(1 + int(rng.integers(3))):
        wave = fold_wave(wave, threshold)

    amount = 0.2 + rng.random() * 0.3
    wave = wave * (1.0 - amount) + (np.roll(wave, -1) + np.roll(wave, 1)) * (amount / 2.0)
    return normalize(wave)


def synth_feedback_fm(rng: np.random.Generator, n: int) -> np.ndarray:
    modulator_ratio = 0.5 + rng.random() * 4.5
    index = 1.0 + rng.random() * 8.0
    feedback = 0.1 + rng.random() * 0.8

    phase = _phase(n)
    wave = np.empty(n)
    last = 0.0
    for i in range(n):
        modulator = np.sin(TWO_PI * (phase[i] * modulator_ratio + last * feedback))
        last = np.sin(TWO_PI * (phase[i] + modulator * index))
        wave[i] = last

    if rng.random() < 0.5:
        drive = 0.1 + rng.random() * 0.3
        wave = wave + drive * np.sin(wave * TWO_PI)
    return normalize(wave)


def synth_layered(rng: np.random.Generator, n: int) -> np.ndarray:
    layers = 2 + int(rng.integers(3))
    wave = np.zeros(n)

    for _ in range(layers):
        count = 3 + int(rng.integers(13))
        amplitude = (0.7 + rng.random() * 0.6) / layers
        ratio = 1.0 + int(rng.integers(3)) * 0.5
        decay = 0.8 + rng.random() * 1.2
        offset = rng.random() * TWO_PI

        h = np.arange(1, count + 1, dtype=np.float64)
        amps = amplitude * h ** -decay
        even = h % 2 == 0
        amps[even] *= 0.2 + rng.random(int(even.sum())) * 0.8

        phase = _phase(n) * ratio
        wave += amps @ np.sin(TWO_PI * np.outer(h, phase) + np.outer(h * offset, np.ones(n)))

    if rng.random() < 0.5:
        wave = fold_wave(normalize(wave), 0.8 + rng.random() * 0.3)
    return normalize(wave)


EXPERIMENTAL_ALGORITHMS: Dict[str, Synthesizer] = {
    "fractal": synth_fractal,
    "chaotic": synth_chaotic,
    "spectral": synth_spectral,
    "fold": synth_fold,
    "feedback_fm": synth_feedback_fm,
    "layered": synth_layered,
}


def synth_experimental(rng: np.random.Generator, n: int) -> np.ndarray:
    """Weighted mix of 2–3 distinct algorithms; at least one experimental."""
    exp_names = sorted(EXPERIMENTAL_ALGORITHMS)
    base_names = [t.value for t in BASE_WAVEFORM_TYPES]
    pool = {**EXPERIMENTAL_ALGORITHMS, **{t.value: SYNTHESIZERS[t] for t in BASE_WAVEFORM_TYPES}}

    first = exp_names[int(rng.integers(len(exp_names)))]
    rest = [name for name in exp_names + base_names if name != first]
    extra = 1 + int(rng.integers(2))
    picked = [first] + list(rng.choice(rest, size=extra, replace=False))
    weights = rng.dirichlet(np.ones(len(picked)))

    wave = np.zeros(n)
    for name, weight in zip(picked, weights):
        wave += weight * normalize(pool[str(name)](rng, n))
    return normalize(wave)


SYNTHESIZERS: Dict[WaveformType, Synthesizer] = {
    WaveformType.SINE: synth_sine,
    WaveformType.TRIANGLE: synth_triangle,
    WaveformType.SAW: synth_saw,
    WaveformType.SQUARE: synth_square,
    WaveformType.NOISE: synth_noise,
    WaveformType.FM: synth_fm,
    WaveformType.ADDITIVE: synth_additive,
    WaveformType.FORMANT: synth_formant,
    WaveformType.EXPERIMENTAL: synth_experimental,
}


# ============================================================
# 🚀 Public API
# ============================================================

def synthesize(waveform_type: Union[WaveformType, str], rng: np.random.Generator, sample_count: int) -> np.ndarray:
    """Run one algorithm on a caller-owned stream and finish the cycle."""
    wave = SYNTHESIZERS[WaveformType(waveform_type)](rng, sample_count)
    return clip_unit(smooth_loop_points(normalize(wave)))


def generate(waveform_type: Union[WaveformType, str], seed: int, sample_count: int) -> np.ndarray:
    """One deterministic single-cycle waveform in [-1, 1]."""
    return synthesize(waveform_type, np.random.default_rng(seed), sample_count)


def pick_waveform_type(rng: np.random.Generator, experimental_probability: float) -> WaveformType:
    """Random base shape, replaced by Experimental with the given probability."""
    choice = BASE_WAVEFORM_TYPES[int(rng.integers(len(BASE_WAVEFORM_TYPES)))]
    if rng.random() < experimental_probability:
        return WaveformType.EXPERIMENTAL
    return choice


__all__ = [
    "SYNTHESIZERS",
    "EXPERIMENTAL_ALGORITHMS",
    "fold_wave",
    "synthesize",
    "generate",
    "pick_waveform_type",
]
