import numpy as np
import pytest

from audio_utils import normalize, resample
from errors.tablemorph_errors import DecodeError, InsufficientInputError
from morph_engine import COMBINERS, SampleMorphEngine, combine_additive, extract_segment
from waveform_synth import generate
from wavetable_types import GenerationRequest, MorphType, WaveformType, WavetableKind


def _request(**overrides) -> GenerationRequest:
    base = dict(frame_count=8, sample_count=256, full_sample_probability=0.0, seed=5)
    base.update(overrides)
    return GenerationRequest(**base)


def _fake_decoder(table):
    def decode(path):
        value = table[str(path)]
        if isinstance(value, Exception):
            raise value
        return value
    return decode


@pytest.fixture
def tones(sounds_dir, tone_writer):
    return [
        tone_writer(sounds_dir / f"tone_{freq}.wav", freq=freq)
        for freq in (110.0, 220.0, 330.0, 523.0)
    ]


def test_no_sources_is_insufficient_input():
    with pytest.raises(InsufficientInputError):
        SampleMorphEngine().morph(MorphType.BLEND, [], _request())


def test_every_morph_type_has_a_combiner():
    assert set(COMBINERS) == set(MorphType)


@pytest.mark.parametrize("mtype", list(MorphType))
def test_morph_frames_in_range(tones, mtype):
    table = SampleMorphEngine().morph(mtype, tones, _request())
    assert table.kind is WavetableKind.MORPH
    assert table.morph_type is mtype
    assert table.frames.shape == (8, 256)
    assert np.all(np.isfinite(table.frames))
    assert np.max(np.abs(table.frames)) <= 1.0
    assert len(table.sources) == len(tones)


@pytest.mark.parametrize("mtype", list(MorphType))
def test_morph_is_deterministic(tones, mtype):
    engine = SampleMorphEngine()
    a = engine.morph(mtype, tones, _request(full_sample_probability=0.5))
    b = engine.morph(mtype, tones, _request(full_sample_probability=0.5))
    assert a.frames.tobytes() == b.frames.tobytes()


def test_single_source_blend_repeats_one_frame():
    wave = np.sin(np.linspace(0, 20 * np.pi, 4000))
    engine = SampleMorphEngine(decoder=_fake_decoder({"a.wav": wave}))
    table = engine.morph("blend", ["a.wav"], _request())
    for frame in table.frames[1:]:
        np.testing.assert_allclose(frame, table.frames[0], atol=1e-6)


def test_undecodable_sources_are_skipped():
    wave = np.cos(np.linspace(0, 8 * np.pi, 1000))
    engine = SampleMorphEngine(decoder=_fake_decoder({
        "good.wav": wave,
        "bad.wav": DecodeError("bad.wav", "truncated header"),
        "also_good.wav": -wave,
    }))
    table = engine.morph(MorphType.INTERPOLATE, ["good.wav", "bad.wav", "also_good.wav"], _request())
    assert table.sources == ("good.wav", "also_good.wav")


def test_all_sources_undecodable_raises_decode_error():
    engine = SampleMorphEngine(decoder=_fake_decoder({"x.wav": DecodeError("x.wav", "empty")}))
    with pytest.raises(DecodeError):
        engine.morph(MorphType.FOLD, ["x.wav"], _request())


def test_source_subset_respects_limit(tones):
    table = SampleMorphEngine().morph(MorphType.SPECTRAL, tones, _request(max_morph_samples=2))
    assert len(table.sources) == 2
    assert set(table.sources) <= {p.name for p in tones}


def test_concatenate_fills_missing_frames():
    wave = np.sin(np.linspace(0, 2 * np.pi, 512, endpoint=False))
    engine = SampleMorphEngine(decoder=_fake_decoder({"one.wav": wave}))
    table = engine.morph(MorphType.CONCATENATE, ["one.wav"], _request())
    assert table.frames.shape == (8, 256)
    assert not np.allclose(table.frames[0], table.frames[-1])


def test_short_input_is_loop_extended():
    rng = np.random.default_rng(0)
    segment = extract_segment(np.array([0.0, 1.0, -1.0]), 8, rng, full_sample_probability=0.0)
    assert segment.tolist() == [0.0, 1.0, -1.0, 0.0, 1.0, -1.0, 0.0, 1.0]


def test_full_sample_mode_resamples_whole_input():
    samples = np.linspace(-0.5, 0.5, 1000)
    segment = extract_segment(samples, 8, np.random.default_rng(0), full_sample_probability=1.0)
    np.testing.assert_allclose(segment, normalize(resample(samples, 8)))


def test_window_is_taken_from_inside_the_input():
    samples = np.arange(1, 101, dtype=np.float64)
    segment = extract_segment(samples, 16, np.random.default_rng(3), full_sample_probability=0.0)
    assert segment.size == 16
    # a contiguous, increasing window scaled by its own peak
    assert np.all(np.diff(segment) > 0)
    assert segment[-1] == pytest.approx(1.0)


def test_additive_layers_sources_over_harmonic_base():
    segments = [np.sin(np.linspace(0, 2 * np.pi, 64, endpoint=False)), np.linspace(-1, 1, 64)]
    frames = combine_additive(segments, 5, 64, seed=21)

    base = generate(WaveformType.ADDITIVE, int(np.random.default_rng(21).integers(2 ** 63)), 64)
    np.testing.assert_allclose(frames[0], base)
    np.testing.assert_allclose(frames[-1] - frames[0], 0.5 * segments[-1])
