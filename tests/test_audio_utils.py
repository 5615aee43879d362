import numpy as np
import pytest

from audio_utils import decode_audio, describe, fit_length, loop_gap, normalize, resample, smooth, smooth_loop_points
from errors.tablemorph_errors import DecodeError


def test_decode_mixes_down_and_normalizes(tmp_path, tone_writer):
    path = tone_writer(tmp_path / "stereo.wav", channels=2)
    samples = decode_audio(path)
    assert samples.ndim == 1
    assert np.max(np.abs(samples)) == pytest.approx(1.0)


def test_decode_garbage_raises(tmp_path):
    bogus = tmp_path / "broken.wav"
    bogus.write_bytes(b"RIFF\x00\x00\x00\x00WAVEnope")
    with pytest.raises(DecodeError) as info:
        decode_audio(bogus)
    assert info.value.path == str(bogus)


def test_normalize_leaves_silence_alone():
    silent = np.zeros(16)
    assert np.array_equal(normalize(silent), silent)
    assert np.max(np.abs(normalize(np.array([0.0, 0.25, -0.5])))) == 1.0


def test_smooth_loop_points_closes_the_gap():
    ramp = np.linspace(-1.0, 1.0, 1024)
    assert loop_gap(ramp) == pytest.approx(2.0)
    fixed = smooth_loop_points(ramp)
    assert loop_gap(fixed) < 0.2
    assert np.max(np.abs(fixed)) <= 1.0


def test_smooth_preserves_constant():
    flat = np.full(64, 0.3)
    np.testing.assert_allclose(smooth(flat, 4), flat)


def test_resample_endpoints():
    out = resample(np.array([0.0, 1.0]), 5)
    np.testing.assert_allclose(out, [0.0, 0.25, 0.5, 0.75, 1.0])


def test_fit_length_truncates_and_tiles():
    assert fit_length(np.arange(10.0), 4).tolist() == [0, 1, 2, 3]
    assert fit_length(np.array([1.0, 2.0]), 5).tolist() == [1, 2, 1, 2, 1]


def test_describe():
    info = describe(np.array([0.5, -0.5]))
    assert info["peak"] == 0.5
    assert info["dc_offset"] == 0.0
    assert describe(np.array([])) == {"error": "empty_wave"}
