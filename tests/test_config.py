import dataclasses

import pytest

from config import ensure_directories, is_power_of_two, load_settings, summarize_config
from errors.tablemorph_errors import ConfigurationError
from wavetable_types import WaveformType


def test_power_of_two():
    assert is_power_of_two(256)
    assert is_power_of_two(8192)
    assert not is_power_of_two(0)
    assert not is_power_of_two(1000)


@pytest.mark.parametrize("overrides", [
    {"sample_count": 1000},
    {"sample_count": 128},
    {"single_cycle_samples": 16384},
    {"frame_count": 0},
    {"frame_count": 257},
    {"modulation_probability": 1.5},
    {"experimental_probability": -0.1},
    {"max_morph_samples": 0},
    {"max_morph_samples": 21},
    {"cache_lifetime_minutes": 0},
    {"cache_lifetime_minutes": 1441},
    {"wavetable_format": "mp3"},
    {"save_to_external_synth": True, "external_directory": ""},
])
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigurationError):
        load_settings(overrides)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        load_settings({"frame_count": -3})


def test_settings_are_frozen(settings):
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.frame_count = 2


def test_generation_request_defaults(settings):
    req = settings.generation_request(seed=3, waveform_type=WaveformType.SAW)
    assert (req.frame_count, req.sample_count) == (8, 256)
    assert req.seed == 3
    assert req.waveform_type is WaveformType.SAW


def test_generation_request_single_cycle(settings):
    req = settings.generation_request(single_cycle=True, sample_count=512)
    assert req.frame_count == 1
    assert req.sample_count == 512


def test_external_target(settings, tmp_path):
    assert settings.external_target is None
    enabled = dataclasses.replace(settings, save_to_external_synth=True, external_directory=str(tmp_path / "vital"))
    assert enabled.external_target == tmp_path / "vital"


def test_ensure_directories(settings):
    ensure_directories(settings)
    for d in (settings.wavetables_dir, settings.singlecycle_dir, settings.morphs_dir):
        assert d.is_dir()


def test_summary_is_plain_data(settings):
    summary = summarize_config(settings)
    assert summary["sounds_dir"] == str(settings.sounds_dir)
    assert "env_path" in summary
