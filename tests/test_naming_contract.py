import datetime

import pytest

from naming_contract import (
    build_output_filename,
    build_output_path,
    parse_output_filename,
    slugify,
    new_output_tag,
    timestamp_tag,
)


def test_slugify():
    assert slugify("  Feedback FM!! ") == "feedback_fm"
    assert slugify("***") == "unnamed"


def test_timestamp_tag_format():
    when = datetime.datetime(2024, 3, 9, 7, 5, 1, tzinfo=datetime.timezone.utc)
    assert timestamp_tag(when) == "20240309_070501"


def test_filename_round_trip():
    name = build_output_filename("morph", "spectral", 42, index=7, ext="wav", ts="20240101_000000",
                                 tag="a1b2c3d4")
    assert name == "morph.spectral.20240101_000000.s42.a1b2c3d4.007.wav"
    assert parse_output_filename(name) == {
        "kind": "morph",
        "label": "spectral",
        "ts": "20240101_000000",
        "seed": "42",
        "tag": "a1b2c3d4",
        "index": "007",
        "ext": "wav",
    }


def test_build_output_path(tmp_path):
    path = build_output_path(tmp_path, "single_cycle", "sine", 1, ts="20240101_000000")
    assert path.parent == tmp_path
    assert path.suffix == ".wt"


def test_invalid_kind_and_extension():
    with pytest.raises(ValueError):
        build_output_filename("sample", "x", 1)
    with pytest.raises(ValueError):
        build_output_filename("wavetable", "x", 1, ext="flac")


def test_foreign_filename_is_unknown():
    assert parse_output_filename("/tmp/my_patch.wt")["kind"] == "unknown"


def test_untagged_names_differ_per_call():
    first = build_output_filename("wavetable", "sine", 5, ts="20240101_000000")
    second = build_output_filename("wavetable", "sine", 5, ts="20240101_000000")
    assert first != second
    assert parse_output_filename(first)["kind"] == "wavetable"
    assert len(new_output_tag()) == 8
