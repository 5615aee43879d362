import os
import struct

import numpy as np
import pytest
import soundfile as sf

import wavetable_writer
from errors.tablemorph_errors import WavetableFormatError, WavetableWriteError
from wavetable_types import Wavetable, WavetableKind
from wavetable_writer import (
    FLAG_INT16,
    MARKER,
    WavetableWriter,
    decode_wavetable,
    read_wavetable,
)


@pytest.fixture
def table():
    rng = np.random.default_rng(0)
    return Wavetable(frames=rng.uniform(-1, 1, (4, 256)), kind=WavetableKind.WAVETABLE, seed=0)


def test_header_layout(tmp_path, table):
    path = WavetableWriter().write(table, tmp_path / "t.wt").path
    data = path.read_bytes()
    marker, samples, frames, flags = struct.unpack("<4sIHH", data[:12])
    assert (marker, samples, frames, flags) == (MARKER, 256, 4, 0)
    assert len(data) == 12 + 4 * 256 * 4


def test_read_back_matches(tmp_path, table):
    path = WavetableWriter().write(table, tmp_path / "nested" / "t.wt").path
    assert np.array_equal(read_wavetable(path), table.frames)


def test_failed_replace_leaves_no_partial_file(tmp_path, table, monkeypatch):
    dest = tmp_path / "t.wt"
    writer = WavetableWriter()
    writer.write(table, dest)
    original = dest.read_bytes()

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(wavetable_writer.os, "replace", boom)
    other = Wavetable(frames=np.zeros((2, 256)), kind=WavetableKind.WAVETABLE, seed=1)
    with pytest.raises(WavetableWriteError):
        writer.write(other, dest)

    assert dest.read_bytes() == original
    assert [p.name for p in tmp_path.iterdir()] == ["t.wt"]


def test_write_error_is_an_oserror(tmp_path, table, monkeypatch):
    def boom(src, dst):
        raise PermissionError("read-only")

    monkeypatch.setattr(wavetable_writer.os, "replace", boom)
    with pytest.raises(OSError):
        WavetableWriter().write(table, tmp_path / "t.wt")


def test_mirror_failure_is_reported_not_raised(tmp_path, table):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    result = WavetableWriter(external_dir=blocker).write(table, tmp_path / "out" / "t.wt")

    assert result.path.exists()
    assert result.mirror_path is None
    assert result.mirror_error


def test_mirror_success(tmp_path, table):
    result = WavetableWriter(external_dir=tmp_path / "vital").write(table, tmp_path / "t.wt")
    assert result.mirror_error is None
    assert result.mirror_path.read_bytes() == result.path.read_bytes()


def test_rejects_bad_marker():
    with pytest.raises(WavetableFormatError):
        decode_wavetable(b"RIFF" + b"\x00" * 20)


def test_rejects_int16_flag():
    data = struct.pack("<4sIHH", MARKER, 4, 1, FLAG_INT16) + b"\x00" * 8
    with pytest.raises(WavetableFormatError):
        decode_wavetable(data)


def test_rejects_truncated_payload(tmp_path, table):
    path = WavetableWriter().write(table, tmp_path / "t.wt").path
    with open(path, "r+b") as f:
        f.truncate(os.path.getsize(path) - 4)
    with pytest.raises(WavetableFormatError):
        read_wavetable(path)


def test_wav_export(tmp_path, table):
    writer = WavetableWriter(file_format="wav")
    path = writer.write(table, tmp_path / "t.wav").path
    data, sr = sf.read(str(path), dtype="float32")
    assert sr == wavetable_writer.WAV_SAMPLE_RATE
    assert np.array_equal(data.reshape(4, 256), table.frames)
