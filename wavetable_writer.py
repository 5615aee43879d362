"""
wavetable_writer.py — Binary wavetable serialization
──────────────────────────────────────────────────────────────
Layout (little-endian):

    offset  size      field
    0       4         marker b"vawt"
    4       4         uint32 samples per frame
    8       2         uint16 frame count
    10      2         uint16 flags (0 = 32-bit IEEE float samples)
    12      4·F·S     float32 samples, frame-major

• Writes are atomic: temp file in the destination directory → fsync →
  os.replace, so readers never observe a partial table
• Optional mirror into the external synth folder is best-effort; its
  failure is reported in WriteResult.mirror_error only
• file_format="wav" emits the frames back to back as a mono 32-bit float
  WAV (the layout Vital-style importers read)
"""

import os
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np
import soundfile as sf

from errors.tablemorph_errors import WavetableFormatError, WavetableWriteError
from observability.logging_utils import log_event, log_warning
from wavetable_types import Wavetable

MARKER = b"vawt"
HEADER = struct.Struct("<4sIHH")
FLAG_FLOAT32 = 0x0000
FLAG_INT16 = 0x0004
WAV_SAMPLE_RATE = 44100
MAX_FRAMES = 0xFFFF

PathLike = Union[str, Path]


@dataclass(frozen=True)
class WriteResult:
    path: Path
    mirror_path: Optional[Path] = None
    mirror_error: Optional[str] = None


# ────────────────────────────────────────────────
# Encoding
# ────────────────────────────────────────────────

def encode_wavetable(wavetable: Wavetable) -> bytes:
    if wavetable.frame_count > MAX_FRAMES:
        raise WavetableFormatError(f"frame count {wavetable.frame_count} exceeds {MAX_FRAMES}")
    header = HEADER.pack(MARKER, wavetable.sample_count, wavetable.frame_count, FLAG_FLOAT32)
    return header + wavetable.frames.astype("<f4").tobytes()


def decode_wavetable(data: bytes) -> np.ndarray:
    """Inverse of encode_wavetable; returns a (frames, samples) float32 array."""
    if len(data) < HEADER.size:
        raise WavetableFormatError(f"file too short for header ({len(data)} bytes)")
    marker, sample_count, frame_count, flags = HEADER.unpack_from(data, 0)
    if marker != MARKER:
        raise WavetableFormatError(f"bad marker {marker!r}")
    if flags != FLAG_FLOAT32:
        raise WavetableFormatError(f"unsupported flags 0x{flags:04x}")

    expected = frame_count * sample_count * 4
    payload = data[HEADER.size:]
    if len(payload) != expected:
        raise WavetableFormatError(f"payload is {len(payload)} bytes, header promises {expected}")

    frames = np.frombuffer(payload, dtype="<f4").astype(np.float32)
    return frames.reshape(frame_count, sample_count)


def read_wavetable(path: PathLike) -> np.ndarray:
    return decode_wavetable(Path(path).read_bytes())


# ────────────────────────────────────────────────
# Writer
# ────────────────────────────────────────────────

def _remove_quietly(path: Optional[str]) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class WavetableWriter:
    def __init__(self, external_dir: Optional[PathLike] = None, file_format: str = "wt"):
        if file_format not in ("wt", "wav"):
            raise ValueError(f"file_format must be 'wt' or 'wav', got {file_format!r}")
        self.external_dir = Path(external_dir) if external_dir else None
        self.file_format = file_format

    @property
    def extension(self) -> str:
        return self.file_format

    def _encode_into(self, wavetable: Wavetable, fh: BinaryIO) -> None:
        if self.file_format == "wav":
            sf.write(fh, wavetable.frames.reshape(-1), WAV_SAMPLE_RATE, format="WAV", subtype="FLOAT")
        else:
            fh.write(encode_wavetable(wavetable))

    def _write_atomic(self, wavetable: Wavetable, destination: Path) -> None:
        tmp: Optional[str] = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
            with os.fdopen(fd, "wb") as fh:
                self._encode_into(wavetable, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, destination)
        except (OSError, RuntimeError) as e:
            _remove_quietly(tmp)
            raise WavetableWriteError(f"could not write {destination}: {e}") from e

    def write(self, wavetable: Wavetable, destination: PathLike) -> WriteResult:
        dest = Path(destination)
        self._write_atomic(wavetable, dest)
        log_event(
            "DEBUG",
            "wavetable written",
            scope="writer",
            action="write",
            path=str(dest),
            frames=wavetable.frame_count,
            samples=wavetable.sample_count,
        )

        if self.external_dir is None:
            return WriteResult(path=dest)

        mirror = self.external_dir / dest.name
        try:
            self._write_atomic(wavetable, mirror)
        except WavetableWriteError as e:
            log_warning("mirror copy failed", scope="writer", action="mirror", path=str(mirror), error=str(e))
            return WriteResult(path=dest, mirror_path=None, mirror_error=str(e))

        return WriteResult(path=dest, mirror_path=mirror)


__all__ = [
    "MARKER",
    "FLAG_FLOAT32",
    "FLAG_INT16",
    "WriteResult",
    "encode_wavetable",
    "decode_wavetable",
    "read_wavetable",
    "WavetableWriter",
]
