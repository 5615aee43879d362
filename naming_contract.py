"""Naming helpers for generated wavetable files."""

from __future__ import annotations

import datetime
import re
import uuid
from pathlib import Path
from typing import Dict, Final, Optional

_SLUG_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")

_OUTPUT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<kind>[a-z0-9_]+)\.(?P<label>[a-z0-9_]+)\.(?P<ts>[0-9]{8}_[0-9]{6})"
    r"\.s(?P<seed>[0-9]+)\.(?P<tag>[0-9a-f]{6,})\.(?P<index>[0-9]{3,})\.(?P<ext>wt|wav)$"
)

ALLOWED_KINDS: Final[frozenset] = frozenset({"wavetable", "single_cycle", "morph"})
ALLOWED_EXTENSIONS: Final[frozenset] = frozenset({"wt", "wav"})


# -------------------------------------------------
# Slug utilities
# -------------------------------------------------

def slugify(text: str) -> str:
    """Convert text to a filesystem-safe slug."""
    cleaned = text.strip().lower()
    cleaned = _SLUG_PATTERN.sub("_", cleaned)
    cleaned = cleaned.strip("_")
    return cleaned or "unnamed"


def timestamp_tag(now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.strftime("%Y%m%d_%H%M%S")


def new_output_tag() -> str:
    """Short random tag shared by every file of one generate call or batch."""
    return uuid.uuid4().hex[:8]


# -------------------------------------------------
# Filename builders
# -------------------------------------------------

def validate_output_kind(kind: str) -> None:
    if kind not in ALLOWED_KINDS:
        raise ValueError(f"Invalid output kind '{kind}'. Allowed: {', '.join(sorted(ALLOWED_KINDS))}")


def build_output_filename(
    kind: str,
    label: str,
    seed: int,
    index: int = 0,
    ext: str = "wt",
    ts: Optional[str] = None,
    tag: Optional[str] = None,
) -> str:
    """
    <kind>.<label>.<yyyymmdd_hhmmss>.s<seed>.<tag>.<index>.<ext>

    The tag separates invocations that share a seed and a timestamp; the
    index separates items inside one batch. A missing tag is minted here.
    """
    validate_output_kind(kind)
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Invalid extension '{ext}'")
    return f"{kind}.{slugify(label)}.{ts or timestamp_tag()}.s{int(seed)}.{tag or new_output_tag()}.{int(index):03d}.{ext}"


def build_output_path(directory: Path, kind: str, label: str, seed: int, index: int = 0,
                      ext: str = "wt", ts: Optional[str] = None, tag: Optional[str] = None) -> Path:
    return Path(directory) / build_output_filename(kind, label, seed, index=index, ext=ext, ts=ts, tag=tag)


# -------------------------------------------------
# Parsing helpers
# -------------------------------------------------

def parse_output_filename(filename: str) -> Dict[str, str]:
    """Split a generated filename back into its fields; kind 'unknown' if it does not match."""
    name = Path(filename).name
    match = _OUTPUT_PATTERN.match(name)
    if not match:
        return {"kind": "unknown", "label": name}
    return match.groupdict()


__all__ = [
    "slugify",
    "timestamp_tag",
    "new_output_tag",
    "validate_output_kind",
    "build_output_filename",
    "build_output_path",
    "parse_output_filename",
]
