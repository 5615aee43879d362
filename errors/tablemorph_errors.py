"""Unified TableMorph error hierarchy.

All failure modes of the generation core live here so the synthesis,
morph, cache and writer modules can raise them without importing each
other. Nothing in this module depends on third-party packages, which keeps
it importable from the CLI, the FastAPI routes and the tests alike.
"""

from __future__ import annotations


class TableMorphError(Exception):
    """Base class for all TableMorph errors."""


class DecodeError(TableMorphError):
    """Raised when a source sample is unreadable or corrupt."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not decode '{path}': {reason}")
        self.path = path
        self.reason = reason


class InsufficientInputError(TableMorphError):
    """Raised when a morph call has no usable source files."""


class WavetableWriteError(TableMorphError, OSError):
    """Raised when a wavetable cannot be written to its destination."""


class CacheCorruptionError(TableMorphError):
    """Raised when a persisted sound cache is unreadable or built for another root."""


class ConfigurationError(TableMorphError, ValueError):
    """Raised when generator settings are out of range."""


class WavetableFormatError(TableMorphError):
    """Raised when a file does not follow the binary wavetable layout."""


_HTTP_STATUS = (
    (InsufficientInputError, 400),
    (ConfigurationError, 400),
    (DecodeError, 422),
    (WavetableWriteError, 500),
    (CacheCorruptionError, 500),
    (WavetableFormatError, 500),
)


def http_status_for(exc: BaseException) -> int:
    """Status code the HTTP layer reports for a core failure."""
    for cls, status in _HTTP_STATUS:
        if isinstance(exc, cls):
            return status
    return 500
