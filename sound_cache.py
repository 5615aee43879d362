"""
Sound File Cache — tracks candidate source samples in .soundscache.json.

• One cache per scan root; a persisted cache built for another root, with
  an unknown format_version, or with malformed records is rejected
  (CacheCorruptionError) and rebuilt by a fresh scan
• Record validity (exists, regular file, same size, same mtime_ns) is
  re-checked on every read and never stored as a flag
• Invalid records are evicted lazily, by replacing the mapping
• scan / invalidate / eviction swap the whole mapping under one lock
• Hit / miss / eviction counts go into a caller-owned CacheStats
"""

import json
import os
import stat
import tempfile
import time
import datetime
from dataclasses import dataclass, asdict, field
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple, Union

from config import AUDIO_EXTENSIONS, DEBUG, Settings
from errors.tablemorph_errors import CacheCorruptionError
from observability.logging_utils import log_event, log_timing, log_warning

CACHE_FORMAT_VERSION = 1
CACHE_FILENAME = ".soundscache.json"

PathLike = Union[str, Path]


def is_audio_file(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in AUDIO_EXTENSIONS


def human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


# ────────────────────────────────────────────────
# 📦 Records & stats
# ────────────────────────────────────────────────

@dataclass(frozen=True)
class SoundFileRecord:
    absolute_path: str
    relative_path: str
    filename: str
    size_bytes: int
    modified_ns: int

    @classmethod
    def from_stat(cls, absolute_path: str, root: str, st: os.stat_result) -> "SoundFileRecord":
        return cls(
            absolute_path=absolute_path,
            relative_path=os.path.relpath(absolute_path, root),
            filename=os.path.basename(absolute_path),
            size_bytes=int(st.st_size),
            modified_ns=int(st.st_mtime_ns),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "SoundFileRecord":
        try:
            return cls(
                absolute_path=str(data["absolute_path"]),
                relative_path=str(data["relative_path"]),
                filename=str(data["filename"]),
                size_bytes=int(data["size_bytes"]),
                modified_ns=int(data["modified_ns"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptionError(f"malformed record {data!r}: {e}") from e

    def to_dict(self) -> dict:
        return asdict(self)

    def is_valid(self) -> bool:
        """Still a regular file with identical size and mtime."""
        try:
            st = os.stat(self.absolute_path)
        except OSError:
            return False
        return (
            stat.S_ISREG(st.st_mode)
            and st.st_size == self.size_bytes
            and st.st_mtime_ns == self.modified_ns
        )


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record(self, hits: int = 0, misses: int = 0, evictions: int = 0) -> None:
        with self._lock:
            self.hits += hits
            self.misses += misses
            self.evictions += evictions

    def reset(self) -> None:
        with self._lock:
            self.hits = self.misses = self.evictions = 0

    def as_dict(self) -> dict:
        with self._lock:
            return {"hits": self.hits, "misses": self.misses, "evictions": self.evictions}


@dataclass(frozen=True)
class ScanOutcome:
    records: Dict[str, SoundFileRecord]
    directory_count: int
    total_bytes: int


# ────────────────────────────────────────────────
# 🔎 Directory walk
# ────────────────────────────────────────────────

def scan_directory(root: PathLike) -> ScanOutcome:
    """Recursive walk; unreadable directories and un-stat-able entries are logged and skipped."""
    root_str = os.path.abspath(str(root))
    records: Dict[str, SoundFileRecord] = {}
    directories = 0
    total = 0

    def _on_error(err: OSError) -> None:
        log_warning("directory unreadable, skipped", scope="cache", action="scan",
                    path=getattr(err, "filename", None), error=str(err))

    for dirpath, _dirnames, filenames in os.walk(root_str, onerror=_on_error):
        directories += 1
        for name in filenames:
            if not is_audio_file(name):
                continue
            full = os.path.join(dirpath, name)
            try:
                st = os.stat(full)
            except OSError as e:
                log_warning("entry not stat-able, skipped", scope="cache", action="scan",
                            path=full, error=str(e))
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            records[full] = SoundFileRecord.from_stat(full, root_str, st)
            total += st.st_size

    return ScanOutcome(records=records, directory_count=directories, total_bytes=total)


# ────────────────────────────────────────────────
# 🗂️ Cache
# ────────────────────────────────────────────────

class SoundFileCache:
    def __init__(self, root_dir: PathLike, cache_file: Optional[PathLike] = None):
        self.root_dir = os.path.abspath(str(root_dir))
        self.cache_file = Path(cache_file) if cache_file else Path(self.root_dir) / CACHE_FILENAME
        self._lock = Lock()
        self._records: Dict[str, SoundFileRecord] = {}
        self.directory_count = 0
        self.last_scan: Optional[float] = None

    # state is replaced wholesale; callers never see a half-built mapping
    def _replace(self, records: Dict[str, SoundFileRecord], directory_count: int,
                 last_scan: Optional[float]) -> None:
        with self._lock:
            self._records = dict(records)
            self.directory_count = directory_count
            self.last_scan = last_scan

    def _evict(self, keys: Iterable[str]) -> int:
        drop = set(keys)
        with self._lock:
            before = len(self._records)
            self._records = {k: v for k, v in self._records.items() if k not in drop}
            return before - len(self._records)

    @property
    def file_count(self) -> int:
        return len(self._records)

    @property
    def total_bytes(self) -> int:
        return sum(r.size_bytes for r in self._records.values())

    # ---------- scan ----------
    def scan(self) -> int:
        t0 = time.time()
        outcome = scan_directory(self.root_dir)
        self._replace(outcome.records, outcome.directory_count, time.time())
        log_timing("cache", "scan", t0, root=self.root_dir,
                   files=len(outcome.records), directories=outcome.directory_count)
        return len(outcome.records)

    # ---------- persistence ----------
    def store(self) -> Path:
        """Atomically write the cache artifact (temp file + os.replace)."""
        with self._lock:
            payload = {
                "format_version": CACHE_FORMAT_VERSION,
                "root": self.root_dir,
                "file_count": len(self._records),
                "directory_count": self.directory_count,
                "total_bytes": sum(r.size_bytes for r in self._records.values()),
                "last_scan": self.last_scan,
                "records": [r.to_dict() for r in self._records.values()],
            }

        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".soundscache.", suffix=".tmp", dir=self.cache_file.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.cache_file)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        return self.cache_file

    def load(self) -> bool:
        """Restore from the artifact. False if absent; CacheCorruptionError if unusable."""
        if not self.cache_file.exists():
            return False
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheCorruptionError(f"unparseable cache {self.cache_file}: {e}") from e
        except OSError as e:
            raise CacheCorruptionError(f"unreadable cache {self.cache_file}: {e}") from e

        if not isinstance(data, dict):
            raise CacheCorruptionError("cache root is not an object")
        if data.get("format_version") != CACHE_FORMAT_VERSION:
            raise CacheCorruptionError(f"unknown format_version {data.get('format_version')!r}")
        if data.get("root") != self.root_dir:
            raise CacheCorruptionError(f"cache built for {data.get('root')!r}, not {self.root_dir!r}")
        raw_records = data.get("records")
        if not isinstance(raw_records, list):
            raise CacheCorruptionError("records missing")

        records = {}
        for item in raw_records:
            if not isinstance(item, dict):
                raise CacheCorruptionError(f"malformed record {item!r}")
            rec = SoundFileRecord.from_dict(item)
            records[rec.absolute_path] = rec

        try:
            last_scan = float(data["last_scan"]) if data.get("last_scan") is not None else None
            directory_count = int(data.get("directory_count", 0))
        except (TypeError, ValueError) as e:
            raise CacheCorruptionError(f"bad counters: {e}") from e

        self._replace(records, directory_count, last_scan)
        return True

    # ---------- reads ----------
    def get(self, path: PathLike, stats: Optional[CacheStats] = None) -> Optional[SoundFileRecord]:
        key = os.path.abspath(str(path))
        record = self._records.get(key)
        if record is not None and not record.is_valid():
            if self._evict([key]) and stats is not None:
                stats.record(evictions=1)
            record = None

        if stats is not None:
            if record is None:
                stats.record(misses=1)
            else:
                stats.record(hits=1)
        return record

    def valid_records(self, stats: Optional[CacheStats] = None) -> List[SoundFileRecord]:
        snapshot = list(self._records.values())
        valid, stale = [], []
        for rec in snapshot:
            (valid if rec.is_valid() else stale).append(rec)
        if stale:
            evicted = self._evict(r.absolute_path for r in stale)
            if stats is not None:
                stats.record(evictions=evicted)
            if DEBUG:
                print(f"🧹 Evicted {evicted} stale sound records")
        return sorted(valid, key=lambda r: r.absolute_path)

    # ---------- lifecycle ----------
    def invalidate(self, stats: Optional[CacheStats] = None) -> None:
        self._replace({}, 0, None)
        if stats is not None:
            stats.reset()
        self._discard_artifact()
        log_event("INFO", "sound cache invalidated", scope="cache", action="invalidate",
                  cache_file=str(self.cache_file))

    def is_stale(self, ttl_minutes: int) -> bool:
        if self.last_scan is None:
            return True
        return (time.time() - self.last_scan) > ttl_minutes * 60

    def _discard_artifact(self) -> None:
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log_warning("cache artifact could not be removed", scope="cache", action="discard",
                        cache_file=str(self.cache_file), error=str(e))

    def load_or_scan(self, ttl_minutes: int, stats: Optional[CacheStats] = None) -> List[SoundFileRecord]:
        """Fresh in-memory or persisted cache → hit; otherwise rescan and persist."""
        fresh = self.last_scan is not None and not self.is_stale(ttl_minutes)
        if not fresh:
            try:
                fresh = self.load() and not self.is_stale(ttl_minutes)
            except CacheCorruptionError as e:
                log_warning("cache artifact rejected, rescanning", scope="cache", action="load",
                            cache_file=str(self.cache_file), error=str(e))
                self._discard_artifact()
                fresh = False

        if fresh:
            if stats is not None:
                stats.record(hits=1)
            return self.valid_records(stats)

        if stats is not None:
            stats.record(misses=1)
        self.scan()
        try:
            self.store()
        except OSError as e:
            log_warning("cache artifact not persisted", scope="cache", action="store",
                        cache_file=str(self.cache_file), error=str(e))
        return self.valid_records(stats)

    # ---------- reporting ----------
    def summary(self) -> dict:
        last = (
            datetime.datetime.fromtimestamp(self.last_scan, datetime.timezone.utc).isoformat()
            if self.last_scan is not None else None
        )
        total = self.total_bytes
        return {
            "root": self.root_dir,
            "cache_file": str(self.cache_file),
            "cache_file_exists": self.cache_file.exists(),
            "file_count": self.file_count,
            "directory_count": self.directory_count,
            "total_bytes": total,
            "total_size": human_size(total),
            "last_scan": last,
            "format_version": CACHE_FORMAT_VERSION,
        }


# ────────────────────────────────────────────────
# 🎯 Candidate discovery
# ────────────────────────────────────────────────

def discover_sound_files(
    settings: Settings,
    cache: Optional[SoundFileCache] = None,
    stats: Optional[CacheStats] = None,
) -> List[Path]:
    """Sorted candidate paths under settings.sounds_dir, through the cache when enabled."""
    if settings.cache_enabled and cache is not None:
        records = cache.load_or_scan(settings.cache_lifetime_minutes, stats)
        return [Path(r.absolute_path) for r in records]

    if stats is not None:
        stats.record(misses=1)
    outcome = scan_directory(settings.sounds_dir)
    return [Path(p) for p in sorted(outcome.records)]


def summarize_cache(cache: SoundFileCache, stats: Optional[CacheStats] = None) -> dict:
    summary = cache.summary()
    if stats is not None:
        summary["stats"] = stats.as_dict()
    return summary


__all__ = [
    "CACHE_FORMAT_VERSION",
    "SoundFileRecord",
    "CacheStats",
    "ScanOutcome",
    "scan_directory",
    "SoundFileCache",
    "discover_sound_files",
    "summarize_cache",
]
