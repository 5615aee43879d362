import json
import os
import threading
import time

import pytest

from errors.tablemorph_errors import CacheCorruptionError
from sound_cache import (
    CACHE_FORMAT_VERSION,
    CacheStats,
    SoundFileCache,
    discover_sound_files,
    scan_directory,
)


@pytest.fixture
def populated(sounds_dir, tone_writer):
    tone_writer(sounds_dir / "a.wav")
    tone_writer(sounds_dir / "sub" / "b.WAV")
    tone_writer(sounds_dir / "sub" / "deeper" / "c.flac")
    (sounds_dir / "notes.txt").write_text("hello")
    (sounds_dir / "sub" / "cover.png").write_bytes(b"\x89PNG")
    return sounds_dir


def test_scan_counts_only_audio(populated, tmp_path):
    cache = SoundFileCache(populated, tmp_path / "c.json")
    assert cache.scan() == 3
    assert cache.file_count == 3
    assert cache.directory_count == 3
    assert cache.total_bytes == sum(r.size_bytes for r in cache.valid_records())
    assert {r.filename for r in cache.valid_records()} == {"a.wav", "b.WAV", "c.flac"}


def test_dangling_symlink_is_skipped(populated, tmp_path):
    os.symlink(populated / "missing.wav", populated / "ghost.wav")
    assert len(scan_directory(populated).records) == 3


def test_truncated_file_is_evicted(populated, tmp_path):
    cache = SoundFileCache(populated, tmp_path / "c.json")
    cache.scan()
    target = populated / "a.wav"
    record = cache.get(target)
    assert record is not None and record.is_valid()

    with open(target, "r+b") as f:
        f.truncate(100)

    stats = CacheStats()
    assert record.is_valid() is False
    assert cache.get(target, stats) is None
    assert stats.misses == 1 and stats.evictions == 1
    assert all(r.filename != "a.wav" for r in cache.valid_records())


def test_valid_records_evicts_deleted_files(populated, tmp_path):
    cache = SoundFileCache(populated, tmp_path / "c.json")
    cache.scan()
    (populated / "sub" / "b.WAV").unlink()
    stats = CacheStats()
    assert len(cache.valid_records(stats)) == 2
    assert stats.evictions == 1
    assert cache.file_count == 2


def test_store_and_load_round_trip(populated, tmp_path):
    artifact = tmp_path / "c.json"
    first = SoundFileCache(populated, artifact)
    first.scan()
    first.store()

    data = json.loads(artifact.read_text())
    assert data["format_version"] == CACHE_FORMAT_VERSION
    assert data["root"] == str(populated)

    second = SoundFileCache(populated, artifact)
    assert second.load() is True
    assert second.valid_records() == first.valid_records()
    assert second.directory_count == first.directory_count


def test_load_missing_artifact_returns_false(populated, tmp_path):
    assert SoundFileCache(populated, tmp_path / "none.json").load() is False


def test_root_mismatch_is_corruption(populated, tmp_path):
    artifact = tmp_path / "c.json"
    cache = SoundFileCache(populated, artifact)
    cache.scan()
    cache.store()

    other_root = tmp_path / "other"
    other_root.mkdir()
    with pytest.raises(CacheCorruptionError):
        SoundFileCache(other_root, artifact).load()


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps({"format_version": 99, "root": "/", "records": []}),
    json.dumps([1, 2, 3]),
])
def test_unusable_artifact_is_corruption(populated, tmp_path, content):
    artifact = tmp_path / "c.json"
    artifact.write_text(content)
    with pytest.raises(CacheCorruptionError):
        SoundFileCache(populated, artifact).load()


def test_unreadable_artifact_is_corruption(populated, tmp_path):
    artifact = tmp_path / "c.json"
    artifact.mkdir()
    with pytest.raises(CacheCorruptionError):
        SoundFileCache(populated, artifact).load()


def test_load_or_scan_survives_unreadable_artifact(populated, tmp_path):
    artifact = tmp_path / "c.json"
    artifact.mkdir()
    stats = CacheStats()
    cache = SoundFileCache(populated, artifact)

    assert len(cache.load_or_scan(60, stats)) == 3
    assert stats.misses == 1
    assert artifact.is_dir()

    cache.invalidate(stats)
    assert cache.file_count == 0


def test_malformed_record_is_corruption(populated, tmp_path):
    artifact = tmp_path / "c.json"
    artifact.write_text(json.dumps({
        "format_version": CACHE_FORMAT_VERSION,
        "root": str(populated),
        "records": [{"absolute_path": "x"}],
    }))
    with pytest.raises(CacheCorruptionError):
        SoundFileCache(populated, artifact).load()


def test_load_or_scan_recovers_from_corruption(populated, tmp_path):
    artifact = tmp_path / "c.json"
    artifact.write_text("garbage")
    stats = CacheStats()
    records = SoundFileCache(populated, artifact).load_or_scan(60, stats)

    assert len(records) == 3
    assert stats.misses == 1
    assert json.loads(artifact.read_text())["format_version"] == CACHE_FORMAT_VERSION


def test_load_or_scan_hit_after_persist(populated, tmp_path):
    artifact = tmp_path / "c.json"
    SoundFileCache(populated, artifact).load_or_scan(60)

    stats = CacheStats()
    records = SoundFileCache(populated, artifact).load_or_scan(60, stats)
    assert len(records) == 3
    assert stats.hits == 1 and stats.misses == 0


def test_staleness(populated, tmp_path):
    cache = SoundFileCache(populated, tmp_path / "c.json")
    assert cache.is_stale(60)
    cache.scan()
    assert not cache.is_stale(60)
    cache.last_scan = time.time() - 3600
    assert cache.is_stale(30)
    assert not cache.is_stale(120)


def test_invalidate_clears_and_deletes_artifact(populated, tmp_path):
    artifact = tmp_path / "c.json"
    cache = SoundFileCache(populated, artifact)
    cache.scan()
    cache.store()
    stats = CacheStats(hits=3, misses=2, evictions=1)
    cache.invalidate(stats)

    assert not artifact.exists()
    assert stats.as_dict() == {"hits": 0, "misses": 0, "evictions": 0}
    assert cache.file_count == 0
    assert cache.directory_count == 0
    assert cache.last_scan is None


def test_discover_without_cache(populated, settings):
    from dataclasses import replace

    uncached = replace(settings, cache_enabled=False)
    stats = CacheStats()
    paths = discover_sound_files(uncached, SoundFileCache(populated, settings.cache_file), stats)
    assert len(paths) == 3
    assert paths == sorted(paths)
    assert stats.misses == 1
    assert not settings.cache_file.exists()


def test_summary_fields(populated, tmp_path):
    cache = SoundFileCache(populated, tmp_path / "c.json")
    cache.scan()
    summary = cache.summary()
    assert summary["file_count"] == 3
    assert summary["root"] == str(populated)
    assert summary["last_scan"] is not None
    assert summary["total_size"].endswith("KB")


def test_stats_counters_are_thread_safe():
    stats = CacheStats()

    def bump():
        for _ in range(1000):
            stats.record(hits=1, evictions=2)

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stats.as_dict() == {"hits": 8000, "misses": 0, "evictions": 16000}
