#!/usr/bin/env python3
"""
Batch Orchestrator — drives repeated wavetable / single-cycle / morph generation.

• Components (settings, writer, morph engine, cache) are injected at
  construction; nothing is looked up globally
• Item seeds and destinations are planned before the first item runs, so
  two items never target the same file and a base seed reproduces a batch
• Per-item failures are caught, logged and recorded as ItemFailure; the
  batch always attempts every item
• Results come back in request order, also when max_workers > 1
• A threading.Event cancels the batch: items not yet started are counted
  as cancelled, files already written stay where they are
• Single-item entry points raise to the caller instead of recording
"""

import concurrent.futures
import contextvars
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from config import DEBUG, Settings
from morph_engine import SampleMorphEngine
from naming_contract import build_output_path, new_output_tag, timestamp_tag
from observability.logging_utils import current_run_id, log_error, log_event, log_timing, new_run_id, set_run_id
from sound_cache import CacheStats, SoundFileCache, discover_sound_files
from wavetable_builder import build_random, build_single_cycle, resolve_seed
from wavetable_types import MorphType, WaveformType, WavetableKind
from wavetable_writer import WavetableWriter, WriteResult

PathLike = Union[str, Path]

_SEED_SPACE = 2 ** 63


# -------------------------------------------------
# Result types
# -------------------------------------------------

@dataclass(frozen=True)
class ItemFailure:
    index: int
    error_type: str
    reason: str


@dataclass
class BatchResult:
    requested: int
    paths: List[Path] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)
    cancelled: int = 0
    run_id: Optional[str] = None

    @property
    def skipped(self) -> int:
        return len(self.failures)

    def as_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "requested": self.requested,
            "written": len(self.paths),
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "paths": [str(p) for p in self.paths],
            "failures": [asdict(f) for f in self.failures],
        }


@dataclass(frozen=True)
class BatchItem:
    index: int
    seed: int
    destination: Path
    morph_type: Optional[MorphType] = None


# -------------------------------------------------
# Orchestrator
# -------------------------------------------------

class BatchOrchestrator:
    def __init__(
        self,
        settings: Settings,
        writer: WavetableWriter,
        morph_engine: SampleMorphEngine,
        cache: Optional[SoundFileCache] = None,
    ):
        self.settings = settings
        self.writer = writer
        self.morph_engine = morph_engine
        self.cache = cache

    # ---------- planning ----------
    def _destination(self, kind: WavetableKind, label: str, seed: int, index: int, ts: str,
                     tag: Optional[str] = None) -> Path:
        directory = {
            WavetableKind.WAVETABLE: self.settings.wavetables_dir,
            WavetableKind.SINGLE_CYCLE: self.settings.singlecycle_dir,
            WavetableKind.MORPH: self.settings.morphs_dir,
        }[kind]
        return build_output_path(directory, kind.value, label, seed, index=index, ext=self.writer.extension, ts=ts,
                                 tag=tag)

    def plan(
        self,
        count: int,
        kind: WavetableKind,
        labels: Callable[[int], str],
        seed: Optional[int] = None,
        morph_types: Optional[Sequence[MorphType]] = None,
    ) -> List[BatchItem]:
        """Fix every item's seed and destination up front."""
        rng = np.random.default_rng(resolve_seed(seed))
        seeds = [int(s) for s in rng.integers(_SEED_SPACE, size=count)]
        ts, tag = timestamp_tag(), new_output_tag()
        items = []
        for i, item_seed in enumerate(seeds):
            mtype = morph_types[i % len(morph_types)] if morph_types else None
            items.append(BatchItem(
                index=i,
                seed=item_seed,
                destination=self._destination(kind, labels(i), item_seed, i, ts, tag),
                morph_type=mtype,
            ))
        return items

    def resolve_sources(self, source_files: Optional[Sequence[PathLike]] = None,
                        stats: Optional[CacheStats] = None) -> List[Path]:
        if source_files is not None:
            return [Path(p) for p in source_files]
        return discover_sound_files(self.settings, self.cache, stats)

    # ---------- single items ----------
    def _write(self, wavetable, destination: Path) -> WriteResult:
        result = self.writer.write(wavetable, destination)
        if result.mirror_error and DEBUG:
            print(f"⚠️ Mirror copy failed: {result.mirror_error}")
        return result

    def generate_wavetable(self, seed: Optional[int] = None, waveform_type: Optional[WaveformType] = None,
                           destination: Optional[PathLike] = None, frame_count: Optional[int] = None,
                           sample_count: Optional[int] = None) -> WriteResult:
        seed = resolve_seed(seed)
        request = self.settings.generation_request(
            seed=seed, waveform_type=waveform_type, frame_count=frame_count, sample_count=sample_count)
        wavetable = build_random(request)
        dest = Path(destination) if destination else self._destination(
            WavetableKind.WAVETABLE, wavetable.label, seed, 0, timestamp_tag())
        return self._write(wavetable, dest)

    def generate_single_cycle(self, seed: Optional[int] = None, waveform_type: Optional[WaveformType] = None,
                              destination: Optional[PathLike] = None,
                              sample_count: Optional[int] = None) -> WriteResult:
        seed = resolve_seed(seed)
        request = self.settings.generation_request(
            seed=seed, waveform_type=waveform_type, single_cycle=True, sample_count=sample_count)
        wavetable = build_single_cycle(request)
        dest = Path(destination) if destination else self._destination(
            WavetableKind.SINGLE_CYCLE, wavetable.label, seed, 0, timestamp_tag())
        return self._write(wavetable, dest)

    def generate_morph(self, morph_type: Union[MorphType, str],
                       source_files: Optional[Sequence[PathLike]] = None,
                       seed: Optional[int] = None,
                       destination: Optional[PathLike] = None,
                       stats: Optional[CacheStats] = None) -> WriteResult:
        morph_type = MorphType(morph_type)
        seed = resolve_seed(seed)
        sources = self.resolve_sources(source_files, stats)
        wavetable = self.morph_engine.morph(morph_type, sources, self.settings.generation_request(seed=seed))
        dest = Path(destination) if destination else self._destination(
            WavetableKind.MORPH, morph_type.value, seed, 0, timestamp_tag())
        return self._write(wavetable, dest)

    # ---------- batch core ----------
    def _run(
        self,
        action: str,
        items: List[BatchItem],
        work: Callable[[BatchItem], Path],
        cancel_event: Optional[threading.Event] = None,
        max_workers: int = 1,
    ) -> BatchResult:
        previous_run = current_run_id()
        run_id = new_run_id()
        t0 = time.time()
        log_event("INFO", f"{action} batch started", scope="batch", action=action,
                  count=len(items), workers=max_workers)

        def run_one(item: BatchItem):
            if cancel_event is not None and cancel_event.is_set():
                return "cancelled", None
            try:
                return "ok", work(item)
            except Exception as e:
                log_error(f"item {item.index} failed", scope="batch", action=action,
                          index=item.index, error_type=type(e).__name__, error=str(e))
                return "failed", ItemFailure(item.index, type(e).__name__, str(e))

        try:
            if max_workers <= 1:
                outcomes = [run_one(item) for item in items]
            else:
                with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as exe:
                    # each worker gets its own copy of the context so the run_id follows it
                    futures = [exe.submit(contextvars.copy_context().run, run_one, item) for item in items]
                    outcomes = [fut.result() for fut in futures]

            result = BatchResult(requested=len(items), run_id=run_id)
            for status, value in outcomes:
                if status == "ok":
                    result.paths.append(value)
                elif status == "failed":
                    result.failures.append(value)
                else:
                    result.cancelled += 1

            log_timing("batch", action, t0, written=len(result.paths),
                       skipped=result.skipped, cancelled=result.cancelled)
            return result
        finally:
            set_run_id(previous_run)

    # ---------- batches ----------
    def batch_wavetables(self, count: int, waveform_type: Optional[WaveformType] = None,
                         seed: Optional[int] = None, cancel_event: Optional[threading.Event] = None,
                         max_workers: int = 1) -> BatchResult:
        label = waveform_type.value if waveform_type else "random"
        items = self.plan(count, WavetableKind.WAVETABLE, lambda i: label, seed)

        def work(item: BatchItem) -> Path:
            request = self.settings.generation_request(seed=item.seed, waveform_type=waveform_type)
            return self._write(build_random(request), item.destination).path

        return self._run("wavetables", items, work, cancel_event, max_workers)

    def batch_single_cycles(self, count: int, waveform_type: Optional[WaveformType] = None,
                            seed: Optional[int] = None, cancel_event: Optional[threading.Event] = None,
                            max_workers: int = 1) -> BatchResult:
        label = waveform_type.value if waveform_type else "random"
        items = self.plan(count, WavetableKind.SINGLE_CYCLE, lambda i: label, seed)

        def work(item: BatchItem) -> Path:
            request = self.settings.generation_request(
                seed=item.seed, waveform_type=waveform_type, single_cycle=True)
            return self._write(build_single_cycle(request), item.destination).path

        return self._run("single_cycles", items, work, cancel_event, max_workers)

    def batch_morph(self, types: Sequence[Union[MorphType, str]],
                    source_files: Optional[Sequence[PathLike]] = None,
                    count: int = 1, seed: Optional[int] = None,
                    cancel_event: Optional[threading.Event] = None,
                    max_workers: int = 1, stats: Optional[CacheStats] = None) -> BatchResult:
        """Morph `count` tables cycling through `types`; an empty source list fails every item."""
        morph_types = [MorphType(t) for t in types] or list(MorphType)
        sources = self.resolve_sources(source_files, stats)
        items = self.plan(count, WavetableKind.MORPH, lambda i: morph_types[i % len(morph_types)].value,
                          seed, morph_types)

        def work(item: BatchItem) -> Path:
            request = self.settings.generation_request(seed=item.seed)
            wavetable = self.morph_engine.morph(item.morph_type, sources, request)
            return self._write(wavetable, item.destination).path

        return self._run("morphs", items, work, cancel_event, max_workers)


__all__ = [
    "ItemFailure",
    "BatchResult",
    "BatchItem",
    "BatchOrchestrator",
]
