"""
routes/morph.py — Sample morphs

    POST /morph         one morphed table from explicit or discovered sources
    POST /morph/batch   n morphs cycling through the requested types

When source_files is omitted the sounds directory is used, through the
sound cache when caching is enabled. Explicit source_files resolve against
the sounds directory and must stay inside it.
"""

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from errors.tablemorph_errors import TableMorphError, http_status_for
from wavetable_types import MorphType

router = APIRouter()

MAX_BATCH = 100
MAX_WORKERS = 8


def _confined_sources(source_files: Optional[List[str]], sounds_dir: Path) -> Optional[List[str]]:
    if source_files is None:
        return None
    root = Path(sounds_dir).resolve()
    resolved = []
    for name in source_files:
        path = (root / name).resolve()
        if not path.is_relative_to(root):
            raise HTTPException(400, f"Source file outside the sounds directory: {name}")
        resolved.append(str(path))
    return resolved


class MorphRequest(BaseModel):
    morph_type: MorphType = MorphType.BLEND
    source_files: Optional[List[str]] = None
    seed: Optional[int] = Field(None, ge=0)


class MorphBatchRequest(BaseModel):
    types: List[MorphType] = Field(default_factory=lambda: list(MorphType), min_length=1)
    source_files: Optional[List[str]] = None
    count: int = Field(1, ge=1, le=MAX_BATCH)
    seed: Optional[int] = Field(None, ge=0)
    max_workers: int = Field(1, ge=1, le=MAX_WORKERS)


@router.post("")
def morph(req: MorphRequest, request: Request):
    state = request.app.state
    sources = _confined_sources(req.source_files, state.settings.sounds_dir)
    try:
        result = state.orchestrator.generate_morph(
            req.morph_type,
            source_files=sources,
            seed=req.seed,
            stats=state.cache_stats,
        )
    except TableMorphError as e:
        raise HTTPException(http_status_for(e), str(e))

    return {
        "status": "generated",
        "morph_type": req.morph_type.value,
        "path": str(result.path),
        "mirror_path": str(result.mirror_path) if result.mirror_path else None,
        "mirror_error": result.mirror_error,
    }


@router.post("/batch")
def morph_batch(req: MorphBatchRequest, request: Request):
    state = request.app.state
    result = state.orchestrator.batch_morph(
        req.types,
        source_files=_confined_sources(req.source_files, state.settings.sounds_dir),
        count=req.count,
        seed=req.seed,
        max_workers=req.max_workers,
        stats=state.cache_stats,
    )
    return {"status": "completed", "types": [t.value for t in req.types], **result.as_dict()}
