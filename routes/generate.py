from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional

"""
routes/generate.py — Synthesized wavetables

    POST /generate/wavetable     one multi-frame table
    POST /generate/single_cycle  one single-cycle table
    POST /generate/batch         n tables of either kind

Bodies are validated here (ranges, power-of-two sample counts) so the
generation core only ever sees checked values. Core failures map to
HTTP codes through http_status_for().
"""

from config import MAX_FRAMES, MAX_SAMPLES, MIN_SAMPLES, is_power_of_two
from errors.tablemorph_errors import TableMorphError, http_status_for
from wavetable_types import WaveformType

router = APIRouter()

MAX_BATCH = 100
MAX_WORKERS = 8


# =============================================================================
# Models
# =============================================================================

class _SampleCountModel(BaseModel):
    sample_count: Optional[int] = Field(None, ge=MIN_SAMPLES, le=MAX_SAMPLES)

    @field_validator("sample_count")
    @classmethod
    def _power_of_two(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not is_power_of_two(v):
            raise ValueError("sample_count must be a power of two")
        return v


class WavetableRequest(_SampleCountModel):
    seed: Optional[int] = Field(None, ge=0)
    waveform_type: Optional[WaveformType] = None
    frame_count: Optional[int] = Field(None, ge=1, le=MAX_FRAMES)


class SingleCycleRequest(_SampleCountModel):
    seed: Optional[int] = Field(None, ge=0)
    waveform_type: Optional[WaveformType] = None


class BatchRequest(BaseModel):
    kind: Literal["wavetable", "single_cycle"] = "wavetable"
    count: int = Field(1, ge=1, le=MAX_BATCH)
    seed: Optional[int] = Field(None, ge=0)
    waveform_type: Optional[WaveformType] = None
    max_workers: int = Field(1, ge=1, le=MAX_WORKERS)


# =============================================================================
# Helpers
# =============================================================================

def _write_response(result) -> dict:
    return {
        "status": "generated",
        "path": str(result.path),
        "mirror_path": str(result.mirror_path) if result.mirror_path else None,
        "mirror_error": result.mirror_error,
    }


# =============================================================================
# Routes
# =============================================================================

@router.post("/wavetable")
def generate_wavetable(req: WavetableRequest, request: Request):
    orchestrator = request.app.state.orchestrator
    try:
        result = orchestrator.generate_wavetable(
            seed=req.seed,
            waveform_type=req.waveform_type,
            frame_count=req.frame_count,
            sample_count=req.sample_count,
        )
    except TableMorphError as e:
        raise HTTPException(http_status_for(e), str(e))
    return _write_response(result)


@router.post("/single_cycle")
def generate_single_cycle(req: SingleCycleRequest, request: Request):
    orchestrator = request.app.state.orchestrator
    try:
        result = orchestrator.generate_single_cycle(
            seed=req.seed,
            waveform_type=req.waveform_type,
            sample_count=req.sample_count,
        )
    except TableMorphError as e:
        raise HTTPException(http_status_for(e), str(e))
    return _write_response(result)


@router.post("/batch")
def generate_batch(req: BatchRequest, request: Request):
    orchestrator = request.app.state.orchestrator
    runner = orchestrator.batch_wavetables if req.kind == "wavetable" else orchestrator.batch_single_cycles
    result = runner(
        req.count,
        waveform_type=req.waveform_type,
        seed=req.seed,
        max_workers=req.max_workers,
    )
    return {"status": "completed", "kind": req.kind, **result.as_dict()}
