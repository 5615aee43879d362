"""
TableMorph API — Sound Cache Router

    GET  /cache/summary     counts, size, last scan, hit/miss/eviction stats
    POST /cache/rescan      full rescan of the sounds directory, then persist
    POST /cache/invalidate  drop every record and delete the artifact
"""

from fastapi import APIRouter, HTTPException, Request

from sound_cache import summarize_cache

router = APIRouter()


@router.get("/summary")
def cache_summary(request: Request):
    state = request.app.state
    summary = summarize_cache(state.cache, state.cache_stats)
    summary["enabled"] = state.settings.cache_enabled
    summary["ttl_minutes"] = state.settings.cache_lifetime_minutes
    summary["stale"] = state.cache.is_stale(state.settings.cache_lifetime_minutes)
    return summary


@router.post("/rescan")
def cache_rescan(request: Request):
    cache = request.app.state.cache
    count = cache.scan()
    try:
        cache.store()
    except OSError as e:
        raise HTTPException(500, f"Rescan done but cache could not be persisted: {e}")
    return {"status": "rescanned", "file_count": count, **cache.summary()}


@router.post("/invalidate")
def cache_invalidate(request: Request):
    state = request.app.state
    state.cache.invalidate(state.cache_stats)
    return {"status": "invalidated"}
