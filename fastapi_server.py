#!/usr/bin/env python3
"""
TableMorph Wavetable Service — FastAPI Server

• Components are built once in the lifespan hook and parked on app.state:
  settings → sound cache + stats → writer → morph engine → orchestrator
• Routers: /generate, /morph, /cache
• Every request runs under its own run id (RequestIdMiddleware)
• CORS opt-in through ALLOW_CORS / CORS_ALLOW_ORIGINS
"""

import os
import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from batch_orchestrator import BatchOrchestrator
from config import DEBUG, Settings, ensure_directories, load_settings, summarize_config
from morph_engine import SampleMorphEngine
from observability.logging_utils import log_event
from observability.request_context import RequestIdMiddleware
from routes.cache import router as cache_router
from routes.generate import router as generate_router
from routes.morph import router as morph_router
from sound_cache import CacheStats, SoundFileCache
from wavetable_writer import WavetableWriter

SERVICE_NAME = "tablemorph"
SERVICE_VERSION = "1.0"


# ────────────────────────────────────────────────
# Component wiring
# ────────────────────────────────────────────────
def build_components(settings: Settings) -> dict:
    cache = SoundFileCache(settings.sounds_dir, settings.cache_file)
    writer = WavetableWriter(external_dir=settings.external_target, file_format=settings.wavetable_format)
    engine = SampleMorphEngine()
    orchestrator = BatchOrchestrator(settings, writer, engine, cache=cache)
    return {
        "settings": settings,
        "cache": cache,
        "cache_stats": CacheStats(),
        "writer": writer,
        "morph_engine": engine,
        "orchestrator": orchestrator,
    }


def ts() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


# ────────────────────────────────────────────────
# App factory
# ────────────────────────────────────────────────
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or load_settings()
        ensure_directories(resolved)
        for name, component in build_components(resolved).items():
            setattr(app.state, name, component)
        log_event("INFO", "service started", scope="server", action="startup",
                  sounds_dir=str(resolved.sounds_dir), cache_enabled=resolved.cache_enabled)
        yield
        log_event("INFO", "service stopped", scope="server", action="shutdown")

    app = FastAPI(
        title="TableMorph Wavetable API",
        version=SERVICE_VERSION,
        description="Wavetable synthesis, sample morphing and sound-file cache service.",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)

    if os.getenv("ALLOW_CORS", "false").lower() in ("true", "1", "yes"):
        app.add_middleware(
            CORSMiddleware,
            allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.include_router(generate_router, prefix="/generate")
    app.include_router(morph_router, prefix="/morph")
    app.include_router(cache_router, prefix="/cache")

    # ────────────────────────────────────────────────
    # Core endpoints
    # ────────────────────────────────────────────────
    @app.get("/health")
    async def health():
        state = app.state
        return {
            "status": "ok",
            "time_utc": ts(),
            "debug": DEBUG,
            "config": summarize_config(state.settings),
            "cache": state.cache.summary(),
        }

    @app.get("/live")
    async def live():
        return {"ok": True, "time_utc": ts()}

    @app.get("/version")
    async def version():
        return {"service": SERVICE_NAME, "version": app.version, "time_utc": ts()}

    return app


app = create_app()


# ────────────────────────────────────────────────
# Local Dev Runner
# ────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fastapi_server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=DEBUG,
    )
