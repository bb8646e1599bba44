"""
Public Presence API

Thin FastAPI app serving the built post manifest, the RSS feed, and post
queries (search, tags, navigation) over the manifest.
"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from presence import __version__
from presence.config import get_settings
from presence.routers import posts
from presence.services.http_client import close_shared_client
from presence.services.store import ManifestError

logger = logging.getLogger(__name__)

settings = get_settings()

# Health check cache: (result_dict, timestamp)
_health_cache: tuple[dict[str, Any], float] | None = None
_HEALTH_CACHE_TTL = 30  # seconds


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    yield
    await close_shared_client()


app = FastAPI(
    title="Public Presence API",
    description="Posts, tags and search over the Public Presence blog manifest",
    version=__version__,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Routers
app.include_router(posts.router, prefix="/api")


@app.exception_handler(ManifestError)
async def manifest_error_handler(request: Request, exc: ManifestError) -> JSONResponse:
    logger.error("Manifest unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503, content={"detail": "Post manifest unavailable"}
    )


@app.get("/posts.json", include_in_schema=False)
async def manifest_artifact() -> FileResponse:
    path = get_settings().manifest_path
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Manifest not built yet")
    return FileResponse(path, media_type="application/json")


@app.get("/rss.xml", include_in_schema=False)
async def feed_artifact() -> FileResponse:
    path = get_settings().feed_path
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Feed not built yet")
    return FileResponse(path, media_type="application/rss+xml")


def _check_content() -> str:
    """Content directory configured and present. Returns 'ok' or 'fail'."""
    s = get_settings()
    return "ok" if s.content_dir.is_dir() else "fail"


def _check_manifest() -> str:
    s = get_settings()
    if s.manifest_url:
        return "ok"
    return "ok" if s.manifest_path.is_file() else "fail"


def _run_health_checks() -> dict[str, Any]:
    """Run all health checks, returning the full response body."""
    global _health_cache
    now = time.time()
    if _health_cache is not None:
        cached_result, cached_at = _health_cache
        if now - cached_at < _HEALTH_CACHE_TTL:
            return cached_result

    checks = {"content": _check_content(), "manifest": _check_manifest()}
    failed = [k for k, v in checks.items() if v != "ok"]

    if not failed:
        overall = "ok"
    elif checks["manifest"] == "ok":
        overall = "degraded"
        logger.warning("Health check degraded, failed: %s", ", ".join(failed))
    else:
        overall = "fail"
        logger.warning("Health check failed: %s", ", ".join(failed))

    result: dict[str, Any] = {
        "status": overall,
        "service": "public-presence-api",
        "version": __version__,
        "checks": checks,
    }
    _health_cache = (result, now)
    return result


@app.get("/api/health")
async def health_check() -> JSONResponse:
    """Health check verifying the content directory and manifest artifact."""
    result = _run_health_checks()
    status_code = 200 if result["status"] in ("ok", "degraded") else 503
    return JSONResponse(content=result, status_code=status_code)
