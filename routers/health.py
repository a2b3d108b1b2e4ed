"""Liveness endpoint that probes the record store."""

import asyncio
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cache.query_cache import QueryCache
from config.settings import Settings, get_settings
from core.dependencies import get_query_cache, get_record_store
from store.base import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

PROBE_TIMEOUT = 3.0


class ProbeResult(BaseModel):
    status: str
    latency_ms: float


class HealthResponse(BaseModel):
    status: str
    version: str
    backend: str
    record_store: ProbeResult
    cache_entries: int


async def probe_record_store(store: RecordStore, timeout: float | None = None) -> ProbeResult:
    """Ask the store whether it is reachable, giving up after ``timeout`` seconds.

    Status is "ok", "error" (backend answered but unhealthy, or the probe
    raised) or "timeout".
    """
    started = time.perf_counter()
    try:
        available = await asyncio.wait_for(store.is_available(), timeout or PROBE_TIMEOUT)
        status = "ok" if available else "error"
    except TimeoutError:
        status = "timeout"
    except Exception as e:
        logger.warning(f"Record store probe failed: {e}")
        status = "error"
    return ProbeResult(status=status, latency_ms=round((time.perf_counter() - started) * 1000, 2))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    responses={503: {"description": "Record store unreachable", "model": HealthResponse}},
)
async def health_check(
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_record_store),
    cache: QueryCache = Depends(get_query_cache),
):
    probe = await probe_record_store(store)
    healthy = probe.status == "ok"
    if not healthy:
        logger.warning(f"Health check failing: record store {probe.status}")

    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.app_version,
        backend=settings.record_store_backend,
        record_store=probe,
        cache_entries=len(cache),
    )
    return JSONResponse(content=body.model_dump(), status_code=200 if healthy else 503)
