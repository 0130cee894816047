"""Health endpoint factory for FastAPI services."""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request
from pydantic import BaseModel

DetailsFn = Callable[[Request], "dict | Awaitable[dict]"]


class HealthStatus(BaseModel):
    status: str = "ok"
    service: str
    version: str
    uptime_seconds: float
    details: dict = {}


def create_health_router(service_name: str, version: str, details_fn: DetailsFn | None = None) -> APIRouter:
    """Build a router exposing ``GET /health``.

    ``details_fn`` gets the current request (so it can read ``app.state``) and
    may be sync or async.
    """
    router = APIRouter(tags=["health"])
    started = time.monotonic()

    @router.get("/health", response_model=HealthStatus)
    async def health(request: Request) -> HealthStatus:
        details: dict = {}
        if details_fn is not None:
            result = details_fn(request)
            details = await result if inspect.isawaitable(result) else result
        return HealthStatus(
            service=service_name,
            version=version,
            uptime_seconds=round(time.monotonic() - started, 1),
            details=details,
        )

    return router
