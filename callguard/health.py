"""FastAPI wiring for resilience state.

``create_health_router`` serves ``GET /health`` with every circuit
breaker and feature snapshot.  ``install_error_handlers`` turns
resilience errors escaping a route into ``StructuredErrorResponse`` JSON.

Both are optional conveniences for applications that already run
FastAPI; the resilience primitives never import this module.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from callguard.core.config import Settings
from callguard.core.errors import (
    CallTimeoutError,
    CircuitOpenError,
    FallbackExhaustedError,
    ResilienceError,
    RetryExhaustedError,
    StructuredErrorResponse,
)
from callguard.models.schemas import (
    CircuitBreakerSnapshot,
    FeatureSnapshot,
    HealthResponse,
)
from callguard.resilience.circuit_breaker import CircuitBreakerRegistry, CircuitState
from callguard.resilience.degradation import FeatureRegistry, FeatureStatus

logger = logging.getLogger(__name__)

# Resilience error → HTTP status
_STATUS_CODES: dict[type[ResilienceError], int] = {
    CallTimeoutError: 504,
    CircuitOpenError: 503,
    RetryExhaustedError: 502,
    FallbackExhaustedError: 502,
}


def create_health_router(
    settings: Settings | None = None,
    *,
    breakers: CircuitBreakerRegistry | None = None,
    features: FeatureRegistry | None = None,
) -> APIRouter:
    """Build an ``APIRouter`` exposing ``GET /health``."""
    settings = settings or Settings()
    started = time.monotonic()
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return service health with breaker and feature state."""
        breaker_snaps = [CircuitBreakerSnapshot(**s) for s in breakers.all_snapshots()] if breakers else []
        feature_snaps = [FeatureSnapshot(**s) for s in features.snapshot()] if features else []
        degraded = any(s.state != CircuitState.CLOSED.value for s in breaker_snaps) or any(
            s.status == FeatureStatus.DEGRADED.value for s in feature_snaps
        )
        return HealthResponse(
            service=settings.SERVICE_NAME,
            version=settings.SERVICE_VERSION,
            status="degraded" if degraded else "healthy",
            uptime_seconds=round(time.monotonic() - started, 2),
            circuit_breakers=breaker_snaps,
            features=feature_snaps,
        )

    return router


def _status_for(exc: ResilienceError) -> int:
    for exc_type, status in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status
    return 500


async def _resilience_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    body = StructuredErrorResponse.from_exception(exc, request_id=request_id)
    status = _status_for(exc) if isinstance(exc, ResilienceError) else 500
    headers = {"X-Request-ID": request_id}
    if isinstance(exc, CircuitOpenError):
        headers["Retry-After"] = str(max(1, round(exc.retry_after)))
    logger.warning("%s on %s %s: %s", body.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=body.model_dump(), headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Map ``ResilienceError`` subclasses to structured JSON responses."""
    app.add_exception_handler(ResilienceError, _resilience_error_handler)
