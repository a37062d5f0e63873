"""Response models for health reporting."""

from pydantic import BaseModel, Field


class CircuitBreakerSnapshot(BaseModel):
    """State and counters of one circuit breaker."""

    name: str
    state: str = Field(..., pattern=r"^(closed|open|half_open)$")
    failure_count: int = Field(..., ge=0)
    retry_after: float = Field(default=0.0, ge=0.0)
    total_calls: int = Field(default=0, ge=0)
    total_failures: int = Field(default=0, ge=0)
    total_rejections: int = Field(default=0, ge=0)
    total_successes: int = Field(default=0, ge=0)


class FeatureSnapshot(BaseModel):
    """Load outcome of one optional feature."""

    name: str
    status: str = Field(..., pattern=r"^(active|degraded)$")
    error_reason: str | None = None
    loaded_at: str


class HealthResponse(BaseModel):
    """Response model for GET /health.

    ``status`` is ``"degraded"`` when any breaker is not closed or any
    feature is degraded, ``"healthy"`` otherwise.
    """

    service: str
    version: str
    status: str
    uptime_seconds: float
    circuit_breakers: list[CircuitBreakerSnapshot] = Field(default_factory=list)
    features: list[FeatureSnapshot] = Field(default_factory=list)
