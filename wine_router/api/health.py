"""Health check endpoints for the wine question router API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel

from ..utils.error_handling import get_error_handler
from ..utils.logging import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthStatus(BaseModel):
    """Health status response model."""
    status: str
    timestamp: str
    version: str = "0.1.0"
    uptime_seconds: Optional[float] = None


class DetailedHealthStatus(BaseModel):
    """Detailed health status response model."""
    status: str
    timestamp: str
    version: str = "0.1.0"
    uptime_seconds: Optional[float] = None
    models: Dict[str, Any]
    retrieval: Dict[str, Any]
    issues: List[str] = []


# Track application start time for uptime calculation
_app_start_time = datetime.now()


@router.get("", response_model=HealthStatus)
async def basic_health_check() -> HealthStatus:
    """Basic liveness check."""
    uptime = (datetime.now() - _app_start_time).total_seconds()
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        uptime_seconds=uptime,
    )


@router.get("/detailed", response_model=DetailedHealthStatus)
async def detailed_health_check(request: Request) -> DetailedHealthStatus:
    """Model loading state, retrieval reachability and open circuit breakers.

    Missing models are not an error: those kinds run on rule fallbacks.
    """
    deps = request.app.state.dependencies
    issues: List[str] = []

    try:
        model_status = deps.engine.get_status()
    except Exception as e:
        logger.error(f"Detailed health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    retriever = deps.router.retriever
    retrieval: Dict[str, Any] = {"configured": retriever is not None}
    if retriever is not None:
        healthy = await retriever.health_check()
        retrieval["healthy"] = healthy
        retrieval["retriever_id"] = retriever.retriever_id
        if not healthy:
            issues.append("retrieval_unhealthy")

    breaker_states = get_error_handler().get_error_statistics()["circuit_breaker_states"]
    retrieval["circuit_breakers"] = breaker_states
    for name, state in breaker_states.items():
        if state["state"] == "open":
            issues.append(f"circuit_breaker_open:{name}")

    return DetailedHealthStatus(
        status="degraded" if issues else "healthy",
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - _app_start_time).total_seconds(),
        models=model_status,
        retrieval=retrieval,
        issues=issues,
    )


@router.get("/metrics")
async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics in text exposition format."""
    deps = request.app.state.dependencies
    try:
        metrics_text = deps.metrics.prometheus.get_metrics()
    except Exception as e:
        logger.error(f"Metrics endpoint failed: {e}")
        raise HTTPException(status_code=503, detail=f"Metrics unavailable: {e}")
    return Response(content=metrics_text, media_type=CONTENT_TYPE_LATEST)
