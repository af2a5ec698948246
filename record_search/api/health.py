"""Health check API endpoints."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..core.errors import RecordSearchError
from ..engine_instance import search_engine
from ..models.response import HealthResponse

router = APIRouter(prefix="/api/v1", tags=["health"])
settings = get_settings()

# Track application start time
app_start_time = time.time()

_PROBE_DATASET = [{"userId": "probe_user", "status": "active"}]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the search engine service",
)
async def health_check() -> HealthResponse:
    """
    Perform a health check on the search engine service.

    Runs a tiny probe through the parser, fuzzy matcher and full search
    pipeline and reports each component.
    """
    try:
        dependencies = {
            "query_parser": "healthy",
            "fuzzy_matcher": "healthy",
            "search_engine": "healthy",
        }

        if not search_engine.parser.try_parse("probe AND status:active").success:
            dependencies["query_parser"] = "unhealthy"

        if not search_engine.fuzzy_matcher.find_matches("prob", ["probe"], threshold=50):
            dependencies["fuzzy_matcher"] = "degraded"

        try:
            probe = search_engine.search("probe*", _PROBE_DATASET)
            if not probe.success or probe.total_count != 1:
                dependencies["search_engine"] = "degraded"
        except RecordSearchError:
            dependencies["search_engine"] = "unhealthy"

        if all(status == "healthy" for status in dependencies.values()):
            status = "healthy"
        elif any(status == "unhealthy" for status in dependencies.values()):
            status = "unhealthy"
        else:
            status = "degraded"

        return HealthResponse(
            status=status,
            version=settings.app_version,
            uptime=time.time() - app_start_time,
            dependencies=dependencies,
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Health check failed: {str(e)}",
        )


@router.get(
    "/health/ready",
    summary="Readiness check",
    description="Check if the service is ready to accept requests",
)
async def readiness_check() -> JSONResponse:
    """
    Check if the service is ready to accept requests.

    Used by load balancers and orchestration systems.
    """
    try:
        metrics = search_engine.get_metrics()
        return JSONResponse(
            status_code=200,
            content={
                "status": "ready",
                "timestamp": _now(),
                "cache_size": metrics["cache_size"],
            },
        )

    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": str(e),
                "timestamp": _now(),
            },
        )


@router.get(
    "/health/live",
    summary="Liveness check",
    description="Check if the service is alive and responding",
)
async def liveness_check() -> JSONResponse:
    """Simple liveness check: the process answers with its uptime."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "alive",
            "timestamp": _now(),
            "uptime": time.time() - app_start_time,
        },
    )
