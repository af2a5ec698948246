"""Metrics and cache management API endpoints."""

from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..engine_instance import search_engine
from ..models.response import MetricsResponse

router = APIRouter(prefix="/api/v1", tags=["metrics"])


@router.get(
    "/metrics",
    response_model=MetricsResponse,
    summary="Get performance metrics",
    description="Get search counts, response times, cache and error rates",
)
async def get_metrics() -> MetricsResponse:
    """
    Get performance metrics for the search engine.

    Includes the resident memory of the service process.
    """
    try:
        stats = search_engine.get_metrics()
        memory_usage_mb = psutil.Process().memory_info().rss / (1024 * 1024)

        return MetricsResponse(
            total_searches=stats["total_searches"],
            average_response_time_ms=stats["average_response_time_ms"],
            cache_hit_rate=stats["cache_hit_rate"],
            error_rate=stats["error_rate"],
            cache_size=stats["cache_size"],
            memory_usage_mb=round(memory_usage_mb, 2),
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get metrics: {str(e)}",
        )


@router.get(
    "/metrics/cache",
    summary="Get cache details",
    description="Get the cursor cache state of the paginator",
)
async def get_cache_details() -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={
            "cursor_cache": search_engine.paginator.cache_info(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.delete(
    "/cache",
    summary="Clear caches",
    description="Clear the search result cache and the cursor cache",
)
async def clear_cache() -> JSONResponse:
    search_engine.clear_cache()
    return JSONResponse(
        status_code=200,
        content={
            "status": "cleared",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
