"""Response models for search results and API endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FactorScore(BaseModel):
    """One relevance factor's raw score and contribution."""

    score: float = Field(..., description="Raw factor score")
    weight: float = Field(..., description="Weight applied to the raw score")
    weighted: float = Field(..., description="Contribution to the total")


class ScoreBreakdown(BaseModel):
    """Per-factor explanation of a relevance score."""

    text_match: FactorScore
    fuzzy_match: FactorScore
    activity: FactorScore
    recency: FactorScore
    field_match: FactorScore
    behavior: FactorScore
    total: float = Field(..., description="Sum of weighted contributions before clamping")


class ScoredRecord(BaseModel):
    """A matched record together with its scores.

    The original record is embedded unchanged under ``record``.
    """

    record: Any = Field(..., description="The original record")
    relevance_score: float = Field(default=0.0, description="Weighted relevance score")
    normalized_score: Optional[int] = Field(None, description="Relevance score scaled to 0-100")
    fuzzy_score: Optional[int] = Field(None, description="Similarity of the identifier to the query")
    edit_distance: Optional[int] = Field(None, description="Edit distance of the identifier to the query")
    exact_match: Optional[bool] = Field(None, description="Whether the identifier equals the query")
    score_breakdown: Optional[ScoreBreakdown] = Field(None, description="Per-factor score details")


class PaginationMetadata(BaseModel):
    """Cursor pagination state for one page."""

    page_size: int = Field(..., description="Number of records on this page")
    requested_page_size: int = Field(..., description="Page size after clamping")
    has_next: bool = False
    has_prev: bool = False
    next_cursor: Optional[str] = None
    prev_cursor: Optional[str] = None
    current_cursor: Optional[str] = None
    start_index: int = 0
    end_index: Optional[int] = Field(None, description="Index of the last record on this page; None for an empty page")
    direction: str = "next"
    sort_field: str = "relevance_score"
    sort_direction: str = "DESC"


class SearchMetadata(BaseModel):
    """Timing and diagnostics for one search call."""

    search_id: str = Field(..., description="Unique identifier of this search")
    response_time_ms: float = Field(..., description="Wall-clock time in milliseconds")
    from_cache: bool = Field(default=False, description="Whether results came from the result cache")
    timestamp: datetime = Field(default_factory=_utcnow)
    query_complexity: float = Field(default=0.0, description="Weighted size of the query tree")
    term_count: int = Field(default=0, description="Number of leaf terms in the query")
    engine_version: str = Field(..., description="Search engine version")


class ErrorDetail(BaseModel):
    """Structured failure information carried by a failed search."""

    type: str = Field(..., description="Error class name")
    message: str = Field(..., description="Human readable message")
    field: Optional[str] = None
    kind: Optional[str] = None
    token: Optional[str] = None
    position: Optional[int] = None
    stage: Optional[str] = None


class SearchResponse(BaseModel):
    """Result of a search call, successful or not."""

    success: bool = Field(..., description="Whether the search succeeded")
    data: List[ScoredRecord] = Field(default_factory=list, description="Matched records")
    total_count: int = Field(default=0, description="Number of matching records before pagination")
    pagination: Optional[PaginationMetadata] = None
    search_metadata: Optional[SearchMetadata] = None
    error: Optional[ErrorDetail] = None


class Suggestion(BaseModel):
    """A suggested completion or correction."""

    text: str
    similarity: int = Field(..., ge=0, le=100)
    distance: int = Field(..., ge=0)


class SuggestionResponse(BaseModel):
    query: str
    suggestions: List[Suggestion]
    execution_time_ms: float
    timestamp: datetime = Field(default_factory=_utcnow)


class ParseResponse(BaseModel):
    """Parsed form of a query."""

    query: str
    tokens: List[Dict[str, Any]]
    ast: Dict[str, Any]
    term_count: int
    complexity: float
    where_clause: Optional[str] = Field(None, description="SQL WHERE fragment when requested")
    params: Optional[List[Any]] = Field(None, description="Parameters for the WHERE fragment")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    uptime: float = Field(..., description="Service uptime in seconds")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    dependencies: Dict[str, str] = Field(..., description="Component status")


class MetricsResponse(BaseModel):
    """Performance metrics response."""

    total_searches: int = Field(..., description="Total searches processed")
    average_response_time_ms: float = Field(..., description="Average response time")
    cache_hit_rate: float = Field(..., description="Cache hit rate percentage")
    error_rate: float = Field(..., description="Error rate percentage")
    cache_size: int = Field(..., description="Entries in the result cache")
    memory_usage_mb: float = Field(..., description="Resident memory in MB")
    timestamp: datetime = Field(default_factory=_utcnow, description="Metrics timestamp")
