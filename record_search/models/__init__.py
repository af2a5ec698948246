"""Data models for the record search engine."""

from .request import (
    PaginationRequest,
    ParseRequest,
    SearchOptions,
    SearchRequest,
    SuggestionRequest,
)
from .response import (
    ErrorDetail,
    ErrorResponse,
    FactorScore,
    HealthResponse,
    MetricsResponse,
    PaginationMetadata,
    ParseResponse,
    ScoreBreakdown,
    ScoredRecord,
    SearchMetadata,
    SearchResponse,
    Suggestion,
    SuggestionResponse,
)

__all__ = [
    "PaginationRequest",
    "ParseRequest",
    "SearchOptions",
    "SearchRequest",
    "SuggestionRequest",
    "ErrorDetail",
    "ErrorResponse",
    "FactorScore",
    "HealthResponse",
    "MetricsResponse",
    "PaginationMetadata",
    "ParseResponse",
    "ScoreBreakdown",
    "ScoredRecord",
    "SearchMetadata",
    "SearchResponse",
    "Suggestion",
    "SuggestionResponse",
]
