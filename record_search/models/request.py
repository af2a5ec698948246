"""Request models for search calls and API endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class PaginationRequest(BaseModel):
    """Cursor pagination parameters."""

    cursor: Optional[str] = Field(None, description="Opaque cursor from a previous page")
    page_size: Optional[int] = Field(None, ge=1, description="Requested page size")
    direction: str = Field(default="next", description="'next' or 'prev'")

    @field_validator("direction")
    @classmethod
    def validate_direction(cls, v: str) -> str:
        """Validate and normalize the paging direction."""
        if v.lower() not in ("next", "prev"):
            raise ValueError("Direction must be 'next' or 'prev'")
        return v.lower()


class SearchOptions(BaseModel):
    """Per-call search options."""

    search_fields: Optional[List[str]] = Field(
        None, description="Fields bare terms are matched against (defaults from settings)"
    )
    filters: Dict[str, Any] = Field(
        default_factory=dict, description="Field equality filters; list values mean membership"
    )
    enable_fuzzy: bool = Field(default=True, description="Allow typo-tolerant matching")
    fuzzy_threshold: Optional[int] = Field(
        None, ge=0, le=100, description="Minimum fuzzy similarity (defaults from settings)"
    )
    sort_field: Optional[str] = Field(None, description="Field to sort by")
    sort_direction: str = Field(default="DESC", description="'ASC' or 'DESC'")
    pagination: Optional[PaginationRequest] = Field(None, description="Cursor pagination")
    intent: Optional[str] = Field(
        None, description="Scoring intent: 'find_active_users' or 'find_high_value_users'"
    )
    weights: Optional[Dict[str, float]] = Field(None, description="Score weight overrides")
    include_breakdown: bool = Field(default=True, description="Attach per-factor score details")

    @field_validator("sort_direction")
    @classmethod
    def validate_sort_direction(cls, v: str) -> str:
        if v.upper() not in ("ASC", "DESC"):
            raise ValueError("Sort direction must be 'ASC' or 'DESC'")
        return v.upper()

    @field_validator("search_fields")
    @classmethod
    def validate_search_fields(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        fields = [field.strip() for field in v if field and field.strip()]
        if not fields:
            raise ValueError("Search fields cannot be empty")
        return fields


class SearchRequest(BaseModel):
    """Request model for searching a dataset."""

    query: str = Field(..., description="Search query")
    dataset: List[Dict[str, Any]] = Field(..., description="Records to search")
    options: Optional[SearchOptions] = Field(None, description="Search options")


class SuggestionRequest(BaseModel):
    """Request model for query suggestions."""

    partial_query: str = Field(..., min_length=1, max_length=100, description="Partial query")
    dataset: List[Dict[str, Any]] = Field(..., description="Records to draw suggestions from")
    max_suggestions: int = Field(default=10, ge=1, le=50, description="Maximum suggestions")
    min_similarity: int = Field(default=70, ge=0, le=100, description="Minimum similarity")
    field: Optional[str] = Field(None, description="Field to suggest from (defaults to identifier)")

    @field_validator("partial_query")
    @classmethod
    def validate_partial_query(cls, v: str) -> str:
        """Validate and normalize query input."""
        if not v.strip():
            raise ValueError("Query cannot be empty")
        return v.strip()


class ParseRequest(BaseModel):
    """Request model for parsing a query without running it."""

    query: str = Field(..., description="Query to parse")
    include_sql: bool = Field(default=False, description="Also render a SQL WHERE fragment")
    search_columns: Optional[List[str]] = Field(
        None, description="Columns bare terms map to in the SQL fragment"
    )
