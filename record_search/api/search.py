"""Search API endpoints."""

import time
from typing import Union

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..core.ast_nodes import node_to_dict
from ..core.errors import SearchExecutionError
from ..core.query_parser import to_sql
from ..engine_instance import search_engine
from ..models.request import ParseRequest, SearchRequest, SuggestionRequest
from ..models.response import (
    ErrorDetail,
    ErrorResponse,
    ParseResponse,
    SearchResponse,
    SuggestionResponse,
)

router = APIRouter(prefix="/api/v1", tags=["search"])


def _error_response(error: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=error.type,
            message=error.message,
            details=error.model_dump(exclude_none=True),
        ).model_dump(mode="json"),
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Search a dataset",
    description="Run a boolean query with fuzzy matching, relevance scoring and cursor pagination",
)
async def search_records(request: SearchRequest) -> Union[SearchResponse, JSONResponse]:
    """
    Search the records supplied in the request body.

    Invalid input and unparsable queries return 400 with the error kind,
    offending token and position.
    """
    try:
        result = search_engine.search(request.query, request.dataset, request.options)
    except SearchExecutionError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not result.success:
        return _error_response(result.error)
    return result


@router.post(
    "/suggestions",
    response_model=SuggestionResponse,
    summary="Get query suggestions",
    description="Suggest identifier values similar to a partial query",
)
async def get_suggestions(request: SuggestionRequest) -> SuggestionResponse:
    """Fuzzy suggestions drawn from the distinct values of one field."""
    start_time = time.perf_counter()
    suggestions = search_engine.get_suggestions(
        request.partial_query,
        request.dataset,
        max_suggestions=request.max_suggestions,
        min_similarity=request.min_similarity,
        field=request.field,
    )
    return SuggestionResponse(
        query=request.partial_query,
        suggestions=suggestions,
        execution_time_ms=round((time.perf_counter() - start_time) * 1000, 3),
    )


@router.post(
    "/parse",
    response_model=ParseResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Parse a query",
    description="Return the tokens and syntax tree of a query without running it",
)
async def parse_query(request: ParseRequest) -> Union[ParseResponse, JSONResponse]:
    outcome = search_engine.parser.try_parse(request.query)
    if not outcome.success:
        return _error_response(ErrorDetail(**outcome.error.to_dict()))

    parsed = outcome.parsed
    response = ParseResponse(
        query=request.query,
        tokens=[token.to_dict() for token in parsed.tokens],
        ast=node_to_dict(parsed.ast),
        term_count=parsed.term_count,
        complexity=parsed.complexity,
    )
    if request.include_sql:
        columns = request.search_columns or search_engine.settings.search_fields
        try:
            where_clause, params = to_sql(parsed.ast, columns)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        response.where_clause = where_clause
        response.params = params
    return response
