"""Main search engine implementation."""

import hashlib
import json
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from ..config.settings import Settings, get_settings
from ..models.request import SearchOptions
from ..models.response import (
    ErrorDetail,
    ScoredRecord,
    SearchMetadata,
    SearchResponse,
    Suggestion,
)
from .ast_nodes import BinaryOp, BinaryOperator, FieldSearch, Group, Node, ParsedQuery, SearchTerm, UnaryOp
from .cache import TTLCache
from .errors import RecordSearchError, SearchExecutionError, SearchValidationError
from .field_accessor import ABSENT, FieldAccessor, default_accessor
from .fuzzy_matcher import FuzzyMatcher
from .paginator import Paginator
from .query_parser import QueryParser
from .relevance_scorer import RelevanceScorer, ScoringFields, ScoringProfile

logger = structlog.get_logger(__name__)

ENGINE_VERSION = "record-search/1.0"

# (scored results, query complexity, term count)
CachedResult = Tuple[List[ScoredRecord], float, int]


@lru_cache(maxsize=256)
def _wildcard_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a ``*`` glob into an unanchored, case-insensitive regex."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.IGNORECASE)


@lru_cache(maxsize=256)
def _word_regex(value: str) -> "re.Pattern[str]":
    """Match ``value`` as a whole word; ``*`` matches any run of word characters."""
    body = r"\w*".join(re.escape(part) for part in value.split("*"))
    return re.compile(rf"(?<!\w){body}(?!\w)", re.IGNORECASE)


def dataset_fingerprint(dataset: Sequence[Any]) -> str:
    """
    Content hash of a dataset for result cache keys.

    Records are serialized and hashed one at a time, so memory stays flat,
    but every record is visited on every cached search (hit or miss). With
    ``cache_enabled=False`` no fingerprint is computed.
    """
    hasher = hashlib.blake2b(digest_size=16)
    for record in dataset:
        hasher.update(json.dumps(record, sort_keys=True, default=str, separators=(",", ":")).encode("utf-8"))
        hasher.update(b"\x1e")
    return hasher.hexdigest()


class SearchEngine:
    """
    In-memory record search.

    Each call runs: validate, cache lookup, parse, filter, fuzzy
    augmentation, score, truncate, cache store, then sort or paginate.
    Pagination and sorting run on every call, including cache hits, so
    cursors always refer to the current request.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        parser: Optional[QueryParser] = None,
        fuzzy_matcher: Optional[FuzzyMatcher] = None,
        scorer: Optional[RelevanceScorer] = None,
        paginator: Optional[Paginator] = None,
        accessor: Optional[FieldAccessor] = None,
    ) -> None:
        """
        Initialize the search engine.

        Args:
            settings: Configuration (the cached application settings when None)
            parser: Query parser override
            fuzzy_matcher: Fuzzy matcher override
            scorer: Relevance scorer override
            paginator: Paginator override
            accessor: Field accessor shared by every component
        """
        self.settings = settings or get_settings()
        s = self.settings
        self.accessor = accessor or default_accessor

        self.parser = parser or QueryParser(
            default_operator=s.default_operator,
            min_term_length=s.min_term_length,
            max_terms=s.max_terms,
            support_wildcards=s.support_wildcards,
            field_mapping=s.field_mapping,
        )
        self.fuzzy_matcher = fuzzy_matcher or FuzzyMatcher(
            max_distance=s.fuzzy_max_distance,
            min_length=s.fuzzy_min_length,
            case_sensitive=s.case_sensitive,
            transpositions=s.fuzzy_transpositions,
            prefix_matching=s.fuzzy_prefix_matching,
        )
        self.scorer = scorer or RelevanceScorer(
            fields=ScoringFields(identifier=s.identifier_field),
            max_score=s.max_score,
            normalize_scores=s.normalize_scores,
            accessor=self.accessor,
        )
        self.paginator = paginator or Paginator(
            default_page_size=s.default_page_size,
            max_page_size=s.max_page_size,
            cursor_field=s.cursor_field,
            cursor_ttl=s.cursor_ttl,
            accessor=self.accessor,
        )
        self._cache: Optional[TTLCache[str, CachedResult]] = (
            TTLCache(max_size=s.cache_max_entries, ttl=s.cache_ttl) if s.cache_enabled else None
        )

        # Performance tracking
        self._stats_lock = threading.Lock()
        self._stats = {
            "total_searches": 0,
            "cache_hits": 0,
            "errors": 0,
            "total_response_time_ms": 0.0,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchEngine":
        """Build an engine with every component configured from ``settings``."""
        return cls(settings)

    def search(
        self,
        query: Any,
        dataset: Any,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        """
        Search a dataset.

        Args:
            query: Boolean search query
            dataset: List of records (mappings or objects)
            options: Per-call options

        Returns:
            SearchResponse; validation and parse failures come back with
            success=False and an ErrorDetail

        Raises:
            SearchExecutionError: If filtering, fuzzy matching or scoring fails unexpectedly
        """
        start = time.perf_counter()
        search_id = uuid.uuid4().hex
        options = options or SearchOptions()

        try:
            self.validate_input(query, dataset)
            profile = self.scorer.with_weight_overrides(
                self.scorer.profile_for_intent(options.intent), options.weights
            )
        except SearchValidationError as e:
            logger.info("Search validation failed", search_id=search_id, field=e.field, error=e.reason)
            return self._failure(e, search_id, start)

        search_fields = options.search_fields or self.settings.search_fields
        fuzzy_enabled = self.settings.enable_fuzzy and options.enable_fuzzy
        threshold = (
            options.fuzzy_threshold
            if options.fuzzy_threshold is not None
            else self.settings.fuzzy_threshold
        )

        cache_key = None
        cached: Optional[CachedResult] = None
        if self._cache is not None:
            cache_key = self._cache_key(query, dataset, options, search_fields, fuzzy_enabled, threshold)
            cached = self._cache.get(cache_key)

        if cached is not None:
            results, complexity, term_count = cached
            from_cache = True
            logger.debug("Search cache hit", search_id=search_id, query=query)
        else:
            from_cache = False
            outcome = self.parser.try_parse(query)
            if not outcome.success:
                return self._failure(outcome.error, search_id, start)

            parsed = outcome.parsed
            try:
                results = self._execute(parsed, dataset, options, search_fields, fuzzy_enabled, threshold, profile)
            except SearchExecutionError:
                self._update_stats(start, from_cache=False, has_error=True)
                raise
            complexity, term_count = parsed.complexity, parsed.term_count
            if self._cache is not None:
                self._cache.set(cache_key, (results, complexity, term_count))

        pagination = None
        if options.pagination is not None:
            page = self.paginator.paginate(
                results,
                cursor=options.pagination.cursor,
                page_size=options.pagination.page_size,
                direction=options.pagination.direction,
                sort_field=options.sort_field,
                sort_direction=options.sort_direction,
            )
            data = page.data
            total_count = page.total_count if page.total_count is not None else len(results)
            pagination = page.pagination
        else:
            data = results
            if options.sort_field:
                data = self.paginator.sort_results(results, options.sort_field, options.sort_direction)
            total_count = len(results)

        response_time_ms = self._update_stats(start, from_cache=from_cache, has_error=False)
        logger.debug(
            "Search completed",
            search_id=search_id,
            total_count=total_count,
            returned=len(data),
            from_cache=from_cache,
            response_time_ms=response_time_ms,
        )
        return SearchResponse(
            success=True,
            data=data,
            total_count=total_count,
            pagination=pagination,
            search_metadata=SearchMetadata(
                search_id=search_id,
                response_time_ms=response_time_ms,
                from_cache=from_cache,
                query_complexity=complexity,
                term_count=term_count,
                engine_version=ENGINE_VERSION,
            ),
        )

    def validate_input(self, query: Any, dataset: Any) -> None:
        """
        Check the shape and size of search input.

        Raises:
            SearchValidationError: On the first failed check
        """
        if not isinstance(query, str) or not query:
            raise SearchValidationError("query", query, "Query must be a non-empty string")
        if not isinstance(dataset, (list, tuple)):
            raise SearchValidationError("dataset", type(dataset).__name__, "Dataset must be an array")
        max_query_length = self.settings.max_query_length
        if len(query) > max_query_length:
            raise SearchValidationError(
                "query", len(query), f"Query too long (max {max_query_length} characters)"
            )
        max_dataset_size = self.settings.max_dataset_size
        if len(dataset) > max_dataset_size:
            raise SearchValidationError(
                "dataset", len(dataset), f"Dataset too large (max {max_dataset_size:,} items)"
            )

    def _execute(
        self,
        parsed: ParsedQuery,
        dataset: Sequence[Any],
        options: SearchOptions,
        search_fields: List[str],
        fuzzy_enabled: bool,
        threshold: int,
        profile: ScoringProfile,
    ) -> List[ScoredRecord]:
        candidates = self._run_stage("filtering", self.apply_filters, dataset, options.filters)
        matched = self._run_stage(
            "matching",
            self.match_records,
            candidates,
            parsed.ast,
            search_fields,
            threshold if fuzzy_enabled else None,
        )

        if fuzzy_enabled:
            results = self._run_stage("fuzzy_matching", self.annotate_fuzzy, parsed, matched)
        else:
            results = [ScoredRecord(record=record) for record in matched]

        if self.settings.enable_relevance_scoring:
            results = self._run_stage(
                "scoring",
                self.scorer.score_results,
                parsed,
                results,
                profile,
                None,
                options.include_breakdown,
            )

        return results[: self.settings.max_results]

    def _run_stage(self, stage: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except RecordSearchError:
            raise
        except Exception as e:
            logger.error("Search stage failed", stage=stage, error=str(e), exc_info=True)
            raise SearchExecutionError(stage, e) from e

    def apply_filters(self, dataset: Sequence[Any], filters: Optional[Dict[str, Any]]) -> List[Any]:
        """
        Keep records whose fields equal the filter values.

        Args:
            dataset: Records to filter
            filters: Field path to expected value; a list value means membership

        Returns:
            Records passing every filter, in dataset order
        """
        if not filters:
            return list(dataset)

        def passes(record: Any) -> bool:
            for field_path, expected in filters.items():
                value = self.accessor.get(record, field_path)
                if value is ABSENT:
                    return False
                if isinstance(expected, (list, tuple, set)):
                    if value not in list(expected):
                        return False
                elif value != expected:
                    return False
            return True

        return [record for record in dataset if passes(record)]

    def match_records(
        self,
        records: Sequence[Any],
        ast: Node,
        search_fields: List[str],
        fuzzy_threshold: Optional[int] = None,
    ) -> List[Any]:
        """
        Evaluate the query against each record.

        A record matches when the strict evaluation is true or, with a
        fuzzy threshold, when the evaluation with fuzzy term matching is.
        """
        matched = []
        for record in records:
            if self.matches(record, ast, search_fields):
                matched.append(record)
            elif fuzzy_threshold is not None and self.matches(
                record, ast, search_fields, fuzzy_threshold
            ):
                matched.append(record)
        return matched

    def matches(
        self,
        record: Any,
        node: Node,
        search_fields: List[str],
        fuzzy_threshold: Optional[int] = None,
    ) -> bool:
        """Evaluate one AST node against one record."""
        if isinstance(node, SearchTerm):
            return self._matches_term(record, node, search_fields, fuzzy_threshold)
        if isinstance(node, FieldSearch):
            return self._matches_field(record, node)
        if isinstance(node, BinaryOp):
            left = self.matches(record, node.left, search_fields, fuzzy_threshold)
            right = self.matches(record, node.right, search_fields, fuzzy_threshold)
            if node.operator is BinaryOperator.AND:
                return left and right
            return left or right
        if isinstance(node, UnaryOp):
            return not self.matches(record, node.operand, search_fields, fuzzy_threshold)
        if isinstance(node, Group):
            return self.matches(record, node.expression, search_fields, fuzzy_threshold)
        raise TypeError(f"Unknown AST node: {node!r}")

    def _matches_term(
        self,
        record: Any,
        term: SearchTerm,
        search_fields: List[str],
        fuzzy_threshold: Optional[int],
    ) -> bool:
        needle = term.value.lower()
        for field_path in search_fields:
            value = self.accessor.get(record, field_path)
            if value is ABSENT or value is None:
                continue
            text = str(value).lower()
            if term.exact:
                if text == needle:
                    return True
            elif term.wildcard:
                if _wildcard_regex(term.value).search(text):
                    return True
            elif needle in text:
                return True
            elif fuzzy_threshold is not None and self.fuzzy_matcher.find_matches(
                term.value, [text], threshold=fuzzy_threshold, limit=1
            ):
                return True
        return False

    def _matches_field(self, record: Any, node: FieldSearch) -> bool:
        value = self.accessor.get(record, node.field)
        if value is ABSENT or value is None:
            return False
        text = str(value).lower()
        needle = node.value.lower()
        if node.exact:
            return text == needle
        return _word_regex(node.value).search(text) is not None

    def annotate_fuzzy(self, parsed: ParsedQuery, records: Sequence[Any]) -> List[ScoredRecord]:
        """Attach fuzzy similarity of the identifier field to each record."""
        terms = self.scorer.query_terms(parsed)
        query_text = " ".join(terms) if terms else parsed.original_query.strip()
        normalized_query = self.fuzzy_matcher.normalize(query_text)
        identifier = self.scorer.fields.identifier

        annotated = []
        for record in records:
            value = self.accessor.get_text(record, identifier)
            match = self.fuzzy_matcher.score_value(query_text, value)
            annotated.append(
                ScoredRecord(
                    record=record,
                    fuzzy_score=match.similarity,
                    edit_distance=match.distance,
                    exact_match=bool(value) and self.fuzzy_matcher.normalize(value) == normalized_query,
                )
            )
        return annotated

    def _cache_key(
        self,
        query: str,
        dataset: Sequence[Any],
        options: SearchOptions,
        search_fields: List[str],
        fuzzy_enabled: bool,
        threshold: int,
    ) -> str:
        key = {
            "query": query.strip().lower(),
            "filters": options.filters,
            "search_fields": search_fields,
            "fuzzy": fuzzy_enabled,
            "fuzzy_threshold": threshold,
            "intent": options.intent,
            "weights": options.weights,
            "include_breakdown": options.include_breakdown,
            "dataset_size": len(dataset),
            "dataset": dataset_fingerprint(dataset),
        }
        return json.dumps(key, sort_keys=True, default=str)

    def _failure(self, error: RecordSearchError, search_id: str, start: float) -> SearchResponse:
        if not isinstance(error, SearchValidationError):
            logger.info("Search query rejected", search_id=search_id, error=str(error))
        response_time_ms = self._update_stats(start, from_cache=False, has_error=True)
        return SearchResponse(
            success=False,
            error=ErrorDetail(**error.to_dict()),
            search_metadata=SearchMetadata(
                search_id=search_id,
                response_time_ms=response_time_ms,
                engine_version=ENGINE_VERSION,
            ),
        )

    def _update_stats(self, start: float, from_cache: bool, has_error: bool) -> float:
        response_time_ms = round((time.perf_counter() - start) * 1000, 3)
        if not self.settings.performance_tracking:
            return response_time_ms
        with self._stats_lock:
            self._stats["total_searches"] += 1
            self._stats["total_response_time_ms"] += response_time_ms
            if from_cache:
                self._stats["cache_hits"] += 1
            if has_error:
                self._stats["errors"] += 1
        return response_time_ms

    def get_suggestions(
        self,
        partial_query: str,
        dataset: Sequence[Any],
        max_suggestions: int = 10,
        min_similarity: int = 70,
        field: Optional[str] = None,
    ) -> List[Suggestion]:
        """
        Suggest field values similar to a partial query.

        Args:
            partial_query: Text typed so far
            dataset: Records to draw values from
            max_suggestions: Maximum suggestions returned
            min_similarity: Minimum similarity (0-100)
            field: Field to draw values from (the identifier field when None)

        Returns:
            Suggestions ordered by similarity
        """
        field_path = field or self.scorer.fields.identifier
        seen = set()
        candidates = []
        for record in dataset or []:
            value = self.accessor.get_text(record, field_path)
            if value and value not in seen:
                seen.add(value)
                candidates.append(value)

        matches = self.fuzzy_matcher.find_matches(
            partial_query, candidates, threshold=min_similarity, limit=max_suggestions
        )
        return [
            Suggestion(text=match.text, similarity=match.similarity, distance=match.distance)
            for match in matches
        ]

    def get_metrics(self) -> Dict[str, Any]:
        """Get engine statistics."""
        with self._stats_lock:
            stats = dict(self._stats)

        total = stats["total_searches"]
        if total > 0:
            average = stats["total_response_time_ms"] / total
            hit_rate = stats["cache_hits"] / total * 100
            error_rate = stats["errors"] / total * 100
        else:
            average = hit_rate = error_rate = 0.0

        return {
            "total_searches": total,
            "average_response_time_ms": round(average, 3),
            "cache_hit_rate": round(hit_rate, 2),
            "error_rate": round(error_rate, 2),
            "cache_size": len(self._cache) if self._cache is not None else 0,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def clear_cache(self) -> None:
        """Clear the result cache and the cursor cache."""
        if self._cache is not None:
            self._cache.clear()
        self.paginator.clear_cache()

    def performance_test(self, queries: Sequence[str], dataset: Sequence[Any]) -> Dict[str, Any]:
        """
        Run a batch of queries and summarize their timings.

        Args:
            queries: Queries to run in order
            dataset: Records to search

        Returns:
            Totals, success rate, response-time extremes and per-query results
        """
        runs = []
        for query in queries:
            started = time.perf_counter()
            try:
                response = self.search(query, dataset)
            except SearchExecutionError as e:
                runs.append({
                    "query": query,
                    "success": False,
                    "error": str(e),
                    "response_time_ms": (time.perf_counter() - started) * 1000,
                })
                continue

            elapsed = (time.perf_counter() - started) * 1000
            run = {
                "query": query,
                "success": response.success,
                "response_time_ms": elapsed,
                "result_count": len(response.data),
                "from_cache": response.search_metadata.from_cache,
            }
            if not response.success:
                run["error"] = response.error.message
            runs.append(run)

        successful = [run["response_time_ms"] for run in runs if run["success"]]
        return {
            "total_queries": len(queries),
            "successful_queries": len(successful),
            "success_rate": len(successful) / len(queries) * 100 if queries else 0.0,
            "average_response_time_ms": sum(successful) / len(successful) if successful else 0.0,
            "max_response_time_ms": max(successful) if successful else 0.0,
            "min_response_time_ms": min(successful) if successful else 0.0,
            "results": runs,
        }
