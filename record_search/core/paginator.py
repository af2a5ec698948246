"""Cursor-based pagination over in-memory result sets."""

import base64
import json
import time
from dataclasses import dataclass
from datetime import date, datetime
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import structlog

from ..models.response import PaginationMetadata
from .cache import TTLCache
from .field_accessor import ABSENT, FieldAccessor, default_accessor, to_datetime

logger = structlog.get_logger(__name__)


@dataclass
class Page:
    """One page of results with its pagination metadata."""

    data: List[Any]
    pagination: PaginationMetadata
    total_count: Optional[int] = None


@dataclass
class CursorValidation:
    valid: bool
    reason: Optional[str] = None


@dataclass
class _Window:
    start: int
    end: int


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_missing(value: Any) -> bool:
    return value is ABSENT or value is None


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def compare_values(a: Any, b: Any) -> int:
    """
    Three-way comparison used for sorting records.

    Missing values sort lowest. Numbers compare numerically, strings by
    case-folded value then raw value, dates chronologically (ISO strings
    are parsed when compared with a date). Anything else compares as text.
    """
    if _is_missing(a) or _is_missing(b):
        return int(_is_missing(b)) - int(_is_missing(a))

    if _is_number(a) and _is_number(b):
        return _sign(a - b)

    if isinstance(a, (datetime, date)) or isinstance(b, (datetime, date)):
        left, right = to_datetime(a), to_datetime(b)
        if left is not None and right is not None:
            return _sign((left - right).total_seconds())

    if isinstance(a, str) and isinstance(b, str):
        left_folded, right_folded = a.casefold(), b.casefold()
        folded = (left_folded > right_folded) - (left_folded < right_folded)
        if folded:
            return folded
        return (a > b) - (a < b)

    left_text, right_text = str(a), str(b)
    return (left_text > right_text) - (left_text < right_text)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class Paginator:
    """
    Paginates sorted results with opaque, self-describing cursors.

    A cursor is URL-safe base64 of ``{"value", "sortValue", "timestamp"}``.
    Pages are located by the record whose cursor field equals the cursor
    value; when that record is gone, by the cursor's sort value.
    """

    def __init__(
        self,
        default_page_size: int = 20,
        max_page_size: int = 100,
        cursor_field: str = "id",
        sort_field: str = "relevance_score",
        sort_direction: str = "DESC",
        enable_count: bool = True,
        cursor_ttl: float = 300,
        cursor_cache_size: int = 1000,
        accessor: Optional[FieldAccessor] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the paginator.

        Args:
            default_page_size: Page size when none is requested
            max_page_size: Upper bound for requested page sizes
            cursor_field: Field that identifies a record in a cursor
            sort_field: Default sort field
            sort_direction: Default sort direction ("ASC" or "DESC")
            enable_count: Report total_count on pages
            cursor_ttl: Seconds a cursor stays valid and cached
            cursor_cache_size: Decoded cursors kept in memory
            accessor: Field accessor shared with the engine
            clock: Time source in epoch seconds
        """
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.cursor_field = cursor_field
        self.sort_field = sort_field
        self.sort_direction = sort_direction.upper()
        self.enable_count = enable_count
        self.cursor_ttl = cursor_ttl
        self.accessor = accessor or default_accessor
        self.clock = clock
        self._cursor_cache: TTLCache[str, Dict[str, Any]] = TTLCache(
            max_size=cursor_cache_size, ttl=cursor_ttl, clock=clock
        )

    def paginate(
        self,
        results: Sequence[Any],
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        direction: str = "next",
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> Page:
        """
        Return one page of results.

        Args:
            results: Full result set (any order)
            cursor: Cursor from a previous page
            page_size: Requested page size, clamped to [1, max_page_size]
            direction: "next" (records after the cursor) or "prev" (records before it)
            sort_field: Sort field for this call
            sort_direction: Sort direction for this call

        Returns:
            Page whose data is in sort order
        """
        sort_field = sort_field or self.sort_field
        sort_direction = (sort_direction or self.sort_direction).upper()
        direction = (direction or "next").lower()
        size = self.clamp_page_size(page_size)

        ordered = self.sort_results(results, sort_field, sort_direction)
        total = len(ordered)
        decoded = self.decode_cursor(cursor) if cursor else None

        window = self._locate(ordered, decoded, size, direction, sort_field, sort_direction)
        page_data = ordered[window.start:window.end]
        has_prev = window.start > 0 and total > 0
        has_next = window.end < total

        metadata = PaginationMetadata(
            page_size=len(page_data),
            requested_page_size=size,
            has_next=has_next,
            has_prev=has_prev,
            next_cursor=(
                self.encode_cursor(page_data[-1], sort_field) if has_next and page_data else None
            ),
            prev_cursor=(
                self.encode_cursor(page_data[0], sort_field) if has_prev and page_data else None
            ),
            current_cursor=cursor,
            start_index=window.start,
            end_index=window.start + len(page_data) - 1 if page_data else None,
            direction=direction,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )
        return Page(
            data=page_data,
            pagination=metadata,
            total_count=total if self.enable_count else None,
        )

    def clamp_page_size(self, page_size: Optional[int]) -> int:
        requested = self.default_page_size if page_size is None else page_size
        return min(max(1, int(requested)), self.max_page_size)

    def sort_results(
        self,
        results: Sequence[Any],
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> List[Any]:
        """Stable sort of results by a field."""
        sort_field = sort_field or self.sort_field
        descending = (sort_direction or self.sort_direction).upper() == "DESC"

        def compare(a: Any, b: Any) -> int:
            result = compare_values(
                self.accessor.get(a, sort_field), self.accessor.get(b, sort_field)
            )
            return -result if descending else result

        return sorted(results or [], key=cmp_to_key(compare))

    def _locate(
        self,
        ordered: List[Any],
        decoded: Optional[Dict[str, Any]],
        size: int,
        direction: str,
        sort_field: str,
        sort_direction: str,
    ) -> _Window:
        total = len(ordered)
        if decoded is None:
            if direction == "prev":
                return _Window(0, 0)
            return _Window(0, min(size, total))

        index = self._find_cursor_index(ordered, decoded, sort_field)
        if direction == "prev":
            end = index if index is not None else self._approximate_position(
                ordered, decoded.get("sortValue"), sort_field, sort_direction, after=False
            )
            return _Window(max(0, end - size), end)

        if index is not None:
            start = index + 1
        else:
            start = self._approximate_position(
                ordered, decoded.get("sortValue"), sort_field, sort_direction, after=True
            )
        return _Window(start, min(start + size, total))

    def _find_cursor_index(
        self, ordered: List[Any], decoded: Dict[str, Any], sort_field: str
    ) -> Optional[int]:
        target = decoded.get("value")
        if target is None:
            return None
        target_text = str(target)
        sort_value = decoded.get("sortValue")
        fallback = None
        for index, item in enumerate(ordered):
            value = self.accessor.get(item, self.cursor_field)
            if _is_missing(value) or str(value) != target_text:
                continue
            # Among records sharing a cursor value, prefer the one with the same sort value
            if compare_values(self.accessor.get(item, sort_field), sort_value) == 0:
                return index
            if fallback is None:
                fallback = index
        return fallback

    def _approximate_position(
        self,
        ordered: List[Any],
        target: Any,
        sort_field: str,
        sort_direction: str,
        after: bool = False,
    ) -> int:
        """
        Binary search for where ``target`` sits in the sort order.

        With ``after`` the first record ordered strictly after ``target`` is
        returned, otherwise the first record not ordered before it.
        """
        descending = sort_direction == "DESC"
        low, high = 0, len(ordered)
        while low < high:
            mid = (low + high) // 2
            comparison = compare_values(self.accessor.get(ordered[mid], sort_field), target)
            if descending:
                comparison = -comparison
            if comparison < 0 or (after and comparison == 0):
                low = mid + 1
            else:
                high = mid
        return low

    def encode_cursor(self, item: Any, sort_field: Optional[str] = None) -> Optional[str]:
        """
        Encode a cursor pointing at ``item``.

        Args:
            item: Record the cursor refers to
            sort_field: Field whose value is stored as the sort value

        Returns:
            URL-safe base64 cursor, or None for a missing item
        """
        if item is None:
            return None

        value = self.accessor.get(item, self.cursor_field)
        sort_value = self.accessor.get(item, sort_field or self.sort_field)
        payload = {
            "value": None if value is ABSENT else value,
            "sortValue": None if sort_value is ABSENT else sort_value,
            "timestamp": int(self.clock() * 1000),
        }
        text = json.dumps(payload, separators=(",", ":"), default=_json_default)
        encoded = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")

        # Round-trip through JSON so cached and freshly decoded payloads match
        self._cursor_cache.set(encoded, json.loads(text))
        return encoded

    def decode_cursor(self, cursor: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Decode a cursor.

        Args:
            cursor: Cursor string

        Returns:
            Cursor payload, or None when the cursor is malformed
        """
        if not cursor or not isinstance(cursor, str):
            return None

        cached = self._cursor_cache.get(cursor)
        if cached is not None:
            return cached

        try:
            raw = base64.urlsafe_b64decode(cursor.encode("ascii"))
            payload = json.loads(raw.decode("utf-8"))
        except (ValueError, TypeError) as e:
            logger.warning("Failed to decode cursor", error=str(e))
            return None

        if not isinstance(payload, dict) or "value" not in payload:
            logger.warning("Failed to decode cursor", error="unexpected cursor payload")
            return None

        self._cursor_cache.set(cursor, payload)
        return payload

    def validate_cursor(self, cursor: Optional[str], results: Sequence[Any]) -> CursorValidation:
        """
        Check that a cursor is decodable, fresh and still points at a record.

        Args:
            cursor: Cursor to check (None is always valid)
            results: Current result set

        Returns:
            CursorValidation with the failure reason, if any
        """
        if not cursor:
            return CursorValidation(valid=True)

        decoded = self.decode_cursor(cursor)
        timestamp = decoded.get("timestamp") if decoded else None
        if decoded is None or not _is_number(timestamp):
            return CursorValidation(valid=False, reason="Invalid cursor format")

        age_ms = self.clock() * 1000 - timestamp
        if age_ms > self.cursor_ttl * 1000:
            return CursorValidation(valid=False, reason="Cursor expired")

        if self._find_cursor_index(list(results or []), decoded, self.sort_field) is None:
            return CursorValidation(valid=False, reason="Cursor item no longer exists")

        return CursorValidation(valid=True)

    def offset_to_cursor(self, page: int, page_size: int, results: Sequence[Any]) -> Dict[str, Any]:
        """
        Translate a 1-based page number into cursor pagination parameters.

        Args:
            page: Page number starting at 1
            page_size: Page size
            results: Full result set

        Returns:
            Dictionary with cursor, page_size and direction
        """
        offset = max(0, (page - 1) * page_size)
        if offset == 0:
            return {"cursor": None, "page_size": page_size, "direction": "next"}

        ordered = self.sort_results(results)
        anchor = ordered[offset - 1] if offset - 1 < len(ordered) else None
        return {
            "cursor": self.encode_cursor(anchor) if anchor is not None else None,
            "page_size": page_size,
            "direction": "next",
        }

    def infinite_scroll_info(self, page: Page) -> Dict[str, Any]:
        """Load-more information for infinite scrolling clients."""
        if not page.pagination.has_next:
            return {"has_more": False, "next_cursor": None, "load_more_url": None}

        next_cursor = page.pagination.next_cursor
        query = urlencode(
            {"cursor": next_cursor, "page_size": self.default_page_size, "direction": "next"}
        )
        remaining = None
        if page.total_count is not None:
            remaining = page.total_count - page.pagination.start_index - len(page.data)
        return {
            "has_more": True,
            "next_cursor": next_cursor,
            "load_more_url": f"?{query}",
            "estimated_remaining": remaining,
        }

    def statistics(self, results: Sequence[Any], page: Page) -> Dict[str, Any]:
        total = len(results)
        current = len(page.data)
        start = page.pagination.start_index
        return {
            "total_items": total,
            "current_page_items": current,
            "estimated_pages": -(-total // self.default_page_size),
            "current_position": {"from": start + 1, "to": start + current, "of": total},
            "completion_percentage": round((start + current) / total * 100) if total else 0,
        }

    def benchmark(self, results: Sequence[Any], iterations: int = 10, page_size: Optional[int] = None) -> Dict[str, Any]:
        """Walk forward through up to ``iterations`` pages and report timings."""
        size = self.clamp_page_size(page_size)
        started = time.perf_counter()
        timings: List[float] = []
        cursor: Optional[str] = None

        for _ in range(max(1, iterations)):
            page_started = time.perf_counter()
            page = self.paginate(results, cursor=cursor, page_size=size)
            timings.append((time.perf_counter() - page_started) * 1000)
            cursor = page.pagination.next_cursor
            if not cursor:
                break

        total_ms = (time.perf_counter() - started) * 1000
        return {
            "total_items": len(results),
            "iterations": len(timings),
            "total_time_ms": round(total_ms, 3),
            "average_page_time_ms": round(sum(timings) / len(timings), 3),
            "max_page_time_ms": round(max(timings), 3),
            "min_page_time_ms": round(min(timings), 3),
        }

    def cache_info(self) -> Dict[str, Any]:
        """Cursor cache size and counters after dropping expired cursors."""
        expired = self._cursor_cache.cleanup_expired()
        info = self._cursor_cache.info()
        info["expired_removed"] = expired
        return info

    def clear_cache(self) -> None:
        self._cursor_cache.clear()
