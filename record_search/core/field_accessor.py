"""Dot-path field lookup over heterogeneous records."""

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timezone
from typing import Any, Optional


class _Absent:
    """Marker for a field that is not present on a record."""

    _instance = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

SCORE_ATTRIBUTES = frozenset(
    {"relevance_score", "normalized_score", "fuzzy_score", "edit_distance", "exact_match"}
)


class FieldAccessor:
    """Resolves ``a.b.0.c`` style paths against mappings, sequences and objects.

    Lookups never raise: a missing key, an out-of-range index, a ``None``
    intermediate or an error from a property all resolve to ``ABSENT``.
    """

    def get(self, container: Any, path: str) -> Any:
        """
        Resolve a dot path against a record.

        Args:
            container: Mapping, sequence, object or ScoredRecord
            path: Dot-separated field path

        Returns:
            The field value or ABSENT
        """
        if container is None or container is ABSENT or not path:
            return ABSENT

        # Scored wrappers expose their scores; everything else lives on the record
        if hasattr(container, "record") and hasattr(container, "relevance_score"):
            if path in SCORE_ATTRIBUTES:
                return getattr(container, path)
            container = container.record

        current = container
        for part in path.split("."):
            current = self._step(current, part)
            if current is ABSENT:
                return ABSENT
        return current

    def get_text(self, container: Any, path: str) -> str:
        """Resolve a path and render it as a string ("" when missing)."""
        value = self.get(container, path)
        if value is ABSENT or value is None:
            return ""
        return str(value)

    def _step(self, current: Any, part: str) -> Any:
        if current is None or current is ABSENT:
            return ABSENT
        try:
            if isinstance(current, Mapping):
                return current[part] if part in current else ABSENT
            if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
                index = int(part)
                return current[index]
            return getattr(current, part, ABSENT)
        except (LookupError, ValueError, TypeError, AttributeError):
            return ABSENT


default_accessor = FieldAccessor()


def to_number(value: Any) -> Optional[float]:
    """Interpret a field value as a number; None when it is not numeric."""
    if value is ABSENT or value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def to_datetime(value: Any) -> Optional[datetime]:
    """Interpret a field value as an aware datetime (naive values are taken as UTC)."""
    if value is ABSENT or value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
