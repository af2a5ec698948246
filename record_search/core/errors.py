"""Exception hierarchy for the record search engine."""

from enum import Enum
from typing import Any, Dict, Optional


class RecordSearchError(Exception):
    """Base exception for all record search errors.

    Catch this to handle every error raised by the package with a
    single except clause.
    """

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation used for failure responses."""
        return {"type": type(self).__name__, "message": str(self)}


class SearchValidationError(RecordSearchError):
    """Search input has the wrong shape or size."""

    def __init__(self, field: str, value: object, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class ParseErrorKind(str, Enum):
    """Reasons a query can fail to parse."""

    EMPTY_QUERY = "EmptyQuery"
    TOO_MANY_TERMS = "TooManyTerms"
    TERM_TOO_SHORT = "TermTooShort"
    UNMATCHED_PARENTHESIS = "UnmatchedParenthesis"
    MISSING_FIELD_VALUE = "MissingFieldValue"
    UNEXPECTED_TOKEN = "UnexpectedToken"


class QueryParseError(RecordSearchError):
    """Query string is not valid search syntax."""

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        token: Optional[str] = None,
        position: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.token = token
        self.position = position
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"kind": self.kind.value, "token": self.token, "position": self.position})
        return data


class SearchExecutionError(RecordSearchError):
    """Unexpected failure while filtering or scoring records."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Search failed during {stage}: {cause}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["stage"] = self.stage
        return data
