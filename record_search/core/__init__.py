"""Core search engine functionality."""

from .cache import TTLCache
from .engine import SearchEngine
from .errors import (
    ParseErrorKind,
    QueryParseError,
    RecordSearchError,
    SearchExecutionError,
    SearchValidationError,
)
from .fuzzy_matcher import FuzzyMatcher
from .normalizer import TextNormalizer
from .paginator import Paginator
from .query_parser import QueryParser
from .relevance_scorer import RelevanceScorer

__all__ = [
    "SearchEngine",
    "QueryParser",
    "FuzzyMatcher",
    "TextNormalizer",
    "RelevanceScorer",
    "Paginator",
    "TTLCache",
    "RecordSearchError",
    "SearchValidationError",
    "QueryParseError",
    "ParseErrorKind",
    "SearchExecutionError",
]
