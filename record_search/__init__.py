"""
Record Search - boolean search over in-memory user records.

This package parses boolean queries with phrases, wildcards and field
terms, matches them against caller-supplied records with typo tolerance,
ranks the matches with a weighted relevance model and pages the results
with opaque cursors.
"""

__version__ = "1.0.0"

from .core.engine import SearchEngine
from .models.request import SearchOptions
from .models.response import ScoredRecord, SearchResponse

__all__ = [
    "SearchEngine",
    "SearchOptions",
    "ScoredRecord",
    "SearchResponse",
]
