"""Fuzzy matching algorithms for typo-tolerant search."""

import math
import time
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog
from rapidfuzz.distance import DamerauLevenshtein, Levenshtein

from .normalizer import TextNormalizer, decompose_hangul

logger = structlog.get_logger(__name__)

MAX_EXPANSIONS = 20

_QWERTY_ROWS = ["qwertyuiop", "asdfghjkl", "zxcvbnm"]


def _build_keyboard_neighbors() -> Dict[str, str]:
    neighbors: Dict[str, str] = {}
    for row_index, row in enumerate(_QWERTY_ROWS):
        for col, char in enumerate(row):
            adjacent = []
            for r in (row_index - 1, row_index, row_index + 1):
                if 0 <= r < len(_QWERTY_ROWS):
                    for c in (col - 1, col, col + 1):
                        if 0 <= c < len(_QWERTY_ROWS[r]) and (r, c) != (row_index, col):
                            adjacent.append(_QWERTY_ROWS[r][c])
            neighbors[char] = "".join(adjacent)
    return neighbors


KEYBOARD_NEIGHBORS = _build_keyboard_neighbors()

# Frequently confused Korean jamo on the 2-set keyboard, as produced by NFD:
# initial ㅁ/ㄴ and ㅇ/ㅎ, medial ㅏ/ㅓ and ㅗ/ㅜ
HANGUL_CONFUSIONS = {
    "\u1106": "\u1102", "\u1102": "\u1106",
    "\u110b": "\u1112", "\u1112": "\u110b",
    "\u1161": "\u1165", "\u1165": "\u1161",
    "\u1169": "\u116e", "\u116e": "\u1169",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


@dataclass
class MatchResult:
    """Result of comparing a query to one candidate."""

    text: str
    similarity: int
    distance: int
    prefix_match: bool = False


class FuzzyMatcher:
    """Edit-distance based matcher with prefix alignment and query expansion."""

    def __init__(
        self,
        max_distance: int = 2,
        min_length: int = 2,
        case_sensitive: bool = False,
        transpositions: bool = True,
        prefix_matching: bool = True,
        normalizer: Optional[TextNormalizer] = None,
    ) -> None:
        """
        Initialize the fuzzy matcher.

        Args:
            max_distance: Largest edit distance a match may have
            min_length: Shortest candidate considered
            case_sensitive: Compare with original case when True
            transpositions: Count an adjacent swap as a single edit
            prefix_matching: Also compare longer candidates on their prefix
            normalizer: Custom normalizer; overrides case_sensitive when given
        """
        self.max_distance = max_distance
        self.min_length = min_length
        self.case_sensitive = case_sensitive
        self.transpositions = transpositions
        self.prefix_matching = prefix_matching
        self.normalizer = normalizer or TextNormalizer(case_sensitive=case_sensitive)
        self._metric = DamerauLevenshtein if transpositions else Levenshtein

    def normalize(self, text: Any) -> str:
        if text is None:
            return ""
        return self.normalizer.normalize(str(text))

    def distance(self, a: Any, b: Any) -> int:
        """Edit distance between two strings after normalization."""
        left = self.normalize(a)
        right = self.normalize(b)
        if not left or not right:
            return max(len(left), len(right))
        return self._metric.distance(left, right)

    def similarity(self, a: Any, b: Any) -> int:
        """
        Similarity score in [0, 100].

        Args:
            a: First string
            b: Second string

        Returns:
            100 for identical normalized strings, 0 when exactly one is empty
        """
        left = self.normalize(a)
        right = self.normalize(b)
        return self._similarity_normalized(left, right)

    def _similarity_normalized(self, left: str, right: str) -> int:
        if left == right:
            return 100
        max_len = max(len(left), len(right))
        if not left or not right:
            return 0
        distance = self._metric.distance(left, right)
        return round_half_up((1 - distance / max_len) * 100)

    def _compare(self, query: str, candidate: str) -> MatchResult:
        """Compare normalized strings; similarity and filter distance use the best alignment."""
        full_distance = self._metric.distance(query, candidate)
        best_similarity = self._similarity_normalized(query, candidate)
        best_distance = full_distance
        prefix_match = False

        if self.prefix_matching and query and len(candidate) > len(query):
            prefix = candidate[: len(query)]
            prefix_distance = self._metric.distance(query, prefix)
            prefix_similarity = self._similarity_normalized(query, prefix)
            if (prefix_similarity, -prefix_distance) > (best_similarity, -best_distance):
                best_similarity = prefix_similarity
                best_distance = prefix_distance
                prefix_match = True

        return MatchResult(
            text=candidate,
            similarity=best_similarity,
            distance=best_distance,
            prefix_match=prefix_match,
        )

    def find_matches(
        self,
        query: Any,
        candidates: Iterable[Any],
        threshold: float = 60,
        limit: int = 10,
    ) -> List[MatchResult]:
        """
        Find candidates similar to the query.

        Args:
            query: Search text
            candidates: Strings to compare against (None entries are skipped)
            threshold: Minimum similarity (0-100)
            limit: Maximum number of results

        Returns:
            Matches sorted by similarity desc, then whole-string distance asc,
            then input order. ``MatchResult.distance`` is the whole-string
            edit distance.
        """
        normalized_query = self.normalize(query)
        if not normalized_query or candidates is None or limit <= 0:
            return []

        scored = []
        for order, candidate in enumerate(candidates):
            if candidate is None:
                continue
            text = str(candidate)
            normalized = self.normalize(text)
            if len(normalized) < self.min_length:
                continue

            aligned = self._compare(normalized_query, normalized)
            if aligned.similarity < threshold or aligned.distance > self.max_distance:
                continue

            whole_distance = self._metric.distance(normalized_query, normalized)
            scored.append(
                (
                    -aligned.similarity,
                    whole_distance,
                    order,
                    MatchResult(
                        text=text,
                        similarity=aligned.similarity,
                        distance=whole_distance,
                        prefix_match=aligned.prefix_match,
                    ),
                )
            )

        scored.sort(key=lambda item: item[:3])
        return [item[3] for item in scored[:limit]]

    def score_value(self, query: Any, value: Any) -> MatchResult:
        """Score a single field value against the query without filtering."""
        normalized_query = self.normalize(query)
        normalized_value = self.normalize(value)
        aligned = self._compare(normalized_query, normalized_value)
        whole_distance = self._metric.distance(normalized_query, normalized_value)
        return MatchResult(
            text="" if value is None else str(value),
            similarity=aligned.similarity,
            distance=whole_distance,
            prefix_match=aligned.prefix_match,
        )

    def expand_query(self, query: Any, keyboard_typos: bool = True) -> List[str]:
        """
        Generate single-edit variants of a query.

        Args:
            query: Original search text
            keyboard_typos: Include substitutions with adjacent keyboard keys

        Returns:
            Up to 20 distinct variants, the original query first
        """
        if query is None:
            return []
        original = str(query)
        if len(original) < self.min_length:
            return [original]

        normalized = self.normalize(original)
        variants: Dict[str, None] = {original: None}

        for i in range(len(normalized)):
            if len(normalized) > 1:
                variants.setdefault(normalized[:i] + normalized[i + 1:], None)
            if i < len(normalized) - 1:
                swapped = normalized[:i] + normalized[i + 1] + normalized[i] + normalized[i + 2:]
                variants.setdefault(swapped, None)

        if keyboard_typos:
            for i, char in enumerate(normalized):
                for neighbor in KEYBOARD_NEIGHBORS.get(char, ""):
                    variants.setdefault(normalized[:i] + neighbor + normalized[i + 1:], None)

            jamo = decompose_hangul(normalized)
            for i, char in enumerate(jamo):
                if char in HANGUL_CONFUSIONS:
                    replaced = unicodedata.normalize("NFC", jamo[:i] + HANGUL_CONFUSIONS[char] + jamo[i + 1:])
                    variants.setdefault(replaced, None)

        return list(variants)[:MAX_EXPANSIONS]

    def benchmark(self, query: Any, candidates: List[Any], threshold: float = 60) -> Dict[str, Any]:
        """
        Time a single find_matches call.

        Args:
            query: Search text
            candidates: Candidate strings
            threshold: Minimum similarity

        Returns:
            Dictionary with counts, timings and the top five matches
        """
        start = time.perf_counter()
        results = self.find_matches(query, candidates, threshold=threshold)
        elapsed_ms = (time.perf_counter() - start) * 1000

        summary = {
            "query": query,
            "candidates_count": len(candidates),
            "results_count": len(results),
            "execution_time_ms": round(elapsed_ms, 3),
            "average_time_per_candidate_ms": (
                round(elapsed_ms / len(candidates), 6) if candidates else 0.0
            ),
            "results": results[:5],
        }
        logger.debug("Fuzzy benchmark complete", query=query, execution_time_ms=summary["execution_time_ms"])
        return summary
