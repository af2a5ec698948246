"""Multi-factor relevance scoring for matched records."""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, Field

from ..models.response import FactorScore, ScoreBreakdown, ScoredRecord
from .ast_nodes import ParsedQuery
from .errors import SearchValidationError
from .field_accessor import FieldAccessor, default_accessor, to_datetime, to_number
from .normalizer import TextNormalizer
from .query_parser import positive_terms

logger = structlog.get_logger(__name__)

TEXT_SCORE_CAP = 20.0
ACTIVITY_SCORE_CAP = 25.0
RECENCY_SCORE_MAX = 15.0
FIELD_SCORE_CAP = 15.0
BEHAVIOR_SCORE_CAP = 15.0

HIGH_VALUE_VOLUME = 1_000_000
MEDIUM_VALUE_VOLUME = 100_000


class ScoreWeights(BaseModel):
    """Weights applied to the top-level relevance factors."""

    identifier: float = Field(default=3.0, ge=0, description="Per-term bonus for identifier containment")
    exact_match: float = Field(default=5.0, ge=0, description="Multiplier for the text match score")
    partial_match: float = Field(default=2.0, ge=0)
    fuzzy_match: float = Field(default=1.0, ge=0, description="Multiplier for fuzzy similarity")
    activity: float = Field(default=1.5, ge=0, description="Multiplier for the activity score")
    recency: float = Field(default=2.0, ge=0, description="Multiplier for the recency score")


class BehaviorWeights(BaseModel):
    """Blend of the behavior sub-scores."""

    volume: float = Field(default=0.3, ge=0)
    frequency: float = Field(default=0.2, ge=0)
    login: float = Field(default=0.1, ge=0)
    retention: float = Field(default=0.4, ge=0)


class ScoringFields(BaseModel):
    """Record fields the scorer reads."""

    identifier: str = "userId"
    activity_days: str = "gameDays"
    volume: str = "netBet"
    activity_state: str = "status"
    days_inactive: str = "dormantDays"
    last_event: str = "lastGameDate"
    first_event: str = "firstGameDate"
    login_count: str = "loginCount"


class ScoringProfile(BaseModel):
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    behavior: BehaviorWeights = Field(default_factory=BehaviorWeights)


@dataclass
class GroupedResult:
    """A scored record with its group and in-group adjusted score."""

    result: ScoredRecord
    group: str
    adjusted_score: float


QueryInput = Union[ParsedQuery, str, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelevanceScorer:
    """
    Scores matched records by text match, activity, recency and behavior.

    Each factor is bounded; the weighted sum is clamped to ``max_score``.
    Scores can be min-max normalized to 0-100 across one result set.
    """

    def __init__(
        self,
        profile: Optional[ScoringProfile] = None,
        fields: Optional[ScoringFields] = None,
        max_score: float = 100.0,
        normalize_scores: bool = True,
        accessor: Optional[FieldAccessor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the scorer.

        Args:
            profile: Default weights (a fresh ScoringProfile when None)
            fields: Record field names used by the factors
            max_score: Upper bound of the relevance score
            normalize_scores: Add normalized 0-100 scores and sort by them
            accessor: Field accessor shared with the engine
            clock: Source of "now" for date-based factors
        """
        self.profile = profile or ScoringProfile()
        self.fields = fields or ScoringFields()
        self.max_score = max_score
        self.normalize_scores = normalize_scores
        self.accessor = accessor or default_accessor
        self.clock = clock
        self._normalizer = TextNormalizer()

    def query_terms(self, query: QueryInput) -> List[str]:
        """
        Extract scoring terms from a query.

        Args:
            query: ParsedQuery (positive search terms are used) or free text

        Returns:
            Lowercase terms with wildcard markers removed
        """
        if query is None:
            return []
        if isinstance(query, ParsedQuery):
            raw_terms = positive_terms(query.ast)
        else:
            raw_terms = self._normalizer.extract_terms(str(query))

        terms = []
        for term in raw_terms:
            cleaned = term.replace("*", "").strip().lower()
            if cleaned:
                terms.append(cleaned)
        return terms

    def score_results(
        self,
        query: QueryInput,
        results: Sequence[Any],
        profile: Optional[ScoringProfile] = None,
        normalize: Optional[bool] = None,
        include_breakdown: bool = True,
    ) -> List[ScoredRecord]:
        """
        Score and sort matched records.

        Args:
            query: ParsedQuery or free-text query
            results: Records or ScoredRecords
            profile: Weights for this call (the scorer default when None)
            normalize: Override the scorer's normalization setting
            include_breakdown: Attach per-factor breakdowns

        Returns:
            ScoredRecords sorted by score, highest first. Queries without
            positive terms still score on the record factors (activity,
            recency and behavior).
        """
        wrapped = [self._wrap(item) for item in results or []]
        terms = self.query_terms(query)
        if not wrapped:
            return wrapped

        profile = profile or self.profile
        scored = []
        for item in wrapped:
            breakdown = self.score_breakdown(terms, item, profile)
            scored.append(
                item.model_copy(
                    update={
                        "relevance_score": self._clamp(breakdown.total),
                        "score_breakdown": breakdown if include_breakdown else None,
                    }
                )
            )

        normalize = self.normalize_scores if normalize is None else normalize
        if normalize:
            scored = self.normalize_results(scored)
            scored.sort(key=lambda r: r.normalized_score, reverse=True)
        else:
            scored.sort(key=lambda r: r.relevance_score, reverse=True)
        return scored

    def calculate_relevance_score(
        self, terms: List[str], record: Any, profile: Optional[ScoringProfile] = None
    ) -> float:
        """Relevance score of one record, clamped to [0, max_score]."""
        return self._clamp(self.score_breakdown(terms, record, profile).total)

    def score_breakdown(
        self, terms: List[str], record: Any, profile: Optional[ScoringProfile] = None
    ) -> ScoreBreakdown:
        """
        Explain a record's score factor by factor.

        Args:
            terms: Lowercase query terms
            record: Record or ScoredRecord
            profile: Weights to apply

        Returns:
            ScoreBreakdown whose total is the unclamped weighted sum
        """
        profile = profile or self.profile
        weights = profile.weights

        text = self.text_match_score(terms, record)
        fuzzy_similarity = self.accessor.get(record, "fuzzy_score")
        fuzzy = (to_number(fuzzy_similarity) or 0.0) / 100 * weights.fuzzy_match
        activity = self.activity_score(record)
        recency = self.recency_score(record)
        field = self.field_score(terms, record, profile)
        behavior = self.behavior_score(record, profile)

        factors = {
            "text_match": FactorScore(score=text, weight=weights.exact_match, weighted=text * weights.exact_match),
            "fuzzy_match": FactorScore(score=fuzzy, weight=weights.fuzzy_match, weighted=fuzzy),
            "activity": FactorScore(score=activity, weight=weights.activity, weighted=activity * weights.activity),
            "recency": FactorScore(score=recency, weight=weights.recency, weighted=recency * weights.recency),
            "field_match": FactorScore(score=field, weight=1.0, weighted=field),
            "behavior": FactorScore(score=behavior, weight=1.0, weighted=behavior),
        }
        total = sum(factor.weighted for factor in factors.values())
        return ScoreBreakdown(total=total, **factors)

    def text_match_score(self, terms: List[str], record: Any) -> float:
        """Exact 10, prefix 7, word boundary 6, substring 5 per term; capped at 20."""
        identifier = self.accessor.get_text(record, self.fields.identifier).lower()
        if not identifier:
            return 0.0

        score = 0.0
        for term in terms:
            if identifier == term:
                score += 10
            elif identifier.startswith(term):
                score += 7
            elif re.search(rf"\b{re.escape(term)}\b", identifier):
                score += 6
            elif term in identifier:
                score += 5
        return min(score, TEXT_SCORE_CAP)

    def activity_score(self, record: Any) -> float:
        score = 0.0
        days = self._number(record, self.fields.activity_days)
        if days > 0:
            score += min(days / 30, 1) * 10

        volume = self._number(record, self.fields.volume)
        if volume > 0:
            score += min(math.log10(volume + 1) / 6, 1) * 10

        if self.accessor.get(record, self.fields.activity_state) == "active":
            score += 5
        return min(score, ACTIVITY_SCORE_CAP)

    def days_since_last_event(self, record: Any) -> Optional[float]:
        """Days since the last event: the inactivity field when numeric, else derived from the date."""
        days_inactive = to_number(self.accessor.get(record, self.fields.days_inactive))
        if days_inactive is not None:
            return days_inactive

        last_event = to_datetime(self.accessor.get(record, self.fields.last_event))
        if last_event is None:
            return None
        return max(0.0, (self.clock() - last_event).total_seconds() / 86400)

    def recency_score(self, record: Any) -> float:
        days = self.days_since_last_event(record)
        if days is None:
            return 0.0
        if days <= 7:
            return RECENCY_SCORE_MAX
        if days <= 30:
            return 10.0
        if days <= 90:
            return 5.0
        if days <= 180:
            return 2.0
        return 0.0

    def field_score(self, terms: List[str], record: Any, profile: Optional[ScoringProfile] = None) -> float:
        profile = profile or self.profile
        identifier = self.accessor.get_text(record, self.fields.identifier).lower()
        score = sum(profile.weights.identifier for term in terms if term in identifier)
        return min(score, FIELD_SCORE_CAP)

    def behavior_score(self, record: Any, profile: Optional[ScoringProfile] = None) -> float:
        behavior = (profile or self.profile).behavior

        volume = self._number(record, self.fields.volume)
        days = self._number(record, self.fields.activity_days)
        logins = self._number(record, self.fields.login_count)

        score = min(volume / 100_000, 1) * 10 * behavior.volume
        score += min(days / 30, 1) * 10 * behavior.frequency
        score += min(logins / 30, 1) * 10 * behavior.login

        now = self.clock()
        first = to_datetime(self.accessor.get(record, self.fields.first_event)) or now
        last = to_datetime(self.accessor.get(record, self.fields.last_event)) or now
        span_days = max(1.0, (last - first).total_seconds() / 86400)
        retention_rate = days / span_days
        score += min(retention_rate * 2, 1) * 10 * behavior.retention

        return min(max(score, 0.0), BEHAVIOR_SCORE_CAP)

    def normalize_results(self, results: List[ScoredRecord]) -> List[ScoredRecord]:
        """Min-max scale relevance scores to 0-100; identical scores all become 50."""
        if not results:
            return results

        scores = [r.relevance_score for r in results]
        low, high = min(scores), max(scores)
        spread = high - low
        normalized = []
        for result in results:
            if spread == 0:
                value = 50
            else:
                value = int(math.floor((result.relevance_score - low) / spread * 100 + 0.5))
            normalized.append(result.model_copy(update={"normalized_score": value}))
        return normalized

    def profile_for_intent(
        self, intent: Optional[str], base: Optional[ScoringProfile] = None
    ) -> ScoringProfile:
        """
        Derive a scoring profile for a search intent.

        Args:
            intent: "find_active_users", "find_high_value_users" or None
            base: Profile to start from (the scorer default when None)

        Returns:
            A new profile; neither ``base`` nor the scorer is modified
        """
        profile = (base or self.profile).model_copy(deep=True)
        if intent == "find_active_users":
            profile.weights.activity *= 2
            profile.weights.recency *= 1.5
        elif intent == "find_high_value_users":
            profile.weights.activity *= 1.5
            profile.behavior.volume *= 2
        elif intent:
            logger.debug("Unknown scoring intent, using default weights", intent=intent)
        return profile

    def with_weight_overrides(
        self, profile: ScoringProfile, overrides: Optional[Dict[str, float]]
    ) -> ScoringProfile:
        """Return a copy of ``profile`` with top-level weights replaced."""
        if not overrides:
            return profile
        known = set(ScoreWeights.model_fields)
        for name in overrides:
            if name not in known:
                raise SearchValidationError("weights", name, f"Unknown score weight: {name}")
        weights = profile.weights.model_copy(update=dict(overrides))
        return profile.model_copy(update={"weights": weights})

    def quality_metrics(self, results: Sequence[ScoredRecord]) -> Dict[str, Any]:
        """
        Summarize the score distribution of a result set.

        Args:
            results: Scored records

        Returns:
            Precision against 70% of max_score, bucket counts, mean,
            extremes and variance of the relevance scores
        """
        distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
        if not results:
            return {
                "precision": 0.0,
                "relevant_results": 0,
                "score_distribution": distribution,
                "average_score": 0.0,
                "max_score": 0.0,
                "min_score": 0.0,
                "score_variance": 0.0,
            }

        scores = [r.relevance_score for r in results]
        for score in scores:
            if score >= 80:
                distribution["excellent"] += 1
            elif score >= 60:
                distribution["good"] += 1
            elif score >= 40:
                distribution["fair"] += 1
            else:
                distribution["poor"] += 1

        mean = sum(scores) / len(scores)
        relevant = sum(1 for score in scores if score >= self.max_score * 0.7)
        return {
            "precision": relevant / len(scores),
            "relevant_results": relevant,
            "score_distribution": distribution,
            "average_score": round(mean, 2),
            "max_score": max(scores),
            "min_score": min(scores),
            "score_variance": sum((score - mean) ** 2 for score in scores) / len(scores),
        }

    def group_and_adjust(
        self, results: Sequence[ScoredRecord], group_by: str = "activity_level"
    ) -> List[GroupedResult]:
        """
        Group results and add an in-group position bonus of up to 5 points.

        Args:
            results: Scored records in ranking order
            group_by: "activity_level", "value_level" or anything else for one group

        Returns:
            Grouped results sorted by adjusted score, highest first
        """
        groups: Dict[str, List[ScoredRecord]] = {}
        for result in results:
            groups.setdefault(self._group_key(result, group_by), []).append(result)

        adjusted = []
        for key, members in groups.items():
            size = len(members)
            for index, member in enumerate(members):
                bonus = (size - index) / size * 5
                adjusted.append(
                    GroupedResult(result=member, group=key, adjusted_score=member.relevance_score + bonus)
                )

        adjusted.sort(key=lambda g: g.adjusted_score, reverse=True)
        return adjusted

    def _group_key(self, result: Any, group_by: str) -> str:
        if group_by == "activity_level":
            if self.accessor.get(result, self.fields.activity_state) == "active":
                return "active"
            days_inactive = to_number(self.accessor.get(result, self.fields.days_inactive))
            if days_inactive is not None and days_inactive <= 90:
                return "recent"
            return "dormant"
        if group_by == "value_level":
            volume = self._number(result, self.fields.volume)
            if volume >= HIGH_VALUE_VOLUME:
                return "high"
            if volume >= MEDIUM_VALUE_VOLUME:
                return "medium"
            return "low"
        return "default"

    def _number(self, record: Any, path: str) -> float:
        return to_number(self.accessor.get(record, path)) or 0.0

    def _clamp(self, total: float) -> float:
        return min(max(total, 0.0), self.max_score)

    @staticmethod
    def _wrap(item: Any) -> ScoredRecord:
        if isinstance(item, ScoredRecord):
            return item
        return ScoredRecord(record=item)
