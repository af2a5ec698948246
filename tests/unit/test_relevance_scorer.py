"""Unit tests for relevance scoring."""

import math
from datetime import datetime, timezone

import pytest

from record_search.core.errors import SearchValidationError
from record_search.core.query_parser import QueryParser
from record_search.core.relevance_scorer import RelevanceScorer, ScoringProfile
from record_search.models.response import ScoredRecord

NOW = datetime(2024, 6, 30, tzinfo=timezone.utc)


class TestRelevanceScorer:
    """Test cases for the RelevanceScorer class."""

    @pytest.fixture
    def scorer(self):
        """Create a scorer with a fixed clock."""
        return RelevanceScorer(clock=lambda: NOW)

    @pytest.fixture
    def active_user(self):
        return {
            "userId": "john123",
            "status": "active",
            "gameDays": 30,
            "netBet": 100_000,
            "loginCount": 30,
            "dormantDays": 3,
            "firstGameDate": "2024-05-31T00:00:00Z",
            "lastGameDate": "2024-06-30T00:00:00Z",
        }

    def test_query_terms(self, scorer):
        """Test term extraction from free text and parsed queries."""
        parsed = QueryParser().parse("John* NOT spam status:active")

        assert scorer.query_terms("John Doe") == ["john", "doe"]
        assert scorer.query_terms(parsed) == ["john"]
        assert scorer.query_terms(None) == []

    @pytest.mark.parametrize(
        "terms, identifier, expected",
        [
            (["john123"], "john123", 10),
            (["john"], "john123", 7),
            (["doe"], "john.doe", 6),
            (["123"], "john123", 5),
            (["zzz"], "john123", 0),
            (["john123", "john", "j"], "john123", 20),
        ],
    )
    def test_text_match_score(self, scorer, terms, identifier, expected):
        """Test exact, prefix, word boundary and substring scores with the cap."""
        assert scorer.text_match_score(terms, {"userId": identifier}) == expected

    def test_text_match_missing_identifier(self, scorer):
        assert scorer.text_match_score(["john"], {"name": "john"}) == 0

    def test_activity_score(self, scorer, active_user):
        """Test days, volume and status contributions."""
        # 10 for 30 days, log10(100001)/6 * 10 for volume, 5 for active
        expected = 10 + math.log10(100_001) / 6 * 10 + 5
        assert scorer.activity_score(active_user) == pytest.approx(expected)
        assert scorer.activity_score({"gameDays": 15}) == pytest.approx(5)
        assert scorer.activity_score({"gameDays": 90, "netBet": 10**9, "status": "active"}) == 25
        assert scorer.activity_score({}) == 0

    @pytest.mark.parametrize(
        "days, expected",
        [(0, 15), (7, 15), (20, 10), (60, 5), (120, 2), (365, 0)],
    )
    def test_recency_from_inactive_days(self, scorer, days, expected):
        assert scorer.recency_score({"dormantDays": days}) == expected

    def test_recency_from_last_event(self, scorer):
        """Test recency derived from the last event date."""
        assert scorer.recency_score({"lastGameDate": "2024-06-25T00:00:00Z"}) == 15
        assert scorer.recency_score({"lastGameDate": "2024-04-15T00:00:00Z"}) == 5
        assert scorer.recency_score({"lastGameDate": "garbage"}) == 0
        assert scorer.recency_score({}) == 0

    def test_field_score(self, scorer):
        assert scorer.field_score(["john"], {"userId": "john123"}) == 3
        assert scorer.field_score(["j", "o", "h", "n", "1", "2"], {"userId": "john123"}) == 15

    def test_behavior_score(self, scorer, active_user):
        """Test the blend of volume, frequency, login and retention."""
        # 3 volume + 2 frequency + 1 login + 4 retention
        assert scorer.behavior_score(active_user) == pytest.approx(10)
        assert scorer.behavior_score({}) == 0

    def test_score_bounds(self, scorer, active_user):
        """Test that relevance scores are clamped to max_score."""
        breakdown = scorer.score_breakdown(["john123"], active_user)

        assert breakdown.total > 100
        assert scorer.calculate_relevance_score(["john123"], active_user) == 100
        assert scorer.calculate_relevance_score(["zzz"], {}) == 0

    def test_breakdown_factors(self, scorer):
        """Test that the breakdown applies the profile weights."""
        scored = ScoredRecord(record={"userId": "john"}, fuzzy_score=80)

        breakdown = scorer.score_breakdown(["john"], scored)

        assert breakdown.text_match.score == 10
        assert breakdown.text_match.weighted == 50
        assert breakdown.fuzzy_match.weighted == pytest.approx(0.8)
        assert breakdown.field_match.weighted == 3
        assert breakdown.total == pytest.approx(50 + 0.8 + 3 + scorer.behavior_score(scored))

    def test_score_results_sorted_and_normalized(self, scorer, active_user):
        """Test ranking and 0-100 normalization of a result set."""
        results = [{"userId": "mary"}, {"userId": "johnny"}, active_user]

        scored = scorer.score_results("john", results)

        assert [r.record["userId"] for r in scored] == ["john123", "johnny", "mary"]
        assert scored[0].normalized_score == 100
        assert scored[-1].normalized_score == 0
        assert all(0 <= r.relevance_score <= 100 for r in scored)
        assert scored[0].score_breakdown is not None

    def test_score_results_without_breakdown(self, scorer):
        scored = scorer.score_results("john", [{"userId": "john"}], include_breakdown=False)

        assert scored[0].score_breakdown is None

    @pytest.mark.parametrize("query", ["NOT spam", "status:active"])
    def test_score_results_without_terms(self, scorer, query):
        """Test that queries with no positive terms still rank by record factors."""
        parsed = QueryParser().parse(query)
        idle = {"userId": "idle", "status": "active", "gameDays": 0, "dormantDays": 400}
        busy = {"userId": "busy", "status": "active", "gameDays": 30, "netBet": 1_000_000, "dormantDays": 1}

        scored = scorer.score_results(parsed, [idle, busy])

        assert [r.record["userId"] for r in scored] == ["busy", "idle"]
        assert scored[0].relevance_score > scored[1].relevance_score
        assert scored[0].normalized_score == 100
        assert scored[0].score_breakdown.text_match.score == 0
        assert scored[0].score_breakdown.field_match.score == 0

    def test_normalize_identical_scores(self, scorer):
        results = [ScoredRecord(record={}, relevance_score=30) for _ in range(3)]

        assert [r.normalized_score for r in scorer.normalize_results(results)] == [50, 50, 50]

    def test_normalize_spread(self, scorer):
        results = [ScoredRecord(record={}, relevance_score=s) for s in (10, 20, 30)]

        assert [r.normalized_score for r in scorer.normalize_results(results)] == [0, 50, 100]

    def test_intent_profiles(self, scorer):
        """Test intent adjustments without mutating the default profile."""
        active = scorer.profile_for_intent("find_active_users")
        high_value = scorer.profile_for_intent("find_high_value_users")

        assert active.weights.activity == pytest.approx(3.0)
        assert active.weights.recency == pytest.approx(3.0)
        assert high_value.weights.activity == pytest.approx(2.25)
        assert high_value.behavior.volume == pytest.approx(0.6)
        assert scorer.profile.weights.activity == 1.5
        assert scorer.profile.behavior.volume == 0.3
        assert scorer.profile_for_intent("unknown") == ScoringProfile()

    def test_weight_overrides(self, scorer):
        profile = scorer.with_weight_overrides(scorer.profile, {"recency": 0})

        assert profile.weights.recency == 0
        assert scorer.profile.weights.recency == 2.0

    def test_unknown_weight_override(self, scorer):
        with pytest.raises(SearchValidationError) as exc_info:
            scorer.with_weight_overrides(scorer.profile, {"bogus": 1.0})

        assert exc_info.value.field == "weights"

    def test_quality_metrics(self, scorer):
        results = [ScoredRecord(record={}, relevance_score=s) for s in (90, 70, 50, 10)]

        metrics = scorer.quality_metrics(results)

        assert metrics["score_distribution"] == {"excellent": 1, "good": 1, "fair": 1, "poor": 1}
        assert metrics["precision"] == 0.5
        assert metrics["average_score"] == 55.0
        assert scorer.quality_metrics([])["precision"] == 0.0

    def test_group_and_adjust(self, scorer):
        """Test activity grouping with the in-group position bonus."""
        results = [
            ScoredRecord(record={"status": "active"}, relevance_score=10),
            ScoredRecord(record={"status": "active"}, relevance_score=9),
            ScoredRecord(record={"dormantDays": 30}, relevance_score=50),
            ScoredRecord(record={"dormantDays": 200}, relevance_score=1),
        ]

        grouped = scorer.group_and_adjust(results)

        by_group = {}
        for item in grouped:
            by_group.setdefault(item.group, []).append(item.adjusted_score)
        assert by_group == {"recent": [55], "active": [15, 11.5], "dormant": [6]}
        assert grouped[0].group == "recent"
