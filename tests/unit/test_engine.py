"""Unit tests for the search engine core functionality."""

import pytest

from record_search.config.settings import Settings
from record_search.core.engine import SearchEngine, dataset_fingerprint
from record_search.core.errors import SearchExecutionError
from record_search.core.relevance_scorer import RelevanceScorer
from record_search.models.request import PaginationRequest, SearchOptions


class ExplodingScorer(RelevanceScorer):
    def score_results(self, *args, **kwargs):
        raise RuntimeError("scorer offline")


class TestSearchEngine:
    """Test cases for the SearchEngine class."""

    @pytest.fixture
    def engine(self):
        """Create a search engine instance for testing."""
        return SearchEngine(Settings())

    @pytest.fixture
    def users(self):
        """Sample user records for testing."""
        return [
            {"userId": "john123", "status": "active", "vip": "gold", "profile": {"city": "Seoul"}},
            {"userId": "johnny", "status": "inactive", "vip": "silver", "profile": {"city": "Busan"}},
            {"userId": "mary", "status": "active", "vip": "none", "profile": {"city": "Seoul"}},
        ]

    @pytest.fixture
    def typo_users(self):
        return [{"userId": "john"}, {"userId": "jane"}, {"userId": "johnny"}, {"userId": "mary"}]

    def test_engine_initialization(self, engine):
        """Test that components are configured from settings."""
        assert engine.parser.default_operator.value == "AND"
        assert engine.fuzzy_matcher.max_distance == 2
        assert engine.paginator.cursor_field == "userId"
        assert engine.scorer.fields.identifier == "userId"
        assert engine.get_metrics()["total_searches"] == 0

    def test_wildcard_and_field_search(self, engine, users):
        """Test a wildcard on the identifier combined with an exact status field."""
        result = engine.search("john* AND status:active", users)

        assert result.success is True
        assert [r.record["userId"] for r in result.data] == ["john123"]
        assert result.total_count == 1
        assert result.search_metadata.term_count == 2
        assert result.search_metadata.engine_version == "record-search/1.0"

    def test_field_search_matches_whole_words(self, engine, users):
        """Test that status:active does not match inactive."""
        result = engine.search("status:active", users)

        assert sorted(r.record["userId"] for r in result.data) == ["john123", "mary"]

    def test_nested_field_search(self, engine, users):
        result = engine.search('profile.city:"seoul"', users)

        assert sorted(r.record["userId"] for r in result.data) == ["john123", "mary"]

    def test_negation(self, engine, users):
        result = engine.search("NOT john", users)

        assert [r.record["userId"] for r in result.data] == ["mary"]

    @pytest.mark.parametrize("enable_fuzzy", [True, False])
    def test_negated_group(self, engine, users, enable_fuzzy):
        """Test that NOT (a OR b) keeps records matching neither term."""
        result = engine.search("NOT (mary OR johnny)", users, SearchOptions(enable_fuzzy=enable_fuzzy))

        assert [r.record["userId"] for r in result.data] == ["john123"]

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("NOT (mary OR zzz)", {"john123", "johnny"}),
            ("NOT (zzz OR qqq)", {"john123", "johnny", "mary"}),
        ],
    )
    def test_negated_group_partial_matches(self, engine, users, query, expected):
        """Test that a record matching only one side of the group is rejected."""
        result = engine.search(query, users, SearchOptions(enable_fuzzy=False))

        assert {r.record["userId"] for r in result.data} == expected

    def test_field_only_query_is_ranked(self, engine):
        """Test that queries without free-text terms still rank by record activity."""
        users = [
            {"userId": "idle", "status": "active", "gameDays": 0, "dormantDays": 400},
            {"userId": "busy", "status": "active", "gameDays": 30, "netBet": 1_000_000, "dormantDays": 1},
        ]

        for query in ("status:active", "NOT zzz"):
            result = engine.search(query, users)
            assert [r.record["userId"] for r in result.data] == ["busy", "idle"]
            assert result.data[0].relevance_score > 0
            assert result.data[0].normalized_score == 100

    def test_or_query(self, engine, users):
        result = engine.search("mary OR johnny", users, SearchOptions(enable_fuzzy=False))

        assert sorted(r.record["userId"] for r in result.data) == ["johnny", "mary"]

    def test_fuzzy_search_single_typo(self, engine, typo_users):
        """Test typo-tolerant matching on a plain term."""
        result = engine.search("jhon", typo_users)

        texts = [r.record["userId"] for r in result.data]
        assert texts == ["john", "johnny"]
        assert result.data[0].fuzzy_score == 75
        assert result.data[0].edit_distance == 1
        assert result.data[1].edit_distance == 3
        assert result.data[0].exact_match is False

    def test_fuzzy_disabled(self, engine, typo_users):
        result = engine.search("jhon", typo_users, SearchOptions(enable_fuzzy=False))

        assert result.success is True
        assert result.data == []

    def test_fuzzy_threshold_option(self, engine, typo_users):
        result = engine.search("jhon", typo_users, SearchOptions(fuzzy_threshold=90))

        assert result.data == []

    def test_exact_match_flag(self, engine, typo_users):
        result = engine.search("john", typo_users)

        assert result.data[0].record["userId"] == "john"
        assert result.data[0].exact_match is True
        assert result.data[0].normalized_score == 100

    def test_no_match(self, engine, users):
        result = engine.search("zzzzzz", users)

        assert result.success is True
        assert result.data == []
        assert result.total_count == 0

    def test_filters(self, engine, users):
        """Test equality and membership filters ahead of query evaluation."""
        equality = engine.search("jo*", users, SearchOptions(filters={"status": "active"}))
        membership = engine.search("j*", users, SearchOptions(filters={"vip": ["gold", "silver"]}))
        missing = engine.search("j*", users, SearchOptions(filters={"tier": "gold"}))

        assert [r.record["userId"] for r in equality.data] == ["john123"]
        assert sorted(r.record["userId"] for r in membership.data) == ["john123", "johnny"]
        assert missing.data == []

    def test_custom_search_fields(self, engine, users):
        result = engine.search("busan", users, SearchOptions(search_fields=["profile.city"]))

        assert [r.record["userId"] for r in result.data] == ["johnny"]

    def test_sort_field_without_pagination(self, engine, users):
        result = engine.search(
            "j* OR mary", users, SearchOptions(sort_field="userId", sort_direction="ASC")
        )

        assert [r.record["userId"] for r in result.data] == ["john123", "johnny", "mary"]
        assert result.pagination is None

    def test_breakdown_toggle(self, engine, users):
        with_breakdown = engine.search("john", users)
        without = engine.search("john", users, SearchOptions(include_breakdown=False))

        assert with_breakdown.data[0].score_breakdown is not None
        assert without.data[0].score_breakdown is None

    def test_intent_profile(self, engine, users):
        result = engine.search("j*", users, SearchOptions(intent="find_active_users"))

        assert result.success is True
        assert engine.scorer.profile.weights.activity == 1.5

    def test_unknown_weight_is_validation_failure(self, engine, users):
        result = engine.search("john", users, SearchOptions(weights={"bogus": 2.0}))

        assert result.success is False
        assert result.error.type == "SearchValidationError"
        assert result.error.field == "weights"

    @pytest.mark.parametrize(
        "query, dataset, field",
        [
            ("", [], "query"),
            (None, [], "query"),
            ("john", "not a list", "dataset"),
            ("john", {"userId": "john"}, "dataset"),
        ],
    )
    def test_invalid_input(self, engine, query, dataset, field):
        """Test that malformed input returns a failure response."""
        result = engine.search(query, dataset)

        assert result.success is False
        assert result.error.type == "SearchValidationError"
        assert result.error.field == field
        assert result.data == []

    def test_size_limits(self, users):
        engine = SearchEngine(Settings(max_query_length=5, max_dataset_size=2))

        too_long = engine.search("johnny", users[:1])
        too_large = engine.search("john", users)

        assert too_long.error.message == "Query too long (max 5 characters)"
        assert too_large.error.message == "Dataset too large (max 2 items)"

    def test_parse_failure(self, engine, users):
        result = engine.search("(john", users)

        assert result.success is False
        assert result.error.type == "QueryParseError"
        assert result.error.kind == "UnmatchedParenthesis"
        assert result.error.position == 0

    def test_max_results(self, users):
        engine = SearchEngine(Settings(max_results=2))

        result = engine.search("j* OR mary", users)

        assert len(result.data) == 2
        assert result.total_count == 2

    def test_stage_failure_raises(self, users):
        """Test that unexpected errors surface as SearchExecutionError."""
        engine = SearchEngine(Settings(), scorer=ExplodingScorer())

        with pytest.raises(SearchExecutionError) as exc_info:
            engine.search("john", users)

        assert exc_info.value.stage == "scoring"
        assert "scorer offline" in str(exc_info.value)
        assert engine.get_metrics()["error_rate"] == 100.0


class TestSearchCaching:
    """Test cases for the result cache."""

    @pytest.fixture
    def users(self):
        return [{"userId": f"user{i:02d}", "status": "active"} for i in range(1, 26)]

    def test_repeat_search_hits_cache(self, users):
        engine = SearchEngine(Settings())

        first = engine.search("user*", users)
        second = engine.search("USER*", users)

        assert first.search_metadata.from_cache is False
        assert second.search_metadata.from_cache is True
        assert [r.record for r in second.data] == [r.record for r in first.data]
        assert engine.get_metrics()["cache_hit_rate"] == 50.0

    def test_changed_dataset_misses_cache(self, users):
        """Test that a dataset of the same size but new content is not served from cache."""
        engine = SearchEngine(Settings())
        engine.search("user01", users)

        changed = [dict(u) for u in users]
        changed[0]["userId"] = "other"
        result = engine.search("user01", changed)

        assert result.search_metadata.from_cache is False
        assert "user01" not in [r.record["userId"] for r in result.data]

    def test_dataset_fingerprint(self, users):
        same = [dict(u) for u in users]
        changed = [dict(u) for u in users]
        changed[-1]["status"] = "inactive"

        assert dataset_fingerprint(users) == dataset_fingerprint(same)
        assert dataset_fingerprint(users) != dataset_fingerprint(changed)
        assert dataset_fingerprint([{"a": 1}, {"b": 2}]) != dataset_fingerprint([{"b": 2}, {"a": 1}])

    def test_cache_disabled_skips_fingerprint(self, users, monkeypatch):
        """Test that no dataset hashing happens when the result cache is off."""
        calls = []
        monkeypatch.setattr(
            "record_search.core.engine.dataset_fingerprint", lambda dataset: calls.append(dataset) or ""
        )
        engine = SearchEngine(Settings(cache_enabled=False))

        engine.search("user*", users)

        assert calls == []

    def test_cache_disabled(self, users):
        engine = SearchEngine(Settings(cache_enabled=False))
        engine.search("user*", users)

        assert engine.search("user*", users).search_metadata.from_cache is False
        assert engine.get_metrics()["cache_size"] == 0

    def test_clear_cache(self, users):
        engine = SearchEngine(Settings())
        engine.search("user*", users)
        engine.clear_cache()

        assert engine.get_metrics()["cache_size"] == 0
        assert engine.search("user*", users).search_metadata.from_cache is False

    def test_pagination_through_engine(self, users):
        """Test that cursors from one call page through the next, including cache hits."""
        engine = SearchEngine(Settings())
        options = SearchOptions(
            sort_field="userId",
            sort_direction="ASC",
            pagination=PaginationRequest(page_size=10),
        )

        first = engine.search("user*", users, options)
        next_options = options.model_copy(
            update={"pagination": PaginationRequest(cursor=first.pagination.next_cursor, page_size=10)}
        )
        second = engine.search("user*", users, next_options)

        assert [r.record["userId"] for r in first.data] == [f"user{i:02d}" for i in range(1, 11)]
        assert [r.record["userId"] for r in second.data] == [f"user{i:02d}" for i in range(11, 21)]
        assert first.total_count == 25
        assert second.pagination.has_prev is True
        assert second.search_metadata.from_cache is True


class TestEngineExtras:
    """Test cases for suggestions, metrics and batch timing."""

    @pytest.fixture
    def engine(self):
        return SearchEngine(Settings())

    @pytest.fixture
    def users(self):
        return [{"userId": "john"}, {"userId": "jane"}, {"userId": "johnny"}, {"userId": "john"}]

    def test_suggestions(self, engine, users):
        suggestions = engine.get_suggestions("jhon", users)

        assert [s.text for s in suggestions] == ["john", "johnny"]
        assert suggestions[0].similarity == 75

    def test_suggestions_limit(self, engine, users):
        assert len(engine.get_suggestions("jhon", users, max_suggestions=1)) == 1

    def test_metrics(self, engine, users):
        engine.search("john", users)
        engine.search("(bad", users)

        metrics = engine.get_metrics()

        assert metrics["total_searches"] == 2
        assert metrics["error_rate"] == 50.0
        assert metrics["average_response_time_ms"] >= 0
        assert "timestamp" in metrics

    def test_performance_test(self, engine, users):
        report = engine.performance_test(["john", "(bad", "jane"], users)

        assert report["total_queries"] == 3
        assert report["successful_queries"] == 2
        assert report["success_rate"] == pytest.approx(200 / 3)
        assert report["results"][1]["success"] is False
