"""Unit tests for the fuzzy matcher functionality."""

import pytest

from record_search.core.fuzzy_matcher import MAX_EXPANSIONS, FuzzyMatcher, round_half_up
from record_search.core.normalizer import TextNormalizer, decompose_hangul


class TestFuzzyMatcher:
    """Test cases for the FuzzyMatcher class."""

    @pytest.fixture
    def matcher(self):
        """Create a fuzzy matcher instance for testing."""
        return FuzzyMatcher()

    @pytest.fixture
    def sample_candidates(self):
        """Sample user identifiers for testing."""
        return ["john", "jane", "johnny", "mary", "johnson", "jon"]

    def test_matcher_initialization(self, matcher):
        """Test fuzzy matcher defaults."""
        assert matcher.max_distance == 2
        assert matcher.min_length == 2
        assert matcher.transpositions is True
        assert matcher.prefix_matching is True
        assert matcher.normalizer is not None

    def test_identical_strings(self, matcher):
        """Test that identical strings are a perfect match."""
        assert matcher.similarity("john", "john") == 100
        assert matcher.distance("john", "john") == 0

    def test_case_insensitive_by_default(self, matcher):
        """Test that case is ignored unless configured."""
        assert matcher.similarity("JOHN", "john") == 100
        assert FuzzyMatcher(case_sensitive=True).similarity("John", "john") == 75

    def test_empty_strings(self, matcher):
        """Test similarity and distance with empty input."""
        assert matcher.similarity("", "abc") == 0
        assert matcher.similarity(None, "abc") == 0
        assert matcher.similarity("", "") == 100
        assert matcher.distance("", "abc") == 3

    def test_transposition_is_single_edit(self, matcher):
        """Test transposition error correction."""
        assert matcher.distance("dtae", "date") == 1
        assert FuzzyMatcher(transpositions=False).distance("dtae", "date") == 2

    def test_similarity_formula(self, matcher):
        """Test similarity derived from distance and the longer length."""
        # one edit over a length of four
        assert matcher.similarity("jhon", "john") == 75
        # three edits over a length of six
        assert matcher.similarity("jhon", "johnny") == 50

    @pytest.mark.parametrize("transpositions", [True, False])
    @pytest.mark.parametrize(
        "a, b",
        [("john", "jhon"), ("kitten", "sitting"), ("", "abc"), ("Mary", "marry"), ("마음", "나음")],
    )
    def test_distance_is_symmetric(self, transpositions, a, b):
        matcher = FuzzyMatcher(transpositions=transpositions)

        assert matcher.distance(a, b) == matcher.distance(b, a)
        assert matcher.similarity(a, b) == matcher.similarity(b, a)

    @pytest.mark.parametrize("transpositions", [True, False])
    def test_triangle_inequality(self, transpositions):
        """Test distance(a, b) <= distance(a, c) + distance(c, b) over sampled strings."""
        matcher = FuzzyMatcher(transpositions=transpositions)
        words = ["john", "jhon", "johnny", "jon", "mary", "marry", "ca", "abc", "", "kitten"]

        for a in words:
            for b in words:
                for c in words:
                    assert matcher.distance(a, b) <= matcher.distance(a, c) + matcher.distance(c, b)

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.49) == 2

    def test_find_matches_orders_by_similarity_then_distance(self, matcher):
        """Test the ranking of a misspelled identifier."""
        results = matcher.find_matches("jhon", ["john", "jane", "johnny"], threshold=60, limit=2)

        assert [r.text for r in results] == ["john", "johnny"]
        assert all(r.similarity >= 60 for r in results)
        assert results[0].distance == 1
        assert results[1].distance == 3
        assert results[1].prefix_match is True

    def test_find_matches_excludes_dissimilar(self, matcher, sample_candidates):
        """Test that candidates below the threshold are excluded."""
        results = matcher.find_matches("jhon", sample_candidates, threshold=60)

        texts = [r.text for r in results]
        assert "jane" not in texts
        assert "mary" not in texts

    def test_prefix_match_reports_whole_distance(self, matcher):
        """Test prefix alignment for longer candidates."""
        results = matcher.find_matches("john", ["johnathan"], threshold=90)

        assert len(results) == 1
        assert results[0].similarity == 100
        assert results[0].prefix_match is True
        assert results[0].distance == 5

    def test_prefix_matching_disabled(self):
        """Test that long candidates fail without prefix alignment."""
        matcher = FuzzyMatcher(prefix_matching=False)

        assert matcher.find_matches("john", ["johnathan"], threshold=60) == []

    def test_max_distance_filter(self, matcher):
        """Test that the distance bound applies even at threshold zero."""
        assert matcher.find_matches("abcdef", ["uvwxyz"], threshold=0) == []

    def test_short_and_missing_candidates_skipped(self, matcher):
        """Test the minimum candidate length and None candidates."""
        results = matcher.find_matches("jo", ["j", None, "jo"], threshold=0)

        assert [r.text for r in results] == ["jo"]

    def test_limit(self, matcher, sample_candidates):
        results = matcher.find_matches("john", sample_candidates, threshold=0, limit=1)

        assert len(results) == 1
        assert results[0].text == "john"

    def test_ties_keep_input_order(self, matcher):
        """Test that equal matches keep candidate order."""
        results = matcher.find_matches("abcd", ["abce", "abcf"], threshold=0)

        assert [r.text for r in results] == ["abce", "abcf"]

    def test_empty_query(self, matcher, sample_candidates):
        assert matcher.find_matches("", sample_candidates) == []
        assert matcher.find_matches("john", None) == []

    def test_score_value_does_not_filter(self, matcher):
        """Test scoring a single value regardless of threshold."""
        result = matcher.score_value("john", "mary")

        assert result.text == "mary"
        assert result.distance == 4
        assert 0 <= result.similarity < 60

    def test_benchmark(self, matcher, sample_candidates):
        """Test the benchmark summary."""
        summary = matcher.benchmark("jhon", sample_candidates)

        assert summary["candidates_count"] == len(sample_candidates)
        assert summary["results_count"] >= 1
        assert summary["execution_time_ms"] >= 0
        assert len(summary["results"]) <= 5


class TestQueryExpansion:
    """Test cases for typo variant generation."""

    @pytest.fixture
    def matcher(self):
        return FuzzyMatcher()

    def test_original_first(self, matcher):
        variants = matcher.expand_query("john")

        assert variants[0] == "john"
        assert len(variants) <= MAX_EXPANSIONS
        assert len(variants) == len(set(variants))

    def test_deletions_and_swaps(self, matcher):
        """Test single deletions and adjacent swaps."""
        variants = matcher.expand_query("john")

        assert "jon" in variants
        assert "jhon" in variants
        assert "ohn" in variants

    def test_keyboard_neighbors(self, matcher):
        """Test adjacent-key substitutions."""
        variants = matcher.expand_query("ab", keyboard_typos=True)

        assert "sb" in variants
        assert "sb" not in matcher.expand_query("ab", keyboard_typos=False)

    def test_short_query_is_not_expanded(self, matcher):
        assert matcher.expand_query("a") == ["a"]
        assert matcher.expand_query(None) == []

    def test_hangul_confusions(self, matcher):
        """Test confusable jamo substitutions in Korean text."""
        variants = matcher.expand_query("마음")

        assert variants[0] == "마음"
        assert "나음" in variants
        assert "머음" in variants


class TestTextNormalizer:
    """Test cases for text normalization hooks."""

    def test_normalize(self):
        normalizer = TextNormalizer()

        assert normalizer.normalize("  John  ") == "john"
        assert normalizer.normalize("Straße") == "strasse"
        assert normalizer.normalize(None) == ""

    def test_case_sensitive(self):
        assert TextNormalizer(case_sensitive=True).normalize(" John ") == "John"

    def test_diacritics_hook(self):
        """Test accent folding through a hook."""
        from record_search.core.normalizer import strip_diacritics

        normalizer = TextNormalizer(hooks=[strip_diacritics])

        assert normalizer.normalize("JOSÉ") == "jose"

    def test_hangul_decomposition_improves_similarity(self):
        """Test that jamo-level comparison counts one wrong consonant as one edit of five."""
        plain = FuzzyMatcher()
        jamo = FuzzyMatcher(normalizer=TextNormalizer(hooks=[decompose_hangul]))

        assert plain.similarity("마음", "나음") == 50
        assert jamo.similarity("마음", "나음") == 80

    def test_extract_terms(self):
        normalizer = TextNormalizer()

        assert normalizer.extract_terms("Hello, World! (test)") == ["hello", "world", "test"]
        assert normalizer.extract_terms("") == []
