"""Unit tests for confidence_scorer utility.

Test Strategy:
1. Exact normalized match scores 100
2. Substring match scores 90 regardless of date
3. Same date + shared words scores 50 + 5 per word
4. Different dates or too few shared words score 0
5. Acceptance threshold at 50
"""
from datetime import date, datetime

from app.services.sync.utils.confidence_scorer import (
    MATCH_DATE_WORDS,
    MATCH_EXACT,
    MATCH_SUBSTRING,
    is_acceptable,
    score_event_match,
)


class TestScoreEventMatch:
    """Test suite for the scoring ladder."""

    # Exact and Substring Tests
    # ─────────────────────────────────────────────────────────────

    def test_exact_match_after_normalization(self):
        """Should score 100 for names equal after case/whitespace normalization."""
        assert score_event_match("Metro Duals", "2026-02-14", "  METRO   duals", "2026-02-14T08:00:00") == (100, MATCH_EXACT)

    def test_exact_match_ignores_date(self):
        """Should score 100 even when dates differ."""
        assert score_event_match("Metro Duals", "2026-02-14", "Metro Duals", "2025-02-14") == (100, MATCH_EXACT)

    def test_substring_match(self):
        """Should score 90 when one name contains the other."""
        assert score_event_match("Metro Duals", "2026-02-14", "2026 Metro Duals", "2026-01-03") == (90, MATCH_SUBSTRING)
        assert score_event_match("2026 Metro Duals Classic", None, "Metro Duals", None) == (90, MATCH_SUBSTRING)

    # Date + Shared Words Tests
    # ─────────────────────────────────────────────────────────────

    def test_same_date_with_three_shared_words(self):
        """Should score 50 + 5 per shared word on the same calendar date."""
        score, match_type = score_event_match(
            "Iowa State Wrestling Championships", date(2026, 2, 14),
            "2026 Iowa State Championships", "2026-02-14T08:00:00-06:00",
        )
        assert (score, match_type) == (65, MATCH_DATE_WORDS)

    def test_datetime_target_compares_calendar_date(self):
        """Should compare calendar dates only."""
        score, _ = score_event_match(
            "Iowa State Wrestling Championships", datetime(2026, 2, 14, 23, 30),
            "2026 Iowa State Championships", "2026-02-14",
        )
        assert score == 65

    def test_same_date_two_shared_words_scores_zero(self):
        """Should require at least three shared words."""
        assert score_event_match("Metro Duals Classic", "2026-02-14", "Metro Duals Invitational", "2026-02-14") == (0, None)

    def test_different_date_scores_zero(self):
        """Should not award shared-word points across different dates."""
        assert score_event_match(
            "Iowa State Wrestling Championships", "2026-02-14",
            "2026 Iowa State Championships", "2026-02-15",
        ) == (0, None)

    def test_missing_date_scores_zero(self):
        """Should not award shared-word points when either date is missing."""
        assert score_event_match("Iowa State Wrestling Championships", None, "2026 Iowa State Championships", "2026-02-14") == (0, None)
        assert score_event_match("Iowa State Wrestling Championships", "2026-02-14", "2026 Iowa State Championships", None) == (0, None)

    # Edge Cases
    # ─────────────────────────────────────────────────────────────

    def test_empty_names_score_zero(self):
        """Should not treat empty names as matching anything."""
        assert score_event_match("", "2026-02-14", "Metro Duals", "2026-02-14") == (0, None)
        assert score_event_match("Metro Duals", "2026-02-14", "", "2026-02-14") == (0, None)


class TestIsAcceptable:
    """Test suite for the acceptance threshold."""

    def test_threshold(self):
        """Should accept scores of 50 and above."""
        assert is_acceptable(50) is True
        assert is_acceptable(100) is True
        assert is_acceptable(49) is False
        assert is_acceptable(0) is False
