"""Confidence scoring for listing-event to provider-event matches.

Scores are integers on a 0-100 scale. The ladder, highest rung first:

- 100: exact match after normalization (ends the search for that target)
- 90:  one normalized name contains the other (date not checked)
- 50 + 5 per shared word: same calendar date and at least 3 shared
  significant words
- 0:   no match

All thresholds come from settings.
"""
from typing import Optional, Tuple

from app.core.config import settings
from app.services.sync.utils.name_normalizer import normalize_event_name, count_shared_words
from app.utils.timezone import DateLike, to_calendar_date

MATCH_EXACT = "exact"
MATCH_SUBSTRING = "substring"
MATCH_DATE_WORDS = "date_words"


def score_event_match(
    target_name: str,
    target_date: DateLike,
    candidate_title: str,
    candidate_date: DateLike,
) -> Tuple[int, Optional[str]]:
    """
    Score how likely a provider event is the same real-world event as a listing.

    Args:
        target_name: Listing source event name
        target_date: Listing source start date (date or ISO string)
        candidate_title: Provider event title
        candidate_date: Provider start date, time component ignored

    Returns:
        (score, match_type); match_type is None when the score is 0

    Examples:
        >>> score_event_match("Metro Duals", "2026-02-14", "metro duals", "2026-02-14")
        (100, 'exact')
        >>> score_event_match("Metro Duals", "2026-02-14", "2026 Metro Duals", "2026-01-01")
        (90, 'substring')
    """
    target = normalize_event_name(target_name)
    candidate = normalize_event_name(candidate_title)
    if not target or not candidate:
        return 0, None

    if target == candidate:
        return settings.MATCH_SCORE_EXACT, MATCH_EXACT

    if target in candidate or candidate in target:
        return settings.MATCH_SCORE_SUBSTRING, MATCH_SUBSTRING

    target_day = to_calendar_date(target_date)
    if target_day is None or target_day != to_calendar_date(candidate_date):
        return 0, None

    shared = count_shared_words(target_name, candidate_title, settings.MATCH_MIN_WORD_LENGTH)
    if shared >= settings.MATCH_MIN_SHARED_WORDS:
        return settings.MATCH_SCORE_MINIMUM + shared * settings.MATCH_SHARED_WORD_BONUS, MATCH_DATE_WORDS

    return 0, None


def is_acceptable(score: int) -> bool:
    """Whether a best score is high enough to link the two events."""
    return score >= settings.MATCH_SCORE_MINIMUM
