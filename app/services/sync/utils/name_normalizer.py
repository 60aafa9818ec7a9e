"""Event name normalization for cross-source matching.

The listing source and the result provider title the same tournament with
different casing and spacing:
- Case: "METRO DUALS" → "metro duals"
- Extra spaces: "Metro   Duals " → "metro duals"

Punctuation is kept: "St. Paul Open" and "St Paul Open" are not equal
names, they are left to the substring and shared-word rungs of the
scoring ladder.
"""
from typing import Set


def normalize_event_name(name: str) -> str:
    """
    Normalize an event name for comparison.

    Steps:
    1. Convert to lowercase
    2. Trim and collapse runs of whitespace to a single space

    Examples:
        >>> normalize_event_name("  Metro   DUALS ")
        'metro duals'
        >>> normalize_event_name("")
        ''
    """
    if not name:
        return ""
    return " ".join(name.lower().split())


def significant_words(name: str, min_length: int = 3) -> Set[str]:
    """
    Distinct words of a normalized name at least ``min_length`` characters long.

    Short words ("of", "at", "hs") carry little identity and are ignored.

    Examples:
        >>> sorted(significant_words("Iowa HS State Championships of 2026"))
        ['2026', 'championships', 'iowa', 'state']
    """
    return {word for word in normalize_event_name(name).split(" ") if len(word) >= min_length}


def count_shared_words(name1: str, name2: str, min_length: int = 3) -> int:
    """
    Number of distinct significant words two names have in common.

    Examples:
        >>> count_shared_words("Iowa State Wrestling Championships", "2026 Iowa State Championships")
        3
    """
    return len(significant_words(name1, min_length) & significant_words(name2, min_length))


def names_overlap(name1: str, name2: str) -> bool:
    """True when one normalized name contains the other."""
    a, b = normalize_event_name(name1), normalize_event_name(name2)
    if not a or not b:
        return False
    return a in b or b in a
