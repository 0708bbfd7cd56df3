"""
Comparison keys for lead matching.

Phone numbers and names are normalized only for comparison; stored values
are never rewritten.
"""

import re

from rapidfuzz.distance import Levenshtein

_NON_DIGITS = re.compile(r'\D')

PHONE_DIGITS = 10


def normalize_phone(raw: str | None, digits: int = PHONE_DIGITS) -> str:
    """
    Strip all non-digit characters and keep the trailing digits.

    Args:
        raw: Free-form phone number
        digits: Number of trailing digits to keep

    Returns:
        Digit string of at most ``digits`` characters ('' for empty input)
    """
    if not raw:
        return ''
    return _NON_DIGITS.sub('', raw)[-digits:]


def normalize_email(raw: str | None) -> str:
    """Case-folded, trimmed email ('' when missing)."""
    if not raw:
        return ''
    return raw.strip().casefold()


def full_name_key(first_name: str | None, last_name: str | None) -> str:
    """Case-folded "first last" string used for name comparison."""
    parts = [part.strip() for part in (first_name, last_name) if part and part.strip()]
    return ' '.join(parts).casefold()


def name_similarity(a: str, b: str) -> float:
    """
    Levenshtein similarity ratio between two strings.

    Computed as ``1 - distance / max(len(a), len(b))``. Inputs are compared
    as given; callers pass keys built by :func:`full_name_key`.

    Returns:
        Ratio in [0, 1]; 0.0 when either string is empty, 1.0 when equal
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))
