"""
Utility helper functions for playlist-sync
Text normalization and similarity used by song matching, plus small formatting helpers
"""

import re
from typing import Iterable, List, Optional


def normalize_whitespace(text: str) -> str:
    """
    Lowercase text and collapse runs of whitespace

    Args:
        text: Original text

    Returns:
        Normalized text
    """
    return re.sub(r'\s+', ' ', text or '').strip().lower()


def calculate_similarity(str1: str, str2: str) -> float:
    """
    Calculate string similarity using Levenshtein distance

    Args:
        str1: First string
        str2: Second string

    Returns:
        Similarity score between 0.0 and 1.0
    """
    s1 = normalize_whitespace(str1)
    s2 = normalize_whitespace(str2)

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    # Two-row Levenshtein
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost   # substitution
            ))
        previous = current

    distance = previous[-1]
    return max(0.0, 1 - distance / max(len(s1), len(s2)))


FEAT_PATTERNS = [
    r'\s*\(feat\.?.*?\)',
    r'\s*\(ft\.?.*?\)',
    r'\s*\[feat\.?.*?\]',
    r'\s+feat\.?\s.*',
    r'\s+ft\.?\s.*',
    r'\s+featuring\s.*',
]

VERSION_PATTERNS = [
    r'\s*[\(\[][^\)\]]*\b(version|mix|edit|remix|remaster(ed)?)\b[^\)\]]*[\)\]]',
    r'\s+-\s+.*\b(version|mix|edit|remix|remaster(ed)?)\b.*$',
]


def normalize_artist_name(artist: str) -> str:
    """
    Normalize artist name for better matching

    Args:
        artist: Original artist name

    Returns:
        Normalized artist name
    """
    normalized = normalize_whitespace(artist)

    for prefix in ('the ', 'a ', 'an '):
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]

    for pattern in FEAT_PATTERNS:
        normalized = re.sub(pattern, '', normalized, flags=re.IGNORECASE)

    return normalize_whitespace(normalized)


def normalize_track_title(title: str) -> str:
    """
    Normalize track title for better matching

    Strips featuring credits and version/remaster annotations.

    Args:
        title: Original track title

    Returns:
        Normalized track title
    """
    normalized = normalize_whitespace(title)

    for pattern in VERSION_PATTERNS + FEAT_PATTERNS:
        normalized = re.sub(pattern, '', normalized, flags=re.IGNORECASE)

    return normalize_whitespace(normalized)


def parse_duration_string(duration_str: Optional[str]) -> Optional[int]:
    """
    Parse duration string to seconds

    Args:
        duration_str: Duration string (e.g., "3:45", "1:23:45")

    Returns:
        Duration in seconds or None if invalid
    """
    if not duration_str:
        return None
    try:
        parts = [int(part) for part in duration_str.strip().split(':')]
    except ValueError:
        return None

    if len(parts) == 2:
        minutes, seconds = parts
        return minutes * 60 + seconds
    if len(parts) == 3:
        hours, minutes, seconds = parts
        return hours * 3600 + minutes * 60 + seconds
    return None


def unique_in_order(items: Iterable[str]) -> List[str]:
    """Drop repeated strings, keeping the first position of each"""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def format_rate(matched: int, attempted: int) -> str:
    """
    Format a conversion rate as 'matched/attempted (pct%)'

    Args:
        matched: Number of songs found on the destination
        attempted: Number of songs searched for

    Returns:
        Formatted string, '0/0 (100%)' when nothing was attempted
    """
    return f"{matched}/{attempted} ({percentage(matched, attempted):.0f}%)"


def percentage(part: int, total: int) -> float:
    if total == 0:
        return 100.0
    return part / total * 100


def split_pipe_list(value: Optional[str]) -> List[str]:
    """
    Split a 'a|b|c' command line value into trimmed, non-empty names

    Args:
        value: Raw option value or None

    Returns:
        List of names
    """
    if not value:
        return []
    return [part.strip() for part in value.split('|') if part.strip()]
