"""
Song matching engine

Builds ranked search queries from a song's metadata and decides whether two
songs from different platforms are the same recording. Matching is
heuristic: thresholds are tunable through ``MatchThresholds`` (and the
``matching:`` section of the configuration), and a wrong verdict is an
imprecision, not a correctness defect.

Decision order in ``compare``:
1. Equal ISRC codes: match.
2. Durations differ by more than the tolerance: no match, whatever the names say.
3. Titles must agree (normalized equality or fuzzy similarity).
4. Artists must overlap when both songs list any.
Album metadata never vetoes a match since many platforms omit it.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import Song
from ..utils.helpers import (
    calculate_similarity,
    normalize_artist_name,
    normalize_track_title,
    normalize_whitespace,
    unique_in_order,
)


@dataclass
class MatchThresholds:
    """
    Tunable parameters for song equivalence

    Attributes:
        duration_tolerance_ms: Maximum duration difference for a match
        name_similarity: Minimum title similarity (0.0-1.0) after normalization
        artist_similarity: Minimum similarity for two artist names to count as the same
    """
    duration_tolerance_ms: int = 2000
    name_similarity: float = 0.85
    artist_similarity: float = 0.8


DEFAULT_THRESHOLDS = MatchThresholds()


def build_queries(song: Song) -> List[str]:
    """
    Build search queries for a song, least specific first

    Callers pop from the end of the list, so the most specific query
    (title, every artist and album) is tried first and the bare title last.

    Args:
        song: Song to search for

    Returns:
        Ordered list of distinct, non-empty query strings
    """
    name = song.name.strip()
    artists = [a.name.strip() for a in song.artists if a.name.strip()]
    album = song.album.name.strip() if song.album and song.album.name else ''

    queries = [name]
    if artists:
        queries.append(f"{name} {artists[0]}")
        queries.append(f"{name} {' '.join(artists)}")
        if album:
            queries.append(f"{name} {' '.join(artists)} {album}")
    elif album:
        queries.append(f"{name} {album}")

    return unique_in_order(q for q in queries if q)


def _names_match(a: str, b: str, threshold: float) -> bool:
    if normalize_whitespace(a) == normalize_whitespace(b):
        return True
    clean_a = normalize_track_title(a)
    clean_b = normalize_track_title(b)
    if clean_a and clean_a == clean_b:
        return True
    return calculate_similarity(clean_a, clean_b) >= threshold


def _artists_match(a: Song, b: Song, threshold: float) -> bool:
    names_a = [n for n in (normalize_artist_name(x.name) for x in a.artists) if n]
    names_b = [n for n in (normalize_artist_name(x.name) for x in b.artists) if n]
    if not names_a or not names_b:
        return True

    for name_a in names_a:
        for name_b in names_b:
            if name_a == name_b or calculate_similarity(name_a, name_b) >= threshold:
                return True
    # Some platforms credit every artist in a single joined string
    joined_a = ' '.join(names_a)
    joined_b = ' '.join(names_b)
    return any(_credited_in(n, joined_b) for n in names_a) or any(_credited_in(n, joined_a) for n in names_b)


def _credited_in(name: str, joined: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(name)}(?!\w)", joined) is not None


def compare(a: Song, b: Song, thresholds: Optional[MatchThresholds] = None) -> bool:
    """
    Decide whether two songs represent the same recording

    Reflexive, insensitive to case and whitespace in titles, tolerant of
    missing album metadata.

    Args:
        a: First song, usually from the source platform
        b: Second song, usually a destination search result
        thresholds: Matching parameters, defaults when None

    Returns:
        True if the songs are considered equivalent
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS

    if a.isrc and b.isrc and a.isrc.upper() == b.isrc.upper():
        return True

    if a.duration_ms and b.duration_ms:
        if abs(a.duration_ms - b.duration_ms) > thresholds.duration_tolerance_ms:
            return False

    if not _names_match(a.name, b.name, thresholds.name_similarity):
        return False

    return _artists_match(a, b, thresholds.artist_similarity)


def contains_equivalent(
    songs: Iterable[Song],
    song: Song,
    thresholds: Optional[MatchThresholds] = None
) -> bool:
    """Check whether any song in the collection is equivalent to ``song``"""
    return any(song == other or compare(song, other, thresholds) for other in songs)
