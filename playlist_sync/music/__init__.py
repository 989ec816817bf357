"""Platform-neutral music model and song matching"""

from .matching import MatchThresholds, build_queries, compare, contains_equivalent
from .models import Album, Artist, PlatformKind, Playlist, Song, dedup_songs

__all__ = [
    'Album', 'Artist', 'MatchThresholds', 'PlatformKind', 'Playlist', 'Song',
    'build_queries', 'compare', 'contains_equivalent', 'dedup_songs',
]
