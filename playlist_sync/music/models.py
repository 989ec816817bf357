"""
Canonical music model shared by every platform adapter

Platform adapters translate their own response shapes into these classes so
the synchronizer never sees platform-specific data. Identity rules:

- Platform-level duplicate: two songs with equal (source, id). This is what
  ``==`` and ``hash()`` implement on Song.
- Cross-platform equivalence: decided only by ``matching.compare``. A song id
  is meaningless outside its own source platform.

The ``to_dict``/``from_dict`` pairs define the JSON interchange format used
by export/import and by the debug sidecar files.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import DataIntegrityWarning


class PlatformKind(Enum):
    """Supported streaming platforms, keyed by their configuration name"""
    SPOTIFY = "spotify"
    YTMUSIC = "ytmusic"
    TIDAL = "tidal"
    PLEX = "plex"


@dataclass
class Artist:
    name: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Artist':
        return cls(name=data['name'], id=data.get('id'))


@dataclass
class Album:
    name: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Album':
        return cls(name=data['name'], id=data.get('id'))


@dataclass(eq=False)
class Song:
    """
    A single recording as seen by one platform

    Attributes:
        id: Native track id, unique within the source platform
        name: Track title as displayed by the platform
        source: Platform the song was read from
        artists: Ordered credited artists, primary first
        album: Album metadata when known
        duration_ms: Length in milliseconds, 0 when unknown
        sid: Per-playlist-entry identifier (e.g. YouTube Music setVideoId)
        isrc: International Standard Recording Code when the platform exposes it
    """
    id: str
    name: str
    source: PlatformKind
    artists: List[Artist] = field(default_factory=list)
    album: Optional[Album] = None
    duration_ms: int = 0
    sid: Optional[str] = None
    isrc: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Song):
            return NotImplemented
        return self.source == other.source and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.source, self.id))

    @property
    def primary_artist(self) -> Optional[str]:
        return self.artists[0].name if self.artists else None

    @property
    def display_name(self) -> str:
        """Human-readable 'Artist - Title' label for logs"""
        if self.artists:
            return f"{', '.join(a.name for a in self.artists)} - {self.name}"
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source.value,
            'id': self.id,
            'sid': self.sid,
            'isrc': self.isrc,
            'name': self.name,
            'album': self.album.to_dict() if self.album else None,
            'artists': [artist.to_dict() for artist in self.artists],
            'duration_ms': self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Song':
        """
        Build a song from its interchange representation

        Raises:
            DataIntegrityWarning: If required fields are missing or malformed
        """
        try:
            album_data = data.get('album')
            return cls(
                id=str(data['id']),
                name=data['name'],
                source=PlatformKind(data['source']),
                artists=[Artist.from_dict(a) for a in data.get('artists') or []],
                album=Album.from_dict(album_data) if album_data else None,
                duration_ms=int(data.get('duration_ms') or 0),
                sid=data.get('sid'),
                isrc=data.get('isrc'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataIntegrityWarning(
                f"Malformed song entry: {e}",
                details={'entry': data}
            )


@dataclass
class Playlist:
    """
    Ordered song container owned by one account

    Songs are appended in place by ``add_songs_to_playlist``; order matters for
    display only, membership tests ignore it.
    """
    id: str
    name: str
    songs: List[Song] = field(default_factory=list)
    owner: Optional[str] = None

    @property
    def track_count(self) -> int:
        return len(self.songs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'songs': [song.to_dict() for song in self.songs],
            'owner': self.owner,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        """
        Build a playlist from its interchange representation

        Malformed song entries are not handled here; callers that need to
        skip them should use ``transfer.load_playlists``.

        Raises:
            DataIntegrityWarning: If the playlist itself is malformed
        """
        try:
            return cls(
                id=str(data['id']),
                name=data['name'],
                songs=[Song.from_dict(s) for s in data.get('songs') or []],
                owner=data.get('owner'),
            )
        except (KeyError, TypeError) as e:
            raise DataIntegrityWarning(
                f"Malformed playlist entry: {e}",
                details={'entry': data}
            )


def dedup_songs(songs: List[Song]) -> bool:
    """
    Remove platform-level duplicates in place

    Keeps the first occurrence of every (source, id) pair and preserves order.

    Args:
        songs: Song list to deduplicate, modified in place

    Returns:
        True if at least one duplicate was removed
    """
    seen = set()
    unique = []
    for song in songs:
        if song in seen:
            continue
        seen.add(song)
        unique.append(song)

    removed = len(unique) != len(songs)
    songs[:] = unique
    return removed
