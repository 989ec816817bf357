"""Test configuration and fixtures"""

import copy
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from playlist_sync.config.settings import Settings, reset_settings
from playlist_sync.music.models import Album, Artist, PlatformKind, Playlist, Song
from playlist_sync.platforms.base import AddOutcome, MusicPlatform
from playlist_sync.utils.helpers import normalize_whitespace


class FakeSleep:
    """Records requested waits instead of sleeping"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakePlatform(MusicPlatform):
    """
    In-memory platform account

    ``playlists`` holds the remote state; listings return copies so the
    synchronizer's in-memory view and the remote state stay distinct, as with
    a real platform. Every mutation is recorded for assertions.

    Text search returns catalog songs whose title appears in the query, ISRC
    search returns the catalog song with that code.
    """

    def __init__(
        self,
        kind: PlatformKind = PlatformKind.YTMUSIC,
        playlists: Optional[List[Playlist]] = None,
        catalog: Optional[List[Song]] = None,
        likes: Optional[List[Song]] = None,
        owner: Optional[str] = "me",
        country: Optional[str] = None,
        reject_duplicates: bool = False,
        **kwargs
    ):
        self.kind = kind
        self.playlists = playlists or []
        self.catalog = catalog or []
        self.likes = likes or []
        self.owner = owner
        self._country = country
        self.reject_duplicates = reject_duplicates

        self.created: List[str] = []
        self.add_calls: List[List[Song]] = []
        self.batch_calls: List[List[Song]] = []
        self.like_calls: List[List[Song]] = []
        self.searches: List[str] = []
        self.isrc_searches: List[str] = []
        self.search_error: Optional[Exception] = None
        kwargs.setdefault('sleep', FakeSleep())
        super().__init__(**kwargs)

    def country_code(self) -> Optional[str]:
        return self._country

    def account_owner(self) -> Optional[str]:
        return self.owner

    def remote(self, name: str) -> Playlist:
        return next(p for p in self.playlists if p.name == name)

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        playlist = Playlist(id=f"{self.kind.value}-{len(self.playlists) + 1}", name=name, owner=self.owner)
        self.playlists.append(playlist)
        self.created.append(name)
        return Playlist(id=playlist.id, name=name, owner=self.owner)

    async def _fetch_playlists_info(self) -> List[Playlist]:
        return [Playlist(id=p.id, name=p.name, owner=p.owner) for p in self.playlists]

    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        playlist = next(p for p in self.playlists if p.id == playlist_id)
        return copy.deepcopy(playlist.songs)

    async def add_songs_to_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        self.add_calls.append(list(songs))
        await super().add_songs_to_playlist(playlist, songs)

    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        self.batch_calls.append(list(songs))
        remote = next(p for p in self.playlists if p.id == playlist.id)
        if self.reject_duplicates and any(song in remote.songs for song in songs):
            return AddOutcome.DUPLICATE_CONFLICT if len(songs) > 1 else AddOutcome.ALREADY_PRESENT
        remote.songs.extend(songs)
        return AddOutcome.ADDED

    async def _search_isrc(self, isrc: str) -> Optional[Song]:
        self.isrc_searches.append(isrc)
        for song in self.catalog:
            if song.isrc and song.isrc.upper() == isrc.upper():
                return copy.deepcopy(song)
        return None

    async def _search_text(self, query: str, limit: int) -> List[Song]:
        if self.search_error:
            raise self.search_error
        self.searches.append(query)
        lowered = normalize_whitespace(query)
        found = [s for s in self.catalog if normalize_whitespace(s.name) in lowered]
        return copy.deepcopy(found[:limit])

    async def add_likes(self, songs: List[Song]) -> None:
        self.like_calls.append(list(songs))
        self.likes.extend(songs)

    async def get_likes(self) -> List[Song]:
        return copy.deepcopy(self.likes)


def song(
    id: str,
    name: str,
    artists=("Test Artist",),
    source: PlatformKind = PlatformKind.SPOTIFY,
    duration_ms: int = 210000,
    isrc: Optional[str] = None,
    album: Optional[str] = None,
) -> Song:
    """Build a Song with sensible defaults"""
    return Song(
        id=id,
        name=name,
        source=source,
        artists=[Artist(name=a) for a in artists],
        album=Album(name=album) if album else None,
        duration_ms=duration_ms,
        isrc=isrc,
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def make_song():
    """Factory for Song instances"""
    return song


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def settings():
    """Default settings without reading config files or the environment"""
    return Settings(load_files=False)


@pytest.fixture(autouse=True)
def clean_settings():
    """Never leak the global settings instance between tests"""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def sample_track_data() -> Dict:
    """Spotify playlist item as returned by the Web API"""
    return {
        'track': {
            'id': 'test_track_123',
            'name': 'Test Song',
            'artists': [{'id': 'artist_123', 'name': 'Test Artist'}],
            'album': {
                'id': 'album_123',
                'name': 'Test Album',
                'album_type': 'album',
                'release_date': '2023-01-01',
            },
            'duration_ms': 210000,
            'external_ids': {'isrc': 'USRC17607839'},
            'explicit': False,
            'popularity': 75,
        }
    }
