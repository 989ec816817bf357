"""
Plex Media Server adapter built on plexapi

Songs are tracks of one music library section, identified by their rating
key. Plex has no account country, no ISRC search and no likes: likes are
accepted and ignored, and the liked list is always empty. Every playlist on
the server belongs to the token's account.
"""

import asyncio
from typing import Any, List, Optional

import requests
from plexapi.exceptions import BadRequest, NotFound, Unauthorized
from plexapi.server import PlexServer

from ..config.settings import Settings
from ..exceptions import AuthError, ConfigurationError, DataIntegrityWarning, PlaylistSyncError, RateLimited, TransportError
from ..music.models import Album, Artist, PlatformKind, Playlist, Song
from ..utils.logger import get_logger
from .base import AddOutcome, MusicPlatform, options_from_settings


logger = get_logger(__name__)

ADD_CHUNK_SIZE = 5


def song_from_track(track: Any) -> Song:
    """
    Convert a plexapi Track to a Song

    The track artist is ``originalTitle`` when set, otherwise the album artist.
    """
    if track is None or getattr(track, 'ratingKey', None) is None:
        raise DataIntegrityWarning(f"Skipping Plex item without rating key: {getattr(track, 'title', None) or 'unknown'}")

    artist = getattr(track, 'originalTitle', None) or getattr(track, 'grandparentTitle', None)
    album = getattr(track, 'parentTitle', None)
    album_key = getattr(track, 'parentRatingKey', None)
    return Song(
        id=str(track.ratingKey),
        name=track.title or '',
        source=PlatformKind.PLEX,
        artists=[Artist(name=artist, id=None)] if artist else [],
        album=Album(name=album, id=str(album_key) if album_key else None) if album else None,
        duration_ms=int(getattr(track, 'duration', 0) or 0),
    )


def songs_from_tracks(tracks: List[Any]) -> List[Song]:
    songs = []
    for track in tracks:
        if getattr(track, 'TYPE', 'track') != 'track':
            continue
        try:
            songs.append(song_from_track(track))
        except DataIntegrityWarning as e:
            logger.warning(e.message)
    return songs


class PlexPlatform(MusicPlatform):
    """
    Plex server session bound to one music library

    Args:
        server: Connected plexapi server
        section: Music library section searched and used for new playlists
        owner: Account name owning every playlist on the server
        **kwargs: Forwarded to MusicPlatform
    """

    kind = PlatformKind.PLEX

    def __init__(self, server: PlexServer, section: Any, owner: Optional[str] = None, **kwargs):
        self.server = server
        self.section = section
        self.owner = owner
        super().__init__(**kwargs)

    @classmethod
    async def connect(cls, settings: Settings, **kwargs) -> 'PlexPlatform':
        """
        Connect to the configured server and music library

        Raises:
            ConfigurationError: If the music library does not exist
        """
        cfg = settings.plex
        platform = cls(
            server=None,
            section=None,
            owner=cfg.owner or None,
            **options_from_settings(settings, cls.kind.value),
            **kwargs
        )
        platform.server = await platform._request(
            PlexServer, cfg.server_url, cfg.token, timeout=settings.network.request_timeout
        )

        try:
            platform.section = await asyncio.to_thread(platform.server.library.section, cfg.music_library)
        except NotFound:
            raise ConfigurationError(
                f"Plex music library not found: {cfg.music_library}",
                details={'music_library': cfg.music_library}
            )

        if not platform.owner:
            account = await platform._request(platform.server.account)
            platform.owner = account.username
        logger.info(f"Connected to Plex server {platform.server.friendlyName} as {platform.owner}")
        return platform

    def _translate_error(self, error: Exception) -> PlaylistSyncError:
        details = {'platform': self.kind.value, 'original_error': repr(error)}

        if isinstance(error, Unauthorized):
            return AuthError(f"Plex rejected the token: {error}", details)
        if isinstance(error, BadRequest) and '(429)' in str(error):
            return RateLimited(f"Plex rate limit: {error}", details, payload=str(error))
        if isinstance(error, (BadRequest, NotFound)):
            return TransportError(f"Plex API error: {error}", details)
        if isinstance(error, requests.RequestException):
            return TransportError(f"Plex network error: {error}", details)

        return super()._translate_error(error)

    def account_owner(self) -> Optional[str]:
        return self.owner

    # Playlists

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        # Plex refuses empty playlists, so one track seeds it and is removed again
        seeds = await self._request(lambda: self.section.search(libtype='track', maxresults=1))
        if not seeds:
            raise TransportError(
                f"Cannot create Plex playlist '{name}': library {self.section.title} has no tracks",
                details={'platform': self.kind.value}
            )
        created = await self._request(
            lambda: self.server.createPlaylist(name, section=self.section, items=seeds[:1])
        )
        await self._request(lambda: created.removeItems(seeds[:1]))
        logger.info(f"Created Plex playlist '{name}' ({created.ratingKey})")
        return Playlist(id=str(created.ratingKey), name=name, songs=[], owner=self.owner)

    async def _fetch_playlists_info(self) -> List[Playlist]:
        items = await self._request(lambda: self.server.playlists(playlistType='audio'))
        return [
            Playlist(id=str(item.ratingKey), name=item.title or '', owner=self.owner)
            for item in items or []
        ]

    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        playlist = await self._request(lambda: self.server.fetchItem(int(playlist_id)))
        return songs_from_tracks(await self._request(playlist.items) or [])

    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        remote = await self._request(lambda: self.server.fetchItem(int(playlist.id)))
        keys = [int(song.id) for song in songs]
        for i in range(0, len(keys), ADD_CHUNK_SIZE):
            chunk = keys[i:i + ADD_CHUNK_SIZE]
            tracks = await self._request(lambda chunk=chunk: self.server.fetchItems(chunk))
            await self._request(lambda tracks=tracks: remote.addItems(tracks))
        return AddOutcome.ADDED

    async def remove_songs_from_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        remote = await self._request(lambda: self.server.fetchItem(int(playlist.id)))
        removed_ids = {song.id for song in songs}
        items = await self._request(remote.items)
        doomed = [item for item in items or [] if str(item.ratingKey) in removed_ids]
        if doomed:
            await self._request(lambda: remote.removeItems(doomed))
        playlist.songs = [song for song in playlist.songs if song.id not in removed_ids]

    async def delete_playlist(self, playlist: Playlist) -> None:
        remote = await self._request(lambda: self.server.fetchItem(int(playlist.id)))
        await self._request(remote.delete)

    # Search

    async def _search_text(self, query: str, limit: int) -> List[Song]:
        results = await self._request(
            lambda: self.server.search(query, mediatype='track', limit=limit, sectionId=self.section.key)
        )
        return songs_from_tracks(results or [])

    # Likes

    async def add_likes(self, songs: List[Song]) -> None:
        logger.info(f"Plex has no likes, ignoring {len(songs)} songs")

    async def get_likes(self) -> List[Song]:
        return []
