"""
Spotify adapter built on spotipy

Listings use the Web API paging objects: the user's playlists and saved
tracks are followed through their ``next`` links, playlist items through
offset/limit up to the reported total. Writes are chunked to the API limits
(100 playlist items, 50 saved tracks per request).

The session token lives in a spotipy-compatible cache file. It is acquired
through ``spotipy.SpotifyOAuth`` when missing and refreshed by this module on
start-up, every few minutes and after a 401.
"""

import asyncio
from typing import Any, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from ..config.auth import CredentialRefresher, TokenStore, acquire_spotify_token, refresh_spotify_token
from ..config.settings import Settings
from ..exceptions import AuthError, DataIntegrityWarning, PlaylistSyncError, RateLimited, TransportError
from ..music.models import Album, Artist, PlatformKind, Playlist, Song
from ..utils.logger import get_logger
from ..utils.pagination import collect_continuation, collect_offset
from ..utils.retry import is_throttling_signal
from .base import PLAYLIST_DESC, AddOutcome, MusicPlatform, options_from_settings


logger = get_logger(__name__)

PLAYLIST_PAGE_SIZE = 50
ITEMS_PAGE_SIZE = 100
ADD_CHUNK_SIZE = 100
LIKE_CHUNK_SIZE = 50


def chunked(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def song_from_track(track: Dict[str, Any]) -> Song:
    """
    Convert a Spotify track object to a Song

    Raises:
        DataIntegrityWarning: For local files and removed tracks, which have no id
    """
    if not track or not track.get('id'):
        name = track.get('name') if track else None
        raise DataIntegrityWarning(f"Skipping track without id: {name or 'unknown'}")

    album_data = track.get('album') or {}
    return Song(
        id=track['id'],
        name=track.get('name', ''),
        source=PlatformKind.SPOTIFY,
        artists=[
            Artist(name=a.get('name', ''), id=a.get('id'))
            for a in track.get('artists') or []
        ],
        album=Album(name=album_data['name'], id=album_data.get('id')) if album_data.get('name') else None,
        duration_ms=track.get('duration_ms') or 0,
        isrc=(track.get('external_ids') or {}).get('isrc'),
    )


def songs_from_items(items: List[Dict[str, Any]]) -> List[Song]:
    """Convert playlist/saved-track items, skipping unusable entries"""
    songs = []
    for item in items:
        try:
            songs.append(song_from_track(item.get('track')))
        except DataIntegrityWarning as e:
            logger.warning(e.message)
    return songs


class SpotifyPlatform(MusicPlatform):
    """
    Spotify account session

    Args:
        client: Authenticated spotipy client
        user_id: Spotify id of the authenticated user
        country: Account country code from the user profile
        token_store: Token file used for refreshes, None to disable refreshing
        client_id: Application client id used for refreshes
        client_secret: Application client secret used for refreshes
        **kwargs: Forwarded to MusicPlatform
    """

    kind = PlatformKind.SPOTIFY

    def __init__(
        self,
        client: spotipy.Spotify,
        user_id: str,
        country: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        client_id: str = "",
        client_secret: str = "",
        refresh_interval: float = 300,
        **kwargs
    ):
        self.client = client
        self.user_id = user_id
        self._country = country
        self.token_store = token_store
        self.client_id = client_id
        self.client_secret = client_secret
        refresher = CredentialRefresher(self._refresh_token, refresh_interval) if token_store else None
        super().__init__(refresher=refresher, **kwargs)

    @classmethod
    async def connect(cls, settings: Settings, **kwargs) -> 'SpotifyPlatform':
        """
        Open a session from configuration

        Loads (or acquires) the stored token, refreshes it once and reads the
        user profile for id and country.

        Raises:
            AuthError: If no usable token can be obtained
        """
        store = TokenStore(settings.get_spotify_token_path())
        cfg = settings.spotify

        token_info = store.load()
        if token_info is None:
            logger.console_info("No Spotify token found, starting authorization...")
            token_info = await asyncio.to_thread(
                acquire_spotify_token, cfg.client_id, cfg.client_secret, cfg.redirect_url, cfg.scope, store
            )
        else:
            logger.info("Refreshing Spotify token")
            token_info = await asyncio.to_thread(
                refresh_spotify_token, token_info, cfg.client_id, cfg.client_secret,
                settings.network.request_timeout
            )
            store.save(token_info)

        client = spotipy.Spotify(
            auth=token_info['access_token'],
            requests_timeout=settings.network.request_timeout,
            retries=0,
            status_retries=0,
        )
        platform = cls(
            client,
            user_id="",
            token_store=store,
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            refresh_interval=settings.network.token_refresh_interval,
            **options_from_settings(settings, cls.kind.value),
            **kwargs
        )

        profile = await platform._request(client.current_user)
        platform.user_id = profile['id']
        platform._country = profile.get('country') or cfg.country or None
        logger.info(f"Connected to Spotify as {platform.user_id}")
        return platform

    def _refresh_token(self) -> None:
        token_info = self.token_store.load()
        if token_info is None:
            raise AuthError("Spotify token file disappeared, re-authentication required")
        token_info = refresh_spotify_token(token_info, self.client_id, self.client_secret)
        self.token_store.save(token_info)
        self.client = spotipy.Spotify(
            auth=token_info['access_token'],
            requests_timeout=self.client.requests_timeout,
            retries=0,
            status_retries=0,
        )

    def _translate_error(self, error: Exception) -> PlaylistSyncError:
        details = {'platform': self.kind.value, 'original_error': repr(error)}

        if isinstance(error, SpotifyException):
            details['status'] = error.http_status
            if is_throttling_signal(error.http_status, error.msg):
                retry_after = (error.headers or {}).get('Retry-After')
                details['retry_after'] = retry_after
                return RateLimited(f"Spotify rate limit: {error.msg}", details, payload=error.msg)
            if error.http_status == 401:
                return AuthError(f"Spotify rejected the access token: {error.msg}", details)
            return TransportError(f"Spotify API error {error.http_status}: {error.msg}", details)

        if isinstance(error, requests.RequestException):
            return TransportError(f"Spotify network error: {error}", details)

        return super()._translate_error(error)

    def country_code(self) -> Optional[str]:
        return self._country

    def account_owner(self) -> Optional[str]:
        return self.user_id or None

    # Playlists

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        response = await self._request(
            lambda: self.client.user_playlist_create(
                self.user_id, name, public=public, description=PLAYLIST_DESC
            )
        )
        logger.info(f"Created Spotify playlist '{name}' ({response['id']})")
        return Playlist(id=response['id'], name=name, songs=[], owner=self.user_id)

    async def _fetch_playlists_info(self) -> List[Playlist]:
        async def fetch_page(previous):
            if previous is None:
                return await self._request(lambda: self.client.current_user_playlists(limit=PLAYLIST_PAGE_SIZE))
            return await self._request(lambda: self.client.next(previous))

        items = await collect_continuation(
            fetch_page,
            lambda page: (page or {}).get('items') or [],
            lambda page: page if page and page.get('next') else None,
        )

        playlists = []
        for item in items:
            if not item or not item.get('id'):
                logger.warning("Skipping malformed playlist entry")
                continue
            playlists.append(Playlist(
                id=item['id'],
                name=item.get('name', ''),
                owner=(item.get('owner') or {}).get('id'),
            ))
        return playlists

    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        async def fetch_page(offset, limit):
            return await self._request(
                lambda: self.client.playlist_items(
                    playlist_id, limit=limit, offset=offset, additional_types=('track',)
                )
            )

        items = await collect_offset(
            fetch_page,
            lambda page: (page or {}).get('items') or [],
            lambda page: (page or {}).get('total', 0),
            ITEMS_PAGE_SIZE,
        )
        return songs_from_items(items)

    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        # Spotify accepts duplicates, so every batch is simply added
        for chunk in chunked([song.id for song in songs], ADD_CHUNK_SIZE):
            await self._request(lambda chunk=chunk: self.client.playlist_add_items(playlist.id, chunk))
        return AddOutcome.ADDED

    async def remove_songs_from_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        removed_ids = {song.id for song in songs}
        for chunk in chunked(sorted(removed_ids), ADD_CHUNK_SIZE):
            await self._request(
                lambda chunk=chunk: self.client.playlist_remove_all_occurrences_of_items(playlist.id, chunk)
            )
        playlist.songs = [song for song in playlist.songs if song.id not in removed_ids]

    async def delete_playlist(self, playlist: Playlist) -> None:
        # Spotify has no deletion, unfollowing removes it from the library
        await self._request(lambda: self.client.current_user_unfollow_playlist(playlist.id))

    # Search

    async def _search_isrc(self, isrc: str) -> Optional[Song]:
        response = await self._request(lambda: self.client.search(q=f"isrc:{isrc}", type='track', limit=1))
        items = ((response or {}).get('tracks') or {}).get('items') or []
        songs = songs_from_items([{'track': item} for item in items])
        return songs[0] if songs else None

    async def _search_text(self, query: str, limit: int) -> List[Song]:
        response = await self._request(lambda: self.client.search(q=query, type='track', limit=limit))
        items = ((response or {}).get('tracks') or {}).get('items') or []
        return songs_from_items([{'track': item} for item in items])

    # Likes

    async def add_likes(self, songs: List[Song]) -> None:
        for chunk in chunked([song.id for song in songs], LIKE_CHUNK_SIZE):
            await self._request(lambda chunk=chunk: self.client.current_user_saved_tracks_add(chunk))

    async def get_likes(self) -> List[Song]:
        async def fetch_page(previous):
            if previous is None:
                return await self._request(lambda: self.client.current_user_saved_tracks(limit=LIKE_CHUNK_SIZE))
            return await self._request(lambda: self.client.next(previous))

        items = await collect_continuation(
            fetch_page,
            lambda page: (page or {}).get('items') or [],
            lambda page: page if page and page.get('next') else None,
        )
        return songs_from_items(items)
