"""
Tidal adapter built on tidalapi

The session is opened with tidalapi's device login the first time; the
resulting OAuth token is kept in a JSON token file and refreshed through
``Session.token_refresh``. Tidal rejects duplicate additions itself
(``allow_duplicates=False``), so playlist batches never need bisection.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
import tidalapi
from tidalapi.exceptions import AuthenticationError, InvalidISRC, ObjectNotFound, TooManyRequests

from ..config.auth import CredentialRefresher, TokenStore
from ..config.settings import Settings
from ..exceptions import AuthError, DataIntegrityWarning, PlaylistSyncError, RateLimited, TransportError
from ..music.models import Album, Artist, PlatformKind, Playlist, Song
from ..utils.logger import get_logger
from ..utils.pagination import collect_continuation, collect_offset
from ..utils.retry import is_throttling_signal
from .base import PLAYLIST_DESC, AddOutcome, MusicPlatform, options_from_settings


logger = get_logger(__name__)

PAGE_SIZE = 100


def song_from_track(track: Any) -> Song:
    """
    Convert a tidalapi Track to a Song

    Raises:
        DataIntegrityWarning: For entries without a track id (videos, removed tracks)
    """
    if track is None or getattr(track, 'id', None) is None:
        raise DataIntegrityWarning(f"Skipping track without id: {getattr(track, 'name', None) or 'unknown'}")

    album = getattr(track, 'album', None)
    return Song(
        id=str(track.id),
        name=track.name or '',
        source=PlatformKind.TIDAL,
        artists=[
            Artist(name=artist.name or '', id=str(artist.id))
            for artist in getattr(track, 'artists', None) or []
        ],
        album=Album(name=album.name, id=str(album.id)) if album is not None and album.name else None,
        duration_ms=int(getattr(track, 'duration', 0) or 0) * 1000,
        isrc=getattr(track, 'isrc', None) or None,
    )


def songs_from_tracks(tracks: List[Any]) -> List[Song]:
    songs = []
    for track in tracks:
        try:
            songs.append(song_from_track(track))
        except DataIntegrityWarning as e:
            logger.warning(e.message)
    return songs


def token_from_session(session: tidalapi.Session) -> Dict[str, Any]:
    expiry = session.expiry_time
    return {
        'token_type': session.token_type,
        'access_token': session.access_token,
        'refresh_token': session.refresh_token,
        'expiry_time': expiry.isoformat() if isinstance(expiry, datetime) else expiry,
    }


class TidalPlatform(MusicPlatform):
    """
    Tidal account session

    Args:
        session: Logged-in tidalapi session
        token_store: Token file used for refreshes, None to disable refreshing
        owner: Tidal user id owning the user's playlists, the session user's when None
        **kwargs: Forwarded to MusicPlatform
    """

    kind = PlatformKind.TIDAL

    def __init__(
        self,
        session: tidalapi.Session,
        token_store: Optional[TokenStore] = None,
        owner: Optional[str] = None,
        refresh_interval: float = 300,
        **kwargs
    ):
        self.session = session
        self.token_store = token_store
        self.owner = owner
        refresher = CredentialRefresher(self._refresh_token, refresh_interval) if token_store else None
        super().__init__(refresher=refresher, **kwargs)

    @classmethod
    async def connect(cls, settings: Settings, **kwargs) -> 'TidalPlatform':
        """
        Open a session from the stored token, running the device login when there is none

        Raises:
            AuthError: If the stored token is rejected
        """
        store = TokenStore(settings.get_tidal_token_path())
        session = tidalapi.Session()

        token_info = store.load()
        if token_info is None:
            logger.console_info("No Tidal token found, starting authorization...")
            await asyncio.to_thread(session.login_oauth_simple, fn_print=logger.console_info)
            store.save(token_from_session(session))
        else:
            expiry = token_info.get('expiry_time')
            loaded = await asyncio.to_thread(
                session.load_oauth_session,
                token_info.get('token_type', 'Bearer'),
                token_info['access_token'],
                token_info['refresh_token'],
                datetime.fromisoformat(expiry) if expiry else None,
            )
            if not loaded:
                raise AuthError("Tidal rejected the stored session, re-authentication required")

        platform = cls(
            session,
            token_store=store,
            owner=settings.tidal.owner or None,
            refresh_interval=settings.network.token_refresh_interval,
            **options_from_settings(settings, cls.kind.value),
            **kwargs
        )
        if token_info is not None:
            logger.info("Refreshing Tidal token")
            await platform.refresher.refresh_now()

        if not platform.owner:
            platform.owner = str(session.user.id)
        logger.info(f"Connected to Tidal as {platform.owner}")
        return platform

    def _refresh_token(self) -> None:
        if not self.session.token_refresh(self.session.refresh_token):
            raise AuthError("Tidal token refresh failed, re-authentication required")
        self.token_store.save(token_from_session(self.session))

    def _translate_error(self, error: Exception) -> PlaylistSyncError:
        details = {'platform': self.kind.value, 'original_error': repr(error)}

        if isinstance(error, TooManyRequests):
            details['retry_after'] = getattr(error, 'retry_after', None)
            return RateLimited(f"Tidal rate limit: {error}", details, payload=str(error))

        if isinstance(error, AuthenticationError):
            return AuthError(f"Tidal rejected the session: {error}", details)

        if isinstance(error, requests.HTTPError):
            response = error.response
            status = response.status_code if response is not None else None
            text = response.text if response is not None else str(error)
            details['status'] = status
            if is_throttling_signal(status, text):
                return RateLimited(f"Tidal rate limit: {text}", details, payload=text)
            if status == 401:
                return AuthError(f"Tidal rejected the access token: {text}", details)
            return TransportError(f"Tidal API error {status}: {text}", details)

        if isinstance(error, ObjectNotFound):
            return TransportError(f"Tidal object not found: {error}", details)

        if isinstance(error, requests.RequestException):
            return TransportError(f"Tidal network error: {error}", details)

        return super()._translate_error(error)

    def country_code(self) -> Optional[str]:
        return self.session.country_code or None

    def account_owner(self) -> Optional[str]:
        return self.owner

    # Playlists

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        created = await self._request(lambda: self.session.user.create_playlist(name, PLAYLIST_DESC))
        if public:
            await self._request(created.set_playlist_public)
        logger.info(f"Created Tidal playlist '{name}' ({created.id})")
        return Playlist(id=str(created.id), name=name, songs=[], owner=self.owner)

    async def _fetch_playlists_info(self) -> List[Playlist]:
        items = await self._request(lambda: self.session.user.playlists())
        playlists = []
        for item in items or []:
            creator = getattr(item, 'creator', None)
            playlists.append(Playlist(
                id=str(item.id),
                name=item.name or '',
                owner=str(creator.id) if creator is not None and creator.id else self.owner,
            ))
        return playlists

    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        playlist = await self._request(lambda: self.session.playlist(playlist_id))

        async def fetch_page(offset, limit):
            return await self._request(lambda: playlist.tracks(limit=limit, offset=offset))

        tracks = await collect_offset(
            fetch_page,
            lambda page: page or [],
            lambda page: playlist.num_tracks or 0,
            PAGE_SIZE,
        )
        return songs_from_tracks(tracks)

    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        remote = await self._request(lambda: self.session.playlist(playlist.id))
        # Tidal drops ids already present instead of failing the batch
        await self._request(lambda: remote.add([song.id for song in songs], allow_duplicates=False))
        return AddOutcome.ADDED

    async def remove_songs_from_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        remote = await self._request(lambda: self.session.playlist(playlist.id))
        removed_ids = {song.id for song in songs}
        for song_id in sorted(removed_ids):
            await self._request(lambda song_id=song_id: remote.remove_by_id(song_id))
        playlist.songs = [song for song in playlist.songs if song.id not in removed_ids]

    async def delete_playlist(self, playlist: Playlist) -> None:
        remote = await self._request(lambda: self.session.playlist(playlist.id))
        await self._request(remote.delete)

    # Search

    async def _search_isrc(self, isrc: str) -> Optional[Song]:
        def lookup():
            try:
                return self.session.get_tracks_by_isrc(isrc.upper())
            except (InvalidISRC, ObjectNotFound):
                return []

        songs = songs_from_tracks(await self._request(lookup) or [])
        return songs[0] if songs else None

    async def _search_text(self, query: str, limit: int) -> List[Song]:
        results = await self._request(
            lambda: self.session.search(query, models=[tidalapi.media.Track], limit=limit)
        )
        return songs_from_tracks((results or {}).get('tracks') or [])

    # Likes

    async def add_likes(self, songs: List[Song]) -> None:
        favorites = self.session.user.favorites
        for song in songs:
            await self._request(lambda song=song: favorites.add_track(song.id))

    async def get_likes(self) -> List[Song]:
        favorites = self.session.user.favorites

        async def fetch_page(offset):
            offset = offset or 0
            tracks = await self._request(lambda: favorites.tracks(limit=PAGE_SIZE, offset=offset))
            return {'tracks': tracks or [], 'next': offset + PAGE_SIZE if len(tracks or []) == PAGE_SIZE else None}

        tracks = await collect_continuation(
            fetch_page,
            lambda page: page['tracks'],
            lambda page: page['next'],
        )
        return songs_from_tracks(tracks)
