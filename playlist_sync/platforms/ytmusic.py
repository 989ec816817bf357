"""
YouTube Music adapter built on ytmusicapi

ytmusicapi follows continuations itself when asked for ``limit=None``, so
listings here are single library calls. Playlist additions are sent with
duplicate checking enabled; when YouTube Music answers with its
"Duplicates" confirmation dialog the whole batch was rejected and the base
class bisects it. A single song answered with "already in the playlist" is
simply skipped.

Two kinds of auth file are supported: ytmusicapi OAuth token files (refreshed
through ``OAuthCredentials``) and browser header files (no refresh possible).
When no auth file exists and OAuth client credentials are configured, the
ytmusicapi device flow creates an OAuth token file.
"""

import asyncio
import json
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from ytmusicapi import OAuthCredentials, YTMusic, setup_oauth
from ytmusicapi.exceptions import YTMusicError

from ..config.auth import CredentialRefresher, TokenStore
from ..config.settings import Settings
from ..exceptions import (
    AuthError,
    ConfigurationError,
    DataIntegrityWarning,
    PlaylistSyncError,
    RateLimited,
    TransportError,
)
from ..music.models import Album, Artist, PlatformKind, Playlist, Song
from ..utils.helpers import parse_duration_string
from ..utils.logger import get_logger
from ..utils.retry import is_throttling_signal
from .base import PLAYLIST_DESC, AddOutcome, MusicPlatform, options_from_settings


logger = get_logger(__name__)

DUPLICATES_TITLE = "Duplicates"
ALREADY_IN_PLAYLIST = "This track is already in the playlist"

_STATUS_RE = re.compile(r'HTTP (\d{3})')


def song_from_item(item: Dict[str, Any]) -> Song:
    """
    Convert a ytmusicapi track or search result to a Song

    Raises:
        DataIntegrityWarning: For unavailable entries without a videoId
    """
    if not item or not item.get('videoId'):
        title = item.get('title') if item else None
        raise DataIntegrityWarning(f"Skipping entry without videoId: {title or 'unknown'}")

    seconds = item.get('duration_seconds')
    if seconds is None:
        seconds = parse_duration_string(item.get('duration')) or 0

    album_data = item.get('album') or {}
    return Song(
        id=item['videoId'],
        name=item.get('title', ''),
        source=PlatformKind.YTMUSIC,
        artists=[
            Artist(name=a.get('name', ''), id=a.get('id'))
            for a in item.get('artists') or []
            if a and a.get('name')
        ],
        album=Album(name=album_data['name'], id=album_data.get('id')) if album_data.get('name') else None,
        duration_ms=int(seconds) * 1000,
        sid=item.get('setVideoId'),
    )


def songs_from_items(items: List[Dict[str, Any]]) -> List[Song]:
    songs = []
    for item in items or []:
        try:
            songs.append(song_from_item(item))
        except DataIntegrityWarning as e:
            logger.warning(e.message)
    return songs


def _runs_text(container: Dict[str, Any]) -> List[str]:
    return [run.get('text', '') for run in (container or {}).get('runs') or []]


def classify_add_response(response: Any) -> Optional[AddOutcome]:
    """
    Interpret an add_playlist_items response

    Returns:
        ADDED on success, DUPLICATE_CONFLICT for the "Duplicates" dialog,
        ALREADY_PRESENT for the "already in the playlist" toast, None otherwise
    """
    if not isinstance(response, dict):
        return None
    if 'SUCCEEDED' in str(response.get('status', '')):
        return AddOutcome.ADDED

    for action in response.get('actions') or []:
        dialog = action.get('confirmDialogEndpoint')
        if dialog:
            title = dialog.get('content', {}).get('confirmDialogRenderer', {}).get('title')
            if DUPLICATES_TITLE in _runs_text(title):
                return AddOutcome.DUPLICATE_CONFLICT

        toast = action.get('addToToastAction')
        if toast:
            text = toast.get('item', {}).get('notificationActionRenderer', {}).get('responseText')
            if any(ALREADY_IN_PLAYLIST in run for run in _runs_text(text)):
                return AddOutcome.ALREADY_PRESENT

    return None


class YTMusicPlatform(MusicPlatform):
    """
    YouTube Music account session

    Args:
        client: Authenticated YTMusic instance
        owner: Account name used as owner of the user's playlists
        country: Location code the session was opened with, if any
        auth_path: OAuth token file, refreshed periodically when given
        client_id: OAuth client id for refreshes
        client_secret: OAuth client secret for refreshes
        language: Interface language passed to ytmusicapi
        location: Location code passed to ytmusicapi
        **kwargs: Forwarded to MusicPlatform
    """

    kind = PlatformKind.YTMUSIC

    def __init__(
        self,
        client: YTMusic,
        owner: Optional[str] = None,
        country: Optional[str] = None,
        auth_path: Optional[Path] = None,
        client_id: str = "",
        client_secret: str = "",
        refresh_interval: float = 300,
        language: str = "en",
        location: str = "",
        **kwargs
    ):
        self.client = client
        self.owner = owner
        self.language = language
        self.location = location
        self._country = country
        self.token_store = TokenStore(auth_path) if auth_path else None
        self.client_id = client_id
        self.client_secret = client_secret
        refresher = CredentialRefresher(self._refresh_token, refresh_interval) if auth_path else None
        super().__init__(refresher=refresher, **kwargs)

    @classmethod
    async def connect(cls, settings: Settings, **kwargs) -> 'YTMusicPlatform':
        """
        Open a session from the configured auth file

        Raises:
            ConfigurationError: If the auth file is missing or unreadable
        """
        auth_path = settings.get_ytmusic_auth_path()
        cfg = settings.ytmusic
        if not auth_path.exists() and cfg.client_id and cfg.client_secret:
            logger.console_info("No YouTube Music token found, starting authorization...")
            auth_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(
                setup_oauth, cfg.client_id, cfg.client_secret, filepath=str(auth_path), open_browser=True
            )
        if not auth_path.exists():
            raise ConfigurationError(
                f"YouTube Music auth file not found: {auth_path}",
                details={'file_path': str(auth_path)}
            )

        try:
            with open(auth_path, 'r', encoding='utf-8') as f:
                auth_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to read YouTube Music auth file {auth_path}: {e}")

        is_oauth = 'refresh_token' in auth_data
        if is_oauth and not (cfg.client_id and cfg.client_secret):
            raise ConfigurationError("YouTube Music OAuth requires ytmusic.client_id and ytmusic.client_secret")

        platform = cls(
            cls._build_client(auth_path, cfg.client_id, cfg.client_secret, is_oauth, cfg.language, cfg.location),
            owner=cfg.owner or None,
            country=cfg.location or None,
            auth_path=auth_path if is_oauth else None,
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            refresh_interval=settings.network.token_refresh_interval,
            language=cfg.language,
            location=cfg.location,
            **options_from_settings(settings, cls.kind.value),
            **kwargs
        )

        if is_oauth:
            logger.info("Refreshing YouTube Music token")
            await platform.refresher.refresh_now()

        if not platform.owner:
            account = await platform._request(lambda: platform.client.get_account_info())
            platform.owner = (account or {}).get('accountName')
        logger.info(f"Connected to YouTube Music as {platform.owner}")
        return platform

    @staticmethod
    def _build_client(
        auth_path: Path,
        client_id: str,
        client_secret: str,
        is_oauth: bool,
        language: str = "en",
        location: str = ""
    ) -> YTMusic:
        if is_oauth:
            return YTMusic(
                str(auth_path),
                oauth_credentials=OAuthCredentials(client_id=client_id, client_secret=client_secret),
                language=language,
                location=location,
            )
        return YTMusic(str(auth_path), language=language, location=location)

    def _refresh_token(self) -> None:
        token = self.token_store.load()
        if token is None:
            raise AuthError("YouTube Music token file disappeared, re-authentication required")

        credentials = OAuthCredentials(client_id=self.client_id, client_secret=self.client_secret)
        try:
            refreshed = credentials.refresh_token(token['refresh_token'])
        except requests.RequestException as e:
            raise TransportError(f"Failed to refresh YouTube Music token: {e}") from e
        except Exception as e:
            raise AuthError(f"YouTube Music refused the refresh token: {e}") from e

        token.update(refreshed)
        token.pop('saved_at', None)
        token['expires_at'] = int(time.time()) + int(token.get('expires_in', 3600))
        self.token_store.save(token)
        self.client = self._build_client(
            self.token_store.path, self.client_id, self.client_secret, True, self.language, self.location
        )

    def _translate_error(self, error: Exception) -> PlaylistSyncError:
        message = str(error)
        details = {'platform': self.kind.value, 'original_error': repr(error)}
        match = _STATUS_RE.search(message)
        status = int(match.group(1)) if match else None
        details['status'] = status

        if is_throttling_signal(status, message):
            return RateLimited(f"YouTube Music rate limit: {message[:200]}", details, payload=message)
        if status in (401, 403) and isinstance(error, YTMusicError):
            return AuthError(f"YouTube Music rejected the session: {message[:200]}", details)
        if isinstance(error, (YTMusicError, requests.RequestException)):
            return TransportError(f"YouTube Music request failed: {message[:200]}", details)
        if isinstance(error, (KeyError, TypeError)):
            # ytmusicapi parsing failure on an unexpected response
            return TransportError(f"Unexpected YouTube Music response: {error!r}", details)
        return super()._translate_error(error)

    def country_code(self) -> Optional[str]:
        return self._country

    def account_owner(self) -> Optional[str]:
        return self.owner

    # Playlists

    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        privacy = 'PUBLIC' if public else 'PRIVATE'
        playlist_id = await self._request(
            lambda: self.client.create_playlist(name, PLAYLIST_DESC, privacy_status=privacy)
        )
        if not isinstance(playlist_id, str):
            raise TransportError(
                f"Failed to create playlist '{name}'",
                details={'platform': self.kind.value, 'response': playlist_id}
            )
        logger.info(f"Created YouTube Music playlist '{name}' ({playlist_id})")
        return Playlist(id=playlist_id, name=name, songs=[], owner=self.owner)

    async def _fetch_playlists_info(self) -> List[Playlist]:
        items = await self._request(lambda: self.client.get_library_playlists(limit=None))
        playlists = []
        for item in items or []:
            if not item.get('playlistId'):
                logger.warning(f"Skipping playlist without id: {item.get('title')}")
                continue
            authors = item.get('author') or []
            if isinstance(authors, dict):
                authors = [authors]
            owner = authors[0].get('name') if authors else self.owner
            playlists.append(Playlist(id=item['playlistId'], name=item.get('title', ''), owner=owner))
        return playlists

    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        response = await self._request(lambda: self.client.get_playlist(playlist_id, limit=None))
        return songs_from_items((response or {}).get('tracks'))

    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        response = await self._request(
            lambda: self.client.add_playlist_items(playlist.id, [song.id for song in songs], duplicates=False)
        )
        outcome = classify_add_response(response)
        if outcome is None:
            raise TransportError(
                f"Error adding songs to playlist '{playlist.name}'",
                details={'platform': self.kind.value, 'response': response}
            )
        return outcome

    async def remove_songs_from_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        videos = [{'videoId': song.id, 'setVideoId': song.sid} for song in songs if song.sid]
        if len(videos) != len(songs):
            logger.warning("Some songs have no playlist entry id and cannot be removed")
        if not videos:
            return

        response = await self._request(lambda: self.client.remove_playlist_items(playlist.id, videos))
        if 'SUCCEEDED' not in str(response):
            raise TransportError(
                f"Error removing songs from playlist '{playlist.name}'",
                details={'platform': self.kind.value, 'response': response}
            )
        removed = {video['setVideoId'] for video in videos}
        playlist.songs = [song for song in playlist.songs if song.sid not in removed]

    async def delete_playlist(self, playlist: Playlist) -> None:
        await self._request(lambda: self.client.delete_playlist(playlist.id))

    # Search

    async def _search_isrc(self, isrc: str) -> Optional[Song]:
        results = await self._request(lambda: self.client.search(f'"{isrc}"', filter='songs', limit=1))
        songs = songs_from_items(results)
        return songs[0] if songs else None

    async def _search_text(self, query: str, limit: int) -> List[Song]:
        results = await self._request(
            lambda: self.client.search(query, filter='songs', limit=limit, ignore_spelling=True)
        )
        return songs_from_items(results)

    # Likes

    async def add_likes(self, songs: List[Song]) -> None:
        # No bulk endpoint, one rating per song
        for song in songs:
            await self._request(lambda song=song: self.client.rate_song(song.id, 'LIKE'))

    async def get_likes(self) -> List[Song]:
        response = await self._request(lambda: self.client.get_liked_songs(limit=None))
        return songs_from_items((response or {}).get('tracks'))
