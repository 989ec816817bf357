"""
Session credential storage and refresh

A session credential (access token, refresh token, expiry) belongs to exactly
one platform client. It is persisted as JSON between runs and refreshed:

- once at client start-up when a stored token exists,
- before any request once ``interval`` seconds (5 minutes by default) have
  passed since the last refresh,
- after the platform rejects the credential.

The token file layout is the one spotipy writes through its CacheFileHandler
(access_token, refresh_token, expires_at, token_type, scope), so tokens
acquired through ``spotipy.SpotifyOAuth`` and refreshed here share one file.
"""

import asyncio
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests
import spotipy
from spotipy.cache_handler import CacheFileHandler

from ..exceptions import AuthError, TransportError
from ..utils.logger import get_logger


logger = get_logger(__name__)

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"


class TokenStore:
    """
    JSON token file with owner-only permissions

    Attributes:
        path: Location of the token file
    """

    REQUIRED_FIELDS = ('access_token', 'refresh_token')

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the stored token

        Returns:
            Token dictionary, or None if the file is missing

        Raises:
            AuthError: If the file exists but is unreadable or lacks required fields
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                token_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AuthError(
                f"Failed to read stored token {self.path}: {e}",
                details={'file_path': str(self.path)}
            )

        missing = [name for name in self.REQUIRED_FIELDS if name not in token_data]
        if missing:
            raise AuthError(
                f"Invalid token structure in {self.path}, re-authentication required",
                details={'file_path': str(self.path), 'missing_fields': missing}
            )
        return token_data

    def save(self, token_info: Dict[str, Any]) -> None:
        """Write the token, restricting permissions to the owner where supported"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        token_data = {**token_info, 'saved_at': datetime.now().isoformat()}

        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(token_data, f, indent=2)

        try:
            self.path.chmod(0o600)
        except OSError:
            # Windows doesn't support chmod
            pass

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class CredentialRefresher:
    """
    Per-client proactive refresh timer

    Args:
        refresh: Blocking callable performing the refresh, run in a worker thread
        interval: Seconds between proactive refreshes
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        interval: float = 300,
        clock: Callable[[], float] = time.monotonic
    ):
        self._refresh = refresh
        self.interval = interval
        self.clock = clock
        self.last_refresh = clock()

    def is_due(self) -> bool:
        return self.clock() - self.last_refresh > self.interval

    async def ensure_fresh(self) -> None:
        """Refresh if the interval has elapsed since the last refresh"""
        if self.is_due():
            logger.debug("Refreshing session credential")
            await self.refresh_now()

    async def refresh_now(self) -> None:
        await asyncio.to_thread(self._refresh)
        self.last_refresh = self.clock()


def refresh_spotify_token(
    token_info: Dict[str, Any],
    client_id: str,
    client_secret: str,
    timeout: int = 30
) -> Dict[str, Any]:
    """
    Exchange a Spotify refresh token for a new access token

    Spotify may rotate the refresh token; the existing one is kept otherwise.

    Args:
        token_info: Current token, must contain refresh_token
        client_id: Spotify application client id
        client_secret: Spotify application client secret
        timeout: Request timeout in seconds

    Returns:
        Updated token dictionary

    Raises:
        AuthError: If Spotify rejects the refresh token
        TransportError: On network failure
    """
    data = {
        'grant_type': 'refresh_token',
        'refresh_token': token_info['refresh_token'],
        'client_id': client_id,
        'client_secret': client_secret,
    }

    try:
        response = requests.post(
            SPOTIFY_TOKEN_URL,
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
            data=data,
            timeout=timeout
        )
    except requests.RequestException as e:
        raise TransportError(f"Failed to refresh Spotify token: {e}", details={'original_error': str(e)})

    if response.status_code in (400, 401):
        raise AuthError(
            "Spotify refused the refresh token, re-authentication required",
            details={'status': response.status_code, 'body': response.text}
        )
    if not response.ok:
        raise TransportError(
            f"Spotify token endpoint returned {response.status_code}",
            details={'status': response.status_code, 'body': response.text}
        )

    new_token = response.json()
    expires_in = new_token.get('expires_in', 3600)
    return {
        'access_token': new_token['access_token'],
        'token_type': new_token.get('token_type', 'Bearer'),
        'expires_in': expires_in,
        'expires_at': int(time.time()) + expires_in,
        'refresh_token': new_token.get('refresh_token', token_info['refresh_token']),
        'scope': new_token.get('scope', token_info.get('scope', '')),
    }


def acquire_spotify_token(
    client_id: str,
    client_secret: str,
    redirect_url: str,
    scope: str,
    store: TokenStore
) -> Dict[str, Any]:
    """
    Run spotipy's authorization code flow and persist the token

    Opens the browser for consent; spotipy writes the token file itself.

    Returns:
        Token dictionary

    Raises:
        AuthError: If no token could be obtained
    """
    store.path.parent.mkdir(parents=True, exist_ok=True)
    oauth = spotipy.SpotifyOAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_url,
        scope=scope,
        cache_handler=CacheFileHandler(cache_path=str(store.path)),
    )
    token_info = oauth.get_access_token(as_dict=True)
    if not token_info:
        raise AuthError("Spotify authorization did not return a token")
    return store.load() or token_info
