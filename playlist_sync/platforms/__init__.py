"""Platform adapters and the factory selecting one by name"""

from typing import List

from ..config.auth import TokenStore
from ..config.settings import Settings
from ..exceptions import ConfigurationError
from ..utils.logger import get_logger
from .base import AddOutcome, MusicPlatform


logger = get_logger(__name__)

PLATFORM_NAMES: List[str] = ['spotify', 'ytmusic', 'tidal', 'plex']


def _check_name(name: str) -> str:
    name = name.lower()
    if name not in PLATFORM_NAMES:
        raise ConfigurationError(
            f"Unknown platform '{name}', expected one of: {', '.join(PLATFORM_NAMES)}"
        )
    return name


def clear_token_cache(name: str, settings: Settings) -> None:
    """
    Delete the stored session token of a platform

    The next connection runs the platform's authorization flow again. A
    YouTube Music token can only be re-acquired with OAuth client credentials,
    so clearing it without them is refused.

    Raises:
        ConfigurationError: For unknown names, or YouTube Music without client credentials
    """
    name = _check_name(name)

    if name == 'spotify':
        path = settings.get_spotify_token_path()
    elif name == 'tidal':
        path = settings.get_tidal_token_path()
    elif name == 'ytmusic':
        if not settings.ytmusic.client_id or not settings.ytmusic.client_secret:
            raise ConfigurationError(
                "Clearing the YouTube Music token requires ytmusic client_id and client_secret",
                details={'platform': name}
            )
        path = settings.get_ytmusic_auth_path()
    else:
        logger.warning(f"{name} keeps no session token, nothing to clear")
        return

    TokenStore(path).clear()
    logger.info(f"Cleared {name} token cache {path}")


async def build_platform(name: str, settings: Settings, clear_cache: bool = False, **kwargs) -> MusicPlatform:
    """
    Open an authenticated session for the named platform

    Args:
        name: Platform name as used on the command line ('spotify', 'ytmusic', 'tidal', 'plex')
        settings: Application settings providing credentials and policies
        clear_cache: Delete the stored token first, forcing a new authorization
        **kwargs: Forwarded to the adapter constructor

    Returns:
        Connected MusicPlatform instance

    Raises:
        ConfigurationError: For unknown names or missing credentials
    """
    name = _check_name(name)

    if clear_cache:
        clear_token_cache(name, settings)

    problems = settings.validate_platform(name)
    if problems:
        raise ConfigurationError("; ".join(problems), details={'platform': name})

    if name == 'spotify':
        from .spotify import SpotifyPlatform
        return await SpotifyPlatform.connect(settings, **kwargs)

    if name == 'tidal':
        from .tidal import TidalPlatform
        return await TidalPlatform.connect(settings, **kwargs)

    if name == 'plex':
        from .plex import PlexPlatform
        return await PlexPlatform.connect(settings, **kwargs)

    from .ytmusic import YTMusicPlatform
    return await YTMusicPlatform.connect(settings, **kwargs)


__all__ = ['AddOutcome', 'MusicPlatform', 'PLATFORM_NAMES', 'build_platform', 'clear_token_cache']
