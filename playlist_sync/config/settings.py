"""
Configuration management for playlist-sync

This module handles loading, validation, and management of application settings
from YAML files and environment variables.

The configuration is organized into logical sections using dataclasses:
- Platform credentials and account identity (Spotify, YouTube Music, Tidal, Plex)
- Synchronization behavior (likes, skip lists, pacing, debug artifacts)
- Song matching thresholds
- Network retry/backoff policy
- Logging and token storage

Sensitive values (client secrets) are read from environment variables, with a
``.env`` file honored through python-dotenv, so they never need to live in
the YAML file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from ..exceptions import ConfigurationError

# Load environment variables from .env file if present
load_dotenv()


@dataclass
class SpotifyConfig:
    """
    Spotify Web API credentials and account identity

    ``owner`` is the Spotify user id whose playlists may be modified when
    Spotify is the destination. Empty means "the authenticated user".
    """
    client_id: str = ""
    client_secret: str = ""
    redirect_url: str = "http://localhost:8080/callback"
    scope: str = (
        "playlist-read-private playlist-read-collaborative "
        "playlist-modify-private playlist-modify-public "
        "user-library-read user-library-modify user-read-private"
    )
    owner: str = ""
    country: str = ""


@dataclass
class YTMusicConfig:
    """
    YouTube Music session settings

    ``auth_file`` is a ytmusicapi OAuth or browser-headers JSON file. OAuth
    files need client_id/client_secret for token refresh.
    """
    auth_file: str = "~/.playlist-sync/ytmusic_oauth.json"
    client_id: str = ""
    client_secret: str = ""
    owner: str = ""
    language: str = "en"
    location: str = ""


@dataclass
class TidalConfig:
    """
    Tidal session settings

    The session is opened through tidalapi's device login the first time and
    cached in ``security.tidal_token_path``. ``owner`` is the Tidal user id
    whose playlists may be modified.
    """
    owner: str = ""


@dataclass
class PlexConfig:
    """
    Plex Media Server connection

    Playlists are created in the ``music_library`` section. Plex has no
    account country and no likes.
    """
    server_url: str = ""
    token: str = ""
    music_library: str = "Music"
    owner: str = ""


@dataclass
class SyncConfig:
    """
    Synchronization behavior

    Pacing applies to destinations listed in ``paced_platforms``: every
    ``pacing_interval`` searches the run sleeps for a cooldown that starts at
    ``pacing_initial_cooldown`` and grows by ``pacing_cooldown_step`` seconds.
    """
    sync_likes: bool = False
    like_all: bool = False
    skip_playlists: List[str] = field(default_factory=list)
    diff_country: bool = False
    public_playlists: bool = False
    debug: bool = False
    debug_directory: str = "debug"
    paced_platforms: List[str] = field(default_factory=lambda: ["ytmusic"])
    country_exempt_platforms: List[str] = field(default_factory=lambda: ["ytmusic", "plex"])
    pacing_interval: int = 200
    pacing_initial_cooldown: int = 180
    pacing_cooldown_step: int = 60


@dataclass
class MatchingConfig:
    """Song equivalence thresholds, see music.matching.MatchThresholds"""
    duration_tolerance_ms: int = 2000
    name_similarity: float = 0.85
    artist_similarity: float = 0.8
    search_candidates: int = 3


@dataclass
class NetworkConfig:
    """
    Network retry and credential refresh settings

    Backoff for attempt n is min(backoff_base^(n+1), backoff_cap) seconds.
    """
    max_retries: int = 6
    backoff_base: int = 3
    backoff_cap: int = 900
    token_refresh_interval: int = 300
    bisect_delay: float = 3.0
    request_timeout: int = 30


@dataclass
class LoggingConfig:
    """Logging output settings"""
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class SecurityConfig:
    """Where session credentials are stored between runs"""
    config_directory: str = "~/.playlist-sync/"
    spotify_token_path: str = "~/.playlist-sync/spotify_token.json"
    tidal_token_path: str = "~/.playlist-sync/tidal_token.json"


ENV_MAPPINGS = {
    'SPOTIFY_CLIENT_ID': ('spotify', 'client_id'),
    'SPOTIFY_CLIENT_SECRET': ('spotify', 'client_secret'),
    'SPOTIFY_REDIRECT_URL': ('spotify', 'redirect_url'),
    'SPOTIFY_OWNER': ('spotify', 'owner'),
    'YTMUSIC_AUTH_FILE': ('ytmusic', 'auth_file'),
    'YTMUSIC_CLIENT_ID': ('ytmusic', 'client_id'),
    'YTMUSIC_CLIENT_SECRET': ('ytmusic', 'client_secret'),
    'YTMUSIC_OWNER': ('ytmusic', 'owner'),
    'TIDAL_OWNER': ('tidal', 'owner'),
    'PLEX_SERVER_URL': ('plex', 'server_url'),
    'PLEX_TOKEN': ('plex', 'token'),
    'PLEX_OWNER': ('plex', 'owner'),
    'MUSIC_LIBRARY': ('plex', 'music_library'),
}

SECRET_FIELDS = {
    'spotify': ['client_id', 'client_secret'],
    'ytmusic': ['client_id', 'client_secret'],
    'plex': ['token'],
}


class Settings:
    """
    Main settings class that manages all configuration

    Loads the first YAML file found (explicit path, user config directory,
    ./config/config.yaml, ./config.yaml), then applies environment variable
    overrides. Unknown keys in the YAML file are ignored.
    """

    def __init__(self, config_path: Optional[str] = None, load_files: bool = True):
        """
        Initialize settings from config file and environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
            load_files: Set False to start from defaults only (tests)
        """
        self.config_path = config_path
        self.loaded_from: Optional[Path] = None

        self.spotify = SpotifyConfig()
        self.ytmusic = YTMusicConfig()
        self.tidal = TidalConfig()
        self.plex = PlexConfig()
        self.sync = SyncConfig()
        self.matching = MatchingConfig()
        self.network = NetworkConfig()
        self.logging = LoggingConfig()
        self.security = SecurityConfig()

        if load_files:
            self._load_config()
            self._load_environment_variables()

    @property
    def sections(self) -> Dict[str, Any]:
        return {
            'spotify': self.spotify,
            'ytmusic': self.ytmusic,
            'tidal': self.tidal,
            'plex': self.plex,
            'sync': self.sync,
            'matching': self.matching,
            'network': self.network,
            'logging': self.logging,
            'security': self.security,
        }

    def _load_config(self) -> None:
        """
        Load configuration from the first YAML file found

        Raises:
            ConfigurationError: If an explicit path is missing or a file is not valid YAML
        """
        if self.config_path and not Path(self.config_path).expanduser().exists():
            raise ConfigurationError(
                f"Config file not found: {self.config_path}",
                details={'file_path': str(self.config_path)}
            )

        config_paths = [
            self.config_path,
            Path(self.security.config_directory).expanduser() / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml"),
        ]

        for path in config_paths:
            if path and Path(path).expanduser().exists():
                path = Path(path).expanduser()
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Failed to parse config file {path}: {e}",
                        details={'file_path': str(path)}
                    )
                self.loaded_from = path
                self.apply_config(config_data)
                break

    def apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist on the target dataclass are updated.

        Args:
            config_data: Dictionary containing configuration sections
        """
        for section_name, section_data in config_data.items():
            config_obj = self.sections.get(section_name)
            if config_obj is None or not isinstance(section_data, dict):
                continue
            for key, value in section_data.items():
                if hasattr(config_obj, key):
                    setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Environment variables take precedence over file-based configuration"""
        for env_var, (section, key) in ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value:
                setattr(self.sections[section], key, value)

    def get_config_directory(self) -> Path:
        return Path(self.security.config_directory).expanduser()

    def get_spotify_token_path(self) -> Path:
        return Path(self.security.spotify_token_path).expanduser()

    def get_ytmusic_auth_path(self) -> Path:
        return Path(self.ytmusic.auth_file).expanduser()

    def get_tidal_token_path(self) -> Path:
        return Path(self.security.tidal_token_path).expanduser()

    def get_debug_directory(self) -> Path:
        return Path(self.sync.debug_directory).expanduser()

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Dict[str, Any]]:
        """
        Serialize every section to plain dictionaries

        Args:
            include_secrets: Keep client ids and secrets instead of blanking them

        Returns:
            Mapping of section name to its field values
        """
        data = {name: dict(obj.__dict__) for name, obj in self.sections.items()}
        if not include_secrets:
            for section, keys in SECRET_FIELDS.items():
                for key in keys:
                    if data[section].get(key):
                        data[section][key] = "***"
        return data

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human-readable problems, empty when the configuration is usable
        """
        errors = []

        if self.network.max_retries < 0:
            errors.append("network.max_retries must not be negative")
        if self.network.backoff_base < 1:
            errors.append("network.backoff_base must be at least 1")
        if self.sync.pacing_interval < 1:
            errors.append("sync.pacing_interval must be at least 1")
        if self.matching.duration_tolerance_ms < 0:
            errors.append("matching.duration_tolerance_ms must not be negative")
        for name in ('name_similarity', 'artist_similarity'):
            value = getattr(self.matching, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"matching.{name} must be between 0 and 1")
        if self.matching.search_candidates < 1:
            errors.append("matching.search_candidates must be at least 1")
        if self.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid logging level: {self.logging.level}")

        return errors

    def validate_platform(self, kind: str) -> List[str]:
        """Check that the credentials needed for one platform are configured"""
        errors = []
        if kind == 'spotify':
            if not self.spotify.client_id or not self.spotify.client_secret:
                errors.append("Spotify client_id and client_secret are required")
        elif kind == 'ytmusic':
            has_oauth_client = bool(self.ytmusic.client_id and self.ytmusic.client_secret)
            if not self.get_ytmusic_auth_path().exists() and not has_oauth_client:
                errors.append(
                    f"YouTube Music auth file not found: {self.ytmusic.auth_file} "
                    f"(or set client_id and client_secret to authorize)"
                )
        elif kind == 'plex':
            if not self.plex.server_url or not self.plex.token:
                errors.append("Plex server_url and token are required")
            if not self.plex.music_library:
                errors.append("Plex music_library is required")
        return errors

    def __str__(self) -> str:
        sections = [
            f"Sync likes: {self.sync.sync_likes}",
            f"Like all: {self.sync.like_all}",
            f"Retries: {self.network.max_retries}",
            f"Debug: {self.sync.debug}",
        ]
        return f"Settings({', '.join(sections)})"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    Created on first access so importing this module has no side effects
    beyond reading ``.env``.

    Returns:
        The global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings


def reset_settings() -> None:
    """Forget the global instance (tests)"""
    global _settings
    _settings = None
