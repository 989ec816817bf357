"""
playlist-sync: mirror playlists and likes between music streaming accounts

Reads every playlist of a source account (Spotify or YouTube Music), finds
each song on the destination platform and appends the matches to playlists of
the same name there, creating them as needed. Nothing is ever removed from
the destination, so a run can be repeated safely.

Packages:

**Music model (`playlist_sync.music`)**
- Songs, playlists and their JSON interchange representation
- Cross-platform song equivalence and search query construction

**Platforms (`playlist_sync.platforms`)**
- The `MusicPlatform` interface shared by every adapter
- Spotify (spotipy) and YouTube Music (ytmusicapi) adapters

**Synchronization (`playlist_sync.sync`)**
- Playlist and likes reconciliation with search pacing
- Debug sidecar files and JSON snapshot export/import

**Configuration and utilities (`playlist_sync.config`, `playlist_sync.utils`)**
- YAML + environment settings, token storage and refresh
- Logging, rate-limit retry, pagination helpers
"""

__version__ = "1.0.0"
__author__ = "playlist-sync contributors"
