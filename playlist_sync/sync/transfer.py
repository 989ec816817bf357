"""
JSON snapshots of an account's playlists

``export_playlists`` saves every playlist of a source account with its songs;
``load_playlists`` reads such a file back so it can be synchronized onto a
destination later (``playlist-sync import``), without the source account.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from ..exceptions import DataIntegrityWarning
from ..music.models import Playlist, Song
from ..platforms.base import MusicPlatform
from ..utils.logger import get_logger


logger = get_logger(__name__)


def save_playlists(playlists: List[Playlist], path: Union[str, Path], minify: bool = False) -> Path:
    """
    Write playlists to a JSON file

    Args:
        playlists: Playlists with their songs
        path: Output file, parent directories are created
        minify: Write compact JSON instead of indented

    Returns:
        Path of the written file
    """
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = [playlist.to_dict() for playlist in playlists]
    with open(path, 'w', encoding='utf-8') as f:
        if minify:
            json.dump(data, f, ensure_ascii=False, separators=(',', ':'))
        else:
            json.dump(data, f, ensure_ascii=False, indent=2)

    logger.info(f"Saved {len(playlists)} playlists to {path}")
    return path


def _playlist_from_entry(entry: Dict[str, Any]) -> Playlist:
    songs = []
    for song_data in entry.get('songs') or []:
        try:
            songs.append(Song.from_dict(song_data))
        except DataIntegrityWarning as e:
            logger.warning(f"Playlist \"{entry.get('name')}\": {e.message}, skipping song")

    shell = dict(entry, songs=[])
    playlist = Playlist.from_dict(shell)
    playlist.songs = songs
    return playlist


def load_playlists(path: Union[str, Path]) -> List[Playlist]:
    """
    Read playlists from a JSON snapshot

    Malformed playlist or song entries are logged and skipped; the rest of the
    file is still loaded.

    Args:
        path: Snapshot file written by save_playlists

    Returns:
        Playlists in file order

    Raises:
        DataIntegrityWarning: If the file is not valid JSON or not a list of playlists
    """
    path = Path(path).expanduser()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DataIntegrityWarning(f"Invalid JSON in {path}: {e}", details={'path': str(path)}) from e

    if not isinstance(data, list):
        raise DataIntegrityWarning(
            f"Expected a list of playlists in {path}",
            details={'path': str(path), 'type': type(data).__name__}
        )

    playlists = []
    for entry in data:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping malformed playlist entry in {path}")
            continue
        try:
            playlists.append(_playlist_from_entry(entry))
        except DataIntegrityWarning as e:
            logger.warning(f"{e.message}, skipping playlist")

    logger.info(f"Loaded {len(playlists)} playlists from {path}")
    return playlists


async def export_playlists(
    platform: MusicPlatform,
    output: Union[str, Path],
    minify: bool = False
) -> List[Playlist]:
    """
    Fetch every playlist of an account and save it as JSON

    Args:
        platform: Connected source session
        output: Destination file
        minify: Write compact JSON

    Returns:
        The exported playlists
    """
    logger.console_info(f"retrieving {platform.platform_kind().value} playlists...")
    playlists = await platform.get_playlists_full()
    save_playlists(playlists, output, minify)
    logger.console_info(f"exported {len(playlists)} playlists to {output}")
    return playlists
