"""
Debug sidecar files written during a synchronization run

When debug mode is on, three JSON files in the debug directory are rewritten
after every playlist so a crashed run still leaves usable output:

    missing_songs.json    {playlist name: [source songs without a match]}
    new_songs.json        {playlist name: [destination songs added]}
    conversion_rate.json  {playlist name: {"percentage": 0.5, "number": "1/2"}}
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from ..music.models import Song
from ..utils.logger import get_logger


logger = get_logger(__name__)

MISSING_SONGS_FILE = "missing_songs.json"
NEW_SONGS_FILE = "new_songs.json"
CONVERSION_RATE_FILE = "conversion_rate.json"


class DebugArtifacts:
    """Accumulates per-playlist results and mirrors them to disk"""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.missing: Dict[str, List[Dict[str, Any]]] = {}
        self.new: Dict[str, List[Dict[str, Any]]] = {}
        self.stats: Dict[str, Dict[str, Any]] = {}
        self.directory.mkdir(parents=True, exist_ok=True)

    def record(
        self,
        name: str,
        missing: List[Song],
        added: List[Song],
        matched: int,
        attempted: int
    ) -> None:
        """
        Store one playlist's outcome and rewrite the sidecar files

        Args:
            name: Source playlist name
            missing: Source songs for which no match was found
            added: Destination songs submitted to the playlist
            matched: Number of successful searches
            attempted: Number of searches performed
        """
        self.stats[name] = {
            'percentage': matched / attempted if attempted else 1.0,
            'number': f"{matched}/{attempted}",
        }
        self._write(CONVERSION_RATE_FILE, self.stats)

        if added:
            self.new[name] = [song.to_dict() for song in added]
            self._write(NEW_SONGS_FILE, self.new)

        if missing:
            self.missing[name] = [song.to_dict() for song in missing]
            self._write(MISSING_SONGS_FILE, self.missing)

    def _write(self, filename: str, data: Dict[str, Any]) -> None:
        path = self.directory / filename
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"Wrote debug artifact {path}")
