"""
Playlist and likes synchronization between two platform accounts

The synchronizer reconciles a snapshot of source playlists against the
destination account through the MusicPlatform interface only. One run:

1. Fetch destination playlist metadata (and destination likes when every
   synced song should also be liked).
2. Drop source playlists named in the caller's skip list or in the fixed set
   of platform-generated playlists (mixes, pseudo "liked songs" lists).
3. Drop destination playlists the configured owner does not own, together
   with any source playlist of the same name.
4. For every remaining non-empty source playlist, in source order:
   deduplicate its songs, pick (and consume) the destination playlist with
   the exact same name or create one, search every song not already present
   by equivalence, queue the matches not already present or queued, submit
   the batch once, optionally like it, and record the conversion rate.

Nothing is ever removed from the destination, so rerunning after a failure
converges: songs added by an earlier run are found by the equivalence check
and never submitted twice.

Searches are serialized. Destinations listed in the paced platforms get a
cooldown every N searches for the whole run (see PacingState).
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config.settings import Settings
from ..exceptions import ConfigurationError
from ..music.matching import MatchThresholds, contains_equivalent
from ..music.models import Playlist, Song, dedup_songs
from ..platforms.base import MusicPlatform
from ..utils.helpers import format_rate
from ..utils.logger import create_operation_logger, get_logger
from .artifacts import DebugArtifacts


logger = get_logger(__name__)

# Playlists generated by the platforms themselves, never synchronized
SKIPPED_PLAYLISTS = [
    # YouTube Music
    "New playlist",
    "Your Likes",
    "My Supermix",
    "Discover Mix",
    "Episodes for Later",
    "New Release Mix",
    "Archive Mix",
    # Spotify
    "Liked Songs",
    "Discover Weekly",
    "Big Room House Mix",
    "Motivation Electronic Mix",
    "High Energy Mix",
]

LIKES_LABEL = "Liked Songs"

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class SyncOptions:
    """
    Behavior switches for one synchronization run

    Attributes:
        sync_likes: Mirror source likes to the destination
        like_all: Also like every song added to a destination playlist
        skip_playlists: Source playlist names to ignore (case-insensitive)
        diff_country: Allow accounts registered in different countries
        public_playlists: Create destination playlists as public
        owner: Destination owner identity, the destination session's own when None
        debug: Write debug sidecar files
        debug_directory: Where the sidecar files go
        paced_platforms: Destination platform names subject to search pacing
        country_exempt_platforms: Platform names excluded from the country check
        pacing_interval: Searches between two cooldowns
        pacing_initial_cooldown: First cooldown in seconds
        pacing_cooldown_step: Seconds added to the cooldown each time it triggers
        thresholds: Equivalence parameters for presence checks
        show_progress: Draw a progress bar while searching
    """
    sync_likes: bool = False
    like_all: bool = False
    skip_playlists: List[str] = field(default_factory=list)
    diff_country: bool = False
    public_playlists: bool = False
    owner: Optional[str] = None
    debug: bool = False
    debug_directory: str = "debug"
    paced_platforms: List[str] = field(default_factory=lambda: ["ytmusic"])
    country_exempt_platforms: List[str] = field(default_factory=lambda: ["ytmusic", "plex"])
    pacing_interval: int = 200
    pacing_initial_cooldown: float = 180
    pacing_cooldown_step: float = 60
    thresholds: MatchThresholds = field(default_factory=MatchThresholds)
    show_progress: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> 'SyncOptions':
        """
        Build options from the sync/matching settings sections

        Args:
            settings: Application settings
            **overrides: Values taking precedence, None values are ignored

        Returns:
            SyncOptions instance
        """
        sync = settings.sync
        options = cls(
            sync_likes=sync.sync_likes,
            like_all=sync.like_all,
            skip_playlists=list(sync.skip_playlists),
            diff_country=sync.diff_country,
            public_playlists=sync.public_playlists,
            debug=sync.debug,
            debug_directory=str(settings.get_debug_directory()),
            paced_platforms=list(sync.paced_platforms),
            country_exempt_platforms=list(sync.country_exempt_platforms),
            pacing_interval=sync.pacing_interval,
            pacing_initial_cooldown=sync.pacing_initial_cooldown,
            pacing_cooldown_step=sync.pacing_cooldown_step,
            thresholds=MatchThresholds(
                duration_tolerance_ms=settings.matching.duration_tolerance_ms,
                name_similarity=settings.matching.name_similarity,
                artist_similarity=settings.matching.artist_similarity,
            ),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


@dataclass
class PacingState:
    """
    Search pacing for one destination over one run

    Every ``interval``-th search sleeps for ``cooldown`` seconds, then the
    cooldown grows by ``step``. The counter is never reset between playlists.
    """
    interval: int = 200
    cooldown: float = 180
    step: float = 60
    enabled: bool = True
    count: int = 0

    async def tick(self, sleep: SleepFunc) -> Optional[float]:
        """
        Count one search, sleeping when a cooldown is due

        Returns:
            Seconds slept, or None when no cooldown happened
        """
        if not self.enabled:
            return None

        self.count += 1
        if self.count % self.interval != 0:
            return None

        wait = self.cooldown
        logger.console_info(f"Reached {self.count} searches, taking a {wait:.0f}-second break...")
        await sleep(wait)
        self.cooldown += self.step
        return wait


@dataclass
class PlaylistStats:
    """
    Outcome of one playlist (or of the likes pass)

    ``attempted`` counts searches only: songs already present on the
    destination are neither attempted nor matched.
    """
    name: str
    attempted: int = 0
    matched: int = 0
    added: int = 0
    liked: int = 0
    created: bool = False

    @property
    def conversion_rate(self) -> float:
        return self.matched / self.attempted if self.attempted else 1.0

    @property
    def summary(self) -> str:
        """Conversion as 'matched/attempted (pct%)', e.g. '1/2 (50%)'"""
        return format_rate(self.matched, self.attempted)


@dataclass
class SyncReport:
    """Aggregated results of a run"""
    playlists: List[PlaylistStats] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    likes: Optional[PlaylistStats] = None

    @property
    def created(self) -> List[str]:
        return [stats.name for stats in self.playlists if stats.created]

    @property
    def songs_added(self) -> int:
        return sum(stats.added for stats in self.playlists)

    @property
    def summary(self) -> str:
        attempted = sum(stats.attempted for stats in self.playlists)
        matched = sum(stats.matched for stats in self.playlists)
        parts = [
            f"{len(self.playlists)} playlists synchronized",
            f"{len(self.created)} created",
            f"{self.songs_added} songs added",
            f"conversion {format_rate(matched, attempted)}",
        ]
        if self.likes is not None:
            parts.append(f"{self.likes.added} likes added")
        return ", ".join(parts)


def check_country(src: MusicPlatform, dst: MusicPlatform, options: SyncOptions) -> None:
    """
    Refuse accounts from different countries unless explicitly allowed

    Catalogs differ per country, so matches found for one account may not
    exist for the other. Platforms in ``country_exempt_platforms`` do not
    report a meaningful country and skip the check.

    Raises:
        ConfigurationError: On a mismatch without ``diff_country``
    """
    if options.diff_country:
        return

    exempt = {name.lower() for name in options.country_exempt_platforms}
    if src.platform_kind().value in exempt or dst.platform_kind().value in exempt:
        return

    src_country = src.country_code()
    dst_country = dst.country_code()
    if src_country != dst_country:
        raise ConfigurationError(
            f"source and destination music platforms are in different countries "
            f"({src_country} vs {dst_country}). You can specify --diff-country to allow it, "
            f"but this might result in incorrect sync results.",
            details={'source_country': src_country, 'destination_country': dst_country}
        )


class PlaylistSynchronizer:
    """
    Reconciles source playlists and likes onto one destination account

    One instance per run: it owns the pacing state and the debug artifacts.

    Args:
        dst: Destination platform session
        options: Run options
        sleep: Coroutine used for pacing cooldowns
    """

    def __init__(
        self,
        dst: MusicPlatform,
        options: Optional[SyncOptions] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.dst = dst
        self.options = options or SyncOptions()
        self.sleep = sleep
        self.pacing = PacingState(
            interval=self.options.pacing_interval,
            cooldown=self.options.pacing_initial_cooldown,
            step=self.options.pacing_cooldown_step,
            enabled=dst.platform_kind().value in {name.lower() for name in self.options.paced_platforms},
        )
        self.artifacts = DebugArtifacts(Path(self.options.debug_directory)) if self.options.debug else None
        self._synced: Dict[str, Playlist] = {}

    async def _search(self, song: Song) -> Optional[Song]:
        await self.pacing.tick(self.sleep)
        return await self.dst.search_song(song)

    def _owner(self) -> Optional[str]:
        return self.options.owner or self.dst.account_owner()

    # Filtering

    def _filter_skipped(self, src_playlists: List[Playlist], report: SyncReport) -> List[Playlist]:
        skipped = {name.lower() for name in self.options.skip_playlists + SKIPPED_PLAYLISTS}
        kept = []
        for playlist in src_playlists:
            if playlist.name.lower() in skipped:
                logger.debug(f"Skipping playlist \"{playlist.name}\"")
                report.skipped.append(playlist.name)
                continue
            kept.append(playlist)
        return kept

    def _filter_unowned(
        self,
        dst_playlists: List[Playlist],
        src_playlists: List[Playlist],
        report: SyncReport
    ) -> List[Playlist]:
        """Remove unowned destination playlists and their same-name sources"""
        owner = self._owner()
        if owner is None:
            return src_playlists

        unowned_names = set()
        for playlist in dst_playlists[:]:
            if playlist.owner is not None and playlist.owner != owner:
                logger.warning(
                    f"destination playlist \"{playlist.name}\" is not owned by user \"{owner}\", skipping"
                )
                unowned_names.add(playlist.name)
                dst_playlists.remove(playlist)

        kept = []
        for playlist in src_playlists:
            if playlist.name in unowned_names:
                report.skipped.append(playlist.name)
                continue
            kept.append(playlist)
        return kept

    def _warn_duplicate_names(self, src_playlists: List[Playlist]) -> None:
        seen = set()
        for playlist in src_playlists:
            if playlist.name in seen:
                logger.warning(
                    f"several source playlists are named \"{playlist.name}\", "
                    f"their songs will be merged into one destination playlist"
                )
            seen.add(playlist.name)

    # Playlists

    async def sync_playlists(self, src_playlists: List[Playlist]) -> SyncReport:
        """
        Reconcile source playlists onto the destination

        Args:
            src_playlists: Source playlists with their songs

        Returns:
            SyncReport with one PlaylistStats per synchronized playlist

        Raises:
            TransportError, AuthError, RateLimitExceeded: Abort the run; earlier playlists stay synchronized
        """
        report = SyncReport()

        logger.console_info("retrieving destination playlists...")
        dst_playlists = await self.dst.get_playlists_info()
        dst_likes: List[Song] = []
        if self.options.like_all:
            logger.console_info("retrieving destination likes...")
            dst_likes = await self.dst.get_likes()

        src_playlists = self._filter_skipped(src_playlists, report)
        src_playlists = self._filter_unowned(dst_playlists, src_playlists, report)
        self._warn_duplicate_names(src_playlists)

        for src_playlist in src_playlists:
            if not src_playlist.songs:
                logger.debug(f"Skipping empty playlist \"{src_playlist.name}\"")
                continue
            stats = await self._sync_playlist(src_playlist, dst_playlists, dst_likes)
            report.playlists.append(stats)

        logger.console_info("Synchronization complete!")
        return report

    async def _resolve_destination(
        self,
        src_playlist: Playlist,
        dst_playlists: List[Playlist],
        stats: PlaylistStats
    ) -> Playlist:
        name = src_playlist.name
        if name in self._synced:
            return self._synced[name]

        for i, candidate in enumerate(dst_playlists):
            if candidate.name == name:
                dst_playlist = dst_playlists.pop(i)
                dst_playlist.songs = await self.dst.get_playlist_songs(dst_playlist.id)
                break
        else:
            dst_playlist = await self.dst.create_playlist(name, self.options.public_playlists)
            stats.created = True

        self._synced[name] = dst_playlist
        return dst_playlist

    async def _sync_playlist(
        self,
        src_playlist: Playlist,
        dst_playlists: List[Playlist],
        dst_likes: List[Song]
    ) -> PlaylistStats:
        stats = PlaylistStats(name=src_playlist.name)
        thresholds = self.options.thresholds

        if dedup_songs(src_playlist.songs):
            logger.warning(
                f"duplicates found in source playlist \"{src_playlist.name}\", they will be skipped"
            )

        dst_playlist = await self._resolve_destination(src_playlist, dst_playlists, stats)
        operation = create_operation_logger(__name__, src_playlist.name, self.options.show_progress)
        operation.start(f"synchronizing playlist \"{src_playlist.name}\" ...")
        missing: List[Song] = []
        queued: List[Song] = []
        total = len(src_playlist.songs)

        try:
            for index, src_song in enumerate(src_playlist.songs, start=1):
                operation.progress(src_song.display_name, index, total)
                if contains_equivalent(dst_playlist.songs, src_song, thresholds):
                    continue

                stats.attempted += 1
                dst_song = await self._search(src_song)
                if dst_song is None:
                    logger.debug(f"no match found for song: {src_song.display_name}")
                    missing.append(src_song)
                    continue
                stats.matched += 1

                if contains_equivalent(dst_playlist.songs, dst_song, thresholds):
                    logger.debug(f"discrepancy, song already in destination playlist: {dst_song.display_name}")
                    continue
                if contains_equivalent(queued, dst_song, thresholds):
                    logger.debug(f"discrepancy, duplicate song in songs to synchronize: {dst_song.display_name}")
                    continue
                queued.append(dst_song)
        except Exception as e:
            operation.error(str(e))
            raise

        operation.complete(f"synchronizing playlist \"{src_playlist.name}\" [ok], {stats.summary} songs")

        if queued:
            await self.dst.add_songs_to_playlist(dst_playlist, queued)
            stats.added = len(queued)

            if self.options.like_all:
                new_likes = [song for song in queued if not contains_equivalent(dst_likes, song, thresholds)]
                if new_likes:
                    await self.dst.add_likes(new_likes)
                    dst_likes.extend(new_likes)
                    stats.liked = len(new_likes)

        if self.artifacts:
            self.artifacts.record(src_playlist.name, missing, queued, stats.matched, stats.attempted)

        return stats

    # Likes

    async def sync_likes(self, src_likes: List[Song]) -> PlaylistStats:
        """
        Mirror source likes onto the destination

        Source likes already liked at the destination are not searched. Matches
        already liked (equivalence on the destination side) or queued twice are
        dropped, and the remaining ones are liked in a single call at the end.

        Args:
            src_likes: Liked songs of the source account

        Returns:
            PlaylistStats for the likes pass
        """
        stats = PlaylistStats(name=LIKES_LABEL)
        thresholds = self.options.thresholds

        logger.console_info("synchronizing likes...")
        dst_likes = await self.dst.get_likes()

        missing: List[Song] = []
        new_likes: List[Song] = []
        for src_like in src_likes:
            if contains_equivalent(dst_likes, src_like, thresholds):
                continue

            stats.attempted += 1
            dst_song = await self._search(src_like)
            if dst_song is None:
                logger.debug(f"no match found for song: {src_like.display_name}")
                missing.append(src_like)
                continue
            stats.matched += 1

            if contains_equivalent(dst_likes, dst_song, thresholds):
                logger.debug(f"discrepancy, song already liked: {dst_song.display_name}")
                continue
            if contains_equivalent(new_likes, dst_song, thresholds):
                continue
            new_likes.append(dst_song)

        logger.console_info(f"synchronizing {len(new_likes)} new likes")
        if new_likes:
            await self.dst.add_likes(new_likes)
        stats.added = len(new_likes)

        if self.artifacts:
            self.artifacts.record(LIKES_LABEL, missing, new_likes, stats.matched, stats.attempted)

        return stats


async def synchronize_playlists(
    src_playlists: List[Playlist],
    dst: MusicPlatform,
    options: Optional[SyncOptions] = None,
    src_likes: Optional[List[Song]] = None,
    sleep: SleepFunc = asyncio.sleep
) -> SyncReport:
    """
    Synchronize an already-fetched source snapshot onto the destination

    Used directly when importing a JSON export. Likes are mirrored only when
    ``src_likes`` is given and likes sync is enabled.
    """
    synchronizer = PlaylistSynchronizer(dst, options, sleep)
    report = await synchronizer.sync_playlists(src_playlists)
    if synchronizer.options.sync_likes and src_likes is not None:
        report.likes = await synchronizer.sync_likes(src_likes)
    return report


async def synchronize(
    src: MusicPlatform,
    dst: MusicPlatform,
    options: Optional[SyncOptions] = None,
    sleep: SleepFunc = asyncio.sleep
) -> SyncReport:
    """
    Synchronize every playlist (and optionally the likes) from src to dst

    The country check runs before any network call.

    Args:
        src: Source platform session
        dst: Destination platform session
        options: Run options, defaults when None
        sleep: Coroutine used for pacing cooldowns

    Returns:
        SyncReport for the run

    Raises:
        ConfigurationError: Country mismatch without override
    """
    options = options or SyncOptions()
    check_country(src, dst, options)

    logger.console_info("retrieving source playlists...")
    src_playlists = await src.get_playlists_full()

    src_likes = None
    if options.sync_likes:
        logger.console_info("retrieving source likes...")
        src_likes = await src.get_likes()

    return await synchronize_playlists(src_playlists, dst, options, src_likes, sleep)
