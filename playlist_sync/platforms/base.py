"""
Platform client interface

Every streaming platform is reached through one ``MusicPlatform`` subclass
operating on one authenticated session. The synchronizer only ever talks to
this interface and never inspects which concrete platform it holds; the
behaviors that differ per platform (pacing, country checks) are selected
through configuration keyed by ``platform_kind().value``.

Shared behavior implemented here:

- Request plumbing: proactive credential refresh, rate-limit retry with
  backoff, blocking library calls moved off the event loop, and translation
  of library errors into the playlist-sync exception hierarchy.
- Playlist listing de-duplication by id (first occurrence wins).
- In-memory append plus duplicate-conflict bisection for playlist additions,
  driven by an explicit work queue.
- The ISRC-then-queries ``search_song`` strategy.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from ..config.auth import CredentialRefresher
from ..exceptions import AuthError, PlaylistSyncError, TransportError, UnsupportedOperation
from ..music.matching import MatchThresholds, build_queries, compare
from ..music.models import PlatformKind, Playlist, Song
from ..utils.logger import get_logger
from ..utils.retry import BackoffPolicy, RateLimitRetry


logger = get_logger(__name__)

# Description given to playlists created on the destination
PLAYLIST_DESC = "Playlist synchronized by playlist-sync"


def options_from_settings(settings, platform_name: str) -> Dict[str, Any]:
    """Common MusicPlatform keyword arguments derived from the settings"""
    return {
        'thresholds': MatchThresholds(
            duration_tolerance_ms=settings.matching.duration_tolerance_ms,
            name_similarity=settings.matching.name_similarity,
            artist_similarity=settings.matching.artist_similarity,
        ),
        'search_candidates': settings.matching.search_candidates,
        'bisect_delay': settings.network.bisect_delay,
        'retry': RateLimitRetry(
            BackoffPolicy(
                base=settings.network.backoff_base,
                cap=settings.network.backoff_cap,
                max_retries=settings.network.max_retries,
            ),
            name=platform_name,
        ),
    }


class AddOutcome(Enum):
    """Result of submitting one batch to a playlist"""
    ADDED = "added"
    DUPLICATE_CONFLICT = "duplicate_conflict"
    ALREADY_PRESENT = "already_present"


class MusicPlatform(ABC):
    """
    Uniform capability set of a streaming platform account

    Subclasses set ``kind`` and implement the abstract methods. Instances own
    their session credential and retry state: do not share one instance
    between concurrent runs.

    Args:
        thresholds: Song matching parameters used by search_song
        search_candidates: Number of text search results inspected per query
        bisect_delay: Seconds to wait before submitting the second half of a bisected batch
        retry: Rate-limit retry executor, a default policy when None
        refresher: Credential refresh timer, None for sessions that cannot refresh
        sleep: Coroutine used for every wait
    """

    kind: PlatformKind

    def __init__(
        self,
        thresholds: Optional[MatchThresholds] = None,
        search_candidates: int = 3,
        bisect_delay: float = 3.0,
        retry: Optional[RateLimitRetry] = None,
        refresher: Optional[CredentialRefresher] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.thresholds = thresholds or MatchThresholds()
        self.search_candidates = search_candidates
        self.bisect_delay = bisect_delay
        self.sleep = sleep
        self.retry = retry or RateLimitRetry(sleep=sleep, name=self.kind.value)
        self.refresher = refresher

    # Informational

    def platform_kind(self) -> PlatformKind:
        return self.kind

    def country_code(self) -> Optional[str]:
        """ISO country of the account, None when the platform does not report one"""
        return None

    def account_owner(self) -> Optional[str]:
        """Owner identity of playlists created by this session, None if unknown"""
        return None

    # Request plumbing

    async def _request(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run a blocking library call with refresh, retry and error translation

        Args:
            func: Library method to call
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            The library call's return value

        Raises:
            AuthError: The credential was rejected (after a refresh attempt)
            RateLimitExceeded: Throttled beyond the retry budget
            TransportError: Any other failure
        """
        try:
            return await self.retry.call(self._invoke, func, *args, **kwargs)
        except AuthError:
            if self.refresher:
                logger.warning(f"{self.kind.value}: credential rejected, refreshing before surfacing the error")
                await self.refresher.refresh_now()
            raise

    async def _invoke(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        # Checked before every attempt, retries after a backoff included
        if self.refresher:
            await self.refresher.ensure_fresh()

        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except PlaylistSyncError:
            raise
        except Exception as e:
            raise self._translate_error(e) from e

    def _translate_error(self, error: Exception) -> PlaylistSyncError:
        """Map a library exception to RateLimited, AuthError or TransportError"""
        return TransportError(
            f"{self.kind.value} request failed: {error}",
            details={'platform': self.kind.value, 'original_error': repr(error)}
        )

    # Playlists

    @abstractmethod
    async def create_playlist(self, name: str, public: bool = False) -> Playlist:
        """Create an empty playlist owned by the session account"""

    async def get_playlists_info(self) -> List[Playlist]:
        """
        List the account's playlists without their songs

        Platforms occasionally return the same playlist on two pages; later
        occurrences are dropped with a warning.

        Returns:
            Playlists in platform order, unique by id
        """
        playlists = await self._fetch_playlists_info()
        unique = []
        seen_ids = set()
        for playlist in playlists:
            if playlist.id in seen_ids:
                logger.warning(
                    f"Duplicate playlist found: '{playlist.name}' ({playlist.id}), keeping first occurrence"
                )
                continue
            seen_ids.add(playlist.id)
            unique.append(playlist)

        logger.debug(f"Fetched {len(playlists)} playlists, {len(unique)} after deduplication")
        return unique

    @abstractmethod
    async def _fetch_playlists_info(self) -> List[Playlist]:
        """Raw playlist listing, possibly containing duplicates"""

    @abstractmethod
    async def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        """All songs of one playlist in playlist order"""

    async def get_playlists_full(self) -> List[Playlist]:
        """Playlist metadata plus songs for every playlist"""
        playlists = await self.get_playlists_info()
        for playlist in playlists:
            playlist.songs = await self.get_playlist_songs(playlist.id)
        return playlists

    async def add_songs_to_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        """
        Append songs to a playlist

        The in-memory playlist is updated first, whatever the remote outcome,
        so callers see the intended state. Batches the platform rejects as a
        whole because one song is already present are split in halves until
        the offending songs are isolated and skipped.

        Args:
            playlist: Destination playlist, extended in place
            songs: Songs native to this platform
        """
        if not songs:
            return

        playlist.songs.extend(songs)
        await self._submit_with_bisection(playlist, list(songs))

    async def _submit_with_bisection(self, playlist: Playlist, songs: List[Song]) -> None:
        # Each entry is (batch, seconds to wait before submitting it)
        queue: Deque[Tuple[List[Song], float]] = deque([(songs, 0.0)])

        while queue:
            batch, delay = queue.popleft()
            if delay:
                await self.sleep(delay)

            outcome = await self._add_batch(playlist, batch)

            if outcome is AddOutcome.DUPLICATE_CONFLICT and len(batch) > 1:
                mid = len(batch) // 2
                logger.debug(f"Duplicate conflict on {len(batch)} songs, splitting batch")
                queue.appendleft((batch[mid:], self.bisect_delay))
                queue.appendleft((batch[:mid], 0.0))
            elif outcome is not AddOutcome.ADDED:
                logger.info(f"Ignoring song already in playlist: {batch[0].display_name}")

    @abstractmethod
    async def _add_batch(self, playlist: Playlist, songs: List[Song]) -> AddOutcome:
        """Submit one batch remotely, reporting duplicate conflicts instead of raising"""

    async def remove_songs_from_playlist(self, playlist: Playlist, songs: List[Song]) -> None:
        raise UnsupportedOperation(
            f"remove_songs_from_playlist is not supported on {self.kind.value}",
            details={'platform': self.kind.value}
        )

    async def delete_playlist(self, playlist: Playlist) -> None:
        raise UnsupportedOperation(
            f"delete_playlist is not supported on {self.kind.value}",
            details={'platform': self.kind.value}
        )

    # Search

    async def search_song(self, song: Song) -> Optional[Song]:
        """
        Find the destination equivalent of a song

        A known ISRC is searched first and its single result is trusted.
        Otherwise (or when the ISRC search finds nothing) the queries from
        ``build_queries`` are tried most specific first, and the first of the
        top ``search_candidates`` results that ``compare`` accepts is returned.

        Args:
            song: Song from another platform

        Returns:
            Matching song native to this platform, or None
        """
        logger.debug(f"Searching for song: {song.display_name}")

        if song.isrc:
            found = await self._search_isrc(song.isrc)
            if found:
                if not found.isrc:
                    found.isrc = song.isrc
                return found

        queries = build_queries(song)
        while queries:
            query = queries.pop()
            candidates = await self._search_text(query, self.search_candidates)
            for candidate in candidates[:self.search_candidates]:
                if compare(song, candidate, self.thresholds):
                    return candidate

        return None

    async def _search_isrc(self, isrc: str) -> Optional[Song]:
        """Exact ISRC lookup, None where the platform has no such search"""
        return None

    @abstractmethod
    async def _search_text(self, query: str, limit: int) -> List[Song]:
        """Free-text song search, best results first"""

    # Likes

    @abstractmethod
    async def add_likes(self, songs: List[Song]) -> None:
        """Like every given song"""

    @abstractmethod
    async def get_likes(self) -> List[Song]:
        """The account's liked songs"""
