"""Test playlist and likes synchronization"""

import json
from pathlib import Path

import pytest

from playlist_sync.exceptions import ConfigurationError, TransportError
from playlist_sync.music.models import PlatformKind, Playlist
from playlist_sync.sync.artifacts import CONVERSION_RATE_FILE, MISSING_SONGS_FILE, NEW_SONGS_FILE
from playlist_sync.sync.synchronizer import (
    PacingState,
    PlaylistStats,
    PlaylistSynchronizer,
    SyncOptions,
    check_country,
    synchronize,
)

from conftest import FakePlatform, FakeSleep, song


YT = PlatformKind.YTMUSIC


def spotify_source(*playlists, likes=None, country=None):
    return FakePlatform(kind=PlatformKind.SPOTIFY, playlists=list(playlists), likes=likes, country=country)


def road_trip():
    song_a = song("sp-a", "Song A", isrc="USRC00000001")
    song_b = song("sp-b", "Nowhere Song")
    match_a = song("yt-a", "Song A (Official Audio)", source=YT, isrc="USRC00000001")
    source = spotify_source(Playlist(id="sp-1", name="Road Trip", songs=[song_a, song_b]))
    return source, match_a


class TestScenarios:
    """End-to-end runs against in-memory platforms"""

    @pytest.mark.asyncio
    async def test_road_trip(self, fake_sleep):
        """Test a new playlist is created and receives the single match"""
        source, match_a = road_trip()
        dst = FakePlatform(kind=YT, catalog=[match_a])

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == ["Road Trip"]
        assert dst.add_calls == [[match_a]]
        assert dst.remote("Road Trip").songs == [match_a]
        assert report.playlists[0].summary == "1/2 (50%)"
        assert report.playlists[0].created is True
        assert report.created == ["Road Trip"]
        assert "1 created" in report.summary

    @pytest.mark.asyncio
    async def test_chill_already_synchronized(self, fake_sleep):
        """Test an equivalent song already present causes no create and no add"""
        chill = song("sp-c", "Chill Song", artists=("Calm",))
        present = song("yt-c", "chill song", artists=("Calm",), source=YT)
        source = spotify_source(Playlist(id="sp-1", name="Chill", songs=[chill]))
        dst = FakePlatform(kind=YT, playlists=[Playlist(id="yt-1", name="Chill", songs=[present], owner="me")])

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == []
        assert dst.add_calls == []
        assert dst.searches == []
        assert report.playlists[0].summary == "0/0 (100%)"

    @pytest.mark.asyncio
    async def test_foo_not_owned(self, fake_sleep):
        """Test a destination playlist owned by someone else excludes its source namesake"""
        foo = song("sp-f", "Foo Song")
        bar = song("sp-b", "Bar Song")
        source = spotify_source(
            Playlist(id="sp-1", name="Foo", songs=[foo]),
            Playlist(id="sp-2", name="Bar", songs=[bar]),
        )
        dst = FakePlatform(
            kind=YT,
            playlists=[Playlist(id="yt-1", name="Foo", owner="someone")],
            catalog=[song("yt-f", "Foo Song", source=YT), song("yt-b", "Bar Song", source=YT)],
        )

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == ["Bar"]
        assert dst.remote("Foo").songs == []
        assert [stats.name for stats in report.playlists] == ["Bar"]
        assert "Foo" in report.skipped

    @pytest.mark.asyncio
    async def test_configured_owner(self, fake_sleep):
        """Test the explicit owner decides which destination playlists are usable"""
        source = spotify_source(Playlist(id="sp-1", name="Foo", songs=[song("sp-f", "Foo Song")]))
        dst = FakePlatform(
            kind=YT,
            playlists=[Playlist(id="yt-1", name="Foo", owner="someone")],
            catalog=[song("yt-f", "Foo Song", source=YT)],
        )

        await synchronize(source, dst, SyncOptions(owner="someone"), sleep=fake_sleep)

        assert dst.created == []
        assert [s.id for s in dst.remote("Foo").songs] == ["yt-f"]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, fake_sleep):
        """Test a second run adds nothing and creates nothing"""
        source, match_a = road_trip()
        dst = FakePlatform(kind=YT, catalog=[match_a])

        await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)
        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == ["Road Trip"]
        assert len(dst.add_calls) == 1
        assert dst.remote("Road Trip").songs == [match_a]
        assert report.playlists[0].summary == "0/1 (0%)"

    @pytest.mark.asyncio
    async def test_transport_error_aborts(self, fake_sleep):
        """Test a failing search stops the run"""
        source, match_a = road_trip()
        dst = FakePlatform(kind=YT, catalog=[match_a])
        dst.search_error = TransportError("network down")

        with pytest.raises(TransportError):
            await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)
        assert dst.add_calls == []


class TestPlaylistFiltering:
    """Test which playlists take part in a run"""

    @pytest.mark.asyncio
    async def test_skip_lists(self, fake_sleep):
        """Test user and platform-generated playlists are skipped"""
        source = spotify_source(
            Playlist(id="sp-1", name="Road Trip", songs=[song("1", "A")]),
            Playlist(id="sp-2", name="Discover Weekly", songs=[song("2", "B")]),
            Playlist(id="sp-3", name="Gym", songs=[song("3", "C")]),
        )
        dst = FakePlatform(kind=YT)

        report = await synchronize(source, dst, SyncOptions(skip_playlists=["road trip"]), sleep=fake_sleep)

        assert dst.created == ["Gym"]
        assert report.skipped == ["Road Trip", "Discover Weekly"]

    @pytest.mark.asyncio
    async def test_empty_playlists_ignored(self, fake_sleep):
        """Test empty source playlists are not created"""
        source = spotify_source(Playlist(id="sp-1", name="Empty"))
        dst = FakePlatform(kind=YT)

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == []
        assert report.playlists == []

    @pytest.mark.asyncio
    async def test_duplicate_source_songs(self, fake_sleep):
        """Test repeated source songs are searched and added once"""
        repeated = song("sp-1", "Song")
        source = spotify_source(Playlist(id="sp-1", name="Mix", songs=[repeated, song("sp-1", "Song")]))
        dst = FakePlatform(kind=YT, catalog=[song("yt-1", "Song", source=YT)])

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert report.playlists[0].summary == "1/1 (100%)"
        assert [s.id for s in dst.remote("Mix").songs] == ["yt-1"]

    @pytest.mark.asyncio
    async def test_matches_queued_once(self, fake_sleep):
        """Test two source songs resolving to one destination song are added once"""
        source = spotify_source(Playlist(id="sp-1", name="Mix", songs=[
            song("sp-1", "Song"),
            song("sp-2", "Song - Remastered"),
        ]))
        match = song("yt-1", "Song", source=YT)
        dst = FakePlatform(kind=YT, catalog=[match])

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.add_calls == [[match]]
        assert report.playlists[0].summary == "2/2 (100%)"

    @pytest.mark.asyncio
    async def test_same_name_source_playlists_merge(self, fake_sleep):
        """Test two source playlists with one name fill one destination playlist"""
        source = spotify_source(
            Playlist(id="sp-1", name="Mix", songs=[song("sp-1", "First")]),
            Playlist(id="sp-2", name="Mix", songs=[song("sp-2", "Second")]),
        )
        dst = FakePlatform(kind=YT, catalog=[song("yt-1", "First", source=YT), song("yt-2", "Second", source=YT)])

        await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.created == ["Mix"]
        assert [s.id for s in dst.remote("Mix").songs] == ["yt-1", "yt-2"]

    @pytest.mark.asyncio
    async def test_public_playlists(self, fake_sleep):
        """Test the public flag is passed on creation"""
        created = []
        dst = FakePlatform(kind=YT)
        original = dst.create_playlist

        async def create_playlist(name, public=False):
            created.append(public)
            return await original(name, public)

        dst.create_playlist = create_playlist
        synchronizer = PlaylistSynchronizer(dst, SyncOptions(public_playlists=True), sleep=fake_sleep)

        await synchronizer.sync_playlists([Playlist(id="sp-1", name="Mix", songs=[song("1", "A")])])
        assert created == [True]


class TestLikes:
    """Test likes mirroring"""

    @pytest.mark.asyncio
    async def test_like_all(self, fake_sleep):
        """Test songs added to playlists are liked unless already liked"""
        liked = song("yt-1", "First", source=YT)
        new = song("yt-2", "Second", source=YT)
        source = spotify_source(Playlist(id="sp-1", name="Mix", songs=[song("sp-1", "First"), song("sp-2", "Second")]))
        dst = FakePlatform(kind=YT, catalog=[liked, new], likes=[liked])

        report = await synchronize(source, dst, SyncOptions(like_all=True), sleep=fake_sleep)

        assert dst.like_calls == [[new]]
        assert report.playlists[0].liked == 1

    @pytest.mark.asyncio
    async def test_sync_likes(self, fake_sleep):
        """Test missing likes are searched and liked in a single call"""
        already = song("sp-1", "Already Liked")
        findable = song("sp-2", "Findable")
        missing = song("sp-3", "Obscure B-Side")
        source = spotify_source(likes=[already, findable, missing])
        dst = FakePlatform(
            kind=YT,
            catalog=[song("yt-2", "Findable", source=YT)],
            likes=[song("yt-1", "Already Liked", source=YT)],
        )

        report = await synchronize(source, dst, SyncOptions(sync_likes=True), sleep=fake_sleep)

        assert [[s.id for s in call] for call in dst.like_calls] == [["yt-2"]]
        assert report.likes.summary == "1/2 (50%)"
        assert report.likes.added == 1

    @pytest.mark.asyncio
    async def test_sync_likes_nothing_new(self, fake_sleep):
        """Test no like call is made when everything is already liked"""
        source = spotify_source(likes=[song("sp-1", "Liked")])
        dst = FakePlatform(kind=YT, likes=[song("yt-1", "Liked", source=YT)])

        report = await synchronize(source, dst, SyncOptions(sync_likes=True), sleep=fake_sleep)

        assert dst.like_calls == []
        assert report.likes.added == 0

    @pytest.mark.asyncio
    async def test_likes_disabled(self, fake_sleep):
        """Test likes are left alone by default"""
        source = spotify_source(likes=[song("sp-1", "Liked")])
        dst = FakePlatform(kind=YT, catalog=[song("yt-1", "Liked", source=YT)])

        report = await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)

        assert dst.like_calls == []
        assert report.likes is None


class TestPacing:
    """Test search pacing"""

    @pytest.mark.asyncio
    async def test_pacing_state(self):
        """Test cooldowns trigger every interval and grow each time"""
        sleep = FakeSleep()
        pacing = PacingState(interval=2, cooldown=10, step=5)

        waits = [await pacing.tick(sleep) for _ in range(6)]

        assert waits == [None, 10, None, 15, None, 20]
        assert sleep.calls == [10, 15, 20]

    @pytest.mark.asyncio
    async def test_pacing_disabled(self):
        """Test a disabled pacing never sleeps"""
        sleep = FakeSleep()
        pacing = PacingState(interval=1, enabled=False)

        assert await pacing.tick(sleep) is None
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_counter_spans_playlists(self, fake_sleep):
        """Test the search counter is not reset between playlists"""
        playlists = [
            Playlist(id="sp-1", name="One", songs=[song(f"a{n}", f"Alpha {n}") for n in range(3)]),
            Playlist(id="sp-2", name="Two", songs=[song(f"b{n}", f"Beta {n}") for n in range(3)]),
        ]
        options = SyncOptions(pacing_interval=4, pacing_initial_cooldown=180, pacing_cooldown_step=60)
        synchronizer = PlaylistSynchronizer(FakePlatform(kind=YT), options, sleep=fake_sleep)

        await synchronizer.sync_playlists(playlists)

        assert synchronizer.pacing.count == 6
        assert fake_sleep.calls == [180]

    @pytest.mark.asyncio
    async def test_unpaced_destination(self, fake_sleep):
        """Test destinations outside paced_platforms never cool down"""
        playlists = [Playlist(id="yt-1", name="One", songs=[song(f"a{n}", f"Alpha {n}", source=YT) for n in range(3)])]
        options = SyncOptions(pacing_interval=1)
        synchronizer = PlaylistSynchronizer(FakePlatform(kind=PlatformKind.SPOTIFY), options, sleep=fake_sleep)

        await synchronizer.sync_playlists(playlists)

        assert fake_sleep.calls == []

    def test_paced_platforms_case_insensitive(self):
        """Test configured platform names match regardless of case"""
        options = SyncOptions(paced_platforms=["YTMusic"])
        synchronizer = PlaylistSynchronizer(FakePlatform(kind=YT), options)
        assert synchronizer.pacing.enabled


class TestCountryCheck:
    """Test the account country pre-flight check"""

    def test_mismatch_rejected(self):
        """Test different countries raise before any request"""
        src = FakePlatform(kind=PlatformKind.SPOTIFY, country="FR")
        dst = FakePlatform(kind=PlatformKind.SPOTIFY, country="US")

        with pytest.raises(ConfigurationError) as exc_info:
            check_country(src, dst, SyncOptions())
        assert "(FR vs US)" in str(exc_info.value)

    def test_override(self):
        """Test diff_country allows the mismatch"""
        src = FakePlatform(kind=PlatformKind.SPOTIFY, country="FR")
        dst = FakePlatform(kind=PlatformKind.SPOTIFY, country="US")
        check_country(src, dst, SyncOptions(diff_country=True))

    def test_exempt_platform(self):
        """Test YouTube Music accounts skip the check"""
        src = FakePlatform(kind=PlatformKind.SPOTIFY, country="FR")
        dst = FakePlatform(kind=YT, country="US")
        check_country(src, dst, SyncOptions())

    def test_plex_exempt_by_default(self):
        """Test a Plex server, which has no country, skips the check"""
        src = FakePlatform(kind=PlatformKind.TIDAL, country="DE")
        dst = FakePlatform(kind=PlatformKind.PLEX, country=None)
        check_country(src, dst, SyncOptions())

        with pytest.raises(ConfigurationError):
            check_country(src, dst, SyncOptions(country_exempt_platforms=[]))

    @pytest.mark.asyncio
    async def test_checked_before_fetching(self, fake_sleep):
        """Test a mismatch stops the run before any playlist is read or created"""
        source = spotify_source(Playlist(id="sp-1", name="Mix", songs=[song("1", "A")]), country="FR")
        dst = FakePlatform(kind=PlatformKind.SPOTIFY, country="US")

        with pytest.raises(ConfigurationError):
            await synchronize(source, dst, SyncOptions(), sleep=fake_sleep)
        assert dst.created == []


class TestDebugArtifacts:
    """Test debug sidecar files"""

    @pytest.mark.asyncio
    async def test_files_written(self, temp_dir, fake_sleep):
        """Test missing songs, new songs and conversion rates are recorded"""
        source, match_a = road_trip()
        dst = FakePlatform(kind=YT, catalog=[match_a])
        options = SyncOptions(debug=True, debug_directory=str(temp_dir / "debug"))

        await synchronize(source, dst, options, sleep=fake_sleep)

        debug_dir = temp_dir / "debug"
        rates = json.loads((debug_dir / CONVERSION_RATE_FILE).read_text(encoding='utf-8'))
        missing = json.loads((debug_dir / MISSING_SONGS_FILE).read_text(encoding='utf-8'))
        new = json.loads((debug_dir / NEW_SONGS_FILE).read_text(encoding='utf-8'))

        assert rates == {"Road Trip": {"percentage": 0.5, "number": "1/2"}}
        assert [s['id'] for s in missing["Road Trip"]] == ["sp-b"]
        assert [s['id'] for s in new["Road Trip"]] == ["yt-a"]

    @pytest.mark.asyncio
    async def test_no_files_by_default(self, temp_dir, fake_sleep, monkeypatch):
        """Test nothing is written without debug mode"""
        monkeypatch.chdir(temp_dir)
        source, match_a = road_trip()

        await synchronize(source, FakePlatform(kind=YT, catalog=[match_a]), SyncOptions(), sleep=fake_sleep)

        assert not (temp_dir / "debug").exists()


class TestOptions:
    """Test option and statistics helpers"""

    def test_from_settings(self, settings):
        """Test options mirror the sync and matching settings, overrides win"""
        settings.sync.skip_playlists = ["Gym"]
        settings.matching.duration_tolerance_ms = 5000
        settings.sync.debug_directory = "~/sync-debug"

        options = SyncOptions.from_settings(settings, like_all=True, owner=None)

        assert options.skip_playlists == ["Gym"]
        assert options.like_all is True
        assert options.owner is None
        assert options.thresholds.duration_tolerance_ms == 5000
        assert options.paced_platforms == ["ytmusic"]
        assert options.debug_directory == str(Path("~/sync-debug").expanduser())

    def test_stats(self):
        """Test conversion rate with and without searches"""
        assert PlaylistStats(name="x", attempted=4, matched=3).conversion_rate == 0.75
        assert PlaylistStats(name="x").conversion_rate == 1.0
        assert PlaylistStats(name="x", attempted=2, matched=1).summary == "1/2 (50%)"
