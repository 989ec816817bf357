"""Integration tests for the command line interface"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from playlist_sync import __version__
from playlist_sync.main import cli
from playlist_sync.music.models import PlatformKind, Playlist
from playlist_sync.sync.transfer import save_playlists

from conftest import FakePlatform, song


def fake_builder(platforms):
    """Replacement for build_platform returning prepared fakes by name"""
    async def build(name, settings, **kwargs):
        return platforms[name]
    return build


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.yaml"
    path.write_text(
        "logging:\n"
        "  console_output: false\n"
        "sync:\n"
        f"  debug_directory: {(temp_dir / 'debug').as_posix()}\n",
        encoding='utf-8'
    )
    return str(path)


@pytest.fixture
def platforms():
    source = FakePlatform(kind=PlatformKind.SPOTIFY, playlists=[
        Playlist(id="sp-1", name="Road Trip", owner="me", songs=[
            song("sp-a", "Song A", isrc="USRC1"),
            song("sp-b", "Nowhere Song"),
        ]),
    ])
    dst = FakePlatform(kind=PlatformKind.YTMUSIC, catalog=[
        song("yt-a", "Song A", source=PlatformKind.YTMUSIC, isrc="USRC1"),
    ])
    return {'spotify': source, 'ytmusic': dst}


class TestCli:
    """Test CLI commands end to end with in-memory platforms"""

    def test_version(self):
        """Test version output"""
        result = CliRunner().invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert f"playlist-sync v{__version__}" in result.output

    def test_help_without_command(self, config_file):
        """Test the banner and usage are shown without a subcommand"""
        result = CliRunner().invoke(cli, ['--config', config_file])

        assert result.exit_code == 0
        assert "Usage" in result.output

    def test_missing_config_file(self, temp_dir):
        """Test an explicit config path that does not exist fails cleanly"""
        result = CliRunner().invoke(cli, ['--config', str(temp_dir / "nope.yaml"), 'config', 'show'])

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_sync(self, config_file, platforms):
        """Test a full sync run and its summary"""
        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, ['--config', config_file, 'sync', 'spotify', 'ytmusic'])

        assert result.exit_code == 0, result.output
        assert "Road Trip (created): 1/2 (50%)" in result.output
        assert platforms['ytmusic'].created == ["Road Trip"]

    def test_sync_skip_playlists(self, config_file, platforms):
        """Test the pipe separated skip list"""
        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, [
                '--config', config_file, 'sync', 'spotify', 'ytmusic', '--skip-playlists', 'Gym|Road Trip'
            ])

        assert result.exit_code == 0, result.output
        assert platforms['ytmusic'].created == []
        assert "Skipped: Road Trip" in result.output

    def test_sync_debug_and_like_all(self, config_file, platforms, temp_dir):
        """Test flags switch on debug files and liking"""
        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, [
                '--config', config_file, 'sync', 'spotify', 'ytmusic', '--debug', '--like-all'
            ])

        assert result.exit_code == 0, result.output
        assert (temp_dir / "debug" / "conversion_rate.json").exists()
        assert [[s.id for s in call] for call in platforms['ytmusic'].like_calls] == [["yt-a"]]

    def test_sync_country_mismatch(self, config_file):
        """Test a country mismatch exits with an error"""
        platforms = {
            'spotify': FakePlatform(kind=PlatformKind.SPOTIFY, country="FR"),
            'ytmusic': FakePlatform(kind=PlatformKind.SPOTIFY, country="US"),
        }
        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, ['--config', config_file, 'sync', 'spotify', 'ytmusic'])

        assert result.exit_code == 1
        assert "different countries" in result.output

    def test_sync_clear_cache(self, config_file, platforms):
        """Test --clear-cache is forwarded only for the named platform"""
        calls = []

        async def build(name, settings, **kwargs):
            calls.append((name, kwargs.get('clear_cache')))
            return platforms[name]

        with patch('playlist_sync.main.build_platform', new=build):
            result = CliRunner().invoke(cli, [
                '--config', config_file, 'sync', 'spotify', 'ytmusic', '--clear-cache', 'YTMusic'
            ])

        assert result.exit_code == 0, result.output
        assert calls == [('spotify', False), ('ytmusic', True)]

    def test_unknown_platform(self, config_file):
        """Test platform names are validated"""
        result = CliRunner().invoke(cli, ['--config', config_file, 'sync', 'spotify', 'deezer'])
        assert result.exit_code == 2

    def test_export(self, config_file, platforms, temp_dir):
        """Test exporting a source account to JSON"""
        output = temp_dir / "snapshot.json"
        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, ['--config', config_file, 'export', 'spotify', str(output)])

        assert result.exit_code == 0, result.output
        assert "Exported 1 playlists (2 songs)" in result.output
        assert json.loads(output.read_text(encoding='utf-8'))[0]['name'] == "Road Trip"

    def test_import(self, config_file, platforms, temp_dir):
        """Test importing a snapshot onto a destination"""
        snapshot = temp_dir / "snapshot.json"
        save_playlists(platforms['spotify'].playlists, snapshot)

        with patch('playlist_sync.main.build_platform', new=fake_builder(platforms)):
            result = CliRunner().invoke(cli, ['--config', config_file, 'import', str(snapshot), 'ytmusic'])

        assert result.exit_code == 0, result.output
        assert platforms['ytmusic'].created == ["Road Trip"]
        assert [s.id for s in platforms['ytmusic'].remote("Road Trip").songs] == ["yt-a"]

    def test_import_cancelled(self, config_file, temp_dir):
        """Test Ctrl-C exits with 130"""
        snapshot = temp_dir / "snapshot.json"
        save_playlists([], snapshot)

        with patch('playlist_sync.main.load_playlists', side_effect=KeyboardInterrupt):
            result = CliRunner().invoke(cli, ['--config', config_file, 'import', str(snapshot), 'ytmusic'])

        assert result.exit_code == 130

    def test_config_show(self, config_file, monkeypatch):
        """Test configuration display masks secrets"""
        monkeypatch.setenv('SPOTIFY_CLIENT_SECRET', 'hunter2')

        result = CliRunner().invoke(cli, ['--config', config_file, 'config', 'show'])

        assert result.exit_code == 0, result.output
        assert "Sync:" in result.output
        assert "client_secret: ***" in result.output
        assert "hunter2" not in result.output
