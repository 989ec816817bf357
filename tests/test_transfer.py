"""Test JSON snapshot export and import"""

import json

import pytest

from playlist_sync.exceptions import DataIntegrityWarning
from playlist_sync.music.models import PlatformKind, Playlist
from playlist_sync.sync.transfer import export_playlists, load_playlists, save_playlists

from conftest import FakePlatform, song


class TestTransfer:
    """Test playlist snapshots"""

    def test_save_and_load(self, temp_dir):
        """Test a saved snapshot loads back with the same content"""
        playlists = [
            Playlist(id="p1", name="Road Trip", owner="me", songs=[
                song("1", "Song A", isrc="USRC1", album="Album"),
                song("2", "Song B", artists=("Alpha", "Beta")),
            ]),
            Playlist(id="p2", name="Empty", owner="me"),
        ]
        path = save_playlists(playlists, temp_dir / "out" / "snapshot.json")

        loaded = load_playlists(path)

        assert [p.name for p in loaded] == ["Road Trip", "Empty"]
        assert loaded[0].songs == playlists[0].songs
        assert loaded[0].songs[0].isrc == "USRC1"
        assert loaded[0].songs[1].artists[1].name == "Beta"

    def test_minified_output(self, temp_dir):
        """Test minify writes compact JSON"""
        path = save_playlists([Playlist(id="p1", name="Mix")], temp_dir / "mini.json", minify=True)
        content = path.read_text(encoding='utf-8')

        assert "\n" not in content
        assert json.loads(content)[0]['name'] == "Mix"

    def test_malformed_entries_skipped(self, temp_dir):
        """Test broken songs and playlists are skipped, the rest loads"""
        good_song = song("1", "Good").to_dict()
        data = [
            {'id': 'p1', 'name': 'Mix', 'owner': None, 'songs': [good_song, {'source': 'spotify', 'name': 'no id'}]},
            {'id': 'p2', 'songs': []},
            "not a playlist",
        ]
        path = temp_dir / "broken.json"
        path.write_text(json.dumps(data), encoding='utf-8')

        loaded = load_playlists(path)

        assert [p.name for p in loaded] == ["Mix"]
        assert [s.id for s in loaded[0].songs] == ["1"]

    def test_invalid_file(self, temp_dir):
        """Test invalid JSON and wrong top-level types are rejected"""
        broken = temp_dir / "broken.json"
        broken.write_text("{not json", encoding='utf-8')
        with pytest.raises(DataIntegrityWarning):
            load_playlists(broken)

        wrong = temp_dir / "wrong.json"
        wrong.write_text('{"playlists": []}', encoding='utf-8')
        with pytest.raises(DataIntegrityWarning):
            load_playlists(wrong)

    @pytest.mark.asyncio
    async def test_export_playlists(self, temp_dir):
        """Test every playlist of the account is exported with its songs"""
        platform = FakePlatform(kind=PlatformKind.SPOTIFY, playlists=[
            Playlist(id="p1", name="One", songs=[song("1", "A")], owner="me"),
            Playlist(id="p2", name="Two", songs=[song("2", "B"), song("3", "C")], owner="me"),
        ])
        output = temp_dir / "export.json"

        exported = await export_playlists(platform, output)

        data = json.loads(output.read_text(encoding='utf-8'))
        assert len(exported) == 2
        assert [p['name'] for p in data] == ["One", "Two"]
        assert [s['id'] for s in data[1]['songs']] == ["2", "3"]
        assert data[0]['songs'][0]['source'] == "spotify"
