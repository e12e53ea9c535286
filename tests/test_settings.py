"""
Tests for persisted preferences and option defaults
"""

from core.models import FileSystem
from core.settings import DEFAULT_EXCLUDED_NAMES, RebuildOptions, load_preferences, save_preferences


def test_preferences_round_trip_and_merge(tmp_path):
    path = str(tmp_path / "prefs.json")

    save_preferences({'last_source': "D:\\isos"}, path)
    save_preferences({'log_panel_visible': True}, path)

    assert load_preferences(path) == {'last_source': "D:\\isos", 'log_panel_visible': True}


def test_missing_file_gives_empty(tmp_path):
    assert load_preferences(str(tmp_path / "none.json")) == {}


def test_malformed_file_is_ignored(tmp_path, caplog):
    path = tmp_path / "prefs.json"
    path.write_text("{not json", encoding='utf-8')

    assert load_preferences(str(path)) == {}
    assert "Could not load preferences" in caplog.text


def test_non_object_json_is_ignored(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("[1, 2]", encoding='utf-8')

    assert load_preferences(str(path)) == {}


def test_default_options():
    options = RebuildOptions()

    assert FileSystem.parse(options.filesystem) == FileSystem.EXFAT
    assert options.label == "IODD"
    assert options.exclusions == DEFAULT_EXCLUDED_NAMES


def test_filesystem_parse_falls_back_to_exfat():
    assert FileSystem.parse("ntfs") == FileSystem.NTFS
    assert FileSystem.parse("zfs") == FileSystem.EXFAT
    assert FileSystem.parse(None) == FileSystem.EXFAT
