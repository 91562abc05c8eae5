"""Tests for TOML configuration loading and timezone settings."""

from datetime import datetime
from pathlib import Path

import pytest
import pytz

from exclusion.config import Config
from exclusion import timezone_utils


@pytest.fixture
def restore_timezone():
    yield
    timezone_utils.set_timezone("UTC")


def write_config(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults():
    config = Config.default()
    assert config.timezone == "UTC"
    assert config.index.lock_timeout is None
    assert config.imports.key_property == "LOCATION"
    assert config.sources == []


def test_load_full_file(tmp_path):
    path = write_config(tmp_path, f"""
[General]
timezone = "Europe/Amsterdam"
storage_dir = "{tmp_path / 'snaps'}"

[Index]
lock_timeout = 2

[Import]
key_property = "resources"
window_days = 30

[Source.Rooms]
url = "https://example.com/rooms.ics"

[Source.Broken]
name = "no url"
""")
    config = Config.load(path)
    assert config.timezone == "Europe/Amsterdam"
    assert config.storage_dir == Path(tmp_path / "snaps")
    assert config.index.lock_timeout == 2.0
    assert config.imports.key_property == "RESOURCES"
    assert config.imports.window_days == 30
    assert config.imports.fetch_timeout == 30
    assert [(s.name, s.url) for s in config.sources] == [("Rooms", "https://example.com/rooms.ics")]


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(tmp_path / "absent.toml")


def test_negative_lock_timeout_is_rejected(tmp_path):
    path = write_config(tmp_path, "[Index]\nlock_timeout = -1\n")
    with pytest.raises(ValueError):
        Config.load(path)


def test_naive_datetimes_use_configured_timezone(restore_timezone):
    timezone_utils.set_timezone("Europe/Amsterdam")
    utc = timezone_utils.to_utc_datetime(datetime(2024, 7, 1, 12, 0))
    assert utc == pytz.UTC.localize(datetime(2024, 7, 1, 10, 0))


def test_unknown_timezone_is_rejected(restore_timezone):
    with pytest.raises(pytz.UnknownTimeZoneError):
        timezone_utils.set_timezone("Mars/Olympus_Mons")
    assert timezone_utils.get_local_timezone() == pytz.UTC
