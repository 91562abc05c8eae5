"""
Configuration parser for the exclusion checker.

Handles TOML file parsing; every setting has a built-in default so the
library and the command line tool also work without a configuration file.
"""

import tomllib
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from .debug import debug_print


@dataclass
class IndexConfig:
    """Configuration for ExclusionIndex instances."""
    lock_timeout: Optional[float] = None  # Seconds; None waits forever, 0 is nowait


@dataclass
class ImportConfig:
    """Configuration for importing bookings from iCalendar data."""
    key_property: str = "LOCATION"  # VEVENT property used as the exclusion key
    window_days: int = 365          # Recurring events are expanded this far ahead
    fetch_timeout: int = 30         # Seconds allowed for fetching a remote calendar


@dataclass
class CalendarSourceConfig:
    """A calendar file or URL to check when none are given on the command line."""
    name: str
    url: str


@dataclass
class Config:
    """Main configuration container."""

    timezone: str = "UTC"
    storage_dir: Path = field(default_factory=lambda: Config.get_default_storage_dir())
    index: IndexConfig = field(default_factory=IndexConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)
    sources: list[CalendarSourceConfig] = field(default_factory=list)

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'interval-exclusion' / 'config.toml'

    @classmethod
    def get_default_storage_dir(cls) -> Path:
        """Get the default snapshot directory respecting XDG."""
        xdg_data = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
        return Path(xdg_data) / 'interval-exclusion' / 'snapshots'

    @classmethod
    def default(cls) -> 'Config':
        return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Load configuration from TOML file."""
        if config_path is None:
            config_path = cls.get_default_config_path()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        # Parse General section
        general = data.get('General', {})
        timezone = general.get('timezone', 'UTC')
        storage_dir_str = general.get('storage_dir', str(cls.get_default_storage_dir()))
        storage_dir = Path(os.path.expanduser(storage_dir_str))

        # Parse Index section
        index_data = data.get('Index', {})
        lock_timeout = index_data.get('lock_timeout', IndexConfig.lock_timeout)
        if lock_timeout is not None:
            lock_timeout = float(lock_timeout)
            if lock_timeout < 0:
                raise ValueError(f"Index.lock_timeout must not be negative: {lock_timeout}")
        index = IndexConfig(lock_timeout=lock_timeout)

        # Parse Import section
        import_data = data.get('Import', {})
        imports = ImportConfig(
            key_property=import_data.get('key_property', ImportConfig.key_property).upper(),
            window_days=int(import_data.get('window_days', ImportConfig.window_days)),
            fetch_timeout=int(import_data.get('fetch_timeout', ImportConfig.fetch_timeout)),
        )

        # Parse calendar sources: [Source.Name] tables
        sources = []
        for name, value in data.get('Source', {}).items():
            if not isinstance(value, dict):
                continue
            url = value.get('url', '')
            if not url:
                debug_print("CONFIG", f"Skipping source {name!r} without url")
                continue
            sources.append(CalendarSourceConfig(name=name, url=url))

        debug_print("CONFIG", f"Loaded {len(sources)} calendar sources")

        return cls(
            timezone=timezone,
            storage_dir=storage_dir,
            index=index,
            imports=imports,
            sources=sources,
        )
