"""
Run settings for Entra Audit.

Handles loading and validating settings from JSON files and merging command-line overrides.
"""

# Standard library imports
import json
import re
from pathlib import Path
from typing import Dict, Optional

# Local imports
from .analyzer.locations import DEFAULT_COUNTRY_TABLE, CountryTable


class AuditSettings:
    """Settings shared by all audit commands."""

    # host:port for the debugging proxy
    PROXY_PATTERN = re.compile(r'^[\w.\-]+:\d{1,5}$')
    # ISO 3166-1 alpha-2 code
    COUNTRY_CODE_PATTERN = re.compile(r'^[A-Za-z]{2}$')

    DEFAULTS = {
        'threads': 10,
        'proxy': None,
        'expiry_days': 30,
        'stale_days': 90,
        'countries': {},
        'output': None,
    }

    def __init__(self, settings_data: Dict = None):
        """Initialize settings.

        Args:
            settings_data: Dictionary with any of the keys in DEFAULTS
        """
        data = dict(self.DEFAULTS)
        data.update({k: v for k, v in (settings_data or {}).items() if v is not None})

        self.threads: int = data['threads']
        self.proxy: Optional[str] = data['proxy']
        self.expiry_days: int = data['expiry_days']
        self.stale_days: int = data['stale_days']
        self.countries: Dict[str, str] = dict(data['countries'] or {})
        self.output: Optional[str] = data['output']

    @classmethod
    def from_file(cls, file_path: str) -> 'AuditSettings':
        """Load settings from a JSON file.

        Args:
            file_path: Path to JSON settings file

        Returns:
            AuditSettings instance

        Raises:
            FileNotFoundError: If settings file doesn't exist
            json.JSONDecodeError: If file contains invalid JSON
            ValueError: If file format is invalid
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {file_path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("Settings file must contain a JSON object")

        unknown = set(data) - set(cls.DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        settings = cls(data)
        settings.validate()
        return settings

    def merged(self, overrides: Dict) -> 'AuditSettings':
        """Return a copy with non-None overrides (e.g. command-line flags) applied."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None and k in self.DEFAULTS})
        settings = AuditSettings(data)
        settings.validate()
        return settings

    def validate(self):
        """Validate setting values.

        Raises:
            ValueError: If any value is out of range or malformed
        """
        if not isinstance(self.threads, int) or isinstance(self.threads, bool) or self.threads < 1:
            raise ValueError("'threads' must be a positive integer")
        if not isinstance(self.expiry_days, int) or isinstance(self.expiry_days, bool) or self.expiry_days < 0:
            raise ValueError("'expiry_days' must be zero or a positive integer")
        if not isinstance(self.stale_days, int) or isinstance(self.stale_days, bool) or self.stale_days < 1:
            raise ValueError("'stale_days' must be a positive integer")
        if self.proxy is not None and not self.PROXY_PATTERN.match(str(self.proxy)):
            raise ValueError("'proxy' must be in host:port format")
        if not isinstance(self.countries, dict):
            raise ValueError("'countries' must be an object mapping country codes to names")
        for code, name in self.countries.items():
            if not self.COUNTRY_CODE_PATTERN.match(code) or not isinstance(name, str) or not name:
                raise ValueError(f"Invalid country entry: {code!r}: {name!r}")

    def country_table(self) -> CountryTable:
        """Built-in country table with this run's overrides applied."""
        return DEFAULT_COUNTRY_TABLE.with_overrides(self.countries)

    def to_dict(self) -> Dict:
        return {
            'threads': self.threads,
            'proxy': self.proxy,
            'expiry_days': self.expiry_days,
            'stale_days': self.stale_days,
            'countries': dict(self.countries),
            'output': self.output,
        }

    def __repr__(self) -> str:
        return f"AuditSettings(threads={self.threads}, expiry_days={self.expiry_days}, stale_days={self.stale_days})"
