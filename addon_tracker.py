"""
Addon Tracker
Manages the addons.json file to track installed addons
"""

import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from addon_errors import StoreParseError

_FRACTION_RE = re.compile(r'\.(\d+)')


def format_timestamp(value):
    """Serialize a datetime as RFC 3339, or an empty string when unknown."""
    if value is None:
        return ''
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def parse_timestamp(value):
    """Parse an RFC 3339 timestamp.

    Args:
        value: str - Timestamp as written by this tool or by older Go builds

    Returns:
        datetime - Timezone-aware datetime, or None for empty/zero values
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # Go writes up to nanoseconds; datetime wants exactly microseconds
    text = _FRACTION_RE.sub(lambda m: '.' + (m.group(1) + '000000')[:6], text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed.year <= 1:
        return None
    return parsed


def new_metadata(git_url, installed_at=None, updated_at=None):
    return {
        'git_url': git_url or '',
        'installed_at': installed_at,
        'updated_at': updated_at,
    }


class AddonTracker:
    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.tracker_file = self.data_dir / 'addons.json'
        self.addons = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def load_addons(self):
        """Load addon metadata from addons.json.

        A missing file leaves the tracker empty. A file that exists but does
        not hold a valid document raises StoreParseError.
        """
        with self._lock:
            if not self.tracker_file.exists():
                self.logger.debug(f"No addon store at {self.tracker_file}, starting empty")
                self.addons = {}
                return

            try:
                with open(self.tracker_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except ValueError as e:
                raise StoreParseError(f"Invalid addon store {self.tracker_file}: {e}") from e

            if not isinstance(data, dict):
                raise StoreParseError(f"Invalid addon store {self.tracker_file}: expected an object")

            entries = data.get('addons') or {}
            if not isinstance(entries, dict):
                raise StoreParseError(f"Invalid addon store {self.tracker_file}: 'addons' must be an object")

            addons = {}
            for name, entry in entries.items():
                if not isinstance(entry, dict):
                    raise StoreParseError(f"Invalid entry for addon '{name}'")
                try:
                    addons[name] = new_metadata(
                        entry.get('git_url', ''),
                        parse_timestamp(entry.get('installed_at')),
                        parse_timestamp(entry.get('updated_at')),
                    )
                except (TypeError, ValueError) as e:
                    raise StoreParseError(f"Invalid timestamp for addon '{name}': {e}") from e

            self.addons = addons
            self.logger.debug(f"Loaded {len(addons)} addon(s) from {self.tracker_file}")

    def save_addons(self):
        """Save addon metadata to addons.json.

        The document is written to a temporary file next to the target and
        renamed over it, so readers never see a partial file.
        """
        with self._lock:
            document = {
                'addons': {
                    name: {
                        'git_url': meta['git_url'],
                        'installed_at': format_timestamp(meta['installed_at']),
                        'updated_at': format_timestamp(meta['updated_at']),
                    }
                    for name, meta in self.addons.items()
                }
            }

            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix='.addons.', suffix='.tmp', dir=self.data_dir)
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                os.replace(temp_name, self.tracker_file)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise

    def add_addon(self, name, metadata):
        """Set the metadata for an addon, replacing any existing entry"""
        with self._lock:
            self.addons[name] = dict(metadata)

    def remove_addon(self, name):
        """Remove an addon from the tracker. Returns True if it was tracked."""
        with self._lock:
            return self.addons.pop(name, None) is not None

    def get_addon(self, name):
        """Get a copy of the metadata for an addon, or None if untracked"""
        with self._lock:
            meta = self.addons.get(name)
            return dict(meta) if meta is not None else None

    def addon_exists(self, name):
        with self._lock:
            return name in self.addons

    def list_addons(self):
        """Get the names of all tracked addons"""
        with self._lock:
            return list(self.addons)

    def get_all_addons(self):
        """Get a copy of all tracked addon metadata"""
        with self._lock:
            return {name: dict(meta) for name, meta in self.addons.items()}

    def get_addon_count(self):
        with self._lock:
            return len(self.addons)
