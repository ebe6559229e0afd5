"""
Addon Registry
Fetches the community addon catalog and caches it locally
"""

import json
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path

import requests

from addon_errors import RegistryError
from addon_tracker import parse_timestamp

REGISTRY_URL = "https://raw.githubusercontent.com/bnema/turtlectl/main/data/addons.json"
REGISTRY_VERSION = 1
REGISTRY_CACHE_TTL = timedelta(hours=24)
NEW_ADDON_THRESHOLD = timedelta(days=7)
USER_AGENT = "turtle-manager/1.0 (Turtle WoW addon manager)"


def _now():
    return datetime.now().astimezone()


def _safe_timestamp(value):
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def _parse_entry(raw):
    """Normalize one catalog entry; timestamps become datetimes (or None)"""
    return {
        'name': raw.get('name', ''),
        'url': raw.get('url', ''),
        'description': raw.get('description', ''),
        'author': raw.get('author', ''),
        'version': raw.get('version', ''),
        'stars': int(raw.get('stars') or 0),
        'category': raw.get('category', ''),
        'last_commit': _safe_timestamp(raw.get('last_commit')),
        'added_at': _safe_timestamp(raw.get('added_at')),
        'is_installed': False,
    }


def is_new(entry, now=None):
    """An entry is new for NEW_ADDON_THRESHOLD after it was added to the registry"""
    added_at = entry.get('added_at')
    if added_at is None:
        return False
    return (now or _now()) - added_at < NEW_ADDON_THRESHOLD


def _trim_git_suffix(url):
    return url[:-4] if url.endswith('.git') else url


def mark_installed(entries, installed_urls):
    """Flag entries whose URL is installed, with or without a .git suffix"""
    installed = set(installed_urls)
    for entry in entries:
        url = entry['url']
        entry['is_installed'] = (
            url in installed
            or url + '.git' in installed
            or _trim_git_suffix(url) in installed
        )
    return entries


def sort_addons(entries):
    entries.sort(key=lambda e: e['name'])
    return entries


class AddonRegistry:
    def __init__(self, cache_dir, registry_url=REGISTRY_URL, ttl=REGISTRY_CACHE_TTL, timeout=30):
        """Initialize the registry cache.

        Args:
            cache_dir: str/Path - Directory holding the cached catalog and its ETag
            registry_url: str - URL of the registry JSON document
            ttl: timedelta - Age after which the cache is refetched
            timeout: int - HTTP timeout in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.cache_path = self.cache_dir / 'addons-registry.json'
        self.etag_path = self.cache_dir / 'addons-registry.etag'
        self.registry_url = registry_url
        self.ttl = ttl
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def get_addons(self, force_refresh=False):
        """Get the addon catalog, fetching it when the cache is stale.

        A failed fetch falls back to a stale cache if one exists.

        Args:
            force_refresh: bool - Ignore the cache TTL

        Returns:
            list - Catalog entry dicts

        Raises:
            RegistryError - if the fetch failed and there is no cache
        """
        cached, cache_time = self._load_cache()
        if cached is not None:
            cache_age = _now() - cache_time
            if not force_refresh and cache_age < self.ttl:
                self.logger.debug(f"Using cached registry (age {cache_age})")
                return self._entries(cached)
            self.logger.debug(f"Registry cache is stale (age {cache_age})")

        # Without a cache to fall back on, a 304 would leave nothing to return
        etag = self._load_etag() if cached is not None else ''

        try:
            fresh, new_etag = self._fetch(etag)
        except RegistryError as e:
            if cached is not None:
                self.logger.warning(f"Failed to fetch registry, using stale cache: {e}")
                return self._entries(cached)
            raise RegistryError(f"Failed to fetch registry and no cache available: {e}") from e

        if fresh is None:
            # 304 Not Modified
            self._touch_cache()
            return self._entries(cached)

        try:
            self._save_cache(fresh)
        except OSError as e:
            self.logger.warning(f"Failed to save registry cache: {e}")
        else:
            self._store_etag(new_etag)

        return self._entries(fresh)

    def _entries(self, data):
        return [_parse_entry(raw) for raw in data.get('addons') or []]

    def _fetch(self, etag=''):
        """Download the registry document.

        Args:
            etag: str - ETag of the cached copy, sent as If-None-Match when set

        Returns:
            tuple - (parsed registry or None on 304 Not Modified, response ETag)
        """
        headers = {
            'User-Agent': USER_AGENT,
            'Accept': 'application/json',
        }
        if etag:
            headers['If-None-Match'] = etag

        self.logger.debug(f"Fetching registry from {self.registry_url}")
        try:
            response = requests.get(self.registry_url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise RegistryError(f"Failed to fetch registry: {e}") from e

        if response.status_code == 304:
            if not etag:
                raise RegistryError("Registry returned not-modified for an unconditional request")
            self.logger.debug("Registry not modified (304)")
            return None, etag

        if response.status_code != 200:
            raise RegistryError(f"Unexpected status code: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Failed to parse registry: {e}") from e

        if not isinstance(data, dict):
            raise RegistryError("Failed to parse registry: expected an object")

        if data.get('version') != REGISTRY_VERSION:
            self.logger.warning(f"Registry version mismatch: expected {REGISTRY_VERSION}, got {data.get('version')}")

        self.logger.info(f"Fetched registry with {len(data.get('addons') or [])} addons")
        return data, response.headers.get('ETag', '')

    def _load_cache(self):
        """Load the cached registry.

        Returns:
            tuple - (registry dict, cache mtime as datetime) or (None, None)
        """
        try:
            mtime = self.cache_path.stat().st_mtime
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return None, None
        except (OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable registry cache: {e}")
            return None, None

        if not isinstance(data, dict):
            return None, None
        return data, datetime.fromtimestamp(mtime).astimezone()

    def _save_cache(self, data):
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        with open(self.cache_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _touch_cache(self):
        try:
            os.utime(self.cache_path, None)
        except OSError as e:
            self.logger.debug(f"Could not refresh registry cache time: {e}")

    def _load_etag(self):
        try:
            return self.etag_path.read_text(encoding='utf-8').strip()
        except OSError:
            return ''

    def _store_etag(self, etag):
        """Remember the ETag of the cached copy; an old ETag never outlives its cache"""
        try:
            if etag:
                self.etag_path.write_text(etag, encoding='utf-8')
            elif self.etag_path.exists():
                self.etag_path.unlink()
        except OSError as e:
            self.logger.debug(f"Could not save registry ETag: {e}")

    def get_info(self):
        """Describe the state of the local registry cache.

        Returns:
            dict - has_cache, is_stale, last_updated, generated_at, age,
            total_addons, new_addons
        """
        cached, cache_time = self._load_cache()
        if cached is None:
            return {'has_cache': False}

        now = _now()
        entries = self._entries(cached)
        generated_at = _safe_timestamp(cached.get('generated_at'))
        age = now - cache_time
        return {
            'has_cache': True,
            'is_stale': age > self.ttl,
            'last_updated': cache_time,
            'generated_at': generated_at,
            'age': age,
            'total_addons': len(entries),
            'new_addons': sum(1 for entry in entries if is_new(entry, now)),
        }
