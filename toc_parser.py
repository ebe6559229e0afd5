"""
TOC Parser
Reads the ## Key: Value metadata header of an addon's .toc file
"""

import os
import re
from pathlib import Path

from addon_errors import ManifestNotFoundError

# |cAARRGGBB starts a coloured run, |r resets it
COLOR_CODE_RE = re.compile(r'\|c[0-9a-fA-F]{8}|\|r')


def strip_color_codes(text):
    return COLOR_CODE_RE.sub('', text)


class TocParser:
    def __init__(self, toc_path):
        self.toc_path = toc_path
        self.title = ''
        self.version = ''
        self.author = ''
        self.notes = ''
        self.interface = ''

    def parse(self):
        if not os.path.exists(self.toc_path):
            return False

        # .toc files in the wild are not always valid UTF-8
        with open(self.toc_path, 'r', encoding='utf-8', errors='replace') as f:
            lines = f.readlines()

        for line in lines:
            stripped = line.strip()

            # Only ## lines carry metadata; everything else is a file list
            if not stripped.startswith('##'):
                continue

            key, sep, value = stripped[2:].strip().partition(':')
            if not sep:
                continue

            key = key.strip().lower()
            value = value.strip()

            if key == 'title':
                self.title = strip_color_codes(value)
            elif key == 'version':
                self.version = value
            elif key == 'author':
                self.author = value
            elif key == 'notes':
                self.notes = strip_color_codes(value)
            elif key == 'interface':
                self.interface = value

        return True

    def to_dict(self):
        return {
            'title': self.title,
            'version': self.version,
            'author': self.author,
            'notes': self.notes,
            'interface': self.interface,
        }


def read_toc_info(toc_path):
    """Parse a .toc file into a dict of its metadata fields.

    Args:
        toc_path: str/Path - Path to the .toc file

    Returns:
        dict - title, version, author, notes, interface (empty when absent)

    Raises:
        ManifestNotFoundError - if the file does not exist
    """
    parser = TocParser(toc_path)
    if not parser.parse():
        raise ManifestNotFoundError(f"TOC file not found: {toc_path}")
    return parser.to_dict()


def _toc_in(directory):
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_file() and entry.suffix.lower() == '.toc':
            return entry
    return None


def find_toc_file(addon_dir):
    """Find the .toc file of an addon.

    The addon folder itself is checked first. Multi-addon repositories keep
    the real addon one level down, so non-hidden subfolders are checked next.

    Args:
        addon_dir: str/Path - Addon folder to search

    Returns:
        tuple - (Path to the .toc file, addon name derived from its filename)

    Raises:
        ManifestNotFoundError - if no .toc file is found
    """
    addon_dir = Path(addon_dir)
    try:
        toc_path = _toc_in(addon_dir)
        if toc_path is None:
            for subdir in sorted(addon_dir.iterdir(), key=lambda p: p.name):
                if not subdir.is_dir() or subdir.name.startswith('.'):
                    continue
                try:
                    toc_path = _toc_in(subdir)
                except OSError:
                    continue
                if toc_path is not None:
                    break
    except OSError as e:
        raise ManifestNotFoundError(f"Cannot read addon folder {addon_dir}: {e}") from e

    if toc_path is None:
        raise ManifestNotFoundError(f"No .toc file found in {addon_dir}")

    return toc_path, toc_path.stem


def get_addon_name_from_toc(addon_dir):
    """Get the addon name the .toc file expects its folder to have"""
    return find_toc_file(addon_dir)[1]
