"""
Launcher Config
Resolves the launcher's data, cache and game directories and stores small settings
"""

import json
import logging
import os
from pathlib import Path

APP_DIR_NAME = 'turtle-wow'
GAME_DIR_ENV = 'TURTLE_WOW_GAME_DIR'


class LauncherConfig:
    def __init__(self, environ=None, home=None):
        """Resolve launcher directories.

        Args:
            environ: Optional mapping - Environment to read (defaults to os.environ)
            home: Optional str/Path - Home directory (defaults to Path.home())
        """
        self.environ = os.environ if environ is None else environ
        self.home = Path(home) if home else Path.home()
        self.logger = logging.getLogger(__name__)

        data_home = self.environ.get('XDG_DATA_HOME') or self.home / '.local' / 'share'
        cache_home = self.environ.get('XDG_CACHE_HOME') or self.home / '.cache'
        self.data_dir = Path(data_home) / APP_DIR_NAME
        self.cache_dir = Path(cache_home) / APP_DIR_NAME
        self.settings_file = self.data_dir / 'settings.json'
        self.settings = self._load_settings()
        self.game_dir = self._resolve_game_dir()

        self.logger.debug(
            f"Launcher config: data_dir={self.data_dir} cache_dir={self.cache_dir} game_dir={self.game_dir}"
        )

    def _load_settings(self):
        """Load settings.json, ignoring a missing or unreadable file"""
        if not self.settings_file.exists():
            return {}
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                settings = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable settings file {self.settings_file}: {e}")
            return {}
        return settings if isinstance(settings, dict) else {}

    def _resolve_game_dir(self):
        game_dir = self.environ.get(GAME_DIR_ENV) or self.settings.get('game_dir')
        if game_dir:
            return Path(game_dir).expanduser()
        return self.home / 'Games' / APP_DIR_NAME

    def get_setting(self, key, default=None):
        """Get a setting value"""
        return self.settings.get(key, default)

    def set_setting(self, key, value):
        """Set a setting value and save settings.json"""
        self.settings[key] = value
        if key == 'game_dir' and not self.environ.get(GAME_DIR_ENV):
            self.game_dir = Path(value).expanduser()
        return self.save_settings()

    def save_settings(self):
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            self.logger.error(f"Error saving settings: {e}")
            return False
