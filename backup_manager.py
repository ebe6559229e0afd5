"""
Backup Manager
Keeps timestamped copies of addon folders before destructive changes
"""

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path

from addon_errors import AddonIOError, BackupNotFoundError

MAX_BACKUPS_PER_ADDON = 3
BACKUP_TIMESTAMP_FORMAT = '%Y%m%d-%H%M%S'
SAVED_VARIABLES_DIR = 'savedvariables'

_BACKUP_NAME_RE = re.compile(r'^\d{8}-\d{6}(-\d{2,})?$')


class BackupManager:
    def __init__(self, data_dir, clock=None, max_backups=MAX_BACKUPS_PER_ADDON):
        """Initialize backup manager.

        Args:
            data_dir: str/Path - Launcher data directory; backups live in data_dir/backups
            clock: Optional callable - Returns the current datetime (defaults to datetime.now)
            max_backups: int - Backups kept per addon
        """
        self.backup_dir = Path(data_dir) / 'backups'
        self.clock = clock or datetime.now
        self.max_backups = max_backups
        self.logger = logging.getLogger(__name__)

    def _new_backup_path(self, parent):
        """Pick a unique timestamped folder name under parent.

        Two backups in the same second get a -NN suffix, which still sorts
        after the bare timestamp.
        """
        timestamp = self.clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        candidate = parent / timestamp
        counter = 1
        while candidate.exists():
            candidate = parent / f"{timestamp}-{counter:02d}"
            counter += 1
        return candidate

    def create_backup(self, addon_path, addon_name):
        """Copy an addon folder into a new backup.

        Args:
            addon_path: str/Path - Folder to back up (never modified)
            addon_name: str - Addon name the backup is filed under

        Returns:
            Path - Path of the new backup folder

        Raises:
            AddonIOError - if the copy fails; the partial backup is removed
        """
        addon_backup_dir = self.backup_dir / addon_name
        try:
            addon_backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AddonIOError(f"Failed to create backup directory: {e}") from e

        backup_path = self._new_backup_path(addon_backup_dir)

        try:
            shutil.copytree(addon_path, backup_path, symlinks=True)
        except (OSError, shutil.Error) as e:
            shutil.rmtree(backup_path, ignore_errors=True)
            raise AddonIOError(f"Failed to backup addon {addon_name}: {e}") from e

        self.logger.debug(f"Backed up {addon_name} to {backup_path}")

        try:
            self._cleanup_old_backups(addon_backup_dir)
        except OSError as e:
            self.logger.warning(f"Failed to cleanup old backups for {addon_name}: {e}")

        return backup_path

    def restore_backup(self, addon_name, backup_timestamp, dest_path):
        """Replace dest_path with the contents of a backup.

        Raises:
            BackupNotFoundError - if the backup does not exist
            AddonIOError - if dest_path cannot be cleared or the copy fails
        """
        # Only timestamped folders are addon backups; savedvariables/ is not
        if not backup_timestamp or not _BACKUP_NAME_RE.match(backup_timestamp):
            raise BackupNotFoundError(f"Backup not found: {backup_timestamp}")

        backup_path = self.backup_dir / addon_name / backup_timestamp
        if not backup_path.is_dir():
            raise BackupNotFoundError(f"Backup not found: {backup_timestamp}")

        dest_path = Path(dest_path)
        if dest_path.exists() or dest_path.is_symlink():
            try:
                if dest_path.is_dir() and not dest_path.is_symlink():
                    shutil.rmtree(dest_path)
                else:
                    dest_path.unlink()
            except OSError as e:
                raise AddonIOError(f"Failed to remove existing addon: {e}") from e

        try:
            shutil.copytree(backup_path, dest_path, symlinks=True)
        except (OSError, shutil.Error) as e:
            raise AddonIOError(f"Failed to restore backup: {e}") from e

        self.logger.info(f"Restored {addon_name} from backup {backup_timestamp}")

    def _timestamped_dirs(self, parent):
        if not parent.is_dir():
            return []

        backups = [
            entry.name for entry in parent.iterdir()
            if entry.is_dir() and _BACKUP_NAME_RE.match(entry.name)
        ]
        return sorted(backups, reverse=True)

    def list_backups(self, addon_name):
        """List backups for an addon, newest first. Empty when there are none."""
        return self._timestamped_dirs(self.backup_dir / addon_name)

    def list_saved_variables_backups(self, addon_name):
        """List SavedVariables backups for an addon, newest first"""
        return self._timestamped_dirs(self.backup_dir / addon_name / SAVED_VARIABLES_DIR)

    def get_latest_backup(self, addon_name):
        backups = self.list_backups(addon_name)
        if not backups:
            raise BackupNotFoundError(f"No backups found for {addon_name}")
        return backups[0]

    def delete_backup(self, addon_name, timestamp):
        shutil.rmtree(self.backup_dir / addon_name / timestamp, ignore_errors=True)

    def delete_all_backups(self, addon_name):
        shutil.rmtree(self.backup_dir / addon_name, ignore_errors=True)

    def _cleanup_old_backups(self, parent):
        """Remove timestamped backups under parent beyond the retention limit, oldest first"""
        for timestamp in self._timestamped_dirs(parent)[self.max_backups:]:
            shutil.rmtree(parent / timestamp)
            self.logger.debug(f"Evicted old backup {parent / timestamp}")

    def backup_saved_variables(self, game_dir, addon_name):
        """Copy an addon's SavedVariables files out of the WTF folder.

        Args:
            game_dir: str/Path - Game installation directory
            addon_name: str - Addon whose SavedVariables should be saved

        Returns:
            Path - Backup folder, or None if the addon has no SavedVariables
        """
        account_dir = Path(game_dir) / 'WTF' / 'Account'
        if not account_dir.is_dir():
            return None

        sv_files = [
            path for path in sorted(account_dir.rglob('*.lua'))
            if path.is_file() and path.name.startswith(addon_name)
        ]
        if not sv_files:
            return None

        parent = self.backup_dir / addon_name / SAVED_VARIABLES_DIR
        try:
            parent.mkdir(parents=True, exist_ok=True)
            backup_path = self._new_backup_path(parent)
            backup_path.mkdir()
            for sv_file in sv_files:
                # Keep the account/realm/character layout so files don't collide
                target = backup_path / sv_file.relative_to(account_dir)
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(sv_file, target)
        except OSError as e:
            raise AddonIOError(f"Failed to backup SavedVariables for {addon_name}: {e}") from e

        try:
            self._cleanup_old_backups(parent)
        except OSError as e:
            self.logger.warning(f"Failed to cleanup old SavedVariables backups for {addon_name}: {e}")

        return backup_path
