"""
Addon Manager
Handles installation, updates, removal and repair of Turtle WoW addons
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from addon_errors import (AddonError, AddonExistsError, AddonIOError, AddonNotFoundError,
                          CorruptedRepositoryError, InvalidURLError, LocalChangesError,
                          ManifestNotFoundError, NotARepositoryError)
from addon_status import classify_addon, is_default_addon, status_priority
from addon_tracker import AddonTracker, new_metadata
from backup_manager import BackupManager
from git_client import (UPDATE_UP_TO_DATE, GitClient, extract_repo_name,
                        normalize_git_url, validate_git_url)
from toc_parser import find_toc_file, read_toc_info


def _now():
    return datetime.now().astimezone()


class AddonManager:
    def __init__(self, game_dir, data_dir, git=None, tracker=None, backup=None, clock=None):
        """Initialize addon manager.

        Args:
            game_dir: str/Path - Root directory of the game installation
            data_dir: str/Path - Launcher data directory (store and backups)
            git: Optional GitClient - Git client instance
            tracker: Optional AddonTracker - Addon metadata store
            backup: Optional BackupManager - Backup manager instance
            clock: Optional callable - Returns the current timezone-aware datetime
        """
        self.game_dir = Path(game_dir)
        self.data_dir = Path(data_dir)
        self.addons_dir = self.game_dir / 'Interface' / 'AddOns'
        self.git = git or GitClient()
        self.tracker = tracker or AddonTracker(self.data_dir)
        self.backup = backup or BackupManager(self.data_dir)
        self.clock = clock or _now
        self.logger = logging.getLogger(__name__)

    def _failure(self, error, warnings=None, **extra):
        result = {
            'success': False,
            'error': str(error),
            'code': getattr(error, 'code', 'error'),
            'warnings': warnings if warnings is not None else [],
        }
        result.update(extra)
        return result

    def _warn(self, warnings, message):
        self.logger.warning(message)
        warnings.append(message)

    def _auto_save(self, warnings):
        """Save the store, turning a failure into a warning"""
        try:
            self.save()
        except AddonIOError as e:
            self._warn(warnings, f"Failed to save addon metadata: {e}")

    def _addon_path(self, name):
        """Resolve an addon folder, rejecting names that are not plain folder names.

        Raises:
            AddonNotFoundError - if the name is invalid or the folder does not exist
        """
        if not name or name in ('.', '..') or '/' in name or os.sep in name:
            raise AddonNotFoundError(f"Addon not found: {name}")
        addon_path = self.addons_dir / name
        if not addon_path.exists():
            raise AddonNotFoundError(f"Addon not found: {name}")
        return addon_path

    def _scan_addon_dirs(self):
        """List non-hidden folders in the addons directory.

        Returns:
            list - Sorted folder names, or None if the addons directory is missing
        """
        if not self.addons_dir.exists():
            return None
        try:
            return sorted(
                entry.name for entry in self.addons_dir.iterdir()
                if entry.is_dir() and not entry.name.startswith('.')
            )
        except OSError as e:
            raise AddonIOError(f"Failed to read addons directory: {e}") from e

    def load(self):
        """Load the addon store from disk.

        Raises:
            StoreParseError - if the store file is malformed
            AddonIOError - if the store file cannot be read
        """
        try:
            self.tracker.load_addons()
        except OSError as e:
            raise AddonIOError(f"Failed to read addon store: {e}") from e

    def save(self):
        """Save the addon store to disk.

        Raises:
            AddonIOError - if the store cannot be written
        """
        try:
            self.tracker.save_addons()
        except OSError as e:
            raise AddonIOError(f"Failed to save addon store: {e}") from e

    def ensure_addons_dir(self):
        """Create the Interface/AddOns directory if it doesn't exist"""
        try:
            self.addons_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AddonIOError(f"Failed to access addons directory: {e}") from e

    def get_addons_dir(self):
        return self.addons_dir

    def get_backup_manager(self):
        return self.backup

    def get_tracked_addons(self):
        return self.tracker.list_addons()

    def install(self, url):
        """Install an addon by cloning its git repository.

        The folder is named after the repository, then renamed to match the
        .toc file if that name is free.

        Args:
            url: str - Git repository URL (https://, git@ or git://)

        Returns:
            dict - Installation result with keys:
            - success: bool - whether installation succeeded
            - name: str - final addon folder name
            - title: str - addon title from the .toc, or the name
            - path: str - addon folder path
            - message: str - success message
            - error: str - error message if failed
            - code: str - error code if failed
            - warnings: list - non-fatal problems
        """
        warnings = []

        try:
            validate_git_url(url)
        except InvalidURLError as e:
            return self._failure(e)

        url = normalize_git_url(url)
        addon_name = extract_repo_name(url)
        if not addon_name or addon_name in ('.', '..'):
            return self._failure(InvalidURLError(f"Cannot derive an addon name from '{url}'"))

        addon_path = self.addons_dir / addon_name
        if addon_path.exists():
            return self._failure(AddonExistsError(f'Addon "{addon_name}" already exists'))

        try:
            self.ensure_addons_dir()
        except AddonIOError as e:
            return self._failure(e)

        try:
            self.git.clone(url, addon_path)
        except AddonError as e:
            try:
                self.git.cleanup_failed_clone(addon_path)
            except (OSError, AddonError) as cleanup_error:
                self._warn(warnings, f"Failed to clean up partial clone: {cleanup_error}")
            return self._failure(e, warnings)

        toc_path = None
        toc_name = None
        try:
            toc_path, toc_name = find_toc_file(addon_path)
        except ManifestNotFoundError:
            self._warn(warnings, f"No .toc file found in repository {addon_path}")

        if toc_path is not None:
            toc_relative = toc_path.relative_to(addon_path)

            if toc_name != addon_name:
                new_path = self.addons_dir / toc_name
                if new_path.exists():
                    self._warn(warnings, f'Addon "{toc_name}" already exists, keeping folder name "{addon_name}"')
                else:
                    try:
                        addon_path.rename(new_path)
                    except OSError as e:
                        self._warn(warnings, f"Failed to rename addon folder to {toc_name}: {e}")
                    else:
                        self.logger.debug(f"Renamed addon folder {addon_name} -> {toc_name}")
                        addon_path = new_path
                        addon_name = toc_name

            toc_path = addon_path / toc_relative

        title = ''
        if toc_path is not None:
            try:
                title = read_toc_info(toc_path)['title']
            except (ManifestNotFoundError, OSError) as e:
                self._warn(warnings, f"Failed to read {toc_path}: {e}")

        now = self.clock()
        self.tracker.add_addon(addon_name, new_metadata(url, now, now))
        self._auto_save(warnings)

        self.logger.info(f"Addon installed: {addon_name} ({url})")
        return {
            'success': True,
            'message': f'Addon "{addon_name}" installed successfully',
            'name': addon_name,
            'title': title or addon_name,
            'path': str(addon_path),
            'warnings': warnings,
        }

    def remove(self, name, create_backup=True):
        """Remove an installed addon.

        A failed backup is reported as a warning; the addon is still removed.

        Args:
            name: str - Addon folder name
            create_backup: bool - Back up the folder and its SavedVariables first

        Returns:
            dict - Removal result with keys:
            - success: bool - whether removal succeeded
            - message: str - success message
            - backup_path: str - backup folder, or None
            - error: str - error message if failed
            - code: str - error code if failed
            - warnings: list - non-fatal problems
        """
        warnings = []

        try:
            addon_path = self._addon_path(name)
        except AddonNotFoundError as e:
            return self._failure(e)

        backup_path = None
        if create_backup:
            try:
                backup_path = self.backup.create_backup(addon_path, name)
                self.logger.info(f"Backup created: {backup_path}")
            except AddonError as e:
                self._warn(warnings, f"Failed to create backup: {e}")

            try:
                sv_backup = self.backup.backup_saved_variables(self.game_dir, name)
                if sv_backup:
                    self.logger.info(f"SavedVariables backup created: {sv_backup}")
            except AddonError as e:
                self._warn(warnings, str(e))

        try:
            if addon_path.is_symlink():
                addon_path.unlink()
            else:
                shutil.rmtree(addon_path)
        except OSError as e:
            return self._failure(AddonIOError(f"Failed to remove addon: {e}"), warnings)

        self.tracker.remove_addon(name)
        self._auto_save(warnings)

        self.logger.info(f"Addon removed: {name}")
        return {
            'success': True,
            'message': f'Addon "{name}" removed successfully',
            'backup_path': str(backup_path) if backup_path else None,
            'warnings': warnings,
        }

    def update(self, name):
        """Update an addon with a git fast-forward.

        A folder that is not a git repository is backed up and re-cloned from
        its stored URL. Local modifications are never overwritten.

        Args:
            name: str - Addon folder name

        Returns:
            dict - Update result with keys:
            - success: bool - whether update succeeded or already up-to-date
            - updated: bool - new commits were applied
            - already_updated: bool - True if no update needed
            - recloned: bool - folder was replaced by a fresh clone
            - message: str - result message
            - error: str - error message if failed
            - code: str - error code if failed
            - warnings: list - non-fatal problems
        """
        warnings = []

        try:
            addon_path = self._addon_path(name)
        except AddonNotFoundError as e:
            return self._failure(e)

        try:
            is_repo = self.git.is_git_repo(addon_path)
        except AddonError as e:
            return self._failure(e, warnings)

        if not is_repo:
            return self._reclone(name, addon_path, warnings)

        try:
            outcome = self.git.update(addon_path)
        except LocalChangesError:
            message = f"Cannot update {name}: local modifications exist (backup and re-install to force)"
            return self._failure(LocalChangesError(message), warnings)
        except AddonError as e:
            return self._failure(e, warnings)

        if outcome == UPDATE_UP_TO_DATE:
            self.logger.debug(f"Addon already up to date: {name}")
            return {
                'success': True,
                'updated': False,
                'already_updated': True,
                'recloned': False,
                'message': f'Addon "{name}" is already up-to-date',
                'warnings': warnings,
            }

        meta = self.tracker.get_addon(name)
        if meta is not None:
            meta['updated_at'] = self.clock()
            self.tracker.add_addon(name, meta)
            self._auto_save(warnings)

        self.logger.info(f"Addon updated: {name}")
        return {
            'success': True,
            'updated': True,
            'already_updated': False,
            'recloned': False,
            'message': f'Addon "{name}" updated successfully',
            'warnings': warnings,
        }

    def _reclone(self, name, addon_path, warnings):
        """Replace a folder that lost its git repository with a fresh clone"""
        meta = self.tracker.get_addon(name)
        if not meta or not meta['git_url']:
            return self._failure(
                NotARepositoryError("Addon is not a git repository and has no stored URL"), warnings)

        backup_path = None
        try:
            backup_path = self.backup.create_backup(addon_path, name)
        except AddonError as e:
            self._warn(warnings, f"Failed to create backup before re-clone: {e}")

        try:
            shutil.rmtree(addon_path)
        except OSError as e:
            return self._failure(AddonIOError(f"Failed to remove for re-clone: {e}"), warnings)

        try:
            self.git.clone(meta['git_url'], addon_path)
        except AddonError as e:
            if backup_path:
                self._warn(warnings, f"Previous contents are kept in backup {backup_path}")
            return self._failure(e, warnings)

        meta['updated_at'] = self.clock()
        self.tracker.add_addon(name, meta)
        self._auto_save(warnings)

        self.logger.info(f"Addon re-cloned: {name} ({meta['git_url']})")
        return {
            'success': True,
            'updated': True,
            'already_updated': False,
            'recloned': True,
            'message': f'Addon "{name}" re-cloned from {meta["git_url"]}',
            'warnings': warnings,
        }

    def update_all(self):
        """Update every tracked addon. One failure does not stop the rest.

        Returns:
            dict - Batch result with keys:
            - success: bool - True if no addon failed
            - updated: int - addons that received new commits
            - failed: int - addons that could not be updated
            - skipped: int - addons already up-to-date
            - errors: list - "name: error" for each failure
        """
        updated = 0
        failed = 0
        skipped = 0
        errors = []

        for name in sorted(self.tracker.list_addons()):
            result = self.update(name)
            if not result['success']:
                failed += 1
                errors.append(f"{name}: {result['error']}")
            elif result.get('already_updated'):
                skipped += 1
            elif result.get('updated'):
                updated += 1

        return {
            'success': failed == 0,
            'updated': updated,
            'failed': failed,
            'skipped': skipped,
            'errors': errors,
        }

    def check_all_updates(self):
        """Check tracked git addons for upstream commits without applying them.

        Returns:
            list - dicts with name, has_update and error (None on success)
        """
        results = []
        for name in sorted(self.tracker.list_addons()):
            addon_path = self.addons_dir / name
            try:
                if not self.git.is_git_repo(addon_path):
                    continue
                has_update = self.git.check_for_updates(addon_path)
                error = None
            except AddonError as e:
                has_update = False
                error = str(e)

            results.append({'name': name, 'has_update': has_update, 'error': error})
        return results

    def get_info(self, name):
        """Get detailed information about an installed addon.

        The stored URL wins; for untracked addons the git remote is shown
        instead but never written back to the store.

        Args:
            name: str - Addon folder name

        Returns:
            dict - Addon record (name, title, version, author, notes, git_url,
            path, installed_at, updated_at, status, is_default)

        Raises:
            AddonNotFoundError - if the addon folder does not exist
        """
        addon_path = self._addon_path(name)
        addon = self._bare_addon(name, addon_path)

        try:
            toc_path, _ = find_toc_file(addon_path)
            info = read_toc_info(toc_path)
        except (ManifestNotFoundError, OSError):
            info = None

        if info is not None:
            addon['title'] = info['title']
            addon['version'] = info['version']
            addon['author'] = info['author']
            addon['notes'] = info['notes']

        meta = self.tracker.get_addon(name)
        if meta is not None:
            addon['git_url'] = meta['git_url']
            addon['installed_at'] = meta['installed_at']
            addon['updated_at'] = meta['updated_at']
        else:
            try:
                addon['git_url'] = self.git.get_remote_url(addon_path)
            except AddonError:
                # Display-only fallback; untracked addons without a remote have no URL
                pass

        return addon

    def _bare_addon(self, name, addon_path):
        is_default = is_default_addon(name)
        meta = self.tracker.get_addon(name)
        return {
            'name': name,
            'title': '',
            'version': '',
            'author': '',
            'notes': '',
            'git_url': '',
            'path': str(addon_path),
            'installed_at': None,
            'updated_at': None,
            'is_default': is_default,
            'status': classify_addon(bool(meta and meta['git_url']), True, is_default),
        }

    def list_installed(self):
        """List installed addons.

        Sorted default addons first, then tracked, then untracked, and by
        name (case-insensitive) within each group.

        Returns:
            list - Addon records as returned by get_info
        """
        names = self._scan_addon_dirs()
        if names is None:
            return []

        addons = []
        for name in names:
            try:
                addon = self.get_info(name)
            except AddonError as e:
                self.logger.debug(f"Could not read info for {name}: {e}")
                addon = self._bare_addon(name, self.addons_dir / name)
            addons.append(addon)

        addons.sort(key=lambda a: (status_priority(a['status']), a['name'].lower()))
        return addons

    def repair(self):
        """Scan the addons directory and bring the store back in line with it.

        Orphaned store entries are removed, untracked git repositories with a
        remote are tracked again, and corrupted repositories and folder/.toc
        name mismatches are reported. Default addons are never reported.

        Returns:
            dict - Repair result with keys:
            - success: bool - whether the scan ran
            - orphaned_entries: list - stored names with no folder (removed)
            - untracked_addons: list - folders with no stored metadata
            - auto_tracked: list - untracked folders tracked from their git remote
            - corrupted_repos: list - git repositories that failed verification
            - name_mismatches: list - "folder (should be tocname)"
            - total_scanned: int - folders scanned
            - issues_found: int - total issues reported
            - warnings: list - non-fatal problems
        """
        result = {
            'success': True,
            'orphaned_entries': [],
            'untracked_addons': [],
            'auto_tracked': [],
            'corrupted_repos': [],
            'name_mismatches': [],
            'total_scanned': 0,
            'issues_found': 0,
            'warnings': [],
        }

        try:
            names = self._scan_addon_dirs()
        except AddonIOError as e:
            return self._failure(e)

        if names is None:
            return result

        result['total_scanned'] = len(names)
        installed = set(names)

        for name in sorted(self.tracker.list_addons()):
            if name not in installed:
                result['orphaned_entries'].append(name)
                result['issues_found'] += 1

        stored = self.tracker.get_all_addons()
        for name in names:
            if is_default_addon(name):
                continue

            addon_path = self.addons_dir / name

            if name not in stored:
                result['untracked_addons'].append(name)
                result['issues_found'] += 1
                self._auto_track(name, addon_path, result)

            if (addon_path / '.git').exists():
                try:
                    self.git.verify_integrity(addon_path)
                except CorruptedRepositoryError as e:
                    self.logger.warning(f"Corrupted repository {name}: {e}")
                    result['corrupted_repos'].append(name)
                    result['issues_found'] += 1
                except AddonError as e:
                    self._warn(result['warnings'], f"Could not verify {name}: {e}")

            try:
                _, toc_name = find_toc_file(addon_path)
            except ManifestNotFoundError:
                toc_name = None
            if toc_name and toc_name != name:
                result['name_mismatches'].append(f"{name} (should be {toc_name})")
                result['issues_found'] += 1

        for name in result['orphaned_entries']:
            self.tracker.remove_addon(name)
            self.logger.info(f"Removed orphaned metadata entry: {name}")

        self._auto_save(result['warnings'])
        return result

    def _auto_track(self, name, addon_path, result):
        """Track an untracked folder from its git remote, if it has one"""
        try:
            url = self.git.get_remote_url(addon_path)
        except AddonError as e:
            self.logger.debug(f"Cannot auto-track {name}: {e}")
            return

        now = self.clock()
        self.tracker.add_addon(name, new_metadata(url, now, now))
        result['auto_tracked'].append(name)
        self.logger.info(f"Auto-tracked addon from git remote: {name} ({url})")

    def restore_backup(self, name, timestamp=None):
        """Restore an addon folder from one of its backups.

        Args:
            name: str - Addon name the backup was filed under
            timestamp: Optional str - Backup to restore (defaults to the latest)

        Returns:
            dict - Restore result with keys:
            - success: bool - whether the restore succeeded
            - backup: str - timestamp of the restored backup
            - path: str - restored addon folder
            - error: str - error message if failed
            - code: str - error code if failed
        """
        if not name or name in ('.', '..') or '/' in name:
            return self._failure(AddonNotFoundError(f"Addon not found: {name}"))

        try:
            if timestamp is None:
                timestamp = self.backup.get_latest_backup(name)
            self.ensure_addons_dir()
            dest_path = self.addons_dir / name
            self.backup.restore_backup(name, timestamp, dest_path)
        except AddonError as e:
            return self._failure(e)

        return {
            'success': True,
            'message': f'Addon "{name}" restored from backup {timestamp}',
            'backup': timestamp,
            'path': str(dest_path),
            'warnings': [],
        }
