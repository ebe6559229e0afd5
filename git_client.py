"""
Git Client
Clone, fast-forward and inspect addon repositories through the git CLI
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path

from addon_errors import (AddonIOError, CorruptedRepositoryError, InvalidURLError,
                          LocalChangesError, NetworkError, NoRemoteError,
                          NotARepositoryError)

UPDATE_FAST_FORWARDED = 'fast-forwarded'
UPDATE_UP_TO_DATE = 'up-to-date'

DEFAULT_BRANCHES = ('main', 'master')
BRANCH_SUFFIXES = ('-master', '-main', '-trunk')
VALID_URL_PREFIXES = ('https://', 'git@', 'git://')


def validate_git_url(url):
    """Check that a string looks like a git URL.

    Raises:
        InvalidURLError - unless the URL starts with https://, git@ or git://
    """
    if not url or not url.lower().startswith(VALID_URL_PREFIXES):
        raise InvalidURLError(f"Invalid git URL '{url}': must start with https://, git@, or git://")


def normalize_git_url(url):
    """Ensure the URL ends with .git"""
    if not url.endswith('.git'):
        return url + '.git'
    return url


def extract_repo_name(git_url):
    """Derive an addon folder name from a repository URL.

    'https://github.com/shagu/pfQuest-master.git' -> 'pfQuest'
    """
    name = git_url.strip().rstrip('/')
    if name.endswith('.git'):
        name = name[:-4]

    name = name.replace(':', '/').split('/')[-1]

    for suffix in BRANCH_SUFFIXES:
        if name.endswith(suffix):
            name = name[:-len(suffix)]

    return name


class GitClient:
    def __init__(self, git_binary='git', timeout=30):
        """Initialize git client.

        Args:
            git_binary: str - git executable to run
            timeout: int - Seconds allowed for local (non-network) git commands
        """
        self.git_binary = git_binary
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def _run_command(self, cmd, cwd=None, **kwargs):
        """Run a git command and capture its output.

        Args:
            cmd: list - Command and arguments
            cwd: Optional str/Path - Working directory
            **kwargs: Additional subprocess.run arguments

        Returns:
            subprocess.CompletedProcess - Process result with returncode, stdout, stderr
        """
        env = os.environ.copy()
        # A missing or private repository must fail, not prompt for credentials
        env['GIT_TERMINAL_PROMPT'] = '0'
        try:
            return subprocess.run(cmd, cwd=cwd, env=env, capture_output=True, text=True, **kwargs)
        except FileNotFoundError as e:
            raise AddonIOError(f"git executable not found: {self.git_binary}") from e
        except subprocess.TimeoutExpired as e:
            raise AddonIOError(f"git command timed out: {' '.join(cmd[1:])}") from e

    def _git(self, repo_path, *args, **kwargs):
        """Run git against exactly repo_path, never a repository above it"""
        repo_path = Path(repo_path)
        cmd = [
            self.git_binary,
            f'--git-dir={repo_path / ".git"}',
            f'--work-tree={repo_path}',
            *args,
        ]
        return self._run_command(cmd, cwd=repo_path, **kwargs)

    def _open(self, repo_path):
        repo_path = Path(repo_path)
        if not (repo_path / '.git').exists():
            raise NotARepositoryError(f"Not a git repository: {repo_path}")
        result = self._git(repo_path, 'rev-parse', '--git-dir', timeout=self.timeout)
        if result.returncode != 0:
            raise NotARepositoryError(f"Not a git repository: {repo_path}: {result.stderr.strip()}")

    def _fetch(self, repo_path):
        result = self._git(repo_path, 'fetch', 'origin')
        if result.returncode != 0:
            raise NetworkError(f"Failed to fetch: {result.stderr.strip()}")

    def _resolve(self, repo_path, rev):
        result = self._git(repo_path, 'rev-parse', '--verify', '--quiet', f'{rev}^{{commit}}',
                           timeout=self.timeout)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def _head_commit(self, repo_path):
        commit = self._resolve(repo_path, 'HEAD')
        if commit is None:
            raise CorruptedRepositoryError(f"Failed to resolve HEAD in {repo_path}")
        return commit

    def _current_branch(self, repo_path):
        result = self._git(repo_path, 'symbolic-ref', '--short', '--quiet', 'HEAD', timeout=self.timeout)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        # Detached HEAD
        return 'HEAD'

    def _is_ancestor(self, repo_path, commit, descendant):
        result = self._git(repo_path, 'merge-base', '--is-ancestor', commit, descendant, timeout=self.timeout)
        if result.returncode not in (0, 1):
            raise AddonIOError(f"Failed to compare commits: {result.stderr.strip()}")
        return result.returncode == 0

    def _remote_commit(self, repo_path):
        """Resolve the remote tracking commit for the current branch.

        Falls back to origin/main then origin/master when the remote has no
        branch of the same name.
        """
        branch = self._current_branch(repo_path)
        candidates = [b for b in DEFAULT_BRANCHES if b != branch]
        if branch != 'HEAD':
            candidates.insert(0, branch)
        for candidate in candidates:
            commit = self._resolve(repo_path, f'refs/remotes/origin/{candidate}')
            if commit:
                return commit
        raise NoRemoteError(f"Failed to find remote branch for '{branch}' in {repo_path}")

    def clone(self, url, dest_path):
        """Clone a repository with full history so it can be fast-forwarded later.

        Raises:
            NetworkError - if git clone fails
        """
        self.logger.debug(f"Cloning {url} into {dest_path}")
        result = self._run_command([self.git_binary, 'clone', '--', url, str(dest_path)])
        if result.returncode != 0:
            raise NetworkError(f"Failed to clone repository: {result.stderr.strip()}")

    def update(self, repo_path):
        """Fast-forward a repository to its remote branch.

        Local changes are never discarded: a dirty working tree (including
        untracked files) refuses the update.

        Returns:
            str - UPDATE_FAST_FORWARDED or UPDATE_UP_TO_DATE

        Raises:
            NotARepositoryError - if repo_path is not a git repository
            LocalChangesError - if the working tree has local changes or HEAD has
                commits the remote branch does not
            NetworkError - if fetching fails
        """
        self._open(repo_path)

        status = self._git(repo_path, 'status', '--porcelain', timeout=self.timeout)
        if status.returncode != 0:
            raise AddonIOError(f"Failed to get status: {status.stderr.strip()}")
        if status.stdout.strip():
            raise LocalChangesError("Fast-forward not possible, local changes exist")

        self._fetch(repo_path)

        head = self._head_commit(repo_path)
        remote = self._remote_commit(repo_path)
        if head == remote:
            return UPDATE_UP_TO_DATE

        if not self._is_ancestor(repo_path, head, remote):
            raise LocalChangesError("Fast-forward not possible, local commits are not on the remote branch")

        # Clean tree and HEAD behind the remote: resetting to the remote is a fast-forward
        result = self._git(repo_path, 'reset', '--hard', remote, timeout=self.timeout)
        if result.returncode != 0:
            raise AddonIOError(f"Failed to fast-forward: {result.stderr.strip()}")

        self.logger.debug(f"Fast-forwarded {repo_path} from {head[:8]} to {remote[:8]}")
        return UPDATE_FAST_FORWARDED

    def check_for_updates(self, repo_path):
        """Fetch and report whether the remote branch is ahead. Does not touch the working tree."""
        self._open(repo_path)
        self._fetch(repo_path)
        return self._head_commit(repo_path) != self._remote_commit(repo_path)

    def is_git_repo(self, repo_path):
        try:
            self._open(repo_path)
        except NotARepositoryError:
            return False
        return True

    def verify_integrity(self, repo_path):
        """Check a repository can be opened and has a resolvable HEAD.

        Raises:
            CorruptedRepositoryError - describing what is broken
        """
        repo_path = Path(repo_path)
        if not (repo_path / '.git').exists():
            raise CorruptedRepositoryError("missing .git directory")

        try:
            self._open(repo_path)
        except NotARepositoryError as e:
            raise CorruptedRepositoryError(f"corrupted repository: {e}") from e

        if self._resolve(repo_path, 'HEAD') is None:
            raise CorruptedRepositoryError("corrupted HEAD")

    def get_remote_url(self, repo_path):
        """Get the origin URL of a repository.

        Raises:
            NotARepositoryError - if repo_path is not a git repository
            NoRemoteError - if no origin remote is configured
        """
        self._open(repo_path)
        result = self._git(repo_path, 'config', '--get', 'remote.origin.url', timeout=self.timeout)
        url = result.stdout.strip()
        if result.returncode != 0 or not url:
            raise NoRemoteError(f"No remote configured for {repo_path}")
        return url

    def get_current_commit(self, repo_path):
        """Get the short (8 character) hash of HEAD"""
        self._open(repo_path)
        return self._head_commit(repo_path)[:8]

    def cleanup_failed_clone(self, path):
        """Remove a partially cloned folder, but never a valid repository"""
        path = Path(path)
        if not path.exists():
            return
        if self.is_git_repo(path):
            return
        shutil.rmtree(path)
