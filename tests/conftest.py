import shutil
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

REMOTE_BASE_URL = 'https://example.com/user/'

requires_git = pytest.mark.skipif(shutil.which('git') is None, reason='git executable not available')


def run_git(cwd, *args):
    return subprocess.run(['git', *args], cwd=cwd, check=True, capture_output=True, text=True).stdout.strip()


class RemoteFactory:
    """Builds bare repositories reachable at https://example.com/user/<name>.git"""

    def __init__(self, root):
        self.root = Path(root)
        self.work_root = self.root / 'work'
        self.bare_root = self.root / 'remotes'
        self.work_root.mkdir(parents=True)
        self.bare_root.mkdir(parents=True)

    def url(self, name):
        return f'{REMOTE_BASE_URL}{name}.git'

    def _write(self, work, files):
        for relative, content in files.items():
            path = work / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding='utf-8')

    def create(self, name, files):
        work = self.work_root / name
        work.mkdir()
        run_git(work, 'init', '--quiet', '--initial-branch=main')
        self._write(work, files)
        run_git(work, 'add', '-A')
        run_git(work, 'commit', '--quiet', '-m', 'initial')
        bare = self.bare_root / f'{name}.git'
        run_git(self.root, 'clone', '--quiet', '--bare', str(work), str(bare))
        run_git(work, 'remote', 'add', 'origin', str(bare))
        return self.url(name)

    def push(self, name, files, message='update'):
        work = self.work_root / name
        self._write(work, files)
        run_git(work, 'add', '-A')
        run_git(work, 'commit', '--quiet', '-m', message)
        run_git(work, 'push', '--quiet', 'origin', 'main')


@pytest.fixture
def remotes(tmp_path, monkeypatch):
    """Serve test repositories from disk in place of https://example.com/user/"""
    factory = RemoteFactory(tmp_path / 'git')

    monkeypatch.setenv('HOME', str(tmp_path / 'home'))
    monkeypatch.setenv('GIT_CONFIG_NOSYSTEM', '1')
    monkeypatch.setenv('GIT_AUTHOR_NAME', 'Test Author')
    monkeypatch.setenv('GIT_AUTHOR_EMAIL', 'author@example.com')
    monkeypatch.setenv('GIT_COMMITTER_NAME', 'Test Author')
    monkeypatch.setenv('GIT_COMMITTER_EMAIL', 'author@example.com')
    monkeypatch.setenv('GIT_CONFIG_COUNT', '1')
    monkeypatch.setenv('GIT_CONFIG_KEY_0', f'url.{factory.bare_root.as_uri()}/.insteadOf')
    monkeypatch.setenv('GIT_CONFIG_VALUE_0', REMOTE_BASE_URL)
    return factory


@pytest.fixture
def game_dir(tmp_path):
    path = tmp_path / 'game'
    path.mkdir()
    return path


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / 'data'
