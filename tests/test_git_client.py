import pytest

from addon_errors import (CorruptedRepositoryError, InvalidURLError, LocalChangesError,
                          NetworkError, NotARepositoryError)
from conftest import requires_git, run_git
from git_client import (UPDATE_FAST_FORWARDED, UPDATE_UP_TO_DATE, GitClient, extract_repo_name,
                        normalize_git_url, validate_git_url)

TOC = '## Title: My Addon\n## Version: 1.0\n'


@pytest.mark.parametrize('url', [
    'https://github.com/shagu/pfQuest.git',
    'git@github.com:shagu/pfQuest.git',
    'git://example.com/pfQuest',
])
def test_valid_urls(url):
    validate_git_url(url)


@pytest.mark.parametrize('url', ['', 'http://github.com/shagu/pfQuest', 'ftp://example.com/x', '/tmp/repo'])
def test_invalid_urls(url):
    with pytest.raises(InvalidURLError) as excinfo:
        validate_git_url(url)
    assert excinfo.value.code == 'invalid_url'


def test_normalize_git_url():
    assert normalize_git_url('https://github.com/shagu/pfQuest') == 'https://github.com/shagu/pfQuest.git'
    assert normalize_git_url('https://github.com/shagu/pfQuest.git') == 'https://github.com/shagu/pfQuest.git'


@pytest.mark.parametrize('url, expected', [
    ('https://github.com/shagu/pfQuest.git', 'pfQuest'),
    ('https://github.com/shagu/pfQuest-master.git', 'pfQuest'),
    ('https://github.com/user/Atlas-main/', 'Atlas'),
    ('git@github.com:user/ShaguTweaks.git', 'ShaguTweaks'),
    ('git@github.com:Bagshui', 'Bagshui'),
])
def test_extract_repo_name(url, expected):
    assert extract_repo_name(url) == expected


@pytest.fixture
def git():
    return GitClient()


@pytest.fixture
def clone(remotes, tmp_path, git):
    url = remotes.create('MyAddon', {'MyAddon.toc': TOC, 'core.lua': 'print("v1")\n'})
    path = tmp_path / 'AddOns' / 'MyAddon'
    path.parent.mkdir()
    git.clone(url, path)
    return path


@requires_git
def test_clone_keeps_original_remote_url(clone, git, remotes):
    assert (clone / 'core.lua').read_text() == 'print("v1")\n'
    assert git.is_git_repo(clone)
    assert git.get_remote_url(clone) == remotes.url('MyAddon')
    assert len(git.get_current_commit(clone)) == 8


@requires_git
def test_clone_of_missing_repository_fails(remotes, tmp_path, git):
    with pytest.raises(NetworkError) as excinfo:
        git.clone(remotes.url('Missing'), tmp_path / 'Missing')
    assert excinfo.value.code == 'network_error'


@requires_git
def test_update_fast_forwards(clone, git, remotes):
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})

    assert git.check_for_updates(clone) is True
    assert git.update(clone) == UPDATE_FAST_FORWARDED
    assert (clone / 'core.lua').read_text() == 'print("v2")\n'
    assert git.check_for_updates(clone) is False


@requires_git
def test_update_when_up_to_date(clone, git):
    assert git.update(clone) == UPDATE_UP_TO_DATE


@requires_git
def test_update_blocked_by_local_changes(clone, git, remotes):
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})
    (clone / 'core.lua').write_text('print("mine")\n')
    before = (clone / 'core.lua').read_bytes()
    head = git.get_current_commit(clone)

    with pytest.raises(LocalChangesError):
        git.update(clone)

    assert (clone / 'core.lua').read_bytes() == before
    assert git.get_current_commit(clone) == head


@requires_git
def test_untracked_files_block_update(clone, git, remotes):
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})
    (clone / 'notes.txt').write_text('local file')

    with pytest.raises(LocalChangesError):
        git.update(clone)

    assert (clone / 'core.lua').read_text() == 'print("v1")\n'


@requires_git
def test_update_outside_repository(tmp_path, git):
    plain = tmp_path / 'Plain'
    plain.mkdir()

    with pytest.raises(NotARepositoryError):
        git.update(plain)
    assert not git.is_git_repo(plain)


@requires_git
def test_plain_folder_inside_a_repository_is_not_a_repository(clone, git):
    nested = clone / 'lib'
    nested.mkdir()

    assert not git.is_git_repo(nested)


@requires_git
def test_verify_integrity(clone, git, tmp_path):
    git.verify_integrity(clone)

    broken = tmp_path / 'Broken'
    (broken / '.git').mkdir(parents=True)
    with pytest.raises(CorruptedRepositoryError):
        git.verify_integrity(broken)


@requires_git
def test_remote_branch_falls_back_to_main(clone, git, remotes):
    run_git(clone, 'checkout', '--quiet', '-b', 'feature')
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})

    assert git.update(clone) == UPDATE_FAST_FORWARDED
    assert (clone / 'core.lua').read_text() == 'print("v2")\n'


@requires_git
def test_cleanup_failed_clone_keeps_valid_repository(clone, git, tmp_path):
    git.cleanup_failed_clone(clone)
    assert clone.exists()

    partial = tmp_path / 'Partial'
    partial.mkdir()
    (partial / 'half.lua').write_text('')
    git.cleanup_failed_clone(partial)
    assert not partial.exists()


def test_detached_head_skips_origin_head(monkeypatch, tmp_path):
    git = GitClient()
    requested = []

    def resolve(repo_path, rev):
        requested.append(rev)
        return 'c0ffee' * 6 if rev == 'refs/remotes/origin/master' else None

    monkeypatch.setattr(git, '_current_branch', lambda repo_path: 'HEAD')
    monkeypatch.setattr(git, '_resolve', resolve)

    assert git._remote_commit(tmp_path) == 'c0ffee' * 6
    assert requested == ['refs/remotes/origin/main', 'refs/remotes/origin/master']


@requires_git
def test_detached_head_updates_from_main(clone, git, remotes):
    run_git(clone, 'checkout', '--quiet', '--detach')
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})

    assert git.update(clone) == UPDATE_FAST_FORWARDED
    assert (clone / 'core.lua').read_text() == 'print("v2")\n'


def commit_locally(clone, content):
    (clone / 'core.lua').write_text(content)
    run_git(clone, 'commit', '--quiet', '-am', 'local tweak')


@requires_git
def test_diverged_history_blocks_update(clone, git, remotes):
    commit_locally(clone, 'print("mine")\n')
    remotes.push('MyAddon', {'core.lua': 'print("v2")\n'})
    head = git.get_current_commit(clone)

    with pytest.raises(LocalChangesError):
        git.update(clone)

    assert git.get_current_commit(clone) == head
    assert (clone / 'core.lua').read_text() == 'print("mine")\n'


@requires_git
def test_local_commits_ahead_of_remote_are_kept(clone, git):
    commit_locally(clone, 'print("mine")\n')
    head = git.get_current_commit(clone)

    with pytest.raises(LocalChangesError):
        git.update(clone)

    assert git.get_current_commit(clone) == head
    assert (clone / 'core.lua').read_text() == 'print("mine")\n'
