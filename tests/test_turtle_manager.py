import logging

import pytest

import turtle_manager
from turtle_manager import build_parser, main


@pytest.fixture
def launcher_env(tmp_path, monkeypatch):
    monkeypatch.setenv('XDG_DATA_HOME', str(tmp_path / 'data'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(tmp_path / 'cache'))
    monkeypatch.setenv('TURTLE_WOW_GAME_DIR', str(tmp_path / 'game'))
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield tmp_path
    # main() reconfigures the root logger
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)


def test_parser_remove_flags():
    args = build_parser().parse_args(['addons', 'remove', 'pfQuest', '--force', '--no-backup'])

    assert args.name == 'pfQuest'
    assert args.force is True
    assert args.no_backup is True
    assert args.handler is turtle_manager.cmd_remove


def test_parser_update_without_name():
    args = build_parser().parse_args(['-v', 'addons', 'update'])

    assert args.verbose is True
    assert args.name is None


def test_list_empty(launcher_env, capsys):
    assert main(['addons', 'list']) == 0

    assert 'No addons installed' in capsys.readouterr().out
    assert (launcher_env / 'game' / 'Interface' / 'AddOns').is_dir()
    assert (launcher_env / 'cache' / 'turtle-wow' / 'turtle-manager.log').exists()


def test_list_shows_addons(launcher_env, capsys):
    addon = launcher_env / 'game' / 'Interface' / 'AddOns' / 'Loose'
    addon.mkdir(parents=True)
    (addon / 'Loose.toc').write_text('## Title: Loose\n## Version: 2.0\n## Author: Me\n')

    assert main(['addons', 'list']) == 0

    out = capsys.readouterr().out
    assert 'Loose' in out
    assert '2.0' in out
    assert 'untracked' in out


def test_info_unknown_addon_fails(launcher_env, capsys):
    assert main(['addons', 'info', 'Nope']) == 1

    assert 'Addon not found: Nope' in capsys.readouterr().err


def test_install_invalid_url_fails(launcher_env, capsys):
    assert main(['addons', 'install', 'ftp://example.com/Addon']) == 1

    assert 'Invalid git URL' in capsys.readouterr().err


def test_remove_with_force(launcher_env, capsys):
    addon = launcher_env / 'game' / 'Interface' / 'AddOns' / 'Loose'
    addon.mkdir(parents=True)

    assert main(['addons', 'remove', 'Loose', '--force', '--no-backup']) == 0

    assert not addon.exists()
    assert 'removed successfully' in capsys.readouterr().out


def test_remove_cancelled(launcher_env, monkeypatch, capsys):
    addon = launcher_env / 'game' / 'Interface' / 'AddOns' / 'Loose'
    addon.mkdir(parents=True)
    monkeypatch.setattr('builtins.input', lambda prompt: 'n')

    assert main(['addons', 'remove', 'Loose']) == 0

    assert addon.exists()
    assert 'Cancelled.' in capsys.readouterr().out


def test_repair_clean(launcher_env, capsys):
    assert main(['addons', 'repair']) == 0

    assert 'No issues found' in capsys.readouterr().out


def write_broken_store(launcher_env):
    store = launcher_env / 'data' / 'turtle-wow' / 'addons.json'
    store.parent.mkdir(parents=True)
    content = ('{"addons": {"pfQuest": {"git_url": "https://github.com/shagu/pfQuest.git", '
               '"installed_at": "", "updated_at": ""},}}')
    store.write_text(content, encoding='utf-8')
    return store, content


def test_malformed_store_blocks_mutating_commands(launcher_env, capsys):
    store, content = write_broken_store(launcher_env)

    assert main(['addons', 'repair']) == 1

    assert store.read_text(encoding='utf-8') == content
    assert 'failed to load addon store' in capsys.readouterr().err


def test_malformed_store_still_lists_addons(launcher_env, capsys):
    store, content = write_broken_store(launcher_env)
    addon = launcher_env / 'game' / 'Interface' / 'AddOns' / 'pfQuest'
    addon.mkdir(parents=True)

    assert main(['addons', 'list']) == 0

    assert 'pfQuest' in capsys.readouterr().out
    assert store.read_text(encoding='utf-8') == content
