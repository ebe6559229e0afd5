"""
Turtle WoW Addon Manager
A command line manager for Turtle WoW addons installed from git repositories
"""

__version__ = "1.0"

import argparse
import json
import sys

from addon_errors import AddonError
from addon_manager import AddonManager
from addon_registry import AddonRegistry, is_new, mark_installed, sort_addons
from addon_status import STATUS_DEFAULT, STATUS_TRACKED
from launcher_config import LauncherConfig
from log_config import get_logger, setup_logging

logger = get_logger(__name__)

STATUS_LABELS = {
    STATUS_DEFAULT: 'default',
    STATUS_TRACKED: 'tracked',
}


def _format_time(value):
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else ''


def _print_table(headers, rows):
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))
    for row in [headers] + rows:
        print('  '.join(cell.ljust(widths[idx]) for idx, cell in enumerate(row)).rstrip())


def _print_warnings(result):
    for warning in result.get('warnings', []):
        print(f"Warning: {warning}", file=sys.stderr)


def _finish(manager, result):
    """Print the outcome of a mutating command and save the store"""
    _print_warnings(result)
    if not result['success']:
        print(f"Error: {result['error']}", file=sys.stderr)
        return 1
    try:
        manager.save()
    except AddonError as e:
        logger.warning(f"Failed to save addon store: {e}")
    print(result.get('message', 'Done'))
    return 0


def cmd_list(manager, args):
    addons = manager.list_installed()
    if not addons:
        print("No addons installed")
        print("\nInstall addons with: turtle-manager addons install <git-url>")
        return 0

    rows = [
        [a['name'], a['version'] or '-', a['author'] or '-', STATUS_LABELS.get(a['status'], 'untracked')]
        for a in addons
    ]
    _print_table(['NAME', 'VERSION', 'AUTHOR', 'STATUS'], rows)
    print(f"\n{len(addons)} addon(s) installed")
    print(f"Addons directory: {manager.get_addons_dir()}")
    return 0


def cmd_install(manager, args):
    print(f"Installing from {args.url}...")
    result = manager.install(args.url)
    if result['success'] and result['title'] != result['name']:
        result['message'] += f" ({result['title']})"
    return _finish(manager, result)


def cmd_remove(manager, args):
    try:
        addon = manager.get_info(args.name)
    except AddonError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    create_backup = not args.no_backup
    if not args.force:
        print(f"Remove addon {addon['name']}?")
        if addon['title'] and addon['title'] != addon['name']:
            print(f"  Title: {addon['title']}")
        print(f"  Path: {addon['path']}")
        print("  A backup will be created." if create_backup else "  No backup will be created!")
        response = input("\nConfirm? [y/N] ").strip().lower()
        if response not in ('y', 'yes'):
            print("Cancelled.")
            return 0

    result = manager.remove(args.name, create_backup=create_backup)
    if result['success'] and result.get('backup_path'):
        result['message'] += f" (backup: {result['backup_path']})"
    return _finish(manager, result)


def cmd_update(manager, args):
    if args.name:
        print(f"Updating {args.name}...")
        return _finish(manager, manager.update(args.name))

    tracked = manager.get_tracked_addons()
    if not tracked:
        print("No tracked addons to update")
        return 0

    print(f"Updating {len(tracked)} addon(s)...")
    result = manager.update_all()
    for error in result['errors']:
        print(f"  failed: {error}", file=sys.stderr)
    try:
        manager.save()
    except AddonError as e:
        logger.warning(f"Failed to save addon store: {e}")
    print(f"{result['updated']} updated, {result['skipped']} up-to-date, {result['failed']} failed")
    return 0 if result['success'] else 1


def cmd_check(manager, args):
    results = manager.check_all_updates()
    if not results:
        print("No tracked git addons to check")
        return 0

    available = 0
    for entry in results:
        if entry['error']:
            print(f"  {entry['name']}: error ({entry['error']})")
        elif entry['has_update']:
            available += 1
            print(f"  {entry['name']}: update available")
        else:
            print(f"  {entry['name']}: up-to-date")
    print(f"\n{available} update(s) available")
    return 0


def cmd_info(manager, args):
    try:
        addon = manager.get_info(args.name)
    except AddonError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(addon['name'])
    if addon['title'] and addon['title'] != addon['name']:
        print(addon['title'])
    print()

    fields = [
        ('Path', addon['path']),
        ('Version', addon['version']),
        ('Author', addon['author']),
        ('Notes', addon['notes']),
        ('Git URL', addon['git_url']),
        ('Status', STATUS_LABELS.get(addon['status'], 'untracked')),
        ('Installed', _format_time(addon['installed_at'])),
        ('Updated', _format_time(addon['updated_at'])),
    ]
    for label, value in fields:
        if value:
            print(f"{label + ':':<10} {value}")

    backups = manager.get_backup_manager().list_backups(args.name)
    if backups:
        print(f"\nBackups:   {len(backups)} available (latest: {backups[0]})")

    try:
        if manager.git.is_git_repo(addon['path']):
            print(f"Commit:    {manager.git.get_current_commit(addon['path'])}")
    except AddonError as e:
        logger.debug(f"Could not read commit for {args.name}: {e}")
    return 0


def cmd_repair(manager, args):
    print("Scanning addons directory...")
    result = manager.repair()
    _print_warnings(result)
    if not result['success']:
        print(f"Error: repair failed: {result['error']}", file=sys.stderr)
        return 1

    print(f"\nScanned {result['total_scanned']} addon(s)\n")
    if result['issues_found'] == 0:
        print("No issues found")
        return 0

    print(f"Found {result['issues_found']} issue(s):\n")
    sections = [
        ('Orphaned metadata entries (removed):', result['orphaned_entries'], ''),
        ('Untracked addons (now tracked if git repo):', result['untracked_addons'], ''),
        ('Corrupted git repositories:', result['corrupted_repos'], ' (re-install recommended)'),
        ('Folder name mismatches:', result['name_mismatches'], ''),
    ]
    for title, names, suffix in sections:
        if names:
            print(title)
            for name in names:
                print(f"  - {name}{suffix}")
            print()

    try:
        manager.save()
    except AddonError as e:
        logger.warning(f"Failed to save addon store: {e}")
    print("Repair complete")
    return 0


def cmd_restore(manager, args):
    return _finish(manager, manager.restore_backup(args.name, args.backup))


def cmd_explore(manager, args, config):
    registry = AddonRegistry(config.cache_dir)
    try:
        entries = registry.get_addons(force_refresh=args.refresh)
    except AddonError as e:
        print(f"Error: failed to load addons: {e}", file=sys.stderr)
        return 1

    installed_urls = {a['git_url'] for a in manager.list_installed() if a['git_url']}
    mark_installed(entries, installed_urls)
    sort_addons(entries)
    info = registry.get_info()

    if args.json:
        output = {
            'addons': [
                dict(entry,
                     last_commit=entry['last_commit'].isoformat() if entry['last_commit'] else None,
                     added_at=entry['added_at'].isoformat() if entry['added_at'] else None)
                for entry in entries
            ],
            'total': len(entries),
            'new_count': info.get('new_addons', 0),
        }
        if info.get('generated_at'):
            output['generated_at'] = info['generated_at'].isoformat()
            output['cache_age'] = str(info['age']).split('.')[0]
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return 0

    rows = []
    for entry in entries:
        status = []
        if is_new(entry):
            status.append('NEW')
        if entry['is_installed']:
            status.append('installed')
        description = entry['description']
        if len(description) > 50:
            description = description[:47] + '...'
        stars = entry['stars']
        stars_text = f"{stars / 1000:.1f}k" if stars >= 1000 else (str(stars) if stars else '')
        rows.append([entry['name'], entry['author'], stars_text, ', '.join(status), description])

    _print_table(['NAME', 'AUTHOR', 'STARS', 'STATUS', 'DESCRIPTION'], rows)
    print(f"\n{len(entries)} addon(s) in registry")
    return 0


# Commands that save the store afterwards
MUTATING_COMMANDS = (cmd_install, cmd_remove, cmd_update, cmd_repair, cmd_restore)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='turtle-manager',
        description='Manage Turtle WoW addons on Linux',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose/debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    commands = parser.add_subparsers(dest='command', required=True)
    addons = commands.add_parser('addons', help='Manage addons')
    sub = addons.add_subparsers(dest='addons_command', required=True)

    sub.add_parser('list', help='List installed addons').set_defaults(handler=cmd_list)

    install = sub.add_parser('install', help='Install an addon from a git repository')
    install.add_argument('url', help='Git repository URL')
    install.set_defaults(handler=cmd_install)

    remove = sub.add_parser('remove', aliases=['rm', 'uninstall'], help='Remove an installed addon')
    remove.add_argument('name')
    remove.add_argument('-f', '--force', action='store_true', help='Skip confirmation prompt')
    remove.add_argument('--no-backup', action='store_true', help='Skip backup creation')
    remove.set_defaults(handler=cmd_remove)

    update = sub.add_parser('update', help='Update one addon, or all tracked addons')
    update.add_argument('name', nargs='?')
    update.set_defaults(handler=cmd_update)

    sub.add_parser('check', help='Check tracked addons for updates').set_defaults(handler=cmd_check)

    info = sub.add_parser('info', help='Show addon details')
    info.add_argument('name')
    info.set_defaults(handler=cmd_info)

    sub.add_parser('repair', help='Repair addon metadata and report issues').set_defaults(handler=cmd_repair)

    restore = sub.add_parser('restore', help='Restore an addon from a backup')
    restore.add_argument('name')
    restore.add_argument('--backup', metavar='TIMESTAMP', help='Backup to restore (default: latest)')
    restore.set_defaults(handler=cmd_restore)

    explore = sub.add_parser('explore', help='Browse the addon registry')
    explore.add_argument('-r', '--refresh', action='store_true', help='Force refresh the registry cache')
    explore.add_argument('--json', action='store_true', help='Output as JSON')
    explore.set_defaults(handler=cmd_explore)

    return parser


def main(argv=None):
    """Main entry point. Build one addon manager and run the requested command."""
    args = build_parser().parse_args(argv)

    config = LauncherConfig()
    setup_logging(args.verbose, config.cache_dir)

    manager = AddonManager(config.game_dir, config.data_dir)
    try:
        manager.load()
    except AddonError as e:
        # Saving now would overwrite the unreadable store with an empty one
        if args.handler in MUTATING_COMMANDS:
            print(f"Error: failed to load addon store: {e}", file=sys.stderr)
            print(f"Fix or remove {manager.tracker.tracker_file} and try again.", file=sys.stderr)
            return 1
        logger.warning(f"Failed to load addon store, showing addons as untracked: {e}")

    try:
        manager.ensure_addons_dir()
    except AddonError as e:
        print(f"Error: failed to ensure addons directory: {e}", file=sys.stderr)
        return 1

    if args.handler is cmd_explore:
        return cmd_explore(manager, args, config)
    return args.handler(manager, args)


if __name__ == '__main__':
    sys.exit(main())
