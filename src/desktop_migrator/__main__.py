#!/usr/bin/env python3
"""
Command-line interface for Desktop Migrator

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import sys
import argparse
import logging
import textwrap
from typing import List, Optional

from . import __version__
from .context import MigrationContext
from .errors import MigrationError
from .main import Migrator, configure_logging
from .catalog.diff import ACTIONS
from .settings.categories import category_ids
from .utils.distro import (
    EnvironmentDescriptor, DESKTOP_MAP, build_target_image, detect_current_de,
)

logger = logging.getLogger(__name__)


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would happen without making changes')
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Skip all confirmations')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    parser.add_argument('--backup-dir',
                        help='Backup session to use (for pre: where to create it)')


def setup_argparse() -> argparse.ArgumentParser:
    """Set up command-line argument parser"""
    parser = argparse.ArgumentParser(
        prog='desktop-migrator',
        description="Desktop Migrator - move your configuration between Bluefin (GNOME) and Aurora (KDE)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              desktop-migrator pre --source-image ghcr.io/ublue-os/bluefin-dx:stable --dry-run
              desktop-migrator post                      # after rebasing and rebooting
              desktop-migrator post --restore ~/config-migration-backup-20260215-120000
              desktop-migrator settings --all            # replay fonts, wallpaper, themes...
              desktop-migrator restore ~/config-migration-backup-20260215-120000
        """)
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Pre-switch phase
    pre_parser = subparsers.add_parser('pre', help='Back up configs before switching images')
    add_common_arguments(pre_parser)
    pre_parser.add_argument('--source-image', required=True,
                            help='Image currently booted (e.g. ghcr.io/ublue-os/bluefin-dx:stable)')
    pre_parser.add_argument('--target-image',
                            help='Image to switch to (default: the other family, same variant and tag)')

    # Post-switch phase
    post_parser = subparsers.add_parser('post', help='Clean up and reconcile flatpaks after switching')
    add_common_arguments(post_parser)
    post_parser.add_argument('--restore', metavar='DIR',
                             help='Restore archived configs from a backup directory and exit')
    post_parser.add_argument('--skip-flatpaks', action='store_true',
                             help='Do not add or remove desktop flatpaks')
    post_parser.add_argument('--flatpak-action', choices=ACTIONS,
                             help='What to do with desktop flatpaks (asked when omitted)')

    # Settings replay
    settings_parser = subparsers.add_parser('settings', help='Replay selected settings from a backup')
    add_common_arguments(settings_parser)
    settings_parser.add_argument('--all', action='store_true', dest='select_all',
                                 help='Migrate every category found in the backup')
    settings_parser.add_argument('--category', action='append', default=[],
                                 help=f"Category to migrate, repeatable ({', '.join(category_ids())})")

    # Restore
    restore_parser = subparsers.add_parser('restore', help='Restore archived configs from a backup')
    add_common_arguments(restore_parser)
    restore_parser.add_argument('restore_dir', nargs='?', metavar='DIR',
                                help='Backup directory (same as --backup-dir)')

    return parser


def build_context(args: argparse.Namespace) -> MigrationContext:
    """Turn parsed arguments into the immutable run context"""
    source = target = None

    if args.command == 'pre':
        source = EnvironmentDescriptor.from_image(args.source_image)
        if args.target_image:
            target = EnvironmentDescriptor.from_image(args.target_image)
        else:
            family = next(f for f, de in DESKTOP_MAP.items() if de != source.de)
            target = EnvironmentDescriptor.from_image(build_target_image(family, source.variant, source.tag))
    elif args.command == 'post':
        current = detect_current_de()
        if current:
            target = EnvironmentDescriptor.for_de(current)

    return MigrationContext(
        source=source,
        target=target,
        dry_run=args.dry_run,
        assume_yes=args.yes,
        verbose=args.verbose,
    )


def handle_pre(app: Migrator, args: argparse.Namespace) -> int:
    """Handle pre command"""
    app.run_pre()
    return 0


def handle_post(app: Migrator, args: argparse.Namespace) -> int:
    """Handle post command"""
    if args.restore:
        summary = app.restore(args.restore)
        return 0 if summary.ok else 1
    app.run_post(backup_dir=args.backup_dir, skip_flatpaks=args.skip_flatpaks,
                 flatpak_action=args.flatpak_action)
    return 0


def handle_settings(app: Migrator, args: argparse.Namespace) -> int:
    """Handle settings command"""
    app.run_settings(backup_dir=args.backup_dir, categories=args.category, select_all=args.select_all)
    return 0


def handle_restore(app: Migrator, args: argparse.Namespace) -> int:
    """Handle restore command"""
    backup_dir = args.restore_dir or args.backup_dir
    if not backup_dir:
        print("Error: a backup directory is required")
        return 1
    summary = app.restore(backup_dir)
    return 0 if summary.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = setup_argparse()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    log_file = configure_logging(verbose=args.verbose)
    logger.info(f"desktop-migrator {__version__}: {args.command} (log: {log_file})")

    command_handlers = {
        'pre': handle_pre,
        'post': handle_post,
        'settings': handle_settings,
        'restore': handle_restore,
    }

    try:
        context = build_context(args)
        # For the pre phase --backup-dir is where the new session is created
        app = Migrator(context, base_dir=args.backup_dir if args.command == 'pre' else None)
        return command_handlers[args.command](app, args)
    except KeyboardInterrupt:
        print("\nMigration cancelled.")
        return 0
    except MigrationError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
