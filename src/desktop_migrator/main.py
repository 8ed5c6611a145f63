#!/usr/bin/env python3
"""
Main application module for Desktop Migrator

Sequences the archive store, the settings extractor/applier and the flatpak
catalog reconciliation around the image switch, which happens outside this
program between the pre and post phases.

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

import os
import re
import logging
from typing import List, Optional, Tuple

from .archive.paths import (
    GTK_RESET_PATHS, ICON_THEME_POINTER, DEFAULT_ICON_THEMES, POST_CLEANUP_PATHS,
    DE_MARKERS, get_de_config_paths, is_preserved_path,
)
from .archive.scripts import RESTORE_SCRIPT_NAME, SETTINGS_SCRIPT_NAME
from .archive.store import ArchiveStore, ArchiveMode, BackupSession, RecoveryArtifacts
from .catalog.diff import CatalogDiffEngine, ReconciliationPlan, ACTIONS
from .catalog.fetcher import CatalogFetcher
from .context import MigrationContext
from .errors import MigrationError, BackupNotFoundError, FetchFailureError
from .package_managers.flatpak import FlatpakPackageManager
from .settings.applier import SettingsApplier
from .settings.categories import CATEGORIES, Strategy, get_category
from .settings.extractor import SettingsExtractor
from .utils.config import config, APP_NAME
from .utils.distro import EnvironmentDescriptor, DESKTOP_MAP, detect_current_de, opposite_de
from .utils.prompt import confirm, acknowledge_unsupported, choose
from .utils.runner import Runner
from .utils.summary import OperationSummary

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CLEANUP_LABEL = "config-migration-cleanup"
RESTORE_TIMEOUT = 10 * 60
RESTORE_TOTALS_RE = re.compile(r'(\d+) restored, (\d+) skipped, (\d+) errors')


def configure_logging(verbose: bool = False, log_dir: Optional[str] = None) -> str:
    """Send logs to the console and to the application log file

    Returns:
        Path of the application log file
    """
    log_dir = log_dir or os.path.expanduser(f"~/.local/share/{APP_NAME}")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{APP_NAME}.log")

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    logging.basicConfig(
        level=logging.DEBUG,
        format=LOG_FORMAT,
        handlers=[console, file_handler],
        force=True
    )
    return log_file


def attach_session_log(session: BackupSession) -> Optional[logging.Handler]:
    """Also write the log into the session's logs/ directory"""
    if not os.path.isdir(session.logs_dir):
        return None
    handler = logging.FileHandler(os.path.join(session.logs_dir, "migration.log"))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(handler)
    return handler


def detach_session_log(handler: Optional[logging.Handler]) -> None:
    if handler:
        logging.getLogger().removeHandler(handler)
        handler.close()


class Migrator:
    """Main application class for Desktop Migrator"""

    def __init__(self, context: MigrationContext, base_dir: Optional[str] = None):
        """Initialize the application

        Args:
            context: Immutable description of this run
            base_dir: Directory holding backup sessions, from config by default
        """
        self.context = context
        self.runner = Runner(dry_run=context.dry_run, timeout=config.get("tool_timeout", 30))
        self.base_dir = os.path.expanduser(base_dir or config.get_backup_base_dir())
        self.store = ArchiveStore(context, self.runner, self.base_dir)
        self.label = config.get("backup_label")

        if context.dry_run:
            print("[DRY-RUN] No changes will be made")
        logger.info(f"Migrator initialized (dry_run={context.dry_run}, home={context.home})")

    # Pre-switch phase

    def run_pre(self) -> Optional[BackupSession]:
        """Back up and reset the source desktop's configuration

        Returns:
            The finalized session, or None if the user cancelled
        """
        source, target = self.context.source, self.context.target
        if not source or not target:
            raise MigrationError("Source and target images are required")
        if source.de == target.de:
            raise MigrationError(f"Source and target both use {source.de}; nothing to migrate")

        if not acknowledge_unsupported(self.context.assume_yes):
            print("Migration cancelled.")
            return None

        self._print_pre_summary()
        if not confirm("Proceed with migration preparation?", default=False, assume_yes=self.context.assume_yes):
            print("Migration cancelled.")
            return None

        session = self.store.begin_session(self.label)
        session_log = attach_session_log(session)
        try:
            totals, artifacts = self._archive_for_switch(session)
        finally:
            detach_session_log(session_log)

        print("\nBACKUP LOCATION")
        print(f"  {session.root}")
        print("  Contents:")
        print("    - configs/            (archived configuration files)")
        print("    - metadata/           (migration details)")
        print("    - manifest.json       (migration details)")
        print("    - rollback.sh         (undo the migration)")
        print("    - restore-configs.sh  (restore archived configs)")

        print("\nNEXT STEPS")
        print("  1. Rebase to the target image:")
        print(f"       sudo bootc switch {target.image}")
        print("     or, to enforce signature verification:")
        print(f"       sudo bootc switch --enforce-container-sigpolicy {target.image}")
        print("  2. Reboot:")
        print("       sudo reboot")
        print("  3. After logging in, run the post-migration step:")
        for entry_point in artifacts.entry_points[:1]:
            print(f"       {entry_point}")
        print("\nTo undo the migration:")
        print(f"  {artifacts.rollback_script}")

        print(f"\nPre-migration complete: {totals}")
        if session.failures:
            print(f"Warning: {session.failures} paths could not be archived, see {session.logs_dir}")
        return session

    def _archive_for_switch(self, session: BackupSession) -> Tuple[OperationSummary, RecoveryArtifacts]:
        """Archive the source desktop's configs, reset GTK and icons, and finalize"""
        source, target = self.context.source, self.context.target
        totals = OperationSummary(label="pre-migration")

        print(f"\nArchiving {source.de} configuration files...")
        paths = []
        for relative in get_de_config_paths(source.de):
            if is_preserved_path(relative):
                logger.warning(f"Not archiving preserved path: {relative}")
                continue
            paths.append(relative)
        passive = self.store.archive_all(session, paths, ArchiveMode.COPY, group=source.de)
        print(f"  {passive}")
        totals.add(passive)

        print("\nResetting GTK configuration files...")
        gtk = self.store.archive_all(session, GTK_RESET_PATHS, ArchiveMode.MOVE, group="gtk")
        print(f"  {gtk}")
        totals.add(gtk)

        print("\nResetting icon theme...")
        icons = self.store.archive_all(session, [ICON_THEME_POINTER], ArchiveMode.MOVE, group="icons")
        totals.add(icons)
        print(f"  {target.de.upper()} will use {DEFAULT_ICON_THEMES.get(target.de, 'its default')} icons by default")

        return totals, self.store.finalize(session)

    def _print_pre_summary(self) -> None:
        source, target = self.context.source, self.context.target
        print("\nMIGRATION SUMMARY")
        print(f"  Current image: {source.image}")
        print(f"  Current DE:    {source.de.upper()}")
        print(f"  Target image:  {target.image}")
        print(f"  Target DE:     {target.de.upper()}")
        print("")
        print("  This will:")
        print(f"    - Back up your {source.de.upper()} configuration files")
        print("    - Reset GTK settings and the icon theme pointer (moved into the backup)")
        print("    - Generate rollback and restore scripts")
        print("")
        print("  Applications, documents and home directory data are preserved.")

    # Post-switch phase

    def run_post(self, backup_dir: Optional[str] = None, skip_flatpaks: bool = False,
                 flatpak_action: Optional[str] = None) -> Optional[OperationSummary]:
        """Clean up and reconcile flatpaks after booting the new image

        Returns:
            Phase totals, or None if the user cancelled
        """
        current_de = self.context.target_de
        if current_de not in DESKTOP_MAP.values():
            current_de = detect_current_de()
        if not current_de:
            raise MigrationError("Could not detect the current desktop environment")

        session = self._find_session(backup_dir, required=False)
        if session:
            print(f"Using backup: {session.root}")
        else:
            logger.warning("No backup session found, continuing without one")
            print("Warning: no backup found; continuing without migration metadata")

        previous_de = self.detect_previous_de(session, current_de)
        print(f"\nPrevious DE: {previous_de.upper()}")
        print(f"Current DE:  {current_de.upper()}")

        if previous_de == current_de:
            logger.warning(f"Previous and current desktop are both {current_de}")
            print("Warning: the previous and current desktop are the same. Did the rebase complete?")
            if not confirm("Continue anyway?", default=False, assume_yes=self.context.assume_yes):
                print("Migration cancelled.")
                return None

        totals = OperationSummary(label="post-migration")
        totals.add(self.cleanup_previous_de(previous_de, current_de))

        if skip_flatpaks:
            print("\nSkipping flatpak reconciliation (--skip-flatpaks)")
        else:
            totals.add(self.reconcile_flatpaks(previous_de, current_de, flatpak_action))

        print(f"\nPost-migration complete: {totals}")
        if session:
            print("\nTo migrate additional settings (fonts, wallpaper, themes):")
            print(f"  {os.path.join(session.root, SETTINGS_SCRIPT_NAME)}")
        print("\nLog out and back in for all changes to take effect.")
        return totals

    def detect_previous_de(self, session: Optional[BackupSession], current_de: str) -> str:
        """Desktop used before the switch

        Taken from the session metadata, then from leftover config markers
        in the home directory, otherwise assumed to be the other desktop.
        """
        if session:
            recorded = session.read_metadata("previous-de")
            if recorded in DESKTOP_MAP.values():
                return recorded

        for de, markers in DE_MARKERS.items():
            if de == current_de:
                continue
            for marker in markers:
                if os.path.lexists(os.path.join(str(self.context.home), marker)):
                    logger.info(f"Found {de} leftovers: {marker}")
                    return de

        assumed = opposite_de(current_de)
        logger.warning(f"Could not determine previous desktop, assuming {assumed}")
        return assumed

    def cleanup_previous_de(self, previous_de: str, current_de: str) -> OperationSummary:
        """Move conflicting leftovers of the previous desktop into a cleanup session"""
        print(f"\nCleaning up {previous_de.upper()} configuration leftovers...")
        home = str(self.context.home)
        paths = [relative for relative in POST_CLEANUP_PATHS.get(previous_de, [])
                 if os.path.lexists(os.path.join(home, relative)) and not is_preserved_path(relative)]
        if not paths:
            print("  Nothing to clean up")
            return OperationSummary(label="cleanup")

        context = self.context.with_environments(
            EnvironmentDescriptor.for_de(previous_de), EnvironmentDescriptor.for_de(current_de))
        store = ArchiveStore(context, self.runner, self.base_dir)
        session = store.begin_session(CLEANUP_LABEL)
        session_log = attach_session_log(session)
        try:
            summary = store.archive_all(session, paths, ArchiveMode.MOVE, group=previous_de)
            store.finalize(session, entry_points=False)
        finally:
            detach_session_log(session_log)
        summary.label = "cleanup"
        print(f"  {summary}")
        print(f"  Archived to: {session.root}")
        return summary

    def reconcile_flatpaks(self, previous_de: str, current_de: str,
                           action: Optional[str] = None) -> OperationSummary:
        """Swap desktop-bundled flatpaks of the previous desktop for the current one's"""
        print("\nFLATPAK RECONCILIATION")
        summary = OperationSummary(label="flatpaks")

        manager = FlatpakPackageManager(self.runner, remote=config.get("flatpak_remote", "flathub"))
        if not manager.available:
            logger.warning("flatpak is not installed, skipping flatpak reconciliation")
            print("  flatpak is not installed; skipping")
            return summary
        if not manager.has_remote():
            logger.warning(f"Flatpak remote {manager.remote} is not configured, skipping")
            print(f"  Flatpak remote '{manager.remote}' is not configured; skipping")
            print(f"  Add it with: flatpak remote-add --if-not-exists {manager.remote} "
                  "https://dl.flathub.org/repo/flathub.flatpakrepo")
            return summary

        engine = CatalogDiffEngine(CatalogFetcher(), manager)
        try:
            plan = engine.plan(previous_de, current_de, manager.installed_names())
        except FetchFailureError as e:
            logger.error(f"Flatpak reconciliation aborted: {e}")
            print(f"  Could not load the app catalogs: {e}")
            print("  No flatpak changes were made.")
            summary.errors += 1
            return summary

        self.print_plan(plan)
        if plan.empty:
            print("  Flatpaks are already in place")
            return summary

        if action is None:
            if self.context.assume_yes:
                action = "swap"
            else:
                action = choose("\nWhat should be done with these flatpaks?", {
                    "swap": f"Swap: remove {previous_de.upper()} apps and install {current_de.upper()} apps",
                    "install": f"Install {current_de.upper()} apps only",
                    "remove": f"Remove {previous_de.upper()} apps only",
                    "skip": "Skip flatpak changes",
                }, default="skip")
        if action not in ACTIONS:
            raise MigrationError(f"Unknown flatpak action: {action}")

        result = engine.execute(plan, action)
        print(f"  {result}")
        return summary.add(result)

    @staticmethod
    def print_plan(plan: ReconciliationPlan) -> None:
        if plan.stale:
            print("  Note: using a cached catalog that could not be refreshed")
        print(f"  {plan.previous_de.upper()} apps to remove: {len(plan.to_remove)}")
        for app_id in sorted(plan.to_remove):
            print(f"    - {app_id}")
        print(f"  {plan.target_de.upper()} apps to install: {len(plan.to_install)}")
        for app_id in sorted(plan.to_install):
            print(f"    + {app_id}")
        if plan.already_present:
            print(f"  Already installed: {len(plan.already_present)}")

    # Restore

    def restore(self, backup_dir: str) -> OperationSummary:
        """Put archived configs back without overwriting anything

        Raises:
            BackupNotFoundError: if the backup directory does not exist
        """
        session = self.store.open_session(backup_dir)
        script = os.path.join(session.root, RESTORE_SCRIPT_NAME)

        if self.runner.dry_run or not os.path.isfile(script) or not self.runner.has_tool("bash"):
            return self.store.restore(session)

        print(f"Running restore script: {script}")
        result = self.runner.run(["bash", script], timeout=RESTORE_TIMEOUT)
        print(result.stdout, end="")
        summary = OperationSummary(label="restore")
        match = RESTORE_TOTALS_RE.search(result.stdout or "")
        if match:
            summary.migrated, summary.skipped, summary.errors = (int(value) for value in match.groups())
        if result.returncode != 0:
            logger.error(f"Restore script failed: {result.stderr.strip()}")
            summary.errors = max(summary.errors, 1)
        return summary

    # Settings-replay phase

    def preview_settings(self, session: BackupSession) -> List[str]:
        """Print the categories found in a session, returns the available ids"""
        print(f"\nBackup directory: {session.root}\n")
        print("Available settings:")
        available = []
        for category in CATEGORIES:
            count = sum(1 for relative in category.paths if session.find_archived(relative))
            if count:
                available.append(category.id)
                print(f"  [x] {category.id:<14} {category.label} - {count} items")
            else:
                print(f"  [ ] {category.id:<14} {category.label} - not found in backup")
        return available

    def run_settings(self, backup_dir: Optional[str] = None, categories: Optional[List[str]] = None,
                     select_all: bool = False) -> Optional[OperationSummary]:
        """Replay selected settings categories from a backup

        Returns:
            Totals over all categories, or None if nothing was migrated
        """
        session = self._find_session(backup_dir, required=True)

        print("\nEXPERIMENTAL: settings are translated between desktops on a best-effort basis.")
        print("Some settings may not apply or may look different on the new desktop.")

        available = self.preview_settings(session)
        selected = self._select_categories(available, categories, select_all)
        if not selected:
            print("No settings selected.")
            return None

        print("\nSelected settings:")
        for category_id in selected:
            print(f"  - {get_category(category_id).label}")
        if not confirm("Proceed with migration?", default=True, assume_yes=self.context.assume_yes):
            print("Migration cancelled.")
            return None

        context = self.context
        previous = session.read_metadata("previous-de")
        if previous in DESKTOP_MAP.values() and not context.source:
            context = context.with_environments(EnvironmentDescriptor.for_de(previous), context.target)
        applier = SettingsApplier(context, self.runner)
        extractor = SettingsExtractor(self.runner, timeout=config.get("tool_timeout", 30))

        totals = OperationSummary(label="settings")
        for category_id in selected:
            category = get_category(category_id)
            print(f"\nMigrating {category.label}...")
            if category.strategy == Strategy.DCONF and not self.runner.has_tool("dconf"):
                print("  dconf is not installed; install it with: sudo rpm-ostree install dconf")
            summary = applier.migrate_category(category, session, extractor)
            print(f"  {summary}")
            totals.add(summary)

        print(f"\nSettings migration complete: {totals}")
        print("You may need to log out and back in for some changes to take effect.")
        return totals

    def _select_categories(self, available: List[str], requested: Optional[List[str]],
                           select_all: bool) -> List[str]:
        if select_all:
            return list(available)

        if not requested:
            if not available:
                return []
            print("\nEnter categories to migrate (space-separated, e.g., 'fonts keychain wallpaper'):")
            try:
                requested = input("> ").split()
            except EOFError:
                return []

        selected = []
        for name in requested:
            if not get_category(name):
                logger.warning(f"Unknown category: {name}")
                print(f"Warning: unknown category '{name}' ignored")
            elif name not in available:
                print(f"Warning: '{name}' not found in backup, ignored")
            elif name not in selected:
                selected.append(name)
        return selected

    def _find_session(self, backup_dir: Optional[str], required: bool) -> Optional[BackupSession]:
        if backup_dir:
            return self.store.open_session(backup_dir)
        latest = ArchiveStore.latest_session(self.base_dir, self.label)
        if latest:
            return self.store.open_session(latest)
        if required:
            raise BackupNotFoundError(f"No backup found under {self.base_dir}; use --backup-dir")
        return None
