#!/usr/bin/env python3
"""
Classifies catalog apps per desktop and reconciles them with the local install

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

import re
import logging
from dataclasses import dataclass, field
from typing import Iterable, Set

from ..errors import MigrationError
from ..package_managers.base import PackageManager
from ..utils.progress import ProgressTracker, OperationType
from ..utils.summary import OperationSummary
from .fetcher import ApplicationCatalog, CatalogFetcher

logger = logging.getLogger(__name__)

# Apps bundled because of the desktop rather than for the user
DE_APP_PATTERNS = {
    "gnome": re.compile(r'org\.gnome\.|org\.gtk\.Gtk3theme\.adw'),
    "kde": re.compile(r'org\.kde\.|org\.gtk\.Gtk3theme\.Breeze'),
}

ACTIONS = ("swap", "install", "remove", "skip")


@dataclass
class Classification:
    shared: Set[str] = field(default_factory=set)
    de_specific: Set[str] = field(default_factory=set)


@dataclass
class ReconciliationPlan:
    previous_de: str
    target_de: str
    to_remove: Set[str] = field(default_factory=set)
    to_install: Set[str] = field(default_factory=set)
    already_present: Set[str] = field(default_factory=set)
    stale: bool = False

    @property
    def empty(self) -> bool:
        return not self.to_remove and not self.to_install


def is_de_specific(app_id: str, de: str) -> bool:
    pattern = DE_APP_PATTERNS.get(de)
    if pattern is None:
        raise MigrationError(f"Unknown desktop environment: {de}")
    return pattern.match(app_id) is not None


def classify(catalog: ApplicationCatalog, de: str) -> Classification:
    """Split a catalog into shared and desktop-specific apps

    Every app of the catalog lands in exactly one of the two sets.
    """
    result = Classification()
    for app_id in catalog.apps:
        if is_de_specific(app_id, de):
            result.de_specific.add(app_id)
        else:
            result.shared.add(app_id)
    return result


def build_plan(previous_de: str, target_de: str, previous_catalog: ApplicationCatalog,
               target_catalog: ApplicationCatalog, local_installed: Iterable[str]) -> ReconciliationPlan:
    """Compute the install/remove delta between two desktops' catalogs"""
    installed = set(local_installed)
    previous = classify(previous_catalog, previous_de)
    target = classify(target_catalog, target_de)

    # Anything the new desktop ships itself, themes included, stays
    keep = set(target_catalog.apps)

    return ReconciliationPlan(
        previous_de=previous_de,
        target_de=target_de,
        to_remove=(previous.de_specific & installed) - keep,
        to_install=target.de_specific - installed,
        already_present=target.de_specific & installed,
        stale=previous_catalog.stale or target_catalog.stale,
    )


class CatalogDiffEngine:
    """Plans and executes flatpak reconciliation across a desktop switch"""

    def __init__(self, fetcher: CatalogFetcher, manager: PackageManager):
        self.fetcher = fetcher
        self.manager = manager

    def plan(self, previous_de: str, target_de: str, local_installed: Iterable[str]) -> ReconciliationPlan:
        """Fetch both catalogs and build the plan

        Raises:
            FetchFailureError: if a catalog is neither fetchable nor cached
        """
        previous_catalog = self.fetcher.fetch_for_de(previous_de)
        target_catalog = self.fetcher.fetch_for_de(target_de)
        plan = build_plan(previous_de, target_de, previous_catalog, target_catalog, local_installed)
        logger.info(f"Flatpak plan: {len(plan.to_remove)} to remove, {len(plan.to_install)} to install, "
                    f"{len(plan.already_present)} already present")
        return plan

    def execute(self, plan: ReconciliationPlan, action: str = "swap") -> OperationSummary:
        """Carry out the plan one app at a time

        A failed item is counted and the remaining items still run. Apps
        already in the wanted state are skipped.
        """
        if action not in ACTIONS:
            raise MigrationError(f"Unknown flatpak action: {action}")

        summary = OperationSummary(label="flatpaks")
        if action == "skip":
            summary.skipped += len(plan.to_remove) + len(plan.to_install)
            return summary

        installed = self.manager.installed_names()

        if action in ("swap", "remove"):
            summary.add(self._run_items(sorted(plan.to_remove), installed, remove=True))
        if action in ("swap", "install"):
            summary.add(self._run_items(sorted(plan.to_install), installed, remove=False))
        return summary

    def _run_items(self, apps, installed: Set[str], remove: bool) -> OperationSummary:
        summary = OperationSummary()
        verb = "Removing" if remove else "Installing"
        operation = OperationType.FLATPAK_REMOVE if remove else OperationType.FLATPAK_INSTALL

        with ProgressTracker(operation, total=len(apps), desc=f"{verb} flatpaks", unit="apps") as progress:
            for app_id in apps:
                if remove and app_id not in installed:
                    logger.debug(f"Flatpak not installed: {app_id}")
                    summary.skipped += 1
                elif not remove and app_id in installed:
                    logger.debug(f"Flatpak already installed: {app_id}")
                    summary.skipped += 1
                else:
                    ok = self.manager.remove_package(app_id) if remove else self.manager.install_package(app_id)
                    if ok:
                        print(f"  {'Removed' if remove else 'Installed'}: {app_id}")
                        summary.migrated += 1
                    else:
                        print(f"  Failed to {'remove' if remove else 'install'}: {app_id}")
                        summary.errors += 1
                progress.update(1, status=app_id)
        return summary
