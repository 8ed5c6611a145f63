#!/usr/bin/env python3
"""
Tests for catalog classification and flatpak reconciliation
"""

import unittest
import tempfile
from unittest import mock

import httpx

from desktop_migrator.catalog.diff import (
    CatalogDiffEngine, ReconciliationPlan, classify, build_plan, is_de_specific,
)
from desktop_migrator.catalog.fetcher import ApplicationCatalog, CatalogFetcher
from desktop_migrator.errors import MigrationError, FetchFailureError
from desktop_migrator.package_managers.base import PackageManager, Package
from desktop_migrator.utils.runner import Runner

BLUEFIN = ApplicationCatalog("bluefin", [
    "org.gnome.Calculator",
    "org.gnome.Loupe",
    "org.gnome.Weather",
    "org.gtk.Gtk3theme.adw-gtk3",
    "org.mozilla.firefox",
])

AURORA = ApplicationCatalog("aurora", [
    "org.gnome.Loupe",
    "org.gtk.Gtk3theme.Breeze",
    "org.kde.kcalc",
    "org.kde.okular",
    "org.mozilla.firefox",
])


class FakeManager(PackageManager):
    """In-memory package manager recording every change"""

    def __init__(self, installed, failing=()):
        self.installed = set(installed)
        self.failing = set(failing)
        self.calls = []
        super().__init__('flatpak', Runner())

    def _check_available(self):
        return True

    def list_installed_packages(self):
        return [Package(name, 'flatpak') for name in sorted(self.installed)]

    def install_package(self, package_name):
        self.calls.append(('install', package_name))
        if package_name in self.failing:
            return False
        self.installed.add(package_name)
        return True

    def remove_package(self, package_name):
        self.calls.append(('remove', package_name))
        if package_name in self.failing:
            return False
        self.installed.discard(package_name)
        return True


class TestClassify(unittest.TestCase):
    """Test splitting catalogs per desktop"""

    def test_partition(self):
        """Every app is either shared or desktop-specific, never both"""
        result = classify(BLUEFIN, "gnome")

        self.assertEqual(result.de_specific, {
            "org.gnome.Calculator", "org.gnome.Loupe", "org.gnome.Weather", "org.gtk.Gtk3theme.adw-gtk3",
        })
        self.assertEqual(result.shared, {"org.mozilla.firefox"})
        self.assertFalse(result.shared & result.de_specific)
        self.assertEqual(result.shared | result.de_specific, set(BLUEFIN.apps))

    def test_patterns_are_anchored(self):
        """Ids merely containing a desktop prefix are shared"""
        self.assertTrue(is_de_specific("org.kde.kcalc", "kde"))
        self.assertFalse(is_de_specific("com.example.org.kde.Tool", "kde"))
        self.assertFalse(is_de_specific("org.kde.kcalc", "gnome"))

    def test_unknown_desktop(self):
        """Classifying for an unknown desktop raises"""
        with self.assertRaises(MigrationError):
            classify(BLUEFIN, "xfce")


class TestBuildPlan(unittest.TestCase):
    """Test the reconciliation plan"""

    def setUp(self):
        self.installed = {
            "org.gnome.Calculator",
            "org.gnome.Loupe",
            "org.gnome.Evince",
            "org.mozilla.firefox",
            "org.kde.okular",
        }
        self.plan = build_plan("gnome", "kde", BLUEFIN, AURORA, self.installed)

    def test_plan_sets(self):
        """Installed previous-desktop apps go, missing target apps come"""
        self.assertEqual(self.plan.to_remove, {"org.gnome.Calculator"})
        self.assertEqual(self.plan.to_install, {"org.kde.kcalc", "org.gtk.Gtk3theme.Breeze"})
        self.assertEqual(self.plan.already_present, {"org.kde.okular"})

    def test_plan_sets_are_disjoint(self):
        """No app is both removed and installed"""
        self.assertFalse(self.plan.to_remove & self.plan.to_install)
        self.assertFalse(self.plan.to_install & self.plan.already_present)
        self.assertFalse(self.plan.to_remove & self.plan.already_present)

    def test_user_apps_untouched(self):
        """Apps outside the previous catalog or shipped by both stay"""
        self.assertNotIn("org.gnome.Evince", self.plan.to_remove)
        self.assertNotIn("org.gnome.Loupe", self.plan.to_remove)
        self.assertNotIn("org.mozilla.firefox", self.plan.to_remove)

    def test_stale_propagates(self):
        """A plan built from a stale catalog says so"""
        stale = ApplicationCatalog("aurora", list(AURORA.apps), stale=True)

        plan = build_plan("gnome", "kde", BLUEFIN, stale, set())

        self.assertTrue(plan.stale)


class TestExecute(unittest.TestCase):
    """Test carrying out a plan"""

    def make_plan(self):
        return ReconciliationPlan(
            previous_de="gnome",
            target_de="kde",
            to_remove={"org.gnome.Calculator", "org.gnome.Weather"},
            to_install={"org.kde.kcalc", "org.kde.okular"},
        )

    def test_swap_counts_failures(self):
        """A failed item is counted and the rest still run"""
        manager = FakeManager({"org.gnome.Calculator", "org.gnome.Weather"}, failing={"org.kde.okular"})
        engine = CatalogDiffEngine(mock.Mock(), manager)

        with mock.patch('builtins.print'):
            summary = engine.execute(self.make_plan(), "swap")

        self.assertEqual((summary.migrated, summary.skipped, summary.errors), (3, 0, 1))
        self.assertEqual(manager.calls, [
            ('remove', "org.gnome.Calculator"),
            ('remove', "org.gnome.Weather"),
            ('install', "org.kde.kcalc"),
            ('install', "org.kde.okular"),
        ])

    def test_install_only(self):
        """The install action leaves the previous desktop's apps"""
        manager = FakeManager({"org.gnome.Calculator", "org.kde.okular"})
        engine = CatalogDiffEngine(mock.Mock(), manager)

        with mock.patch('builtins.print'):
            summary = engine.execute(self.make_plan(), "install")

        self.assertEqual((summary.migrated, summary.skipped), (1, 1))
        self.assertEqual(manager.calls, [('install', "org.kde.kcalc")])
        self.assertIn("org.gnome.Calculator", manager.installed)

    def test_already_done_items_are_skipped(self):
        """Apps already gone or already present need no action"""
        manager = FakeManager({"org.kde.kcalc", "org.kde.okular"})
        engine = CatalogDiffEngine(mock.Mock(), manager)

        summary = engine.execute(self.make_plan(), "swap")

        self.assertEqual((summary.migrated, summary.skipped, summary.errors), (0, 4, 0))
        self.assertEqual(manager.calls, [])

    def test_skip_action(self):
        """Skipping counts every planned item and changes nothing"""
        manager = FakeManager(set())
        engine = CatalogDiffEngine(mock.Mock(), manager)

        summary = engine.execute(self.make_plan(), "skip")

        self.assertEqual(summary.skipped, 4)
        self.assertEqual(manager.calls, [])

    def test_unknown_action(self):
        """Only the known actions are accepted"""
        engine = CatalogDiffEngine(mock.Mock(), FakeManager(set()))

        with self.assertRaises(MigrationError):
            engine.execute(self.make_plan(), "upgrade")


class TestPlanFetch(unittest.TestCase):
    """Test planning against the fetcher"""

    def test_plan_fails_closed(self):
        """No catalog and no cache means no plan and no changes"""
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        with tempfile.TemporaryDirectory() as cache_dir:
            fetcher = CatalogFetcher(cache_dir=cache_dir, expiry_seconds=3600,
                                     transport=httpx.MockTransport(handler))
            manager = FakeManager({"org.gnome.Calculator"})
            engine = CatalogDiffEngine(fetcher, manager)

            with self.assertRaises(FetchFailureError):
                engine.plan("gnome", "kde", manager.installed_names())

        self.assertEqual(manager.calls, [])

    def test_plan_from_catalogs(self):
        """Both desktops' catalogs feed the plan"""
        fetcher = mock.Mock()
        fetcher.fetch_for_de.side_effect = lambda de: BLUEFIN if de == "gnome" else AURORA
        engine = CatalogDiffEngine(fetcher, FakeManager(set()))

        plan = engine.plan("gnome", "kde", {"org.gnome.Weather"})

        self.assertEqual(plan.to_remove, {"org.gnome.Weather"})
        self.assertEqual(len(plan.to_install), 3)


if __name__ == '__main__':
    unittest.main()
