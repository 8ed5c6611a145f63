#!/usr/bin/env python3
"""
Tests for the catalog fetcher and its cache
"""

import os
import time
import unittest
import tempfile

import httpx

from desktop_migrator.catalog.fetcher import CatalogFetcher, parse_brewfile, cache_file_name
from desktop_migrator.errors import FetchFailureError

URL = "https://example.com/system-flatpaks.Brewfile"

BREWFILE = """# System flatpaks
brew "gh"
flatpak "org.mozilla.firefox"
flatpak "org.gnome.Calculator"
  flatpak "org.indented.Ignored"
flatpak "org.gnome.Calculator"
cask "something"
flatpak "io.github.flattool.Warehouse"
"""


def failing_transport(calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request.url)
        raise httpx.ConnectError("network unreachable", request=request)
    return httpx.MockTransport(handler)


def serving_transport(content, status_code=200, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request.url)
        return httpx.Response(status_code, text=content)
    return httpx.MockTransport(handler)


class TestParsing(unittest.TestCase):
    """Test Brewfile parsing"""

    def test_parse_brewfile(self):
        """Only flatpak lines count, sorted and without duplicates"""
        self.assertEqual(parse_brewfile(BREWFILE), [
            "io.github.flattool.Warehouse",
            "org.gnome.Calculator",
            "org.mozilla.firefox",
        ])

    def test_cache_file_name(self):
        """Cache names match the shell's sha256 of the url line"""
        self.assertEqual(cache_file_name(URL),
                         "a1efd0ffb39cf4b1a5aab632eda31fc7223ff0b040e95bcb709001701a9d7f7b.brewfile")


class TestFetch(unittest.TestCase):
    """Test fetching with a cache directory"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.cache_dir = os.path.join(self.tmp.name, "cache")

    def fetcher(self, transport, expiry_seconds=3600):
        return CatalogFetcher(cache_dir=self.cache_dir, expiry_seconds=expiry_seconds,
                              timeout=5, transport=transport)

    def write_cache(self, content, age_seconds=0):
        fetcher = self.fetcher(None)
        os.makedirs(self.cache_dir, exist_ok=True)
        path = fetcher.cache_path(URL)
        with open(path, 'w') as f:
            f.write(content)
        stamp = time.time() - age_seconds
        os.utime(path, (stamp, stamp))
        return path

    def test_download_writes_cache(self):
        """A download is parsed and cached"""
        catalog = self.fetcher(serving_transport(BREWFILE)).fetch(URL)

        self.assertEqual(len(catalog.apps), 3)
        self.assertFalse(catalog.stale)
        self.assertFalse(catalog.from_cache)
        with open(os.path.join(self.cache_dir, cache_file_name(URL))) as f:
            self.assertEqual(f.read(), BREWFILE)

    def test_fresh_cache_skips_network(self):
        """A cache younger than the expiry is used without a request"""
        self.write_cache('flatpak "org.kde.kcalc"\n', age_seconds=60)
        calls = []

        catalog = self.fetcher(failing_transport(calls)).fetch(URL)

        self.assertEqual(calls, [])
        self.assertEqual(catalog.apps, ["org.kde.kcalc"])
        self.assertTrue(catalog.from_cache)
        self.assertFalse(catalog.stale)

    def test_expired_cache_is_refreshed(self):
        """An old cache is replaced when the download works"""
        path = self.write_cache('flatpak "org.kde.kcalc"\n', age_seconds=7200)

        catalog = self.fetcher(serving_transport(BREWFILE)).fetch(URL)

        self.assertFalse(catalog.stale)
        self.assertIn("org.mozilla.firefox", catalog.apps)
        with open(path) as f:
            self.assertEqual(f.read(), BREWFILE)

    def test_stale_cache_on_network_failure(self):
        """An old cache is used and marked stale when the download fails"""
        self.write_cache('flatpak "org.kde.kcalc"\n', age_seconds=7200)
        calls = []

        catalog = self.fetcher(failing_transport(calls)).fetch(URL)

        self.assertEqual(len(calls), 1)
        self.assertTrue(catalog.stale)
        self.assertEqual(catalog.apps, ["org.kde.kcalc"])

    def test_no_cache_fails_closed(self):
        """Without a cache a failed download raises"""
        with self.assertRaises(FetchFailureError):
            self.fetcher(failing_transport()).fetch(URL)
        self.assertFalse(os.path.exists(os.path.join(self.cache_dir, cache_file_name(URL))))

    def test_http_error_status_fails_closed(self):
        """An error status is a failed download"""
        with self.assertRaises(FetchFailureError):
            self.fetcher(serving_transport("not found", status_code=404)).fetch(URL)

    def test_unknown_desktop(self):
        """A desktop without a catalog url cannot be fetched"""
        with self.assertRaises(FetchFailureError):
            self.fetcher(failing_transport()).fetch_for_de("xfce")


if __name__ == '__main__':
    unittest.main()
