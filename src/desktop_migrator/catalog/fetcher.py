#!/usr/bin/env python3
"""
Fetches and caches the upstream flatpak catalogs (Brewfiles)

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
import time
import hashlib
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from ..errors import FetchFailureError
from ..utils.config import config

logger = logging.getLogger(__name__)

FLATPAK_LINE_RE = re.compile(r'^flatpak "([^"]+)"')


@dataclass
class ApplicationCatalog:
    """Application ids declared by one upstream catalog"""

    url: str
    apps: List[str] = field(default_factory=list)
    fetched_at: float = 0.0
    stale: bool = False
    from_cache: bool = False


def parse_brewfile(content: str) -> List[str]:
    """Sorted, unique flatpak ids declared by a Brewfile"""
    apps = set()
    for line in content.splitlines():
        match = FLATPAK_LINE_RE.match(line)
        if match:
            apps.add(match.group(1))
    return sorted(apps)


def cache_file_name(url: str) -> str:
    # Same name as `echo "$url" | sha256sum` so existing caches are reused
    return hashlib.sha256(f"{url}\n".encode("utf-8")).hexdigest() + ".brewfile"


class CatalogFetcher:
    """Fetch-or-reuse access to catalogs, with a time-based file cache"""

    def __init__(self, cache_dir: Optional[str] = None, expiry_seconds: Optional[int] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.cache_dir = cache_dir or config.get_cache_dir()
        self.expiry_seconds = expiry_seconds if expiry_seconds is not None else config.get_cache_expiry_seconds()
        self.timeout = timeout or config.get("fetch_timeout", 30)
        self.transport = transport

    def cache_path(self, url: str) -> str:
        return os.path.join(self.cache_dir, cache_file_name(url))

    def _read_cache(self, path: str) -> str:
        with open(path, 'r') as f:
            return f.read()

    def _download(self, url: str) -> str:
        with httpx.Client(timeout=self.timeout, follow_redirects=True, transport=self.transport) as client:
            response = client.get(url)
            response.raise_for_status()
            return response.text

    def fetch(self, url: str) -> ApplicationCatalog:
        """Return the catalog at ``url``

        A cache younger than the expiry is used without touching the
        network. When a download fails an older cache is used and marked
        stale.

        Raises:
            FetchFailureError: if the download fails and no cache exists
        """
        path = self.cache_path(url)
        cached_at = os.path.getmtime(path) if os.path.isfile(path) else None

        if cached_at is not None and time.time() - cached_at < self.expiry_seconds:
            logger.debug(f"Using cached catalog: {path}")
            return ApplicationCatalog(url, parse_brewfile(self._read_cache(path)), cached_at, from_cache=True)

        logger.debug(f"Fetching catalog from: {url}")
        try:
            content = self._download(url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch catalog from {url}: {e}")
            if cached_at is None:
                raise FetchFailureError(f"Could not fetch {url} and no cached copy exists") from e
            age_hours = (time.time() - cached_at) / 3600
            logger.warning(f"Using stale cached catalog ({age_hours:.1f} hours old): {path}")
            print(f"Warning: could not refresh the app catalog, using a cached copy {age_hours:.0f} hours old")
            return ApplicationCatalog(url, parse_brewfile(self._read_cache(path)), cached_at,
                                      stale=True, from_cache=True)

        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(path, 'w') as f:
                f.write(content)
        except OSError as e:
            logger.warning(f"Could not write catalog cache {path}: {e}")

        return ApplicationCatalog(url, parse_brewfile(content), time.time())

    def fetch_for_de(self, de: str) -> ApplicationCatalog:
        """Catalog of the image family shipping a desktop

        Raises:
            FetchFailureError: if the desktop has no catalog or it cannot be fetched
        """
        url = config.get_catalog_url(de)
        if not url:
            raise FetchFailureError(f"No catalog configured for desktop: {de}")
        return self.fetch(url)
