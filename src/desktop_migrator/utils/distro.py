#!/usr/bin/env python3
"""
Image family and desktop environment detection utilities

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
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import distro

from ..errors import MigrationError

logger = logging.getLogger(__name__)

# Image family -> desktop environment
DESKTOP_MAP = {
    "bluefin": "gnome",
    "aurora": "kde",
}

# Checked in order, "-nvidia-open" must win over "-nvidia"
VARIANTS = ["dx", "nvidia-open", "nvidia", "asus"]

IMAGE_REGISTRY = "ghcr.io/ublue-os"


@dataclass(frozen=True)
class EnvironmentDescriptor:
    """One side of a migration: the image and the desktop it ships"""

    image: str
    family: str
    de: str
    variant: str = ""
    tag: str = "stable"

    @classmethod
    def from_image(cls, image: str) -> 'EnvironmentDescriptor':
        """Build a descriptor from an image reference such as
        ``ghcr.io/ublue-os/aurora-dx:stable``"""
        image = image.strip()
        family = family_for_image(image)
        if not family:
            raise MigrationError(f"Unknown image family: {image}")

        variant = ""
        for candidate in VARIANTS:
            if f"-{candidate}" in image:
                variant = candidate
                break

        name = image.rsplit("/", 1)[-1]
        tag = name.rsplit(":", 1)[1] if ":" in name else "stable"

        return cls(image=image, family=family, de=DESKTOP_MAP[family],
                   variant=variant, tag=tag or "stable")

    @classmethod
    def for_de(cls, de: str, image: str = "unknown") -> 'EnvironmentDescriptor':
        """Descriptor known only by its desktop, used when metadata is incomplete"""
        family = family_for_de(de)
        return cls(image=image, family=family, de=de)


def family_for_image(image: str) -> str:
    """Return the image family named in an image reference, or an empty string"""
    for family in DESKTOP_MAP:
        if family in image:
            return family
    return ""


def family_for_de(de: str) -> str:
    for family, family_de in DESKTOP_MAP.items():
        if family_de == de:
            return family
    return ""


def opposite_de(de: str) -> str:
    """The other desktop of the pair"""
    if de == "gnome":
        return "kde"
    if de == "kde":
        return "gnome"
    return ""


def build_target_image(family: str, variant: str = "", tag: str = "stable") -> str:
    """Compose the image reference for a family keeping the current variant and tag"""
    image = f"{IMAGE_REGISTRY}/{family}"
    if variant:
        image = f"{image}-{variant}"
    if tag:
        image = f"{image}:{tag}"
    return image


def get_host_info() -> Dict[str, str]:
    """Describe the running host for the backup manifest"""
    return {
        'id': distro.id(),
        'name': distro.name(),
        'version': distro.version(),
        'variant': distro.os_release_attr('variant_id'),
    }


def detect_current_de() -> Optional[str]:
    """Detect the desktop environment of the running session

    The session environment variables are checked first; the os-release
    identity of the booted image is the fallback.
    """
    desktop = os.environ.get('XDG_CURRENT_DESKTOP', '').lower()
    session = os.environ.get('DESKTOP_SESSION', '').lower()

    if "gnome" in desktop or "gnome" in session:
        return "gnome"
    if "kde" in desktop or "plasma" in desktop or "kde" in session or "plasma" in session:
        return "kde"

    # Bluefin and Aurora brand their os-release
    identity = " ".join([
        distro.id(),
        distro.name(),
        distro.os_release_attr('variant_id'),
        distro.os_release_attr('image_name'),
    ]).lower()
    family = family_for_image(identity)
    if family:
        logger.info(f"Detected image family from os-release: {family}")
        return DESKTOP_MAP[family]

    logger.warning("Could not detect the current desktop environment")
    return None
