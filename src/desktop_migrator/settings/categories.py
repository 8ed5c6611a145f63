#!/usr/bin/env python3
"""
Static table of migratable setting categories

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

from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


class Strategy(Enum):
    DCONF = "dconf"
    KEY_VALUE = "key-value"
    COPY = "copy"


@dataclass(frozen=True)
class KeySource:
    """Plain-text settings file and the keys read from it"""

    relative_path: str
    keys: Tuple[str, ...]
    section: str


@dataclass(frozen=True)
class SettingCategory:
    id: str
    label: str
    paths: Tuple[str, ...]
    strategy: Strategy
    required_tool: Optional[str] = None
    key_sources: Tuple[KeySource, ...] = ()
    asset_paths: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    warning: str = ""


DCONF_DATABASES = (
    ".config/dconf/user",
    ".local/share/dconf/user",
)

# section:key pairs of the dconf dump worth replaying on another desktop
DCONF_ALLOWED_KEYS = frozenset([
    "org/gnome/desktop/interface:font-name",
    "org/gnome/desktop/interface:monospace-font-name",
    "org/gnome/desktop/interface:gtk-theme",
    "org/gnome/desktop/interface:icon-theme",
    "org/gnome/desktop/interface:cursor-theme",
    "org/gnome/desktop/interface:cursor-size",
    "org/gnome/desktop/interface:color-scheme",
    "org/gnome/desktop/interface:show-symbolic-icons",
    "org/gnome/desktop/interface:clock-format",
    "org/gnome/desktop/interface:clock-show-weekday",
    "org/gnome/desktop/background:picture-uri",
    "org/gnome/desktop/background:picture-uri-dark",
    "org/gnome/desktop/background:picture-options",
])

# Prefixes matched by the raw scan when dconf cannot be used
DCONF_LEGACY_PREFIXES = tuple(
    "/" + entry.replace(":", "/") for entry in sorted(DCONF_ALLOWED_KEYS)
)

DEFAULT_THEMES = ("Adwaita", "breeze", "breeze-dark", "gnome", "hicolor", "oxygen", "yaru")

KDE_FONT_KEYS = ("font", "menuFont", "toolBarFont", "desktopFont", "fixed")
GTK_FONT_KEYS = ("gtk-font-name", "font-name")

WALLPAPER_PATHS = (".local/share/backgrounds", ".wallpaper", "Pictures/Wallpapers", "Pictures/Wallpaper")

CATEGORIES: Tuple[SettingCategory, ...] = (
    SettingCategory(
        id="keychain",
        label="Keychain/Wallet credentials",
        paths=(".local/share/keyrings", ".config/kwallet", ".local/share/kwallet", ".local/share/kwalletd"),
        strategy=Strategy.COPY,
        warning="GNOME Keyring and KWallet use different formats; copied files may not open on the other desktop.",
    ),
    SettingCategory(
        id="dconf",
        label="GNOME dconf settings (fonts, themes, wallpaper)",
        paths=DCONF_DATABASES,
        strategy=Strategy.DCONF,
        required_tool="dconf",
        asset_paths=WALLPAPER_PATHS,
    ),
    SettingCategory(
        id="fonts",
        label="Font preferences (default font selections)",
        paths=(".config/kdeglobals", ".config/gtk-3.0/settings.ini", ".config/gtk-4.0/settings.ini"),
        strategy=Strategy.KEY_VALUE,
        key_sources=(
            KeySource(".config/kdeglobals", KDE_FONT_KEYS, "General"),
            KeySource(".config/gtk-3.0/settings.ini", GTK_FONT_KEYS, "Settings"),
            KeySource(".config/gtk-4.0/settings.ini", GTK_FONT_KEYS, "Settings"),
        ),
    ),
    SettingCategory(
        id="wallpaper",
        label="Desktop wallpaper/background",
        paths=WALLPAPER_PATHS,
        strategy=Strategy.COPY,
    ),
    SettingCategory(
        id="color-schemes",
        label="Desktop color schemes",
        paths=(".local/share/color-schemes", ".color-schemes"),
        strategy=Strategy.COPY,
    ),
    SettingCategory(
        id="cursor-themes",
        label="Mouse cursor themes",
        paths=(".local/share/icons", ".icons"),
        strategy=Strategy.COPY,
        exclude=DEFAULT_THEMES + ("default",),
    ),
    SettingCategory(
        id="icon-themes",
        label="Icon themes (user-custom)",
        paths=(".local/share/icons",),
        strategy=Strategy.COPY,
        exclude=DEFAULT_THEMES + ("default",),
    ),
    SettingCategory(
        id="gtk-themes",
        label="GTK theme settings",
        paths=(".config/gtk-4.0", ".config/gtk-3.0", ".gtkrc-2.0", ".config/gtkrc", ".themes", ".local/share/themes"),
        strategy=Strategy.COPY,
    ),
)

CATEGORY_MAP: Dict[str, SettingCategory] = {category.id: category for category in CATEGORIES}


def get_category(category_id: str) -> Optional[SettingCategory]:
    return CATEGORY_MAP.get(category_id)


def category_ids() -> List[str]:
    return [category.id for category in CATEGORIES]
