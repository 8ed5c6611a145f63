#!/usr/bin/env python3
"""
Home-relative configuration paths per desktop environment

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

from typing import List

# Passive backups taken before the switch (copied, never moved)
DE_CONFIG_PATHS = {
    "gnome": [
        ".config/dconf",
        ".local/share/dconf",
        ".config/gnome-session",
        ".config/gnome-shell",
        ".local/share/gnome-shell",
        ".config/nautilus",
        ".config/gtk-3.0",
        ".config/gtk-4.0",
        ".config/monitors.xml",
        ".config/autostart",
        ".local/share/keyrings",
        ".local/share/backgrounds",
        ".local/share/icons",
        ".icons",
    ],
    "kde": [
        ".config/kdeglobals",
        ".config/kdedefaults",
        ".config/kwinrc",
        ".config/kwin",
        ".config/plasmarc",
        ".config/plasmashellrc",
        ".config/plasma-org.kde.plasma.desktop-appletsrc",
        ".config/kglobalshortcutsrc",
        ".config/khotkeysrc",
        ".config/ksmserverrc",
        ".config/kcminputrc",
        ".config/kscreenlockerrc",
        ".config/kwalletrc",
        ".config/kwallet",
        ".local/share/kwallet",
        ".local/share/kwalletd",
        ".local/share/plasma",
        ".local/share/kwin",
        ".local/share/color-schemes",
        ".config/gtk-3.0",
        ".config/gtk-4.0",
        ".config/gtkrc",
        ".config/gtkrc-2.0",
        ".local/share/backgrounds",
        ".local/share/icons",
        ".icons",
    ],
}

# Actively reset before the switch (moved into the archive). Kept out of the
# passive lists above since a path is archived at most once per session.
GTK_RESET_PATHS = [
    ".config/gtk-3.0/settings.ini",
    ".config/gtk-4.0/settings.ini",
    ".gtkrc-2.0",
]

ICON_THEME_POINTER = ".local/share/icons/default/index.theme"

DEFAULT_ICON_THEMES = {
    "gnome": "Adwaita",
    "kde": "Breeze",
}

# Leftovers of the previous desktop cleaned up after the switch
POST_CLEANUP_PATHS = {
    "gnome": [
        ".config/gtk-3.0/settings.ini",
        ".config/gtk-4.0/settings.ini",
        ".gtkrc-2.0",
    ],
    "kde": [
        ".config/gtk-3.0",
        ".config/gtk-4.0",
        ".gtkrc-2.0",
        ".config/gtkrc",
        ".config/gtkrc-2.0",
    ],
}

# Markers left in the home directory by each desktop
DE_MARKERS = {
    "gnome": [".config/gnome-shell", ".config/nautilus"],
    "kde": [".config/plasma-org.kde.plasma.desktop-appletsrc", ".config/kwin"],
}

# User data that survives the switch untouched
PRESERVED_PATHS = [
    ".var/app",
    ".local/share/flatpak",
    ".local/share/containers",
    ".distrobox",
    ".homebrew",
    ".ssh",
    ".gitconfig",
    ".gitignore_global",
    ".bashrc",
    ".bash_profile",
    ".zshrc",
    ".zprofile",
    ".profile",
    ".mozilla",
    ".config/libreoffice",
    ".config/Code",
    ".config/VSCode",
    ".local/share/fonts",
    ".config/fontconfig",
]


def get_de_config_paths(de: str) -> List[str]:
    """Paths to archive for a desktop environment, empty for unknown desktops"""
    return list(DE_CONFIG_PATHS.get(de, []))


def is_preserved_path(relative_path: str) -> bool:
    """Check if a home-relative path overlaps the preserved user data"""
    for preserved in PRESERVED_PATHS:
        if relative_path == preserved or relative_path.startswith(preserved + "/") \
                or preserved.startswith(relative_path + "/"):
            return True
    return False
