#!/usr/bin/env python3
"""
Recovery script templates written into every backup session

The scripts resolve the session directory from their own location and carry
every path they need, so they keep working after the session directory is
copied elsewhere and without this package installed.

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

import shlex
from typing import List, Tuple

RESTORE_SCRIPT_NAME = "restore-configs.sh"
ROLLBACK_SCRIPT_NAME = "rollback.sh"
POST_SCRIPT_NAME = "migrate-post.sh"
SETTINGS_SCRIPT_NAME = "migrate-settings.sh"

CONSOLE_SCRIPT = "desktop-migrator"

_HEADER = """#!/bin/bash
set -euo pipefail

BACKUP_DIR="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"
"""

_RESTORE_BODY = """
restored=0
skipped=0
failed=0

restore_one() {
    local src="$1"
    local dest="$2"

    if [[ -e "$dest" || -L "$dest" ]]; then
        echo "  Skipping (exists): $dest"
        skipped=$((skipped + 1))
        return 0
    fi
    if mkdir -p "$(dirname "$dest")" && cp -a "$src" "$dest"; then
        echo "  Restored: $dest"
        restored=$((restored + 1))
    else
        echo "  Failed: $dest" >&2
        failed=$((failed + 1))
    fi
}

echo ""
echo "Restoring configuration files from $BACKUP_DIR"
echo ""

i=0
while [[ $i -lt ${#ENTRIES[@]} ]]; do
    archived="$BACKUP_DIR/configs/${ENTRIES[$i]}"
    original="${ENTRIES[$((i + 1))]}"
    i=$((i + 2))

    if [[ ! -e "$archived" && ! -L "$archived" ]]; then
        echo "  Missing from backup: $archived"
        continue
    fi

    if [[ -d "$archived" && ! -L "$archived" ]]; then
        while IFS= read -r -d '' item; do
            restore_one "$item" "$original/${item#"$archived/"}"
        done < <(find "$archived" \\( -type f -o -type l \\) -print0 2>/dev/null | sort -z)
    else
        restore_one "$archived" "$original"
    fi
done

echo ""
echo "Restore complete: $restored restored, $skipped skipped, $failed errors"
echo ""
"""

_ROLLBACK_BODY = """
echo ""
echo "================================================================"
echo "  MIGRATION ROLLBACK"
echo "================================================================"
echo ""
echo "  Previous image: $PREVIOUS_IMAGE"
echo "  Previous DE:    $PREVIOUS_DE"
echo "  Backup dir:     $BACKUP_DIR"
echo "  Created:        $CREATED"
echo ""

if [[ "${1:-}" != "-y" && "${1:-}" != "--yes" ]]; then
    echo "This script will:"
    echo "  1. Show commands to rebase back to the previous image"
    echo "  2. Point you at the configuration restore script"
    echo ""
    read -rp "Proceed with rollback? [y/N]: " confirm
    if [[ "$confirm" != "y" && "$confirm" != "Y" ]]; then
        echo "Rollback cancelled."
        exit 0
    fi
fi

echo ""
echo "STEP 1: REBASE BACK"
echo ""
echo "Run these commands to rebase back to your previous image:"
echo ""
echo "  sudo bootc switch $PREVIOUS_IMAGE"
echo "  sudo bootc switch --enforce-container-sigpolicy $PREVIOUS_IMAGE"
echo "  sudo reboot"
echo ""
echo "STEP 2: RESTORE CONFIGS"
echo ""
echo "After reboot, restore your configs with:"
echo "  $BACKUP_DIR/restore-configs.sh"
echo ""
"""

_WRAPPER_BODY = """
if ! command -v "$CONSOLE_SCRIPT" >/dev/null 2>&1; then
    echo "$CONSOLE_SCRIPT is not installed or not on PATH" >&2
    exit 1
fi

exec "$CONSOLE_SCRIPT" "$PHASE" --backup-dir "$BACKUP_DIR" "$@"
"""


def _assign(name: str, value: str) -> str:
    return f"{name}={shlex.quote(value)}\n"


def render_restore_script(entries: List[Tuple[str, str]]) -> str:
    """Restore script for the given entries

    Args:
        entries: (path below configs/, original absolute path) pairs in
            archival order
    """
    lines = ["ENTRIES=(\n"]
    for archived, original in entries:
        lines.append(f"    {shlex.quote(archived)} {shlex.quote(original)}\n")
    lines.append(")\n")
    return _HEADER + "".join(lines) + _RESTORE_BODY


def render_rollback_script(previous_image: str, previous_de: str, created: str) -> str:
    return (_HEADER
            + _assign("PREVIOUS_IMAGE", previous_image)
            + _assign("PREVIOUS_DE", previous_de)
            + _assign("CREATED", created)
            + _ROLLBACK_BODY)


def render_entry_point(phase: str) -> str:
    """Wrapper that re-enters the migrator for one phase against this session"""
    return (_HEADER
            + _assign("CONSOLE_SCRIPT", CONSOLE_SCRIPT)
            + _assign("PHASE", phase)
            + _WRAPPER_BODY)
