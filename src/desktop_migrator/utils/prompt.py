#!/usr/bin/env python3
"""
Interactive confirmation helpers

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

import logging

logger = logging.getLogger(__name__)


def confirm(prompt: str, default: bool = False, assume_yes: bool = False) -> bool:
    """Ask a yes/no question

    Args:
        prompt: Question to show
        default: Answer used when the user just presses Enter
        assume_yes: Skip the question and answer yes (--yes)
    """
    if assume_yes:
        return True

    choices = "[Y/n]" if default else "[y/N]"
    try:
        response = input(f"{prompt} {choices}: ").strip().lower()
    except EOFError:
        return default

    if response in ('y', 'yes'):
        return True
    if response in ('n', 'no'):
        return False
    if response == "":
        return default
    return False


def acknowledge_unsupported(assume_yes: bool = False) -> bool:
    """Require the user to type 'yes' before an unsupported operation"""
    print("")
    print("WARNING: UNSUPPORTED TOOL")
    print("")
    print("This tool is not affiliated with, endorsed by, or supported by either the")
    print("Bluefin or Aurora projects. It is a community-made utility and comes with")
    print("no guarantees.")
    print("")
    if assume_yes:
        logger.info("Unsupported tool warning acknowledged by --yes")
        return True

    while True:
        try:
            response = input('Type "yes" to continue: ').strip().lower()
        except EOFError:
            return False
        if response == "yes":
            logger.info("Acknowledged unsupported tool warning")
            return True
        if response in ('n', 'no', 'q', 'quit'):
            return False
        print("You must type 'yes' to acknowledge this warning.")


def choose(prompt: str, options: dict, default: str) -> str:
    """Pick one key of a numbered menu

    Args:
        prompt: Heading shown above the options
        options: Mapping of key -> description, shown in insertion order
        default: Key returned for an empty or invalid answer
    """
    keys = list(options)
    print(prompt)
    for index, key in enumerate(keys, 1):
        print(f"  {index}. {options[key]}")
    try:
        response = input(f"Select action [1-{len(keys)}]: ").strip()
    except EOFError:
        return default

    if response.isdigit() and 1 <= int(response) <= len(keys):
        return keys[int(response) - 1]
    if response in options:
        return response
    if response:
        print("Invalid selection, using default.")
    return default
