#!/usr/bin/env python3
"""
Tests for the command-line interface
"""

import unittest
from unittest import mock

from desktop_migrator.__main__ import setup_argparse, build_context, main


class TestArguments(unittest.TestCase):
    """Test argument parsing and the run context built from it"""

    def test_pre_derives_target(self):
        """The target image keeps the source's variant and tag"""
        args = setup_argparse().parse_args(
            ["pre", "--source-image", "ghcr.io/ublue-os/bluefin-nvidia-open:gts", "--dry-run", "-y"])

        context = build_context(args)

        self.assertEqual(context.source_de, "gnome")
        self.assertEqual(context.target.image, "ghcr.io/ublue-os/aurora-nvidia-open:gts")
        self.assertEqual(context.target_de, "kde")
        self.assertTrue(context.dry_run)
        self.assertTrue(context.assume_yes)

    def test_settings_options(self):
        """Categories are repeatable"""
        args = setup_argparse().parse_args(["settings", "--category", "fonts", "--category", "wallpaper"])

        self.assertEqual(args.category, ["fonts", "wallpaper"])
        self.assertFalse(args.select_all)

    def test_flatpak_action_choices(self):
        """Unknown flatpak actions are rejected by the parser"""
        with self.assertRaises(SystemExit), mock.patch('sys.stderr'):
            setup_argparse().parse_args(["post", "--flatpak-action", "upgrade"])

    @mock.patch('desktop_migrator.__main__.detect_current_de', return_value="kde")
    def test_post_context(self, _):
        """The post phase runs on the detected desktop"""
        context = build_context(setup_argparse().parse_args(["post", "--skip-flatpaks"]))

        self.assertIsNone(context.source)
        self.assertEqual(context.target_de, "kde")


@mock.patch('desktop_migrator.__main__.configure_logging', return_value="/dev/null")
@mock.patch('builtins.print')
class TestMain(unittest.TestCase):
    """Test exit codes"""

    def test_no_command(self, *_):
        """Without a command the help is shown"""
        with mock.patch('sys.stdout'):
            self.assertEqual(main([]), 1)

    def test_unknown_image(self, *_):
        """An image of neither family is an error"""
        self.assertEqual(main(["pre", "--source-image", "quay.io/fedora/fedora-silverblue:41", "-y"]), 1)

    def test_same_desktop(self, *_):
        """Switching to the same desktop is an error"""
        self.assertEqual(main(["pre", "--source-image", "ghcr.io/ublue-os/bluefin:stable",
                               "--target-image", "ghcr.io/ublue-os/bluefin-dx:stable", "-y"]), 1)

    def test_restore_needs_directory(self, *_):
        """restore without a directory fails"""
        self.assertEqual(main(["restore"]), 1)

    def test_keyboard_interrupt(self, *_):
        """Ctrl-C is a clean exit"""
        with mock.patch('desktop_migrator.__main__.handle_restore', side_effect=KeyboardInterrupt):
            self.assertEqual(main(["restore", "/nonexistent"]), 0)


if __name__ == '__main__':
    unittest.main()
