#!/usr/bin/env python3
"""
Tests for settings extraction
"""

import os
import unittest
import tempfile
import subprocess
from unittest import mock

from desktop_migrator.archive.store import BackupSession
from desktop_migrator.errors import NotFoundError, EmptyError
from desktop_migrator.settings.categories import get_category
from desktop_migrator.settings.extractor import (
    SettingsExtractor, ExtractionKind, StructuredOutcome, ExtractedSetting,
    parse_dconf_dump, match_legacy_keys, scan_printable_strings,
)
from desktop_migrator.utils.runner import Runner

DCONF_DUMP = """[org/gnome/desktop/interface]
font-name='Inter 11'
gtk-theme='adw-gtk3'
enable-animations=false

[org/gnome/desktop/background]
picture-uri='file:///home/user/Pictures/Wallpapers/lake.jpg'

[org/gnome/shell]
favorite-apps=['org.gnome.Nautilus.desktop']
"""

LEGACY_DATABASE = (b"GVariant\x00\x01\x02\xff"
                   b"/org/gnome/desktop/interface/font-name:'Cantarell 11'\x00\x03"
                   b"/org/gnome/desktop/interface/gtk-theme-variant:dark\x00")


class ExtractorTestCase(unittest.TestCase):
    """A temporary home tree to extract from"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = self.tmp.name
        self.extractor = SettingsExtractor(Runner())

    def write(self, relative, content):
        path = os.path.join(self.root, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        mode = 'wb' if isinstance(content, bytes) else 'w'
        with open(path, mode) as f:
            f.write(content)
        return path


class TestPlainText(ExtractorTestCase):
    """Test key extraction from plain-text settings files"""

    def test_only_exact_keys_match(self):
        """Lines that merely start like a font key are ignored"""
        self.write(".config/kdeglobals", "\n".join([
            "[General]",
            "font=Noto Sans,10,-1,5,50,0,0,0,0,0",
            "fontSize=10",
            "menuFontSize=9",
            "smallestReadableFont=Noto Sans,8,-1,5,50,0,0,0,0,0",
            "fixed=Hack,10,-1,5,50,0,0,0,0,0",
            "# toolBarFont=commented out",
        ]) + "\n")

        settings = self.extractor.extract(get_category("fonts"), self.root)

        self.assertEqual(settings, [
            ExtractedSetting("/.config/kdeglobals/font", "Noto Sans,10,-1,5,50,0,0,0,0,0", "fonts"),
            ExtractedSetting("/.config/kdeglobals/fixed", "Hack,10,-1,5,50,0,0,0,0,0", "fonts"),
        ])

    def test_gtk_font_keys(self):
        """GTK settings.ini font keys are extracted per file"""
        self.write(".config/gtk-3.0/settings.ini", "[Settings]\ngtk-font-name=Cantarell 11\ngtk-theme-name=Adwaita\n")
        self.write(".config/gtk-4.0/settings.ini", "[Settings]\r\ngtk-font-name=Inter 10\r\n")

        settings = self.extractor.extract(get_category("fonts"), self.root)

        self.assertEqual([str(s) for s in settings], [
            "/.config/gtk-3.0/settings.ini/gtk-font-name=Cantarell 11",
            "/.config/gtk-4.0/settings.ini/gtk-font-name=Inter 10",
        ])

    def test_duplicate_keys_keep_first(self):
        """A repeated key yields one setting holding the first value"""
        self.write(".config/kdeglobals", "font=First\nfont=Second\n")

        settings = self.extractor.extract(get_category("fonts"), self.root)

        self.assertEqual(len(settings), 1)
        self.assertEqual(settings[0].value, "First")

    def test_keys_under_other_sections_ignored(self):
        """Only the expected section and the lines above the first header are read"""
        self.write(".config/kdeglobals", "[WM]\nfont=Title Font,9\n[General]\nfont=Noto Sans,10\n")

        settings = self.extractor.extract(get_category("fonts"), self.root)

        self.assertEqual(settings, [ExtractedSetting("/.config/kdeglobals/font", "Noto Sans,10", "fonts")])

    def test_no_files_is_not_found(self):
        """Nothing to read raises NotFoundError"""
        with self.assertRaises(NotFoundError):
            self.extractor.extract(get_category("fonts"), self.root)

    def test_no_matching_keys_is_not_found(self):
        """Files without any of the keys raise NotFoundError"""
        self.write(".config/kdeglobals", "[General]\nColorScheme=BreezeDark\n")

        with self.assertRaises(NotFoundError):
            self.extractor.extract(get_category("fonts"), self.root)

    def test_reads_from_backup_session(self):
        """A backup session is searched through its archive groups"""
        session = BackupSession(id="test", root=self.root)
        self.write("configs/kde/.config/kdeglobals", "font=Noto Sans,11\n")

        settings = self.extractor.extract(get_category("fonts"), session)

        self.assertEqual(settings[0].scope_key, "/.config/kdeglobals/font")

    def test_copy_category_is_not_extracted(self):
        """Copied categories have nothing to extract"""
        with self.assertRaises(ValueError):
            self.extractor.extract(get_category("wallpaper"), self.root)


class TestStructured(ExtractorTestCase):
    """Test dconf database extraction"""

    def fake_dump(self, stdout="", returncode=0, calls=None):
        def run(cmd, **kwargs):
            if calls is not None:
                calls.append((cmd, kwargs))
                staged = os.path.join(kwargs['env']['XDG_CONFIG_HOME'], "dconf", "user")
                self.assertTrue(os.path.isfile(staged))
            return subprocess.CompletedProcess(cmd, returncode, stdout, "")
        return run

    @mock.patch('desktop_migrator.utils.runner.shutil.which', return_value="/usr/bin/dconf")
    def test_structured_dump(self, _):
        """The dump is parsed and filtered down to the allowed keys"""
        database = self.write(".config/dconf/user", b"GVariant\x00")
        calls = []

        with mock.patch('desktop_migrator.utils.runner.subprocess.run',
                        side_effect=self.fake_dump(DCONF_DUMP, calls=calls)):
            result = self.extractor.extract_structured(get_category("dconf"), self.root)

        self.assertEqual(result.kind, ExtractionKind.STRUCTURED)
        self.assertEqual(result.outcome, StructuredOutcome.OK)
        self.assertEqual(result.source_path, database)
        self.assertEqual([s.scope_key for s in result.settings], [
            "/org/gnome/desktop/interface/font-name",
            "/org/gnome/desktop/interface/gtk-theme",
            "/org/gnome/desktop/background/picture-uri",
        ])

        cmd, kwargs = calls[0]
        self.assertEqual(cmd, ["dconf", "dump", "/"])
        # The staging directory is gone once the dump is done
        self.assertFalse(os.path.exists(kwargs['env']['XDG_CONFIG_HOME']))

    @mock.patch('desktop_migrator.utils.runner.shutil.which', return_value=None)
    def test_fallback_without_dconf(self, _):
        """Without dconf the raw strings of the database are scanned"""
        self.write(".config/dconf/user", LEGACY_DATABASE)

        result = self.extractor.extract_structured(get_category("dconf"), self.root)

        self.assertEqual(result.kind, ExtractionKind.FALLBACK)
        self.assertEqual(result.outcome, StructuredOutcome.TOOL_MISSING)
        self.assertEqual(result.settings, [
            ExtractedSetting("/org/gnome/desktop/interface/font-name", "'Cantarell 11'", "dconf"),
        ])

    @mock.patch('desktop_migrator.utils.runner.shutil.which', return_value="/usr/bin/dconf")
    def test_no_allowed_keys_falls_back(self, _):
        """A dump without allowed keys is recorded and the scan still runs"""
        self.write(".local/share/dconf/user", LEGACY_DATABASE)

        with mock.patch('desktop_migrator.utils.runner.subprocess.run',
                        side_effect=self.fake_dump("[org/gnome/shell]\nwelcome-dialog-last-shown-version='45'\n")):
            result = self.extractor.extract_structured(get_category("dconf"), self.root)

        self.assertEqual(result.kind, ExtractionKind.FALLBACK)
        self.assertEqual(result.outcome, StructuredOutcome.NO_KEYS)
        self.assertEqual(len(result.settings), 1)

    @mock.patch('desktop_migrator.utils.runner.shutil.which', return_value="/usr/bin/dconf")
    def test_failed_dump_and_empty_scan(self, _):
        """Nothing from either method is reported as empty"""
        self.write(".config/dconf/user", b"\x00\x01\x02")

        with mock.patch('desktop_migrator.utils.runner.subprocess.run',
                        side_effect=self.fake_dump(returncode=1)):
            result = self.extractor.extract_structured(get_category("dconf"), self.root)
            with self.assertRaises(EmptyError):
                self.extractor.extract(get_category("dconf"), self.root)

        self.assertEqual(result.kind, ExtractionKind.UNAVAILABLE)
        self.assertEqual(result.outcome, StructuredOutcome.DUMP_FAILED)
        self.assertEqual(result.settings, [])

    def test_missing_database_is_not_found(self):
        """No database among the candidates raises NotFoundError"""
        with self.assertRaises(NotFoundError):
            self.extractor.extract_structured(get_category("dconf"), self.root)


class TestParsing(unittest.TestCase):
    """Test the dump and scan parsers"""

    def test_parse_dump_dedupes_and_filters(self):
        """Keys outside the allow-list or any section are dropped"""
        text = ("font-name='No Section'\n"
                "[org/gnome/desktop/interface]\n"
                "font-name='Inter 11'\n"
                "font-name='Inter 12'\n"
                "cursor-blink=false\n")

        settings = parse_dconf_dump(text, "dconf")

        self.assertEqual(settings, [
            ExtractedSetting("/org/gnome/desktop/interface/font-name", "'Inter 11'", "dconf"),
        ])

    def test_legacy_match_needs_separator(self):
        """A longer key sharing the prefix is not matched"""
        strings = ["/org/gnome/desktop/interface/font-name-extra:x",
                   "  /org/gnome/desktop/interface/icon-theme:'Papirus'  "]

        settings = match_legacy_keys(strings, "dconf")

        self.assertEqual(settings, [
            ExtractedSetting("/org/gnome/desktop/interface/icon-theme", "'Papirus'", "dconf"),
        ])

    def test_scan_is_bounded(self):
        """The scan stops at the string limit"""
        with tempfile.NamedTemporaryFile(suffix=".bin") as f:
            f.write(b"\x00".join([b"string%d" % i for i in range(20)]))
            f.flush()

            self.assertEqual(len(scan_printable_strings(f.name, limit=5)), 5)
            self.assertEqual(scan_printable_strings(f.name, window=8), ["string0"])


if __name__ == '__main__':
    unittest.main()
