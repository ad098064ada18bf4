#!/usr/bin/env python3
"""
Tests for exporting and importing the live settings tree.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.errors import ValidationError
from cfgsync.settings_tree import SettingsTree, restore_sensitive, strip_sensitive


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestSensitiveKeys(unittest.TestCase):

    def test_strip_is_recursive_and_case_insensitive(self):
        data = {"theme": "dark", "ApiKey": "x", "sync": {"token": "t", "interval": 5}, "list": [{"password": "p"}]}

        stripped = strip_sensitive(data, ["apiKey", "token", "password"])

        self.assertEqual(stripped, {"theme": "dark", "sync": {"interval": 5}, "list": [{}]})

    def test_restore_keeps_local_secrets(self):
        incoming = {"theme": "light", "sync": {"interval": 10}}
        existing = {"theme": "dark", "apiKey": "local", "sync": {"token": "t", "interval": 5}}

        restored = restore_sensitive(incoming, existing, ["apiKey", "token"])

        self.assertEqual(restored, {"theme": "light", "apiKey": "local", "sync": {"interval": 10, "token": "t"}})


class TestSettingsTree(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.live = self.temp_dir / "live"
        self.export = self.temp_dir / "repo" / "settings"
        self.tree = SettingsTree(self.live, self.export, sensitive_keys=["apiKey"],
                                 excluded_files=["workspace.json", "hotkeys.json"])

        write_json(self.live / "appearance.json", {"theme": "dark", "apiKey": "secret"})
        write_json(self.live / "community-plugins.json", ["calendar"])
        write_json(self.live / "plugins" / "calendar" / "data.json", {"weekStart": "monday"})
        (self.live / "themes" / "Minimal").mkdir(parents=True)
        (self.live / "snippets").mkdir()
        (self.live / "snippets" / "wide.css").write_text("body {}")

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_export_writes_sanitized_copy(self):
        written = self.tree.export_settings()

        self.assertIn("appearance.json", written)
        self.assertIn("plugins/calendar/data.json", written)
        self.assertEqual(read_json(self.export / "appearance.json"), {"theme": "dark"})
        self.assertEqual(read_json(self.export / "themes.json"), ["Minimal"])
        self.assertEqual(read_json(self.export / "snippets.json"), ["wide"])

    def test_second_export_writes_nothing(self):
        self.tree.export_settings()
        self.assertEqual(self.tree.export_settings(), [])

    def test_removed_plugin_disappears_from_export(self):
        self.tree.export_settings()
        shutil.rmtree(self.live / "plugins" / "calendar")

        written = self.tree.export_settings()

        self.assertIn("plugins/calendar/data.json", written)
        self.assertFalse((self.export / "plugins" / "calendar").exists())

    def test_import_preserves_local_secrets(self):
        self.tree.export_settings()
        write_json(self.export / "appearance.json", {"theme": "light"})

        written = self.tree.import_settings()

        self.assertIn("appearance.json", written)
        self.assertEqual(read_json(self.live / "appearance.json"), {"theme": "light", "apiKey": "secret"})

    def test_excluded_files_are_not_imported(self):
        write_json(self.export / "hotkeys.json", {"editor:save": []})

        self.tree.import_settings()

        self.assertFalse((self.live / "hotkeys.json").exists())

    def test_invalid_json_is_reported(self):
        (self.live / "app.json").write_text("{not json")
        with self.assertRaises(ValidationError):
            self.tree.read_settings()

    def test_without_live_root(self):
        tree = SettingsTree(None, self.export)
        self.assertEqual(tree.export_settings(), [])
        self.assertEqual(tree.read_settings(), {"plugins": {}, "themes": [], "snippets": []})


if __name__ == "__main__":
    unittest.main(verbosity=2)
