#!/usr/bin/env python3
"""
Unit tests for profile merging, diffing and inheritance resolution.
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.errors import ValidationError
from cfgsync.profiles import (
    CommunitySettings, PluginEntry, ProfileMerger, ProfileSettings, SettingsProfile
)


def make_profile(profile_id: str, settings: ProfileSettings = None, inherit_from: str = None) -> SettingsProfile:
    return SettingsProfile(
        id=profile_id,
        name=profile_id.title(),
        settings=settings or ProfileSettings(),
        inherit_from=inherit_from
    )


class TestProfileMerge(unittest.TestCase):
    """Merge semantics of parent and child settings."""

    def setUp(self):
        self.merger = ProfileMerger()

    def test_child_scalar_overrides_parent_and_plugins_survive(self):
        parent = ProfileSettings(
            appearance={"theme": "dark"},
            plugins=[PluginEntry(id="p1", enabled=True)]
        )
        child = ProfileSettings(appearance={"theme": "light"})

        merged = self.merger.merge(parent, child)

        self.assertEqual(merged.appearance, {"theme": "light"})
        self.assertEqual([p.to_dict() for p in merged.plugins], [{"id": "p1", "enabled": True, "settings": {}}])

    def test_plugins_keyed_by_id_keep_parent_order(self):
        parent = ProfileSettings(plugins=[
            PluginEntry(id="a", settings={"x": 1}),
            PluginEntry(id="b", settings={"y": 1}),
        ])
        child = ProfileSettings(plugins=[
            PluginEntry(id="c"),
            PluginEntry(id="a", enabled=False, settings={"x": 2}),
        ])

        merged = self.merger.merge(parent, child)

        self.assertEqual([p.id for p in merged.plugins], ["a", "b", "c"])
        self.assertFalse(merged.plugins[0].enabled)
        self.assertEqual(merged.plugins[0].settings, {"x": 2})

    def test_set_like_lists_are_ordered_unions(self):
        parent = ProfileSettings(
            appearance={"cssSnippets": ["base", "wide"]},
            community=CommunitySettings(plugins=["calendar", "git"], themes=["Minimal"])
        )
        child = ProfileSettings(
            appearance={"cssSnippets": ["wide", "compact"]},
            community=CommunitySettings(plugins=["dataview", "git"], themes=["Things"])
        )

        merged = self.merger.merge(parent, child)

        self.assertEqual(merged.appearance["cssSnippets"], ["base", "wide", "compact"])
        self.assertEqual(merged.community.plugins, ["calendar", "git", "dataview"])
        self.assertEqual(merged.community.themes, ["Minimal", "Things"])

    def test_hotkeys_and_core_plugins_overwrite_per_key(self):
        parent = ProfileSettings(
            hotkeys={"editor:save": [{"key": "S"}], "app:quit": [{"key": "Q"}]},
            core_plugins={"graph": True, "backlink": True}
        )
        child = ProfileSettings(
            hotkeys={"editor:save": [{"key": "W"}]},
            core_plugins={"graph": False}
        )

        merged = self.merger.merge(parent, child)

        self.assertEqual(merged.hotkeys["editor:save"], [{"key": "W"}])
        self.assertEqual(merged.hotkeys["app:quit"], [{"key": "Q"}])
        self.assertEqual(merged.core_plugins, {"graph": False, "backlink": True})

    def test_merge_is_idempotent(self):
        parent = ProfileSettings(
            appearance={"theme": "dark", "cssSnippets": ["a"]},
            plugins=[PluginEntry(id="p1")],
            community=CommunitySettings(plugins=["p1"])
        )
        child = ProfileSettings(
            appearance={"cssSnippets": ["b"]},
            plugins=[PluginEntry(id="p2", enabled=False)],
            community=CommunitySettings(plugins=["p2"])
        )

        once = self.merger.merge(parent, child)
        twice = self.merger.merge(once, child)

        self.assertEqual(once.to_dict(), twice.to_dict())

    def test_merge_does_not_mutate_inputs(self):
        parent = ProfileSettings(appearance={"cssSnippets": ["a"]}, plugins=[PluginEntry(id="p1")])
        child = ProfileSettings(appearance={"cssSnippets": ["b"]}, plugins=[PluginEntry(id="p1", enabled=False)])

        self.merger.merge(parent, child)

        self.assertEqual(parent.appearance["cssSnippets"], ["a"])
        self.assertTrue(parent.plugins[0].enabled)


class TestProfileDiff(unittest.TestCase):
    """Category-level differences between two settings."""

    def test_identical_settings_have_empty_diff(self):
        settings = ProfileSettings(appearance={"theme": "dark"}, plugins=[PluginEntry(id="p1")])
        diff = ProfileMerger.diff(settings, settings)
        self.assertTrue(diff.is_empty)

    def test_added_removed_and_modified(self):
        a = ProfileSettings(
            appearance={"theme": "dark"},
            plugins=[PluginEntry(id="p1"), PluginEntry(id="p2")]
        )
        b = ProfileSettings(
            appearance={"theme": "light"},
            plugins=[PluginEntry(id="p2", enabled=False), PluginEntry(id="p3")]
        )

        diff = ProfileMerger.diff(a, b)

        self.assertEqual(diff.added, ["p3"])
        self.assertEqual(diff.removed, ["p1"])
        self.assertIn("appearance", diff.modified)
        self.assertIn("plugins", diff.modified)
        self.assertNotIn("hotkeys", diff.modified)
        self.assertEqual(set(diff.to_dict()), {"added", "removed", "modified"})


class TestProfileInheritance(unittest.TestCase):
    """Lineage validation and resolution across several levels."""

    def setUp(self):
        self.merger = ProfileMerger()

    def test_resolve_applies_chain_root_first(self):
        base = make_profile("base", ProfileSettings(appearance={"theme": "dark", "baseFontSize": 14}))
        work = make_profile("work", ProfileSettings(appearance={"baseFontSize": 16}), inherit_from="base")
        laptop = make_profile("laptop", ProfileSettings(appearance={"theme": "light"}), inherit_from="work")
        profiles = {p.id: p for p in (base, work, laptop)}

        resolved = self.merger.resolve(laptop, profiles)

        self.assertEqual(resolved.appearance, {"theme": "light", "baseFontSize": 16})

    def test_self_inheritance_is_rejected(self):
        profile = make_profile("solo", inherit_from="solo")
        with self.assertRaises(ValidationError):
            self.merger.lineage(profile, {"solo": profile})

    def test_cycle_is_rejected(self):
        a = make_profile("a", inherit_from="b")
        b = make_profile("b", inherit_from="c")
        c = make_profile("c", inherit_from="a")
        profiles = {p.id: p for p in (a, b, c)}

        with self.assertRaises(ValidationError) as ctx:
            self.merger.resolve(a, profiles)
        self.assertIn("Cyclic", str(ctx.exception))

    def test_unknown_parent_is_rejected(self):
        orphan = make_profile("orphan", inherit_from="missing")
        with self.assertRaises(ValidationError):
            self.merger.lineage(orphan, {"orphan": orphan})


class TestProfileFormat(unittest.TestCase):
    """JSON form of profiles."""

    def test_missing_fields_are_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            SettingsProfile.from_dict({"id": "x"})
        self.assertIn("missing name, settings", str(ctx.exception))

    def test_round_trip_keeps_inheritance(self):
        profile = make_profile("child", ProfileSettings(core_plugins={"graph": True}), inherit_from="parent")
        data = profile.to_dict()

        self.assertEqual(data["inheritFrom"], "parent")
        self.assertEqual(data["settings"]["corePlugins"], {"graph": True})
        self.assertEqual(SettingsProfile.from_dict(data).to_dict(), data)


if __name__ == "__main__":
    unittest.main(verbosity=2)
