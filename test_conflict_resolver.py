#!/usr/bin/env python3
"""
Unit tests for conflict detection and policy-driven resolution.
"""

import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.errors import ConfigurationError
from cfgsync.git_sync.adapter import VersionControlAdapter
from cfgsync.git_sync.conflicts import (
    CommandEditor, ConflictPolicy, ConflictResolver, ConflictSide, ConflictSource
)
from cfgsync.git_sync.repository_info import FileStatus, RepositoryState
from cfgsync.git_sync.utils import create_git_result


def state_with(files):
    return RepositoryState(
        has_changes=bool(files),
        current_branch="main",
        staged=[],
        unstaged=[],
        untracked=[],
        files=files
    )


def fake_adapter(failing=()):
    adapter = Mock()

    def checkout(path, side):
        if path in failing:
            return create_git_result(False, "resolve_conflict", error=f"cannot resolve {path}")
        return create_git_result(True, "resolve_conflict", data={"path": path, "side": side})

    adapter.checkout_conflict_side.side_effect = checkout
    return adapter


class TestConflictDetection(unittest.TestCase):

    def test_lists_exactly_conflicted_paths(self):
        state = state_with({
            "app.json": FileStatus.CONFLICTED,
            "hotkeys.json": FileStatus.MODIFIED,
            "themes.json": FileStatus.ADDED,
            "plugins/git/data.json": FileStatus.CONFLICTED,
        })

        self.assertEqual(
            ConflictResolver.list_conflicts(state),
            ["app.json", "plugins/git/data.json"]
        )
        self.assertEqual(state.conflicted, ["app.json", "plugins/git/data.json"])

    def test_clean_state_has_no_conflicts(self):
        self.assertEqual(ConflictResolver.list_conflicts(state_with({})), [])


class TestConflictResolution(unittest.TestCase):

    def test_ours_policy_keeps_local_side_of_merge(self):
        adapter = fake_adapter()
        resolver = ConflictResolver(adapter, ConflictPolicy.OURS)

        resolution = resolver.resolve_all(["X"])

        adapter.checkout_conflict_side.assert_called_once_with("X", "ours")
        self.assertTrue(resolution.complete)
        self.assertEqual(resolution.side, ConflictSide.OURS)

    def test_theirs_policy_keeps_remote_side(self):
        adapter = fake_adapter()
        resolver = ConflictResolver(adapter, ConflictPolicy.THEIRS)

        resolver.resolve_all(["a", "b"])

        self.assertEqual(
            [call.args for call in adapter.checkout_conflict_side.call_args_list],
            [("a", "theirs"), ("b", "theirs")]
        )

    def test_stash_conflicts_flip_git_sides(self):
        adapter = fake_adapter()
        resolver = ConflictResolver(adapter, ConflictPolicy.OURS)

        resolver.resolve("X", ConflictSide.OURS, ConflictSource.STASH)
        resolver.resolve("Y", ConflictSide.THEIRS, ConflictSource.STASH)

        self.assertEqual(
            [call.args for call in adapter.checkout_conflict_side.call_args_list],
            [("X", "theirs"), ("Y", "ours")]
        )

    def test_failed_paths_are_reported(self):
        resolver = ConflictResolver(fake_adapter(failing={"b"}), ConflictPolicy.OURS)

        resolution = resolver.resolve_all(["a", "b"])

        self.assertEqual(resolution.resolved, ["a"])
        self.assertEqual(resolution.failed, ["b"])
        self.assertFalse(resolution.complete)

    def test_manual_policy_opens_editor_and_resolves_nothing(self):
        adapter = fake_adapter()
        editor = Mock()
        resolver = ConflictResolver(adapter, ConflictPolicy.MANUAL, editor)

        resolution = resolver.resolve_all(["X"])

        editor.open.assert_called_once_with(["X"])
        adapter.checkout_conflict_side.assert_not_called()
        self.assertFalse(resolution.complete)
        self.assertIsNone(resolution.side)

    def test_resolution_message(self):
        local = ConflictResolver.resolution_message(ConflictSide.OURS, ["X"])
        remote = ConflictResolver.resolution_message(ConflictSide.THEIRS, [])

        self.assertTrue(local.startswith("Resolved conflicts - kept local changes"))
        self.assertIn("- X", local)
        self.assertEqual(remote, "Resolved conflicts - kept remote changes")


class TestCommandEditor(unittest.TestCase):

    def test_empty_command_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            CommandEditor("", Path("."))

    @patch("cfgsync.git_sync.conflicts.subprocess.Popen")
    def test_launches_command_with_paths(self, mock_popen):
        editor = CommandEditor("code --wait", Path("/tmp/repo"))

        self.assertTrue(editor.open(["app.json"]))
        mock_popen.assert_called_once_with(["code", "--wait", "app.json"], cwd="/tmp/repo")

    @patch("cfgsync.git_sync.conflicts.subprocess.Popen", side_effect=FileNotFoundError("no such editor"))
    def test_missing_editor_returns_false(self, _mock_popen):
        self.assertFalse(CommandEditor("nope", Path(".")).open(["app.json"]))


class TestStashConflictResolution(unittest.TestCase):
    """Keeping local work when re-applied stashed changes conflict with pulled commits."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.repo_dir = self.temp_dir / "repo"
        self.adapter = VersionControlAdapter(self.repo_dir, retry_attempts=1)
        self.adapter.init("main")
        self.adapter.configure_author("Test User", "test@example.com")

        (self.repo_dir / "app.json").write_text("base\n")
        self.adapter.add(".")
        self.adapter.commit("base")

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_local_version_survives_stash_pop_conflict(self):
        (self.repo_dir / "app.json").write_text("local\n")
        self.assertTrue(self.adapter.stash().data["stashed"])

        # Stand-in for a pulled commit touching the same file
        (self.repo_dir / "app.json").write_text("remote\n")
        self.adapter.add(".")
        self.adapter.commit("remote change")

        popped = self.adapter.stash_pop()
        self.assertTrue(popped.conflicts)

        resolver = ConflictResolver(self.adapter, ConflictPolicy.OURS)
        conflicts = resolver.list_conflicts(self.adapter.status().data)
        resolution = resolver.resolve_all(conflicts, ConflictSource.STASH)

        self.assertTrue(resolution.complete)
        self.assertEqual((self.repo_dir / "app.json").read_text(), "local\n")
        subprocess.run(["git", "stash", "drop"], cwd=self.repo_dir, capture_output=True, check=True)


if __name__ == "__main__":
    unittest.main(verbosity=2)
