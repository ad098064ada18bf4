#!/usr/bin/env python3
"""
Tests for branch strategies, merges to the default branch and branch cleanup.
"""

import shutil
import subprocess
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.git_sync.adapter import VersionControlAdapter
from cfgsync.git_sync.branch_strategy import (
    BranchConfig, BranchState, BranchStrategy, BranchStrategyManager
)


DEVELOP_HOST = BranchConfig(strategy=BranchStrategy.DEVELOP_HOST, auto_merge_to_default=True)


def commit_file(adapter: VersionControlAdapter, name: str, content: str, message: str = None):
    (adapter.repo_path / name).write_text(content, encoding="utf-8")
    adapter.add(".")
    result = adapter.commit(message or f"Update {name}")
    assert result.success, result.error
    return result


class BranchTestCase(unittest.TestCase):
    """Working tree with one commit on main, pushed to a bare remote."""

    with_remote = True

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.remote_dir = self.temp_dir / "remote.git"
        subprocess.run(["git", "init", "--bare", str(self.remote_dir)], capture_output=True, check=True)

        self.adapter = VersionControlAdapter(self.temp_dir / "local", retry_attempts=1, retry_delay=0.01)
        self.adapter.init("main")
        self.adapter.configure_author("Test User", "test@example.com")
        commit_file(self.adapter, "app.json", "{}\n", "initial")

        if self.with_remote:
            self.adapter.add_remote(str(self.remote_dir))
            self.assertTrue(self.adapter.push(set_upstream=True).success)

        self.manager = BranchStrategyManager(self.adapter, hostname="host1")

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)


class TestHostBranches(BranchTestCase):

    def test_host_branch_name_is_stable(self):
        first = self.manager.create_host_branch("develop/")
        self.adapter.branch_switch("main")
        second = self.manager.create_host_branch("develop/")

        self.assertEqual(first.data, {"branch": "develop/host1", "created": True})
        self.assertEqual(second.data, {"branch": "develop/host1", "created": False})
        self.assertEqual(self.adapter.current_branch(), "develop/host1")

    def test_initialize_develop_host_strategy(self):
        result = self.manager.initialize_strategy(DEVELOP_HOST)

        self.assertTrue(result.success)
        self.assertEqual(self.manager.state, BranchState.ON_DEVELOP_HOST)
        self.assertEqual(self.adapter.current_branch(), "develop/host1")

    def test_initialize_simple_strategy_stays_on_default(self):
        self.adapter.branch_create("feature/x")

        result = self.manager.initialize_strategy(BranchConfig())

        self.assertTrue(result.success)
        self.assertEqual(self.manager.state, BranchState.ON_DEFAULT)
        self.assertEqual(self.adapter.current_branch(), "main")

    def test_feature_branch_gets_prefix(self):
        result = self.manager.create_feature_branch("fonts", BranchConfig())

        self.assertEqual(result.data["branch"], "feature/fonts")
        self.assertEqual(self.manager.state, BranchState.ON_FEATURE)
        self.assertEqual(self.manager.current_branch_info(BranchConfig()).type, "feature")

    def test_detect_state_after_restart(self):
        self.adapter.branch_create("develop/host1")
        fresh = BranchStrategyManager(self.adapter, hostname="host1")

        self.assertEqual(fresh.detect_state(DEVELOP_HOST), BranchState.ON_DEVELOP_HOST)


class TestAutoMergeSafety(BranchTestCase):

    def test_not_on_temp_branch(self):
        safety = self.manager.is_safe_to_auto_merge("develop/host1", "main")

        self.assertFalse(safety.safe)
        self.assertEqual(safety.reason, "Not on temp branch (currently on main)")

    def test_no_commits_ahead(self):
        self.adapter.branch_create("develop/host1")

        safety = self.manager.is_safe_to_auto_merge("develop/host1", "main")

        self.assertEqual(safety.reason, "No commits ahead on temp branch")

    def test_safe_with_commits_ahead(self):
        self.adapter.branch_create("develop/host1")
        commit_file(self.adapter, "hotkeys.json", "{}\n")

        self.assertTrue(self.manager.is_safe_to_auto_merge("develop/host1", "main").safe)

    def test_not_a_repository(self):
        manager = BranchStrategyManager(VersionControlAdapter(self.temp_dir / "nowhere"), hostname="host1")

        safety = manager.is_safe_to_auto_merge("develop/host1", "main")

        self.assertEqual(safety.reason, "Not in a git repository")


class TestAutoMergeWithoutRemote(BranchTestCase):

    with_remote = False

    def test_no_remote(self):
        self.adapter.branch_create("develop/host1")
        commit_file(self.adapter, "hotkeys.json", "{}\n")

        safety = self.manager.is_safe_to_auto_merge("develop/host1", "main")

        self.assertEqual(safety.reason, "No remote repository configured")


class TestAutoMergeIfNeeded(BranchTestCase):

    def test_skipped_when_disabled(self):
        config = BranchConfig(strategy=BranchStrategy.DEVELOP_HOST, auto_merge_to_default=False)
        self.adapter.branch_create("develop/host1")

        result = self.manager.auto_merge_if_needed(config)

        self.assertTrue(result.success)
        self.assertEqual(result.data, {"skipped": True})

    def test_skipped_for_simple_strategy(self):
        config = BranchConfig(auto_merge_to_default=True)
        self.assertTrue(self.manager.auto_merge_if_needed(config).data["skipped"])

    def test_skipped_when_not_on_develop_branch(self):
        self.assertTrue(self.manager.auto_merge_if_needed(DEVELOP_HOST).data["skipped"])

    def test_skip_carries_safety_reason(self):
        self.adapter.branch_create("develop/host1")

        result = self.manager.auto_merge_if_needed(DEVELOP_HOST)

        self.assertEqual(result.data, {"skipped": True, "reason": "No commits ahead on temp branch"})

    def test_merges_and_returns_to_host_branch(self):
        self.manager.initialize_strategy(DEVELOP_HOST)
        commit_file(self.adapter, "hotkeys.json", '{"save": "Mod+S"}\n')

        result = self.manager.auto_merge_if_needed(DEVELOP_HOST)

        self.assertTrue(result.success, result.error)
        self.assertFalse(result.data["skipped"])
        self.assertEqual(self.adapter.current_branch(), "develop/host1")
        self.assertEqual(self.adapter.commits_ahead("develop/host1", "main"), 0)


class TestMergeToDefault(BranchTestCase):

    def test_squash_merge_adds_follow_up_commit(self):
        config = BranchConfig(strategy=BranchStrategy.DEVELOP_HOST, squash_merge=True)
        self.adapter.branch_create("develop/host1")
        commit_file(self.adapter, "a.json", "1\n")
        commit_file(self.adapter, "b.json", "2\n")

        result = self.manager.merge_to_default(config)

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.data["strategy"], "squash")
        self.assertEqual(self.adapter.current_branch(), "develop/host1")

        main_log = self.adapter.log(limit=5, ref="main").data
        self.assertEqual(main_log[0]["summary"], "Squash merge from develop/host1")
        self.assertEqual(len(main_log), 2)

    def test_conflicting_merge_is_aborted(self):
        self.adapter.branch_create("develop/host1")
        commit_file(self.adapter, "app.json", '{"theme": "nord"}\n')
        self.adapter.branch_switch("main")
        commit_file(self.adapter, "app.json", '{"theme": "dark"}\n')
        self.adapter.branch_switch("develop/host1")

        for squash in (False, True):
            result = self.manager.merge_to_default(BranchConfig(squash_merge=squash))

            self.assertFalse(result.success)
            self.assertTrue(result.conflicts)
            self.assertEqual(self.adapter.current_branch(), "develop/host1")
            self.assertFalse(self.adapter.status().data.has_changes)
            self.assertEqual((self.adapter.repo_path / "app.json").read_text(), '{"theme": "nord"}\n')

    def test_refuses_on_default_branch(self):
        result = self.manager.merge_to_default(BranchConfig())

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Already on default branch")

    def test_not_a_repository(self):
        manager = BranchStrategyManager(VersionControlAdapter(self.temp_dir / "nowhere"), hostname="host1")
        self.assertEqual(manager.merge_to_default(BranchConfig()).error, "Not in a git repository")

    def test_verify_remote_pulls_default_first(self):
        other = VersionControlAdapter(self.temp_dir / "other", retry_attempts=1)
        other.init("main")
        other.configure_author("Other", "other@example.com")
        other.add_remote(str(self.remote_dir))
        other.pull("main")
        commit_file(other, "themes.json", "[]\n")
        self.assertTrue(other.push().success)

        self.adapter.branch_create("develop/host1")
        commit_file(self.adapter, "hotkeys.json", "{}\n")

        result = self.manager.merge_to_default(BranchConfig(), verify_remote=True)

        self.assertTrue(result.success, result.error)
        self.adapter.branch_switch("main")
        self.assertTrue((self.adapter.repo_path / "themes.json").exists())
        self.assertTrue((self.adapter.repo_path / "hotkeys.json").exists())


class TestCleanupOldBranches(BranchTestCase):

    def test_never_deletes_current_or_default(self):
        self.adapter.branch_create("feature/old", checkout=False)
        self.adapter.branch_create("develop/host1")
        future = datetime.now(timezone.utc) + timedelta(days=365)

        result = self.manager.cleanup_old_branches(BranchConfig(), days_old=30, now=future)

        self.assertEqual(result.data["deleted"], ["feature/old"])
        self.assertTrue(self.adapter.branch_exists("main"))
        self.assertTrue(self.adapter.branch_exists("develop/host1"))

    def test_recent_branches_are_kept(self):
        self.adapter.branch_create("feature/new", checkout=False)

        result = self.manager.cleanup_old_branches(BranchConfig(), days_old=30)

        self.assertEqual(result.data["deleted_count"], 0)

    def test_unmerged_branch_is_reported_as_failed(self):
        self.adapter.branch_create("feature/wip")
        commit_file(self.adapter, "wip.json", "{}\n")
        self.adapter.branch_switch("main")
        future = datetime.now(timezone.utc) + timedelta(days=365)

        result = self.manager.cleanup_old_branches(BranchConfig(), days_old=30, now=future)

        self.assertEqual(result.data["failed"], ["feature/wip"])
        self.assertTrue(self.adapter.branch_exists("feature/wip"))

    def test_negative_age_is_rejected(self):
        with self.assertRaises(ValueError):
            self.manager.cleanup_old_branches(BranchConfig(), days_old=-1)

    def test_listing_failure_is_returned(self):
        adapter = Mock()
        adapter.branch_list.return_value = Mock(success=False, error="boom")
        manager = BranchStrategyManager(adapter, hostname="host1")

        self.assertFalse(manager.cleanup_old_branches(BranchConfig()).success)


if __name__ == "__main__":
    unittest.main(verbosity=2)
