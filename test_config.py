#!/usr/bin/env python3
"""
Tests for configuration loading and validation.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.config import Config, load_configuration, validate_configuration
from cfgsync.errors import ConfigurationError
from cfgsync.git_sync.branch_strategy import BranchStrategy
from cfgsync.platform import sanitize_branch_component


class TestConfigDefaults(unittest.TestCase):

    def test_defaults(self):
        config = Config(data_dir=Path(tempfile.gettempdir()) / "cfgsync-defaults")

        self.assertEqual(config.conflict_policy, "ours")
        self.assertEqual(config.branch_strategy, "simple")
        self.assertEqual(config.repo_dir, config.data_dir / "repo")
        self.assertEqual(config.export_dir, config.repo_dir / "settings")
        self.assertIn("apiKey", config.sensitive_keys)

    def test_invalid_values(self):
        invalid = [
            {"log_level": "LOUD"},
            {"branch_strategy": "trunk"},
            {"conflict_policy": "newest"},
            {"llm_provider": "local"},
            {"push_after_commits": 0},
            {"commit_interval_minutes": 0},
            {"git_retry_attempts": 0},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigurationError):
                    Config(**overrides)

    def test_branch_config(self):
        config = Config(branch_strategy="develop-host", auto_merge_to_default=True, default_branch="trunk")

        branch_config = config.branch_config()

        self.assertEqual(branch_config.strategy, BranchStrategy.DEVELOP_HOST)
        self.assertEqual(branch_config.default_branch, "trunk")
        self.assertTrue(branch_config.auto_merge_to_default)

    def test_auto_commit_settings(self):
        settings = Config(enable_auto_commit=True, push_after_commits=2).auto_commit_settings()

        self.assertTrue(settings.enabled)
        self.assertEqual(settings.push_after_commits, 2)


class TestHostname(unittest.TestCase):

    def test_branch_safe_hostname(self):
        self.assertEqual(sanitize_branch_component("Work Laptop.local"), "work-laptop")
        self.assertEqual(sanitize_branch_component("..."), "unknown-host")


class TestLoadConfiguration(unittest.TestCase):

    def test_environment_values(self):
        env = {
            "CFGSYNC_DATA_DIR": "/tmp/cfgsync-env",
            "CFGSYNC_GIT_REMOTE": "git@example.com:me/settings.git",
            "CFGSYNC_BRANCH_STRATEGY": "develop-host",
            "CFGSYNC_AUTO_MERGE": "yes",
            "CFGSYNC_CONFLICT_POLICY": "theirs",
            "CFGSYNC_PUSH_AFTER_COMMITS": "3",
            "CFGSYNC_SENSITIVE_KEYS": "apiKey, licenseKey",
            "CFGSYNC_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env):
            config = load_configuration()

        self.assertEqual(config.git_remote_url, "git@example.com:me/settings.git")
        self.assertEqual(config.branch_strategy, "develop-host")
        self.assertTrue(config.auto_merge_to_default)
        self.assertEqual(config.conflict_policy, "theirs")
        self.assertEqual(config.push_after_commits, 3)
        self.assertEqual(config.sensitive_keys, ["apiKey", "licenseKey"])
        self.assertEqual(config.log_level, "DEBUG")

    def test_malformed_number(self):
        with patch.dict(os.environ, {"CFGSYNC_PUSH_AFTER_COMMITS": "many"}):
            with self.assertRaises(ConfigurationError):
                load_configuration()


class TestValidateConfiguration(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    @patch("cfgsync.config.validate_git_availability", return_value=(True, None))
    def test_clean_configuration(self, _git):
        settings_root = self.temp_dir / "settings"
        settings_root.mkdir()
        config = Config(data_dir=self.temp_dir / "data", settings_root=settings_root,
                        git_remote_url="https://example.com/settings.git")

        self.assertEqual(validate_configuration(config), [])

    @patch("cfgsync.config.validate_git_availability", return_value=(False, "Git is not installed"))
    def test_reports_problems(self, _git):
        config = Config(data_dir=self.temp_dir / "data", git_remote_url="ftp://example.com/x",
                        enable_ai_commit_messages=True, llm_provider="openai")

        issues = validate_configuration(config)

        self.assertIn("ERROR: Git is not installed", issues)
        self.assertTrue(any("Unsupported remote URL" in issue for issue in issues))
        self.assertTrue(any("CFGSYNC_LLM_API_KEY" in issue for issue in issues))
        self.assertTrue(any(issue.startswith("WARNING: No settings root") for issue in issues))


if __name__ == "__main__":
    unittest.main(verbosity=2)
