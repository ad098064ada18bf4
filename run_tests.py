#!/usr/bin/env python3
"""Test runner for the cfgsync settings sync engine."""

import sys
import subprocess
from pathlib import Path


def run_test(test_file: str, description: str) -> bool:
    """Run a single test file and return success status."""
    print(f"\n{'='*60}")
    print(f"Running: {description}")
    print(f"File: {test_file}")
    print('='*60)

    try:
        result = subprocess.run([
            "uv", "run", "python3", test_file
        ], capture_output=False, text=True)

        success = result.returncode == 0
        print(f"\n{'✅ PASSED' if success else '❌ FAILED'}: {description}")
        return success

    except OSError as e:
        print(f"❌ ERROR running {test_file}: {e}")
        return False


def main():
    """Run every cfgsync test module."""
    print("cfgsync Test Suite")
    print("="*60)

    tests = [
        ("test_config.py", "Configuration Loading"),
        ("test_settings_tree.py", "Settings Export and Import"),
        ("test_profile_merger.py", "Profile Merge and Inheritance"),
        ("test_profile_manager.py", "Profile Lifecycle"),
        ("test_cloud_client.py", "Cloud Profile Store Client"),
        ("test_messages_llm.py", "LLM Commit Messages"),
        ("test_version_control_adapter.py", "Version Control Adapter"),
        ("test_conflict_resolver.py", "Conflict Resolution"),
        ("test_branch_strategy.py", "Branch Strategies"),
        ("test_auto_commit.py", "Auto Commit Scheduler"),
        ("test_sync_orchestrator.py", "Sync Orchestration"),
        ("test_server.py", "MCP Tool Layer"),
    ]

    results = []
    for test_file, description in tests:
        if Path(test_file).exists():
            success = run_test(test_file, description)
            results.append((test_file, description, success))
        else:
            print(f"⚠️  Test file not found: {test_file}")
            results.append((test_file, description, False))

    # Summary
    print(f"\n{'='*60}")
    print("TEST SUITE SUMMARY")
    print("="*60)

    passed = 0
    for test_file, description, success in results:
        status = "✅ PASS" if success else "❌ FAIL"
        print(f"{status} {description}")
        if success:
            passed += 1

    print(f"\nResults: {passed}/{len(results)} test modules passed")

    if passed == len(results):
        print("\n🎉 ALL TESTS PASSED!")
        return True
    else:
        print(f"\n⚠️  {len(results) - passed} test modules failed")
        return False


if __name__ == "__main__":
    try:
        success = main()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\nTest suite interrupted by user")
        sys.exit(1)
