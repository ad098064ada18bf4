"""Error patterns and recovery strategies for git operations."""

from typing import Dict, List, Tuple
from .error_types import ErrorCategory, ErrorResolution, RecoveryAction


def build_error_patterns() -> List[Tuple[str, ErrorCategory]]:
    """
    Build the ordered substring patterns used to categorize git output.

    Patterns are matched against lowercased error text; the first match wins,
    so more specific phrases come before generic ones.
    """
    return [
        # Nothing to do
        ("nothing to commit", ErrorCategory.NOTHING_TO_COMMIT),
        ("nothing added to commit", ErrorCategory.NOTHING_TO_COMMIT),
        ("no changes added to commit", ErrorCategory.NOTHING_TO_COMMIT),

        # Missing remote branch (empty remote or unpublished branch)
        ("couldn't find remote ref", ErrorCategory.REMOTE_REF_MISSING),
        ("could not find remote ref", ErrorCategory.REMOTE_REF_MISSING),
        ("no such ref was fetched", ErrorCategory.REMOTE_REF_MISSING),

        # Local changes in the way
        ("would be overwritten", ErrorCategory.DIRTY_WORKTREE),
        ("please commit your changes or stash them", ErrorCategory.DIRTY_WORKTREE),

        # Conflicts
        ("conflict", ErrorCategory.MERGE_CONFLICT),
        ("automatic merge failed", ErrorCategory.MERGE_CONFLICT),
        ("unmerged", ErrorCategory.MERGE_CONFLICT),

        # Push rejected
        ("non-fast-forward", ErrorCategory.REJECTED),
        ("fetch first", ErrorCategory.REJECTED),
        ("[rejected]", ErrorCategory.REJECTED),
        ("failed to push some refs", ErrorCategory.REJECTED),

        # Authentication
        ("authentication failed", ErrorCategory.AUTHENTICATION),
        ("permission denied", ErrorCategory.AUTHENTICATION),
        ("could not read username", ErrorCategory.AUTHENTICATION),
        ("could not read password", ErrorCategory.AUTHENTICATION),
        ("invalid username or password", ErrorCategory.AUTHENTICATION),
        ("403", ErrorCategory.AUTHENTICATION),
        ("401", ErrorCategory.AUTHENTICATION),

        # Network
        ("could not resolve host", ErrorCategory.NETWORK),
        ("connection timed out", ErrorCategory.NETWORK),
        ("connection refused", ErrorCategory.NETWORK),
        ("network is unreachable", ErrorCategory.NETWORK),
        ("unable to access", ErrorCategory.NETWORK),
        ("timed out", ErrorCategory.NETWORK),
        ("early eof", ErrorCategory.NETWORK),

        # Configuration
        ("no such remote", ErrorCategory.CONFIGURATION),
        ("no remote repository configured", ErrorCategory.CONFIGURATION),
        ("no configured push destination", ErrorCategory.CONFIGURATION),
        ("does not appear to be a git repository", ErrorCategory.CONFIGURATION),
        ("please tell me who you are", ErrorCategory.CONFIGURATION),

        # Repository access
        ("not a git repository", ErrorCategory.REPOSITORY_ACCESS),
        ("repository not found", ErrorCategory.REPOSITORY_ACCESS),
        ("index.lock", ErrorCategory.REPOSITORY_ACCESS),
    ]


def build_error_strategies() -> Dict[ErrorCategory, ErrorResolution]:
    """Build recovery strategies for each error category."""
    return {
        ErrorCategory.NETWORK: ErrorResolution(
            category=ErrorCategory.NETWORK,
            action=RecoveryAction.RETRY,
            error_code="NETWORK_ERROR",
            user_message="Network connection issue detected",
            resolution_steps=[
                "Check your internet connection",
                "Verify the repository URL is reachable",
                "Sync will be retried on the next cycle"
            ],
            retry_delay=5.0,
            max_retries=3
        ),

        ErrorCategory.AUTHENTICATION: ErrorResolution(
            category=ErrorCategory.AUTHENTICATION,
            action=RecoveryAction.USER_ACTION_REQUIRED,
            error_code="AUTHENTICATION_FAILED",
            user_message="Authentication failed - please check your credentials",
            resolution_steps=[
                "Verify CFGSYNC_GIT_TOKEN is set and has not expired",
                "Check that the token grants write access to the repository"
            ]
        ),

        ErrorCategory.MERGE_CONFLICT: ErrorResolution(
            category=ErrorCategory.MERGE_CONFLICT,
            action=RecoveryAction.RESOLVE_CONFLICTS,
            error_code="MERGE_CONFLICT",
            user_message="Merge conflicts detected during synchronization",
            resolution_steps=[
                "Conflicts are resolved using the configured conflict policy",
                "With the manual policy, edit the listed files and sync again"
            ]
        ),

        ErrorCategory.NOTHING_TO_COMMIT: ErrorResolution(
            category=ErrorCategory.NOTHING_TO_COMMIT,
            action=RecoveryAction.IGNORE,
            error_code="NOTHING_TO_COMMIT",
            user_message="No changes to commit",
            resolution_steps=[]
        ),

        ErrorCategory.REMOTE_REF_MISSING: ErrorResolution(
            category=ErrorCategory.REMOTE_REF_MISSING,
            action=RecoveryAction.IGNORE,
            error_code="REMOTE_BRANCH_NOT_FOUND",
            user_message="Remote branch does not exist yet",
            resolution_steps=["The branch will be created on the remote by the next push"]
        ),

        ErrorCategory.REJECTED: ErrorResolution(
            category=ErrorCategory.REJECTED,
            action=RecoveryAction.PULL_FIRST,
            error_code="PUSH_REJECTED",
            user_message="Remote has changes that are not present locally",
            resolution_steps=["Run a sync to pull remote changes before pushing"]
        ),

        ErrorCategory.DIRTY_WORKTREE: ErrorResolution(
            category=ErrorCategory.DIRTY_WORKTREE,
            action=RecoveryAction.USER_ACTION_REQUIRED,
            error_code="DIRTY_WORKTREE",
            user_message="Local changes would be overwritten",
            resolution_steps=["Commit or stash local changes, then retry"]
        ),

        ErrorCategory.CONFIGURATION: ErrorResolution(
            category=ErrorCategory.CONFIGURATION,
            action=RecoveryAction.USER_ACTION_REQUIRED,
            error_code="CONFIGURATION_ERROR",
            user_message="Repository configuration is incomplete",
            resolution_steps=[
                "Set CFGSYNC_GIT_REMOTE to the remote repository URL",
                "Set CFGSYNC_GIT_AUTHOR_NAME and CFGSYNC_GIT_AUTHOR_EMAIL if git has no identity"
            ]
        ),

        ErrorCategory.REPOSITORY_ACCESS: ErrorResolution(
            category=ErrorCategory.REPOSITORY_ACCESS,
            action=RecoveryAction.RETRY,
            error_code="REPOSITORY_ACCESS_ERROR",
            user_message="Repository is not accessible",
            resolution_steps=[
                "Verify the repository exists and the URL is correct",
                "Remove a stale .git/index.lock if no other git process is running"
            ],
            retry_delay=1.0,
            max_retries=2
        ),

        ErrorCategory.UNKNOWN: ErrorResolution(
            category=ErrorCategory.UNKNOWN,
            action=RecoveryAction.ABORT,
            error_code="GIT_COMMAND_FAILED",
            user_message="Git command failed",
            resolution_steps=["Check the log for the full git output"]
        ),
    }
