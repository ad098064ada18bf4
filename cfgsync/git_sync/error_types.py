"""Error types and categorization for git operations."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class ErrorCategory(Enum):
    """Categories of git failures for appropriate handling."""
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    MERGE_CONFLICT = "merge_conflict"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    REMOTE_REF_MISSING = "remote_ref_missing"
    REJECTED = "rejected"
    DIRTY_WORKTREE = "dirty_worktree"
    CONFIGURATION = "configuration"
    REPOSITORY_ACCESS = "repository_access"
    UNKNOWN = "unknown"


class RecoveryAction(Enum):
    """Types of recovery actions that can be taken."""
    RETRY = "retry"
    IGNORE = "ignore"
    RESOLVE_CONFLICTS = "resolve_conflicts"
    PULL_FIRST = "pull_first"
    USER_ACTION_REQUIRED = "user_action_required"
    ABORT = "abort"


@dataclass
class ErrorResolution:
    """Information about how to resolve a specific error."""
    category: ErrorCategory
    action: RecoveryAction
    error_code: str
    user_message: str
    resolution_steps: List[str]
    retry_delay: Optional[float] = None
    max_retries: int = 0
