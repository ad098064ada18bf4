"""Branch topology management: per-host branches, feature branches and merges to default."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from ..platform import get_hostname
from .error_types import ErrorCategory
from .utils import GitResult, create_git_result


class BranchStrategy(Enum):
    SIMPLE = "simple"
    DEVELOP_HOST = "develop-host"
    FEATURE_BRANCH = "feature-branch"
    CUSTOM = "custom"


class BranchState(Enum):
    UNINITIALIZED = "uninitialized"
    ON_DEFAULT = "on_default"
    ON_DEVELOP_HOST = "on_develop_host"
    ON_FEATURE = "on_feature"


@dataclass(frozen=True)
class BranchConfig:
    """Branch strategy settings, rebuilt from configuration for each cycle."""
    strategy: BranchStrategy = BranchStrategy.SIMPLE
    default_branch: str = "main"
    develop_prefix: str = "develop/"
    feature_prefix: str = "feature/"
    auto_merge_to_default: bool = False
    squash_merge: bool = False


@dataclass
class AutoMergeSafety:
    safe: bool
    reason: Optional[str] = None


@dataclass
class BranchInfo:
    """Classification of the checked-out branch."""
    name: str
    type: str  # "default", "develop", "feature" or "other"
    is_default: bool

    def to_dict(self):
        return {"name": self.name, "type": self.type, "is_default": self.is_default}


class BranchStrategyManager:
    """
    State machine over the repository's branch topology.

    UNINITIALIZED moves to ON_DEFAULT or ON_DEVELOP_HOST through
    ``initialize_strategy``, and to ON_FEATURE through
    ``create_feature_branch``. Failed branch operations are returned as-is;
    the manager does not attempt automatic recovery.
    """

    def __init__(self, adapter, hostname: Optional[str] = None):
        """
        Args:
            adapter: VersionControlAdapter for the working tree
            hostname: Machine name for per-host branches; read once from the
                platform when not given
        """
        self.adapter = adapter
        self.hostname = hostname or get_hostname()
        self.state = BranchState.UNINITIALIZED
        self.logger = logging.getLogger('cfgsync.git_sync.branch_strategy')

    def host_branch_name(self, prefix: str) -> str:
        return f"{prefix}{self.hostname}"

    def _state_for(self, branch: Optional[str], config: BranchConfig) -> BranchState:
        if not branch:
            return BranchState.UNINITIALIZED
        if branch == config.default_branch:
            return BranchState.ON_DEFAULT
        if branch.startswith(config.develop_prefix):
            return BranchState.ON_DEVELOP_HOST
        if branch.startswith(config.feature_prefix):
            return BranchState.ON_FEATURE
        return BranchState.UNINITIALIZED

    def detect_state(self, config: BranchConfig) -> BranchState:
        """Derive the state from the checked-out branch, e.g. after a restart."""
        self.state = self._state_for(self.adapter.current_branch(), config)
        return self.state

    def create_host_branch(self, prefix: str) -> GitResult:
        """Create (or switch to) ``prefix + hostname``."""
        name = self.host_branch_name(prefix)

        if self.adapter.branch_exists(name):
            result = self.adapter.branch_switch(name)
            created = False
        else:
            result = self.adapter.branch_create(name)
            created = True

        if not result.success:
            return result
        return create_git_result(True, "create_host_branch", data={"branch": name, "created": created})

    def initialize_strategy(self, config: BranchConfig) -> GitResult:
        """
        Check out the branch the strategy says this machine works on.

        develop-host: switch to the host branch, creating it from the default
        branch if missing. Every other strategy works on the default branch;
        ``custom`` falls back to simple.
        """
        if config.strategy is BranchStrategy.DEVELOP_HOST:
            host_branch = self.host_branch_name(config.develop_prefix)

            if not self.adapter.branch_exists(host_branch):
                switched = self.adapter.branch_switch(config.default_branch)
                if not switched.success:
                    return switched

            result = self.create_host_branch(config.develop_prefix)
            if not result.success:
                return result

            self.state = BranchState.ON_DEVELOP_HOST
            self.logger.info(f"Branch strategy develop-host: working on {host_branch}")
            return create_git_result(True, "initialize_strategy", data={
                "branch": host_branch, "state": self.state.value
            })

        if config.strategy is BranchStrategy.CUSTOM:
            self.logger.info("Custom branch strategy: using simple strategy")

        result = self.adapter.branch_switch(config.default_branch)
        if not result.success:
            return result

        self.state = BranchState.ON_DEFAULT
        return create_git_result(True, "initialize_strategy", data={
            "branch": config.default_branch, "state": self.state.value
        })

    def create_feature_branch(self, name: str, config: BranchConfig) -> GitResult:
        """Create a feature branch from the default branch and check it out."""
        if not name:
            raise ValueError("Feature branch name must not be empty")

        branch = name if name.startswith(config.feature_prefix) else f"{config.feature_prefix}{name}"

        switched = self.adapter.branch_switch(config.default_branch)
        if not switched.success:
            return switched

        result = self.adapter.branch_create(branch)
        if not result.success:
            return result

        self.state = BranchState.ON_FEATURE
        return create_git_result(True, "create_feature_branch", data={"branch": branch})

    def branch_for_strategy(self, config: BranchConfig) -> str:
        if config.strategy is BranchStrategy.DEVELOP_HOST:
            return self.host_branch_name(config.develop_prefix)
        return config.default_branch

    def current_branch_info(self, config: BranchConfig) -> Optional[BranchInfo]:
        name = self.adapter.current_branch()
        if name is None:
            return None

        if name == config.default_branch:
            branch_type = "default"
        elif name.startswith(config.develop_prefix):
            branch_type = "develop"
        elif name.startswith(config.feature_prefix):
            branch_type = "feature"
        else:
            branch_type = "other"

        return BranchInfo(name=name, type=branch_type, is_default=branch_type == "default")

    def _refresh_default(self, config: BranchConfig) -> GitResult:
        """
        Bring the local default branch up to its remote state before merging.

        Must be called with the default branch checked out.
        """
        fetched = self.adapter.fetch()
        if not fetched.success:
            return fetched

        remote_ref = f"{self.adapter.remote_name}/{config.default_branch}"
        behind = self.adapter.commits_ahead(config.default_branch, remote_ref)
        if behind == 0:
            return create_git_result(True, "verify_default", data={"behind": 0})

        self.logger.info(f"{config.default_branch} is {behind} commit(s) behind {remote_ref}, pulling first")
        pulled = self.adapter.pull(config.default_branch)
        if not pulled.success:
            return pulled
        return create_git_result(True, "verify_default", data={"behind": behind})

    def merge_to_default(self, config: BranchConfig, verify_remote: bool = False) -> GitResult:
        """
        Merge the current branch into the default branch and come back.

        Args:
            config: Branch configuration (``squash_merge`` selects squash)
            verify_remote: Refresh the default branch from the remote right before merging

        Returns:
            GitResult; on success the originating branch is checked out again
        """
        current = self.adapter.current_branch()
        if current is None:
            return create_git_result(False, "merge_to_default", error="Not in a git repository",
                                     error_code="INVALID_GIT_REPOSITORY",
                                     category=ErrorCategory.REPOSITORY_ACCESS)

        if current == config.default_branch:
            return create_git_result(False, "merge_to_default", error="Already on default branch",
                                     error_code="ALREADY_ON_DEFAULT")

        switched = self.adapter.branch_switch(config.default_branch)
        if not switched.success:
            return switched

        if verify_remote:
            refreshed = self._refresh_default(config)
            if not refreshed.success:
                self.adapter.branch_switch(current)
                return refreshed

        strategy = "squash" if config.squash_merge else "merge"
        merged = self.adapter.merge(current, strategy)
        if not merged.success:
            self.logger.error(f"Merge of {current} into {config.default_branch} failed: {merged.error}")
            if merged.conflicts:
                self.adapter.abort_merge()
            self.adapter.branch_switch(current)
            return merged

        commit_hash = None
        if strategy == "squash":
            committed = self.adapter.commit(f"Squash merge from {current}")
            if committed.success:
                commit_hash = committed.data["hash"]
            elif committed.category is not ErrorCategory.NOTHING_TO_COMMIT:
                return committed

        returned = self.adapter.branch_switch(current)
        if not returned.success:
            return returned

        self.state = self._state_for(current, config)
        self.logger.info(f"Merged {current} into {config.default_branch} ({strategy})")
        return create_git_result(True, "merge_to_default", data={
            "source": current,
            "target": config.default_branch,
            "strategy": strategy,
            "hash": commit_hash,
            "skipped": False,
        })

    def is_safe_to_auto_merge(self, temp_branch: str, main_branch: str) -> AutoMergeSafety:
        """Each unmet precondition blocks the merge with its own reason."""
        if not self.adapter.is_repository():
            return AutoMergeSafety(False, "Not in a git repository")

        if not self.adapter.has_remote():
            return AutoMergeSafety(False, "No remote repository configured")

        current = self.adapter.current_branch()
        if current != temp_branch:
            return AutoMergeSafety(False, f"Not on temp branch (currently on {current})")

        if self.adapter.commits_ahead(main_branch) == 0:
            return AutoMergeSafety(False, "No commits ahead on temp branch")

        return AutoMergeSafety(True)

    def auto_merge_if_needed(self, config: BranchConfig) -> GitResult:
        """
        Merge the host branch into default when the configuration asks for it.

        Returns ``{success: True, skipped: True}`` unless auto-merge is on,
        the strategy is develop-host and the current branch has the develop
        prefix.
        """
        skipped = create_git_result(True, "auto_merge", data={"skipped": True})

        if not config.auto_merge_to_default or config.strategy is not BranchStrategy.DEVELOP_HOST:
            return skipped

        current = self.adapter.current_branch()
        if not current or not current.startswith(config.develop_prefix):
            return skipped

        safety = self.is_safe_to_auto_merge(current, config.default_branch)
        if not safety.safe:
            self.logger.info(f"Auto-merge skipped: {safety.reason}")
            return create_git_result(True, "auto_merge", data={"skipped": True, "reason": safety.reason})

        return self.merge_to_default(config, verify_remote=True)

    def cleanup_old_branches(self, config: BranchConfig, days_old: int = 30,
                             now: Optional[datetime] = None) -> GitResult:
        """
        Delete local branches whose last commit is older than ``days_old``.

        The current and default branches are never deleted. Branches git
        refuses to delete (unmerged work) are reported in ``failed``.
        """
        if days_old < 0:
            raise ValueError("days_old must be non-negative")

        listing = self.adapter.branch_list()
        if not listing.success:
            return listing

        current = self.adapter.current_branch()
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_old)
        deleted, failed = [], []

        for name in listing.data:
            if name in (current, config.default_branch) or name.startswith("remotes/"):
                continue

            last_commit = self.adapter.last_commit_date(name)
            if last_commit is None or last_commit >= cutoff:
                continue

            result = self.adapter.branch_delete(name)
            if result.success:
                deleted.append(name)
            else:
                failed.append(name)

        if deleted:
            self.logger.info(f"Deleted {len(deleted)} branch(es) older than {days_old} days")

        return create_git_result(True, "cleanup_old_branches", data={
            "deleted": deleted,
            "deleted_count": len(deleted),
            "failed": failed,
        })
