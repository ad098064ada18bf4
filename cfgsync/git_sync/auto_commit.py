"""Timer-driven commit pipeline: status, stage, message, commit, push, auto-merge."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..messages import CommitContext, CommitMessageGenerator, template_commit_message
from .branch_strategy import BranchConfig
from .error_types import ErrorCategory
from .performance_logger import get_performance_logger
from .repository_info import FileStatus, RepositoryState

# Commit subjects handed to the message generator as style examples
RECENT_COMMIT_LIMIT = 3


@dataclass
class AutoCommitSettings:
    enabled: bool = False
    interval_minutes: float = 10
    include_untracked: bool = True
    auto_push: bool = True
    push_after_commits: int = 5
    ai_messages: bool = False
    message_timeout: float = 30.0


@dataclass
class CommitResult:
    """Outcome of one commit cycle."""
    success: bool
    message: Optional[str] = None
    files_changed: int = 0
    hash: Optional[str] = None
    error: Optional[str] = None
    pushed: bool = False
    merged: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "files_changed": self.files_changed,
            "hash": self.hash,
            "error": self.error,
            "pushed": self.pushed,
            "merged": self.merged,
            "skipped": self.skipped,
        }


class SchedulerPhase(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    STAGING = "staging"
    MESSAGE_GENERATION = "message_generation"
    COMMITTING = "committing"
    PUSHING = "pushing"
    MERGING = "merging"


class ScheduledTask:
    """
    Cancellable repeating timer.

    Runs ``callback`` every ``interval`` seconds on a daemon thread until
    cancelled. Cancelling stops future ticks; a tick already running is
    allowed to finish.
    """

    def __init__(self, interval: float, callback: Callable[[], Any], name: str = "cfgsync-timer"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.logger = logging.getLogger('cfgsync.git_sync.scheduler')

    def start(self) -> "ScheduledTask":
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            try:
                self._callback()
            except Exception as e:
                self.logger.error(f"{self.name} tick failed: {e}", exc_info=True)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._cancelled.is_set()


def _tracked_only(state: RepositoryState) -> RepositoryState:
    """Copy of ``state`` without untracked files."""
    untracked = set(state.untracked)
    files = {path: status for path, status in state.files.items() if path not in untracked}
    return replace(state, untracked=[], files=files, has_changes=bool(files))


class AutoCommitScheduler:
    """
    Commits local changes on a fixed interval.

    At most one timer is armed at any time; ``arm`` returns the ticket and
    ``disarm`` cancels it. Ticks take the repository lock without blocking
    and are skipped while a sync holds it.
    """

    def __init__(
        self,
        adapter,
        branch_manager,
        settings: AutoCommitSettings,
        branch_config: BranchConfig,
        message_generator: Optional[CommitMessageGenerator] = None,
        lock: Optional[threading.Lock] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings_io=None
    ):
        """
        Args:
            adapter: VersionControlAdapter for the working tree
            branch_manager: BranchStrategyManager used for auto-merge after push
            settings: Interval, staging and push settings
            branch_config: Branch strategy configuration
            message_generator: Optional commit message generator collaborator
            lock: Repository lock shared with the sync orchestrator
            clock: Time source for commit timestamps
            settings_io: Settings collaborator; live settings are exported before each tick
        """
        self.adapter = adapter
        self.branch_manager = branch_manager
        self.settings = settings
        self.branch_config = branch_config
        self.message_generator = message_generator
        self.settings_io = settings_io
        self.phase = SchedulerPhase.IDLE

        self._lock = lock or threading.Lock()
        self._timer_lock = threading.Lock()
        self._ticket: Optional[ScheduledTask] = None
        self._commit_count = 0
        self._last_commit_time: Optional[datetime] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._clock = clock

        self.logger = logging.getLogger('cfgsync.git_sync.scheduler')
        self.perf_logger = get_performance_logger()

    @property
    def commit_count(self) -> int:
        """Commits made since the last successful push."""
        return self._commit_count

    @property
    def last_commit_time(self) -> Optional[datetime]:
        return self._last_commit_time

    @property
    def ticket(self) -> Optional[ScheduledTask]:
        return self._ticket

    # ------------------------------------------------------------------
    # Timer lifecycle
    # ------------------------------------------------------------------

    def arm(self) -> Optional[ScheduledTask]:
        """Start the timer, replacing any armed one; None when auto-commit is disabled."""
        with self._timer_lock:
            if self._ticket is not None:
                self._ticket.cancel()
                self._ticket = None

            if not self.settings.enabled:
                return None

            self._ticket = ScheduledTask(
                self.settings.interval_minutes * 60, self.tick, name="cfgsync-auto-commit"
            ).start()
            self.logger.info(f"Auto-commit armed every {self.settings.interval_minutes} minute(s)")
            return self._ticket

    def disarm(self, ticket: Optional[ScheduledTask] = None) -> None:
        """Cancel ``ticket`` (the armed one by default)."""
        with self._timer_lock:
            ticket = ticket or self._ticket
            if ticket is None:
                return
            ticket.cancel()
            if ticket is self._ticket:
                self._ticket = None
                self.logger.info("Auto-commit disarmed")

    def start(self) -> Optional[ScheduledTask]:
        return self.arm()

    def stop(self) -> None:
        self.disarm()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def update_settings(self, settings: AutoCommitSettings) -> None:
        """Apply new settings, re-arming the timer if its interval or enabled flag changed."""
        previous = self.settings
        self.settings = settings

        if previous.interval_minutes != settings.interval_minutes or previous.enabled != settings.enabled:
            if settings.enabled:
                self.arm()
            else:
                self.disarm()

    # ------------------------------------------------------------------
    # Commit cycle
    # ------------------------------------------------------------------

    def tick(self) -> CommitResult:
        """One timer tick; skipped if the repository is busy."""
        if not self._lock.acquire(blocking=False):
            self.logger.info("Repository busy, skipping auto-commit tick")
            return CommitResult(success=True, message="Repository busy", skipped=True)
        try:
            if self.settings_io is not None:
                self.settings_io.export_settings()
            return self.run_commit_cycle()
        finally:
            self._lock.release()

    def run_commit_cycle(self, force_push: bool = False) -> CommitResult:
        """
        Check, stage, commit and maybe push. The caller holds the repository lock.

        Args:
            force_push: Push after committing regardless of the commit threshold
        """
        try:
            with self.perf_logger.time_operation("auto_commit"):
                return self._commit_cycle(force_push)
        finally:
            self.phase = SchedulerPhase.IDLE

    def _commit_cycle(self, force_push: bool) -> CommitResult:
        self.phase = SchedulerPhase.CHECKING
        status = self.adapter.status()
        if not status.success:
            return CommitResult(success=False, error=status.error)

        state: RepositoryState = status.data
        if not self.settings.include_untracked:
            state = _tracked_only(state)

        if state.conflicted:
            return CommitResult(success=False, error=f"Unresolved conflicts: {', '.join(state.conflicted)}")

        if not state.has_changes:
            self.logger.debug("No changes to commit")
            return CommitResult(success=True, message="No changes to commit")

        self.phase = SchedulerPhase.STAGING
        staged = self.adapter.add(".", include_untracked=self.settings.include_untracked)
        if not staged.success:
            return CommitResult(success=False, error=staged.error)

        self.phase = SchedulerPhase.MESSAGE_GENERATION
        message = self.generate_commit_message(state)

        self.phase = SchedulerPhase.COMMITTING
        committed = self.adapter.commit(message)
        if not committed.success:
            if committed.category is ErrorCategory.NOTHING_TO_COMMIT:
                return CommitResult(success=True, message="No changes to commit")
            return CommitResult(success=False, error=committed.error)

        self._commit_count += 1
        self._last_commit_time = self._clock()
        result = CommitResult(
            success=True,
            message=message,
            files_changed=committed.data.get("files_changed", len(state.files)),
            hash=committed.data.get("hash")
        )
        self.logger.info(f"Auto-committed {result.files_changed} file(s) ({self._commit_count} unpushed)")

        if force_push or (self.settings.auto_push and self._commit_count >= self.settings.push_after_commits):
            self._push(result)

        return result

    def push_pending(self) -> CommitResult:
        """Push commits made earlier without a push. The caller holds the repository lock."""
        result = CommitResult(success=True, message="Pushed pending commits")
        try:
            self._push(result)
        finally:
            self.phase = SchedulerPhase.IDLE
        return result

    def _push(self, result: CommitResult) -> None:
        self.phase = SchedulerPhase.PUSHING
        pushed = self.adapter.push(set_upstream=True)
        if not pushed.success:
            self.logger.warning(f"Push failed, {self._commit_count} commit(s) kept for next push: {pushed.error}")
            result.error = f"Push failed: {pushed.error}"
            return

        self._commit_count = 0
        result.pushed = True

        if not self.branch_config.auto_merge_to_default:
            return

        self.phase = SchedulerPhase.MERGING
        merged = self.branch_manager.auto_merge_if_needed(self.branch_config)
        if not merged.success:
            self.logger.warning(f"Auto-merge failed: {merged.error}")
            result.error = f"Auto-merge failed: {merged.error}"
            return
        if merged.data and merged.data.get("skipped"):
            return

        published = self.adapter.push(self.branch_config.default_branch)
        if not published.success:
            result.error = f"Push of {self.branch_config.default_branch} failed: {published.error}"
            return
        result.merged = True

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cfgsync-message")
        return self._executor

    def _recent_summaries(self) -> list:
        history = self.adapter.log(limit=RECENT_COMMIT_LIMIT)
        if not history.success:
            return []
        return [entry["summary"] for entry in history.data[:RECENT_COMMIT_LIMIT]]

    def generate_commit_message(self, state: RepositoryState) -> str:
        """
        Message from the generator collaborator, bounded by ``message_timeout``.

        Falls back to the template on a disabled generator, a timeout, a
        failed response or any exception raised by the collaborator.
        """
        if self.message_generator is not None and self.settings.ai_messages:
            context = CommitContext.from_state(
                state,
                recent_commits=self._recent_summaries(),
                diff_excerpt=self.adapter.diff_excerpt()
            )
            future = self._get_executor().submit(self.message_generator.generate, context)
            try:
                response = future.result(timeout=self.settings.message_timeout)
                if response.success and response.message:
                    return response.message
                self.logger.warning(f"Commit message generator failed: {response.error}")
            except FutureTimeout:
                future.cancel()
                self.logger.warning(
                    f"Commit message generation timed out after {self.settings.message_timeout}s"
                )
            except Exception as e:
                self.logger.warning(f"Commit message generator raised: {e}")

        return template_commit_message(state, now=self._clock())

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def is_commit_due(self) -> bool:
        if self._last_commit_time is None:
            return True
        elapsed = (self._clock() - self._last_commit_time).total_seconds()
        return elapsed >= self.settings.interval_minutes * 60

    def pending_changes_summary(self) -> Dict[str, Any]:
        status = self.adapter.status()
        if not status.success:
            return {"error": status.error}

        state: RepositoryState = status.data
        return {
            "has_changes": state.has_changes,
            "added": state.count(FileStatus.ADDED),
            "modified": state.count(FileStatus.MODIFIED),
            "deleted": state.count(FileStatus.DELETED),
            "conflicted": len(state.conflicted),
            "unpushed_commits": self._commit_count,
        }

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.settings.enabled,
            "armed": self._ticket is not None and self._ticket.active,
            "phase": self.phase.value,
            "interval_minutes": self.settings.interval_minutes,
            "commit_count": self._commit_count,
            "push_after_commits": self.settings.push_after_commits,
            "last_commit_time": self._last_commit_time.isoformat() if self._last_commit_time else None,
        }
