"""The sync operation: export, pull, resolve conflicts, import, commit and push."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import Config
from ..errors import ConflictError, GitOperationError, SyncError
from ..platform import get_hostname
from .adapter import VersionControlAdapter
from .auto_commit import AutoCommitScheduler, ScheduledTask
from .branch_strategy import BranchConfig, BranchStrategyManager
from .conflicts import CommandEditor, ConflictEditor, ConflictPolicy, ConflictResolver, ConflictSource
from .error_types import ErrorCategory
from .performance_logger import get_performance_logger
from .repository_info import ChangeItem


@dataclass
class SyncResult:
    success: bool
    message: str
    conflicts: Optional[List[str]] = None
    changes: Optional[List[ChangeItem]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.conflicts is not None:
            result["conflicts"] = list(self.conflicts)
        if self.changes is not None:
            result["changes"] = [change.to_dict() for change in self.changes]
        return result


@dataclass
class SyncEngine:
    """
    Everything one repository needs to sync, built once and passed around.

    The lock is shared by the orchestrator and the auto-commit scheduler so
    only one of them touches the working tree at a time.
    """
    adapter: VersionControlAdapter
    branch_manager: BranchStrategyManager
    conflict_resolver: ConflictResolver
    scheduler: AutoCommitScheduler
    branch_config: BranchConfig
    lock: threading.Lock = field(default_factory=threading.Lock)

    @classmethod
    def build(cls, config: Config, message_generator=None, editor: Optional[ConflictEditor] = None,
              hostname: Optional[str] = None, settings_io=None) -> "SyncEngine":
        adapter = VersionControlAdapter.from_config(config)
        branch_config = config.branch_config()
        branch_manager = BranchStrategyManager(adapter, hostname=hostname)

        if editor is None and config.editor_command:
            editor = CommandEditor(config.editor_command, config.repo_dir)
        resolver = ConflictResolver(adapter, ConflictPolicy(config.conflict_policy), editor)

        lock = threading.Lock()
        scheduler = AutoCommitScheduler(
            adapter, branch_manager, config.auto_commit_settings(), branch_config,
            message_generator=message_generator, lock=lock, settings_io=settings_io
        )
        return cls(adapter, branch_manager, resolver, scheduler, branch_config, lock)


def _log_notice(message: str) -> None:
    logging.getLogger('cfgsync.git_sync.orchestrator').info(message)


class SyncOrchestrator:
    """
    Runs sync cycles against one repository.

    Exactly one cycle may be in flight; a second request returns
    immediately with "Sync already in progress". This is the only place
    where exceptions are turned into a failed SyncResult.
    """

    def __init__(self, engine: SyncEngine, config: Config, settings_io=None,
                 notifier: Callable[[str], None] = _log_notice):
        """
        Args:
            engine: Components for the repository
            config: Remote URL, author and interval settings
            settings_io: Settings collaborator (export before commit, import after pull)
            notifier: Receives user-facing notices such as the number of applied changes
        """
        self.engine = engine
        self.config = config
        self.settings_io = settings_io
        self.notifier = notifier
        self._strategy_ready = False
        self._auto_sync_ticket: Optional[ScheduledTask] = None
        self.logger = logging.getLogger('cfgsync.git_sync.orchestrator')
        self.perf_logger = get_performance_logger()

    @property
    def in_progress(self) -> bool:
        return self.engine.lock.locked()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def sync(self) -> SyncResult:
        """Run one full sync cycle."""
        if not self.engine.lock.acquire(blocking=False):
            self.logger.info("Sync already in progress")
            return SyncResult(success=False, message="Sync already in progress")

        try:
            with self.perf_logger.time_operation("sync", log_level=logging.INFO):
                return self._sync()
        except ConflictError as e:
            self.logger.error(f"Sync stopped on conflicts: {e}")
            return SyncResult(success=False, message=f"Sync failed: {e}", conflicts=e.conflicts)
        except SyncError as e:
            self.logger.error(f"Sync failed: {e}")
            return SyncResult(success=False, message=f"Sync failed: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected sync failure: {e}", exc_info=True)
            return SyncResult(success=False, message=f"Sync failed: {e}")
        finally:
            self.engine.lock.release()

    def pull_latest(self) -> SyncResult:
        """Pull remote changes and apply them to the live settings without committing."""
        if not self.engine.lock.acquire(blocking=False):
            return SyncResult(success=False, message="Sync already in progress")

        try:
            self._ensure_repository()
            pulled = self.engine.adapter.pull()
            if pulled.conflicts:
                conflicts = self._resolve_conflicts(ConflictSource.MERGE)
                if conflicts is None:
                    return self._manual_result()
                self._import_settings(conflicts)
                return SyncResult(success=True, message=self._conflict_message(), conflicts=conflicts)
            if not pulled.success and pulled.category is not ErrorCategory.REMOTE_REF_MISSING:
                pulled.raise_for_error()

            changes = pulled.data if pulled.success else []
            self._import_settings(changes)
            return SyncResult(success=True, message=f"Pulled {len(changes)} change(s)", changes=changes)
        except SyncError as e:
            self.logger.error(f"Pull failed: {e}")
            return SyncResult(success=False, message=f"Pull failed: {e}")
        finally:
            self.engine.lock.release()

    def history(self, limit: int = 20) -> List[Dict[str, Any]]:
        result = self.engine.adapter.log(limit=limit)
        return result.data if result.success else []

    def repository_status(self) -> Dict[str, Any]:
        adapter = self.engine.adapter
        exists = adapter.is_repository()
        status: Dict[str, Any] = {
            "repository_exists": exists,
            "remote_configured": adapter.has_remote() if exists else False,
            "sync_in_progress": self.in_progress,
            "branch_state": self.engine.branch_manager.state.value,
            "auto_commit": self.engine.scheduler.status(),
            "auto_sync": self._auto_sync_ticket is not None and self._auto_sync_ticket.active,
            "timings": self.perf_logger.summary(),
        }
        if exists:
            info = self.engine.branch_manager.current_branch_info(self.engine.branch_config)
            status["branch"] = info.to_dict() if info else None
            status["expected_branch"] = self.engine.branch_manager.branch_for_strategy(self.engine.branch_config)
            status["pending"] = self.engine.scheduler.pending_changes_summary()
            state = adapter.status()
            if state.success:
                status["working_tree"] = state.data.to_dict()
        return status

    def start_auto_sync(self) -> ScheduledTask:
        """Run ``sync`` every ``sync_interval_minutes``; replaces a running auto-sync timer."""
        self.stop_auto_sync()
        self._auto_sync_ticket = ScheduledTask(
            self.config.sync_interval_minutes * 60, self.sync, name="cfgsync-auto-sync"
        ).start()
        self.logger.info(f"Auto-sync every {self.config.sync_interval_minutes} minute(s)")
        return self._auto_sync_ticket

    def stop_auto_sync(self) -> None:
        if self._auto_sync_ticket is not None:
            self._auto_sync_ticket.cancel()
            self._auto_sync_ticket = None

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------

    def _sync(self) -> SyncResult:
        adapter = self.engine.adapter
        scheduler = self.engine.scheduler

        self._ensure_repository()
        self._ensure_strategy()

        if self.settings_io is not None:
            self.settings_io.export_settings()

        state = adapter.status().raise_for_error().data
        if state.conflicted:
            # Left over from an earlier manual resolution
            conflicts = self._resolve_conflicts(ConflictSource.MERGE)
            if conflicts is None:
                return self._manual_result()
            return SyncResult(success=True, message=self._conflict_message(), conflicts=conflicts)

        has_local_changes = state.has_changes

        if not adapter.has_remote():
            if not has_local_changes:
                return SyncResult(success=True, message="No changes (no remote configured)")
            committed = scheduler.run_commit_cycle()
            if not committed.success:
                raise GitOperationError(committed.error or "Commit failed")
            return SyncResult(success=True, message="Changes committed locally (no remote configured)")

        stashed = False
        if has_local_changes and adapter.has_commits():
            stash = adapter.stash("cfgsync: local changes before pull")
            if stash.success:
                stashed = stash.data["stashed"]
            else:
                self.logger.warning(f"Could not stash local changes, pulling over them: {stash.error}")

        conflicts: List[str] = []
        pulled = adapter.pull()
        if pulled.conflicts:
            resolved = self._resolve_conflicts(ConflictSource.MERGE)
            if resolved is None:
                return self._manual_result(stashed)
            conflicts.extend(resolved)
        elif not pulled.success and pulled.category is not ErrorCategory.REMOTE_REF_MISSING:
            if stashed:
                adapter.stash_pop()
            pulled.raise_for_error()

        changes: List[ChangeItem] = pulled.data if pulled.success else []

        if stashed:
            popped = adapter.stash_pop()
            if popped.conflicts:
                resolved = self._resolve_conflicts(ConflictSource.STASH)
                if resolved is None:
                    return self._manual_result()
                conflicts.extend(path for path in resolved if path not in conflicts)
            elif not popped.success:
                popped.raise_for_error()

        if conflicts:
            self._import_settings(conflicts)
            return SyncResult(success=True, message=self._conflict_message(), conflicts=conflicts,
                              changes=changes)

        if changes:
            self._import_settings(changes)

        if has_local_changes:
            committed = scheduler.run_commit_cycle(force_push=True)
            if not committed.success:
                raise GitOperationError(committed.error or "Commit failed")
            if committed.error:
                return SyncResult(success=False, message=f"Changes committed but not pushed: {committed.error}",
                                  changes=changes)
        elif scheduler.commit_count > 0 or adapter.unpushed_commits() > 0:
            pushed = scheduler.push_pending()
            if pushed.error:
                return SyncResult(success=False, message=pushed.error, changes=changes)

        return SyncResult(success=True, message="Settings synced successfully", changes=changes)

    def _ensure_repository(self) -> None:
        adapter = self.engine.adapter

        if adapter.is_repository():
            if self.config.git_remote_url and adapter.remote_url() != self.config.git_remote_url:
                adapter.add_remote(self.config.git_remote_url).raise_for_error()
            return

        self.logger.info(f"Initializing sync repository at {adapter.repo_path}")
        adapter.init(self.engine.branch_config.default_branch).raise_for_error()

        hostname = get_hostname()
        adapter.configure_author(
            self.config.git_author_name or f"cfgsync ({hostname})",
            self.config.git_author_email or f"cfgsync@{hostname}.local"
        ).raise_for_error()

        if not self.config.git_remote_url:
            return

        adapter.add_remote(self.config.git_remote_url).raise_for_error()
        pulled = adapter.pull(self.engine.branch_config.default_branch)
        if pulled.success:
            self._import_settings(pulled.data)
        elif pulled.category is ErrorCategory.REMOTE_REF_MISSING:
            self.logger.info("Remote is empty; the first push will publish local settings")
        else:
            self.logger.warning(f"Initial pull failed, continuing with local settings: {pulled.error}")

    def _ensure_strategy(self) -> None:
        if self._strategy_ready:
            return
        result = self.engine.branch_manager.initialize_strategy(self.engine.branch_config)
        if result.success:
            self._strategy_ready = True
        else:
            self.logger.warning(f"Branch strategy not initialized: {result.error}")

    def _import_settings(self, changes: List[Any]) -> None:
        if self.settings_io is None or not changes:
            return
        self.settings_io.import_settings()
        self.notifier(f"Applied {len(changes)} setting changes from remote")

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def _resolve_conflicts(self, source: ConflictSource) -> Optional[List[str]]:
        """
        Resolve every conflicted path with the configured policy and commit.

        Returns:
            The conflicted paths, or None when the policy is manual

        Raises:
            ConflictError: A path could not be resolved
        """
        adapter = self.engine.adapter
        resolver = self.engine.conflict_resolver

        state = adapter.status().raise_for_error().data
        paths = resolver.list_conflicts(state)
        resolution = resolver.resolve_all(paths, source)

        if resolver.policy is ConflictPolicy.MANUAL:
            return None
        if resolution.failed:
            raise ConflictError(f"Could not resolve {len(resolution.failed)} conflicted file(s)",
                                conflicts=paths)

        if source is ConflictSource.STASH:
            adapter.stash_drop()

        adapter.add(".", include_untracked=True).raise_for_error()
        committed = adapter.commit(resolver.resolution_message(resolution.side, paths))
        if not committed.success and committed.category is not ErrorCategory.NOTHING_TO_COMMIT:
            committed.raise_for_error()

        self.logger.warning(f"Resolved {len(paths)} conflict(s) with policy '{resolver.policy.value}'")
        return paths

    def _conflict_message(self) -> str:
        kept = "local" if self.engine.conflict_resolver.policy is ConflictPolicy.OURS else "remote"
        return f"Conflicts resolved automatically (kept {kept} changes)"

    def _manual_result(self, stashed: bool = False) -> SyncResult:
        state = self.engine.adapter.status()
        conflicts = self.engine.conflict_resolver.list_conflicts(state.data) if state.success else []
        message = "Manual conflict resolution required"
        if stashed:
            message += "; local changes are saved in the git stash"
        return SyncResult(success=False, message=message, conflicts=conflicts)
