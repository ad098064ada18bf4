"""Conflict detection and per-path resolution."""

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from ..errors import ConfigurationError
from .repository_info import FileStatus, RepositoryState
from .utils import GitResult


class ConflictPolicy(Enum):
    """How conflicts found during a sync are resolved."""
    OURS = "ours"
    THEIRS = "theirs"
    MANUAL = "manual"


class ConflictSide(Enum):
    """Which version of a conflicted path to keep: local (ours) or remote (theirs)."""
    OURS = "ours"
    THEIRS = "theirs"


class ConflictSource(Enum):
    """
    Operation that produced the conflict.

    For a merge, git's ``ours`` stage is the local branch. When stashed local
    changes are re-applied on top of freshly pulled commits, git's ``ours``
    stage is the pulled state and ``theirs`` is the local work.
    """
    MERGE = "merge"
    STASH = "stash"


class ConflictEditor(Protocol):
    """External tool the user resolves conflicts in."""

    def open(self, paths: Sequence[str]) -> bool:
        ...


class CommandEditor:
    """Launches an editor command with the conflicted files as arguments."""

    def __init__(self, command: str, working_dir: Path):
        if not command:
            raise ConfigurationError("Editor command must not be empty")
        self.command = shlex.split(command)
        self.working_dir = Path(working_dir)
        self.logger = logging.getLogger('cfgsync.git_sync.conflicts')

    def open(self, paths: Sequence[str]) -> bool:
        """Start the editor without waiting for it; False if it could not be launched."""
        try:
            subprocess.Popen([*self.command, *paths], cwd=str(self.working_dir))
            self.logger.info(f"Opened {len(paths)} conflicted file(s) in {self.command[0]}")
            return True
        except OSError as e:
            self.logger.warning(f"Could not launch editor {self.command[0]}: {e}")
            return False


@dataclass
class ConflictResolution:
    """Outcome of resolving every conflicted path of one sync."""
    conflicts: List[str]
    resolved: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    side: Optional[ConflictSide] = None

    @property
    def complete(self) -> bool:
        return self.side is not None and not self.failed and len(self.resolved) == len(self.conflicts)


class ConflictResolver:
    """Finds conflicted paths and resolves them one by one through the adapter."""

    def __init__(self, adapter, policy: ConflictPolicy = ConflictPolicy.OURS, editor: Optional[ConflictEditor] = None):
        self.adapter = adapter
        self.policy = policy
        self.editor = editor
        self.logger = logging.getLogger('cfgsync.git_sync.conflicts')

    @staticmethod
    def list_conflicts(state: RepositoryState) -> List[str]:
        """Exactly the paths whose status is CONFLICTED."""
        return [path for path, status in state.files.items() if status is FileStatus.CONFLICTED]

    def resolve(self, path: str, side: ConflictSide, source: ConflictSource = ConflictSource.MERGE) -> GitResult:
        """
        Keep one version of ``path`` and stage it.

        Args:
            path: Conflicted path
            side: ConflictSide.OURS keeps the local version, THEIRS the remote one
            source: Operation that produced the conflict
        """
        if not isinstance(side, ConflictSide):
            side = ConflictSide(side)

        git_side = side.value
        if source is ConflictSource.STASH:
            git_side = "theirs" if side is ConflictSide.OURS else "ours"

        result = self.adapter.checkout_conflict_side(path, git_side)
        if result.success:
            self.logger.info(f"Resolved conflict in {path} (kept {'local' if side is ConflictSide.OURS else 'remote'})")
        else:
            self.logger.error(f"Could not resolve conflict in {path}: {result.error}")
        return result

    def resolve_all(self, conflicts: Sequence[str], source: ConflictSource = ConflictSource.MERGE) -> ConflictResolution:
        """
        Apply the configured policy to every conflicted path.

        With the manual policy nothing is resolved; the editor, if any, is
        opened on the conflicted paths and the caller re-invokes ``resolve``
        per path later.
        """
        resolution = ConflictResolution(conflicts=list(conflicts))

        if self.policy is ConflictPolicy.MANUAL:
            self.logger.warning(f"{len(conflicts)} conflict(s) require manual resolution")
            if self.editor is not None and conflicts:
                self.editor.open(list(conflicts))
            return resolution

        resolution.side = ConflictSide(self.policy.value)
        for path in conflicts:
            result = self.resolve(path, resolution.side, source)
            if result.success:
                resolution.resolved.append(path)
            else:
                resolution.failed.append(path)

        return resolution

    @staticmethod
    def resolution_message(side: ConflictSide, paths: Sequence[str]) -> str:
        """Commit message for a conflict-resolution commit."""
        kept = "local" if side is ConflictSide.OURS else "remote"
        message = f"Resolved conflicts - kept {kept} changes"
        if paths:
            message += "\n\n" + "\n".join(f"- {path}" for path in paths)
        return message
