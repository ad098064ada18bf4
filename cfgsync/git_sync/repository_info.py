"""Repository state data structures."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class FileStatus(Enum):
    """Status of a single path as reported at the adapter boundary."""
    UNMODIFIED = "unmodified"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    CONFLICTED = "conflicted"


class ChangeType(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class ChangeItem:
    """One file changed by a pull or merge."""
    type: ChangeType
    path: str
    content: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        result = {"type": self.type.value, "path": self.path}
        if self.content is not None:
            result["content"] = self.content
        return result


@dataclass
class RepositoryState:
    """
    Snapshot of the working tree, produced fresh on every status query.

    ``staged``, ``unstaged`` and ``untracked`` hold paths; ``files`` maps every
    non-clean path to its FileStatus.
    """
    has_changes: bool
    current_branch: str
    staged: List[str] = field(default_factory=list)
    unstaged: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    ahead: int = 0
    behind: int = 0
    files: Dict[str, FileStatus] = field(default_factory=dict)

    @property
    def conflicted(self) -> List[str]:
        return [path for path, status in self.files.items() if status is FileStatus.CONFLICTED]

    @property
    def changed_paths(self) -> List[str]:
        """All paths with any kind of change, in first-seen order."""
        return list(self.files.keys())

    def count(self, status: FileStatus) -> int:
        return sum(1 for value in self.files.values() if value is status)

    def to_dict(self) -> Dict[str, object]:
        return {
            "has_changes": self.has_changes,
            "current_branch": self.current_branch,
            "staged": list(self.staged),
            "unstaged": list(self.unstaged),
            "untracked": list(self.untracked),
            "conflicted": self.conflicted,
            "ahead": self.ahead,
            "behind": self.behind,
        }
