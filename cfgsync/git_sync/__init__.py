"""Git-backed synchronization for settings trees.

The scheduler and orchestrator live in ``cfgsync.git_sync.auto_commit`` and
``cfgsync.git_sync.orchestrator``; import them from there.
"""

from .utils import GitResult, create_git_result
from .repository_info import ChangeItem, ChangeType, FileStatus, RepositoryState
from .adapter import VersionControlAdapter
from .conflicts import ConflictPolicy, ConflictResolver, ConflictSide, ConflictSource
from .branch_strategy import BranchConfig, BranchState, BranchStrategy, BranchStrategyManager

__all__ = [
    'GitResult',
    'create_git_result',
    'ChangeItem',
    'ChangeType',
    'FileStatus',
    'RepositoryState',
    'VersionControlAdapter',
    'ConflictPolicy',
    'ConflictResolver',
    'ConflictSide',
    'ConflictSource',
    'BranchConfig',
    'BranchState',
    'BranchStrategy',
    'BranchStrategyManager'
]
