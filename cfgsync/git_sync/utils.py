"""Result types shared by the git synchronization components."""

from dataclasses import dataclass
from typing import Any, Optional

from .error_types import ErrorCategory


@dataclass
class GitResult:
    """Result of a single version-control operation."""
    success: bool
    operation: str
    data: Any = None
    error: Optional[str] = None
    conflicts: bool = False
    attempts: int = 1
    error_code: Optional[str] = None
    category: Optional[ErrorCategory] = None

    @property
    def message(self) -> str:
        """Human-readable summary of the outcome."""
        if self.success:
            return f"{self.operation} completed successfully"
        return self.error or f"{self.operation} failed"

    def raise_for_error(self) -> "GitResult":
        """
        Raise the exception matching this result's failure category.

        Returns:
            self, so successful results can be chained

        Raises:
            SyncError subclass for failed results
        """
        if self.success:
            return self

        from .error_recovery import get_error_classifier

        category = self.category or ErrorCategory.UNKNOWN
        raise get_error_classifier().exception_for(category, f"{self.operation} failed: {self.message}")


def create_git_result(
    success: bool,
    operation: str,
    data: Any = None,
    error: Optional[str] = None,
    conflicts: bool = False,
    attempts: int = 1,
    error_code: Optional[str] = None,
    category: Optional[ErrorCategory] = None
) -> GitResult:
    """
    Helper function to create GitResult instances.

    Args:
        success: Whether the operation was successful
        operation: Name of the operation that was performed
        data: Operation payload (status, commit info, branch list, ...)
        error: Error text for failed operations
        conflicts: Whether the command reported merge conflicts
        attempts: Number of attempts made (default: 1)
        error_code: Optional error code for failed operations
        category: Optional failure category

    Returns:
        GitResult instance with all fields populated
    """
    return GitResult(
        success=success,
        operation=operation,
        data=data,
        error=error,
        conflicts=conflicts,
        attempts=attempts,
        error_code=error_code,
        category=category
    )
