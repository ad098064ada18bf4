"""Classification of git failure output into categories, codes and exceptions."""

import logging
from typing import Dict, Type

from git import GitCommandError

from ..errors import (
    SyncError, GitOperationError, ConflictError, AuthError, NetworkError, ConfigurationError
)
from .error_types import ErrorCategory, ErrorResolution, RecoveryAction
from .error_strategies import build_error_patterns, build_error_strategies


def git_error_text(error: GitCommandError) -> str:
    """
    Extract the command output from a GitCommandError.

    The exception's string form also contains the command line, which can
    include commit messages and branch names; only stdout and stderr are
    used for classification.
    """
    parts = []
    for stream in (error.stdout, error.stderr):
        if not stream:
            continue
        text = str(stream).strip()
        for prefix in ("stdout:", "stderr:"):
            if text.startswith(prefix):
                text = text[len(prefix):].strip()
        parts.append(text.strip("'").strip())
    text = "\n".join(part for part in parts if part)
    return text or f"git exited with status {error.status}"


_EXCEPTION_TYPES: Dict[ErrorCategory, Type[SyncError]] = {
    ErrorCategory.MERGE_CONFLICT: ConflictError,
    ErrorCategory.AUTHENTICATION: AuthError,
    ErrorCategory.NETWORK: NetworkError,
    ErrorCategory.CONFIGURATION: ConfigurationError,
}


class ErrorClassifier:
    """
    Maps git command output to an ErrorCategory and recovery strategy.

    The classifier holds no repository state; one instance is shared by
    every adapter in the process.
    """

    def __init__(self):
        self.logger = logging.getLogger('cfgsync.git_sync.error_recovery')
        self.error_patterns = build_error_patterns()
        self.error_strategies = build_error_strategies()

    def categorize_error(self, error_text: str) -> ErrorCategory:
        """
        Categorize an error based on its message text.

        Args:
            error_text: Combined stdout/stderr of the failed command

        Returns:
            ErrorCategory for the first matching pattern, UNKNOWN otherwise
        """
        lowered = (error_text or "").lower()
        for pattern, category in self.error_patterns:
            if pattern in lowered:
                return category
        return ErrorCategory.UNKNOWN

    def is_conflict(self, error_text: str) -> bool:
        """True when the output carries a merge conflict marker."""
        return self.categorize_error(error_text) is ErrorCategory.MERGE_CONFLICT

    def resolution_for(self, category: ErrorCategory) -> ErrorResolution:
        return self.error_strategies.get(category, self.error_strategies[ErrorCategory.UNKNOWN])

    def error_code_for(self, category: ErrorCategory) -> str:
        return self.resolution_for(category).error_code

    def is_retryable(self, category: ErrorCategory) -> bool:
        """Only transient failures are worth retrying."""
        return self.resolution_for(category).action is RecoveryAction.RETRY

    def exception_for(self, category: ErrorCategory, message: str) -> SyncError:
        """Build the exception matching a failure category."""
        exc_type = _EXCEPTION_TYPES.get(category, GitOperationError)
        return exc_type(message, details={"category": category.value,
                                          "error_code": self.error_code_for(category)})

    def describe(self, category: ErrorCategory, error_text: str) -> str:
        """User-facing message with the first resolution step appended."""
        resolution = self.resolution_for(category)
        message = f"{resolution.user_message}: {error_text.strip()}" if error_text else resolution.user_message
        if resolution.resolution_steps:
            message += f" ({resolution.resolution_steps[0]})"
        return message


_classifier = None


def get_error_classifier() -> ErrorClassifier:
    """Get the shared ErrorClassifier instance."""
    global _classifier
    if _classifier is None:
        _classifier = ErrorClassifier()
    return _classifier
