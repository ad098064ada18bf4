"""Retry execution for read-only git commands."""

import logging
import time
from typing import Any, Callable

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .error_recovery import get_error_classifier, git_error_text
from .error_types import ErrorCategory
from .utils import GitResult, create_git_result


def execute_git_operation_with_retry(
    operation_func: Callable[[], Any],
    operation: str,
    max_attempts: int = 3,
    base_delay: float = 1.0
) -> GitResult:
    """
    Execute a read-only GitPython operation with retry and exponential backoff.

    Only failures whose category is retryable (network, repository lock) are
    retried; everything else is returned on the first failure. Never use
    this for commands that mutate history.

    Args:
        operation_func: Function that executes the GitPython operation and returns its payload
        operation: Description of the operation for logging
        max_attempts: Maximum number of attempts
        base_delay: Delay before the second attempt; doubles on each retry

    Returns:
        GitResult carrying the payload on success
    """
    logger = logging.getLogger('cfgsync.git_sync')
    classifier = get_error_classifier()
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"Executing git operation (attempt {attempt}/{max_attempts}): {operation}")
            data = operation_func()
            return create_git_result(True, operation, data=data, attempts=attempt)

        except GitCommandError as e:
            error_text = git_error_text(e)
            category = classifier.categorize_error(error_text)
            retryable = classifier.is_retryable(category)

            if attempt == max_attempts or not retryable:
                logger.error(f"{operation} failed (attempt {attempt}/{max_attempts}): {error_text}")
                return create_git_result(
                    False, operation,
                    error=error_text,
                    conflicts=category is ErrorCategory.MERGE_CONFLICT,
                    attempts=attempt,
                    error_code=classifier.error_code_for(category),
                    category=category
                )

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{operation} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s")
            time.sleep(delay)

        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            logger.error(f"{operation} failed - invalid repository: {e}")
            return create_git_result(
                False, operation,
                error=f"Not a git repository: {e}",
                attempts=attempt,
                error_code="INVALID_GIT_REPOSITORY",
                category=ErrorCategory.REPOSITORY_ACCESS
            )

    # Unreachable: the loop always returns
    return create_git_result(False, operation, error="No attempts made", error_code="GIT_COMMAND_FAILED")
