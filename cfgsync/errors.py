"""Error taxonomy and error handling framework for cfgsync."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional


class SyncError(Exception):
    """Base class for all cfgsync errors."""

    error_code = "SYNC_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GitOperationError(SyncError):
    """A git command failed for a reason other than conflicts, auth or network."""

    error_code = "GIT_OPERATION_FAILED"


class ConflictError(SyncError):
    """Merge conflicts are present in the working tree."""

    error_code = "MERGE_CONFLICT"

    def __init__(self, message: str, conflicts=None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.conflicts = list(conflicts or [])


class AuthError(SyncError):
    """Credentials were rejected by the remote or an HTTP API."""

    error_code = "AUTHENTICATION_FAILED"


class NetworkError(SyncError):
    """The remote could not be reached, or a request timed out."""

    error_code = "NETWORK_ERROR"


class ValidationError(SyncError):
    """Malformed input such as a cyclic profile inheritance chain."""

    error_code = "VALIDATION_ERROR"


class ConfigurationError(SyncError):
    """Missing or invalid configuration."""

    error_code = "CONFIGURATION_ERROR"


class ErrorCategory(Enum):
    """Categories of errors for structured tool responses."""
    GIT_SYNC = "git_sync"
    PROFILE = "profile"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NETWORK = "network"
    SYSTEM = "system"


@dataclass
class ErrorResponse:
    """Standardized error response format for tool calls."""
    error: str
    error_code: str
    message: str
    timestamp: str
    category: str
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert error response to dictionary format."""
        result = {
            "error": self.error,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp,
            "category": self.category
        }
        if self.context:
            result["context"] = self.context
        return result


class ErrorHandler:
    """Converts exceptions raised behind a tool call into ErrorResponse values."""

    def __init__(self):
        self.logger = logging.getLogger('cfgsync.error_handler')

    def _category_for(self, error: Exception) -> ErrorCategory:
        if isinstance(error, (GitOperationError, ConflictError, AuthError)):
            return ErrorCategory.GIT_SYNC
        if isinstance(error, NetworkError):
            return ErrorCategory.NETWORK
        if isinstance(error, ValidationError):
            return ErrorCategory.VALIDATION
        if isinstance(error, ConfigurationError):
            return ErrorCategory.CONFIGURATION
        if isinstance(error, (KeyError, ValueError)):
            return ErrorCategory.PROFILE
        return ErrorCategory.SYSTEM

    def handle_error(self, error: Exception, context: Dict[str, Any] = None) -> ErrorResponse:
        """Build a structured response for any exception and log it."""
        context = context or {}
        category = self._category_for(error)

        if isinstance(error, SyncError):
            error_code = error.error_code
            message = error.message
            if isinstance(error, ConflictError) and error.conflicts:
                context = {**context, "conflicts": error.conflicts}
        elif isinstance(error, KeyError):
            error_code = "NOT_FOUND"
            message = f"Not found: {error.args[0] if error.args else error}"
        elif isinstance(error, ValueError):
            error_code = "INVALID_INPUT"
            message = f"Input validation failed: {error}"
        else:
            error_code = "INTERNAL_ERROR"
            message = f"Unexpected error: {error}"

        response = ErrorResponse(
            error=f"{category.value.replace('_', ' ').capitalize()} error",
            error_code=error_code,
            message=message,
            timestamp=datetime.now().isoformat(),
            category=category.value,
            context=context or None
        )

        if category is ErrorCategory.SYSTEM:
            self.logger.error(f"Unexpected error: {message}", exc_info=error)
        else:
            self.logger.warning(f"{response.error} [{error_code}]: {message}")

        return response


# Global error handler instance
error_handler = ErrorHandler()
