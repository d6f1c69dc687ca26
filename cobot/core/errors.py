"""
Error types shared by the matcher, the cache and the action catalog.

Four kinds cover every failure path: a missing file, a corrupt cache artifact,
unreachable storage, and a malformed action or agent definition.
"""

from typing import Optional, Any, Dict


class CobotError(Exception):
    """
    Base exception for all cobot errors.

    Carries a structured ``details`` mapping next to the message.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize error.

        Args:
            message: Error message
            details: Optional detailed error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(CobotError):
    """
    Raised when a catalog entry or cache file does not exist.

    Recoverable: the cache treats it as a miss.
    """

    def __init__(self, message: str,
                 path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.path = path
        self.details.update({'path': path})


class CorruptError(CobotError):
    """
    Raised when a binary stream ends early or carries inconsistent lengths.

    The cache manager answers it with a rebuild instead of aborting.
    """

    def __init__(self, message: str,
                 path: Optional[str] = None,
                 offset: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Initialize corrupt-data error.

        Args:
            message: Error message
            path: Artifact being read, when known
            offset: Stream offset where decoding failed
            details: Additional error context
        """
        super().__init__(message, details)
        self.path = path
        self.offset = offset
        self.details.update({
            'path': path,
            'offset': offset
        })


class StorageUnavailableError(CobotError):
    """
    Raised when the catalog storage or the cache directory cannot be used.

    Fatal to initialization.
    """

    def __init__(self, message: str,
                 operation: str = 'general',
                 path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.details.update({
            'operation': operation,
            'path': path
        })


class ConfigInvalidError(CobotError):
    """
    Raised when an action definition or agent configuration is malformed.

    Per-action occurrences are skipped with a warning.
    """

    def __init__(self, message: str,
                 source: Optional[str] = None,
                 field: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.source = source
        self.field = field
        self.details.update({
            'source': source,
            'field': field
        })


def is_cache_miss(error: Exception) -> bool:
    """Check if error only means the cached data has to be rebuilt."""
    return isinstance(error, (NotFoundError, CorruptError))


def is_fatal(error: Exception) -> bool:
    """Check if error must abort initialization."""
    return isinstance(error, StorageUnavailableError)
