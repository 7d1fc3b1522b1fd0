"""Error handling for deck layer management."""
from typing import Any, Dict, List, Optional

from mcp.types import (
    ErrorData,
    INVALID_PARAMS,
    INVALID_REQUEST,
    INTERNAL_ERROR,
)

from mcp_deck.logging import get_logger

logger = get_logger(__name__)


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an error with context."""
    error_info = {
        "event": "deck_error",
        "error_type": error.__class__.__name__,
        "error_message": str(error),
    }
    if context:
        error_info["context"] = context
    if isinstance(error, DeckError):
        error_info["code"] = error.code
        error_info["details"] = error.details

    logger.error(error_info)


class DeckError(Exception):
    """Base error class for deck operations."""
    def __init__(
        self,
        message: str,
        code: int = INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_error_data(self) -> ErrorData:
        """Convert to ErrorData format."""
        return ErrorData(
            code=self.code,
            message=str(self),
            data=self.details
        )


class NotFoundError(DeckError):
    """Referenced template, custom or image directory is absent."""
    def __init__(self, kind: str, name: str):
        super().__init__(
            f"{kind} '{name}' not found",
            code=INVALID_PARAMS,
            details={"kind": kind, "name": name}
        )


class CollisionError(DeckError):
    """Target name already exists."""
    def __init__(self, kind: str, name: str):
        super().__init__(
            f"{kind} '{name}' already exists",
            code=INVALID_REQUEST,
            details={"kind": kind, "name": name}
        )


class IncompleteConfigurationError(DeckError):
    """Required files missing before a promotion."""
    def __init__(self, path: str, missing_files: List[str]):
        super().__init__(
            f"Configuration {path} is incomplete, missing: {', '.join(missing_files)}",
            code=INVALID_REQUEST,
            details={"path": path, "missing_files": list(missing_files)}
        )
        self.missing_files = list(missing_files)


class ValidationFailureError(DeckError):
    """Request names something that is invalid or does not exist."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=INVALID_PARAMS, details=details)


class TransientIOError(DeckError):
    """Filesystem operation kept failing after its retries."""
    def __init__(self, operation: str, path: str, attempts: int):
        super().__init__(
            f"{operation} failed for {path} after {attempts} attempts",
            code=INTERNAL_ERROR,
            details={"operation": operation, "path": path, "attempts": attempts}
        )


class ExecutionFailureError(DeckError):
    """I/O or build failure in the middle of an operation."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=INTERNAL_ERROR, details=details)
