"""Custom exceptions for the Zettelhub index.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_OUTSIDE_NOTEBOOK = 1003
    METADATA_MALFORMED = 1004

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_UNAVAILABLE = 4004
    RENAME_WRITE_FAILED = 4005

    # Bulk operation errors (45xx)
    BULK_OPERATION_FAILED = 4501

    # Search errors (5xxx)
    SEARCH_FAILED = 5001
    SEARCH_INVALID_QUERY = 5002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class ZettelhubError(Exception):
    """Base exception for all index errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteValidationError(ZettelhubError):
    """Raised when a note value cannot be indexed as given."""

    def __init__(
        self,
        message: str,
        note_id: Optional[str] = None,
        field: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED,
    ):
        details: Dict[str, Any] = {}
        if note_id:
            details["note_id"] = note_id
        if field:
            details["field"] = field

        super().__init__(message, code=code, details=details)
        self.note_id = note_id
        self.field = field


class MalformedMetadataError(NoteValidationError):
    """Raised when a note's metadata cannot be serialized for storage.

    Fatal for that single note only: it is raised before anything is
    written, so the index is left untouched.
    """

    def __init__(
        self,
        note_id: str,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            f"Metadata of note '{note_id}' cannot be serialized",
            note_id=note_id,
            field="metadata",
            code=ErrorCode.METADATA_MALFORMED,
        )
        if original_error:
            self.details["original_error"] = str(original_error)[:200]
        self.original_error = original_error


class StorageError(ZettelhubError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if path:
            details["path"] = path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class StoreUnavailableError(StorageError):
    """Raised when the index database cannot be created or opened."""

    def __init__(self, message: str, path: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(
            message,
            operation="open_store",
            path=path,
            code=ErrorCode.STORAGE_UNAVAILABLE,
            original_error=original_error,
        )


class RenameWriteError(StorageError):
    """A backlink source could not be read or rewritten after a rename.

    Collected and logged by the rename propagator; never aborts the batch.
    """

    def __init__(self, source_id: str, path: str,
                 original_error: Optional[Exception] = None):
        super().__init__(
            f"Could not rewrite links in backlink source '{source_id}'",
            operation="rename_propagation",
            path=path,
            code=ErrorCode.RENAME_WRITE_FAILED,
            original_error=original_error,
        )
        self.source_id = source_id
        self.details["source_id"] = source_id


class SearchError(ZettelhubError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED,
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query


class BulkOperationError(ZettelhubError):
    """Raised for bulk operation errors.

    Attributes:
        operation: Name of the bulk operation (e.g., "bulk_remove")
        total_count: Total number of items attempted
        failed_ids: List of IDs that failed (full list, not truncated)
        original_error: The underlying exception if applicable
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        failed_ids: Optional[List[str]] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {
            "operation": operation,
            "total_count": total_count,
        }
        if failed_ids:
            details["failed_ids"] = failed_ids[:10]  # Truncate for safety
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.total_count = total_count
        self.failed_ids: List[str] = list(failed_ids) if failed_ids else []
        self.original_error = original_error
