"""
Custom exception classes for the application.

Base classes map to HTTP status codes; import-specific errors
carry enough context for the preview/confirm screens.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "INSUFFICIENT_BARCODE_POOL")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# IMPORT ROW ERRORS
# ===================

class RowValidationError(ValidationError):
    """A single import row is missing a required field."""

    def __init__(self, row_number: int, field: str, message: str):
        self.row_number = row_number
        self.field = field
        super().__init__(
            code="ROW_VALIDATION_ERROR",
            message=message,
            details={"row": row_number, "field": field}
        )


class ColumnMappingError(ValidationError):
    """Column mapping is unusable (required field unmapped, bad index)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="COLUMN_MAPPING_ERROR",
            message=message,
            details=details
        )


class ImportFileError(ValidationError):
    """Uploaded catalog file could not be decoded."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_FILE_ERROR",
            message=message,
            details=details
        )


# ===================
# BARCODE POOL ERRORS
# ===================

class InsufficientPoolError(ConflictError):
    """Not enough available barcodes to satisfy an allocation."""

    def __init__(self, requested: int, available: int, barcode_type: str = "EAN13"):
        self.requested = requested
        self.available = available
        super().__init__(
            code="INSUFFICIENT_BARCODE_POOL",
            message=f"Requested {requested} barcodes but only {available} are available",
            details={
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
                "barcode_type": barcode_type,
            }
        )


# ===================
# PERSISTENCE ERRORS
# ===================

class PersistenceError(DatabaseError):
    """
    Write failed for one import unit.

    Recovered at unit granularity: the unit rolls back and the
    batch continues.
    """

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(operation, message, details)
        self.code = "PERSISTENCE_ERROR"


class RepositoryUnavailableError(ExternalServiceError):
    """Catalog or pool store is unreachable. Fatal to the whole batch."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="catalog_store",
            message=message,
            details=details
        )


# ===================
# PREVIEW / PROGRESS ERRORS
# ===================

class PreviewNotFoundError(NotFoundError):
    """Dry-run preview expired or never existed."""

    def __init__(self, preview_id: str):
        super().__init__(
            resource="Import preview",
            identifier=preview_id,
            code="IMPORT_PREVIEW_NOT_FOUND"
        )


class ImportNotFoundError(NotFoundError):
    """No progress recorded for this import id."""

    def __init__(self, import_id: str):
        super().__init__(
            resource="Import",
            identifier=import_id,
            code="IMPORT_NOT_FOUND"
        )


class TelegramError(AppError):
    """Telegram API error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="TELEGRAM_ERROR",
            message=message,
            status_code=500,
            details=details
        )
