"""
Custom exceptions module.

Base classes plus the catalog import error taxonomy.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Import rows / files
    RowValidationError,
    ColumnMappingError,
    ImportFileError,

    # Barcode pool
    InsufficientPoolError,

    # Persistence
    PersistenceError,
    RepositoryUnavailableError,

    # Preview / progress
    PreviewNotFoundError,
    ImportNotFoundError,

    # Integrations
    TelegramError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Import rows / files
    "RowValidationError",
    "ColumnMappingError",
    "ImportFileError",

    # Barcode pool
    "InsufficientPoolError",

    # Persistence
    "PersistenceError",
    "RepositoryUnavailableError",

    # Preview / progress
    "PreviewNotFoundError",
    "ImportNotFoundError",

    # Integrations
    "TelegramError",
]
