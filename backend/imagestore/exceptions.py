# backend/imagestore/exceptions.py
"""
Custom exceptions for imagestore.

Centralized location for all custom exception classes to avoid
duplicating exception definitions across modules.
"""

from typing import Any, Dict, List, Optional, Sequence


class ImageStoreError(Exception):
    """Base exception for all imagestore-specific errors."""

    pass


class OperationError(ImageStoreError):
    """
    Base for failures of a named store operation.

    Carries the operation name and optional details so the service layer can
    log them without the data layer depending on logging.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class TransientStoreError(OperationError):
    """Catalog (Redis) or file I/O failure during a scan or write."""

    pass


class DatabaseOperationError(OperationError):
    """Postgres operation failure."""

    pass


class CameraOperationError(DatabaseOperationError):
    """Camera-specific database operation errors."""

    pass


class PhotoOperationError(DatabaseOperationError):
    """Photo/thumbnail persistence errors."""

    pass


class BootstrapFailure(ImageStoreError):
    """Reference data or credentials could not be loaded at startup."""

    pass


class JobValidationError(ImageStoreError):
    """A job was rejected at admission. Carries every violation found."""

    def __init__(self, violations: Sequence[str], message: str = "errors requesting job"):
        super().__init__(message)
        self.violations: List[str] = list(violations)

    def __str__(self):
        return f"{super().__str__()}: {'; '.join(self.violations)}"


class ExternalProcessorFailure(ImageStoreError):
    """The image processor answered with a non-200 status or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ReconciliationInconsistency(ImageStoreError):
    """More than one metadata record references the same file."""

    def __init__(self, path: str, keys: Sequence[str]):
        super().__init__(f"{len(keys)} metadata records reference {path}")
        self.path = path
        self.keys = list(keys)
