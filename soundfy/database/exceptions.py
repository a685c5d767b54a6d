"""
Record-level exceptions shared by models, importers and jobs.
"""

from typing import Optional


class RecordError(Exception):
    """Base exception for local record errors."""
    pass


class RecordNotFound(RecordError):
    """Raised when a required local record does not exist."""

    def __init__(self, message: str, model: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.model = model
        self.key = key


class RecordLockedError(RecordError):
    """Raised when another process holds the row lock on a record."""

    def __init__(self, message: str, model: Optional[str] = None, record_id=None):
        super().__init__(message)
        self.model = model
        self.record_id = record_id


class TenantMismatchError(RecordError):
    """Raised when a child record would point at another shop's parent."""
    pass
