"""
Database engine, sessions and row locking.
"""

from soundfy.database.exceptions import (
    RecordError,
    RecordLockedError,
    RecordNotFound,
    TenantMismatchError,
)

__all__ = [
    "RecordError",
    "RecordLockedError",
    "RecordNotFound",
    "TenantMismatchError",
]
