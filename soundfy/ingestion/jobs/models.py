"""
Sync checkpoint model for resumable steps.

Defines the SyncCheckpoint model that persists a step's resume cursor:
- step_key identifies the step ("<job>:<shop_id>:<step>")
- cursor is the end cursor of the last committed batch
- status is running until the enumerator is exhausted, then completed

A checkpoint is written in the same transaction as the batch it follows,
so the stored cursor never runs ahead of the imported data.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text

from soundfy.db_base import Base
from soundfy.models.base import TimestampMixin, utcnow


class CheckpointStatus(str, enum.Enum):
    """Sync checkpoint status enumeration."""
    RUNNING = "running"
    COMPLETED = "completed"


class SyncCheckpoint(Base, TimestampMixin):
    """
    Durable step_key -> cursor association.

    Attributes:
        step_key: Primary key, "<job>:<shop_id>:<step>"
        cursor: End cursor of the last committed batch (None when fresh)
        status: running | completed
        batches_completed: Batches committed in the current run
        started_at: When the current run started
        completed_at: When the last run finished
    """

    __tablename__ = "sync_checkpoints"

    step_key = Column(
        String(255),
        primary_key=True,
        comment="<job>:<shop_id>:<step>"
    )
    cursor = Column(
        Text,
        nullable=True,
        comment="End cursor of the last committed batch"
    )
    status = Column(
        Enum(CheckpointStatus),
        default=CheckpointStatus.RUNNING,
        nullable=False,
        comment="Checkpoint status: running, completed"
    )
    batches_completed = Column(
        Integer,
        default=0,
        nullable=False,
        comment="Batches committed in the current run"
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<SyncCheckpoint("
            f"step_key={self.step_key}, "
            f"status={self.status.value if self.status else None}, "
            f"cursor={self.cursor}"
            f")>"
        )

    @property
    def is_running(self) -> bool:
        return self.status == CheckpointStatus.RUNNING

    def start(self, now: Optional[datetime] = None) -> None:
        """Begin a fresh run."""
        self.status = CheckpointStatus.RUNNING
        self.cursor = None
        self.batches_completed = 0
        self.started_at = now or utcnow()
        self.completed_at = None

    def advance(self, cursor: Optional[str]) -> None:
        """Record a committed batch."""
        self.cursor = cursor
        self.batches_completed = (self.batches_completed or 0) + 1

    def complete(self, now: Optional[datetime] = None) -> None:
        """Mark the run finished and clear the cursor."""
        self.status = CheckpointStatus.COMPLETED
        self.cursor = None
        self.completed_at = now or utcnow()
