"""
Resumable sync steps.

A step walks a paginated enumeration and commits each batch together with
the cursor that follows it. If the process dies mid-run, the next run of
the same step_key starts after the last committed batch instead of from
the beginning.

Step keys are "<job>:<shop_id>:<step>", see step_key().
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from soundfy.ingestion.jobs.models import SyncCheckpoint
from soundfy.integrations.shopify.query_enumerator import QueryEnumerator

logger = logging.getLogger(__name__)

EnumerateFrom = Callable[[Optional[str]], QueryEnumerator]
ProcessBatch = Callable[[List[Dict[str, Any]]], Any]


def step_key(job_name: str, shop_id: str, step: str) -> str:
    return f"{job_name}:{shop_id}:{step}"


@dataclass
class StepResult:
    """Outcome of one step run."""
    step_key: str
    batches: int
    records: int
    resumed_from: Optional[str] = None

    @property
    def resumed(self) -> bool:
        return self.resumed_from is not None


class ResumableStep:
    """
    One named, cursor-checkpointed step.

    The session's transaction is committed after every batch. A failure
    rolls back the in-flight batch and leaves the previous cursor in place.
    """

    def __init__(self, db: Session, step_key: str):
        self.db = db
        self.step_key = step_key

    def _checkpoint(self) -> Optional[SyncCheckpoint]:
        return self.db.get(SyncCheckpoint, self.step_key)

    @property
    def cursor(self) -> Optional[str]:
        """Cursor the next run resumes after, None when starting fresh."""
        checkpoint = self._checkpoint()
        if checkpoint is None or not checkpoint.is_running:
            return None
        return checkpoint.cursor

    def _begin(self) -> SyncCheckpoint:
        checkpoint = self._checkpoint()
        if checkpoint is None:
            checkpoint = SyncCheckpoint(step_key=self.step_key)
            checkpoint.start()
            self.db.add(checkpoint)
        elif not checkpoint.is_running:
            checkpoint.start()
        self.db.commit()
        return checkpoint

    async def run(self, enumerate_from: EnumerateFrom, process_batch: ProcessBatch) -> StepResult:
        """
        Run the step to completion.

        Args:
            enumerate_from: Builds an enumerator starting after a cursor
            process_batch: Imports one page of nodes; may be async

        Returns:
            StepResult with batch and record counts for this run
        """
        checkpoint = self._begin()
        resumed_from = checkpoint.cursor
        result = StepResult(step_key=self.step_key, batches=0, records=0, resumed_from=resumed_from)

        logger.info("sync.step_started", extra={
            "step_key": self.step_key,
            "cursor": resumed_from,
            "resumed": resumed_from is not None,
        })

        enumerator = enumerate_from(resumed_from)
        try:
            async for nodes, end_cursor in enumerator:
                outcome = process_batch(nodes)
                if inspect.isawaitable(outcome):
                    await outcome

                checkpoint.advance(end_cursor)
                self.db.commit()

                result.batches += 1
                result.records += len(nodes)
                logger.info("sync.batch_committed", extra={
                    "step_key": self.step_key,
                    "cursor": end_cursor,
                    "records": len(nodes),
                })

            checkpoint.complete()
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.warning("sync.step_interrupted", extra={
                "step_key": self.step_key,
                "batches": result.batches,
            })
            raise

        logger.info("sync.step_completed", extra={
            "step_key": self.step_key,
            "batches": result.batches,
            "records": result.records,
        })
        return result
