"""
Pluggable job backends.

The host queue is an external collaborator. Anything with an async
enqueue(job_name, arguments, delay_seconds) can be installed with
set_job_backend(). Two backends ship here:

- InlineJobBackend runs jobs immediately in the current process
  (CLI worker, local development, tests)
- QueuedJobBackend only records enqueued jobs until drained (tests)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from soundfy.database.session import session_scope
from soundfy.jobs.base import JobResult, get_job_class
from soundfy.platform.tenant_context import ClientFactory

logger = logging.getLogger(__name__)


class JobBackend(Protocol):
    async def enqueue(
        self,
        job_name: str,
        arguments: Dict[str, Any],
        delay_seconds: float = 0,
    ) -> Any:
        ...


@dataclass
class EnqueuedJob:
    job_name: str
    arguments: Dict[str, Any]
    delay_seconds: float = 0


class InlineJobBackend:
    """
    Runs each enqueued job right away with perform_now().

    Delays are not honoured. A job that asks to be retried is recorded in
    results and not re-run; callers that want retries loop on JobResult.

    Args:
        db: Session to run jobs on. Without one, each job gets a fresh
            session from session_scope().
        client_factory: Optional GraphQL client factory passed to jobs
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        client_factory: Optional[ClientFactory] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        self.db = db
        self.client_factory = client_factory
        self.session_factory = session_factory or session_scope
        self.results: List[JobResult] = []

    async def enqueue(self, job_name: str, arguments: Dict[str, Any], delay_seconds: float = 0) -> JobResult:
        job_cls = get_job_class(job_name)
        logger.info("job.enqueued", extra={
            "job_name": job_name,
            "backend": "inline",
            "delay_seconds": delay_seconds,
        })

        if self.db is not None:
            result = await job_cls.perform_now(self.db, arguments, client_factory=self.client_factory)
        else:
            with self.session_factory() as db:
                result = await job_cls.perform_now(db, arguments, client_factory=self.client_factory)

        self.results.append(result)
        return result


class QueuedJobBackend:
    """Collects enqueued jobs in memory."""

    def __init__(self):
        self.jobs: List[EnqueuedJob] = []

    async def enqueue(self, job_name: str, arguments: Dict[str, Any], delay_seconds: float = 0) -> EnqueuedJob:
        get_job_class(job_name)
        job = EnqueuedJob(job_name=job_name, arguments=dict(arguments), delay_seconds=delay_seconds)
        self.jobs.append(job)
        logger.info("job.enqueued", extra={
            "job_name": job_name,
            "backend": "queued",
            "delay_seconds": delay_seconds,
        })
        return job

    def job_names(self) -> List[str]:
        return [job.job_name for job in self.jobs]

    async def drain(self, backend: JobBackend) -> List[Any]:
        """Hand every collected job to another backend, in order."""
        jobs, self.jobs = self.jobs, []
        return [
            await backend.enqueue(job.job_name, job.arguments, delay_seconds=job.delay_seconds)
            for job in jobs
        ]


_job_backend: Optional[JobBackend] = None


def get_job_backend() -> JobBackend:
    """Get the configured backend, defaulting to inline execution."""
    global _job_backend
    if _job_backend is None:
        _job_backend = InlineJobBackend()
    return _job_backend


def set_job_backend(backend: Optional[JobBackend]) -> None:
    """Install a backend (None restores the default)."""
    global _job_backend
    _job_backend = backend
