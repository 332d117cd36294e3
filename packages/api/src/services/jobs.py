# This project was developed with assistance from AI tools.
"""Job outbox -- deferred work scheduled inside a business transaction.

``enqueue_job`` only adds a row to the caller's session, so the job exists
exactly when the triggering state change commits. ``run_pending_jobs`` is
the worker side: it claims due jobs, dispatches them to registered handlers
and retries failures until ``max_attempts`` is reached (at-least-once).
"""

import logging
from collections.abc import Awaitable, Callable

from db import Job
from db.enums import JobStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.timeutil import utcnow

logger = logging.getLogger(__name__)

JobHandler = Callable[[AsyncSession, dict], Awaitable[None]]

DELIVER_NOTIFICATION = "deliver_notification"
NOTIFY_ADMINS = "notify_admins_of_new_proofs"

_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str):
    """Decorator registering an async ``handler(session, payload)`` for ``job_type``."""

    def _register(func: JobHandler) -> JobHandler:
        _handlers[job_type] = func
        return func

    return _register


def get_handler(job_type: str) -> JobHandler | None:
    return _handlers.get(job_type)


def enqueue_job(
    session: AsyncSession,
    job_type: str,
    payload: dict,
    *,
    idempotency_key: str | None = None,
) -> Job:
    """Add a pending job to the current unit of work (no commit)."""
    job = Job(
        job_type=job_type,
        payload=payload,
        status=JobStatus.PENDING,
        run_at=utcnow(),
        attempts=0,
        max_attempts=settings.JOB_MAX_ATTEMPTS,
        idempotency_key=idempotency_key,
    )
    session.add(job)
    return job


async def get_pending_jobs(session: AsyncSession, limit: int = 10) -> list[Job]:
    """Pending jobs that are due, oldest first."""
    stmt = (
        select(Job)
        .where(Job.status == JobStatus.PENDING, Job.run_at <= utcnow())
        .order_by(Job.run_at, Job.id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _run_one(session_factory: async_sessionmaker, job_id: int) -> bool:
    async with session_factory() as session:
        job = await session.get(Job, job_id, with_for_update=True)
        if job is None or job.status != JobStatus.PENDING:
            return False
        job.status = JobStatus.RUNNING
        job.attempts += 1
        await session.commit()

        handler = get_handler(job.job_type)
        try:
            if handler is None:
                raise LookupError(f"No handler registered for job type {job.job_type!r}")
            await handler(session, dict(job.payload or {}))
        except Exception as exc:
            await session.rollback()
            job = await session.get(Job, job_id)
            job.last_error = f"{type(exc).__name__}: {exc}"
            job.status = JobStatus.PENDING if job.attempts < job.max_attempts else JobStatus.FAILED
            await session.commit()
            logger.warning(
                "Job %s (%s) failed on attempt %d/%d: %s",
                job.id, job.job_type, job.attempts, job.max_attempts, exc,
            )
            return False

        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        job.last_error = None
        await session.commit()
        return True


async def run_pending_jobs(session_factory: async_sessionmaker, limit: int | None = None) -> int:
    """Process one batch of due jobs; returns how many completed."""
    async with session_factory() as session:
        jobs = await get_pending_jobs(session, limit=limit or settings.JOB_BATCH_SIZE)
        job_ids = [job.id for job in jobs]

    completed = 0
    for job_id in job_ids:
        if await _run_one(session_factory, job_id):
            completed += 1
    if job_ids:
        logger.info("Job pass finished: %d/%d completed", completed, len(job_ids))
    return completed
