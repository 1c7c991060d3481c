"""Job service - scheduling and lifecycle of background jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from rescue.core.structured_logging import build_log_context
from rescue.db.enums import JobStatus, JobType
from rescue.db.models import Job
from rescue.jobs.retry_policy import RetryAction, rule_for
from rescue.services.ai_errors import IntakeAIError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int = 3,
    commit: bool = True,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    With commit=False the job is only flushed, so it lands in the caller's
    transaction together with the rows it refers to.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _utcnow(),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    if not commit:
        db.flush()
        return job
    db.commit()
    db.refresh(job)
    return job


def enqueue_intake_ai(
    db: Session, intake_id: int, pending_message_id: int, *, commit: bool = True
) -> Job:
    """Queue one AI turn for an intake, keyed on the placeholder message."""
    return schedule_job(
        db,
        JobType.INTAKE_AI,
        {"intake_id": intake_id, "pending_message_id": pending_message_id},
        idempotency_key=f"intake_ai:{intake_id}:{pending_message_id}",
        commit=commit,
    )


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= _utcnow(),
        )
        .order_by(Job.run_at, Job.id)
        .limit(limit)
        .all()
    )


def claim_job(db: Session, job_id: int) -> Job | None:
    """
    Atomically move a due job from pending to running.

    Returns None when another worker claimed it first.
    """
    claimed = (
        db.query(Job)
        .filter(Job.id == job_id, Job.status == JobStatus.PENDING.value)
        .update(
            {Job.status: JobStatus.RUNNING.value, Job.attempts: Job.attempts + 1},
            synchronize_session=False,
        )
    )
    db.commit()
    if not claimed:
        return None
    return db.get(Job, job_id, populate_existing=True)


def get_job(db: Session, job_id: int) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = _utcnow()
    job.last_error = None
    job.error_kind = None
    db.commit()
    db.refresh(job)
    return job


def _error_kind(exc: BaseException) -> str:
    if isinstance(exc, IntakeAIError):
        return exc.kind.value
    return type(exc).__name__


def mark_job_failed(db: Session, job: Job, exc: BaseException) -> Job:
    """
    Record a failed run and apply the retry policy.

    Retriable errors go back to pending with run_at pushed out by the
    policy's backoff until their attempt budget is spent. Errors a retry
    cannot fix are discarded; everything else fails without retry.
    """
    rule = rule_for(exc)
    job.last_error = str(exc)[:2000]
    job.error_kind = _error_kind(exc)

    if rule.action == RetryAction.RETRY and job.attempts < min(rule.max_attempts, job.max_attempts):
        delay = rule.backoff_for(job.attempts)
        job.status = JobStatus.PENDING.value
        job.run_at = _utcnow() + timedelta(seconds=delay)
        logger.info(
            "Job rescheduled in %.0fs (attempt %d/%d, %s)",
            delay,
            job.attempts,
            rule.max_attempts,
            job.error_kind,
            extra=build_log_context(job_id=job.id),
        )
    elif rule.action == RetryAction.DISCARD:
        job.status = JobStatus.DISCARDED.value
        job.completed_at = _utcnow()
    else:
        job.status = JobStatus.FAILED.value
        job.completed_at = _utcnow()

    db.commit()
    db.refresh(job)
    return job
