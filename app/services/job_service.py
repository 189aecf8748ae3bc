"""Job service - business logic for background job scheduling and processing."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.enums import JobStatus, JobType
from app.db.models import Job


def _now() -> datetime:
    return datetime.now(timezone.utc)


def schedule_job(
    db: Session,
    team_id: UUID | None,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    If idempotency_key is provided and a job with the same key exists,
    the existing job is returned instead of creating a duplicate.
    """
    if idempotency_key:
        existing = get_job_by_idempotency_key(db, idempotency_key)
        if existing:
            return existing

    job = Job(
        team_id=team_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _now(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race on the idempotency key
        db.rollback()
        existing = get_job_by_idempotency_key(db, idempotency_key) if idempotency_key else None
        if existing is None:
            raise
        return existing
    db.refresh(job)
    return job


def get_job_by_idempotency_key(db: Session, idempotency_key: str) -> Job | None:
    return db.query(Job).filter(Job.idempotency_key == idempotency_key).first()


def claim_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Atomically claim due jobs for this worker.

    Rows are locked with SKIP LOCKED so concurrent workers never pick the same
    job; claimed jobs move to running (attempts incremented) before the lock
    is released.
    """
    jobs = (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= _now(),
        )
        .order_by(Job.run_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for job in jobs:
        job.status = JobStatus.RUNNING.value
        job.attempts += 1
    db.commit()
    return jobs


def mark_job_completed(db: Session, job: Job, result: dict | None = None) -> Job:
    """
    Mark a job as completed.

    A result reporting ``failed_count > 0`` completes the job as
    completed_with_errors; those failures are final and not retried.
    """
    failed = (result or {}).get("failed_count", 0)
    job.status = (
        JobStatus.COMPLETED_WITH_ERRORS.value if failed else JobStatus.COMPLETED.value
    )
    job.result = result
    job.completed_at = _now()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
