"""
Background worker for processing scheduled jobs.

Usage:
    python -m app.worker

The worker polls for pending jobs and processes them.
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.jobs.registry import resolve_job_handler
from app.services import job_service

logger = logging.getLogger(__name__)


async def process_job(db, job) -> dict | None:
    """Dispatch a claimed job to its registered handler."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(team_id=job.team_id, job_id=job.id),
    )
    handler = resolve_job_handler(job.job_type)
    return await handler(db, job)


async def run_job(db, job) -> None:
    """Run one claimed job and record its outcome."""
    try:
        result = await process_job(db, job)
    except Exception as e:
        db.rollback()
        job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}")
        logger.error(
            "Job %s failed: %s",
            job.id,
            type(e).__name__,
            extra=build_log_context(team_id=job.team_id, job_id=job.id),
        )
        return

    job = job_service.mark_job_completed(db, job, result)
    logger.info("Job %s finished with status %s", job.id, job.status)


async def run_pending_jobs(limit: int | None = None) -> int:
    """Claim and run one batch of due jobs. Returns the number processed."""
    with SessionLocal() as db:
        jobs = job_service.claim_pending_jobs(db, limit=limit or settings.WORKER_BATCH_SIZE)
        if jobs:
            logger.info("Found %d pending jobs", len(jobs))
        for job in jobs:
            await run_job(db, job)
        return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
    )

    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")

    while True:
        try:
            await run_pending_jobs()
        except Exception:
            logger.exception("Error in worker loop")

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
