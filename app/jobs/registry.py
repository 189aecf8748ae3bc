"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from app.db.enums import JobType
from app.jobs.handlers import interventions

# Handlers may return a result summary stored on the job.
JobHandler = Callable[[object, object], Awaitable[dict | None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.INTERVENTION_SCHEDULING_EMAIL.value: interventions.process_intervention_scheduling_email,
    JobType.INTERVENTION_STATUS_EMAIL.value: interventions.process_intervention_status_email,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
