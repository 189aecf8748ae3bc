"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    INTERVENTION_SCHEDULING_EMAIL = "intervention_scheduling_email"
    INTERVENTION_STATUS_EMAIL = "intervention_status_email"


class JobStatus(str, Enum):
    """
    Status of background jobs.

    Flow: pending → running → completed
                        ↘ completed_with_errors (some deliveries failed)
                        ↘ pending (retry) → ... → failed
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


DEFAULT_JOB_STATUS = JobStatus.PENDING
