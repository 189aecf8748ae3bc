from datetime import datetime, timedelta, timezone

import pytest

from app.db.enums import JobStatus, JobType
from app.db.models import Job
from app.services import job_service


def _schedule(db, team, key=None, run_at=None):
    return job_service.schedule_job(
        db=db,
        team_id=team.id,
        job_type=JobType.INTERVENTION_SCHEDULING_EMAIL,
        payload={"intervention_id": "x"},
        run_at=run_at or datetime.now(timezone.utc),
        idempotency_key=key,
    )


def test_claim_pending_jobs_marks_running(db, test_team):
    _schedule(db, test_team)
    _schedule(db, test_team)

    claimed = job_service.claim_pending_jobs(db, limit=1)
    assert len(claimed) == 1
    claimed_job = claimed[0]
    assert claimed_job.status == JobStatus.RUNNING.value
    assert claimed_job.attempts == 1

    pending = db.query(Job).filter(Job.status == JobStatus.PENDING.value).all()
    assert len(pending) == 1
    assert pending[0].id != claimed_job.id
    assert pending[0].status == JobStatus.PENDING.value


def test_future_jobs_are_not_claimed(db, test_team):
    _schedule(db, test_team, run_at=datetime.now(timezone.utc) + timedelta(hours=1))

    assert job_service.claim_pending_jobs(db) == []


def test_idempotency_key_returns_existing_job(db, test_team):
    first = _schedule(db, test_team, key="intervention_scheduling_email:evt-1")
    second = _schedule(db, test_team, key="intervention_scheduling_email:evt-1")

    assert first.id == second.id
    assert db.query(Job).count() == 1


def test_mark_job_completed_with_failures(db, test_team):
    job = _schedule(db, test_team)

    job_service.mark_job_completed(db, job, {"sent_count": 1, "failed_count": 1})

    assert job.status == JobStatus.COMPLETED_WITH_ERRORS.value
    assert job.result == {"sent_count": 1, "failed_count": 1}
    assert job.completed_at is not None


def test_mark_job_completed_clean(db, test_team):
    job = _schedule(db, test_team)

    job_service.mark_job_completed(db, job, {"sent_count": 2, "failed_count": 0})

    assert job.status == JobStatus.COMPLETED.value


@pytest.mark.parametrize("attempts,expected", [(1, JobStatus.PENDING), (3, JobStatus.FAILED)])
def test_mark_job_failed_retries_until_max_attempts(db, test_team, attempts, expected):
    job = _schedule(db, test_team)
    job.attempts = attempts
    db.commit()

    job_service.mark_job_failed(db, job, "RuntimeError: boom")

    assert job.status == expected.value
    assert job.last_error == "RuntimeError: boom"
