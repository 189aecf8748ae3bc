"""Tests for deferred intervention emails (rendering, handlers, job outcome)."""

from __future__ import annotations

from datetime import date, time
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app import worker
from app.db.enums import AssignmentRole, JobStatus, JobType, PlanningType, Role
from app.db.models import Job
from app.jobs.handlers import interventions as intervention_handlers
from app.services import intervention_email_service, job_service, resend_email_service, scheduling_service
from app.services.intervention_email_service import SchedulingEmailContext
from app.services.time_slot_service import SlotSnapshot
from app.schemas.intervention import parse_scheduling_plan


def _propose_plan():
    return parse_scheduling_plan(
        {
            "planning_type": "propose",
            "proposed_slots": [
                {"date": "2025-12-01", "start_time": "09:00", "end_time": "11:00"},
                {"date": "2025-12-02", "start_time": "14:00", "end_time": "16:00"},
            ],
        }
    )


def _claim(db) -> Job:
    jobs = job_service.claim_pending_jobs(db, limit=10)
    assert len(jobs) == 1
    return jobs[0]


@pytest.fixture
def sent(monkeypatch):
    """Capture transport calls and report success."""
    calls: list[dict] = []

    async def fake_send_email(to_email, subject, body, idempotency_key=None):
        calls.append(
            {"to": to_email, "subject": subject, "body": body, "key": idempotency_key}
        )
        return True, None, "msg-1"

    monkeypatch.setattr(resend_email_service, "send_email", fake_send_email)
    return calls


# =============================================================================
# Rendering
# =============================================================================

def test_scheduling_email_has_slot_action_links(intervention, tenant):
    slot = SlotSnapshot(id=uuid4(), slot_date=date(2025, 12, 1), start_time=time(9), end_time=time(11))
    context = SchedulingEmailContext(
        planning_type=PlanningType.PROPOSE,
        actor_name="Alice Manager",
        slots=[slot],
        lot_reference="A-101",
    )

    subject, body = intervention_email_service.render_scheduling_email(intervention, tenant, context)

    assert subject == "Time slots proposed - Leaking kitchen sink"
    assert "Hello Tom Tenant" in body
    assert f"slot={slot.id}&amp;action=accept" in body
    assert f"slot={slot.id}&amp;action=reject" in body
    assert "09:00 - 11:00" in body


def test_organize_email_has_no_slot_actions(intervention, tenant):
    context = SchedulingEmailContext(planning_type=PlanningType.ORGANIZE, actor_name="Alice")

    subject, body = intervention_email_service.render_scheduling_email(intervention, tenant, context)

    assert subject.startswith("Schedule your intervention")
    assert "action=accept" not in body


def test_render_template_escapes_values_but_not_html_vars():
    rendered = intervention_email_service.render_template(
        "{{name}} {{block_html}} {{missing}}",
        {"name": "<b>x</b>", "block_html": "<i>y</i>"},
    )

    assert rendered == "&lt;b&gt;x&lt;/b&gt; <i>y</i> "


# =============================================================================
# Handlers
# =============================================================================

@pytest.mark.asyncio
async def test_scheduling_email_goes_to_personal_audience_only(
    db, sent, intervention, manager, tenant, provider, make_user, session_of
):
    make_user(Role.MANAGER)  # team observer, in-app only
    result = scheduling_service.schedule_intervention(
        db, intervention.id, _propose_plan(), session_of(manager)
    )
    job = _claim(db)

    summary = await intervention_handlers.process_intervention_scheduling_email(db, job)

    assert summary == {"sent_count": 2, "failed_count": 0, "skipped_count": 0}
    assert {c["to"] for c in sent} == {tenant.email, provider.email}
    assert all(c["key"].startswith(f"intervention-scheduling/{result.event_id}/") for c in sent)
    slot_ids = [str(s.id) for s in result.outcome.created_slots]
    assert all(slot_id in sent[0]["body"] for slot_id in slot_ids)


@pytest.mark.asyncio
async def test_failing_transport_completes_with_errors(db, monkeypatch, intervention, manager, session_of):
    async def failing_send_email(to_email, subject, body, idempotency_key=None):
        return False, "Resend API error: 503", None

    monkeypatch.setattr(resend_email_service, "send_email", failing_send_email)

    result = scheduling_service.schedule_intervention(
        db, intervention.id, _propose_plan(), session_of(manager)
    )
    assert result.intervention.status == "scheduling"

    job = _claim(db)
    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.COMPLETED_WITH_ERRORS.value
    assert job.result == {"sent_count": 0, "failed_count": 2, "skipped_count": 0}


@pytest.mark.asyncio
async def test_transport_exception_is_counted_per_recipient(db, monkeypatch, intervention, manager, tenant, session_of):
    async def flaky_send_email(to_email, subject, body, idempotency_key=None):
        if to_email == tenant.email:
            raise ConnectionError("socket closed")
        return True, None, "msg-2"

    monkeypatch.setattr(resend_email_service, "send_email", flaky_send_email)
    scheduling_service.schedule_intervention(db, intervention.id, _propose_plan(), session_of(manager))
    job = _claim(db)

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.result == {"sent_count": 1, "failed_count": 1, "skipped_count": 0}
    assert job.status == JobStatus.COMPLETED_WITH_ERRORS.value


@pytest.mark.asyncio
async def test_inactive_recipient_is_skipped(db, sent, intervention, manager, provider, session_of):
    provider.is_active = False
    db.commit()
    scheduling_service.schedule_intervention(db, intervention.id, _propose_plan(), session_of(manager))
    job = _claim(db)

    summary = await intervention_handlers.process_intervention_scheduling_email(db, job)

    assert summary == {"sent_count": 1, "failed_count": 0, "skipped_count": 1}


@pytest.mark.asyncio
async def test_missing_intervention_yields_empty_result(db, sent):
    job = SimpleNamespace(id=uuid4(), payload={"intervention_id": str(uuid4())})

    summary = await intervention_handlers.process_intervention_scheduling_email(db, job)

    assert summary == intervention_handlers.EMPTY_RESULT
    assert sent == []


@pytest.mark.asyncio
async def test_status_email_after_selection(db, sent, intervention, manager, tenant, provider, session_of):
    from app.services import intervention_service

    scheduling_service.schedule_intervention(db, intervention.id, _propose_plan(), session_of(manager))
    for job in job_service.claim_pending_jobs(db):
        job_service.mark_job_completed(db, job, {})
    slot = intervention.time_slots[0]

    intervention_service.select_time_slot(db, intervention.id, slot.id, session_of(tenant))
    job = _claim(db)
    assert job.job_type == JobType.INTERVENTION_STATUS_EMAIL.value

    summary = await intervention_handlers.process_intervention_status_email(db, job)

    # The tenant selected the slot; only the provider is emailed
    assert summary["sent_count"] == 1
    assert sent[0]["to"] == provider.email
    assert sent[0]["subject"] == "Intervention scheduled - Leaking kitchen sink"


@pytest.mark.asyncio
async def test_dry_run_without_api_key(monkeypatch):
    monkeypatch.setattr(resend_email_service.settings, "RESEND_API_KEY", "")

    success, error, message_id = await resend_email_service.send_email(
        to_email="someone@test.com", subject="Hi", body="<p>Hi</p>"
    )

    assert success is True
    assert error is None
    assert message_id is None


def test_email_recipients_exclude_managers(db, intervention, manager, tenant, provider):
    recipients = intervention_handlers._email_recipients(db, intervention, manager.id)

    assert {r.user_id for r in recipients} == {tenant.id, provider.id}
    assert all(r.role != AssignmentRole.MANAGER for r in recipients)
