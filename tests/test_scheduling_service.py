"""Tests for the scheduling orchestrator."""

from datetime import date, time
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    SlotLockedError,
    StateConflictError,
    TransientStoreError,
    ValidationError,
)
from app.db.enums import InterventionStatus, JobType, PlanningType, Role, TimeSlotStatus
from app.db.models import Intervention, InterventionComment, InterventionTimeSlot, Job, Notification
from app.schemas.intervention import parse_scheduling_plan
from app.services import notification_service, scheduling_service, time_slot_service


def _direct(day="2025-12-01", start="14:00", **extra):
    return parse_scheduling_plan(
        {"planning_type": "direct", "direct_schedule": {"date": day, "start_time": start}, **extra}
    )


def _propose(*windows, **extra):
    return parse_scheduling_plan(
        {
            "planning_type": "propose",
            "proposed_slots": [
                {"date": d, "start_time": s, "end_time": e} for d, s, e in windows
            ],
            **extra,
        }
    )


def _organize(**extra):
    return parse_scheduling_plan({"planning_type": "organize", **extra})


def _slots(db, intervention):
    return time_slot_service.list_slots(db, intervention.id)


# =============================================================================
# Planning modes
# =============================================================================

def test_direct_scheduling_end_to_end(db, intervention, manager, session_of):
    result = scheduling_service.schedule_intervention(
        db, intervention.id, _direct(), session_of(manager)
    )

    slots = _slots(db, intervention)
    assert len(slots) == 1
    assert slots[0].slot_date == date(2025, 12, 1)
    assert slots[0].start_time == time(14, 0)
    assert slots[0].end_time == time(15, 0)
    assert slots[0].status == TimeSlotStatus.PENDING.value
    assert slots[0].notes == scheduling_service.DIRECT_SLOT_NOTE
    assert result.intervention.status == InterventionStatus.SCHEDULING.value
    assert result.planning_type == PlanningType.DIRECT
    assert result.outcome.created_slots[0].id == slots[0].id


def test_direct_end_time_wraps_past_midnight(db, intervention, manager, session_of):
    scheduling_service.schedule_intervention(
        db, intervention.id, _direct(start="23:30"), session_of(manager)
    )

    assert _slots(db, intervention)[0].end_time == time(0, 30)


def test_propose_replaces_unconfirmed_slots(db, intervention, manager, session_of):
    session = session_of(manager)
    scheduling_service.schedule_intervention(
        db,
        intervention.id,
        _propose(
            ("2025-12-01", "09:00", "11:00"),
            ("2025-12-02", "09:00", "11:00"),
            ("2025-12-03", "09:00", "11:00"),
        ),
        session,
    )
    result = scheduling_service.schedule_intervention(
        db,
        intervention.id,
        _propose(("2025-12-08", "14:00", "16:00"), ("2025-12-09", "14:00", "16:00")),
        session,
    )

    slots = _slots(db, intervention)
    assert [s.slot_date for s in slots] == [date(2025, 12, 8), date(2025, 12, 9)]
    assert all(s.status == TimeSlotStatus.PENDING.value for s in slots)
    assert len(result.outcome.created_slots) == 2
    assert result.message == "Time slots proposed. Awaiting confirmation."


def test_organize_creates_no_slots(db, intervention, manager, session_of):
    result = scheduling_service.schedule_intervention(
        db, intervention.id, _organize(), session_of(manager)
    )

    assert _slots(db, intervention) == []
    assert result.intervention.status == InterventionStatus.SCHEDULING.value
    assert result.outcome.created_slots == ()
    assert result.message == "Autonomous scheduling enabled"


def test_internal_comment_is_recorded(db, intervention, manager, session_of):
    scheduling_service.schedule_intervention(
        db,
        intervention.id,
        _direct(internal_comment="Tenant prefers afternoons"),
        session_of(manager),
    )

    comment = db.query(InterventionComment).filter_by(intervention_id=intervention.id).one()
    assert comment.body == (
        "Scheduling: Tenant prefers afternoons | Appointment set for 2025-12-01 at 14:00"
    )
    assert comment.is_internal is True
    assert comment.author_user_id == manager.id


def test_no_comment_without_internal_comment(db, intervention, manager, session_of):
    scheduling_service.schedule_intervention(db, intervention.id, _organize(), session_of(manager))

    assert db.query(InterventionComment).count() == 0


def test_unknown_planning_type_is_validation_error():
    with pytest.raises(ValidationError):
        parse_scheduling_plan({"planning_type": "teleport"})


def test_missing_mode_fields_is_validation_error():
    with pytest.raises(ValidationError):
        parse_scheduling_plan({"planning_type": "direct"})
    with pytest.raises(ValidationError):
        parse_scheduling_plan({"planning_type": "propose", "proposed_slots": []})
    with pytest.raises(ValidationError):
        _propose(("2025-12-01", "11:00", "09:00"))


# =============================================================================
# Guards
# =============================================================================

@pytest.mark.parametrize(
    "status",
    [
        InterventionStatus.REQUESTED,
        InterventionStatus.SCHEDULED,
        InterventionStatus.IN_PROGRESS,
        InterventionStatus.COMPLETED,
        InterventionStatus.CANCELLED,
    ],
)
def test_status_guard_leaves_intervention_unmodified(db, make_intervention, manager, session_of, status):
    intervention = make_intervention(status=status)
    updated_at = intervention.updated_at

    with pytest.raises(StateConflictError) as exc_info:
        scheduling_service.schedule_intervention(db, intervention.id, _direct(), session_of(manager))

    db.refresh(intervention)
    assert exc_info.value.details == {"current_status": status.value}
    assert intervention.status == status.value
    assert intervention.updated_at == updated_at
    assert _slots(db, intervention) == []
    assert db.query(Notification).count() == 0


def test_quote_requested_is_schedulable(db, make_intervention, manager, session_of):
    intervention = make_intervention(status=InterventionStatus.QUOTE_REQUESTED)

    result = scheduling_service.schedule_intervention(
        db, intervention.id, _organize(), session_of(manager)
    )

    assert result.intervention.status == InterventionStatus.SCHEDULING.value


@pytest.mark.parametrize("plan_factory", [_direct, lambda: _propose(("2025-12-05", "08:00", "09:00"))])
def test_selected_slot_locks_intervention(db, make_intervention, manager, session_of, plan_factory):
    intervention = make_intervention(status=InterventionStatus.SCHEDULING)
    selected = InterventionTimeSlot(
        intervention_id=intervention.id,
        slot_date=date(2025, 11, 30),
        start_time=time(10),
        end_time=time(11),
        status=TimeSlotStatus.SELECTED.value,
    )
    pending = InterventionTimeSlot(
        intervention_id=intervention.id,
        slot_date=date(2025, 11, 29),
        start_time=time(10),
        end_time=time(11),
        status=TimeSlotStatus.PENDING.value,
    )
    db.add_all([selected, pending])
    db.commit()

    with pytest.raises(SlotLockedError):
        scheduling_service.schedule_intervention(
            db, intervention.id, plan_factory(), session_of(manager)
        )

    assert {s.id for s in _slots(db, intervention)} == {selected.id, pending.id}
    db.refresh(intervention)
    assert intervention.status == InterventionStatus.SCHEDULING.value


def test_non_manager_is_refused(db, intervention, tenant, session_of):
    with pytest.raises(AuthorizationError):
        scheduling_service.schedule_intervention(db, intervention.id, _direct(), session_of(tenant))


def test_manager_of_other_team_is_refused(db, intervention, make_user, other_team, session_of):
    outsider = make_user(Role.MANAGER, team=other_team)

    with pytest.raises(AuthorizationError):
        scheduling_service.schedule_intervention(db, intervention.id, _direct(), session_of(outsider))

    assert _slots(db, intervention) == []


def test_unknown_intervention(db, manager, session_of):
    with pytest.raises(NotFoundError):
        scheduling_service.schedule_intervention(db, uuid4(), _direct(), session_of(manager))


def test_store_failure_is_transient_and_atomic(db, monkeypatch, intervention, manager, session_of):
    def broken_replace(*args, **kwargs):
        raise OperationalError("DELETE FROM intervention_time_slots", {}, Exception("disk I/O error"))

    monkeypatch.setattr(time_slot_service, "replace_unconfirmed_slots", broken_replace)

    with pytest.raises(TransientStoreError):
        scheduling_service.schedule_intervention(db, intervention.id, _direct(), session_of(manager))

    stored = db.query(Intervention).filter_by(id=intervention.id).one()
    assert stored.status == InterventionStatus.APPROVED.value
    assert db.query(InterventionComment).count() == 0


# =============================================================================
# Dispatch
# =============================================================================

def test_scheduling_notifies_and_queues_email(db, intervention, manager, tenant, provider, session_of):
    result = scheduling_service.schedule_intervention(
        db, intervention.id, _direct(), session_of(manager)
    )

    recipients = {n.user_id for n in db.query(Notification).all()}
    assert recipients == {tenant.id, provider.id}

    job = db.query(Job).one()
    assert job.job_type == JobType.INTERVENTION_SCHEDULING_EMAIL.value
    assert job.idempotency_key == f"intervention_scheduling_email:{result.event_id}"
    assert job.payload["planning_type"] == "direct"
    assert job.payload["slot_ids"] == [str(result.outcome.created_slots[0].id)]


def test_notification_failure_never_fails_scheduling(db, monkeypatch, intervention, manager, session_of):
    def explode(*args, **kwargs):
        raise RuntimeError("notification store down")

    monkeypatch.setattr(notification_service, "notify_scheduling_event", explode)

    result = scheduling_service.schedule_intervention(
        db, intervention.id, _direct(), session_of(manager)
    )

    assert result.intervention.status == InterventionStatus.SCHEDULING.value
    assert db.query(Job).count() == 1


def test_each_action_is_a_separate_event(db, intervention, manager, session_of):
    session = session_of(manager)
    first = scheduling_service.schedule_intervention(db, intervention.id, _organize(), session)
    second = scheduling_service.schedule_intervention(db, intervention.id, _organize(), session)

    assert first.event_id != second.event_id
    assert db.query(Job).count() == 2
    assert db.query(Notification).count() == 4
