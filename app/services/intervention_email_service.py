"""Intervention Email Service - email notifications for scheduling events.

Provides:
- HTML templates for time-slot proposals and confirmed schedules
- Context building (planning type, actor, persisted slots with action links)
- Batch sending with per-recipient failure isolation
"""

import html
import logging
import re
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import DispatchError
from app.core.structured_logging import build_log_context, mask_email
from app.db.enums import PlanningType
from app.db.models import Intervention, Lot, User
from app.services import resend_email_service
from app.services.assignment_service import Recipient
from app.services.time_slot_service import SlotSnapshot, format_time

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class SchedulingEmailContext:
    """Everything a scheduling email needs, resolved outside the request."""

    planning_type: PlanningType
    actor_name: str
    slots: list[SlotSnapshot] = field(default_factory=list)
    lot_reference: str | None = None


@dataclass
class EmailBatchResult:
    sent_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0  # no email address on file

    def as_dict(self) -> dict[str, int]:
        return {
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
        }


# =============================================================================
# Templates
# =============================================================================

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #2563eb; padding: 24px; border-radius: 12px 12px 0 0;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{{heading}}</h1>
    </div>
    <div style="background: #f9fafb; padding: 24px; border-radius: 0 0 12px 12px; border: 1px solid #e5e7eb; border-top: none;">
        <p>Hello {{recipient_name}},</p>
        <p>{{intro}}</p>
        {{details_html}}
        <div style="margin: 25px 0; text-align: center;">
            <a href="{{intervention_url}}" style="display: inline-block; padding: 12px 24px; background: #2563eb; color: white; text-decoration: none; border-radius: 8px; font-weight: 500;">View intervention</a>
        </div>
        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
        <p style="color: #9ca3af; font-size: 12px; margin: 0;">
            This is an automated message. Please do not reply directly to this email.
        </p>
    </div>
</body>
</html>"""

SCHEDULING_SUBJECTS: dict[PlanningType, str] = {
    PlanningType.DIRECT: "Appointment proposed - {{intervention_title}}",
    PlanningType.PROPOSE: "Time slots proposed - {{intervention_title}}",
    PlanningType.ORGANIZE: "Schedule your intervention - {{intervention_title}}",
}

SCHEDULING_INTROS: dict[PlanningType, str] = {
    PlanningType.DIRECT: (
        "{{actor_name}} proposed an appointment for the intervention "
        '"{{intervention_title}}" ({{lot_reference}}). Please confirm or decline it.'
    ),
    PlanningType.PROPOSE: (
        "{{actor_name}} proposed {{slot_count}} time slots for the intervention "
        '"{{intervention_title}}" ({{lot_reference}}). Please pick the one that suits you.'
    ),
    PlanningType.ORGANIZE: (
        "{{actor_name}} asked the tenant and the provider to agree on a time for the "
        'intervention "{{intervention_title}}" ({{lot_reference}}) directly.'
    ),
}

SCHEDULED_SUBJECT = "Intervention scheduled - {{intervention_title}}"
SCHEDULED_INTRO = (
    'The intervention "{{intervention_title}}" ({{lot_reference}}) is scheduled on '
    "{{slot_date}} from {{start_time}} to {{end_time}}."
)


def render_template(template: str, variables: dict[str, str], escape: bool = True) -> str:
    """
    Replace {{variable}} placeholders.

    Missing variables render as empty strings. With ``escape`` values are
    HTML-escaped, except variables ending in ``_html`` (pre-rendered markup).
    """

    def replace_var(match: re.Match) -> str:
        name = match.group(1)
        value = variables.get(name, "")
        if not escape or name.endswith("_html"):
            return value
        return html.escape(value)

    return VARIABLE_PATTERN.sub(replace_var, template)


def intervention_url(intervention_id: UUID) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/interventions/{intervention_id}"


def slot_action_url(intervention_id: UUID, slot_id: UUID, action: str) -> str:
    """Deep link that lets the recipient accept or reject one persisted slot."""
    return f"{intervention_url(intervention_id)}?slot={slot_id}&action={action}"


def _slots_html(intervention_id: UUID, slots: list[SlotSnapshot], with_actions: bool) -> str:
    if not slots:
        return ""
    rows = []
    for slot in slots:
        actions = ""
        if with_actions:
            accept = html.escape(slot_action_url(intervention_id, slot.id, "accept"))
            reject = html.escape(slot_action_url(intervention_id, slot.id, "reject"))
            actions = (
                f'<td style="padding: 8px 0; text-align: right;">'
                f'<a href="{accept}" style="color: #059669;">Accept</a> &middot; '
                f'<a href="{reject}" style="color: #dc2626;">Decline</a></td>'
            )
        rows.append(
            f'<tr><td style="padding: 8px 0;"><strong>{slot.slot_date.isoformat()}</strong></td>'
            f'<td style="padding: 8px 0;">{format_time(slot.start_time)} - '
            f"{format_time(slot.end_time)}</td>{actions}</tr>"
        )
    return (
        '<div style="background: white; border-radius: 8px; padding: 16px; margin: 20px 0; '
        'border: 1px solid #e5e7eb;"><table style="width: 100%; border-collapse: collapse;">'
        + "".join(rows)
        + "</table></div>"
    )


def render_scheduling_email(
    intervention: Intervention,
    recipient: User,
    context: SchedulingEmailContext,
) -> tuple[str, str]:
    """Return (subject, html_body) for a scheduling event."""
    variables = {
        "intervention_title": intervention.title,
        "lot_reference": context.lot_reference or "-",
        "actor_name": context.actor_name,
        "slot_count": str(len(context.slots)),
        "recipient_name": recipient.display_name,
    }
    subject = render_template(SCHEDULING_SUBJECTS[context.planning_type], variables, escape=False)
    body = render_template(
        _LAYOUT,
        {
            **variables,
            "heading": subject,
            "intro": render_template(
                SCHEDULING_INTROS[context.planning_type], variables, escape=False
            ),
            "details_html": _slots_html(
                intervention.id,
                context.slots,
                with_actions=context.planning_type != PlanningType.ORGANIZE,
            ),
            "intervention_url": intervention_url(intervention.id),
        },
    )
    return subject, body


def render_scheduled_email(
    intervention: Intervention,
    recipient: User,
    slot: SlotSnapshot,
    lot_reference: str | None,
) -> tuple[str, str]:
    """Return (subject, html_body) for a confirmed slot."""
    variables = {
        "intervention_title": intervention.title,
        "lot_reference": lot_reference or "-",
        "slot_date": slot.slot_date.isoformat(),
        "start_time": format_time(slot.start_time),
        "end_time": format_time(slot.end_time),
        "recipient_name": recipient.display_name,
    }
    subject = render_template(SCHEDULED_SUBJECT, variables, escape=False)
    body = render_template(
        _LAYOUT,
        {
            **variables,
            "heading": subject,
            "intro": render_template(SCHEDULED_INTRO, variables, escape=False),
            "details_html": "",
            "intervention_url": intervention_url(intervention.id),
        },
    )
    return subject, body


# =============================================================================
# Context + sending
# =============================================================================


def get_lot_reference(db: Session, intervention: Intervention) -> str | None:
    if not intervention.lot_id:
        return None
    lot = db.query(Lot).filter(Lot.id == intervention.lot_id).first()
    return lot.reference if lot else None


def build_scheduling_context(
    db: Session,
    intervention: Intervention,
    planning_type: PlanningType,
    actor_id: UUID | None,
    slots: list[SlotSnapshot],
) -> SchedulingEmailContext:
    actor = db.query(User).filter(User.id == actor_id).first() if actor_id else None
    return SchedulingEmailContext(
        planning_type=planning_type,
        actor_name=actor.display_name if actor else "Your property manager",
        slots=slots,
        lot_reference=get_lot_reference(db, intervention),
    )


async def _send_batch(
    db: Session,
    intervention: Intervention,
    recipients: list[Recipient],
    render,
    idempotency_prefix: str,
) -> EmailBatchResult:
    """Send one email per recipient; failures are counted, never raised."""
    result = EmailBatchResult()
    users: dict[UUID, User] = {}
    if recipients:
        rows = db.query(User).filter(User.id.in_([r.user_id for r in recipients])).all()
        users = {user.id: user for user in rows}

    for recipient in recipients:
        user = users.get(recipient.user_id)
        if not user or not user.email or not user.is_active:
            result.skipped_count += 1
            continue

        log_context = build_log_context(
            user_id=user.id, team_id=intervention.team_id, intervention_id=intervention.id
        )
        try:
            subject, body = render(user)
            success, error, _message_id = await resend_email_service.send_email(
                to_email=user.email,
                subject=subject,
                body=body,
                idempotency_key=f"{idempotency_prefix}/{user.id}",
            )
            if not success:
                raise DispatchError(error or "Email delivery failed")
        except DispatchError as e:
            result.failed_count += 1
            logger.warning(
                "Email delivery failed for recipient=%s: %s",
                mask_email(user.email),
                e,
                extra=log_context,
            )
        except Exception:
            result.failed_count += 1
            logger.exception(
                "Email delivery raised for recipient=%s", mask_email(user.email), extra=log_context
            )
        else:
            result.sent_count += 1
    return result


async def send_scheduling_batch(
    db: Session,
    intervention: Intervention,
    recipients: list[Recipient],
    context: SchedulingEmailContext,
    event_id: str,
) -> EmailBatchResult:
    return await _send_batch(
        db,
        intervention,
        recipients,
        render=lambda user: render_scheduling_email(intervention, user, context),
        idempotency_prefix=f"intervention-scheduling/{event_id}",
    )


async def send_scheduled_batch(
    db: Session,
    intervention: Intervention,
    recipients: list[Recipient],
    slot: SlotSnapshot,
) -> EmailBatchResult:
    lot_reference = get_lot_reference(db, intervention)
    return await _send_batch(
        db,
        intervention,
        recipients,
        render=lambda user: render_scheduled_email(intervention, user, slot, lot_reference),
        idempotency_prefix=f"intervention-scheduled/{slot.id}",
    )
