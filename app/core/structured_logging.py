"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def _as_str(value: UUID | str | None) -> str | None:
    return str(value) if value else None


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    team_id: UUID | str | None = None,
    intervention_id: UUID | str | None = None,
    job_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for ``extra=``."""
    context: dict[str, Any] = {}
    for key, value in (
        ("user_id", _as_str(user_id)),
        ("team_id", _as_str(team_id)),
        ("intervention_id", _as_str(intervention_id)),
        ("job_id", _as_str(job_id)),
        ("request_id", request_id),
        ("route", route),
        ("method", method),
    ):
        if value:
            context[key] = value
    return context


def mask_email(email: str | None) -> str:
    """Mask an email address for log output (``abc...@domain``)."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
