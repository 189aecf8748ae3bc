"""Resend Email Service.

Transactional email transport over the Resend HTTP API. Returns result tuples
instead of raising so callers can count per-recipient failures.
"""

from __future__ import annotations

import html as html_module
import logging
import re

import httpx

from app.core.config import settings
from app.core.structured_logging import mask_email
from app.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0

_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.DOTALL | re.I)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def _html_to_text(content: str) -> str:
    """Plain-text alternative for an HTML body."""
    text = _SCRIPT_STYLE.sub("", content)
    text = _TAG.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return html_module.unescape(text)


def _error_detail(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("message") or data.get("error")
    return None


def _message_id(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("id") if isinstance(data, dict) else None


async def send_email_direct(
    api_key: str,
    to_email: str,
    subject: str,
    body: str,
    from_email: str,
    from_name: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[bool, str | None, str | None]:
    """
    Send an email via Resend.

    Returns:
        (success, error_message, message_id)
    """
    from_address = f"{from_name} <{from_email}>" if from_name else from_email

    payload: dict[str, object] = {
        "from": from_address,
        "to": [to_email],
        "subject": subject,
        "html": body,
    }
    text = _html_to_text(body)
    if text:
        payload["text"] = text

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            response = await request_with_retries(
                request_fn,
                max_attempts=settings.EMAIL_MAX_RETRIES,
                base_delay=RESEND_RETRY_BASE_DELAY,
                max_delay=RESEND_RETRY_MAX_DELAY,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
    except httpx.TimeoutException:
        return False, "Connection timeout", None
    except httpx.HTTPError as e:
        logger.warning("Resend connection error: %s", e.__class__.__name__)
        return False, f"Connection error: {e.__class__.__name__}", None

    if 200 <= response.status_code < 300 or response.status_code == 409:
        # 409 is an idempotency conflict: already sent
        return True, None, _message_id(response)

    error_msg = f"Resend API error: {response.status_code}"
    detail = _error_detail(response)
    if detail:
        error_msg = f"{error_msg} ({detail})"
    return False, error_msg, None


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    idempotency_key: str | None = None,
) -> tuple[bool, str | None, str | None]:
    """
    Send with the platform sender configured in settings.

    Without RESEND_API_KEY the email is only logged (dry run) and reported as sent.
    """
    if not settings.RESEND_API_KEY:
        logger.info(
            "[DRY RUN] Email send skipped recipient=%s subject=%s",
            mask_email(to_email),
            subject,
        )
        return True, None, None

    success, error, message_id = await send_email_direct(
        api_key=settings.RESEND_API_KEY,
        to_email=to_email,
        subject=subject,
        body=body,
        from_email=settings.EMAIL_FROM,
        idempotency_key=idempotency_key,
    )
    if success:
        logger.info(
            "Email sent recipient=%s message_id=%s", mask_email(to_email), message_id
        )
    else:
        logger.warning("Email failed recipient=%s error=%s", mask_email(to_email), error)
    return success, error, message_id
