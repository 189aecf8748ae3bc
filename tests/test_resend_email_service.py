"""Tests for the Resend email transport."""

import httpx
import pytest

from app.services import http_service, resend_email_service


@pytest.fixture
def resend_api(monkeypatch):
    """Route Resend calls to a MockTransport; returns the list of captured requests."""
    requests: list[httpx.Request] = []
    responses: list[httpx.Response] = []
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    monkeypatch.setattr(resend_email_service, "RESEND_RETRY_BASE_DELAY", 0)
    monkeypatch.setattr(
        resend_email_service.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return requests, responses


@pytest.mark.asyncio
async def test_send_email_direct_success(resend_api):
    requests, responses = resend_api
    responses.append(httpx.Response(200, json={"id": "msg_123"}))

    success, error, message_id = await resend_email_service.send_email_direct(
        api_key="re_test",
        to_email="tenant@test.com",
        subject="Time slots proposed",
        body="<p>Hello <b>Tom</b></p>",
        from_email="noreply@test.com",
        from_name="Riverside",
        idempotency_key="intervention-scheduling/evt/1",
    )

    assert (success, error, message_id) == (True, None, "msg_123")
    sent = requests[0]
    assert sent.headers["Authorization"] == "Bearer re_test"
    assert sent.headers["Idempotency-Key"] == "intervention-scheduling/evt/1"
    assert b'"text":"Hello Tom"' in sent.content.replace(b": ", b":")


@pytest.mark.asyncio
async def test_send_email_direct_retries_then_fails(resend_api):
    requests, responses = resend_api
    responses.extend(
        httpx.Response(503, json={"message": "unavailable"}) for _ in range(3)
    )

    success, error, message_id = await resend_email_service.send_email_direct(
        api_key="re_test",
        to_email="tenant@test.com",
        subject="s",
        body="<p>b</p>",
        from_email="noreply@test.com",
    )

    assert success is False
    assert error == "Resend API error: 503 (unavailable)"
    assert message_id is None
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_idempotency_conflict_counts_as_sent(resend_api):
    _requests, responses = resend_api
    responses.append(httpx.Response(409, json={"id": "msg_existing"}))

    success, _error, message_id = await resend_email_service.send_email_direct(
        api_key="re_test",
        to_email="tenant@test.com",
        subject="s",
        body="<p>b</p>",
        from_email="noreply@test.com",
    )

    assert success is True
    assert message_id == "msg_existing"


@pytest.mark.asyncio
async def test_accepted_response_without_json_body_counts_as_sent(resend_api):
    _requests, responses = resend_api
    responses.append(httpx.Response(202, text="Accepted"))

    success, error, message_id = await resend_email_service.send_email_direct(
        api_key="re_test",
        to_email="tenant@test.com",
        subject="s",
        body="<p>b</p>",
        from_email="noreply@test.com",
    )

    assert (success, error, message_id) == (True, None, None)



def test_html_to_text_strips_markup():
    text = resend_email_service._html_to_text(
        "<style>p {color: red}</style><p>Hello <b>there</b></p>\n\n<p>Bye &amp; thanks</p>"
    )

    assert text == "Hello there Bye & thanks"


@pytest.mark.asyncio
async def test_request_with_retries_recovers():
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("refused")
        return httpx.Response(200)

    response = await http_service.request_with_retries(request_fn, base_delay=0)

    assert response.status_code == 200
    assert calls["count"] == 2
