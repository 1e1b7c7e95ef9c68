"""Tests for the audit log forwarder and its endpoint."""

import json

import httpx
import pytest

from assist_gateway.api.deps import get_audit_logger
from assist_gateway.services.audit_service import (
    SKIP_EMPTY_BODY,
    SKIP_MISSING_ENV,
    AuditLogger,
    AuditRecord,
    ClientInfo,
    csv_field,
)

GAS_URL = "https://script.google.com/macros/s/abc123/exec"
JSON_URL = "https://logs.example.edu/hook"


def sample_record() -> AuditRecord:
    return AuditRecord(
        date="2026-10-19",
        time="08:30:00",
        session="s1",
        client=ClientInfo(ip="10.0.0.1", user_agent="Mozilla/5.0 (X11, Linux)"),
        assistant_id="asst_test",
        thread_id="thread_1",
        run_id="run_1",
        user_text='He said "hi"\nthen left',
        assistant_text="Hello",
    )


def test_csv_field_quotes_only_when_needed():
    assert csv_field("plain") == "plain"
    assert csv_field(None) == ""
    assert csv_field("  a\r\nb  ") == "a b"
    assert csv_field("a,b") == '"a,b"'
    assert csv_field('say "x"') == '"say ""x"""'


def test_csv_row_has_fixed_columns():
    row = sample_record().as_csv_row()

    assert row == (
        '2026-10-19,08:30:00,s1,10.0.0.1,"Mozilla/5.0 (X11, Linux)",'
        'asst_test,thread_1,run_1,"He said ""hi"" then left",Hello'
    )


def test_record_timestamp_uses_configured_zone():
    record = AuditRecord.now("Asia/Ho_Chi_Minh", session="s1")

    assert len(record.date) == 10
    assert len(record.time) == 8
    assert record.session == "s1"


@pytest.mark.asyncio
async def test_apps_script_webhook_gets_csv_row_and_token_param():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="OK")

    logger = AuditLogger(GAS_URL, "tok", transport=httpx.MockTransport(handler))
    outcome = await logger.forward(sample_record())

    assert outcome == "OK"
    assert seen[0].url.params["t"] == "tok"
    assert seen[0].headers["content-type"] == "text/plain"
    assert seen[0].content.decode().startswith("2026-10-19,08:30:00,s1,")


@pytest.mark.asyncio
async def test_other_webhooks_get_json_and_token_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="stored")

    logger = AuditLogger(JSON_URL, "tok", transport=httpx.MockTransport(handler))
    outcome = await logger.forward(sample_record())

    assert outcome == "stored"
    assert seen[0].headers["x-log-token"] == "tok"
    payload = json.loads(seen[0].content)
    assert payload["threadId"] == "thread_1"
    assert payload["ua"] == "Mozilla/5.0 (X11, Linux)"


@pytest.mark.asyncio
async def test_failures_never_raise():
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def rejected(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="bad token")

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    assert (await AuditLogger(JSON_URL, "tok", transport=httpx.MockTransport(refused)).forward(sample_record())).startswith("LOG_FAIL:ERR:")
    assert await AuditLogger(JSON_URL, "tok", transport=httpx.MockTransport(rejected)).forward(sample_record()) == "LOG_FAIL:bad token"
    assert await AuditLogger(JSON_URL, "tok", transport=httpx.MockTransport(slow)).forward(sample_record()) == "LOG_FAIL:TIMEOUT"


@pytest.mark.asyncio
async def test_missing_configuration_skips():
    assert await AuditLogger(None, "tok").forward(sample_record()) == SKIP_MISSING_ENV
    assert await AuditLogger(JSON_URL, None).forward_payload({"user": "hi"}) == SKIP_MISSING_ENV
    assert await AuditLogger(JSON_URL, "tok").forward_payload({}) == SKIP_EMPTY_BODY


@pytest.mark.asyncio
async def test_forward_later_skips_unfinished_turns():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, text="OK")

    logger = AuditLogger(JSON_URL, "tok", transport=httpx.MockTransport(handler))

    await logger.forward_later(lambda: None)
    assert calls == []

    await logger.forward_later(sample_record)
    assert len(calls) == 1


class TestLogEndpoint:
    def test_forwards_client_record(self, app, client):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="OK")

        app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(
            GAS_URL, "tok", transport=httpx.MockTransport(handler)
        )

        response = client.post(
            "/api/v1/log",
            content=json.dumps({"session": "s1", "user": "Hello", "assistant": "Hi there", "threadId": "t1"}),
            headers={"Origin": "https://chat.example.edu"},
        )

        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["access-control-allow-origin"] == "https://chat.example.edu"
        row = seen[0].content.decode()
        assert ",s1," in row
        assert row.endswith(",t1,,Hello,Hi there")

    def test_unconfigured_logger_answers_200(self, client):
        response = client.post("/api/v1/log", content=json.dumps({"user": "Hello"}))

        assert response.status_code == 200
        assert response.text == SKIP_MISSING_ENV

    def test_empty_body_is_skipped(self, app, client):
        app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(JSON_URL, "tok")

        response = client.post("/api/v1/log", content="   ")

        assert response.status_code == 200
        assert response.text == SKIP_EMPTY_BODY

    def test_get_is_rejected_with_error_envelope(self, client):
        response = client.get("/api/v1/log", headers={"Origin": "https://chat.example.edu"})

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}
        assert response.headers["access-control-allow-origin"] == "https://chat.example.edu"
