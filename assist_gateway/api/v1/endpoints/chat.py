# assist_gateway/api/v1/endpoints/chat.py
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import ValidationError
from assist_gateway.api.deps import ServiceFactory, get_audit_logger, get_openai_service_factory
from assist_gateway.core.config import Settings, get_settings
from assist_gateway.core.cors import cors_headers
from assist_gateway.core.exceptions import GatewayError
from assist_gateway.models.chat import (
    NO_RESPONSE_REPLY,
    AssistAction,
    AssistRequest,
    extract_reply,
    failed_run_reply,
)
from assist_gateway.services.audit_service import (
    SKIP_EMPTY_BODY,
    SKIP_MISSING_ENV,
    AuditLogger,
    ClientInfo,
)
from assist_gateway.services.openai_service import OpenAIService
from assist_gateway.services.run_poller import RunPoller
from assist_gateway.services.stream_relay import StreamRelay
from assist_gateway.services.submission_guard import MessageSubmissionGuard
from typing import Any, Dict, Optional
import json
import logging
import re

router = APIRouter()
logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def is_institutional_email(email: Optional[str], domain: str) -> bool:
    if not email:
        return False
    pattern = rf"^[^@\s]+@{re.escape(domain)}$"
    return re.match(pattern, email.strip(), re.IGNORECASE) is not None


def client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip and request.client:
        ip = request.client.host
    return ClientInfo(ip=ip, user_agent=request.headers.get("user-agent", ""))


async def parse_assist_request(request: Request) -> AssistRequest:
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise GatewayError(400, "Bad JSON")
    if not isinstance(payload, dict):
        raise GatewayError(400, "Bad JSON")
    try:
        return AssistRequest.model_validate(payload)
    except ValidationError as e:
        field = ".".join(str(part) for part in e.errors()[0]["loc"])
        raise GatewayError(400, f"Invalid field: {field}")


async def latest_reply(service: OpenAIService, thread_id: str) -> str:
    messages = await service.list_messages(thread_id)
    return extract_reply(messages) or NO_RESPONSE_REPLY


@router.api_route("/assist", methods=ALL_METHODS)
async def assist(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    service_factory: ServiceFactory = Depends(get_openai_service_factory),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """
    Single entry point for the chat widget.

    ``action`` picks the mode: "poll" checks on an existing run, "stream"
    relays a new run as server-sent events, anything else submits the
    message and waits up to the poll budget for the reply.
    """
    headers = cors_headers(request.headers.get("origin"), settings.allowed_origins)
    request.state.cors_headers = headers

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)
    if request.method != "POST":
        raise GatewayError(405, "Method Not Allowed")

    body = await parse_assist_request(request)
    mode = body.mode
    logger.info(f"Assist request: mode={mode.value} thread={body.thread_id} run={body.run_id}")

    if mode == AssistAction.POLL:
        return await handle_poll(body, request, settings, service_factory)
    if mode == AssistAction.STREAM:
        return await handle_stream(body, request, settings, service_factory, audit_logger, background_tasks)
    return await handle_submit(body, request, settings, service_factory, audit_logger, background_tasks)


async def handle_poll(
    body: AssistRequest,
    request: Request,
    settings: Settings,
    service_factory: ServiceFactory,
) -> JSONResponse:
    headers = request.state.cors_headers
    if not body.thread_id or not body.run_id:
        raise GatewayError(400, "Missing threadId or runId")
    config = settings.assistant_config()

    async with service_factory(config) as service:
        run = await service.get_run(body.thread_id, body.run_id)

        if run.status.is_pending:
            content: Dict[str, Any] = {
                "done": False,
                "pending": True,
                "threadId": body.thread_id,
                "runId": body.run_id,
                "status": run.status.value,
            }
            return JSONResponse(status_code=202, content=content, headers=headers)

        if run.status.is_failed:
            logger.warning(f"Run {body.run_id} ended with status {run.status.value}")
            reply = failed_run_reply(run.status)
        else:
            reply = await latest_reply(service, body.thread_id)

    content = {
        "done": True,
        "reply": reply,
        "threadId": body.thread_id,
        "runId": body.run_id,
        "status": run.status.value,
    }
    return JSONResponse(status_code=200, content=content, headers=headers)


async def handle_submit(
    body: AssistRequest,
    request: Request,
    settings: Settings,
    service_factory: ServiceFactory,
    audit_logger: AuditLogger,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    headers = request.state.cors_headers
    if not body.message or not body.message.strip():
        raise GatewayError(400, "Missing field: message")
    if not is_institutional_email(body.email, settings.EMAIL_DOMAIN):
        raise GatewayError(403, f"Email must end with @{settings.EMAIL_DOMAIN}")
    config = settings.assistant_config()

    async with service_factory(config) as service:
        submission = await MessageSubmissionGuard(service).submit(
            body.message, thread_id=body.thread_id, metadata=body.metadata()
        )
        thread_id = submission.thread_id
        run = await service.create_run(thread_id)
        run = await RunPoller(service).wait(thread_id, run.id, settings.POLL_BUDGET_MS)

        if not run.status.is_actionable:
            content = {
                "pending": True,
                "done": False,
                "threadId": thread_id,
                "runId": run.id,
                "status": run.status.value,
            }
            return JSONResponse(status_code=202, content=content, headers=headers)

        reply = await latest_reply(service, thread_id)

    background_tasks.add_task(
        audit_logger.forward,
        audit_logger.record(
            session=body.session or "web",
            client=client_info(request),
            assistant_id=config.assistant_id,
            thread_id=thread_id,
            run_id=run.id,
            user_text=body.message,
            assistant_text=reply,
        ),
    )
    content = {
        "reply": reply,
        "threadId": thread_id,
        "runId": run.id,
        "status": run.status.value,
    }
    return JSONResponse(status_code=200, content=content, headers=headers)


async def handle_stream(
    body: AssistRequest,
    request: Request,
    settings: Settings,
    service_factory: ServiceFactory,
    audit_logger: AuditLogger,
    background_tasks: BackgroundTasks,
) -> StreamingResponse:
    headers = request.state.cors_headers
    message = body.message.strip() if body.message else None
    if not message and not body.thread_id:
        raise GatewayError(400, "Missing message or threadId")
    if message and not is_institutional_email(body.email, settings.EMAIL_DOMAIN):
        raise GatewayError(403, f"Email must end with @{settings.EMAIL_DOMAIN}")
    config = settings.assistant_config()

    service = service_factory(config)
    relay = StreamRelay(service)

    async def event_stream():
        async with service:
            async for frame in relay.events(
                message=message,
                thread_id=body.thread_id,
                metadata=body.metadata(),
                is_disconnected=request.is_disconnected,
            ):
                yield frame

    def stream_record():
        result = relay.result
        if not result.ended:
            return None
        return audit_logger.record(
            session=body.session or "web",
            client=client_info(request),
            assistant_id=config.assistant_id,
            thread_id=result.thread_id or "",
            run_id=result.run_id or "",
            user_text=message or "",
            assistant_text=result.reply,
        )

    background_tasks.add_task(audit_logger.forward_later, stream_record)
    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            **headers,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
        background=background_tasks,
    )


@router.api_route("/log", methods=ALL_METHODS)
async def forward_log(
    request: Request,
    settings: Settings = Depends(get_settings),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """
    Forward a client-built conversation record to the audit webhook.

    Always answers 200 so a logging problem never shows up in the widget.
    """
    headers = cors_headers(request.headers.get("origin"), settings.allowed_origins)
    request.state.cors_headers = headers
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)
    if request.method != "POST":
        raise GatewayError(405, "Method Not Allowed")

    if not audit_logger.enabled:
        return PlainTextResponse(SKIP_MISSING_ENV, headers=headers)

    raw = await request.body()
    if not raw.strip():
        return PlainTextResponse(SKIP_EMPTY_BODY, headers=headers)
    try:
        payload = json.loads(raw)
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {"raw": raw.decode("utf-8", errors="replace")}

    outcome = await audit_logger.forward_payload(payload)
    return PlainTextResponse(outcome, headers=headers)
