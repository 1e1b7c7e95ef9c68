# assist_gateway/services/audit_service.py
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from assist_gateway.core.config import Settings

logger = logging.getLogger(__name__)

_APPS_SCRIPT_PATTERN = re.compile(r"script\.google\.com/macros/s/")

SKIP_MISSING_ENV = "SKIP_LOG: missing env"
SKIP_EMPTY_BODY = "SKIP_LOG: empty body"


def csv_field(value: Any) -> str:
    text = re.sub(r"\r?\n", " ", "" if value is None else str(value)).strip()
    if '"' in text or "," in text:
        return '"' + text.replace('"', '""') + '"'
    return text


@dataclass(frozen=True)
class ClientInfo:
    ip: str = ""
    user_agent: str = ""


@dataclass(frozen=True)
class AuditRecord:
    """One conversation turn, as written to the audit sheet."""

    date: str
    time: str
    session: str = "web"
    client: ClientInfo = field(default_factory=ClientInfo)
    assistant_id: str = ""
    thread_id: str = ""
    run_id: str = ""
    user_text: str = ""
    assistant_text: str = ""

    @classmethod
    def now(cls, timezone: str, **fields) -> "AuditRecord":
        stamp = datetime.now(ZoneInfo(timezone))
        return cls(date=stamp.strftime("%Y-%m-%d"), time=stamp.strftime("%H:%M:%S"), **fields)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], timezone: str) -> "AuditRecord":
        def text(key: str) -> str:
            value = payload.get(key)
            return "" if value is None else str(value)

        return cls.now(
            timezone,
            session=text("session") or "web",
            client=ClientInfo(ip=text("ip"), user_agent=text("ua")),
            assistant_id=text("assistantId"),
            thread_id=text("threadId"),
            run_id=text("runId"),
            user_text=text("user"),
            assistant_text=text("assistant"),
        )

    def as_payload(self) -> Dict[str, str]:
        return {
            "date": self.date,
            "time": self.time,
            "session": self.session,
            "ip": self.client.ip,
            "ua": self.client.user_agent,
            "assistantId": self.assistant_id,
            "threadId": self.thread_id,
            "runId": self.run_id,
            "user": self.user_text,
            "assistant": self.assistant_text,
        }

    def as_csv_row(self) -> str:
        columns: List[Any] = [
            self.date,
            self.time,
            self.session or "web",
            self.client.ip,
            self.client.user_agent,
            self.assistant_id,
            self.thread_id,
            self.run_id,
            self.user_text,
            self.assistant_text,
        ]
        return ",".join(csv_field(column) for column in columns)


class AuditLogger:
    """Best-effort forwarder of conversation turns to a logging webhook."""

    def __init__(
        self,
        webhook_url: Optional[str],
        token: Optional[str],
        timezone: str = "Asia/Ho_Chi_Minh",
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.token = token
        self.timezone = timezone
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuditLogger":
        return cls(
            webhook_url=settings.LOG_WEBHOOK_URL,
            token=settings.LOG_TOKEN,
            timezone=settings.LOG_TIMEZONE,
            timeout=settings.LOG_TIMEOUT_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url and self.token)

    def record(self, **fields) -> AuditRecord:
        return AuditRecord.now(self.timezone, **fields)

    async def forward(self, record: AuditRecord) -> str:
        """Send one record. Never raises; the outcome is returned as text."""
        if not self.enabled:
            return SKIP_MISSING_ENV

        if _APPS_SCRIPT_PATTERN.search(self.webhook_url):
            request = dict(
                params={"t": self.token},
                content=record.as_csv_row().encode("utf-8"),
                headers={"Content-Type": "text/plain"},
            )
        else:
            request = dict(
                json=record.as_payload(),
                headers={"X-Log-Token": self.token},
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, **request)
        except httpx.TimeoutException:
            logger.warning("Audit log webhook timed out")
            return "LOG_FAIL:TIMEOUT"
        except Exception as e:
            logger.warning(f"Audit log webhook failed: {str(e)}")
            return f"LOG_FAIL:ERR:{e}"

        if response.is_error:
            logger.warning(f"Audit log webhook answered {response.status_code}")
            return f"LOG_FAIL:{response.text}"
        return response.text

    async def forward_payload(self, payload: Optional[Dict[str, Any]]) -> str:
        """Forward a client-built record, as posted to the log endpoint"""
        if not self.enabled:
            return SKIP_MISSING_ENV
        if not payload:
            return SKIP_EMPTY_BODY
        return await self.forward(AuditRecord.from_payload(payload, self.timezone))

    async def forward_later(self, build: Callable[[], Optional[AuditRecord]]) -> None:
        """Build the record once the response is finished, then forward it"""
        try:
            record = build()
        except Exception as e:
            logger.warning(f"Could not build audit record: {str(e)}")
            return
        if record is not None:
            await self.forward(record)
