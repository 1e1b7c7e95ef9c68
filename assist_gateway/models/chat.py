# assist_gateway/models/chat.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

NO_RESPONSE_REPLY = "No response."


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    # Newer remote states; treated like the bucket they resemble
    CANCELLING = "cancelling"
    INCOMPLETE = "incomplete"

    @property
    def is_pending(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)

    @property
    def is_actionable(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.REQUIRES_ACTION)

    @property
    def is_failed(self) -> bool:
        return self in (
            RunStatus.FAILED,
            RunStatus.CANCELLED,
            RunStatus.EXPIRED,
            RunStatus.INCOMPLETE,
        )


class Run(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    thread_id: str
    status: RunStatus
    last_error: Optional[Dict[str, Any]] = None


class Thread(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ThreadMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    role: str
    content: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Text segments joined in order, trimmed"""
        segments = []
        for part in self.content:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, dict):
                segments.append(text.get("value") or "")
        return "\n".join(segments).strip()


def extract_reply(messages: List[ThreadMessage]) -> str:
    """
    Reply text of the most recent assistant message.

    Messages are expected newest first, which is the order the service
    lists them in by default. Returns an empty string when the assistant
    has not said anything yet.
    """
    for message in messages:
        if message.role == "assistant":
            return message.text
    return ""


def failed_run_reply(status: RunStatus) -> str:
    return f"Run status: {status.value}"


class AssistAction(str, Enum):
    POLL = "poll"
    STREAM = "stream"
    ASK = "ask"


class AssistRequest(BaseModel):
    """Body accepted by the assist endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: Optional[str] = None
    message: Optional[str] = None
    email: Optional[str] = None
    session: Optional[str] = None
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    run_id: Optional[str] = Field(default=None, alias="runId")

    @property
    def mode(self) -> AssistAction:
        if self.action == AssistAction.POLL.value:
            return AssistAction.POLL
        if self.action == AssistAction.STREAM.value:
            return AssistAction.STREAM
        return AssistAction.ASK

    def metadata(self) -> Dict[str, str]:
        """Submitter details attached to threads and messages"""
        meta = {}
        if self.email:
            meta["email"] = self.email
        if self.session:
            meta["session"] = self.session
        return meta
