# assist_gateway/services/stream_relay.py
"""
Relay of a streamed assistant run to the browser as server-sent events.

The remote event stream is the producer and the SSE response body is the
consumer; they meet in an EventChannel. When the consumer goes away the
channel is closed, the producer's next send fails, and the producer
leaves the remote stream, which releases the connection.
"""

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from assist_gateway.core.exceptions import RemoteServiceError
from assist_gateway.models.chat import RunStatus, ThreadMessage, failed_run_reply
from .base_service import ServerSentEvent
from .openai_service import OpenAIService
from .submission_guard import MessageSubmissionGuard

logger = logging.getLogger(__name__)

_END = object()


def format_sse(data: Dict[str, Any], event: Optional[str] = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


class ChannelClosed(Exception):
    pass


class EventChannel:
    """Ordered hand-off of SSE frames from the producer to the response body."""

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise ChannelClosed()
        await self._queue.put(frame)

    async def finish(self) -> None:
        """Producer side: no more frames will follow."""
        if not self._closed:
            await self._queue.put(_END)

    def close(self) -> None:
        """Consumer side: stop accepting frames."""
        self._closed = True

    async def __aiter__(self) -> AsyncIterator[str]:
        while not self._closed:
            frame = await self._queue.get()
            if frame is _END:
                return
            yield frame


@dataclass
class StreamResult:
    thread_id: Optional[str] = None
    run_id: Optional[str] = None
    status: Optional[RunStatus] = None
    messages: List[str] = field(default_factory=list)
    error: Optional[str] = None
    ended: bool = False

    @property
    def reply(self) -> str:
        return "\n".join(text for text in self.messages if text).strip()


class StreamRelay:
    def __init__(
        self,
        service: OpenAIService,
        guard: Optional[MessageSubmissionGuard] = None,
    ):
        self.service = service
        self.guard = guard or MessageSubmissionGuard(service)
        self.result = StreamResult()

    async def events(
        self,
        message: Optional[str] = None,
        thread_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames in the order the remote run produces them."""
        channel = EventChannel()
        producer = asyncio.create_task(self._produce(channel, message, thread_id, metadata))
        try:
            async for frame in channel:
                if is_disconnected is not None and await is_disconnected():
                    logger.info(f"Client disconnected from stream on thread {self.result.thread_id}")
                    break
                yield frame
        finally:
            channel.close()
            if not producer.done():
                producer.cancel()
                await asyncio.wait([producer], timeout=5)

    async def _produce(
        self,
        channel: EventChannel,
        message: Optional[str],
        thread_id: Optional[str],
        metadata: Optional[Dict[str, str]],
    ) -> None:
        result = self.result
        try:
            if message:
                submission = await self.guard.submit(message, thread_id=thread_id, metadata=metadata)
                thread_id = submission.thread_id
            elif not thread_id:
                raise ValueError("Missing message or threadId")
            result.thread_id = thread_id
            await channel.send(format_sse({"threadId": thread_id}, event="meta"))

            async with aclosing(self.service.stream_run(thread_id)) as remote:
                async for event in remote:
                    if await self._relay(event, channel):
                        break

            if result.error is None:
                result.ended = True
                await channel.send(
                    format_sse(
                        {
                            "threadId": result.thread_id,
                            "runId": result.run_id,
                            "status": result.status.value if result.status else None,
                        },
                        event="end",
                    )
                )
        except ChannelClosed:
            logger.info(f"Stream consumer closed, releasing run {result.run_id}")
        except asyncio.CancelledError:
            logger.info(f"Stream producer cancelled for run {result.run_id}")
            raise
        except Exception as e:
            message_text = e.message if isinstance(e, RemoteServiceError) else str(e)
            logger.error(f"Error relaying stream: {message_text}")
            result.error = message_text or "Stream error"
            if not channel.closed:
                await channel.send(format_sse({"error": result.error}, event="error"))
        finally:
            await channel.finish()

    async def _relay(self, event: ServerSentEvent, channel: EventChannel) -> bool:
        """Forward one remote event. Returns True once the run is over."""
        result = self.result
        name = event.event or ""

        if name == "done":
            return True

        if name == "error":
            raise RemoteServiceError(_remote_error_message(event))

        payload = event.json()

        if name.startswith("thread.run.") and not name.startswith("thread.run.step"):
            run_id = payload.get("id")
            if run_id and run_id != result.run_id:
                result.run_id = run_id
                await channel.send(
                    format_sse({"threadId": result.thread_id, "runId": run_id}, event="meta")
                )
            status = payload.get("status")
            if status:
                try:
                    result.status = RunStatus(status)
                except ValueError:
                    logger.warning(f"Ignoring unknown run status {status!r} on run {result.run_id}")
            if result.status is not None and result.status.is_failed:
                result.error = failed_run_reply(result.status)
                await channel.send(
                    format_sse({"error": result.error, "status": result.status.value}, event="error")
                )
                return True
            return False

        if name == "thread.message.delta":
            for part in (payload.get("delta") or {}).get("content") or []:
                text = (part.get("text") or {}).get("value")
                if part.get("type") == "text" and text:
                    await channel.send(format_sse({"delta": text}))
            return False

        if name == "thread.message.completed":
            completed = ThreadMessage.model_validate(payload)
            result.messages.append(completed.text)
            await channel.send(
                format_sse({"messageId": completed.id, "text": completed.text}, event="message_complete")
            )
            return False

        return False


def _remote_error_message(event: ServerSentEvent) -> str:
    try:
        payload = event.json()
    except ValueError:
        return event.data or "Stream error"
    if isinstance(payload, dict):
        error = payload.get("error", payload)
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return event.data or "Stream error"
