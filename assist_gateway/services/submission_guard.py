# assist_gateway/services/submission_guard.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from assist_gateway.core.exceptions import is_active_run_conflict
from .openai_service import OpenAIService

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 2
DEFAULT_RETRY_DELAY = 0.8


@dataclass(frozen=True)
class Submission:
    thread_id: str
    attempts: int
    replaced_thread: bool = False


class MessageSubmissionGuard:
    """
    Appends a user message to a thread even when the thread is busy.

    The service refuses new messages while a run is active on the thread.
    The guard waits and retries a bounded number of times, then moves the
    conversation to a brand-new thread. Moving loses the earlier context
    but keeps the user's message from bouncing.
    """

    def __init__(
        self,
        service: OpenAIService,
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service
        self.retries = retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    async def submit(
        self,
        message: str,
        thread_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Submission:
        if not thread_id:
            thread = await self.service.create_thread(metadata=metadata)
            await self.service.create_message(thread.id, message, metadata=metadata)
            return Submission(thread_id=thread.id, attempts=1)

        attempts = 0
        while True:
            attempts += 1
            try:
                await self.service.create_message(thread_id, message, metadata=metadata)
                return Submission(thread_id=thread_id, attempts=attempts)
            except Exception as e:
                if not is_active_run_conflict(e):
                    raise
                if attempts > self.retries:
                    logger.warning(
                        f"Thread {thread_id} still busy after {attempts} attempts, moving to a new thread"
                    )
                    break
                logger.info(f"Thread {thread_id} has an active run, retrying in {self.retry_delay}s")
                await self.sleep(self.retry_delay)

        thread = await self.service.create_thread(metadata=metadata)
        await self.service.create_message(thread.id, message, metadata=metadata)
        return Submission(thread_id=thread.id, attempts=attempts + 1, replaced_thread=True)
