# assist_gateway/services/run_poller.py
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from assist_gateway.models.chat import Run
from .openai_service import OpenAIService

logger = logging.getLogger(__name__)

INITIAL_DELAY_MS = 300
MAX_DELAY_MS = 1000
BACKOFF_FACTOR = 1.3


def backoff_delay(elapsed_ms: float, attempt: int, budget_ms: float) -> Optional[float]:
    """
    Milliseconds to wait before status check number ``attempt + 1``.

    Starts at 300ms, grows by 1.3x per attempt and is capped at 1000ms.
    The wait never runs past the budget; None means the budget is spent.
    """
    remaining = budget_ms - elapsed_ms
    if remaining <= 0:
        return None
    delay = min(INITIAL_DELAY_MS * (BACKOFF_FACTOR ** attempt), MAX_DELAY_MS)
    return min(delay, remaining)


class RunPoller:
    def __init__(
        self,
        service: OpenAIService,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.sleep = sleep
        self.clock = clock

    async def wait(self, thread_id: str, run_id: str, budget_ms: float) -> Run:
        """
        Poll until the run leaves the pending bucket or the budget runs out.

        Running out of budget is not an error: the last observed run is
        returned, still pending, and the client carries on with poll requests.
        Transport errors propagate.
        """
        started = self.clock()
        attempt = 0
        run = await self.service.get_run(thread_id, run_id)
        while run.status.is_pending:
            elapsed_ms = (self.clock() - started) * 1000
            delay = backoff_delay(elapsed_ms, attempt, budget_ms)
            if delay is None:
                logger.info(f"Run {run_id} still {run.status.value} after {elapsed_ms:.0f}ms")
                break
            await self.sleep(delay / 1000)
            attempt += 1
            run = await self.service.get_run(thread_id, run_id)
        return run
