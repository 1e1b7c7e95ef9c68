# assist_gateway/services/openai_service.py
from assist_gateway.core.config import AssistantConfig
from assist_gateway.models.chat import Run, Thread, ThreadMessage
from typing import Any, AsyncIterator, Dict, List, Optional
from .base_service import BaseAPIService, ServerSentEvent
import httpx
import logging

logger = logging.getLogger(__name__)


class OpenAIService(BaseAPIService):
    """
    Thin facade over the assistants v2 thread/message/run endpoints.

    Every method is a single outbound call. Failures surface as
    RemoteServiceError; nothing is retried here.
    """

    def __init__(
        self,
        config: AssistantConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=config.timeout_seconds, transport=transport)
        self.config = config
        self.base_url = config.base_url
        self.headers = {
            "Authorization": f"Bearer {config.api_key}",
            "OpenAI-Beta": "assistants=v2",
            "Content-Type": "application/json",
        }

    @property
    def assistant_id(self) -> str:
        return self.config.assistant_id

    async def create_thread(self, metadata: Optional[Dict[str, str]] = None) -> Thread:
        data: Dict[str, Any] = {}
        if metadata:
            data["metadata"] = metadata
        response = await self.make_request(
            method="POST",
            url=f"{self.base_url}/threads",
            headers=self.headers,
            data=data,
        )
        logger.info(f"Created thread {response['id']}")
        return Thread.model_validate(response)

    async def create_message(
        self,
        thread_id: str,
        content: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> ThreadMessage:
        data: Dict[str, Any] = {"role": "user", "content": content}
        if metadata:
            data["metadata"] = metadata
        response = await self.make_request(
            method="POST",
            url=f"{self.base_url}/threads/{thread_id}/messages",
            headers=self.headers,
            data=data,
        )
        return ThreadMessage.model_validate(response)

    async def create_run(self, thread_id: str) -> Run:
        response = await self.make_request(
            method="POST",
            url=f"{self.base_url}/threads/{thread_id}/runs",
            headers=self.headers,
            data={"assistant_id": self.assistant_id},
        )
        logger.info(f"Started run {response['id']} on thread {thread_id}")
        return Run.model_validate(response)

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        response = await self.make_request(
            method="GET",
            url=f"{self.base_url}/threads/{thread_id}/runs/{run_id}",
            headers=self.headers,
        )
        return Run.model_validate(response)

    async def list_messages(
        self, thread_id: str, limit: int = 20, order: str = "desc"
    ) -> List[ThreadMessage]:
        response = await self.make_request(
            method="GET",
            url=f"{self.base_url}/threads/{thread_id}/messages",
            headers=self.headers,
            params={"limit": limit, "order": order},
        )
        return [ThreadMessage.model_validate(item) for item in response.get("data", [])]

    def stream_run(self, thread_id: str) -> AsyncIterator[ServerSentEvent]:
        """Start a run with streaming enabled and iterate its raw events"""
        return self.stream_events(
            method="POST",
            url=f"{self.base_url}/threads/{thread_id}/runs",
            headers={**self.headers, "Accept": "text/event-stream"},
            data={"assistant_id": self.assistant_id, "stream": True},
        )

    async def __aenter__(self):
        """Support for async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Ensure proper cleanup of resources."""
        await self.close()
