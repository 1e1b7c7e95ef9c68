# assist_gateway/services/base_service.py
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from assist_gateway.core.exceptions import RemoteServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSentEvent:
    event: Optional[str]
    data: str

    def json(self) -> Any:
        return json.loads(self.data)


def _error_message(response: httpx.Response, body: bytes) -> tuple:
    """Pull the service's own error message and code out of an error body"""
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        return error.get("message") or response.reason_phrase, error.get("code")
    text = body.decode("utf-8", errors="replace").strip() if body else ""
    return text or f"HTTP {response.status_code} {response.reason_phrase}", None


class BaseAPIService:
    """Shared HTTP plumbing for remote API facades."""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        logger.debug(f"{method} {url}")
        try:
            response = await self.client.request(
                method, url, headers=headers, json=data, params=params
            )
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Request to {url} failed: {e}") from e

        if response.is_error:
            message, code = _error_message(response, response.content)
            raise RemoteServiceError(message, status_code=response.status_code, code=code)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(f"Invalid JSON from {url}") from e

    async def stream_events(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ServerSentEvent]:
        """
        Open a server-sent event stream and yield its events as they arrive.

        The underlying connection is released when the caller stops iterating
        (or closes the generator), so abandoning the iterator never leaks it.
        """
        try:
            async with self.client.stream(method, url, headers=headers, json=data) as response:
                if response.is_error:
                    body = await response.aread()
                    message, code = _error_message(response, body)
                    raise RemoteServiceError(message, status_code=response.status_code, code=code)

                event: Optional[str] = None
                data_lines: List[str] = []
                async for line in response.aiter_lines():
                    if line == "":
                        if data_lines:
                            yield ServerSentEvent(event=event, data="\n".join(data_lines))
                        event, data_lines = None, []
                        continue
                    if line.startswith(":"):
                        continue
                    field, _, value = line.partition(":")
                    if value.startswith(" "):
                        value = value[1:]
                    if field == "event":
                        event = value
                    elif field == "data":
                        data_lines.append(value)

                if data_lines:
                    yield ServerSentEvent(event=event, data="\n".join(data_lines))
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Stream from {url} failed: {e}") from e

    async def close(self):
        await self.client.aclose()
