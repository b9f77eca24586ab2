"""HTTP access to the retrieval completion provider."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from chat_bridge.core.config import ProviderConfig
from chat_bridge.core.errors import ProtocolError, TransportError
from chat_bridge.core.logging import get_logger
from chat_bridge.models.provider import CompletionResponse

logger = get_logger(__name__)

CONNECT_TIMEOUT = 10.0


class ProviderClient:
    """Issues completion requests against ``/api/v1/chats/{assistant}/completions``."""

    def __init__(self, config: ProviderConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _body(self, question: str, stream: bool, session_id: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"question": question, "stream": stream}
        if session_id:
            body["session_id"] = session_id
        return body

    @asynccontextmanager
    async def stream_completion(
        self,
        question: str,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a streaming completion and yield its raw byte chunks.

        Leaving the ``async with`` block closes the response, which drops the
        connection whether or not the provider finished sending.
        """
        logger.debug("Opening provider stream (session=%s)", session_id or "new")
        request = self._http.build_request(
            "POST",
            self.config.completions_endpoint,
            json=self._body(question, True, session_id),
            headers=self.config.headers,
            timeout=httpx.Timeout(timeout or self.config.completion_timeout, connect=CONNECT_TIMEOUT),
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"Network error contacting provider: {exc}") from exc
        try:
            if response.is_error:
                await response.aread()
                raise TransportError(
                    f"Provider API error: {_error_detail(response)}",
                    details={"status": response.status_code},
                )
            chunks = _iter_bytes(response)
            try:
                yield chunks
            finally:
                await chunks.aclose()
        finally:
            await response.aclose()

    async def complete(self, question: str, session_id: str | None = None) -> CompletionResponse:
        """Run a non-streaming completion and return the parsed body."""
        try:
            response = await self._http.post(
                self.config.completions_endpoint,
                json=self._body(question, False, session_id),
                headers=self.config.headers,
                timeout=httpx.Timeout(self.config.completion_timeout, connect=CONNECT_TIMEOUT),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Network error contacting provider: {exc}") from exc
        if response.is_error:
            raise TransportError(
                f"Provider API error: {_error_detail(response)}",
                details={"status": response.status_code},
            )
        try:
            return CompletionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProtocolError(f"Unreadable provider response: {exc}") from exc


async def _iter_bytes(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as exc:
        raise TransportError(f"Provider stream interrupted: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


__all__ = ["ProviderClient"]
