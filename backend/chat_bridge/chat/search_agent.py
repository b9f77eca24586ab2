"""Adapter for the external web-search agent and its event vocabulary."""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator, Mapping, Sequence

import httpx
import orjson

from chat_bridge.core.logging import get_logger
from chat_bridge.models.events import (
    EndEvent,
    ErrorEvent,
    InternalEvent,
    MessageEvent,
    SourcesEvent,
    is_terminal,
)
from chat_bridge.models.provider import WebSource

logger = get_logger(__name__)

FOCUS_MODES = frozenset(
    {
        "webSearch",
        "academicSearch",
        "redditSearch",
        "youtubeSearch",
        "wolframAlphaSearch",
        "writingAssistant",
    }
)
DEFAULT_FOCUS_MODE = "webSearch"
OPTIMIZATION_MODES = ("speed", "balanced", "quality")


def resolve_focus_mode(focus_mode: str | None) -> str:
    return focus_mode if focus_mode in FOCUS_MODES else DEFAULT_FOCUS_MODE


def to_internal_event(item: Mapping[str, Any] | str | bytes) -> InternalEvent | None:
    """Map one agent emission onto the internal event model.

    The agent speaks ``response`` / ``sources`` / ``end`` / ``error``; anything
    else is ignored.
    """
    if isinstance(item, (str, bytes)):
        try:
            item = orjson.loads(item)
        except orjson.JSONDecodeError:
            logger.warning("Dropping unreadable agent line")
            return None
    if not isinstance(item, Mapping):
        logger.warning("Dropping non-object agent payload")
        return None

    kind = item.get("type")
    data = item.get("data")
    if kind == "response":
        return MessageEvent(str(data or ""))
    if kind == "sources":
        raw_sources = data if isinstance(data, list) else []
        return SourcesEvent([WebSource.from_agent(raw) for raw in raw_sources if isinstance(raw, Mapping)])
    if kind == "end":
        return EndEvent()
    if kind == "error":
        return ErrorEvent(str(data or "Search agent error"))
    logger.debug("Ignoring agent event type %r", kind)
    return None


async def normalize_agent_events(
    raw: AsyncIterable[Mapping[str, Any] | str | bytes],
) -> AsyncIterator[InternalEvent]:
    """Yield internal events for an agent stream, stopping after the first terminal one."""
    async for item in raw:
        event = to_internal_event(item)
        if event is None:
            continue
        yield event
        if is_terminal(event):
            return


class RemoteSearchAgent:
    """Web-search agent reached over HTTP, streaming one JSON object per line."""

    def __init__(self, url: str, timeout: float = 300.0, http_client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def search_and_answer(
        self,
        query: str,
        history: Sequence[Sequence[str]] = (),
        focus_mode: str | None = None,
        optimization_mode: str = "balanced",
        files: Sequence[str] = (),
        system_instructions: str | None = None,
    ) -> AsyncIterator[InternalEvent]:
        body = {
            "query": query,
            "history": [list(turn) for turn in history],
            "focusMode": resolve_focus_mode(focus_mode),
            "optimizationMode": optimization_mode if optimization_mode in OPTIMIZATION_MODES else "balanced",
            "files": list(files),
            "systemInstructions": system_instructions,
        }
        try:
            async with self._http.stream("POST", self.url, json=body, timeout=self.timeout) as response:
                if response.is_error:
                    await response.aread()
                    yield ErrorEvent(f"Search agent returned HTTP {response.status_code}")
                    return
                async for event in normalize_agent_events(_lines(response)):
                    yield event
        except httpx.HTTPError as exc:
            logger.warning("Search agent request failed: %s", exc)
            yield ErrorEvent(f"Network error contacting search agent: {exc}")


async def _lines(response: httpx.Response) -> AsyncIterator[str]:
    async for line in response.aiter_lines():
        line = line.strip()
        if line.startswith("data:"):
            line = line[len("data:") :].strip()
        if line:
            yield line


__all__ = [
    "FOCUS_MODES",
    "RemoteSearchAgent",
    "normalize_agent_events",
    "resolve_focus_mode",
    "to_internal_event",
]
