"""Turn provider completions into the normalized internal event stream."""

from __future__ import annotations

from typing import AsyncIterator

from chat_bridge.core.config import AnswerMode, ProviderConfig
from chat_bridge.core.errors import BridgeError, ProtocolError, SessionAcquisitionError
from chat_bridge.core.logging import get_logger, log_context
from chat_bridge.core.metrics import PROVIDER_ERRORS
from chat_bridge.models.entities import StreamFrame
from chat_bridge.models.events import (
    EndEvent,
    ErrorEvent,
    InternalEvent,
    MessageEvent,
    ReferencesEvent,
)
from chat_bridge.models.provider import Reference
from chat_bridge.provider.client import ProviderClient
from chat_bridge.provider.decoder import FrameDecoder
from chat_bridge.provider.session import SessionManager

logger = get_logger(__name__)


class _CompletionTracker:
    """Per-request view of the frames seen so far."""

    def __init__(self, mode: AnswerMode = AnswerMode.FULL) -> None:
        self.mode = mode
        self.previous_answer = ""
        self.reference: Reference | None = None

    def consume(self, frame: StreamFrame) -> MessageEvent | None:
        if frame.is_error:
            raise ProtocolError(frame.message or f"Provider returned code {frame.code}", code=frame.code)
        if frame.is_end_signal:
            return None
        payload = frame.completion()
        if payload is None:
            return None
        if payload.usable_reference is not None:
            # later snapshots replace earlier ones
            self.reference = payload.usable_reference
        return self._delta(payload.answer)

    def _delta(self, answer: str) -> MessageEvent | None:
        if not answer:
            return None
        if self.mode is AnswerMode.DELTA:
            return MessageEvent(answer)
        previous, self.previous_answer = self.previous_answer, answer
        if answer == previous:
            return None
        if answer.startswith(previous):
            return MessageEvent(answer[len(previous) :])
        # earlier text was rewritten, e.g. citation markers inserted mid-answer
        return MessageEvent(answer, replace=True)


class StreamBridge:
    """Drive the provider for one turn and yield :mod:`chat_bridge.models.events`."""

    def __init__(self, config: ProviderConfig, client: ProviderClient, sessions: SessionManager) -> None:
        self.config = config
        self.client = client
        self.sessions = sessions

    async def run_turn(
        self,
        conversation_id: str,
        query: str,
        *,
        stream: bool | None = None,
    ) -> AsyncIterator[InternalEvent]:
        """Resolve the session (probing if needed), then stream the answer."""
        try:
            session_id = await self.sessions.acquire_session(conversation_id, query)
        except SessionAcquisitionError as exc:
            logger.warning("Session acquisition failed: %s", exc.message, extra=log_context(conversation_id))
            PROVIDER_ERRORS.labels(kind="session").inc()
            yield ErrorEvent(exc.message)
            return
        async for event in self.start_completion(conversation_id, query, session_id, stream=stream):
            yield event

    async def start_completion(
        self,
        conversation_id: str,
        query: str,
        session_id: str | None,
        *,
        stream: bool | None = None,
    ) -> AsyncIterator[InternalEvent]:
        if session_id is None:
            async for event in self.run_turn(conversation_id, query, stream=stream):
                yield event
            return

        use_stream = self.config.stream if stream is None else stream
        events = self._streamed(query, session_id) if use_stream else self._single(query, session_id)
        try:
            async for event in events:
                yield event
        except BridgeError as exc:
            logger.warning(
                "Provider completion failed: %s",
                exc.message,
                extra=log_context(conversation_id),
            )
            PROVIDER_ERRORS.labels(kind=type(exc).__name__).inc()
            yield ErrorEvent(exc.message)
        finally:
            await events.aclose()

    async def _streamed(self, query: str, session_id: str) -> AsyncIterator[InternalEvent]:
        decoder = FrameDecoder(max_buffer=self.config.max_frame_bytes)
        tracker = _CompletionTracker(self.config.answer_mode)
        async with self.client.stream_completion(query, session_id) as chunks:
            async for chunk in chunks:
                for frame in decoder.feed(chunk):
                    event = tracker.consume(frame)
                    if event is not None:
                        yield event
            for frame in decoder.flush():
                event = tracker.consume(frame)
                if event is not None:
                    yield event
        if tracker.reference is not None:
            yield ReferencesEvent(tracker.reference)
        yield EndEvent()

    async def _single(self, query: str, session_id: str) -> AsyncIterator[InternalEvent]:
        response = await self.client.complete(query, session_id)
        if response.code != 0:
            raise ProtocolError(f"Provider API error: {response.message}", code=response.code)
        if response.data is not None:
            if response.data.answer:
                yield MessageEvent(response.data.answer)
            if response.data.usable_reference is not None:
                yield ReferencesEvent(response.data.usable_reference)
        yield EndEvent()


__all__ = ["StreamBridge"]
