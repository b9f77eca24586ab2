"""Forward producer events to the client as NDJSON and persist the final answer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import anyio
import orjson

from chat_bridge.core.logging import get_logger, log_context
from chat_bridge.core.metrics import CHAT_REQUESTS, PERSISTED_MESSAGES, PROVIDER_ERRORS, STREAM_DURATION
from chat_bridge.models.events import (
    EndEvent,
    ErrorEvent,
    InternalEvent,
    MessageEvent,
    ReferencesEvent,
    SourcesEvent,
)
from chat_bridge.models.provider import Reference, WebSource
from chat_bridge.utils.time import utc_now_iso

logger = get_logger(__name__)

UNEXPECTED_END_MESSAGE = "Answer stream ended unexpectedly"
SAVE_FAILED_MESSAGE = "Failed to save the answer"
SERVER_ERROR_MESSAGE = "Something went wrong while answering. Please try again."


class AnswerStore(Protocol):
    def append_assistant_message(
        self,
        conversation_id: str,
        message_id: str,
        text: str,
        metadata: dict[str, Any],
    ) -> bool: ...


@dataclass(slots=True)
class AccumulatedAnswer:
    text: str = ""
    sources: list[WebSource] = field(default_factory=list)
    reference: Reference | None = None

    def metadata(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"createdAt": utc_now_iso()}
        if self.sources:
            payload["sources"] = [_dump(source) for source in self.sources]
        if self.reference is not None and not self.reference.is_empty:
            payload["references"] = _dump(self.reference)
        return payload


class EventMultiplexer:
    """Serve one answer stream to one client.

    The multiplexer pulls events from a single producer only when the client
    side asks for the next line, so a slow reader slows the upstream read
    instead of growing a buffer. The assistant message is written once, on a
    clean end, before the closing ``messageEnd`` line is sent.
    """

    def __init__(self, store: AnswerStore, conversation_id: str, message_id: str, mode: str = "docs") -> None:
        self.store = store
        self.conversation_id = conversation_id
        self.message_id = message_id
        self.mode = mode
        self.answer = AccumulatedAnswer()
        self.outcome = "pending"
        self._persisted = False

    async def stream(self, events: AsyncIterator[InternalEvent]) -> AsyncIterator[bytes]:
        started = time.perf_counter()
        try:
            async for event in events:
                for line in self._handle(event):
                    yield line
                if self.outcome != "pending":
                    break
            else:
                logger.warning("Producer finished without a terminal event", extra=self._log_extra())
                self.outcome = "error"
                yield self._frame("error", UNEXPECTED_END_MESSAGE)
        except Exception:  # noqa: BLE001 - any producer failure becomes an error frame
            logger.exception("Answer producer failed", extra=self._log_extra())
            PROVIDER_ERRORS.labels(kind="producer").inc()
            self.outcome = "error"
            yield self._frame("error", SERVER_ERROR_MESSAGE)
        finally:
            if self.outcome == "pending":
                self.outcome = "disconnected"
                logger.info("Client went away; closing producer", extra=self._log_extra())
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                with anyio.CancelScope(shield=True):
                    await aclose()
            STREAM_DURATION.labels(mode=self.mode).observe(time.perf_counter() - started)
            CHAT_REQUESTS.labels(mode=self.mode, outcome=self.outcome).inc()

    def _handle(self, event: InternalEvent) -> list[bytes]:
        if isinstance(event, MessageEvent):
            if event.replace:
                self.answer.text = event.text
                return [self._frame("message", event.text, replace=True)]
            self.answer.text += event.text
            return [self._frame("message", event.text)]
        if isinstance(event, SourcesEvent):
            self.answer.sources = list(event.sources)
            return [self._frame("sources", [_dump(source) for source in self.answer.sources])]
        if isinstance(event, ReferencesEvent):
            self.answer.reference = event.reference
            return [self._frame("references", _dump(event.reference))]
        if isinstance(event, ErrorEvent):
            self.outcome = "error"
            logger.info("Producer reported error: %s", event.text, extra=self._log_extra())
            return [self._frame("error", event.text)]
        if isinstance(event, EndEvent):
            try:
                self.persist()
            except Exception:  # noqa: BLE001
                logger.exception("Could not persist assistant message", extra=self._log_extra())
                self.outcome = "error"
                return [self._frame("error", SAVE_FAILED_MESSAGE)]
            self.outcome = "completed"
            return [self._frame("messageEnd")]
        raise TypeError(f"Unknown event {event!r}")

    def persist(self) -> bool:
        """Write the accumulated answer; later calls for the same message do nothing."""
        if self._persisted:
            return False
        self._persisted = True
        written = self.store.append_assistant_message(
            self.conversation_id,
            self.message_id,
            self.answer.text,
            self.answer.metadata(),
        )
        if written:
            PERSISTED_MESSAGES.labels(mode=self.mode).inc()
        else:
            logger.warning("Assistant message already stored", extra=self._log_extra())
        return written

    def _frame(self, kind: str, data: Any = None, replace: bool = False) -> bytes:
        payload: dict[str, Any] = {"type": kind}
        if data is not None:
            payload["data"] = data
        if replace:
            # ``data`` is the whole answer; clients drop what they rendered so far
            payload["replace"] = True
        payload["messageId"] = self.message_id
        return orjson.dumps(payload) + b"\n"

    def _log_extra(self) -> dict[str, Any]:
        return log_context(self.conversation_id, self.message_id)


def _dump(model: WebSource | Reference) -> dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


__all__ = ["AccumulatedAnswer", "AnswerStore", "EventMultiplexer"]
