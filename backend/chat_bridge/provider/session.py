"""Provider session acquisition: look up a stored id or probe for a new one."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Protocol

from chat_bridge.core.config import ProviderConfig
from chat_bridge.core.errors import (
    BridgeError,
    ProtocolError,
    SessionAcquisitionFailed,
    SessionAcquisitionTimeout,
)
from chat_bridge.core.logging import get_logger, log_context
from chat_bridge.core.metrics import SESSION_PROBES
from chat_bridge.models.entities import CompletionSession, StreamFrame
from chat_bridge.provider.client import ProviderClient
from chat_bridge.provider.decoder import FrameDecoder

logger = get_logger(__name__)


class SessionStore(Protocol):
    def get_session_id(self, conversation_id: str) -> str | None: ...

    def set_session_id(self, conversation_id: str, session_id: str) -> str: ...


class SessionState(str, enum.Enum):
    NO_SESSION = "no_session"
    ACQUIRING_VIA_PROBE = "acquiring_via_probe"
    PERSISTED = "persisted"
    FAILED = "failed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.NO_SESSION: frozenset({SessionState.ACQUIRING_VIA_PROBE, SessionState.PERSISTED}),
    SessionState.ACQUIRING_VIA_PROBE: frozenset({SessionState.PERSISTED, SessionState.FAILED}),
    SessionState.PERSISTED: frozenset(),
    SessionState.FAILED: frozenset(),
}


@dataclass(slots=True)
class SessionAcquisition:
    """State of one ``acquire_session`` call."""

    session: CompletionSession
    state: SessionState = SessionState.NO_SESSION
    history: list[SessionState] = field(default_factory=list)

    def advance(self, state: SessionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid session transition {self.state.value} -> {state.value}")
        self.history.append(self.state)
        self.state = state
        logger.debug(
            "Session state -> %s",
            state.value,
            extra=log_context(self.session.conversation_id),
        )


class SessionManager:
    """Resolve the provider session for a conversation, probing at most once.

    A conversation without a stored id gets one by opening a streaming
    completion without ``session_id`` and reading frames until the provider
    reveals the id it allocated. The probe connection is closed as soon as the
    id is seen; the id is then written to the chat record.
    """

    def __init__(self, config: ProviderConfig, client: ProviderClient, store: SessionStore) -> None:
        self.config = config
        self.client = client
        self.store = store

    async def acquire_session(self, conversation_id: str, query: str) -> str:
        acquisition = await self.acquire(conversation_id, query)
        return acquisition.session.provider_session_id

    async def acquire(self, conversation_id: str, query: str) -> SessionAcquisition:
        """Run the lookup/probe state machine and return its final record."""
        acquisition = SessionAcquisition(CompletionSession(conversation_id))

        stored = self.store.get_session_id(conversation_id)
        if stored:
            acquisition.session.provider_session_id = stored
            acquisition.advance(SessionState.PERSISTED)
            return acquisition

        acquisition.advance(SessionState.ACQUIRING_VIA_PROBE)
        logger.info("No provider session; probing for one", extra=log_context(conversation_id))
        try:
            session_id = await asyncio.wait_for(self._probe(query), timeout=self.config.probe_timeout)
        except asyncio.TimeoutError as exc:
            acquisition.advance(SessionState.FAILED)
            SESSION_PROBES.labels(result="timeout").inc()
            raise SessionAcquisitionTimeout(
                f"Timeout waiting for provider session id after {self.config.probe_timeout:g}s"
            ) from exc
        except SessionAcquisitionFailed:
            acquisition.advance(SessionState.FAILED)
            SESSION_PROBES.labels(result="failed").inc()
            raise
        except BridgeError as exc:
            acquisition.advance(SessionState.FAILED)
            SESSION_PROBES.labels(result="failed").inc()
            raise SessionAcquisitionFailed(f"Session probe failed: {exc.message}") from exc

        stored = self.store.set_session_id(conversation_id, session_id)
        acquisition.session.provider_session_id = stored
        acquisition.advance(SessionState.PERSISTED)
        SESSION_PROBES.labels(result="ok").inc()
        logger.info("Saved provider session %s", stored, extra=log_context(conversation_id))
        return acquisition

    async def _probe(self, query: str) -> str:
        decoder = FrameDecoder(max_buffer=self.config.max_frame_bytes)
        async with self.client.stream_completion(query, timeout=self.config.probe_timeout) as chunks:
            async for chunk in chunks:
                for frame in decoder.feed(chunk):
                    session_id = _session_id_of(frame)
                    if session_id:
                        # leaving the context closes the probe connection
                        return session_id
            for frame in decoder.flush():
                session_id = _session_id_of(frame)
                if session_id:
                    return session_id
        raise SessionAcquisitionFailed("Provider stream ended without session id")


def _session_id_of(frame: StreamFrame) -> str | None:
    if frame.is_error:
        raise ProtocolError(frame.message or f"Provider returned code {frame.code}", code=frame.code)
    payload = frame.completion()
    if payload is None:
        return None
    return payload.session_id or None


__all__ = ["SessionManager", "SessionState", "SessionAcquisition", "SessionStore"]
