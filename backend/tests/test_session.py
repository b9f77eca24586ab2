"""Tests for provider session acquisition."""

from __future__ import annotations

import httpx
import pytest

from chat_bridge.core.errors import SessionAcquisitionFailed, SessionAcquisitionTimeout
from chat_bridge.provider.client import ProviderClient
from chat_bridge.provider.session import SessionManager, SessionState


def _manager(provider_config, provider_stub, store) -> SessionManager:
    client = ProviderClient(provider_config, http_client=provider_stub.http_client())
    return SessionManager(provider_config, client, store)


@pytest.mark.asyncio
async def test_probe_runs_once_per_conversation(provider_config, provider_stub, store) -> None:
    store.ensure_chat("chat-1", title="hello", focus_mode="webSearch")
    provider_stub.queue_stream(
        [
            provider_stub.answer_frame("", session_id="sess-42"),
            provider_stub.answer_frame("never read", session_id="sess-42"),
            provider_stub.answer_frame("never read either", session_id="sess-42"),
        ]
    )
    manager = _manager(provider_config, provider_stub, store)

    first = await manager.acquire("chat-1", "hello")
    second = await manager.acquire("chat-1", "and again")

    assert first.session.provider_session_id == "sess-42"
    assert first.state is SessionState.PERSISTED
    assert first.history == [SessionState.NO_SESSION, SessionState.ACQUIRING_VIA_PROBE]
    assert second.history == [SessionState.NO_SESSION]
    assert second.session.provider_session_id == "sess-42"
    assert len(provider_stub.requests) == 1
    assert provider_stub.requests[0] == {"question": "hello", "stream": True}
    assert store.get_session_id("chat-1") == "sess-42"


@pytest.mark.asyncio
async def test_probe_connection_is_closed_after_first_id(provider_config, provider_stub, store) -> None:
    probe = provider_stub.queue_stream(
        [provider_stub.answer_frame("Hi", session_id="sess-1")] + [provider_stub.answer_frame("Hi there")] * 5
    )
    manager = _manager(provider_config, provider_stub, store)

    assert await manager.acquire_session("chat-2", "hi") == "sess-1"
    assert probe.closed
    assert probe.sent < len(probe.chunks)


@pytest.mark.asyncio
async def test_stored_session_skips_probe(provider_config, provider_stub, store) -> None:
    store.set_session_id("chat-3", "existing")
    manager = _manager(provider_config, provider_stub, store)

    assert await manager.acquire_session("chat-3", "question") == "existing"
    assert provider_stub.requests == []


@pytest.mark.asyncio
async def test_stream_without_session_id_fails(provider_config, provider_stub, store) -> None:
    provider_stub.queue_stream([provider_stub.frame({"code": 0, "message": "", "data": True})])
    manager = _manager(provider_config, provider_stub, store)

    with pytest.raises(SessionAcquisitionFailed):
        await manager.acquire_session("chat-4", "question")
    assert store.get_session_id("chat-4") is None


@pytest.mark.asyncio
async def test_probe_timeout_persists_nothing(provider_config, provider_stub, store) -> None:
    probe = provider_stub.queue_stream([b": waiting\n"], stall=True)
    manager = _manager(provider_config, provider_stub, store)

    with pytest.raises(SessionAcquisitionTimeout):
        await manager.acquire_session("chat-5", "question")
    assert probe.closed
    assert store.get_session_id("chat-5") is None


@pytest.mark.asyncio
async def test_transport_error_during_probe(provider_config, provider_stub, store) -> None:
    provider_stub.queue_exception(httpx.ConnectError("connection refused"))
    manager = _manager(provider_config, provider_stub, store)

    with pytest.raises(SessionAcquisitionFailed) as excinfo:
        await manager.acquire_session("chat-6", "question")
    assert "connection refused" in str(excinfo.value)


@pytest.mark.asyncio
async def test_provider_error_frame_fails_probe(provider_config, provider_stub, store) -> None:
    provider_stub.queue_stream([provider_stub.frame({"code": 102, "message": "You don't own the chat", "data": None})])
    manager = _manager(provider_config, provider_stub, store)

    with pytest.raises(SessionAcquisitionFailed) as excinfo:
        await manager.acquire_session("chat-7", "question")
    assert "You don't own the chat" in str(excinfo.value)
