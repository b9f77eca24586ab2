"""Test fixtures for Chat Bridge."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import orjson
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from chat_bridge.core.config import ProviderConfig  # noqa: E402
from chat_bridge.db.sqlite import SQLiteDatabase  # noqa: E402
from chat_bridge.db.store import ChatStore  # noqa: E402


def _reset_dependencies() -> None:
    from chat_bridge.api import dependencies as deps
    from chat_bridge.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    if deps._DB is not None:
        deps._DB.close()
    deps._DB = None
    deps._STORE = None
    deps._HTTP_CLIENT = None
    deps._BRIDGE = None
    deps._SEARCH_AGENT = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("CHB_DB_PATH", str(tmp_path / "chat.db"))
    monkeypatch.delenv("CHB_CONFIG", raising=False)
    for name in ("CHB_PROVIDER_API_URL", "CHB_PROVIDER_API_KEY", "CHB_PROVIDER_ASSISTANT_ID", "CHB_SEARCH_AGENT_URL"):
        monkeypatch.delenv(name, raising=False)
    _reset_dependencies()
    yield
    _reset_dependencies()


@pytest.fixture
def store(tmp_path: Path) -> ChatStore:
    db = SQLiteDatabase(tmp_path / "store.db")
    db.ensure_schema()
    yield ChatStore(db)
    db.close()


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        api_url="http://provider.test",
        api_key="secret",
        assistant_id="assistant-1",
        probe_timeout=0.5,
        completion_timeout=5.0,
    )


def frame(payload: Any) -> bytes:
    return b"data:" + orjson.dumps(payload) + b"\n\n"


def answer_frame(answer: str, session_id: str = "sess-1", reference: Any = None) -> bytes:
    data: dict[str, Any] = {"answer": answer, "session_id": session_id}
    if reference is not None:
        data["reference"] = reference
    return frame({"code": 0, "message": "", "data": data})


class ChunkedStream(httpx.AsyncByteStream):
    """Response body handing out pre-cut chunks and recording how far it was read."""

    def __init__(self, chunks: Iterable[bytes], stall: bool = False) -> None:
        self.chunks = list(chunks)
        self.stall = stall
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk
        if self.stall:
            await asyncio.sleep(3600)

    async def aclose(self) -> None:
        self.closed = True


class ProviderStub:
    """Queue of canned provider responses served through ``httpx.MockTransport``."""

    frame = staticmethod(frame)
    answer_frame = staticmethod(answer_frame)

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.streams: list[ChunkedStream] = []
        self._responses: list[Callable[[httpx.Request], httpx.Response]] = []

    def queue_stream(self, chunks: Iterable[bytes], status: int = 200, stall: bool = False) -> ChunkedStream:
        stream = ChunkedStream(chunks, stall=stall)
        self.streams.append(stream)
        self._responses.append(lambda request: httpx.Response(status, stream=stream))
        return stream

    def queue_json(self, body: Any, status: int = 200) -> None:
        self._responses.append(lambda request: httpx.Response(status, json=body))

    def queue_exception(self, exc: Exception) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc

        self._responses.append(_raise)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(orjson.loads(request.content) if request.content else {})
        if not self._responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        return self._responses.pop(0)(request)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest.fixture(scope="session")
def sample_reference() -> dict[str, Any]:
    return {
        "total": 2,
        "chunks": [
            {
                "id": "a",
                "content": "Photosynthesis converts light to chemical energy.",
                "document_id": "doc-1",
                "document_name": "biology.pdf",
                "dataset_id": "ds-1",
                "similarity": 0.91,
            },
            {
                "id": "b",
                "content": "Chlorophyll absorbs mostly blue and red light.",
                "document_id": "doc-2",
                "document_name": "Plant pigments",
                "dataset_id": "ds-1",
                "url": "https://example.org/pigments",
            },
        ],
        "doc_aggs": [{"doc_name": "biology.pdf", "doc_id": "doc-1", "count": 1}],
    }
