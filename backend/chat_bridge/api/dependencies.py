"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

import httpx

from chat_bridge.chat.search_agent import RemoteSearchAgent
from chat_bridge.core.config import Settings, get_settings
from chat_bridge.db.sqlite import SQLiteDatabase
from chat_bridge.db.store import ChatStore
from chat_bridge.provider import ProviderClient, SessionManager, StreamBridge

_DB: SQLiteDatabase | None = None
_STORE: ChatStore | None = None
_HTTP_CLIENT: httpx.AsyncClient | None = None
_BRIDGE: StreamBridge | None = None
_SEARCH_AGENT: RemoteSearchAgent | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_chat_store() -> ChatStore:
    global _STORE
    if _STORE is None:
        _STORE = ChatStore(get_database())
    return _STORE


def get_http_client() -> httpx.AsyncClient:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is None:
        _HTTP_CLIENT = httpx.AsyncClient()
    return _HTTP_CLIENT


def get_stream_bridge() -> StreamBridge:
    """Build the provider bridge; raises ConfigurationError when provider settings are missing."""
    global _BRIDGE
    if _BRIDGE is None:
        config = get_app_settings().provider_config()
        client = ProviderClient(config, http_client=get_http_client())
        _BRIDGE = StreamBridge(config, client, SessionManager(config, client, get_chat_store()))
    return _BRIDGE


def get_search_agent() -> RemoteSearchAgent | None:
    global _SEARCH_AGENT
    if _SEARCH_AGENT is None:
        settings = get_app_settings()
        if not settings.search_agent_url:
            return None
        _SEARCH_AGENT = RemoteSearchAgent(
            settings.search_agent_url,
            timeout=settings.search_agent_timeout,
            http_client=get_http_client(),
        )
    return _SEARCH_AGENT


async def close_clients() -> None:
    global _HTTP_CLIENT, _BRIDGE, _SEARCH_AGENT
    if _HTTP_CLIENT is not None:
        await _HTTP_CLIENT.aclose()
    _HTTP_CLIENT = None
    _BRIDGE = None
    _SEARCH_AGENT = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_chat_store",
    "get_http_client",
    "get_stream_bridge",
    "get_search_agent",
    "close_clients",
]
