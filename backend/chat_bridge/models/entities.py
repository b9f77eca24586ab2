"""Internal dataclasses for decoded frames and persisted records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from chat_bridge.models.provider import CompletionPayload


@dataclass(slots=True)
class StreamFrame:
    """One decoded ``data:`` unit of the provider stream."""

    code: int
    message: str
    data: Any

    @property
    def is_end_signal(self) -> bool:
        return self.data is True

    @property
    def is_error(self) -> bool:
        return self.code != 0

    def completion(self) -> CompletionPayload | None:
        if not isinstance(self.data, dict):
            return None
        try:
            return CompletionPayload.model_validate(self.data)
        except ValidationError:
            return None


@dataclass(slots=True)
class CompletionSession:
    conversation_id: str
    provider_session_id: str | None = None


@dataclass(slots=True)
class Chat:
    id: str
    title: str
    created_at: str
    focus_mode: str
    files: list[dict[str, Any]]
    provider_session_id: str | None


@dataclass(slots=True)
class StoredMessage:
    id: int
    chat_id: str
    message_id: str
    role: str
    content: str
    metadata: dict[str, Any]


__all__ = ["StreamFrame", "CompletionSession", "Chat", "StoredMessage"]
