"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessageIn(BaseModel):
    message_id: str | None = Field(default=None, alias="messageId")
    chat_id: str = Field(alias="chatId")
    content: str

    model_config = {"populate_by_name": True}


class ChatRequest(BaseModel):
    message: ChatMessageIn
    search_mode: Literal["web", "docs"] = Field(default="web", alias="searchMode")
    focus_mode: str = Field(default="webSearch", alias="focusMode")
    optimization_mode: Literal["speed", "balanced", "quality"] = Field(default="balanced", alias="optimizationMode")
    history: list[tuple[str, str]] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    system_instructions: str | None = Field(default=None, alias="systemInstructions")
    stream: bool | None = Field(default=None, description="Stream provider output instead of one completion call")

    model_config = {"populate_by_name": True}


class ChatSummary(BaseModel):
    id: str
    title: str
    created_at: str = Field(serialization_alias="createdAt")
    focus_mode: str = Field(serialization_alias="focusMode")
    files: list[dict[str, Any]] = Field(default_factory=list)


class MessageView(BaseModel):
    message_id: str = Field(serialization_alias="messageId")
    chat_id: str = Field(serialization_alias="chatId")
    role: Literal["assistant", "user"]
    content: str
    created_at: str | None = Field(default=None, serialization_alias="createdAt")
    sources: list[dict[str, Any]] | None = None
    references: dict[str, Any] | None = None
    rendered: str | None = None
    citations: list[dict[str, Any]] = Field(default_factory=list)


class ChatListResponse(BaseModel):
    chats: list[ChatSummary]


class ChatDetailResponse(BaseModel):
    chat: ChatSummary
    messages: list[MessageView]


class StatusResponse(BaseModel):
    message: str


__all__ = [
    "ChatMessageIn",
    "ChatRequest",
    "ChatSummary",
    "MessageView",
    "ChatListResponse",
    "ChatDetailResponse",
    "StatusResponse",
]
