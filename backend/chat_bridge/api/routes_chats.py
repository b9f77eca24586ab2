"""Chat history routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from chat_bridge.api.dependencies import get_chat_store
from chat_bridge.chat.citations import render_placeholders, resolve
from chat_bridge.core.logging import get_logger
from chat_bridge.db.store import ChatStore
from chat_bridge.models.dto import ChatDetailResponse, ChatListResponse, ChatSummary, MessageView, StatusResponse
from chat_bridge.models.entities import Chat, StoredMessage
from chat_bridge.models.provider import Reference, WebSource

logger = get_logger(__name__)
router = APIRouter()


@router.get("/chats", response_model=ChatListResponse, summary="List chats, newest first")
async def list_chats(store: ChatStore = Depends(get_chat_store)) -> ChatListResponse:
    return ChatListResponse(chats=[_to_summary(chat) for chat in store.list_chats()])


@router.get("/chats/{chat_id}", response_model=ChatDetailResponse, summary="Fetch a chat with its messages")
async def get_chat(chat_id: str, store: ChatStore = Depends(get_chat_store)) -> ChatDetailResponse:
    chat = store.get_chat(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    messages = [message_view(message) for message in store.list_messages(chat_id)]
    return ChatDetailResponse(chat=_to_summary(chat), messages=messages)


@router.delete("/chats/{chat_id}", response_model=StatusResponse, summary="Delete a chat and its messages")
async def delete_chat(chat_id: str, store: ChatStore = Depends(get_chat_store)) -> StatusResponse:
    if not store.delete_chat(chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return StatusResponse(message="Chat deleted successfully")


def message_view(message: StoredMessage) -> MessageView:
    """Rebuild a renderable message from persisted content and metadata."""
    view = MessageView(
        message_id=message.message_id,
        chat_id=message.chat_id,
        role=message.role,
        content=message.content,
        created_at=message.metadata.get("createdAt"),
    )
    if message.role != "assistant":
        return view

    reference = _load_reference(message.metadata.get("references"))
    sources = _load_sources(message.metadata.get("sources"))
    resolved = resolve(message.content, reference, sources)
    view.references = message.metadata.get("references") if reference is not None else None
    view.sources = message.metadata.get("sources") if sources else None
    view.rendered = render_placeholders(resolved)
    view.citations = [citation.to_dict() for citation in resolved.citations]
    return view


def _load_reference(raw: Any) -> Reference | None:
    if not isinstance(raw, dict):
        return None
    try:
        return Reference.model_validate(raw)
    except ValidationError:
        logger.warning("Stored references are unreadable; rendering without them")
        return None


def _load_sources(raw: Any) -> list[WebSource]:
    if not isinstance(raw, list):
        return []
    sources: list[WebSource] = []
    for item in raw:
        if isinstance(item, dict):
            sources.append(WebSource.from_agent(item))
    return sources


def _to_summary(chat: Chat) -> ChatSummary:
    return ChatSummary(
        id=chat.id,
        title=chat.title,
        created_at=chat.created_at,
        focus_mode=chat.focus_mode,
        files=chat.files,
    )


__all__ = ["router", "message_view"]
