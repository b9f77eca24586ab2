"""Chat answering route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from chat_bridge.api.dependencies import get_chat_store, get_search_agent, get_stream_bridge
from chat_bridge.chat.multiplexer import EventMultiplexer
from chat_bridge.core.errors import ConfigurationError
from chat_bridge.core.logging import get_logger, log_context
from chat_bridge.db.store import ChatStore
from chat_bridge.models.dto import ChatRequest
from chat_bridge.utils.ids import new_message_id

logger = get_logger(__name__)
router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


@router.post("/chat", summary="Answer a message as a newline-delimited JSON stream")
async def chat(request: ChatRequest, store: ChatStore = Depends(get_chat_store)) -> StreamingResponse:
    message = request.message
    if not message.content.strip():
        raise HTTPException(status_code=400, detail="Please provide a message to process")

    human_message_id = message.message_id or new_message_id()
    ai_message_id = new_message_id()

    if request.search_mode == "docs":
        try:
            bridge = get_stream_bridge()
        except ConfigurationError as exc:
            raise HTTPException(status_code=503, detail=exc.message) from exc
        store.save_user_message(message.chat_id, human_message_id, message.content, request.focus_mode, request.files)
        logger.info("Answering from document provider", extra=log_context(message.chat_id, ai_message_id))
        events = bridge.run_turn(message.chat_id, message.content, stream=request.stream)
    else:
        agent = get_search_agent()
        if agent is None:
            raise HTTPException(status_code=503, detail="Web search agent is not configured")
        store.save_user_message(message.chat_id, human_message_id, message.content, request.focus_mode, request.files)
        logger.info(
            "Answering from web search agent (focus=%s)",
            request.focus_mode,
            extra=log_context(message.chat_id, ai_message_id),
        )
        events = agent.search_and_answer(
            message.content,
            history=request.history,
            focus_mode=request.focus_mode,
            optimization_mode=request.optimization_mode,
            files=request.files,
            system_instructions=request.system_instructions,
        )

    multiplexer = EventMultiplexer(store, message.chat_id, ai_message_id, mode=request.search_mode)
    return StreamingResponse(
        multiplexer.stream(events),
        media_type="application/x-ndjson",
        headers=STREAM_HEADERS,
    )


__all__ = ["router"]
