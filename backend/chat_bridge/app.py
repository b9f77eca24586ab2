"""FastAPI application setup for Chat Bridge."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_bridge.api.dependencies import close_clients, get_app_settings, get_chat_store
from chat_bridge.api.routes_admin import router as admin_router
from chat_bridge.api.routes_chat import router as chat_router
from chat_bridge.api.routes_chats import router as chats_router
from chat_bridge.core.logging import configure_logging

configure_logging()

app = FastAPI(
    title="Chat Bridge",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_app_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router, prefix="/api", tags=["chat"])
app.include_router(chats_router, prefix="/api", tags=["chats"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Open the database before the first request."""
    get_app_settings()
    get_chat_store()


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_clients()
