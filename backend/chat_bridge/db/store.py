"""Durable chat records: conversations, messages and provider session ids."""

from __future__ import annotations

import sqlite3
from typing import Any, Sequence

import orjson

from chat_bridge.core.logging import get_logger, log_context
from chat_bridge.db.sqlite import SQLiteDatabase
from chat_bridge.models.entities import Chat, StoredMessage
from chat_bridge.utils.time import utc_now_iso

logger = get_logger(__name__)

DEFAULT_FOCUS_MODE = "webSearch"

_CHAT_COLUMNS = "id, title, created_at, focus_mode, files, provider_session_id"
_MESSAGE_COLUMNS = "id, chat_id, message_id, role, content, metadata"


class ChatStore:
    """Queries over the ``chats`` and ``messages`` tables."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    # provider sessions

    def get_session_id(self, conversation_id: str) -> str | None:
        row = self.db.query_one("SELECT provider_session_id FROM chats WHERE id = ?", [conversation_id])
        if row is None:
            return None
        return row["provider_session_id"] or None

    def set_session_id(self, conversation_id: str, session_id: str) -> str:
        """Record the provider session for a chat, keeping any id already stored.

        Returns the id that is stored after the call, which differs from
        ``session_id`` only when another request won the race.
        """
        with self.db.transaction() as cursor:
            cursor.execute(
                f"""
                INSERT INTO chats ({_CHAT_COLUMNS})
                VALUES (?, '', ?, ?, '[]', ?)
                ON CONFLICT(id) DO UPDATE SET provider_session_id = excluded.provider_session_id
                WHERE chats.provider_session_id IS NULL
                """,
                [conversation_id, utc_now_iso(), DEFAULT_FOCUS_MODE, session_id],
            )
        stored = self.get_session_id(conversation_id)
        if stored != session_id:
            logger.info(
                "Chat already bound to provider session %s; keeping it",
                stored,
                extra=log_context(conversation_id),
            )
        return stored or session_id

    # chats

    def ensure_chat(self, chat_id: str, title: str, focus_mode: str, files: Sequence[str] = ()) -> bool:
        """Create the chat row if missing. Returns True when a row was inserted."""
        inserted = self.db.write(
            """
            INSERT INTO chats (id, title, created_at, focus_mode, files)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO NOTHING
            """,
            [
                chat_id,
                title,
                utc_now_iso(),
                focus_mode or DEFAULT_FOCUS_MODE,
                _dumps([{"fileId": file_id} for file_id in files]),
            ],
        )
        return inserted == 1

    def get_chat(self, chat_id: str) -> Chat | None:
        row = self.db.query_one(f"SELECT {_CHAT_COLUMNS} FROM chats WHERE id = ?", [chat_id])
        return _row_to_chat(row) if row else None

    def list_chats(self) -> list[Chat]:
        rows = self.db.query(f"SELECT {_CHAT_COLUMNS} FROM chats ORDER BY created_at DESC, rowid DESC")
        return [_row_to_chat(row) for row in rows]

    def delete_chat(self, chat_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM messages WHERE chat_id = ?", [chat_id])
            deleted = cursor.execute("DELETE FROM chats WHERE id = ?", [chat_id]).rowcount
        return deleted > 0

    # messages

    def save_user_message(
        self,
        chat_id: str,
        message_id: str,
        content: str,
        focus_mode: str = DEFAULT_FOCUS_MODE,
        files: Sequence[str] = (),
    ) -> None:
        """Store the human turn; re-sending a known message rewinds the chat to it."""
        if self.ensure_chat(chat_id, title=content, focus_mode=focus_mode, files=files):
            logger.info("Created chat", extra=log_context(chat_id, message_id))
        else:
            # a chat created by the session probe has no title yet
            self.db.write("UPDATE chats SET title = ? WHERE id = ? AND title = ''", [content, chat_id])

        existing = self.db.query_one("SELECT id, chat_id FROM messages WHERE message_id = ?", [message_id])
        if existing is None:
            self.db.write(
                "INSERT INTO messages (chat_id, message_id, role, content, metadata) VALUES (?, ?, 'user', ?, ?)",
                [chat_id, message_id, content, _dumps({"createdAt": utc_now_iso()})],
            )
            return
        removed = self.db.write(
            "DELETE FROM messages WHERE chat_id = ? AND id > ?",
            [existing["chat_id"], existing["id"]],
        )
        logger.info(
            "Rewrite requested; removed %d later messages",
            removed,
            extra=log_context(chat_id, message_id),
        )

    def append_assistant_message(
        self,
        conversation_id: str,
        message_id: str,
        text: str,
        metadata: dict[str, Any],
    ) -> bool:
        """Insert one assistant message. A repeated ``message_id`` is ignored."""
        inserted = self.db.write(
            """
            INSERT INTO messages (chat_id, message_id, role, content, metadata)
            VALUES (?, ?, 'assistant', ?, ?)
            ON CONFLICT(message_id) DO NOTHING
            """,
            [conversation_id, message_id, text, _dumps(metadata)],
        )
        return inserted == 1

    def list_messages(self, chat_id: str) -> list[StoredMessage]:
        rows = self.db.query(f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE chat_id = ? ORDER BY id", [chat_id])
        return [_row_to_message(row) for row in rows]


def _dumps(value: Any) -> str:
    return orjson.dumps(value, default=str).decode("utf-8")


def _loads(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        logger.warning("Ignoring unreadable JSON column value")
        return default


def _row_to_chat(row: sqlite3.Row) -> Chat:
    return Chat(
        id=row["id"],
        title=row["title"],
        created_at=row["created_at"],
        focus_mode=row["focus_mode"],
        files=_loads(row["files"], []),
        provider_session_id=row["provider_session_id"],
    )


def _row_to_message(row: sqlite3.Row) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        chat_id=row["chat_id"],
        message_id=row["message_id"],
        role=row["role"],
        content=row["content"],
        metadata=_loads(row["metadata"], {}),
    )


__all__ = ["ChatStore", "DEFAULT_FOCUS_MODE"]
