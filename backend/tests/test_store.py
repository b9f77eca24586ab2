"""Tests for the SQLite chat store."""

from __future__ import annotations


def test_session_id_is_set_once(store) -> None:
    assert store.get_session_id("chat-1") is None
    assert store.set_session_id("chat-1", "first") == "first"
    assert store.set_session_id("chat-1", "second") == "first"
    assert store.get_session_id("chat-1") == "first"


def test_probe_created_chat_gets_title_from_first_message(store) -> None:
    store.set_session_id("chat-1", "sess")
    store.save_user_message("chat-1", "u1", "Why are leaves green?")

    chat = store.get_chat("chat-1")
    assert chat.title == "Why are leaves green?"
    assert chat.provider_session_id == "sess"


def test_save_user_message_creates_chat_with_files(store) -> None:
    store.save_user_message("chat-2", "u1", "Question", focus_mode="academicSearch", files=["f1"])

    chat = store.get_chat("chat-2")
    assert chat.focus_mode == "academicSearch"
    assert chat.files == [{"fileId": "f1"}]
    assert [message.role for message in store.list_messages("chat-2")] == ["user"]


def test_resending_message_rewinds_chat(store) -> None:
    store.save_user_message("chat-3", "u1", "first")
    store.append_assistant_message("chat-3", "a1", "answer one", {})
    store.save_user_message("chat-3", "u2", "second")
    store.append_assistant_message("chat-3", "a2", "answer two", {})

    store.save_user_message("chat-3", "u2", "second")

    assert [message.message_id for message in store.list_messages("chat-3")] == ["u1", "a1", "u2"]


def test_assistant_message_written_once(store) -> None:
    store.ensure_chat("chat-4", title="t", focus_mode="webSearch")
    assert store.append_assistant_message("chat-4", "a1", "text", {"sources": []}) is True
    assert store.append_assistant_message("chat-4", "a1", "other", {}) is False

    messages = store.list_messages("chat-4")
    assert len(messages) == 1
    assert messages[0].content == "text"
    assert messages[0].metadata == {"sources": []}


def test_list_and_delete_chats(store) -> None:
    store.save_user_message("older", "u1", "one")
    store.save_user_message("newer", "u2", "two")

    assert [chat.id for chat in store.list_chats()][0] == "newer"
    assert store.delete_chat("older") is True
    assert store.delete_chat("older") is False
    assert store.list_messages("older") == []
    assert [chat.id for chat in store.list_chats()] == ["newer"]
