"""Tests for the conversation message store."""

import time

from chatgpt_web_service.chatgpt.models import ChatMessage
from chatgpt_web_service.chatgpt.store import MessageStore


def _chain(store: MessageStore, count: int) -> list[ChatMessage]:
    messages = []
    parent = None
    for i in range(count):
        message = ChatMessage(
            id=f"m{i}",
            role="user" if i % 2 == 0 else "assistant",
            text=f"text {i}",
            parent_message_id=parent,
        )
        store.put(message)
        messages.append(message)
        parent = message.id
    return messages


def test_history_walks_parents_oldest_first():
    store = MessageStore(ttl=300, maxsize=100)
    _chain(store, 4)

    history = store.history("m3")

    assert [m.id for m in history] == ["m0", "m1", "m2", "m3"]


def test_history_respects_max_messages():
    store = MessageStore(ttl=300, maxsize=100)
    _chain(store, 6)

    history = store.history("m5", max_messages=2)

    assert [m.id for m in history] == ["m4", "m5"]


def test_history_without_parent_is_empty():
    store = MessageStore(ttl=300, maxsize=100)
    assert store.history(None) == []
    assert store.history("unknown") == []


def test_history_stops_at_missing_link():
    store = MessageStore(ttl=300, maxsize=100)
    store.put(ChatMessage(id="b", text="reply", parent_message_id="evicted"))

    assert [m.id for m in store.history("b")] == ["b"]


def test_history_survives_parent_cycle():
    store = MessageStore(ttl=300, maxsize=100)
    store.put(ChatMessage(id="a", text="1", parent_message_id="b"))
    store.put(ChatMessage(id="b", text="2", parent_message_id="a"))

    assert [m.id for m in store.history("b")] == ["a", "b"]


def test_ttl_expiry():
    """Expired messages are no longer returned."""
    store = MessageStore(ttl=1, maxsize=100)
    store.put(ChatMessage(id="a", text="hello"))
    time.sleep(1.1)
    assert store.get("a") is None
