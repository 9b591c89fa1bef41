"""Tests for saving and restoring store state."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from conftest import FakeTransport
from streamchat.errors import PersistenceDecodeError
from streamchat.models import Chat, Message
from streamchat.store import ChatPersistence, MemoryStorage, SessionStore, decode_state
from streamchat.store.persistence import DEFAULT_STORAGE_KEY


def chat_record(chat_id, title="T", messages=None):
    return {
        "id": chat_id,
        "title": title,
        "messages": messages or [],
        "createdAt": "2024-05-01T12:00:00Z",
        "updatedAt": "2024-05-01T12:05:00+00:00",
    }


def stored(histories, chat_id=""):
    return json.dumps({"state": {"chatHistories": histories, "chatId": chat_id}, "version": 0})


class FailingStorage(MemoryStorage):
    def set(self, key, value):
        raise sqlite3.OperationalError("disk I/O error")


@pytest.fixture
def persistence(memory_storage):
    return ChatPersistence(memory_storage)


class TestRoundTrip:
    """Tests for encode/decode symmetry."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store, persistence, clock):
        await store.send_message("Hello")
        older = store.current_chat_id
        store.create_chat()
        await store.send_message("Second chat")
        store.select_chat(older)

        persistence.save(store)
        restored = SessionStore(FakeTransport(), clock=clock)
        assert persistence.load(restored) is True

        assert restored.current_chat_id == older
        assert [c.id for c in restored.chats] == [c.id for c in store.chats]
        for original, copy in zip(store.chats, restored.chats):
            assert copy.title == original.title
            assert copy.messages == original.messages
            assert copy.created_at == original.created_at
            assert copy.updated_at == original.updated_at

    def test_layout(self, store, persistence, memory_storage):
        chat_id = store.create_chat()
        store.append_message(chat_id, Message(role="user", text="hi"))

        persistence.save(store)

        payload = json.loads(memory_storage.get(DEFAULT_STORAGE_KEY))
        assert payload["version"] == 0
        state = payload["state"]
        assert state["chatId"] == chat_id
        (record,) = state["chatHistories"]
        assert record["id"] == chat_id
        assert record["title"] == "New Chat"
        assert record["messages"] == [{"role": "user", "text": "hi"}]
        assert {"createdAt", "updatedAt"} <= set(record)

    def test_empty_store(self, store, persistence):
        persistence.save(store)
        restored = SessionStore(FakeTransport())

        assert persistence.load(restored) is True
        assert restored.chats == []
        assert restored.current_chat_id == ""


class TestDecode:
    """Tests for tolerant decoding."""

    def test_corrupt_records_skipped(self, caplog):
        raw = stored(
            [
                chat_record("chat_a", messages=[{"role": "user", "text": "hi"}]),
                {"id": "chat_b", "title": "no timestamps"},
                chat_record("chat_c", messages=[{"role": "robot", "text": "?"}]),
                "not a chat",
                chat_record("chat_d"),
            ],
            chat_id="chat_d",
        )

        chats, current = decode_state(raw)

        assert [c.id for c in chats] == ["chat_a", "chat_d"]
        assert current == "chat_d"
        assert chats[0].messages == [Message(role="user", text="hi")]
        assert "Skipping corrupt chat record" in caplog.text

    def test_timestamps_are_utc(self):
        chats, _ = decode_state(stored([chat_record("chat_a")]))

        assert chats[0].created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert chats[0].updated_at == datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc)

    def test_naive_timestamps_assumed_utc(self):
        record = chat_record("chat_a")
        record["createdAt"] = "2024-05-01T12:00:00"

        chats, _ = decode_state(stored([record]))

        assert chats[0].created_at.tzinfo is not None

    @pytest.mark.parametrize(
        "raw",
        ["{not json", "[]", json.dumps({"state": []}), json.dumps({"state": {"chatHistories": 5}})],
    )
    def test_unreadable_record_raises(self, raw):
        with pytest.raises(PersistenceDecodeError):
            decode_state(raw)

    def test_missing_chat_id(self):
        _, current = decode_state(json.dumps({"state": {"chatHistories": []}}))

        assert current == ""


class TestLoad:
    """Tests for ChatPersistence.load."""

    def test_nothing_stored(self, store, persistence):
        assert persistence.load(store) is False
        assert store.chats == []

    def test_unreadable_state_leaves_store_empty(self, store, persistence, memory_storage, caplog):
        memory_storage.set(DEFAULT_STORAGE_KEY, "{broken")

        assert persistence.load(store) is False
        assert store.chats == []
        assert "Ignoring stored chat state" in caplog.text

    def test_dangling_selection_cleared(self, store, persistence, memory_storage):
        memory_storage.set(DEFAULT_STORAGE_KEY, stored([chat_record("chat_a")], "chat_zzz"))

        persistence.load(store)

        assert store.current_chat_id == ""
        assert [c.id for c in store.chats] == ["chat_a"]

    def test_custom_key(self, store, memory_storage):
        memory_storage.set("other", stored([chat_record("chat_a")], "chat_a"))

        ChatPersistence(memory_storage, key="other").load(store)

        assert store.current_chat_id == "chat_a"


class TestSave:
    """Tests for ChatPersistence.save and autosave."""

    def test_save_failure_is_logged(self, store, caplog):
        persistence = ChatPersistence(FailingStorage())
        store.create_chat()

        assert persistence.save(store) is False
        assert "Failed to persist chat state" in caplog.text

    @pytest.mark.asyncio
    async def test_autosave_on_mutations(self, store, persistence, memory_storage):
        persistence.attach(store)

        await store.send_message("Hello")

        chats, current = decode_state(memory_storage.get(DEFAULT_STORAGE_KEY))
        assert current == store.current_chat_id
        assert [(m.role.value, m.text) for m in chats[0].messages] == [
            ("user", "Hello"),
            ("model", "Hi there"),
        ]

    @pytest.mark.asyncio
    async def test_autosave_skips_transient_events(self, store, memory_storage):
        writes = []

        class CountingStorage(MemoryStorage):
            def set(self, key, value):
                writes.append(value)
                super().set(key, value)

        ChatPersistence(CountingStorage()).attach(store)
        await store.send_message("Hello")

        # create, user message, title, model message; no writes for stream/sending.
        assert len(writes) == 4

    def test_detach(self, store, persistence, memory_storage):
        subscription = persistence.attach(store)
        subscription.cancel()

        store.create_chat()

        assert memory_storage.get(DEFAULT_STORAGE_KEY) is None

    def test_save_failure_does_not_break_store(self, store):
        ChatPersistence(FailingStorage()).attach(store)

        chat_id = store.create_chat()

        assert store.current_chat_id == chat_id


def test_chat_ordering_survives(store, persistence):
    store.restore([Chat(id="chat_c"), Chat(id="chat_b"), Chat(id="chat_a")], "chat_b")
    persistence.save(store)

    chats, current = persistence.decode(persistence.storage.get(persistence.key))

    assert [c.id for c in chats] == ["chat_c", "chat_b", "chat_a"]
    assert current == "chat_b"
