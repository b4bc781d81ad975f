from datetime import datetime

import pytest

from chefchat.errors import PersistenceError
from chefchat.messaging import store as store_module
from chefchat.messaging.store import MessageStore


async def test_append_assigns_id_and_timestamp(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    m = await store.append("u1", "u2", "hi")
    assert m.id
    assert m.created_at
    assert m.read is False
    assert m.is_ai_response is False


async def test_conversation_is_symmetric_and_ordered(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    await store.append("u1", "u2", "one")
    await store.append("u2", "u1", "two")
    await store.append("u1", "u3", "elsewhere")
    await store.append("u1", "u2", "three")

    forward = [m.content for m in store.conversation("u1", "u2")]
    backward = [m.content for m in store.conversation("u2", "u1")]
    assert forward == backward == ["one", "two", "three"]


async def test_timestamps_never_decrease(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    for i in range(20):
        await store.append("u1", "u2", f"m{i}")
    stamps = [datetime.fromisoformat(m.created_at) for m in store.conversation("u1", "u2")]
    assert stamps == sorted(stamps)


async def test_limit_keeps_latest_oldest_first(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    for i in range(5):
        await store.append("u1", "u2", f"m{i}")
    assert [m.content for m in store.conversation("u1", "u2", limit=2)] == ["m3", "m4"]


async def test_survives_reload(tmp_path):
    path = tmp_path / "messages.json"
    store = MessageStore(path)
    await store.append("u1", "u2", "persisted")
    await store.mark_read("u2", "u1")

    reloaded = MessageStore(path)
    [m] = reloaded.conversation("u1", "u2")
    assert m.content == "persisted"
    assert m.read is True


async def test_mark_read_only_touches_one_direction(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    await store.append("u1", "u2", "to bob")
    await store.append("u2", "u1", "to alice")

    assert await store.mark_read("u2", "u1") == 1
    assert await store.mark_read("u2", "u1") == 0
    by_content = {m.content: m.read for m in store.conversation("u1", "u2")}
    assert by_content == {"to bob": True, "to alice": False}


async def test_write_failure_records_nothing(tmp_path, monkeypatch):
    store = MessageStore(tmp_path / "messages.json")
    await store.append("u1", "u2", "kept")

    def boom(path, data):
        raise OSError("disk full")

    monkeypatch.setattr(store_module, "write_json_atomic", boom)
    with pytest.raises(PersistenceError):
        await store.append("u1", "u2", "lost")
    assert [m.content for m in store.conversation("u1", "u2")] == ["kept"]


async def test_unread_counts(tmp_path):
    store = MessageStore(tmp_path / "messages.json")
    await store.append("u1", "u2", "a")
    await store.append("u1", "u2", "b")
    await store.append("u3", "u2", "c")
    assert store.unread_counts("u2") == {"u1": 2, "u3": 1}
