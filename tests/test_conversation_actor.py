import asyncio
import threading

from app.db.conversation_actor import DEFAULT_TITLE, ConversationDirectory
from app.db.kv_store import SQLiteKVStore
from app.models.conversation_models import ChatMessage
from app.models.itinerary_models import Itinerary
from app.models.preference_models import Preferences


CID = "0123456789abcdef0123456789abcdef"


def _msg(i: int, role: str = "user") -> ChatMessage:
    return ChatMessage(role=role, content=f"message {i}")


def test_meta_and_data_missing_before_initialize(directory):
    actor = directory.get(CID)

    async def scenario():
        return await actor.get_meta(), await actor.get_data()

    meta, data = asyncio.run(scenario())
    assert meta is None
    assert data is None


def test_initialize_creates_defaults(directory):
    actor = directory.get(CID)

    async def scenario():
        meta = await actor.initialize()
        return meta, await actor.get_data()

    meta, data = asyncio.run(scenario())

    assert meta.id == CID
    assert meta.title == DEFAULT_TITLE
    assert meta.created_at == meta.updated_at
    assert data.itinerary.days == []
    assert data.preferences.to_storage() == {}
    assert data.model_dump(by_alias=True, exclude_none=True)["preferences"] == {}


def test_reinitialize_keeps_messages(directory, store):
    actor = directory.get(CID)

    async def scenario():
        await actor.initialize()
        await actor.append_message(_msg(1))
        await actor.update_title("Lisbon")
        await actor.initialize()
        counter_after_reinit = store.get(CID, "messageCount")
        await actor.append_message(_msg(2))
        return counter_after_reinit, await actor.get_meta(), await actor.get_messages(0, 10)

    counter_after_reinit, meta, page = asyncio.run(scenario())

    assert meta.title == DEFAULT_TITLE
    assert counter_after_reinit == 1
    assert store.get(CID, "messageCount") == 2
    assert [m.content for m in page.messages] == ["message 1", "message 2"]
    assert list(store.list(CID, prefix="msg:")) == ["msg:00000000", "msg:00000001"]


def test_append_stamps_created_at_and_touches_meta(directory):
    actor = directory.get(CID)

    async def scenario():
        meta = await actor.initialize()
        stored = await actor.append_message(_msg(1))
        return meta, stored, await actor.get_meta()

    before, stored, after = asyncio.run(scenario())

    assert stored.created_at is not None
    assert after.updated_at == stored.created_at
    assert after.updated_at >= before.updated_at


def test_pagination_chains_through_all_messages(directory):
    actor = directory.get(CID)
    total = 11

    async def scenario():
        await actor.initialize()
        for i in range(total):
            await actor.append_message(_msg(i, "user" if i % 2 == 0 else "assistant"))

        seen, cursor = [], 0
        while True:
            page = await actor.get_messages(cursor, 4)
            seen.extend(page.messages)
            if page.cursor is None:
                return seen
            cursor = int(page.cursor)

    seen = asyncio.run(scenario())

    assert [m.content for m in seen] == [f"message {i}" for i in range(total)]


def test_cursor_is_stable_across_concurrent_appends(directory):
    actor = directory.get(CID)

    async def scenario():
        await actor.initialize()
        for i in range(5):
            await actor.append_message(_msg(i))

        first = await actor.get_messages(0, 3)
        # another writer lands between the two page fetches
        await actor.append_message(_msg(5))
        second = await actor.get_messages(int(first.cursor), 3)
        return first, second

    first, second = asyncio.run(scenario())

    assert [m.content for m in first.messages] == ["message 0", "message 1", "message 2"]
    assert first.cursor == "3"
    assert [m.content for m in second.messages] == ["message 3", "message 4", "message 5"]
    assert second.cursor is None


def test_recent_messages_returns_tail_in_order(directory):
    actor = directory.get(CID)

    async def scenario():
        for i in range(6):
            await actor.append_message(_msg(i))
        return await actor.get_recent_messages(3), await actor.get_recent_messages(0)

    tail, none = asyncio.run(scenario())

    assert [m.content for m in tail] == ["message 3", "message 4", "message 5"]
    assert none == []


def test_itinerary_round_trip_is_identical(directory):
    actor = directory.get(CID)
    payload = {
        "days": [
            {"date": "2025-05-01", "items": [
                {"id": "a", "title": "Tram 28", "timeRange": "08:00-09:00",
                 "location": {"name": "Martim Moniz", "lat": 38.716, "lon": -9.136}},
                {"id": "b", "title": "Pastéis", "notes": "Belém"},
            ]},
            {"date": "2025-05-02", "items": [{"id": "c", "title": "Sintra"}]},
        ]
    }

    async def scenario():
        await actor.initialize()
        await actor.update_itinerary(Itinerary.model_validate(payload))
        return await actor.get_data()

    data = asyncio.run(scenario())

    assert data.itinerary.to_storage() == payload


def test_preferences_overwrite_wholesale(directory):
    actor = directory.get(CID)

    async def scenario():
        await actor.initialize()
        await actor.update_preferences(Preferences.model_validate(
            {"diet": ["vegan", "vegan", "halal"], "pace": "relaxed", "budgetLevel": "mid"}
        ))
        first = (await actor.get_data()).preferences
        await actor.update_preferences(Preferences.model_validate({"travelMode": "train"}))
        second = (await actor.get_data()).preferences
        return first, second

    first, second = asyncio.run(scenario())

    assert first.to_storage() == {"diet": ["vegan", "halal"], "pace": "relaxed", "budgetLevel": "mid"}
    assert second.to_storage() == {"travelMode": "train"}


def test_update_title_requires_meta(directory):
    actor = directory.get(CID)

    async def scenario():
        missing = await actor.update_title("Nowhere")
        await actor.initialize()
        renamed = await actor.update_title("Kyoto in autumn")
        return missing, renamed

    missing, renamed = asyncio.run(scenario())

    assert missing is None
    assert renamed.title == "Kyoto in autumn"


def test_delete_removes_every_key(directory, store):
    actor = directory.get(CID)
    other = directory.get("f" * 32)

    async def scenario():
        await actor.initialize()
        await actor.append_message(_msg(1))
        await other.initialize()
        deleted = await actor.delete()
        return deleted, await actor.get_meta(), await other.get_meta()

    deleted, meta, other_meta = asyncio.run(scenario())

    assert deleted == 5     # meta, messageCount, itinerary, preferences, msg:00000000
    assert meta is None
    assert store.list(CID) == {}
    assert other_meta is not None


def test_directory_ids():
    new_id = ConversationDirectory.new_id()

    assert ConversationDirectory.is_valid_id(new_id)
    assert not ConversationDirectory.is_valid_id("not-an-id")
    assert not ConversationDirectory.is_valid_id("")


def test_directory_returns_same_actor(directory):
    assert directory.get(CID) is directory.get(CID)


def test_recent_messages_skip_excluded_roles(directory):
    actor = directory.get(CID)
    roles = ["user", "assistant", "system", "user", "system", "system", "assistant"]

    async def scenario():
        for i, role in enumerate(roles):
            await actor.append_message(_msg(i, role))
        return await actor.get_recent_messages(3, exclude_roles=("system",))

    recent = asyncio.run(scenario())

    assert [m.content for m in recent] == ["message 1", "message 3", "message 6"]


def test_storage_runs_off_the_event_loop_thread(tmp_path):
    seen = []

    class RecordingStore(SQLiteKVStore):
        def put(self, namespace, key, value):
            seen.append(threading.get_ident())
            super().put(namespace, key, value)

    store = RecordingStore(str(tmp_path / "threads.sqlite3"))
    actor = ConversationDirectory(store).get(CID)

    async def scenario():
        loop_thread = threading.get_ident()
        await actor.initialize()
        await actor.append_message(_msg(1))
        return loop_thread

    loop_thread = asyncio.run(scenario())
    store.close()

    assert seen
    assert loop_thread not in seen
