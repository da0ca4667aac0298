import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from textly.domain.chat.exceptions import MessageSendFailed
from textly.domain.chat.models import Message, MessageState
from textly.domain.chat.store import MessageStore, merge_messages
from textly.domain.rooms.exceptions import RoomDeleted
from textly.domain.rooms.store import RoomStore
from textly.infra.datastore import DatastoreError
from textly.settings import settings


def make_message(room_id: str, seconds: int, message_id: str | None = None) -> Message:
    return Message(
        id=message_id or str(uuid4()),
        room_id=room_id,
        sender_id="s",
        content=f"m{seconds}",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seconds),
    )


async def started(context):
    rooms = RoomStore(context)
    messages = MessageStore(context, rooms)
    await messages.start()
    await rooms.start()
    return rooms, messages


def test_merge_is_a_sorted_union_by_id():
    a = make_message("r", 1, "a")
    b = make_message("r", 2, "b")
    c = make_message("r", 3, "c")
    merged = merge_messages([c, a], [b, a, c])
    assert [m.id for m in merged] == ["a", "b", "c"]
    assert merge_messages([], []) == []


@pytest.mark.asyncio
async def test_activation_loads_messages_in_order(make_context, datastore):
    context = make_context()
    rooms, messages = await started(context)
    room = await datastore.rooms.insert(context.user_id)
    for text in ("uno", "dos", "tres"):
        await datastore.messages.insert(room.id, context.user_id, text)

    await rooms.load_rooms()
    await rooms.activate(room.id)

    assert messages.state is MessageState.READY
    assert [m.content for m in messages.messages] == ["uno", "dos", "tres"]


@pytest.mark.asyncio
async def test_send_blank_or_without_active_room_is_noop(make_context):
    rooms, messages = await started(make_context())
    assert await messages.send_message("hola") is None
    await rooms.create_room()
    assert await messages.send_message("   ") is None
    assert messages.messages == []


@pytest.mark.asyncio
async def test_realtime_insert_and_own_send_appear_once(make_context):
    rooms, messages = await started(make_context())
    await rooms.create_room()
    sent = await messages.send_message("  hola  ")
    assert sent.content == "hola"
    assert [m.id for m in messages.messages] == [sent.id]


@pytest.mark.asyncio
async def test_unread_counts_for_inactive_rooms_only(make_context, datastore):
    context = make_context()
    other = str(uuid4())
    rooms, messages = await started(context)
    active = await datastore.rooms.insert(context.user_id, participant_2=other)
    inactive = await datastore.rooms.insert(other, participant_2=context.user_id, room_name="b")
    foreign = await datastore.rooms.insert(other, room_name="not mine")
    assert rooms.active_room_id == active.id

    await datastore.messages.insert(inactive.id, other, "one")
    await datastore.messages.insert(inactive.id, other, "two")
    await datastore.messages.insert(inactive.id, context.user_id, "mine")
    await datastore.messages.insert(foreign.id, other, "ignored")
    await datastore.messages.insert(active.id, other, "visible")

    assert messages.unread_count(inactive.id) == 2
    assert messages.unread_count(foreign.id) == 0
    assert messages.unread_count(active.id) == 0
    assert [m.content for m in messages.messages] == ["visible"]

    await rooms.activate(inactive.id)
    assert messages.unread_count(inactive.id) == 0
    assert [m.content for m in messages.messages] == ["one", "two", "mine"]


@pytest.mark.asyncio
async def test_send_to_deleted_room_raises_room_deleted(make_context, datastore):
    rooms, messages = await started(make_context())
    room = await rooms.create_room()
    # drop the row behind the store's back, without a change event
    del datastore.memory.rooms[room.id]

    with pytest.raises(RoomDeleted):
        await messages.send_message("hola")

    assert rooms.active_room_id is None
    assert rooms.deleted_notice is not None
    assert messages.state is MessageState.INVALIDATED


@pytest.mark.asyncio
async def test_foreign_key_violation_on_insert_maps_to_room_deleted(make_context, datastore, monkeypatch):
    rooms, messages = await started(make_context())
    room = await rooms.create_room()

    async def vanish_then_insert(room_id, sender_id, content):
        del datastore.memory.rooms[room_id]
        return await original(room_id, sender_id, content)

    original = datastore.messages.insert
    monkeypatch.setattr(datastore.messages, "insert", vanish_then_insert)

    with pytest.raises(RoomDeleted) as excinfo:
        await messages.send_message("hola")
    assert excinfo.value.room_id == room.id


@pytest.mark.asyncio
async def test_generic_send_failure(make_context, datastore, monkeypatch):
    rooms, messages = await started(make_context())
    await rooms.create_room()

    async def broken(*args, **kwargs):
        raise DatastoreError("connection lost")

    monkeypatch.setattr(datastore.messages, "insert", broken)
    with pytest.raises(MessageSendFailed):
        await messages.send_message("hola")
    assert rooms.active_room_id is not None


@pytest.mark.asyncio
async def test_remote_delete_invalidates_message_state(make_context):
    creator_ctx, joiner_ctx = make_context(), make_context()
    creator_rooms, _ = await started(creator_ctx)
    joiner_rooms, joiner_messages = await started(joiner_ctx)
    room = await creator_rooms.create_room()
    await joiner_rooms.join_room(room.share_code)
    assert joiner_messages.state is MessageState.READY

    await creator_rooms.delete_room(room.id)

    assert joiner_messages.state is MessageState.INVALIDATED
    assert joiner_messages.messages == []


@pytest.mark.asyncio
async def test_own_delete_of_last_room_leaves_state_idle(make_context):
    rooms, messages = await started(make_context())
    room = await rooms.create_room()
    await messages.send_message("hola")
    assert messages.state is MessageState.READY

    await rooms.delete_room(room.id)

    assert rooms.active_room_id is None
    assert messages.state is MessageState.IDLE
    assert messages.messages == []
    assert messages.unread_count(room.id) == 0


@pytest.mark.asyncio
async def test_stale_load_is_discarded_after_room_switch(make_context, datastore, monkeypatch):
    context = make_context()
    rooms, messages = await started(context)
    slow_room = await rooms.create_room("slow")
    fast_room = await rooms.create_room("fast")
    await datastore.messages.insert(slow_room.id, context.user_id, "late")
    await datastore.messages.insert(fast_room.id, context.user_id, "current")
    gate = asyncio.Event()
    original = datastore.messages.list_for_room

    async def gated(room_id):
        result = await original(room_id)
        if room_id == slow_room.id:
            await gate.wait()
        return result

    monkeypatch.setattr(datastore.messages, "list_for_room", gated)
    await context.cache.remove_user(context.user_id)

    slow = asyncio.create_task(rooms.activate(slow_room.id))
    await asyncio.sleep(0.01)
    await rooms.activate(fast_room.id)
    gate.set()
    await slow

    assert messages.room_id == fast_room.id
    assert [m.content for m in messages.messages] == ["current"]


@pytest.mark.asyncio
async def test_fresh_cache_skips_network_fetch(make_context, datastore, monkeypatch):
    context = make_context()
    rooms, messages = await started(context)
    first = await rooms.create_room("first")
    await messages.send_message("cached")
    second = await rooms.create_room("second")
    assert messages.room_id == second.id

    calls = []
    original = datastore.messages.list_for_room

    async def counting(room_id):
        calls.append(room_id)
        return await original(room_id)

    monkeypatch.setattr(datastore.messages, "list_for_room", counting)
    await rooms.activate(first.id)

    assert calls == []
    assert [m.content for m in messages.messages] == ["cached"]
    assert messages.state is MessageState.READY


@pytest.mark.asyncio
async def test_cache_keeps_only_recent_messages(make_context, monkeypatch):
    monkeypatch.setattr(settings, "messages_cache_limit", 2)
    context = make_context()
    rooms, messages = await started(context)
    room = await rooms.create_room()
    for text in ("a", "b", "c"):
        await messages.send_message(text)

    cached = await context.cache.read(context.cache.key("messages", context.user_id, room.id))
    assert [row["content"] for row in cached] == ["b", "c"]
