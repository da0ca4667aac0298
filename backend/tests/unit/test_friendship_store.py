from uuid import uuid4

import pytest

from textly.domain.rooms.store import RoomStore
from textly.domain.social.exceptions import FriendRequestFailed, RequestNotCancellable, RequestNotFound
from textly.domain.social.models import FriendshipStatus
from textly.domain.social.store import FriendshipStore
from textly.infra.datastore import DatastoreError


async def started(context):
    rooms = RoomStore(context)
    friendships = FriendshipStore(context, rooms)
    await rooms.start()
    await friendships.start()
    return rooms, friendships


@pytest.mark.asyncio
async def test_send_request_is_mirrored_to_receiver(make_context):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    _, receiver = await started(receiver_ctx)

    request = await sender.send_request(receiver_ctx.user_id)

    assert request.status is FriendshipStatus.PENDING
    assert [item.id for item in sender.sent] == [request.id]
    assert [item.id for item in receiver.received] == [request.id]
    assert sender.received == [] and receiver.sent == []


@pytest.mark.asyncio
async def test_send_request_to_self_is_noop(make_context, datastore):
    context = make_context()
    _, store = await started(context)
    assert await store.send_request(context.user_id) is None
    assert datastore.memory.friendships == {}


@pytest.mark.asyncio
async def test_pending_pair_is_not_duplicated(make_context, datastore):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    _, receiver = await started(receiver_ctx)
    first = await sender.send_request(receiver_ctx.user_id)

    again = await receiver.send_request(sender_ctx.user_id)

    assert again.id == first.id
    assert len(datastore.memory.friendships) == 1
    assert [item.id for item in receiver.received] == [first.id]


@pytest.mark.asyncio
async def test_accept_creates_and_opens_pair_room(make_context):
    sender_ctx, receiver_ctx = make_context(), make_context()
    sender_rooms, sender = await started(sender_ctx)
    receiver_rooms, receiver = await started(receiver_ctx)
    request = await sender.send_request(receiver_ctx.user_id)

    room = await receiver.accept_request(request.id, sender_ctx.user_id)

    assert room.participant_1 == receiver_ctx.user_id
    assert room.participant_2 == sender_ctx.user_id
    assert receiver_rooms.active_room_id == room.id
    assert sender_rooms.get(room.id) is not None
    assert receiver.received == []
    assert sender.sent == []


@pytest.mark.asyncio
async def test_accept_falls_back_to_existing_pair_room(make_context, datastore):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    receiver_rooms, receiver = await started(receiver_ctx)
    existing = await datastore.rooms.insert(sender_ctx.user_id, participant_2=receiver_ctx.user_id)
    other = await receiver_rooms.create_room("other")
    assert receiver_rooms.active_room_id == other.id
    request = await sender.send_request(receiver_ctx.user_id)

    room = await receiver.accept_request(request.id, sender_ctx.user_id)

    assert room.id == existing.id
    assert receiver_rooms.active_room_id == existing.id
    assert len([r for r in datastore.memory.rooms.values() if r["participant_2"]]) == 1


@pytest.mark.asyncio
async def test_accept_reuses_room_created_concurrently(make_context, datastore, monkeypatch):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    receiver_rooms, receiver = await started(receiver_ctx)
    request = await sender.send_request(receiver_ctx.user_id)
    raced = await datastore.rooms.insert(sender_ctx.user_id, participant_2=receiver_ctx.user_id)

    real_find = datastore.rooms.find_by_participants
    lookups = []

    async def find_after_race(user_a, user_b):
        lookups.append((user_a, user_b))
        if len(lookups) == 1:
            return None
        return await real_find(user_a, user_b)

    async def failing_insert(*args, **kwargs):
        raise DatastoreError("insert failed")

    monkeypatch.setattr(datastore.rooms, "find_by_participants", find_after_race)
    monkeypatch.setattr(datastore.rooms, "insert", failing_insert)

    room = await receiver.accept_request(request.id, sender_ctx.user_id)

    assert room.id == raced.id
    assert len(lookups) == 2
    assert receiver_rooms.active_room_id == raced.id


@pytest.mark.asyncio
async def test_accept_is_scoped_to_receiver(make_context):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    await started(receiver_ctx)
    request = await sender.send_request(receiver_ctx.user_id)

    with pytest.raises(RequestNotFound):
        await sender.accept_request(request.id, receiver_ctx.user_id)


@pytest.mark.asyncio
async def test_send_request_to_accepted_friend_opens_room(make_context):
    sender_ctx, receiver_ctx = make_context(), make_context()
    sender_rooms, sender = await started(sender_ctx)
    _, receiver = await started(receiver_ctx)
    request = await sender.send_request(receiver_ctx.user_id)
    room = await receiver.accept_request(request.id, sender_ctx.user_id)
    await sender_rooms.create_room("elsewhere")

    existing = await sender.send_request(receiver_ctx.user_id)

    assert existing.status is FriendshipStatus.ACCEPTED
    assert sender_rooms.active_room_id == room.id


@pytest.mark.asyncio
async def test_cancel_request_authorization(make_context, datastore):
    sender_ctx, receiver_ctx = make_context(), make_context()
    _, sender = await started(sender_ctx)
    _, receiver = await started(receiver_ctx)
    request = await sender.send_request(receiver_ctx.user_id)

    receiver.sent = list(receiver.received)
    with pytest.raises(RequestNotCancellable):
        await receiver.cancel_request(request.id)
    assert [item.id for item in receiver.sent] == [request.id]
    assert request.id in datastore.memory.friendships

    await sender.cancel_request(request.id)
    assert sender.sent == []
    assert receiver.received == []
    with pytest.raises(RequestNotCancellable):
        await sender.cancel_request(request.id)


@pytest.mark.asyncio
async def test_insert_failure_propagates(make_context, datastore, monkeypatch):
    _, store = await started(make_context())

    async def broken(*args, **kwargs):
        raise DatastoreError("down")

    monkeypatch.setattr(datastore.friendships, "insert", broken)
    with pytest.raises(FriendRequestFailed):
        await store.send_request(str(uuid4()))
    assert store.sent == []


@pytest.mark.asyncio
async def test_load_requests_splits_by_role(make_context, datastore):
    context = make_context()
    a, b = str(uuid4()), str(uuid4())
    incoming = await datastore.friendships.insert(a, context.user_id)
    outgoing = await datastore.friendships.insert(context.user_id, b)
    await datastore.friendships.insert(a, b)

    _, store = await started(context)

    assert [item.id for item in store.received] == [incoming.id]
    assert [item.id for item in store.sent] == [outgoing.id]
