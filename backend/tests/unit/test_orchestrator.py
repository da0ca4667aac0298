import asyncio
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from textly.domain.assist.exceptions import AssistProviderError, AssistUnavailable
from textly.domain.chat.models import MessageState
from textly.infra.datastore import DatastoreError
from textly.infra.local_cache import LocalCache
from textly.main import app
from textly.session.context import SessionContext
from textly.session.identity import Identity
from textly.session.orchestrator import ChatOrchestrator, open_session


class GatedAssist:
    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls = []
        self.error: Exception | None = None

    async def transform(self, action, text):
        self.calls.append((action, text))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return f"{action}:{text}"


def session_client(user_id: str) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
        headers={"X-User-Id": user_id},
    )


@pytest.mark.asyncio
async def test_two_participant_scenario(api_client, datastore, fake_redis):
    x_id, y_id = str(uuid4()), str(uuid4())
    await datastore.profiles.save_auth_user(x_id, email="xavi@example.com", user_metadata={"full_name": "Xavi"})
    await datastore.profiles.save_auth_user(
        y_id, email="yoli@example.com", user_metadata={"picture": "//img.example.com/y.png"}
    )
    x_identity = Identity(id=x_id, email="xavi@example.com", user_metadata={"full_name": "Xavi"})
    y_identity = Identity(id=y_id, email="yoli@example.com")

    async with session_client(x_id) as x_http, session_client(y_id) as y_http:
        async with open_session(x_identity, datastore, http=x_http, cache=LocalCache(fake_redis)) as x, open_session(
            y_identity, datastore, http=y_http, cache=LocalCache(fake_redis)
        ) as y:
            room = await x.rooms.create_room()
            result = await y.rooms.join_room(room.share_code)
            assert result.success
            await y.rooms.create_room("elsewhere")
            assert y.rooms.active_room_id != room.id

            x.draft = "hola"
            await x.send_draft()
            assert x.draft == ""

            assert y.messages.unread_count(room.id) == 1
            await y.rooms.activate(room.id)
            assert y.messages.unread_count(room.id) == 0
            assert [m.content for m in y.messages.messages] == ["hola"]
            assert y.messages.state is MessageState.READY

            # the creator resolved the joiner through the metadata endpoint
            assert x.profiles[y_id].username == "yoli"
            assert x.profiles[y_id].avatar_url == "https://img.example.com/y.png"
            assert y.profiles[x_id].username == "Xavi"

    assert datastore.feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_self_profile_seeded_once(make_context):
    context = make_context(email="ana@example.com", metadata={"avatar_url": "https://img.example.com/a.png"})
    orchestrator = ChatOrchestrator(context)
    await orchestrator.start()
    await orchestrator.start()
    profile = orchestrator.profiles[context.user_id]
    assert profile.username == "ana"
    assert profile.avatar_url == "https://img.example.com/a.png"
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_counterparts_resolved_after_first_room_load(make_context, datastore):
    context = make_context()
    other = str(uuid4())
    await datastore.profiles.save_public(other, username="rosa")
    await datastore.rooms.insert(other, participant_2=context.user_id)
    orchestrator = ChatOrchestrator(context)
    await orchestrator.start()
    assert orchestrator.profiles[other].username == "rosa"
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_assist_busy_flag_and_action_while_in_flight(make_context):
    assist = GatedAssist()
    orchestrator = ChatOrchestrator(make_context(assist=assist))
    await orchestrator.start()
    orchestrator.draft = "  que tal  "

    task = asyncio.create_task(orchestrator.translate_draft())
    await asyncio.sleep(0)
    assert orchestrator.assist_busy
    assert orchestrator.assist_action == "translate"

    assist.gate.set()
    assert await task == "translate:que tal"
    assert orchestrator.draft == "translate:que tal"
    assert not orchestrator.assist_busy
    assert orchestrator.assist_action is None
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_assist_failure_keeps_draft(make_context):
    assist = GatedAssist()
    assist.error = AssistProviderError("upstream")
    assist.gate.set()
    orchestrator = ChatOrchestrator(make_context(assist=assist))
    await orchestrator.start()
    orchestrator.draft = "borrador"

    with pytest.raises(AssistProviderError):
        await orchestrator.improve_draft()
    assert orchestrator.draft == "borrador"
    assert not orchestrator.assist_busy

    orchestrator.draft = "   "
    assert await orchestrator.improve_draft() is None
    assert len(assist.calls) == 1
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_disabled_assistant_or_missing_client(make_context):
    no_client = ChatOrchestrator(make_context())
    no_client.draft = "hola"
    with pytest.raises(AssistUnavailable):
        await no_client.improve_draft()

    assist = GatedAssist()
    orchestrator = ChatOrchestrator(make_context(assist=assist))
    await orchestrator.start()
    await orchestrator.preferences.update(assistant_enabled=False)
    orchestrator.draft = "hola"
    with pytest.raises(AssistUnavailable):
        await orchestrator.improve_draft()
    assert assist.calls == []
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_preferences_update_rolls_back_on_failure(make_context, datastore, monkeypatch):
    orchestrator = ChatOrchestrator(make_context())
    await orchestrator.start()
    store = orchestrator.preferences
    assert store.preferences.writing_mode == "informal"

    updated = await store.update(writing_mode="formal", translation_language="de")
    assert updated.writing_mode == "formal"
    assert (await datastore.preferences.get(orchestrator.user_id)).translation_language == "de"

    async def broken(*args, **kwargs):
        raise DatastoreError("down")

    monkeypatch.setattr(datastore.preferences, "upsert", broken)
    with pytest.raises(DatastoreError):
        await store.update(writing_mode="informal")
    assert store.preferences.writing_mode == "formal"

    with pytest.raises(ValueError):
        await store.update(translation_language="fr")
    await orchestrator.stop()


@pytest.mark.asyncio
async def test_sign_out_clears_cache_and_subscriptions(make_context, datastore):
    context = make_context()
    orchestrator = ChatOrchestrator(context)
    await orchestrator.start()
    await orchestrator.rooms.create_room()
    await orchestrator.send_draft()
    assert await context.cache.read(context.cache.key("rooms", context.user_id)) is not None

    await orchestrator.sign_out()

    assert await context.cache.read(context.cache.key("rooms", context.user_id)) is None
    assert datastore.feed.subscriber_count() == 0
    assert not orchestrator.running


def test_session_context_builds_resolver_for_identity(datastore):
    identity = Identity(id=str(uuid4()))
    context = SessionContext.build(identity, datastore, cache=LocalCache(None))
    assert context.user_id == identity.id
    assert context.feed is datastore.feed
    assert context.resolver.get(identity.id) is None
