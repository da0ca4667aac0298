import sys
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from textly.api.deps import get_datastore, get_text_model
from textly.infra import postgres
from textly.infra.datastore import Datastore
from textly.infra.local_cache import LocalCache
from textly.main import app
from textly.session.context import SessionContext
from textly.session.identity import Identity
from textly.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from textly.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via the X-User-Id header, which is only accepted
	in dev mode.
	"""
	original_env = settings.environment
	original_rate_limit = settings.rate_limit_enabled
	settings.environment = "dev"
	settings.rate_limit_enabled = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.rate_limit_enabled = original_rate_limit


def new_user_id() -> str:
	return str(uuid4())


@pytest.fixture
def datastore():
	return Datastore()


class FakeTextModel:
	"""Records prompts and answers with a canned reply."""

	name = "fake-model"

	def __init__(self, reply: str = "  Hola, ¿cómo estás?  ") -> None:
		self.reply = reply
		self.prompts: list[str] = []
		self.error: Exception | None = None

	async def generate(self, prompt: str) -> str:
		self.prompts.append(prompt)
		if self.error is not None:
			raise self.error
		return self.reply


@pytest.fixture
def text_model():
	return FakeTextModel()


@pytest_asyncio.fixture
async def api_client(datastore, text_model):
	app.dependency_overrides[get_datastore] = lambda: datastore
	app.dependency_overrides[get_text_model] = lambda: text_model
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.dependency_overrides.clear()


@pytest.fixture
def make_context(datastore, fake_redis):
	"""Build a SessionContext for a fresh (or given) user over the shared datastore."""

	def _make(user_id: str | None = None, *, email: str | None = None, metadata=None, assist=None, cache=None):
		identity = Identity(id=user_id or new_user_id(), email=email, user_metadata=metadata or {})
		return SessionContext.build(
			identity,
			datastore,
			cache=cache or LocalCache(fake_redis),
			assist=assist,
		)

	return _make
