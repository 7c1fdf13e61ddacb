import os

os.environ.setdefault("SECRET_KEY", "test-secret")

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from chatline.domain.chat.repo import InMemoryChatStore
from chatline.domain.identity.users import InMemoryUserDirectory, UserSummary
from chatline.domain.notifications.repo import InMemoryNotificationStore
from chatline.domain.realtime.container import build_container
from chatline.domain.realtime.registry import Connection
from chatline.infra import postgres
from chatline.infra.redis import redis_client, set_redis_client
from chatline.settings import settings

ALICE = UserSummary(id="alice", username="alice", profile_pic="alice.png")
BOB = UserSummary(id="bob", username="bob")
CAROL = UserSummary(id="carol", username="carol")


@dataclass
class Emitted:
	event: str
	data: Any
	target: Optional[str]
	skip_sid: Optional[str]


class RecordingTransport:
	"""Stands in for the Socket.IO namespace and remembers what was sent where."""

	namespace = "/"

	def __init__(self) -> None:
		self.emitted: List[Emitted] = []
		self.rooms: Dict[str, Set[str]] = {}

	async def emit(self, event, data=None, to=None, room=None, skip_sid=None, **kwargs):
		self.emitted.append(Emitted(event, data, to or room, skip_sid))

	async def enter_room(self, sid, room, namespace=None):
		self.rooms.setdefault(room, set()).add(sid)

	async def leave_room(self, sid, room, namespace=None):
		self.rooms.get(room, set()).discard(sid)

	def events(self, name: str) -> List[Emitted]:
		return [item for item in self.emitted if item.event == name]

	def received_by(self, sid: str, name: Optional[str] = None) -> List[Emitted]:
		"""Events a given socket would have seen, resolving room fan-out."""
		seen = []
		for item in self.emitted:
			if name is not None and item.event != name:
				continue
			if item.skip_sid == sid:
				continue
			if item.target == sid or sid in self.rooms.get(item.target or "", set()):
				seen.append(item)
		return seen


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client.client
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
	original_env = settings.environment
	original_messages = settings.messages_per_minute
	original_typing = settings.typing_events_per_minute
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.messages_per_minute = original_messages
		settings.typing_events_per_minute = original_typing


@pytest.fixture
def users():
	return InMemoryUserDirectory([ALICE, BOB, CAROL])


@pytest.fixture
def transport():
	return RecordingTransport()


@pytest.fixture
def container(users, transport):
	built = build_container(
		users=users,
		chats=InMemoryChatStore(),
		notifications=InMemoryNotificationStore(),
	)
	built.hub.attach(transport)
	try:
		yield built
	finally:
		built.reset()


@pytest_asyncio.fixture
async def chat(container):
	return await container.chats.create_chat(["alice", "bob"], chat_id="C1")


@pytest.fixture
def alice_conn():
	return Connection(sid="sid-alice", user=ALICE)


@pytest.fixture
def bob_conn():
	return Connection(sid="sid-bob", user=BOB)


@pytest_asyncio.fixture
async def api_client(container):
	from chatline.main import create_app

	app = create_app(container)
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
