from unittest.mock import AsyncMock

import pytest
import socketio
from socketio.exceptions import ConnectionRefusedError

from chatline.domain.realtime.exceptions import PersistenceError
from chatline.domain.realtime.sockets import RealtimeNamespace
from chatline.infra.jwt import encode_access
from chatline.settings import settings


def _namespace(container):
	server = socketio.AsyncServer(async_mode="asgi", async_handlers=False)
	namespace = RealtimeNamespace(container)
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	return namespace


def _scope_with_authorization(token: str) -> dict:
	return {"asgi.scope": {"headers": [(b"authorization", f"Bearer {token}".encode())]}}


async def _connect(namespace, sid, user_id):
	await namespace.trigger_event("connect", sid, {}, {"token": encode_access({"sub": user_id})})


def _emitted(namespace, event):
	return [call for call in namespace.emit.await_args_list if call.args[0] == event]


@pytest.mark.asyncio
async def test_connect_requires_token(container):
	namespace = _namespace(container)

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, None)

	assert namespace.connection("sid-1") is None
	assert not container.registry.is_online("alice")


@pytest.mark.asyncio
async def test_connect_refused_when_user_lookup_fails(container, users, monkeypatch):
	namespace = _namespace(container)
	monkeypatch.setattr(users, "find_user_by_id", AsyncMock(side_effect=PersistenceError()))

	with pytest.raises(ConnectionRefusedError):
		await _connect(namespace, "sid-1", "alice")

	assert namespace.connection("sid-1") is None
	assert not container.registry.is_online("alice")
	namespace.enter_room.assert_not_awaited()

@pytest.mark.asyncio
async def test_connect_with_authorization_header(container):
	namespace = _namespace(container)

	await namespace.trigger_event("connect", "sid-1", _scope_with_authorization(encode_access({"sub": "alice"})), None)

	assert namespace.connection("sid-1").user_id == "alice"
	assert container.registry.lookup("alice") == "sid-1"
	namespace.enter_room.assert_any_await("sid-1", "user:alice")


@pytest.mark.asyncio
async def test_second_connection_supersedes_and_stale_disconnect_is_harmless(container):
	namespace = _namespace(container)
	await _connect(namespace, "sid-1", "alice")
	await _connect(namespace, "sid-2", "alice")
	assert container.registry.lookup("alice") == "sid-2"

	await namespace.trigger_event("disconnect", "sid-1")

	assert container.registry.lookup("alice") == "sid-2"
	await container.fanout.notify("alice", "bob", "follow")
	[push] = _emitted(namespace, "new-notification")
	assert push.kwargs["room"] == "sid-2"


@pytest.mark.asyncio
async def test_hyphenated_events_route_to_handlers(container):
	namespace = _namespace(container)
	await container.chats.create_chat(["alice", "bob"], chat_id="C1")
	await _connect(namespace, "sid-a", "alice")

	await namespace.trigger_event("join-chat", "sid-a", "C1")
	namespace.enter_room.assert_any_await("sid-a", "chat:C1")

	await namespace.trigger_event("typing-start", "sid-a", {"chatId": "C1"})
	[typing] = _emitted(namespace, "user-typing")
	assert typing.kwargs["skip_sid"] == "sid-a"

	await namespace.trigger_event("new-message", "sid-a", {"chatId": "C1", "content": "hi"})
	[message] = _emitted(namespace, "new-message")
	assert message.args[1]["chatId"] == "C1"
	assert message.kwargs["room"] == "chat:C1"
	assert len(_emitted(namespace, "user-typing-stop")) == 1

	await namespace.trigger_event("leave-chat", "sid-a", "C1")
	namespace.leave_room.assert_any_await("sid-a", "chat:C1")


@pytest.mark.asyncio
async def test_malformed_message_gets_error_event(container):
	namespace = _namespace(container)
	await _connect(namespace, "sid-a", "alice")

	await namespace.trigger_event("new-message", "sid-a", {"chatId": "C1"})

	[error] = _emitted(namespace, "error")
	assert error.args[1] == {"message": "Failed to send message"}
	assert error.kwargs["room"] == "sid-a"


@pytest.mark.asyncio
async def test_non_participant_message_is_silent(container):
	namespace = _namespace(container)
	await container.chats.create_chat(["alice", "bob"], chat_id="C1")
	await _connect(namespace, "sid-c", "carol")

	await namespace.trigger_event("new-message", "sid-c", {"chatId": "C1", "content": "hi"})

	assert _emitted(namespace, "new-message") == []
	assert _emitted(namespace, "error") == []


@pytest.mark.asyncio
async def test_rate_limited_message_gets_error_event(container):
	settings.messages_per_minute = 0
	namespace = _namespace(container)
	await container.chats.create_chat(["alice", "bob"], chat_id="C1")
	await _connect(namespace, "sid-a", "alice")

	await namespace.trigger_event("new-message", "sid-a", {"chatId": "C1", "content": "hi"})

	assert _emitted(namespace, "new-message") == []
	assert len(_emitted(namespace, "error")) == 1


@pytest.mark.asyncio
async def test_over_budget_typing_is_dropped_silently(container):
	settings.typing_events_per_minute = 0
	namespace = _namespace(container)
	await _connect(namespace, "sid-a", "alice")

	await namespace.trigger_event("typing-start", "sid-a", {"chatId": "C1"})

	assert _emitted(namespace, "user-typing") == []
	assert _emitted(namespace, "error") == []
	assert container.hub.typing.typing_in("C1") == set()

@pytest.mark.asyncio
async def test_mark_read_broadcasts_receipt(container):
	namespace = _namespace(container)
	await container.chats.create_chat(["alice", "bob"], chat_id="C1")
	await _connect(namespace, "sid-a", "alice")
	await _connect(namespace, "sid-b", "bob")
	await namespace.trigger_event("new-message", "sid-a", {"chatId": "C1", "content": "hi"})

	await namespace.trigger_event("mark-read", "sid-b", {"chatId": "C1"})

	[receipt] = _emitted(namespace, "messages-read")
	assert receipt.args[1] == {"chatId": "C1", "userId": "bob"}
	assert receipt.kwargs["skip_sid"] == "sid-b"
	chat = await container.chats.find_chat_by_id("C1")
	assert chat.unread_for("bob") == 0


@pytest.mark.asyncio
async def test_disconnect_clears_typing_everywhere(container):
	namespace = _namespace(container)
	await _connect(namespace, "sid-a", "alice")
	await namespace.trigger_event("typing-start", "sid-a", "C1")
	await namespace.trigger_event("typing-start", "sid-a", "C2")

	await namespace.trigger_event("disconnect", "sid-a")

	assert container.hub.typing.typing_in("C1") == set()
	assert container.hub.typing.typing_in("C2") == set()
	assert not container.registry.is_online("alice")


@pytest.mark.asyncio
async def test_module_hooks_push_through_registered_namespace(container):
	from chatline.domain.realtime import sockets

	namespace = _namespace(container)
	sockets.set_namespace(namespace)
	try:
		await _connect(namespace, "sid-b", "bob")

		assert await sockets.emit_to_user("bob", "post-liked", {"postId": "p1"}) is True
		assert await sockets.emit_to_user("carol", "post-liked", {"postId": "p1"}) is False
		await sockets.emit_to_chat("C1", "chat-renamed", {"chatId": "C1"})
	finally:
		sockets.set_namespace(None)

	[liked] = _emitted(namespace, "post-liked")
	assert liked.kwargs["room"] == "sid-b"
	[renamed] = _emitted(namespace, "chat-renamed")
	assert renamed.kwargs["room"] == "chat:C1"
