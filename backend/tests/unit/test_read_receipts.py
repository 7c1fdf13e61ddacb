import asyncio

import pytest

from chatline.domain.chat.repo import InMemoryChatStore
from chatline.domain.chat.schemas import NewMessagePayload
from chatline.domain.identity.users import UserSummary
from chatline.domain.notifications.repo import InMemoryNotificationStore
from chatline.domain.realtime.container import build_container
from chatline.domain.realtime.exceptions import DropReason
from chatline.domain.realtime.registry import Connection


class HeldReceiptStore(InMemoryChatStore):
	"""Parks the receipt write until the test lets it through."""

	def __init__(self) -> None:
		super().__init__()
		self.entered = asyncio.Event()
		self.release = asyncio.Event()

	async def update_messages_read_receipt(self, chat_id, reader_id, read_at):
		self.entered.set()
		await self.release.wait()
		return await super().update_messages_read_receipt(chat_id, reader_id, read_at)


async def _send(container, conn, content):
	payload = NewMessagePayload.model_validate({"chatId": "C1", "content": content})
	result = await container.ingest.submit(conn, payload)
	return result.message


@pytest.mark.asyncio
async def test_mark_read_stamps_others_messages_and_resets_counter(container, chat, transport, alice_conn, bob_conn):
	await _send(container, alice_conn, "one")
	await _send(container, alice_conn, "two")
	own = await _send(container, bob_conn, "mine")
	assert (await container.chats.find_chat_by_id("C1")).unread_for("bob") == 2

	assert await container.receipts.mark_read(bob_conn, "C1") is None

	stored = await container.chats.find_chat_by_id("C1")
	assert stored.unread_for("bob") == 0
	assert stored.unread_for("alice") == 1
	for message in await container.chats.list_messages("C1"):
		if message.id == own.id:
			assert message.read_by == []
		else:
			assert [receipt.user_id for receipt in message.read_by] == ["bob"]

	[event] = transport.events("messages-read")
	assert event.data == {"chatId": "C1", "userId": "bob"}
	assert event.target == "chat:C1"
	assert event.skip_sid == "sid-bob"


@pytest.mark.asyncio
async def test_mark_read_twice_adds_no_duplicate_receipts(container, chat, transport, alice_conn, bob_conn):
	await _send(container, alice_conn, "hello")

	await container.receipts.mark_read(bob_conn, "C1")
	await container.receipts.mark_read(bob_conn, "C1")

	[message] = await container.chats.list_messages("C1")
	assert len(message.read_by) == 1
	assert (await container.chats.find_chat_by_id("C1")).unread_for("bob") == 0
	assert len(transport.events("messages-read")) == 2


@pytest.mark.asyncio
async def test_mark_read_by_non_participant_is_dropped(container, chat, transport, alice_conn):
	await _send(container, alice_conn, "hello")
	carol = Connection(sid="sid-carol", user=UserSummary(id="carol", username="carol"))

	assert await container.receipts.mark_read(carol, "C1") is DropReason.NOT_PARTICIPANT

	[message] = await container.chats.list_messages("C1")
	assert message.read_by == []
	assert transport.events("messages-read") == []


@pytest.mark.asyncio
async def test_mark_read_unknown_chat(container, bob_conn):
	assert await container.receipts.mark_read(bob_conn, "missing") is DropReason.CHAT_NOT_FOUND


@pytest.mark.asyncio
async def test_send_during_mark_read_keeps_latest_summary(users, transport, alice_conn, bob_conn):
	store = HeldReceiptStore()
	container = build_container(users=users, chats=store, notifications=InMemoryNotificationStore())
	container.hub.attach(transport)
	await store.create_chat(["alice", "bob"], chat_id="C1")
	await _send(container, alice_conn, "one")

	pending = asyncio.create_task(container.receipts.mark_read(bob_conn, "C1"))
	await store.entered.wait()
	latest = await _send(container, alice_conn, "two")
	store.release.set()
	assert await pending is None

	stored = await store.find_chat_by_id("C1")
	assert stored.last_message_id == latest.id
	assert stored.last_message_at == latest.created_at
	assert stored.unread_for("bob") == 0
	assert stored.unread_for("alice") == 0


@pytest.mark.asyncio
async def test_reset_unread_only_touches_reader(container, chat, alice_conn, bob_conn):
	await _send(container, alice_conn, "one")
	await _send(container, bob_conn, "two")

	await container.chats.reset_unread("C1", "bob")

	stored = await container.chats.find_chat_by_id("C1")
	assert stored.unread_for("bob") == 0
	assert stored.unread_for("alice") == 1
