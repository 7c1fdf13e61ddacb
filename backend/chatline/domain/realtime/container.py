"""Wiring for the realtime core's shared state and services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from chatline.domain.chat.receipts import ReadReceiptProcessor
from chatline.domain.chat.repo import ChatRepository, ChatStore
from chatline.domain.chat.service import MessageIngest
from chatline.domain.identity.users import UserDirectory, UserRepository
from chatline.domain.notifications.repo import NotificationRepository, NotificationStore
from chatline.domain.notifications.service import NotificationFanout
from chatline.domain.realtime.lifecycle import ConnectionLifecycle
from chatline.domain.realtime.presence import RealtimeHub
from chatline.domain.realtime.registry import SessionRegistry


@dataclass(slots=True)
class RealtimeContainer:
	registry: SessionRegistry
	hub: RealtimeHub
	users: UserDirectory
	chats: ChatStore
	notifications: NotificationStore
	lifecycle: ConnectionLifecycle
	fanout: NotificationFanout
	ingest: MessageIngest
	receipts: ReadReceiptProcessor

	async def ensure_schema(self) -> None:
		for store in (self.chats, self.notifications):
			ensure = getattr(store, "ensure_schema", None)
			if ensure is not None:
				await ensure()

	def reset(self) -> None:
		self.hub.reset()


def build_container(
	*,
	users: Optional[UserDirectory] = None,
	chats: Optional[ChatStore] = None,
	notifications: Optional[NotificationStore] = None,
) -> RealtimeContainer:
	"""Assemble a fresh container; omitted stores default to the Postgres ones."""
	users = users if users is not None else UserRepository()
	chats = chats if chats is not None else ChatRepository()
	notifications = notifications if notifications is not None else NotificationRepository()
	registry = SessionRegistry()
	hub = RealtimeHub(registry)
	fanout = NotificationFanout(notifications, hub, users)
	return RealtimeContainer(
		registry=registry,
		hub=hub,
		users=users,
		chats=chats,
		notifications=notifications,
		lifecycle=ConnectionLifecycle(users, hub),
		fanout=fanout,
		ingest=MessageIngest(chats, hub, fanout),
		receipts=ReadReceiptProcessor(chats, hub),
	)
