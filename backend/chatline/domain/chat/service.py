"""Message ingest: validate, persist, summarise, broadcast, notify."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from chatline.domain.notifications.models import NotificationRefs, NotificationType
from chatline.domain.notifications.service import NotificationFanout
from chatline.domain.realtime.exceptions import DropReason
from chatline.domain.realtime.presence import RealtimeHub
from chatline.domain.realtime.registry import Connection
from chatline.infra import rate_limit
from chatline.obs import metrics as obs_metrics
from chatline.settings import settings

from .models import Chat, Message
from .repo import ChatStore
from .schemas import NewMessagePayload

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "new-message"


@dataclass(slots=True)
class IngestResult:
	message: Optional[Message] = None
	reason: Optional[DropReason] = None

	@property
	def delivered(self) -> bool:
		return self.message is not None


def _drop(reason: DropReason, conn: Connection, chat_id: str) -> IngestResult:
	obs_metrics.inc_chat_drop(reason.value)
	logger.info("message dropped reason=%s user=%s chat=%s", reason.value, conn.user_id, chat_id)
	return IngestResult(reason=reason)


class MessageIngest:
	def __init__(self, store: ChatStore, hub: RealtimeHub, fanout: NotificationFanout) -> None:
		self._store = store
		self._hub = hub
		self._fanout = fanout

	async def submit(self, conn: Connection, payload: NewMessagePayload) -> IngestResult:
		"""Run one new-message event through the pipeline.

		Rejections come back as an IngestResult carrying a DropReason. Store
		failures raise PersistenceError before anything is broadcast. The chat
		summary is loaded, mutated and saved without a lock, so concurrent senders
		can under-count unread messages.
		"""
		chat_id = payload.chat_id
		if not await rate_limit.allow("chat_send", conn.user_id, limit=settings.messages_per_minute):
			return _drop(DropReason.RATE_LIMITED, conn, chat_id)

		chat = await self._store.find_chat_by_id(chat_id)
		if chat is None:
			return _drop(DropReason.CHAT_NOT_FOUND, conn, chat_id)
		if not chat.is_participant(conn.user_id):
			return _drop(DropReason.NOT_PARTICIPANT, conn, chat_id)

		reply: Optional[Message] = None
		if payload.reply_to:
			reply = await self._store.find_message_by_id(payload.reply_to)
			if reply is None or reply.chat_id != chat.id:
				return _drop(DropReason.INVALID_REPLY, conn, chat_id)

		message = await self._store.create_message(
			chat_id=chat.id,
			sender_id=conn.user_id,
			content=payload.content,
			message_type=payload.message_type,
			created_at=datetime.now(timezone.utc),
			reply_to=reply.id if reply else None,
		)
		chat.record_message(message)
		await self._store.save_chat(chat)
		obs_metrics.inc_chat_send()
		logger.info("message persisted id=%s chat=%s", message.id, chat.id)

		body = message.to_dict()
		body["sender"] = conn.user.to_dict()
		if reply is not None:
			body["replyTo"] = reply.to_dict()
		await self._hub.broadcast(chat.id, NEW_MESSAGE_EVENT, {"message": body, "chatId": chat.id})
		await self._hub.clear_typing(conn, chat.id)

		await self._fan_out(conn, chat, message)
		return IngestResult(message=message)

	async def _fan_out(self, conn: Connection, chat: Chat, message: Message) -> None:
		refs = NotificationRefs(chat_id=chat.id, message_id=message.id)
		await asyncio.gather(
			*(self._notify_one(conn, recipient_id, refs) for recipient_id in chat.others(conn.user_id))
		)

	async def _notify_one(self, conn: Connection, recipient_id: str, refs: NotificationRefs) -> None:
		try:
			await self._fanout.notify(
				recipient_id,
				conn.user_id,
				NotificationType.MESSAGE,
				refs,
				sender=conn.user,
			)
		except Exception:
			logger.warning(
				"message notification failed recipient=%s chat=%s",
				recipient_id,
				refs.chat_id,
				exc_info=True,
			)
