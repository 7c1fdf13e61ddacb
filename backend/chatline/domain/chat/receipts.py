"""Read receipts for chat messages."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from chatline.domain.realtime.exceptions import DropReason
from chatline.domain.realtime.presence import RealtimeHub
from chatline.domain.realtime.registry import Connection
from chatline.obs import metrics as obs_metrics

from .repo import ChatStore

logger = logging.getLogger(__name__)

MESSAGES_READ_EVENT = "messages-read"


class ReadReceiptProcessor:
	def __init__(self, store: ChatStore, hub: RealtimeHub) -> None:
		self._store = store
		self._hub = hub

	async def mark_read(self, conn: Connection, chat_id: str) -> Optional[DropReason]:
		"""Stamp every unread message from others, reset the counter and tell the room.

		Safe to repeat. The broadcast goes out even when nothing new was marked.
		"""
		chat = await self._store.find_chat_by_id(chat_id)
		if chat is None:
			obs_metrics.inc_chat_drop(DropReason.CHAT_NOT_FOUND.value)
			return DropReason.CHAT_NOT_FOUND
		if not chat.is_participant(conn.user_id):
			obs_metrics.inc_chat_drop(DropReason.NOT_PARTICIPANT.value)
			return DropReason.NOT_PARTICIPANT

		marked = await self._store.update_messages_read_receipt(chat.id, conn.user_id, datetime.now(timezone.utc))
		await self._store.reset_unread(chat.id, conn.user_id)
		obs_metrics.inc_chat_read(marked)
		logger.info("messages read user=%s chat=%s marked=%d", conn.user_id, chat.id, marked)

		await self._hub.broadcast(
			chat.id,
			MESSAGES_READ_EVENT,
			{"chatId": chat.id, "userId": conn.user_id},
			skip_sid=conn.sid,
		)
		return None
