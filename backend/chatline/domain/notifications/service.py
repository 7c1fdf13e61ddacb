"""Notification fan-out: durable record first, live push when the recipient is online."""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional

from chatline.domain.identity.users import UserDirectory, UserSummary
from chatline.domain.realtime.exceptions import AuthorizationError, NotFoundError
from chatline.domain.realtime.presence import RealtimeHub
from chatline.obs import metrics as obs_metrics

from .models import Notification, NotificationRefs, NotificationType
from .repo import NotificationStore

logger = logging.getLogger(__name__)

PUSH_EVENT = "new-notification"


class NotificationFanout:
	def __init__(self, store: NotificationStore, hub: RealtimeHub, users: UserDirectory) -> None:
		self.store = store
		self._hub = hub
		self._users = users

	async def notify(
		self,
		recipient_id: str,
		sender_id: str,
		kind: NotificationType,
		refs: Optional[NotificationRefs] = None,
		*,
		sender: Optional[UserSummary] = None,
	) -> Optional[Notification]:
		"""Store a notification and push it if the recipient is connected.

		Acting on your own content notifies nobody. Store failures propagate;
		push failures are logged and dropped since the record already exists.
		"""
		kind = NotificationType(kind)
		refs = refs or NotificationRefs()
		if str(recipient_id) == str(sender_id):
			obs_metrics.notification_result(kind.value, "self_skipped")
			return None
		try:
			notification = await self.store.create_notification(
				recipient_id=str(recipient_id),
				sender_id=str(sender_id),
				kind=kind,
				refs=refs,
			)
		except Exception:
			obs_metrics.notification_result(kind.value, "failed")
			raise
		obs_metrics.notification_result(kind.value, "stored")

		if not self._hub.registry.is_online(notification.recipient_id):
			obs_metrics.notification_push("offline")
			logger.info("notification stored for offline user=%s type=%s", notification.recipient_id, kind.value)
			return notification
		try:
			if sender is None:
				sender = await self._users.find_user_by_id(notification.sender_id)
			payload = {
				"type": kind.value,
				"sender": sender.to_dict() if sender else {"id": notification.sender_id},
				**refs.to_push(),
			}
			delivered = await self._hub.emit_to_user(notification.recipient_id, PUSH_EVENT, payload)
		except Exception:
			obs_metrics.notification_push("failed")
			logger.warning("notification push failed user=%s", notification.recipient_id, exc_info=True)
			return notification
		obs_metrics.notification_push("pushed" if delivered else "offline")
		return notification

	async def _senders(self, items: Iterable[Notification]) -> Dict[str, Optional[UserSummary]]:
		senders: Dict[str, Optional[UserSummary]] = {}
		for item in items:
			if item.sender_id not in senders:
				senders[item.sender_id] = await self._users.find_user_by_id(item.sender_id)
		return senders

	async def render(self, items: List[Notification]) -> List[dict]:
		senders = await self._senders(items)
		return [item.to_dict(senders.get(item.sender_id)) for item in items]

	async def list_page(self, recipient_id: str, *, page: int, limit: int, unread_only: bool = False) -> dict:
		items = await self.store.list_for_recipient(recipient_id, page=page, limit=limit, unread_only=unread_only)
		total = await self.store.count(recipient_id, unread_only=unread_only)
		total_pages = math.ceil(total / limit) if limit else 0
		return {
			"items": await self.render(items),
			"pagination": {
				"current_page": page,
				"total_pages": total_pages,
				"total": total,
				"has_next": page < total_pages,
				"has_prev": page > 1,
			},
		}

	async def unread_count(self, recipient_id: str) -> int:
		return await self.store.count(recipient_id, unread_only=True)

	async def _owned(self, recipient_id: str, notification_id: str) -> Notification:
		notification = await self.store.get(notification_id)
		if notification is None:
			raise NotFoundError()
		if notification.recipient_id != recipient_id:
			raise AuthorizationError("not_recipient")
		return notification

	async def set_read(self, recipient_id: str, notification_id: str, read: bool) -> dict:
		await self._owned(recipient_id, notification_id)
		updated = await self.store.set_read(notification_id, read)
		if updated is None:
			raise NotFoundError()
		rendered = await self.render([updated])
		return rendered[0]

	async def mark_all_read(self, recipient_id: str) -> int:
		return await self.store.mark_all_read(recipient_id)

	async def delete(self, recipient_id: str, notification_id: str) -> None:
		await self._owned(recipient_id, notification_id)
		await self.store.delete(notification_id)

	async def delete_read(self, recipient_id: str) -> int:
		return await self.store.delete_read(recipient_id)
