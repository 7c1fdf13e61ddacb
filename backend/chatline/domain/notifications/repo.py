"""Durable notification storage."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

import asyncpg
import ulid

from chatline.domain.realtime.exceptions import PersistenceError
from chatline.infra.postgres import get_pool

from .models import Notification, NotificationRefs, NotificationType

_DB_ERRORS = (asyncpg.PostgresError, OSError, asyncio.TimeoutError)


class NotificationStore(Protocol):
	async def create_notification(
		self,
		*,
		recipient_id: str,
		sender_id: str,
		kind: NotificationType,
		refs: NotificationRefs,
	) -> Notification:
		...

	async def list_for_recipient(
		self,
		recipient_id: str,
		*,
		page: int,
		limit: int,
		unread_only: bool = False,
	) -> List[Notification]:
		...

	async def count(self, recipient_id: str, *, unread_only: bool = False) -> int:
		...

	async def get(self, notification_id: str) -> Optional[Notification]:
		...

	async def set_read(self, notification_id: str, read: bool) -> Optional[Notification]:
		...

	async def mark_all_read(self, recipient_id: str) -> int:
		...

	async def delete(self, notification_id: str) -> bool:
		...

	async def delete_read(self, recipient_id: str) -> int:
		...


class InMemoryNotificationStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._items: Dict[str, Notification] = {}

	def _for(self, recipient_id: str, unread_only: bool) -> List[Notification]:
		items = [
			n
			for n in self._items.values()
			if n.recipient_id == recipient_id and (not unread_only or not n.is_read)
		]
		items.sort(key=lambda n: (n.created_at, n.id), reverse=True)
		return items

	async def create_notification(
		self,
		*,
		recipient_id: str,
		sender_id: str,
		kind: NotificationType,
		refs: NotificationRefs,
	) -> Notification:
		async with self._lock:
			notification = Notification(
				id=str(ulid.new()),
				recipient_id=recipient_id,
				sender_id=sender_id,
				type=kind,
				refs=refs,
				created_at=datetime.now(timezone.utc),
			)
			self._items[notification.id] = notification
			return copy.deepcopy(notification)

	async def list_for_recipient(
		self,
		recipient_id: str,
		*,
		page: int,
		limit: int,
		unread_only: bool = False,
	) -> List[Notification]:
		async with self._lock:
			start = (max(page, 1) - 1) * limit
			return [copy.deepcopy(n) for n in self._for(recipient_id, unread_only)[start : start + limit]]

	async def count(self, recipient_id: str, *, unread_only: bool = False) -> int:
		async with self._lock:
			return len(self._for(recipient_id, unread_only))

	async def get(self, notification_id: str) -> Optional[Notification]:
		async with self._lock:
			item = self._items.get(notification_id)
			return copy.deepcopy(item) if item else None

	async def set_read(self, notification_id: str, read: bool) -> Optional[Notification]:
		async with self._lock:
			item = self._items.get(notification_id)
			if item is None:
				return None
			item.is_read = read
			item.read_at = datetime.now(timezone.utc) if read else None
			return copy.deepcopy(item)

	async def mark_all_read(self, recipient_id: str) -> int:
		async with self._lock:
			now = datetime.now(timezone.utc)
			updated = 0
			for item in self._for(recipient_id, unread_only=True):
				item.is_read = True
				item.read_at = now
				updated += 1
			return updated

	async def delete(self, notification_id: str) -> bool:
		async with self._lock:
			return self._items.pop(notification_id, None) is not None

	async def delete_read(self, recipient_id: str) -> int:
		async with self._lock:
			doomed = [n.id for n in self._items.values() if n.recipient_id == recipient_id and n.is_read]
			for notification_id in doomed:
				del self._items[notification_id]
			return len(doomed)


def _from_record(record: asyncpg.Record) -> Notification:
	return Notification(
		id=str(record["id"]),
		recipient_id=str(record["recipient_id"]),
		sender_id=str(record["sender_id"]),
		type=NotificationType(record["type"]),
		refs=NotificationRefs(
			post_id=record["post_id"],
			comment_id=record["comment_id"],
			chat_id=record["chat_id"],
			message_id=record["message_id"],
		),
		created_at=record["created_at"],
		is_read=bool(record["is_read"]),
		read_at=record["read_at"],
	)


SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
	id TEXT PRIMARY KEY,
	recipient_id TEXT NOT NULL,
	sender_id TEXT NOT NULL,
	type TEXT NOT NULL,
	post_id TEXT,
	comment_id TEXT,
	chat_id TEXT,
	message_id TEXT,
	is_read BOOLEAN NOT NULL DEFAULT FALSE,
	read_at TIMESTAMPTZ,
	created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_recipient ON notifications(recipient_id, created_at DESC);
"""


class NotificationRepository:
	async def ensure_schema(self) -> None:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				await conn.execute(SCHEMA)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc

	async def create_notification(
		self,
		*,
		recipient_id: str,
		sender_id: str,
		kind: NotificationType,
		refs: NotificationRefs,
	) -> Notification:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					INSERT INTO notifications (id, recipient_id, sender_id, type, post_id, comment_id, chat_id, message_id, created_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
					RETURNING *
					""",
					str(ulid.new()),
					recipient_id,
					sender_id,
					kind.value,
					refs.post_id,
					refs.comment_id,
					refs.chat_id,
					refs.message_id,
					datetime.now(timezone.utc),
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _from_record(row)

	async def list_for_recipient(
		self,
		recipient_id: str,
		*,
		page: int,
		limit: int,
		unread_only: bool = False,
	) -> List[Notification]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT * FROM notifications
					WHERE recipient_id = $1 AND (NOT $2 OR NOT is_read)
					ORDER BY created_at DESC, id DESC
					LIMIT $3 OFFSET $4
					""",
					recipient_id,
					unread_only,
					limit,
					(max(page, 1) - 1) * limit,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return [_from_record(row) for row in rows]

	async def count(self, recipient_id: str, *, unread_only: bool = False) -> int:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				value = await conn.fetchval(
					"SELECT COUNT(*) FROM notifications WHERE recipient_id = $1 AND (NOT $2 OR NOT is_read)",
					recipient_id,
					unread_only,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return int(value or 0)

	async def get(self, notification_id: str) -> Optional[Notification]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM notifications WHERE id = $1", notification_id)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _from_record(row) if row else None

	async def set_read(self, notification_id: str, read: bool) -> Optional[Notification]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					UPDATE notifications
					SET is_read = $2, read_at = CASE WHEN $2 THEN NOW() ELSE NULL END
					WHERE id = $1
					RETURNING *
					""",
					notification_id,
					read,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _from_record(row) if row else None

	async def mark_all_read(self, recipient_id: str) -> int:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				result = await conn.execute(
					"UPDATE notifications SET is_read = TRUE, read_at = NOW() WHERE recipient_id = $1 AND NOT is_read",
					recipient_id,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return int(result.split()[-1])

	async def delete(self, notification_id: str) -> bool:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				result = await conn.execute("DELETE FROM notifications WHERE id = $1", notification_id)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return int(result.split()[-1]) > 0

	async def delete_read(self, recipient_id: str) -> int:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				result = await conn.execute(
					"DELETE FROM notifications WHERE recipient_id = $1 AND is_read",
					recipient_id,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return int(result.split()[-1])
