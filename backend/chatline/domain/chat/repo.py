"""Persistence collaborators for chats and messages."""

from __future__ import annotations

import asyncio
import copy
import json
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence

import asyncpg
import ulid

from chatline.domain.realtime.exceptions import PersistenceError
from chatline.infra.postgres import get_pool

from .models import Chat, Message, MessageType, ReadReceipt

_DB_ERRORS = (asyncpg.PostgresError, OSError, asyncio.TimeoutError)


class ChatStore(Protocol):
	async def find_chat_by_id(self, chat_id: str) -> Optional[Chat]:
		...

	async def save_chat(self, chat: Chat) -> Chat:
		...

	async def reset_unread(self, chat_id: str, user_id: str) -> None:
		...

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		created_at: datetime,
		reply_to: Optional[str] = None,
	) -> Message:
		...

	async def find_message_by_id(self, message_id: str) -> Optional[Message]:
		...

	async def update_messages_read_receipt(self, chat_id: str, reader_id: str, read_at: datetime) -> int:
		...

	async def list_messages(self, chat_id: str, *, limit: int = 50) -> List[Message]:
		...


class InMemoryChatStore:
	"""Store used by tests and by local runs without Postgres.

	Reads hand out copies so callers see the same load/mutate/save semantics as
	the database-backed store.
	"""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._chats: Dict[str, Chat] = {}
		self._messages: Dict[str, Message] = {}

	async def create_chat(
		self,
		participants: Sequence[str],
		*,
		chat_id: Optional[str] = None,
		is_group: bool = False,
		group_name: str = "",
	) -> Chat:
		async with self._lock:
			chat = Chat(
				id=chat_id or str(ulid.new()),
				participants=tuple(str(p) for p in participants),
				unread_counts={str(p): 0 for p in participants},
				is_group=is_group,
				group_name=group_name,
			)
			self._chats[chat.id] = chat
			return copy.deepcopy(chat)

	async def find_chat_by_id(self, chat_id: str) -> Optional[Chat]:
		async with self._lock:
			chat = self._chats.get(chat_id)
			return copy.deepcopy(chat) if chat else None

	async def save_chat(self, chat: Chat) -> Chat:
		async with self._lock:
			self._chats[chat.id] = copy.deepcopy(chat)
			return chat

	async def reset_unread(self, chat_id: str, user_id: str) -> None:
		async with self._lock:
			chat = self._chats.get(chat_id)
			if chat is not None:
				chat.reset_unread(user_id)

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		created_at: datetime,
		reply_to: Optional[str] = None,
	) -> Message:
		async with self._lock:
			message = Message(
				id=str(ulid.new()),
				chat_id=chat_id,
				sender_id=sender_id,
				content=content,
				message_type=message_type,
				created_at=created_at,
				reply_to=reply_to,
			)
			self._messages[message.id] = message
			return copy.deepcopy(message)

	async def find_message_by_id(self, message_id: str) -> Optional[Message]:
		async with self._lock:
			message = self._messages.get(message_id)
			return copy.deepcopy(message) if message else None

	async def update_messages_read_receipt(self, chat_id: str, reader_id: str, read_at: datetime) -> int:
		async with self._lock:
			marked = 0
			for message in self._messages.values():
				if message.chat_id != chat_id or message.sender_id == reader_id:
					continue
				if message.read_by_user(reader_id):
					continue
				message.read_by.append(ReadReceipt(user_id=reader_id, read_at=read_at))
				marked += 1
			return marked

	async def list_messages(self, chat_id: str, *, limit: int = 50) -> List[Message]:
		async with self._lock:
			messages = [m for m in self._messages.values() if m.chat_id == chat_id]
			messages.sort(key=lambda m: (m.created_at, m.id))
			return [copy.deepcopy(m) for m in messages[-limit:]]


def _chat_from_record(record: asyncpg.Record) -> Chat:
	unread = record["unread_counts"]
	if isinstance(unread, str):
		unread = json.loads(unread)
	return Chat(
		id=str(record["id"]),
		participants=tuple(str(p) for p in record["participants"]),
		last_message_id=record["last_message_id"],
		last_message_at=record["last_message_at"],
		unread_counts={str(k): int(v) for k, v in (unread or {}).items()},
		is_group=bool(record["is_group"]),
		group_name=record["group_name"] or "",
	)


def _message_from_record(record: asyncpg.Record, receipts: Sequence[asyncpg.Record] = ()) -> Message:
	return Message(
		id=str(record["id"]),
		chat_id=str(record["chat_id"]),
		sender_id=str(record["sender_id"]),
		content=record["content"],
		message_type=MessageType(record["message_type"]),
		created_at=record["created_at"],
		reply_to=record["reply_to"],
		media=record["media"],
		read_by=[ReadReceipt(user_id=str(r["user_id"]), read_at=r["read_at"]) for r in receipts],
	)


SCHEMA = """
CREATE TABLE IF NOT EXISTS chats (
	id TEXT PRIMARY KEY,
	participants TEXT[] NOT NULL,
	last_message_id TEXT,
	last_message_at TIMESTAMPTZ,
	unread_counts JSONB NOT NULL DEFAULT '{}'::jsonb,
	is_group BOOLEAN NOT NULL DEFAULT FALSE,
	group_name TEXT
);
CREATE TABLE IF NOT EXISTS chat_messages (
	id TEXT PRIMARY KEY,
	chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
	sender_id TEXT NOT NULL,
	content TEXT NOT NULL,
	message_type TEXT NOT NULL DEFAULT 'text',
	media TEXT,
	reply_to TEXT,
	created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_chat ON chat_messages(chat_id, created_at);
CREATE TABLE IF NOT EXISTS chat_message_reads (
	message_id TEXT NOT NULL REFERENCES chat_messages(id) ON DELETE CASCADE,
	user_id TEXT NOT NULL,
	read_at TIMESTAMPTZ NOT NULL,
	PRIMARY KEY (message_id, user_id)
);
"""


class ChatRepository:
	"""asyncpg-backed chat store."""

	async def ensure_schema(self) -> None:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				await conn.execute(SCHEMA)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc

	async def find_chat_by_id(self, chat_id: str) -> Optional[Chat]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM chats WHERE id = $1", chat_id)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _chat_from_record(row) if row else None

	async def save_chat(self, chat: Chat) -> Chat:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					INSERT INTO chats (id, participants, last_message_id, last_message_at, unread_counts, is_group, group_name)
					VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
					ON CONFLICT (id) DO UPDATE SET
						last_message_id = EXCLUDED.last_message_id,
						last_message_at = EXCLUDED.last_message_at,
						unread_counts = EXCLUDED.unread_counts
					""",
					chat.id,
					list(chat.participants),
					chat.last_message_id,
					chat.last_message_at,
					json.dumps(chat.unread_counts),
					chat.is_group,
					chat.group_name,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return chat

	async def reset_unread(self, chat_id: str, user_id: str) -> None:
		# Touches only the reader's key so a concurrent send keeps its summary fields.
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					UPDATE chats
					SET unread_counts = jsonb_set(unread_counts, ARRAY[$2::text], '0'::jsonb)
					WHERE id = $1
					""",
					chat_id,
					user_id,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		created_at: datetime,
		reply_to: Optional[str] = None,
	) -> Message:
		message_id = str(ulid.new())
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					INSERT INTO chat_messages (id, chat_id, sender_id, content, message_type, reply_to, created_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7)
					RETURNING *
					""",
					message_id,
					chat_id,
					sender_id,
					content,
					message_type.value,
					reply_to,
					created_at,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _message_from_record(row)

	async def find_message_by_id(self, message_id: str) -> Optional[Message]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM chat_messages WHERE id = $1", message_id)
				if not row:
					return None
				receipts = await conn.fetch(
					"SELECT user_id, read_at FROM chat_message_reads WHERE message_id = $1",
					message_id,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		return _message_from_record(row, receipts)

	async def update_messages_read_receipt(self, chat_id: str, reader_id: str, read_at: datetime) -> int:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				result = await conn.execute(
					"""
					INSERT INTO chat_message_reads (message_id, user_id, read_at)
					SELECT m.id, $2, $3
					FROM chat_messages m
					WHERE m.chat_id = $1 AND m.sender_id <> $2
					ON CONFLICT (message_id, user_id) DO NOTHING
					""",
					chat_id,
					reader_id,
					read_at,
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		# asyncpg returns the command tag, e.g. "INSERT 0 3"
		return int(result.split()[-1])

	async def list_messages(self, chat_id: str, *, limit: int = 50) -> List[Message]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT * FROM (
						SELECT * FROM chat_messages WHERE chat_id = $1
						ORDER BY created_at DESC, id DESC LIMIT $2
					) recent ORDER BY created_at, id
					""",
					chat_id,
					limit,
				)
				receipts = await conn.fetch(
					"SELECT message_id, user_id, read_at FROM chat_message_reads WHERE message_id = ANY($1::text[])",
					[row["id"] for row in rows],
				)
		except _DB_ERRORS as exc:
			raise PersistenceError() from exc
		by_message: Dict[str, List[asyncpg.Record]] = {}
		for receipt in receipts:
			by_message.setdefault(receipt["message_id"], []).append(receipt)
		return [_message_from_record(row, by_message.get(row["id"], ())) for row in rows]
