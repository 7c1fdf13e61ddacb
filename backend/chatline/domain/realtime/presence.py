"""Room membership, typing indicators and outbound delivery for the realtime channel."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Set

from chatline.domain.realtime.registry import Connection, SessionRegistry
from chatline.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def chat_room(chat_id: str) -> str:
	return f"chat:{chat_id}"


def user_room(user_id: str) -> str:
	return f"user:{user_id}"


class Transport(Protocol):
	"""The subset of a Socket.IO namespace the hub drives."""

	namespace: str

	async def emit(
		self,
		event: str,
		data: Any = None,
		to: Optional[str] = None,
		room: Optional[str] = None,
		skip_sid: Optional[str] = None,
		**kwargs: Any,
	) -> None:
		...

	async def enter_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None:
		...

	async def leave_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None:
		...


class RoomMembership:
	"""Mirror of which chat rooms each connection has joined."""

	def __init__(self) -> None:
		self._rooms: Dict[str, Set[str]] = {}

	def join(self, sid: str, chat_id: str) -> bool:
		rooms = self._rooms.setdefault(sid, set())
		if chat_id in rooms:
			return False
		rooms.add(chat_id)
		return True

	def leave(self, sid: str, chat_id: str) -> bool:
		rooms = self._rooms.get(sid)
		if not rooms or chat_id not in rooms:
			return False
		rooms.discard(chat_id)
		if not rooms:
			del self._rooms[sid]
		return True

	def rooms_for(self, sid: str) -> Set[str]:
		return set(self._rooms.get(sid, ()))

	def members(self, chat_id: str) -> Set[str]:
		return {sid for sid, rooms in self._rooms.items() if chat_id in rooms}

	def drop(self, sid: str) -> Set[str]:
		return self._rooms.pop(sid, set())

	def clear(self) -> None:
		self._rooms.clear()


class TypingTracker:
	"""chat id -> users currently typing in it."""

	def __init__(self) -> None:
		self._typing: Dict[str, Set[str]] = {}

	def start(self, chat_id: str, user_id: str) -> bool:
		users = self._typing.setdefault(chat_id, set())
		if user_id in users:
			return False
		users.add(user_id)
		return True

	def stop(self, chat_id: str, user_id: str) -> bool:
		users = self._typing.get(chat_id)
		if not users or user_id not in users:
			return False
		users.discard(user_id)
		if not users:
			del self._typing[chat_id]
		return True

	def clear_user(self, user_id: str) -> List[str]:
		"""Remove `user_id` from every chat and return the chats it was typing in."""
		cleared: List[str] = []
		for chat_id in list(self._typing):
			if self.stop(chat_id, user_id):
				cleared.append(chat_id)
		return cleared

	def typing_in(self, chat_id: str) -> Set[str]:
		return set(self._typing.get(chat_id, ()))

	def clear(self) -> None:
		self._typing.clear()


class RealtimeHub:
	"""Owns membership and typing state and pushes events through the transport.

	Delivery is fire-and-forget: nothing is acknowledged, retried or stored.
	"""

	def __init__(
		self,
		registry: SessionRegistry,
		*,
		rooms: Optional[RoomMembership] = None,
		typing: Optional[TypingTracker] = None,
		transport: Optional[Transport] = None,
	) -> None:
		self.registry = registry
		self.rooms = rooms or RoomMembership()
		self.typing = typing or TypingTracker()
		self._transport = transport

	def attach(self, transport: Transport) -> None:
		self._transport = transport

	async def join_user_room(self, conn: Connection) -> None:
		if self._transport is None:
			return
		await self._transport.enter_room(conn.sid, user_room(conn.user_id))

	async def join_room(self, conn: Connection, chat_id: str) -> bool:
		if not self.rooms.join(conn.sid, chat_id):
			return False
		if self._transport is not None:
			await self._transport.enter_room(conn.sid, chat_room(chat_id))
		logger.info("room joined user=%s chat=%s", conn.user_id, chat_id)
		return True

	async def leave_room(self, conn: Connection, chat_id: str) -> bool:
		if not self.rooms.leave(conn.sid, chat_id):
			return False
		if self._transport is not None:
			await self._transport.leave_room(conn.sid, chat_room(chat_id))
		logger.info("room left user=%s chat=%s", conn.user_id, chat_id)
		return True

	async def broadcast(
		self,
		chat_id: str,
		event: str,
		payload: Dict[str, Any],
		*,
		skip_sid: Optional[str] = None,
	) -> None:
		if self._transport is None:
			return
		obs_metrics.socket_event(self._transport.namespace, event, "outbound")
		await self._transport.emit(event, payload, room=chat_room(chat_id), skip_sid=skip_sid)

	async def set_typing(self, conn: Connection, chat_id: str) -> None:
		self.typing.start(chat_id, conn.user_id)
		await self.broadcast(
			chat_id,
			"user-typing",
			{"chatId": chat_id, "userId": conn.user_id, "username": conn.username},
			skip_sid=conn.sid,
		)

	async def clear_typing(self, conn: Connection, chat_id: str) -> bool:
		if not self.typing.stop(chat_id, conn.user_id):
			return False
		await self.broadcast(
			chat_id,
			"user-typing-stop",
			{"chatId": chat_id, "userId": conn.user_id},
			skip_sid=conn.sid,
		)
		return True

	async def clear_typing_everywhere(self, conn: Connection) -> List[str]:
		cleared = self.typing.clear_user(conn.user_id)
		for chat_id in cleared:
			await self.broadcast(
				chat_id,
				"user-typing-stop",
				{"chatId": chat_id, "userId": conn.user_id},
				skip_sid=conn.sid,
			)
		return cleared

	async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
		"""Push to the user's registered connection. Returns False when offline."""
		sid = self.registry.lookup(user_id)
		if sid is None or self._transport is None:
			return False
		obs_metrics.socket_event(self._transport.namespace, event, "outbound")
		await self._transport.emit(event, payload, room=sid)
		return True

	async def emit_to_chat(self, chat_id: str, event: str, payload: Dict[str, Any]) -> None:
		await self.broadcast(chat_id, event, payload)

	def forget(self, conn: Connection) -> None:
		self.rooms.drop(conn.sid)

	def reset(self) -> None:
		self.registry.clear()
		self.rooms.clear()
		self.typing.clear()
