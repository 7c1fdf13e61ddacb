"""Socket.IO namespace carrying the chat and notification events."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import socketio
from pydantic import ValidationError as PydanticValidationError
from socketio.exceptions import ConnectionRefusedError

from chatline.domain.chat.schemas import ChatRef, NewMessagePayload
from chatline.domain.realtime.container import RealtimeContainer
from chatline.domain.realtime.exceptions import DropReason, RealtimeError
from chatline.domain.realtime.registry import Connection
from chatline.infra import rate_limit
from chatline.obs import logging as obs_logging
from chatline.obs import metrics as obs_metrics
from chatline.settings import settings

logger = logging.getLogger(__name__)

_namespace: "RealtimeNamespace" | None = None

SEND_FAILED = {"message": "Failed to send message"}


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _credential(environ: dict, auth: Any) -> Optional[str]:
	if isinstance(auth, dict) and auth.get("token"):
		return str(auth["token"])
	header = environ.get("HTTP_AUTHORIZATION")
	if header:
		return header
	scope = environ.get("asgi.scope")
	if isinstance(scope, dict):
		return _header(scope, "authorization")
	return None


class RealtimeNamespace(socketio.AsyncNamespace):
	"""Routes client events into the realtime core.

	Event names on the wire are hyphenated (`join-chat`); handlers are looked
	up with underscores.
	"""

	def __init__(self, container: RealtimeContainer, namespace: str = "/") -> None:
		super().__init__(namespace)
		self.container = container
		self._connections: Dict[str, Connection] = {}
		container.hub.attach(self)

	async def trigger_event(self, event: str, *args: Any) -> Any:
		return await super().trigger_event(event.replace("-", "_"), *args)

	def connection(self, sid: str) -> Optional[Connection]:
		return self._connections.get(sid)

	async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
		try:
			conn = await self.container.lifecycle.handshake(sid, _credential(environ, auth))
		except RealtimeError as exc:
			obs_metrics.handshake_rejected(exc.reason)
			logger.info("connection refused sid=%s reason=%s", sid, exc.reason)
			raise ConnectionRefusedError("unauthorized")
		self._connections[sid] = conn
		with obs_logging.socket_context(sid=sid, event="connect", user_id=conn.user_id):
			await self.container.lifecycle.on_connect(conn)
		obs_metrics.socket_connected(self.namespace)

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		conn = self._connections.pop(sid, None)
		if conn is None:
			return
		obs_metrics.socket_disconnected(self.namespace)
		with obs_logging.socket_context(sid=sid, event="disconnect", user_id=conn.user_id):
			try:
				await self.container.lifecycle.on_disconnect(conn)
			except Exception:
				logger.exception("disconnect cleanup failed")

	def _begin(self, sid: str, event: str) -> Optional[Connection]:
		obs_metrics.socket_event(self.namespace, event)
		return self._connections.get(sid)

	def _chat_ref(self, payload: Any) -> Optional[str]:
		try:
			return ChatRef.parse(payload).chat_id
		except PydanticValidationError:
			obs_metrics.inc_chat_drop("invalid_payload")
			return None

	async def on_join_chat(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "join-chat")
		chat_id = self._chat_ref(payload)
		if conn is None or chat_id is None:
			return
		with obs_logging.socket_context(sid=sid, event="join-chat", user_id=conn.user_id):
			try:
				await self.container.hub.join_room(conn, chat_id)
			except Exception:
				logger.exception("join-chat failed")

	async def on_leave_chat(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "leave-chat")
		chat_id = self._chat_ref(payload)
		if conn is None or chat_id is None:
			return
		with obs_logging.socket_context(sid=sid, event="leave-chat", user_id=conn.user_id):
			try:
				await self.container.hub.leave_room(conn, chat_id)
			except Exception:
				logger.exception("leave-chat failed")

	async def on_typing_start(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "typing-start")
		chat_id = self._chat_ref(payload)
		if conn is None or chat_id is None:
			return
		with obs_logging.socket_context(sid=sid, event="typing-start", user_id=conn.user_id):
			try:
				if not await rate_limit.allow("typing", conn.user_id, limit=settings.typing_events_per_minute):
					return
				await self.container.hub.set_typing(conn, chat_id)
			except Exception:
				logger.exception("typing-start failed")

	async def on_typing_stop(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "typing-stop")
		chat_id = self._chat_ref(payload)
		if conn is None or chat_id is None:
			return
		with obs_logging.socket_context(sid=sid, event="typing-stop", user_id=conn.user_id):
			try:
				await self.container.hub.clear_typing(conn, chat_id)
			except Exception:
				logger.exception("typing-stop failed")

	async def on_new_message(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "new-message")
		if conn is None:
			return
		with obs_logging.socket_context(sid=sid, event="new-message", user_id=conn.user_id):
			try:
				message = NewMessagePayload.model_validate(payload)
			except PydanticValidationError:
				obs_metrics.inc_chat_drop("invalid_payload")
				await self.emit("error", SEND_FAILED, room=sid)
				return
			try:
				result = await self.container.ingest.submit(conn, message)
			except Exception:
				logger.exception("new-message failed chat=%s", message.chat_id)
				await self.emit("error", SEND_FAILED, room=sid)
				return
			if result.reason is DropReason.RATE_LIMITED:
				await self.emit("error", SEND_FAILED, room=sid)

	async def on_mark_read(self, sid: str, payload: Any = None) -> None:
		conn = self._begin(sid, "mark-read")
		chat_id = self._chat_ref(payload)
		if conn is None or chat_id is None:
			return
		with obs_logging.socket_context(sid=sid, event="mark-read", user_id=conn.user_id):
			try:
				await self.container.receipts.mark_read(conn, chat_id)
			except Exception:
				logger.exception("mark-read failed chat=%s", chat_id)


def set_namespace(namespace: Optional[RealtimeNamespace]) -> None:
	global _namespace
	_namespace = namespace


async def emit_to_user(user_id: str, event: str, payload: dict) -> bool:
	if _namespace is None:
		return False
	return await _namespace.container.hub.emit_to_user(user_id, event, payload)


async def emit_to_chat(chat_id: str, event: str, payload: dict) -> None:
	if _namespace is None:
		return
	await _namespace.container.hub.emit_to_chat(chat_id, event, payload)
