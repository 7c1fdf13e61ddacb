"""Handshake authentication and connect/disconnect bookkeeping."""

from __future__ import annotations

import logging
from typing import Optional

from jwt import PyJWTError

from chatline.domain.identity.users import UserDirectory
from chatline.domain.realtime.exceptions import AuthError
from chatline.domain.realtime.presence import RealtimeHub
from chatline.domain.realtime.registry import Connection
from chatline.infra import jwt as jwt_helper
from chatline.infra.auth import strip_bearer
from chatline.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
	def __init__(self, users: UserDirectory, hub: RealtimeHub) -> None:
		self._users = users
		self._hub = hub

	async def handshake(self, sid: str, credential: Optional[str]) -> Connection:
		"""Verify the bearer credential and load the user's display attributes.

		Raises AuthError when the token is missing, malformed or expired, or when
		the user it names no longer exists. PersistenceError from the user lookup
		propagates unchanged.
		"""
		token = strip_bearer(credential)
		if not token:
			raise AuthError("missing_token")
		try:
			claims = jwt_helper.decode_access(token)
		except PyJWTError as exc:
			raise AuthError("invalid_token") from exc
		user = await self._users.find_user_by_id(str(claims["sub"]))
		if user is None:
			raise AuthError("unknown_user")
		return Connection(sid=sid, user=user)

	async def on_connect(self, conn: Connection) -> None:
		superseded = self._hub.registry.register(conn)
		if superseded is not None:
			obs_metrics.session_superseded()
		await self._hub.join_user_room(conn)
		logger.info("connection accepted user=%s sid=%s", conn.user_id, conn.sid)

	async def on_disconnect(self, conn: Connection) -> None:
		removed = self._hub.registry.unregister(conn)
		if not removed:
			logger.info("stale disconnect ignored user=%s sid=%s", conn.user_id, conn.sid)
		await self._hub.clear_typing_everywhere(conn)
		self._hub.forget(conn)
