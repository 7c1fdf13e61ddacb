"""Process-wide map of users to their single live connection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from chatline.domain.identity.users import UserSummary

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Connection:
	"""One authenticated duplex channel."""

	sid: str
	user: UserSummary

	@property
	def user_id(self) -> str:
		return self.user.id

	@property
	def username(self) -> str:
		return self.user.username


class SessionRegistry:
	"""Holds at most one connection id per user.

	A later registration replaces the earlier one. Removal is conditional on the
	stored sid still matching, so a superseded socket disconnecting late cannot
	evict the current session.
	"""

	def __init__(self) -> None:
		self._entries: Dict[str, str] = {}

	def register(self, conn: Connection) -> Optional[str]:
		"""Store `conn` for its user and return the sid it replaced, if any."""
		previous = self._entries.get(conn.user_id)
		self._entries[conn.user_id] = conn.sid
		if previous is not None and previous != conn.sid:
			logger.info("session superseded user=%s old_sid=%s new_sid=%s", conn.user_id, previous, conn.sid)
			return previous
		return None

	def unregister(self, conn: Connection) -> bool:
		if self._entries.get(conn.user_id) != conn.sid:
			return False
		del self._entries[conn.user_id]
		return True

	def lookup(self, user_id: str) -> Optional[str]:
		return self._entries.get(str(user_id))

	def is_online(self, user_id: str) -> bool:
		return str(user_id) in self._entries

	def clear(self) -> None:
		self._entries.clear()

	def __len__(self) -> int:
		return len(self._entries)
