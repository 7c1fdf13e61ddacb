"""User lookups needed by the realtime core."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

import asyncpg

from chatline.domain.realtime.exceptions import PersistenceError
from chatline.infra.postgres import get_pool


@dataclass(slots=True, frozen=True)
class UserSummary:
	"""Public display attributes cached on a connection."""

	id: str
	username: str
	profile_pic: Optional[str] = None

	def to_dict(self) -> dict:
		return {"id": self.id, "username": self.username, "profilePic": self.profile_pic}


class UserDirectory(Protocol):
	async def find_user_by_id(self, user_id: str) -> Optional[UserSummary]:
		...


class InMemoryUserDirectory:
	def __init__(self, users: Iterable[UserSummary] = ()) -> None:
		self._users: Dict[str, UserSummary] = {user.id: user for user in users}

	def add(self, user: UserSummary) -> None:
		self._users[user.id] = user

	def remove(self, user_id: str) -> None:
		self._users.pop(user_id, None)

	async def find_user_by_id(self, user_id: str) -> Optional[UserSummary]:
		return self._users.get(str(user_id))


class UserRepository:
	"""Reads the users table owned by the account service.

	Deactivated accounts are reported as absent.
	"""

	async def find_user_by_id(self, user_id: str) -> Optional[UserSummary]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					SELECT id, username, profile_pic
					FROM users
					WHERE id = $1 AND COALESCE(is_active, TRUE)
					""",
					str(user_id),
				)
		except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as exc:
			raise PersistenceError() from exc
		if not row:
			return None
		return UserSummary(
			id=str(row["id"]),
			username=row["username"],
			profile_pic=row["profile_pic"],
		)
