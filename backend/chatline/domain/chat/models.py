"""Domain models for chats, messages and read receipts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class MessageType(str, Enum):
	TEXT = "text"
	IMAGE = "image"
	VIDEO = "video"
	FILE = "file"


@dataclass(slots=True)
class ReadReceipt:
	user_id: str
	read_at: datetime

	def to_dict(self) -> dict:
		return {"user": self.user_id, "readAt": self.read_at.isoformat()}


@dataclass(slots=True)
class Chat:
	"""Conversation summary state, mutated by the ingest and receipt paths."""

	id: str
	participants: Tuple[str, ...]
	last_message_id: Optional[str] = None
	last_message_at: Optional[datetime] = None
	unread_counts: Dict[str, int] = field(default_factory=dict)
	is_group: bool = False
	group_name: str = ""

	def is_participant(self, user_id: str) -> bool:
		return str(user_id) in self.participants

	def others(self, user_id: str) -> List[str]:
		return [participant for participant in self.participants if participant != str(user_id)]

	def unread_for(self, user_id: str) -> int:
		return self.unread_counts.get(str(user_id), 0)

	def record_message(self, message: "Message") -> None:
		"""Point the summary at `message` and bump every other participant's counter."""
		self.last_message_id = message.id
		self.last_message_at = message.created_at
		for participant in self.others(message.sender_id):
			self.unread_counts[participant] = self.unread_for(participant) + 1

	def reset_unread(self, user_id: str) -> None:
		self.unread_counts[str(user_id)] = 0


@dataclass(slots=True)
class Message:
	id: str
	chat_id: str
	sender_id: str
	content: str
	message_type: MessageType
	created_at: datetime
	reply_to: Optional[str] = None
	media: Optional[str] = None
	read_by: List[ReadReceipt] = field(default_factory=list)

	@property
	def is_read(self) -> bool:
		return bool(self.read_by)

	def read_by_user(self, user_id: str) -> bool:
		return any(receipt.user_id == user_id for receipt in self.read_by)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"chat": self.chat_id,
			"sender": self.sender_id,
			"content": self.content,
			"messageType": self.message_type.value,
			"media": self.media,
			"replyTo": self.reply_to,
			"readBy": [receipt.to_dict() for receipt in self.read_by],
			"isRead": self.is_read,
			"createdAt": self.created_at.isoformat(),
		}
