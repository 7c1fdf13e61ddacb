"""Notification records and their display text."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from chatline.domain.identity.users import UserSummary


class NotificationType(str, Enum):
	LIKE = "like"
	COMMENT = "comment"
	FOLLOW = "follow"
	MESSAGE = "message"
	MENTION = "mention"


_TEXT_TEMPLATES: Dict[NotificationType, str] = {
	NotificationType.LIKE: "{username} liked your post",
	NotificationType.COMMENT: "{username} commented on your post",
	NotificationType.FOLLOW: "{username} started following you",
	NotificationType.MESSAGE: "{username} sent you a message",
	NotificationType.MENTION: "{username} mentioned you in a comment",
}


def notification_text(kind: NotificationType, username: Optional[str]) -> str:
	template = _TEXT_TEMPLATES.get(kind)
	if template is None or not username:
		return "New notification"
	return template.format(username=username)


@dataclass(slots=True, frozen=True)
class NotificationRefs:
	"""Pointers back to whatever triggered the notification."""

	post_id: Optional[str] = None
	comment_id: Optional[str] = None
	chat_id: Optional[str] = None
	message_id: Optional[str] = None

	def to_push(self) -> dict:
		payload = {
			"postId": self.post_id,
			"commentId": self.comment_id,
			"chatId": self.chat_id,
			"messageId": self.message_id,
		}
		return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True)
class Notification:
	id: str
	recipient_id: str
	sender_id: str
	type: NotificationType
	refs: NotificationRefs
	created_at: datetime
	is_read: bool = False
	read_at: Optional[datetime] = None

	def to_dict(self, sender: Optional[UserSummary] = None) -> dict:
		return {
			"id": self.id,
			"recipient": self.recipient_id,
			"sender": sender.to_dict() if sender else {"id": self.sender_id},
			"type": self.type.value,
			"post": self.refs.post_id,
			"comment": self.refs.comment_id,
			"chat": self.refs.chat_id,
			"message": self.refs.message_id,
			"isRead": self.is_read,
			"readAt": self.read_at.isoformat() if self.read_at else None,
			"createdAt": self.created_at.isoformat(),
			"text": notification_text(self.type, sender.username if sender else None),
		}
