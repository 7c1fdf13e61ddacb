"""Pydantic schemas for inbound chat events."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatline.settings import settings

from .models import MessageType


def _coerce_chat_id(value: Any) -> Any:
	# bool is an int subclass and is never a chat id
	if isinstance(value, int) and not isinstance(value, bool):
		return str(value)
	return value


class ChatRef(BaseModel):
	"""Payload of join-chat, leave-chat, typing-* and mark-read.

	Clients send either a bare chat id or an object carrying `chatId`.
	"""

	model_config = ConfigDict(populate_by_name=True)

	chat_id: str = Field(..., alias="chatId", min_length=1)

	@classmethod
	def parse(cls, payload: Any) -> "ChatRef":
		if isinstance(payload, (str, int)) and not isinstance(payload, bool):
			return cls(chatId=payload)
		return cls.model_validate(payload)

	@field_validator("chat_id", mode="before")
	@classmethod
	def _coerce_id(cls, value: Any) -> Any:
		return _coerce_chat_id(value)


class NewMessagePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	chat_id: str = Field(..., alias="chatId", min_length=1)
	content: str = Field(..., min_length=1)
	message_type: MessageType = Field(default=MessageType.TEXT, alias="messageType")
	reply_to: Optional[str] = Field(default=None, alias="replyTo")

	@field_validator("chat_id", mode="before")
	@classmethod
	def _coerce_id(cls, value: Any) -> Any:
		return _coerce_chat_id(value)

	@field_validator("content")
	@classmethod
	def _content_length(cls, value: str) -> str:
		value = value.strip()
		if not value:
			raise ValueError("content must not be blank")
		if len(value) > settings.message_max_length:
			raise ValueError("content too long")
		return value

	@field_validator("reply_to", mode="before")
	@classmethod
	def _blank_reply(cls, value: Any) -> Any:
		if value in ("", None):
			return None
		return str(value)
