import pytest
from pydantic import ValidationError

from chatline.domain.chat.schemas import ChatRef, NewMessagePayload


@pytest.mark.parametrize("payload", ["C1", {"chatId": "C1"}, {"chat_id": "C1"}])
def test_chat_ref_accepts_bare_id_or_object(payload):
	assert ChatRef.parse(payload).chat_id == "C1"


def test_integer_chat_ids_are_coerced_in_both_models():
	assert ChatRef.parse(42).chat_id == "42"
	assert ChatRef.parse({"chatId": 42}).chat_id == "42"
	assert NewMessagePayload.model_validate({"chatId": 42, "content": "hi"}).chat_id == "42"


@pytest.mark.parametrize("payload", [True, False, {"chatId": True}, None, {}, ""])
def test_chat_ref_rejects_non_ids(payload):
	with pytest.raises(ValidationError):
		ChatRef.parse(payload)


def test_new_message_rejects_boolean_chat_id():
	with pytest.raises(ValidationError):
		NewMessagePayload.model_validate({"chatId": True, "content": "hi"})
