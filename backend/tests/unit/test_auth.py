import jwt
import pytest
from fastapi import HTTPException

from chatline.infra.auth import strip_bearer, verify_access_jwt
from chatline.infra.jwt import decode_access, encode_access
from chatline.settings import settings


def test_strip_bearer_variants():
	assert strip_bearer("Bearer abc") == "abc"
	assert strip_bearer("bearer  abc ") == "abc"
	assert strip_bearer("abc") == "abc"
	assert strip_bearer("   ") is None
	assert strip_bearer(None) is None


def test_decode_requires_subject():
	token = jwt.encode({"exp": 9999999999}, settings.secret_key, algorithm="HS256")
	with pytest.raises(jwt.InvalidTokenError):
		decode_access(token)


def test_decode_rejects_wrong_key():
	token = jwt.encode({"sub": "alice", "exp": 9999999999}, "other-key", algorithm="HS256")
	with pytest.raises(jwt.InvalidTokenError):
		decode_access(token)


def test_verify_access_jwt_returns_user():
	user = verify_access_jwt(encode_access({"sub": "alice", "username": "alice"}))
	assert user.id == "alice"
	assert user.username == "alice"


def test_verify_access_jwt_normalises_failures():
	with pytest.raises(HTTPException) as excinfo:
		verify_access_jwt("garbage")
	assert excinfo.value.status_code == 401
	assert excinfo.value.detail == "invalid_token"
