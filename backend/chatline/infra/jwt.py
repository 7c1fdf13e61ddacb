"""Centralised JWT helpers for access tokens.

Uses HS256 with the application's secret key. Issuer and audience are only
validated when configured in settings.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from chatline.settings import settings


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
	"""Encode an access token; mostly used by tests and local tooling."""
	now = int(time.time())
	body: Dict[str, Any] = {"iat": now, "exp": now + ttl_seconds}
	if settings.jwt_issuer:
		body["iss"] = settings.jwt_issuer
	if settings.jwt_audience:
		body["aud"] = settings.jwt_audience
	body.update(payload)
	return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
	"""Decode and validate an access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	options: Dict[str, Any] = {"require": ["exp"]}
	kwargs: Dict[str, Any] = {}
	if settings.jwt_audience:
		kwargs["audience"] = settings.jwt_audience
	else:
		options["verify_aud"] = False
	if settings.jwt_issuer:
		kwargs["issuer"] = settings.jwt_issuer
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=["HS256"],
		leeway=settings.jwt_leeway_seconds,
		options=options,
		**kwargs,
	)
	# Legacy tokens carry the user id under "id" instead of "sub"
	subject = payload.get("sub") or payload.get("id")
	if not subject:
		raise InvalidTokenError("missing_claim:sub")
	payload["sub"] = str(subject)
	return payload
