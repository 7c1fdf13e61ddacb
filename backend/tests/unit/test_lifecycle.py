import pytest

from chatline.domain.realtime.exceptions import AuthError
from chatline.infra.jwt import encode_access


@pytest.mark.asyncio
async def test_handshake_loads_user_attributes(container):
	token = encode_access({"sub": "alice"})

	conn = await container.lifecycle.handshake("s1", f"Bearer {token}")

	assert conn.sid == "s1"
	assert conn.user_id == "alice"
	assert conn.user.profile_pic == "alice.png"


@pytest.mark.asyncio
async def test_handshake_accepts_legacy_id_claim(container):
	token = encode_access({"id": "bob"})
	conn = await container.lifecycle.handshake("s1", token)
	assert conn.user_id == "bob"


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"credential, reason",
	[
		(None, "missing_token"),
		("Bearer ", "missing_token"),
		("not-a-jwt", "invalid_token"),
	],
)
async def test_handshake_rejects_bad_credentials(container, credential, reason):
	with pytest.raises(AuthError) as excinfo:
		await container.lifecycle.handshake("s1", credential)
	assert excinfo.value.reason == reason


@pytest.mark.asyncio
async def test_handshake_rejects_expired_token(container):
	token = encode_access({"sub": "alice"}, ttl_seconds=-60)
	with pytest.raises(AuthError):
		await container.lifecycle.handshake("s1", token)


@pytest.mark.asyncio
async def test_handshake_rejects_deleted_user(container, users):
	token = encode_access({"sub": "carol"})
	users.remove("carol")

	with pytest.raises(AuthError) as excinfo:
		await container.lifecycle.handshake("s1", token)
	assert excinfo.value.reason == "unknown_user"


@pytest.mark.asyncio
async def test_connect_joins_private_room_and_disconnect_cleans_up(container, transport, alice_conn):
	lifecycle = container.lifecycle
	await lifecycle.on_connect(alice_conn)
	await container.hub.join_room(alice_conn, "C1")
	await container.hub.set_typing(alice_conn, "C1")

	assert transport.rooms["user:alice"] == {"sid-alice"}
	assert container.registry.lookup("alice") == "sid-alice"

	await lifecycle.on_disconnect(alice_conn)

	assert container.registry.lookup("alice") is None
	assert container.hub.typing.typing_in("C1") == set()
	assert container.hub.rooms.rooms_for("sid-alice") == set()
