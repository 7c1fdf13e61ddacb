from chatline.domain.identity.users import UserSummary
from chatline.domain.realtime.registry import Connection, SessionRegistry

ALICE = UserSummary(id="alice", username="alice")


def test_register_returns_superseded_sid():
	registry = SessionRegistry()
	first = Connection(sid="s1", user=ALICE)
	second = Connection(sid="s2", user=ALICE)

	assert registry.register(first) is None
	assert registry.register(second) == "s1"
	assert registry.lookup("alice") == "s2"
	assert len(registry) == 1


def test_re_registering_same_sid_is_not_a_supersede():
	registry = SessionRegistry()
	conn = Connection(sid="s1", user=ALICE)
	registry.register(conn)
	assert registry.register(conn) is None


def test_stale_disconnect_keeps_current_entry():
	registry = SessionRegistry()
	stale = Connection(sid="s1", user=ALICE)
	current = Connection(sid="s2", user=ALICE)
	registry.register(stale)
	registry.register(current)

	assert registry.unregister(stale) is False
	assert registry.lookup("alice") == "s2"
	assert registry.is_online("alice")


def test_unregister_current_removes_entry():
	registry = SessionRegistry()
	conn = Connection(sid="s1", user=ALICE)
	registry.register(conn)

	assert registry.unregister(conn) is True
	assert registry.lookup("alice") is None
	assert not registry.is_online("alice")
