"""Tests for the connection registry."""

from datetime import timedelta

import pytest
from conftest import FakeTransport

from avatar_relay.registry import ConnectionRegistry, Role


@pytest.fixture()
def registry():
    return ConnectionRegistry()


class TestAdmission:
    def test_open_connection_is_unidentified(self, registry):
        conn = registry.open(FakeTransport(), "10.0.0.1:1234")
        assert conn in registry
        assert conn.identity is None
        assert conn.role is None
        assert not conn.is_admitted
        assert conn.describe() == "<unidentified 10.0.0.1:1234>"

    def test_session_seconds_counts_from_open(self, registry):
        conn = registry.open(FakeTransport())
        conn.opened_at -= timedelta(seconds=30)
        assert 30 <= conn.session_seconds < 40

    def test_identities_use_role_prefix_and_shared_counter(self, registry):
        a = registry.open(FakeTransport())
        b = registry.open(FakeTransport())
        c = registry.open(FakeTransport())
        assert registry.admit(a, Role.RELAY_CLIENT) == "user_1"
        assert registry.admit(b, Role.OBSERVER) == "observer_2"
        assert registry.admit(c, Role.OPERATOR) == "operator_3"

    def test_generated_label_when_none_supplied(self, registry):
        conn = registry.open(FakeTransport())
        registry.admit(conn, Role.RELAY_CLIENT)
        assert conn.label == "User1"

    def test_supplied_label_kept(self, registry):
        conn = registry.open(FakeTransport())
        registry.admit(conn, Role.RELAY_CLIENT, "Alice")
        assert conn.label == "Alice"
        assert conn.describe() == "Alice (user_1)"

    def test_members_follow_admission_order(self, registry):
        conns = [registry.open(FakeTransport()) for _ in range(3)]
        for conn in conns:
            registry.admit(conn, Role.OBSERVER)
        assert registry.members(Role.OBSERVER) == conns
        assert registry.size_of(Role.OBSERVER) == 3
        assert registry.size_of(Role.OPERATOR) == 0

    def test_lookup_by_identity(self, registry):
        conn = registry.open(FakeTransport())
        identity = registry.admit(conn, Role.OPERATOR)
        assert registry.get(identity) is conn
        assert registry.get("operator_99") is None


class TestReidentify:
    def test_new_identity_and_old_one_released(self, registry):
        removed = []
        registry.add_removal_listener(lambda c: removed.append(c.identity))
        conn = registry.open(FakeTransport())
        first = registry.admit(conn, Role.RELAY_CLIENT)
        second = registry.admit(conn, Role.OBSERVER)

        assert first != second
        assert removed == [first]
        assert registry.get(first) is None
        assert registry.get(second) is conn
        assert registry.size_of(Role.RELAY_CLIENT) == 0
        assert registry.size_of(Role.OBSERVER) == 1
        assert conn in registry


class TestRemoval:
    def test_remove_cascades_to_listeners_once(self, registry):
        removed = []
        registry.add_removal_listener(removed.append)
        conn = registry.open(FakeTransport())
        registry.admit(conn, Role.RELAY_CLIENT)

        assert registry.remove(conn) is True
        assert registry.remove(conn) is False
        assert removed == [conn]
        assert conn.closed
        assert not conn.is_open
        assert conn not in registry
        assert len(registry) == 0

    def test_unidentified_removal_skips_listeners(self, registry):
        removed = []
        registry.add_removal_listener(removed.append)
        conn = registry.open(FakeTransport())
        registry.remove(conn)
        assert removed == []

    def test_listener_sees_connection_already_closed(self, registry):
        seen = []
        registry.add_removal_listener(lambda c: seen.append(c.is_open))
        conn = registry.open(FakeTransport())
        registry.admit(conn, Role.OBSERVER)
        registry.remove(conn)
        assert seen == [False]

    def test_closed_connection_cannot_be_admitted(self, registry):
        conn = registry.open(FakeTransport())
        registry.remove(conn)
        with pytest.raises(ValueError):
            registry.admit(conn, Role.RELAY_CLIENT)
