"""Tests for relay counters and the Prometheus rendering."""

from avatar_relay.metrics import RelayStats, render_prometheus


def _value(body: str, name: str) -> str:
    for line in body.splitlines():
        if line.startswith(name + " "):
            return line.split(" ", 1)[1]
    raise AssertionError(f"{name} not in exposition")


def test_as_dict_replaces_start_time_with_uptime():
    data = RelayStats(connects=3).as_dict()
    assert "started_at" not in data
    assert data["connects"] == 3
    assert data["uptime_seconds"] >= 0


def test_gauges_follow_turn_state(relay, join, send):
    a, _ = join("relay-client")
    join("relay-client")
    join("relay-client")
    join("observer")

    body = render_prometheus(relay.context)
    assert _value(body, "avatar_relay_busy") == "1"
    assert _value(body, "avatar_relay_queue_length") == "2"
    assert _value(body, 'avatar_relay_connections{role="relay-client"}') == "3"
    assert _value(body, 'avatar_relay_connections{role="observer"}') == "1"
    assert _value(body, 'avatar_relay_connections{role="operator"}') == "0"


def test_counters_exposed(relay, join, send, connect):
    a, _ = join("relay-client")
    b, _ = join("relay-client")
    send(b, type="start-turn")
    conn, _ = connect()
    relay.receive(conn, "nope")

    body = render_prometheus(relay.context)
    assert _value(body, "avatar_relay_connections_total") == "3"
    assert _value(body, "avatar_relay_unauthorized_actions_total") == "1"
    assert _value(body, "avatar_relay_malformed_messages_total") == "1"
    assert "# TYPE avatar_relay_promotions_total counter" in body
