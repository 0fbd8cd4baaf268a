"""
Counters and Prometheus text rendering for relay monitoring.

Served by the HTTP layer:
- GET /metrics - Prometheus-compatible text format
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from avatar_relay.registry import Role

if TYPE_CHECKING:
    from avatar_relay.context import RelayContext


@dataclass
class RelayStats:
    """Connection and turn counters since process start."""

    started_at: float = field(default_factory=time.time)
    connects: int = 0
    disconnects: int = 0
    relay_clients_admitted: int = 0
    observers_admitted: int = 0
    operators_admitted: int = 0
    promotions: int = 0
    releases: int = 0
    forced_closes: int = 0
    queue_removals: int = 0
    operator_commands: int = 0
    rejected_commands: int = 0
    transcriptions_relayed: int = 0
    malformed_messages: int = 0
    unauthorized_actions: int = 0
    rate_limited_messages: int = 0
    failed_sends: int = 0

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at

    def as_dict(self) -> dict:
        data = asdict(self)
        data.pop("started_at")
        data["uptime_seconds"] = round(self.uptime_seconds, 2)
        return data


_COUNTERS = [
    ("connects", "avatar_relay_connections_total", "Transport connections accepted"),
    ("disconnects", "avatar_relay_disconnections_total", "Transport connections closed"),
    ("relay_clients_admitted", "avatar_relay_relay_clients_admitted_total", "Relay clients identified"),
    ("observers_admitted", "avatar_relay_observers_admitted_total", "Observer clients identified"),
    ("operators_admitted", "avatar_relay_operators_admitted_total", "Operator clients identified"),
    ("promotions", "avatar_relay_promotions_total", "Times a connection was granted the turn"),
    ("releases", "avatar_relay_releases_total", "Times the turn was released"),
    ("forced_closes", "avatar_relay_forced_closes_total", "Connections terminated by an operator"),
    ("queue_removals", "avatar_relay_queue_removals_total", "Queued connections that left the queue"),
    ("operator_commands", "avatar_relay_operator_commands_total", "Operator commands applied"),
    ("rejected_commands", "avatar_relay_rejected_commands_total", "Operator commands rejected"),
    ("transcriptions_relayed", "avatar_relay_transcriptions_total", "Transcriptions forwarded"),
    ("malformed_messages", "avatar_relay_malformed_messages_total", "Inbound frames dropped as malformed"),
    ("unauthorized_actions", "avatar_relay_unauthorized_actions_total", "Inbound actions dropped as unauthorized"),
    ("rate_limited_messages", "avatar_relay_rate_limited_messages_total", "Inbound frames dropped by the rate limiter"),
    ("failed_sends", "avatar_relay_failed_sends_total", "Outbound writes that failed"),
]


def render_prometheus(context: "RelayContext") -> str:
    """Render gauges and counters in the Prometheus text exposition format."""
    stats = context.stats
    registry = context.registry
    busy = 1 if context.turns.holder is not None else 0

    lines = [
        "# HELP avatar_relay_uptime_seconds Server uptime in seconds",
        "# TYPE avatar_relay_uptime_seconds gauge",
        f"avatar_relay_uptime_seconds {stats.uptime_seconds:.2f}",
        "",
        "# HELP avatar_relay_busy Whether a relay client currently holds the avatar",
        "# TYPE avatar_relay_busy gauge",
        f"avatar_relay_busy {busy}",
        "",
        "# HELP avatar_relay_queue_length Relay clients waiting for the avatar",
        "# TYPE avatar_relay_queue_length gauge",
        f"avatar_relay_queue_length {len(context.turns)}",
        "",
        "# HELP avatar_relay_connections Currently connected clients by role",
        "# TYPE avatar_relay_connections gauge",
    ]
    for role in Role:
        lines.append(f'avatar_relay_connections{{role="{role.value}"}} {registry.size_of(role)}')
    lines.append("")

    for attr, name, help_text in _COUNTERS:
        lines.extend(
            [
                f"# HELP {name} {help_text}",
                f"# TYPE {name} counter",
                f"{name} {getattr(stats, attr)}",
                "",
            ]
        )
    return "\n".join(lines)
