"""Pydantic response schemas for the HTTP API."""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel

OBSERVER_IDENTIFY_HINT = 'Connect via WebSocket and send: { "type": "identify", "client": "observer" }'


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class StatusResponse(BaseModel):
    status: str
    resource_state: str
    holder_identity: Optional[str] = None
    holder_label: Optional[str] = None
    waiting: int
    relay_clients: int
    observers: int
    operators: int
    uptime_seconds: float
    ws_endpoint: str
    counters: Dict[str, float] = {}
    observer_protocol: str = OBSERVER_IDENTIFY_HINT
