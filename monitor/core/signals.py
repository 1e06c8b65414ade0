from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class EventKind(Enum):
    """Everything that can wake a room connection's dispatch loop."""

    CONNECTED = "connected"
    ERROR = "error"
    DATA = "data"
    CLOSED = "closed"
    WATCHDOG_TICK = "watchdog_tick"
    HEARTBEAT_TICK = "heartbeat_tick"


@dataclass(frozen=True)
class ConnEvent:
    kind: EventKind
    epoch: int  # socket generation the event belongs to
    data: Any = None


__all__ = ["ConnectionState", "EventKind", "ConnEvent"]
