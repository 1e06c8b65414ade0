from .connection import RoomConnection
from .dispatcher import MessageDispatcher
from .heartbeat import HeartbeatController
from .signals import ConnectionState, ConnEvent, EventKind

__all__ = ["RoomConnection", "MessageDispatcher", "HeartbeatController", "ConnectionState", "ConnEvent", "EventKind"]
